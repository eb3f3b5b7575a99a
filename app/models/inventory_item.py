"""Inventory Item model."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base, ID_TYPE
import enum


class InventoryKind(enum.Enum):
    """Inventory item kind enum."""
    PRODUCT = "product"
    DRINK = "drink"
    SIDE = "side"


class InventoryItem(Base):
    """
    Sellable unit with its own stock counter.

    stock_quantity is only written by the stock ledger. version is the
    optimistic-lock column: every stock write bumps it.
    """

    __tablename__ = 'inventory_item'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    kind = Column(Enum(InventoryKind, name='inventory_kind'), nullable=False, default=InventoryKind.PRODUCT)
    unit_price = Column(Numeric(10, 2), nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('stock_quantity >= 0', name='inventory_item_stock_non_negative'),
    )

    def __repr__(self):
        return f"<InventoryItem(id={self.id}, name='{self.name}', stock={self.stock_quantity})>"
