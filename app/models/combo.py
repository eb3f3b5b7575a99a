"""Combo, combo line item and combo/discount assignment models."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.sql import func
from app.database import Base, ID_TYPE
import enum


class SelectionMode(enum.Enum):
    """How a combo component ends up in the bundle."""
    FIXED = "fixed"
    CHOICE = "choice"


class Combo(Base):
    """Combo (sellable bundle)."""

    __tablename__ = 'combo'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    line_items = relationship(
        'ComboLineItem',
        back_populates='combo',
        order_by='ComboLineItem.id',
        cascade='all, delete-orphan'
    )
    # Declaration order matters: the first active simple rule wins
    rule_links = relationship(
        'ComboDiscountRule',
        back_populates='combo',
        order_by='ComboDiscountRule.position',
        collection_class=ordering_list('position'),
        cascade='all, delete-orphan'
    )
    discount_rules = association_proxy(
        'rule_links', 'rule',
        creator=lambda rule: ComboDiscountRule(rule=rule)
    )

    def __repr__(self):
        return f"<Combo(id={self.id}, name='{self.name}', base_price={self.base_price})>"


class ComboLineItem(Base):
    """Combo component: a fixed product or one alternative of a choice group."""

    __tablename__ = 'combo_line_item'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    combo_id = Column(ID_TYPE, ForeignKey('combo.id'), nullable=False)
    product_id = Column(ID_TYPE, ForeignKey('inventory_item.id'), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # NULL only on legacy records (see `flask migrate-combos`)
    selection_mode = Column(Enum(SelectionMode, name='selection_mode'), nullable=True)
    choice_group = Column(String(80), nullable=True)

    # Relationships
    combo = relationship('Combo', back_populates='line_items')
    product = relationship('InventoryItem')

    def __repr__(self):
        mode = self.selection_mode.value if self.selection_mode else None
        return f"<ComboLineItem(combo_id={self.combo_id}, product_id={self.product_id}, mode={mode})>"


class ComboDiscountRule(Base):
    """Assignment of a discount rule to a combo, in declaration order."""

    __tablename__ = 'combo_discount_rule'

    combo_id = Column(ID_TYPE, ForeignKey('combo.id'), primary_key=True)
    discount_rule_id = Column(ID_TYPE, ForeignKey('discount_rule.id'), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    combo = relationship('Combo', back_populates='rule_links')
    rule = relationship('DiscountRule', back_populates='combo_links')

    def __repr__(self):
        return f"<ComboDiscountRule(combo_id={self.combo_id}, rule_id={self.discount_rule_id}, position={self.position})>"
