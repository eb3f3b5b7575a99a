"""Discount Rule model."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.sql import func
from app.database import Base, ID_TYPE
import enum


class DiscountKind(enum.Enum):
    """Discount rule kind enum."""
    SIMPLE = "simple"
    QUANTITY = "quantity"
    CROSS_PROMOTION = "cross-promotion"


class TemporalType(enum.Enum):
    """Temporal condition: a weekday (0 = Sunday .. 6 = Saturday) or an ISO date."""
    WEEKDAY = "weekday"
    DATE = "date"


class DiscountScope(enum.Enum):
    """Whole order or the combos the rule is assigned to."""
    ORDER = "order"
    COMBOS = "combos"


class DiscountRule(Base):
    """Discount Rule (promoción)."""

    __tablename__ = 'discount_rule'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, default='')
    kind = Column(Enum(DiscountKind, name='discount_kind'), nullable=False, default=DiscountKind.SIMPLE)
    percentage = Column(Numeric(5, 2), nullable=False)

    temporal_type = Column(Enum(TemporalType, name='temporal_type'), nullable=False)
    temporal_value = Column(String(10), nullable=False)  # '0'..'6' or 'YYYY-MM-DD'
    time_start = Column(String(5), nullable=True)  # 'HH:MM'
    time_end = Column(String(5), nullable=True)

    applies_to = Column(Enum(DiscountScope, name='discount_scope'), nullable=False, default=DiscountScope.COMBOS)

    # Quantity rules: every `required_quantity` units, `discounted_quantity` are discounted
    required_quantity = Column(Integer, nullable=True)
    discounted_quantity = Column(Integer, nullable=True)

    # Cross-promotion rules (trigger == target models "buy 2 get 1")
    trigger_combo_id = Column(ID_TYPE, ForeignKey('combo.id'), nullable=True)
    target_combo_id = Column(ID_TYPE, ForeignKey('combo.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    combo_links = relationship('ComboDiscountRule', back_populates='rule', cascade='all, delete-orphan')
    combos = association_proxy('combo_links', 'combo')

    @property
    def combo_ids(self):
        """Ids of the combos this rule is assigned to."""
        return {link.combo.id if link.combo is not None else link.combo_id for link in self.combo_links}

    def __repr__(self):
        return f"<DiscountRule(id={self.id}, kind={self.kind.value}, percentage={self.percentage})>"
