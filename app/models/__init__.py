"""Models package - exports all SQLAlchemy models."""
from app.models.inventory_item import InventoryItem, InventoryKind
from app.models.combo import Combo, ComboLineItem, ComboDiscountRule, SelectionMode
from app.models.discount_rule import DiscountRule, DiscountKind, DiscountScope, TemporalType
from app.models.shift import Shift, ShiftStatus
from app.models.order import Order, OrderLine, OrderStatus, DeliveryType

__all__ = [
    # Catalog
    'InventoryItem', 'InventoryKind',
    'Combo', 'ComboLineItem', 'ComboDiscountRule', 'SelectionMode',
    'DiscountRule', 'DiscountKind', 'DiscountScope', 'TemporalType',
    # Checkout
    'Shift', 'ShiftStatus',
    'Order', 'OrderLine', 'OrderStatus', 'DeliveryType',
]
