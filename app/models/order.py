"""Order and Order Line models."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, event, inspect
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, ID_TYPE, JSON_TYPE
from app.exceptions import InvalidStateError
import enum


class OrderStatus(enum.Enum):
    """Order status enum. The only transition is COMPLETED -> CANCELLED."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryType(enum.Enum):
    """Delivery type enum."""
    LOCAL = "local"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class Order(Base):
    """Order (orden confirmada)."""

    # "order" is a reserved word
    __tablename__ = 'pos_order'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    shift_id = Column(ID_TYPE, ForeignKey('shift.id'), nullable=True, index=True)
    delivery_type = Column(Enum(DeliveryType, name='delivery_type'), nullable=False, default=DeliveryType.LOCAL)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_total = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.COMPLETED)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    # Relationships
    shift = relationship('Shift', back_populates='orders')
    lines = relationship('OrderLine', back_populates='order', order_by='OrderLine.id', cascade='all, delete-orphan')

    @property
    def is_completed(self):
        return self.status == OrderStatus.COMPLETED

    def __repr__(self):
        return f"<Order(id={self.id}, total={self.total}, status={self.status.value})>"


class OrderLine(Base):
    """Order Line (detalle de orden). Prices are frozen at finalize time."""

    __tablename__ = 'order_line'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id = Column(ID_TYPE, ForeignKey('pos_order.id'), nullable=False)
    combo_id = Column(ID_TYPE, ForeignKey('combo.id'), nullable=True)  # NULL = standalone item
    product_id = Column(ID_TYPE, ForeignKey('inventory_item.id'), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    final_unit_price = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    discount_rule_id = Column(ID_TYPE, ForeignKey('discount_rule.id'), nullable=True)
    selections = Column(JSON_TYPE, nullable=False, default=list)  # chosen product ids

    # Relationships
    order = relationship('Order', back_populates='lines')
    combo = relationship('Combo')
    product = relationship('InventoryItem')
    discount_rule = relationship('DiscountRule')

    def __repr__(self):
        return f"<OrderLine(id={self.id}, combo_id={self.combo_id}, product_id={self.product_id}, qty={self.quantity})>"


_CANCELLATION_FIELDS = {'status', 'cancelled_at', 'cancellation_reason'}


@event.listens_for(Order, 'before_update')
def _guard_order_immutability(mapper, connection, target):
    """Only the COMPLETED -> CANCELLED transition may touch a persisted order."""
    state = inspect(target)
    changed = {
        key for key in list(mapper.column_attrs.keys()) + ['lines']
        if state.attrs[key].history.has_changes()
    }
    if not changed:
        return
    if changed - _CANCELLATION_FIELDS:
        raise InvalidStateError(
            f'La orden #{target.id} es inmutable', {'fields': sorted(changed - _CANCELLATION_FIELDS)}
        )
    history = state.attrs['status'].history
    previous = history.deleted[0] if history.deleted else None
    if history.has_changes() and (previous != OrderStatus.COMPLETED or target.status != OrderStatus.CANCELLED):
        raise InvalidStateError(f'Transición de estado no permitida para la orden #{target.id}')


@event.listens_for(OrderLine, 'before_update')
def _guard_order_line_immutability(mapper, connection, target):
    raise InvalidStateError(f'La línea de orden #{target.id} es inmutable')
