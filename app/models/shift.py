"""Shift model."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, event, inspect
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, ID_TYPE
from app.exceptions import InvalidStateError
import enum


class ShiftStatus(enum.Enum):
    """Shift status enum."""
    OPEN = "open"
    CLOSED = "closed"


class Shift(Base):
    """
    Shift (jornada de caja).

    total_orders / total_revenue are derived from completed orders only:
    incremented on finalize, recomputed from scratch on cancellation.
    actual_cash / variance are written once, at close.
    """

    __tablename__ = 'shift'

    id = Column(ID_TYPE, primary_key=True, autoincrement=True)
    employee_id = Column(String(64), nullable=False, index=True)
    employee_name = Column(String(200), nullable=False, default='')
    opened_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(Enum(ShiftStatus, name='shift_status'), nullable=False, default=ShiftStatus.OPEN)
    initial_cash = Column(Numeric(10, 2), nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(10, 2), nullable=False, default=0)
    actual_cash = Column(Numeric(10, 2), nullable=True)
    variance = Column(Numeric(10, 2), nullable=True)

    # Relationships
    orders = relationship('Order', back_populates='shift')

    @property
    def is_open(self):
        return self.status == ShiftStatus.OPEN

    @property
    def expected_cash(self):
        """Initial cash plus the revenue of completed orders."""
        return (self.initial_cash or 0) + (self.total_revenue or 0)

    def __repr__(self):
        return f"<Shift(id={self.id}, employee_id='{self.employee_id}', status={self.status.value})>"


@event.listens_for(Shift, 'before_update')
def _guard_cash_reconciliation(mapper, connection, target):
    """Reconciliation fields are immutable once the shift is closed."""
    state = inspect(target)
    for key in ('actual_cash', 'variance', 'closed_at'):
        history = state.attrs[key].history
        if history.has_changes() and history.deleted and history.deleted[0] is not None:
            raise InvalidStateError(f'La jornada #{target.id} ya fue cerrada')
