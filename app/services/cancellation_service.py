"""
Order cancellation.

Cancelling flips a completed order to cancelled and recounts its shift
from scratch. Stock is not restored: the food was already prepared.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.exceptions import DomainError, InvalidStateError, NotFoundError, ValidationError
from app.metrics import orders_cancelled_total
from app.models import Order, OrderStatus
from app.repositories import OrderStore, ShiftStore
from app.services.shift_service import recalculate_shift_totals
from app.utils.clock import Clock

logger = logging.getLogger(__name__)


class CancellationManager:

    def __init__(self, session: Session, orders: Optional[OrderStore] = None,
                 shifts: Optional[ShiftStore] = None, clock: Optional[Clock] = None,
                 max_reason_length: int = 500):
        self.session = session
        self.orders = orders or OrderStore(session)
        self.shifts = shifts or ShiftStore(session)
        self.clock = clock or Clock()
        self.max_reason_length = max_reason_length

    def cancel(self, order_id: int, reason: Optional[str] = None) -> Order:
        """
        Cancel a completed order.

        Raises:
            ValidationError: blank or too long reason
            NotFoundError: unknown order
            InvalidStateError: order is not completed
        """
        reason = self._checked_reason(reason)

        try:
            order = self.orders.get_by_id(order_id, for_update=True)
            if order is None:
                raise NotFoundError(f'Orden #{order_id} no encontrada', {'order_id': order_id})
            if not order.is_completed:
                raise InvalidStateError(
                    f'Solo se pueden cancelar órdenes completadas (orden #{order_id}: {order.status.value})'
                )

            order.status = OrderStatus.CANCELLED
            order.cancelled_at = self.clock.now()
            order.cancellation_reason = reason
            self.session.flush()

            if order.shift_id is not None:
                shift = self.shifts.get_by_id(order.shift_id, for_update=True)
                if shift is not None:
                    totals = recalculate_shift_totals(self.orders.list_by_shift_id(shift.id))
                    self.shifts.update(shift, total_orders=totals.total_orders, total_revenue=totals.total_revenue)

            self.session.commit()
        except DomainError:
            self.session.rollback()
            raise
        except Exception:
            self.session.rollback()
            logger.exception(f"Unexpected error cancelling order {order_id}")
            raise

        orders_cancelled_total.inc()
        logger.info(f"Order {order.id} cancelled (shift {order.shift_id})")
        return order

    def _checked_reason(self, reason: Optional[str]) -> Optional[str]:
        if reason is None or reason == '':
            return None
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError('El motivo de cancelación no puede estar vacío')
        if len(reason) > self.max_reason_length:
            raise ValidationError(
                f'El motivo de cancelación no puede superar {self.max_reason_length} caracteres',
                [f'length={len(reason)}']
            )
        return reason.strip()
