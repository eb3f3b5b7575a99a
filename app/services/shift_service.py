"""
Shift service - open/close cash-register shifts and derive their totals.

A shift's totals always reflect its completed orders: the finalizer adds
each new order, cancellations trigger a full recount.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.exceptions import DomainError, InvalidStateError, NotFoundError, ValidationError
from app.models import OrderStatus, Shift, ShiftStatus
from app.repositories import OrderStore, ShiftStore
from app.services.rule_engine import money
from app.utils.clock import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShiftTotals:
    total_orders: int
    total_revenue: Decimal


@dataclass(frozen=True)
class ShiftSummary:
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal
    cancelled_revenue: Decimal


def recalculate_shift_totals(orders: Iterable) -> ShiftTotals:
    """Count and revenue over completed orders only."""
    completed = [order for order in orders if order.status == OrderStatus.COMPLETED]
    revenue = sum((Decimal(order.total) for order in completed), Decimal('0'))
    return ShiftTotals(total_orders=len(completed), total_revenue=money(revenue))


def summarize_shift(orders: Iterable) -> ShiftSummary:
    """Completed vs cancelled breakdown for the closing report."""
    orders = list(orders)
    totals = recalculate_shift_totals(orders)
    cancelled = [order for order in orders if order.status == OrderStatus.CANCELLED]
    return ShiftSummary(
        completed_orders=totals.total_orders,
        cancelled_orders=len(cancelled),
        total_revenue=totals.total_revenue,
        cancelled_revenue=money(sum((Decimal(order.total) for order in cancelled), Decimal('0')))
    )


def _cash(value, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'Monto inválido para {field_name}', [f'{field_name}={value!r}'])
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f'El monto de {field_name} no puede ser negativo', [f'{field_name}={value!r}'])
    return money(amount)


def open_shift(session: Session, employee_id: str, employee_name: str = '',
               initial_cash=0, now: Optional[datetime] = None) -> Shift:
    """
    Open a shift for an employee.

    Raises:
        ValidationError: missing employee or negative initial cash
        InvalidStateError: the employee already has an open shift
    """
    shifts = ShiftStore(session)
    try:
        if not employee_id or not str(employee_id).strip():
            raise ValidationError('El empleado es requerido')
        cash = _cash(initial_cash, 'initial_cash')

        current = shifts.get_open_for_employee(employee_id)
        if current is not None:
            raise InvalidStateError(
                f'El empleado ya tiene una jornada abierta (#{current.id})', {'shift_id': current.id}
            )

        shift = shifts.add(Shift(
            employee_id=str(employee_id).strip(),
            employee_name=employee_name or '',
            opened_at=now or Clock().now(),
            status=ShiftStatus.OPEN,
            initial_cash=cash,
            total_orders=0,
            total_revenue=Decimal('0')
        ))
        session.commit()
        logger.info(f"Shift {shift.id} opened for employee {shift.employee_id}")
        return shift
    except DomainError:
        session.rollback()
        raise


def close_shift(session: Session, shift_id: int, actual_cash, now: Optional[datetime] = None) -> Shift:
    """
    Close a shift recording the counted cash and its variance.

    variance = actual_cash - (initial_cash + total_revenue)

    Raises:
        NotFoundError: unknown shift
        InvalidStateError: shift already closed
        ValidationError: negative or malformed cash amount
    """
    shifts = ShiftStore(session)
    try:
        cash = _cash(actual_cash, 'actual_cash')
        shift = shifts.get_by_id(shift_id, for_update=True)
        if shift is None:
            raise NotFoundError(f'Jornada #{shift_id} no encontrada', {'shift_id': shift_id})
        if not shift.is_open:
            raise InvalidStateError(f'La jornada #{shift_id} ya fue cerrada')

        expected = money(shift.expected_cash)
        shifts.update(
            shift,
            status=ShiftStatus.CLOSED,
            closed_at=now or Clock().now(),
            actual_cash=cash,
            variance=money(cash - expected)
        )
        session.commit()
        logger.info(f"Shift {shift.id} closed: expected={expected}, actual={cash}, variance={shift.variance}")
        return shift
    except DomainError:
        session.rollback()
        raise


def recompute_shift(session: Session, shift_id: int) -> Shift:
    """Rebuild a shift's totals from its orders (maintenance command)."""
    shifts = ShiftStore(session)
    try:
        shift = shifts.get_by_id(shift_id, for_update=True)
        if shift is None:
            raise NotFoundError(f'Jornada #{shift_id} no encontrada', {'shift_id': shift_id})
        totals = recalculate_shift_totals(OrderStore(session).list_by_shift_id(shift_id))
        shifts.update(shift, total_orders=totals.total_orders, total_revenue=totals.total_revenue)
        session.commit()
        return shift
    except DomainError:
        session.rollback()
        raise
