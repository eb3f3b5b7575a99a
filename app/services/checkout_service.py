"""
Checkout entry points used by the POS terminals.

Thin wrappers that wire the stores, the clock and the configured limits
into the pricing, validation, finalization and cancellation components.
"""
from datetime import datetime
from typing import List, Optional, Sequence

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from app.models import Order
from app.services import combo_validator
from app.services.cancellation_service import CancellationManager
from app.services.cart import Cart, Catalog, PricedLine, Selection
from app.services.order_finalizer import OrderFinalizer
from app.services.rule_engine import DiscountOutcome, resolve_best_discount
from app.utils.clock import Clock, clock_from_config


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _clock() -> Clock:
    if has_app_context():
        return clock_from_config(current_app.config)
    return Clock()


def compute_discount(line_item: PricedLine, cart: Sequence[PricedLine], catalog: Catalog,
                     now: datetime) -> DiscountOutcome:
    """Best discount for a line in the context of the whole cart."""
    return resolve_best_discount(line_item, cart, catalog, now)


def validate_combo(definition) -> List[str]:
    return combo_validator.validate_definition(definition)


def validate_selections(definition, selections: Sequence[Selection]) -> List[str]:
    return combo_validator.validate_selections(definition, selections)


def finalize_order(cart: Cart, shift_id: Optional[int], session: Session,
                   now: Optional[datetime] = None) -> Order:
    """Commit the cart as a completed order (raises DomainError subclasses)."""
    finalizer = OrderFinalizer(
        session,
        clock=_clock(),
        max_retries=_setting('STOCK_RESERVE_MAX_RETRIES', 3)
    )
    return finalizer.execute(cart, shift_id, now=now)


def cancel_order(order_id: int, session: Session, reason: Optional[str] = None) -> Order:
    """Cancel a completed order and recount its shift (raises DomainError subclasses)."""
    manager = CancellationManager(
        session,
        clock=_clock(),
        max_reason_length=_setting('CANCEL_REASON_MAX_LENGTH', 500)
    )
    return manager.cancel(order_id, reason)
