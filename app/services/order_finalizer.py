"""
Order finalization - turns a priced cart into a committed order.

One transaction: validate the cart, price every line, reserve stock,
insert the order and bump the shift totals. Any failure rolls back all of
it; there is never an order without its stock movement or vice versa.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.exceptions import (
    DomainError, EmptyCartError, NoActiveShiftError, NotFoundError, ValidationError
)
from app.metrics import checkout_duration_seconds, orders_finalized_total
from app.models import Order, OrderLine, OrderStatus
from app.repositories import InventoryStore, OrderStore, ShiftStore
from app.services import combo_validator
from app.services.cart import Cart, CartLine, Catalog, PricedLine
from app.services.catalog_service import load_catalog
from app.services.rule_engine import money, price_lines
from app.services.stock_ledger import StockLedger
from app.utils.clock import Clock

logger = logging.getLogger(__name__)


class OrderFinalizer:

    def __init__(self, session: Session, inventory: Optional[InventoryStore] = None,
                 orders: Optional[OrderStore] = None, shifts: Optional[ShiftStore] = None,
                 catalog_loader: Callable[..., Catalog] = load_catalog,
                 clock: Optional[Clock] = None, max_retries: int = 3):
        self.session = session
        self.inventory = inventory or InventoryStore(session)
        self.orders = orders or OrderStore(session)
        self.shifts = shifts or ShiftStore(session)
        self.catalog_loader = catalog_loader
        self.clock = clock or Clock()
        self.ledger = StockLedger(self.inventory, max_retries=max_retries)

    def execute(self, cart: Cart, shift_id: Optional[int], now: Optional[datetime] = None) -> Order:
        """
        Finalize the cart as a completed order of the given shift.

        Raises:
            EmptyCartError, NoActiveShiftError, NotFoundError, ValidationError,
            InsufficientStockError, ConflictError
        """
        if cart is None or cart.is_empty():
            raise EmptyCartError()
        now = now or self.clock.now()

        try:
            with checkout_duration_seconds.time():
                order = self._finalize(cart, shift_id, now)
            self.session.commit()
        except DomainError as e:
            self.session.rollback()
            logger.info(f"Order rejected for shift {shift_id}: {e.message}")
            raise
        except Exception:
            self.session.rollback()
            logger.exception(f"Unexpected error finalizing order for shift {shift_id}")
            raise

        orders_finalized_total.labels(delivery_type=order.delivery_type.value).inc()
        logger.info(f"Order {order.id} finalized: total={order.total}, shift={shift_id}")
        return order

    def _finalize(self, cart: Cart, shift_id: Optional[int], now: datetime) -> Order:
        if not shift_id:
            raise NoActiveShiftError()
        shift = self.shifts.get_by_id(shift_id)
        if shift is None:
            raise NotFoundError(f'Jornada #{shift_id} no encontrada', {'shift_id': shift_id})
        if not shift.is_open:
            raise NoActiveShiftError()

        catalog = self.catalog_loader(
            self.session,
            combo_ids={line.combo_id for line in cart.lines if line.is_combo},
            product_ids={line.product_id for line in cart.lines if not line.is_combo and line.product_id}
        )
        priced = [self._resolve_line(line, catalog) for line in cart.lines]
        outcomes = price_lines(priced, catalog, now)

        self.ledger.reserve(self._stock_requirements(priced))

        order_lines = []
        subtotal = Decimal('0')
        total = Decimal('0')
        for line, outcome in zip(priced, outcomes):
            applied = outcome.applied_discount
            order_line = OrderLine(
                combo_id=line.combo_id,
                product_id=line.item.id if line.item is not None else None,
                quantity=line.quantity,
                unit_price=money(line.unit_price),
                final_unit_price=outcome.final_unit_price,
                discount_percentage=applied.percentage if applied else None,
                discount_rule_id=applied.rule.id if applied else None,
                selections=[
                    {'choice_group': s.choice_group, 'product_id': s.product_id}
                    for s in line.selections
                ]
            )
            order_lines.append(order_line)
            subtotal += money(line.unit_price) * line.quantity
            total += outcome.line_total

        # Line amounts stay exact; rounding happens once on the order totals
        subtotal, total = money(subtotal), money(total)
        order = self.orders.insert(Order(
            shift_id=shift.id,
            delivery_type=cart.delivery_type,
            subtotal=subtotal,
            discount_total=subtotal - total,
            total=total,
            status=OrderStatus.COMPLETED,
            created_at=now,
            lines=order_lines
        ))

        if not self.shifts.increment_totals(shift.id, order.total):
            # Closed between the check above and now
            raise NoActiveShiftError()
        return order

    def _resolve_line(self, line: CartLine, catalog: Catalog) -> PricedLine:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            raise ValidationError('La cantidad debe ser un entero mayor a 0', [f'quantity={line.quantity!r}'])

        if not line.is_combo:
            item = catalog.inventory.get(line.product_id)
            if item is None:
                raise NotFoundError(f'Producto #{line.product_id} no encontrado', {'product_id': line.product_id})
            return PricedLine(quantity=line.quantity, unit_price=item.unit_price, item=item)

        combo = catalog.combos.get(line.combo_id)
        if combo is None:
            raise NotFoundError(f'Combo #{line.combo_id} no encontrado', {'combo_id': line.combo_id})

        errors = combo_validator.validate_definition(combo)
        if errors:
            raise ValidationError(f'El combo "{combo.name}" no está configurado correctamente', errors)

        lineup = combo_validator.resolve_final_lineup(combo, line.selections, catalog.inventory)
        if not lineup.is_valid:
            raise ValidationError(f'Selección inválida para el combo "{combo.name}"', lineup.errors)

        return PricedLine(
            quantity=line.quantity,
            unit_price=combo.base_price,
            combo=combo,
            selections=list(line.selections),
            components=lineup.components
        )

    @staticmethod
    def _stock_requirements(priced: List[PricedLine]) -> "OrderedDict[int, int]":
        requirements = OrderedDict()
        for line in priced:
            if line.combo is None:
                requirements[line.item.id] = requirements.get(line.item.id, 0) + line.quantity
                continue
            for component in line.components:
                units = component.quantity * line.quantity
                requirements[component.item.id] = requirements.get(component.item.id, 0) + units
        return requirements
