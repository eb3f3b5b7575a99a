"""
Rule engine - discount computation for cart lines.

Pure functions over combos, the cart and the clock: no session, no I/O,
safe to call from any thread.

Discount classes:
- simple: first active rule assigned to the combo (declaration order),
  then the first active order-wide rule
- quantity: every `required_quantity` units, `discounted_quantity` units
  are discounted (blended unit price)
- cross-promotion: a trigger combo present in the cart unlocks a discount
  on every line of the target combo

The highest percentage across classes wins. Ties keep the class computed
first (simple, order-wide, quantity, cross-promotion).
"""
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from app.exceptions import ValidationError
from app.models import DiscountKind, DiscountScope, TemporalType
from app.services.cart import Catalog, PricedLine

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class AppliedDiscount:
    percentage: Decimal
    rule: object


@dataclass(frozen=True)
class DiscountOutcome:
    """
    Priced line and the discount that produced it, if any.

    line_total is the exact line amount; final_unit_price is its per-unit
    value rounded to cents. Order totals are built from line_total.
    """

    final_unit_price: Decimal
    applied_discount: Optional[AppliedDiscount] = None
    line_total: Decimal = Decimal('0')

    @property
    def percentage(self) -> Decimal:
        return self.applied_discount.percentage if self.applied_discount else Decimal('0')


def money(value) -> Decimal:
    """Round to cents (half up)."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def weekday_of(moment: datetime) -> int:
    """Weekday with Sunday = 0 .. Saturday = 6."""
    return moment.isoweekday() % 7


def _hhmm(value: str) -> str:
    try:
        return datetime.strptime(value.strip(), '%H:%M').strftime('%H:%M')
    except (AttributeError, ValueError):
        raise ValidationError(f'Horario inválido: "{value}". Use el formato HH:MM')


def is_rule_active(rule, now: datetime) -> bool:
    """True when `now` satisfies the rule's weekday/date condition and time range."""
    if rule.temporal_type == TemporalType.WEEKDAY:
        if str(rule.temporal_value).strip() != str(weekday_of(now)):
            return False
    elif rule.temporal_type == TemporalType.DATE:
        if str(rule.temporal_value).strip() != now.date().isoformat():
            return False

    # Time range is inclusive on both ends, at minute resolution
    current = now.strftime('%H:%M')
    if rule.time_start and current < _hhmm(rule.time_start):
        return False
    if rule.time_end and current > _hhmm(rule.time_end):
        return False
    return True


def checked_percentage(rule) -> Decimal:
    """Rule percentage as Decimal; anything outside (0, 100] is rejected."""
    try:
        percentage = Decimal(str(rule.percentage))
    except (InvalidOperation, TypeError, ValueError):
        percentage = None
    if percentage is None or not percentage.is_finite() or percentage <= 0 or percentage > HUNDRED:
        raise ValidationError(
            f'El porcentaje de la regla #{rule.id} debe estar entre 0 (excluido) y 100',
            [f'percentage={rule.percentage}']
        )
    return percentage


def discounted_price(unit_price, percentage) -> Decimal:
    return Decimal(unit_price) * (1 - Decimal(percentage) / HUNDRED)


def line_outcome(line_item: PricedLine, discounted_units: int = 0,
                 applied: Optional[AppliedDiscount] = None) -> DiscountOutcome:
    """Outcome of a line where `discounted_units` of its units get the applied percentage."""
    unit_price = Decimal(line_item.unit_price)
    total = line_item.quantity * unit_price
    if applied is not None and discounted_units:
        total = (line_item.quantity - discounted_units) * unit_price \
            + discounted_units * discounted_price(unit_price, applied.percentage)
    return DiscountOutcome(money(total / line_item.quantity), applied, total)


def simple_discount_for(combo, now: datetime) -> Optional[AppliedDiscount]:
    """First active simple rule of the combo, in declaration order."""
    for rule in combo.discount_rules:
        if rule.kind != DiscountKind.SIMPLE:
            continue
        if is_rule_active(rule, now):
            return AppliedDiscount(checked_percentage(rule), rule)
    return None


def order_discount_for(rules: Sequence, now: datetime) -> Optional[AppliedDiscount]:
    """First active simple rule scoped to the whole order."""
    for rule in rules:
        if rule.kind != DiscountKind.SIMPLE or rule.applies_to != DiscountScope.ORDER:
            continue
        if is_rule_active(rule, now):
            return AppliedDiscount(checked_percentage(rule), rule)
    return None


def quantity_discount(line_item: PricedLine, combo, now: datetime) -> Optional[DiscountOutcome]:
    """
    Apply the first active quantity rule of the combo to the line.

    groups = quantity // required_quantity and groups * discounted_quantity
    units get the percentage; the line keeps a single blended unit price.
    """
    for rule in combo.discount_rules:
        if rule.kind != DiscountKind.QUANTITY or not is_rule_active(rule, now):
            continue

        percentage = checked_percentage(rule)
        required = rule.required_quantity or 0
        per_group = rule.discounted_quantity or 0
        if required < 1 or per_group < 1:
            raise ValidationError(
                f'La regla por cantidad #{rule.id} requiere cantidades mayores a 0',
                [f'required_quantity={rule.required_quantity}', f'discounted_quantity={rule.discounted_quantity}']
            )

        groups = line_item.quantity // required
        discounted_units = min(groups * per_group, line_item.quantity)
        if discounted_units == 0:
            return None

        return line_outcome(line_item, discounted_units, AppliedDiscount(percentage, rule))
    return None


def _two_for_one(lines: Sequence[PricedLine], rule, percentage: Decimal) -> Dict[int, DiscountOutcome]:
    """One unit out of every pair of the combo is discounted: the cheaper one."""
    units = [
        (Decimal(line.unit_price), index)
        for index, line in enumerate(lines)
        if line.combo_id == rule.target_combo_id
        for _ in range(line.quantity)
    ]
    units.sort(key=lambda unit: unit[0], reverse=True)
    discounted = Counter(index for _, index in units[1::2])

    return {
        index: line_outcome(lines[index], count, AppliedDiscount(percentage, rule))
        for index, count in discounted.items()
    }


def cross_promotion_discount(cart: Sequence[PricedLine], catalog: Catalog, now: datetime) -> Dict[int, DiscountOutcome]:
    """
    Cross-promotion outcomes keyed by cart position.

    Several rules hitting the same line merge keep-best: a rule replaces
    what the line carries only with a strictly higher percentage.
    """
    combo_counts = defaultdict(int)
    for line in cart:
        if line.combo is not None:
            combo_counts[line.combo_id] += line.quantity

    best: Dict[int, DiscountOutcome] = {}
    for rule in catalog.rules:
        if rule.kind != DiscountKind.CROSS_PROMOTION:
            continue
        if not rule.trigger_combo_id or not rule.target_combo_id:
            continue
        if combo_counts.get(rule.trigger_combo_id, 0) == 0:
            continue
        if not is_rule_active(rule, now):
            continue
        if rule.applies_to == DiscountScope.COMBOS and rule.combo_ids and rule.target_combo_id not in rule.combo_ids:
            continue

        percentage = checked_percentage(rule)
        if rule.trigger_combo_id == rule.target_combo_id:
            outcomes = _two_for_one(cart, rule, percentage)
        else:
            outcomes = {
                index: line_outcome(line, line.quantity, AppliedDiscount(percentage, rule))
                for index, line in enumerate(cart)
                if line.combo_id == rule.target_combo_id
            }

        for index, outcome in outcomes.items():
            current = best.get(index)
            if current is None or outcome.percentage > current.percentage:
                best[index] = outcome

    return best


def _best_of(line_item: PricedLine, catalog: Catalog, now: datetime,
             cross: Optional[DiscountOutcome]) -> DiscountOutcome:
    no_discount = line_outcome(line_item)
    combo = line_item.combo
    if combo is None:
        return no_discount

    candidates: List[DiscountOutcome] = []
    for applied in (simple_discount_for(combo, now), order_discount_for(catalog.rules, now)):
        if applied is not None:
            candidates.append(line_outcome(line_item, line_item.quantity, applied))

    by_quantity = quantity_discount(line_item, combo, now)
    if by_quantity is not None:
        candidates.append(by_quantity)
    if cross is not None:
        candidates.append(cross)

    best = None
    for candidate in candidates:
        if best is None or candidate.percentage > best.percentage:
            best = candidate

    if best is None:
        return no_discount

    logger.debug(
        f"Discount for combo {combo.id}: {best.percentage}% "
        f"(rule {best.applied_discount.rule.id}, {best.applied_discount.rule.kind.value})"
    )
    return best


def resolve_best_discount(line_item: PricedLine, cart: Sequence[PricedLine], catalog: Catalog,
                          now: datetime) -> DiscountOutcome:
    """
    Best discount for one line, given the whole cart.

    A line not yet in `cart` is priced as if it were appended to it.
    """
    lines = list(cart)
    position = next((index for index, line in enumerate(lines) if line is line_item), None)
    if position is None:
        lines.append(line_item)
        position = len(lines) - 1

    cross = cross_promotion_discount(lines, catalog, now).get(position)
    return _best_of(line_item, catalog, now, cross)


def price_lines(lines: Sequence[PricedLine], catalog: Catalog, now: datetime) -> List[DiscountOutcome]:
    """Resolve every line of a cart at once (cross-promotions computed a single time)."""
    cross = cross_promotion_discount(lines, catalog, now)
    return [_best_of(line, catalog, now, cross.get(index)) for index, line in enumerate(lines)]
