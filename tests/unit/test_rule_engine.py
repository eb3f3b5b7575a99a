"""
Unit tests for the rule engine (pure pricing, no database).
"""

import pytest
from datetime import datetime
from decimal import Decimal

from app.exceptions import ValidationError
from app.models import Combo, DiscountKind, DiscountRule, DiscountScope, InventoryItem, TemporalType
from app.services.cart import Catalog, PricedLine
from app.services.rule_engine import (
    cross_promotion_discount, is_rule_active, line_outcome, price_lines,
    resolve_best_discount, weekday_of
)

WEDNESDAY_1PM = datetime(2026, 10, 14, 13, 0)


def make_rule(rule_id, kind=DiscountKind.SIMPLE, percentage='10', **fields):
    fields.setdefault('temporal_type', TemporalType.WEEKDAY)
    fields.setdefault('temporal_value', '3')
    fields.setdefault('applies_to', DiscountScope.COMBOS)
    return DiscountRule(id=rule_id, name=f'rule-{rule_id}', kind=kind, percentage=Decimal(percentage), **fields)


def make_combo(combo_id, price='200.00', rules=()):
    combo = Combo(id=combo_id, name=f'combo-{combo_id}', base_price=Decimal(price))
    for rule in rules:
        combo.discount_rules.append(rule)
    return combo


def line(combo, quantity=1):
    return PricedLine(quantity=quantity, unit_price=combo.base_price, combo=combo)


class TestRuleActivation:
    """Tests for weekday/date/time windows."""

    def test_weekday_uses_sunday_as_zero(self):
        assert weekday_of(datetime(2026, 10, 18, 12, 0)) == 0  # Sunday
        assert weekday_of(WEDNESDAY_1PM) == 3
        assert weekday_of(datetime(2026, 10, 17, 12, 0)) == 6  # Saturday

    def test_weekday_rule(self):
        assert is_rule_active(make_rule(1, temporal_value='3'), WEDNESDAY_1PM)
        assert not is_rule_active(make_rule(1, temporal_value='4'), WEDNESDAY_1PM)

    def test_date_rule(self):
        rule = make_rule(1, temporal_type=TemporalType.DATE, temporal_value='2026-10-14')
        assert is_rule_active(rule, WEDNESDAY_1PM)
        assert not is_rule_active(rule, datetime(2026, 10, 15, 13, 0))

    def test_time_range_is_inclusive(self):
        rule = make_rule(1, time_start='12:00', time_end='13:00')
        assert is_rule_active(rule, datetime(2026, 10, 14, 12, 0))
        assert is_rule_active(rule, datetime(2026, 10, 14, 13, 0))
        assert is_rule_active(rule, datetime(2026, 10, 14, 13, 0, 59))
        assert not is_rule_active(rule, datetime(2026, 10, 14, 11, 59))
        assert not is_rule_active(rule, datetime(2026, 10, 14, 13, 1))

    def test_malformed_time_is_rejected(self):
        rule = make_rule(1, time_start='noon', time_end='13:00')
        with pytest.raises(ValidationError):
            is_rule_active(rule, WEDNESDAY_1PM)


class TestSimpleDiscounts:
    """Tests for combo-assigned and order-wide simple rules."""

    def test_simple_rule_applies(self):
        combo = make_combo(1, rules=[make_rule(10, percentage='10')])
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(combos={1: combo}), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('180.00')
        assert outcome.percentage == Decimal('10')
        assert outcome.applied_discount.rule.id == 10

    def test_first_active_simple_rule_in_declaration_order(self):
        inactive = make_rule(10, percentage='50', temporal_value='5')
        first = make_rule(11, percentage='15')
        second = make_rule(12, percentage='25')
        combo = make_combo(1, rules=[inactive, first, second])
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        assert outcome.applied_discount.rule.id == 11
        assert outcome.final_unit_price == Decimal('170.00')

    def test_order_wide_rule_applies_to_combo_lines(self):
        order_rule = make_rule(20, percentage='5', applies_to=DiscountScope.ORDER)
        combo = make_combo(1)
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[order_rule]), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('190.00')
        assert outcome.applied_discount.rule is order_rule

    def test_inactive_rule_means_no_discount(self):
        combo = make_combo(1, rules=[make_rule(10, temporal_value='0')])
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('200.00')
        assert outcome.applied_discount is None

    def test_standalone_items_are_never_discounted(self):
        item = InventoryItem(id=5, name='Cola', unit_price=Decimal('30.00'))
        order_rule = make_rule(20, percentage='50', applies_to=DiscountScope.ORDER)
        standalone = PricedLine(quantity=2, unit_price=item.unit_price, item=item)

        outcome = resolve_best_discount(standalone, [standalone], Catalog(rules=[order_rule]), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('30.00')
        assert outcome.applied_discount is None

    @pytest.mark.parametrize('percentage', ['0', '-5', '100.01'])
    def test_out_of_range_percentage_is_rejected(self, percentage):
        combo = make_combo(1, rules=[make_rule(10, percentage=percentage)])
        cart = [line(combo)]

        with pytest.raises(ValidationError):
            resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

    def test_full_discount_is_allowed(self):
        combo = make_combo(1, rules=[make_rule(10, percentage='100')])
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('0.00')


class TestQuantityDiscounts:
    """Tests for 'every N units, M discounted' rules."""

    def test_blended_price_over_discounted_units(self):
        rule = make_rule(30, kind=DiscountKind.QUANTITY, percentage='50', required_quantity=2, discounted_quantity=1)
        combo = make_combo(1, price='100.00', rules=[rule])
        cart = [line(combo, quantity=5)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        # (3 * 100 + 2 * 50) / 5
        assert outcome.final_unit_price == Decimal('80.00')
        assert outcome.applied_discount.rule is rule

    def test_below_required_quantity(self):
        rule = make_rule(30, kind=DiscountKind.QUANTITY, percentage='50', required_quantity=3, discounted_quantity=1)
        combo = make_combo(1, price='100.00', rules=[rule])
        cart = [line(combo, quantity=2)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('100.00')

    def test_invalid_quantities_are_rejected(self):
        rule = make_rule(30, kind=DiscountKind.QUANTITY, percentage='50', required_quantity=0, discounted_quantity=1)
        combo = make_combo(1, rules=[rule])
        cart = [line(combo, quantity=4)]

        with pytest.raises(ValidationError):
            resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

    def test_line_total_stays_exact(self):
        rule = make_rule(30, kind=DiscountKind.QUANTITY, percentage='50', required_quantity=2, discounted_quantity=1)
        combo = make_combo(1, price='250.00', rules=[rule])
        cart = [line(combo, quantity=3)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        # 2 * 250 + 1 * 125; the rounded unit price would give 624.99
        assert outcome.final_unit_price == Decimal('208.33')
        assert outcome.line_total == Decimal('625')

    def test_line_outcome_without_discount(self):
        outcome = line_outcome(line(make_combo(1, price='0.05'), quantity=2), discounted_units=1)

        assert outcome.final_unit_price == Decimal('0.05')
        assert outcome.line_total == Decimal('0.10')
        assert outcome.applied_discount is None


class TestCrossPromotions:
    """Tests for trigger/target promotions, including 2x1."""

    def test_trigger_unlocks_target_discount(self):
        trigger = make_combo(1, price='200.00')
        target = make_combo(2, price='100.00')
        rule = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        catalog = Catalog(combos={1: trigger, 2: target}, rules=[rule])
        cart = [line(trigger), line(target)]

        outcome = resolve_best_discount(cart[1], cart, catalog, WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('80.00')
        assert outcome.applied_discount.rule is rule

    def test_no_trigger_no_discount(self):
        target = make_combo(2, price='100.00')
        rule = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        cart = [line(target)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('100.00')

    def test_trigger_line_itself_is_not_discounted(self):
        trigger = make_combo(1, price='200.00')
        target = make_combo(2, price='100.00')
        rule = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        cart = [line(trigger), line(target)]

        outcomes = price_lines(cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        assert outcomes[0].final_unit_price == Decimal('200.00')
        assert outcomes[1].final_unit_price == Decimal('80.00')

    def test_line_not_yet_in_cart_sees_the_trigger(self):
        trigger = make_combo(1, price='200.00')
        target = make_combo(2, price='100.00')
        rule = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        cart = [line(trigger)]

        outcome = resolve_best_discount(line(target), cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('80.00')

    def test_combo_scoped_rule_requires_target_assignment(self):
        trigger = make_combo(1, price='200.00')
        target = make_combo(2, price='100.00')
        other = make_combo(3)
        rule = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                         trigger_combo_id=1, target_combo_id=2)
        other.discount_rules.append(rule)
        cart = [line(trigger), line(target)]

        assert cross_promotion_discount(cart, Catalog(rules=[rule]), WEDNESDAY_1PM) == {}

    def test_keep_best_across_cross_rules(self):
        trigger = make_combo(1, price='200.00')
        target = make_combo(2, price='100.00')
        low = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='10',
                        applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        high = make_rule(41, kind=DiscountKind.CROSS_PROMOTION, percentage='30',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=2)
        cart = [line(trigger), line(target)]

        outcomes = cross_promotion_discount(cart, Catalog(rules=[low, high]), WEDNESDAY_1PM)

        assert outcomes[1].applied_discount.rule is high
        assert outcomes[1].final_unit_price == Decimal('70.00')

    def test_two_for_one_discounts_one_unit_per_pair(self):
        combo = make_combo(1, price='200.00')
        rule = make_rule(50, kind=DiscountKind.CROSS_PROMOTION, percentage='100',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=1)
        cart = [line(combo, quantity=3)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        # 3 units: one pair (one free unit) plus one at full price
        assert outcome.final_unit_price == Decimal('133.33')
        assert outcome.line_total == Decimal('400')

    def test_two_for_one_single_unit_gets_nothing(self):
        combo = make_combo(1, price='200.00')
        rule = make_rule(50, kind=DiscountKind.CROSS_PROMOTION, percentage='100',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=1)
        cart = [line(combo)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        assert outcome.final_unit_price == Decimal('200.00')
        assert outcome.applied_discount is None

    def test_two_for_one_pairs_across_lines(self):
        combo = make_combo(1, price='200.00')
        rule = make_rule(50, kind=DiscountKind.CROSS_PROMOTION, percentage='50',
                         applies_to=DiscountScope.ORDER, trigger_combo_id=1, target_combo_id=1)
        cart = [line(combo), line(combo)]

        outcomes = price_lines(cart, Catalog(rules=[rule]), WEDNESDAY_1PM)

        assert outcomes[0].final_unit_price == Decimal('200.00')
        assert outcomes[1].final_unit_price == Decimal('100.00')


class TestBestDiscount:
    """Tests for choosing between discount classes."""

    def test_highest_percentage_wins(self):
        simple = make_rule(10, percentage='10')
        by_quantity = make_rule(30, kind=DiscountKind.QUANTITY, percentage='50',
                                required_quantity=2, discounted_quantity=2)
        combo = make_combo(1, price='100.00', rules=[simple, by_quantity])
        cart = [line(combo, quantity=2)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(), WEDNESDAY_1PM)

        assert outcome.applied_discount.rule is by_quantity
        assert outcome.final_unit_price == Decimal('50.00')

    def test_never_below_any_applicable_rule(self):
        simple = make_rule(10, percentage='35')
        order_rule = make_rule(20, percentage='15', applies_to=DiscountScope.ORDER)
        cross = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='25',
                          applies_to=DiscountScope.ORDER, trigger_combo_id=2, target_combo_id=1)
        combo = make_combo(1, price='100.00', rules=[simple])
        trigger = make_combo(2)
        cart = [line(combo), line(trigger)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[order_rule, cross]), WEDNESDAY_1PM)

        assert outcome.percentage == Decimal('35')
        for pct in (Decimal('15'), Decimal('25'), Decimal('35')):
            assert outcome.percentage >= pct

    def test_tie_keeps_the_first_computed_class(self):
        simple = make_rule(10, percentage='20')
        cross = make_rule(40, kind=DiscountKind.CROSS_PROMOTION, percentage='20',
                          applies_to=DiscountScope.ORDER, trigger_combo_id=2, target_combo_id=1)
        combo = make_combo(1, price='100.00', rules=[simple])
        trigger = make_combo(2)
        cart = [line(combo), line(trigger)]

        outcome = resolve_best_discount(cart[0], cart, Catalog(rules=[cross]), WEDNESDAY_1PM)

        assert outcome.applied_discount.rule is simple
