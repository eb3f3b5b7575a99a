"""
Discount rule authoring - validation, creation and combo assignment.

The rule engine trusts what is stored; everything that reaches the
discount_rule table goes through validate_discount_rule first.
"""
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import DomainError, NotFoundError, ValidationError
from app.models import (
    Combo, ComboDiscountRule, DiscountKind, DiscountRule, DiscountScope, TemporalType
)

logger = logging.getLogger(__name__)

_HHMM = re.compile(r'^\d{2}:\d{2}$')
_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def _valid_hhmm(value) -> bool:
    if not isinstance(value, str) or not _HHMM.match(value):
        return False
    try:
        datetime.strptime(value, '%H:%M')
    except ValueError:
        return False
    return True


def validate_discount_rule(rule, combo_ids: Optional[Iterable[int]] = None) -> List[str]:
    """
    Violations in a discount rule (empty list = valid).

    Args:
        rule: DiscountRule (persisted or not)
        combo_ids: combos the rule will be assigned to; defaults to the
            rule's current assignments
    """
    errors = []
    combo_ids = set(combo_ids) if combo_ids is not None else rule.combo_ids

    try:
        percentage = Decimal(str(rule.percentage))
    except (InvalidOperation, TypeError, ValueError):
        percentage = None
    if percentage is None or not percentage.is_finite() or percentage <= 0 or percentage > 100:
        errors.append('El porcentaje debe ser mayor a 0 y como máximo 100')

    if rule.applies_to == DiscountScope.COMBOS and not combo_ids:
        errors.append('Cuando el descuento aplica a combos específicos, debe seleccionar al menos un combo')

    value = str(rule.temporal_value or '').strip()
    if rule.temporal_type is None:
        errors.append('Debe especificar el tipo temporal (weekday o date)')
    elif not value:
        errors.append('Debe especificar el valor temporal (día de semana 0-6 o fecha YYYY-MM-DD)')
    elif rule.temporal_type == TemporalType.WEEKDAY:
        if not value.isdigit() or not 0 <= int(value) <= 6:
            errors.append('El día de semana debe ser un número entre 0 (Domingo) y 6 (Sábado)')
    elif rule.temporal_type == TemporalType.DATE:
        try:
            if not _ISO_DATE.match(value):
                raise ValueError(value)
            datetime.strptime(value, '%Y-%m-%d')
        except ValueError:
            errors.append('La fecha debe tener el formato YYYY-MM-DD')

    if rule.time_start or rule.time_end:
        if not (rule.time_start and rule.time_end):
            errors.append('El rango horario requiere hora de inicio y de fin')
        elif not (_valid_hhmm(rule.time_start) and _valid_hhmm(rule.time_end)):
            errors.append('El horario debe tener el formato HH:MM')
        elif rule.time_start > rule.time_end:
            errors.append('La hora de inicio no puede ser posterior a la hora de fin')

    if rule.kind == DiscountKind.QUANTITY:
        if not rule.required_quantity or rule.required_quantity < 1:
            errors.append('La cantidad requerida debe ser al menos 1')
        if not rule.discounted_quantity or rule.discounted_quantity < 1:
            errors.append('La cantidad con descuento debe ser al menos 1')

    if rule.kind == DiscountKind.CROSS_PROMOTION:
        # trigger == target is allowed: "2x1" on the same combo
        if not rule.trigger_combo_id or not rule.target_combo_id:
            errors.append('El descuento por promoción cruzada requiere combo disparador y combo destino')

    return errors


def _enum(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f'Valor inválido: "{value}"', [f'{enum_cls.__name__}={value!r}'])


def create_discount_rule(session: Session, combo_ids: Optional[Iterable[int]] = None, **fields) -> DiscountRule:
    """
    Validate and persist a discount rule, assigned to `combo_ids` in the given order.

    Raises:
        ValidationError: the rule is malformed
        NotFoundError: one of the combos does not exist
    """
    combo_ids = list(dict.fromkeys(combo_ids or []))
    try:
        for key, enum_cls in (('kind', DiscountKind), ('temporal_type', TemporalType),
                              ('applies_to', DiscountScope)):
            if key in fields:
                fields[key] = _enum(enum_cls, fields[key])
        fields.setdefault('kind', DiscountKind.SIMPLE)
        fields.setdefault('applies_to', DiscountScope.COMBOS)

        rule = DiscountRule(**fields)
        errors = validate_discount_rule(rule, combo_ids)
        if errors:
            raise ValidationError('El descuento no es válido', errors)

        combos = []
        for combo_id in combo_ids:
            combo = session.get(Combo, combo_id)
            if combo is None:
                raise NotFoundError(f'Combo con id {combo_id} no encontrado', {'combo_id': combo_id})
            combos.append(combo)

        session.add(rule)
        session.flush()
        for combo in combos:
            combo.discount_rules.append(rule)
        session.commit()
        logger.info(f"Discount rule {rule.id} created ({rule.kind.value}, {rule.percentage}%)")
        return rule
    except DomainError:
        session.rollback()
        raise


def assign_discount_to_combo(session: Session, rule_id: int, combo_id: int) -> ComboDiscountRule:
    """
    Assign a rule to a combo after its existing rules. Assigning twice is a no-op.

    Raises:
        NotFoundError: unknown rule or combo
    """
    try:
        rule = session.get(DiscountRule, rule_id)
        if rule is None:
            raise NotFoundError(f'Descuento con id {rule_id} no encontrado', {'rule_id': rule_id})
        combo = session.get(Combo, combo_id)
        if combo is None:
            raise NotFoundError(f'Combo con id {combo_id} no encontrado', {'combo_id': combo_id})

        existing = session.execute(
            select(ComboDiscountRule).where(
                ComboDiscountRule.combo_id == combo_id,
                ComboDiscountRule.discount_rule_id == rule_id
            )
        ).scalar_one_or_none()
        if existing is not None:
            return existing

        combo.discount_rules.append(rule)
        session.commit()
        return combo.rule_links[-1]
    except DomainError:
        session.rollback()
        raise
