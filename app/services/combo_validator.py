"""
Combo validation - structural checks on combo definitions and buyer selections.

Pure functions: every check collects all violations instead of stopping at
the first one, so the cashier (or the admin) sees the complete list.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from app.models import SelectionMode
from app.services.cart import LineupComponent, Selection


@dataclass
class LineupResult:
    """Either a complete lineup or the errors that prevented it, never both."""

    components: List[LineupComponent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def fixed_items(combo) -> list:
    return [item for item in combo.line_items if item.selection_mode == SelectionMode.FIXED]


def choice_groups(combo) -> Dict[str, list]:
    """Declared choice groups with their alternatives, in declaration order."""
    groups = OrderedDict()
    for item in combo.line_items:
        if item.selection_mode == SelectionMode.CHOICE and item.choice_group:
            groups.setdefault(item.choice_group, []).append(item)
    return groups


def requires_selection(combo) -> bool:
    return bool(choice_groups(combo))


def validate_definition(combo) -> List[str]:
    """Violations in the combo's configuration (empty list = valid)."""
    errors = []

    if not combo.line_items:
        errors.append('El combo debe tener al menos un producto')
        return errors

    if any(item.selection_mode is None for item in combo.line_items):
        errors.append('Hay productos sin modo de selección (fixed/choice); ejecute la migración de combos')

    if any(item.selection_mode == SelectionMode.CHOICE and not item.choice_group for item in combo.line_items):
        errors.append('Todos los productos de selección deben tener un grupo de elección (choiceGroup)')

    for group, alternatives in choice_groups(combo).items():
        if len(alternatives) < 2:
            errors.append(f'El grupo de elección "{group}" debe tener al menos 2 opciones')

    for item in combo.line_items:
        if item.quantity is None or item.quantity < 1:
            errors.append(f'La cantidad del producto #{item.product_id} debe ser mayor a 0')

    return errors


def validate_selections(combo, selections: Sequence[Selection]) -> List[str]:
    """
    Violations in the buyer's picks for a combo.

    Exactly one selection per declared choice group, naming one of that
    group's alternatives. Fixed items are included implicitly and must not
    be selected.
    """
    errors = []
    groups = choice_groups(combo)

    for group, alternatives in groups.items():
        picks = [s for s in selections if s.choice_group == group]
        if not picks:
            errors.append(f'Debe seleccionar una opción para "{group}"')
        elif len(picks) > 1:
            errors.append(f'Solo puede seleccionar una opción para "{group}"')
        elif picks[0].product_id not in {item.product_id for item in alternatives}:
            errors.append(f'El producto seleccionado no es válido para el grupo "{group}"')

    fixed_ids = {item.product_id for item in fixed_items(combo)}
    if any(s.product_id in fixed_ids for s in selections):
        errors.append('Los productos fijos se incluyen automáticamente, no deben seleccionarse')

    unknown = sorted({s.choice_group for s in selections if s.choice_group not in groups and s.product_id not in fixed_ids})
    for group in unknown:
        errors.append(f'El grupo de elección "{group}" no existe en el combo')

    return errors


def resolve_final_lineup(combo, selections: Sequence[Selection], inventory_index: Dict[int, object]) -> LineupResult:
    """Fixed items plus the chosen alternatives, resolved against the inventory."""
    errors = validate_selections(combo, selections)
    if errors:
        return LineupResult(errors=errors)

    groups = choice_groups(combo)
    chosen = []
    for selection in selections:
        alternative = next(item for item in groups[selection.choice_group] if item.product_id == selection.product_id)
        chosen.append(alternative)

    components = []
    for line_item in fixed_items(combo) + chosen:
        inventory_item = inventory_index.get(line_item.product_id)
        if inventory_item is None:
            errors.append(f'El producto #{line_item.product_id} no existe en el inventario')
            continue
        components.append(LineupComponent(item=inventory_item, quantity=line_item.quantity))

    if errors:
        return LineupResult(errors=errors)
    return LineupResult(components=components)
