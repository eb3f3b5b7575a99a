"""
Legacy combo migration.

Combos created before choice groups existed have line items without a
selection mode; the checkout refuses them until they are migrated. The
plan marks a component fixed when it is the only one of its inventory
kind in the combo, otherwise it becomes an alternative of the kind's group.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models import Combo, ComboLineItem, InventoryKind, SelectionMode

logger = logging.getLogger(__name__)

GROUP_NAMES = {
    InventoryKind.PRODUCT: 'principal',
    InventoryKind.DRINK: 'bebida',
    InventoryKind.SIDE: 'guarnicion',
}


@dataclass
class MigrationReport:
    migrated: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    dry_run: bool = False


def needs_migration(combo) -> bool:
    return any(item.selection_mode is None for item in combo.line_items)


def smart_migration_plan(combo, inventory_index: Dict[int, object]) -> Dict[int, Tuple[SelectionMode, Optional[str]]]:
    """
    Proposed (selection_mode, choice_group) per legacy line item id.

    Components whose product is not in the inventory index become fixed.
    Items that already have a selection mode are left out of the plan and
    do not count towards the size of a kind's group.
    """
    kinds = {
        item.id: inventory_index[item.product_id].kind
        for item in combo.line_items
        if item.selection_mode is None and item.product_id in inventory_index
    }
    per_kind = Counter(kinds.values())

    plan = {}
    for item in combo.line_items:
        if item.selection_mode is not None:
            continue
        kind = kinds.get(item.id)
        if kind is None or per_kind[kind] == 1:
            plan[item.id] = (SelectionMode.FIXED, None)
        else:
            plan[item.id] = (SelectionMode.CHOICE, GROUP_NAMES.get(kind, kind.value))
    return plan


def migrate_legacy_combos(session: Session, dry_run: bool = False) -> MigrationReport:
    """Apply the migration plan to every legacy combo (nothing is written on dry run)."""
    report = MigrationReport(dry_run=dry_run)
    combos = session.execute(
        select(Combo).options(selectinload(Combo.line_items).selectinload(ComboLineItem.product))
    ).scalars().all()

    try:
        for combo in combos:
            if not needs_migration(combo):
                report.skipped.append(combo.id)
                continue

            inventory_index = {item.product_id: item.product for item in combo.line_items if item.product is not None}
            plan = smart_migration_plan(combo, inventory_index)
            for item in combo.line_items:
                if item.id in plan:
                    mode, group = plan[item.id]
                    logger.info(
                        f"Combo {combo.id}: line item {item.id} -> {mode.value}"
                        + (f" ({group})" if group else '')
                    )
                    if not dry_run:
                        item.selection_mode = mode
                        item.choice_group = group
            report.migrated.append(combo.id)

        if dry_run:
            session.rollback()
        else:
            session.commit()
    except Exception:
        session.rollback()
        raise

    return report
