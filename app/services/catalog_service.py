"""Catalog loading - combos, inventory and discount rules for pricing."""
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models import Combo, ComboDiscountRule, ComboLineItem, DiscountRule, InventoryItem
from app.services.cart import Catalog


def load_catalog(session: Session, combo_ids: Optional[Iterable[int]] = None,
                 product_ids: Optional[Iterable[int]] = None) -> Catalog:
    """
    Load everything the rule engine and the combo validator need in a
    handful of queries (no lazy loads afterwards).

    Args:
        session: SQLAlchemy session
        combo_ids: restrict combos to these ids (None = all)
        product_ids: extra standalone products to load besides the combos' components

    Returns:
        Catalog indexed by id
    """
    combo_query = select(Combo).options(
        selectinload(Combo.line_items).selectinload(ComboLineItem.product),
        selectinload(Combo.rule_links).selectinload(ComboDiscountRule.rule)
    )
    if combo_ids is not None:
        combo_query = combo_query.where(Combo.id.in_(set(combo_ids)))
    combos = {combo.id: combo for combo in session.execute(combo_query).scalars()}

    inventory = {}
    for combo in combos.values():
        for line_item in combo.line_items:
            if line_item.product is not None:
                inventory[line_item.product.id] = line_item.product

    if combo_ids is None and product_ids is None:
        items = session.execute(select(InventoryItem)).scalars()
    else:
        missing = set(product_ids or ()) - set(inventory)
        items = session.execute(select(InventoryItem).where(InventoryItem.id.in_(missing))).scalars() if missing else []
    for item in items:
        inventory[item.id] = item

    # Cross-promotions and order-wide rules are not tied to the cart's combos
    rules = list(session.execute(
        select(DiscountRule)
        .options(selectinload(DiscountRule.combo_links))
        .order_by(DiscountRule.id)
    ).scalars())

    return Catalog(combos=combos, inventory=inventory, rules=rules)
