"""Inventory store - stock counters read and written by the stock ledger."""
from typing import Dict, Iterable, NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models import InventoryItem


class StockSnapshot(NamedTuple):
    product_id: int
    quantity: int
    version: int


class InventoryStore:
    """Stock access for one unit of work (the caller owns the session)."""

    def __init__(self, session: Session):
        self.session = session

    def savepoint(self):
        """Nested transaction: rolled back alone, committed with the outer one."""
        return self.session.begin_nested()

    def get_stock(self, product_id: int) -> Optional[int]:
        return self.session.execute(
            select(InventoryItem.stock_quantity).where(InventoryItem.id == product_id)
        ).scalar_one_or_none()

    def snapshot(self, product_ids: Iterable[int]) -> Dict[int, StockSnapshot]:
        """
        Current stock and version of every product, rows locked FOR UPDATE.

        Rows are locked in id order so two reservations over overlapping
        products cannot deadlock.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}

        rows = self.session.execute(
            select(InventoryItem.id, InventoryItem.stock_quantity, InventoryItem.version)
            .where(InventoryItem.id.in_(ids))
            .order_by(InventoryItem.id)
            .with_for_update()
        ).all()
        return {row[0]: StockSnapshot(row[0], row[1], row[2]) for row in rows}

    def decrement_stock(self, product_id: int, quantity: int, expected_version: int) -> bool:
        """
        Compare-and-swap decrement.

        Succeeds only if nobody wrote the row since `expected_version` was
        read and the stock still covers `quantity`.
        """
        result = self.session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == product_id,
                InventoryItem.version == expected_version,
                InventoryItem.stock_quantity >= quantity
            )
            .values(
                stock_quantity=InventoryItem.stock_quantity - quantity,
                version=InventoryItem.version + 1
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def expire_cached(self, product_ids: Iterable[int]) -> None:
        """Drop stale stock values from InventoryItem objects already in the session."""
        ids = set(product_ids)
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, InventoryItem) and obj.id in ids:
                self.session.expire(obj, ['stock_quantity', 'version', 'updated_at'])
