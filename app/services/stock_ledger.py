"""
Stock ledger - reserves inventory for an order, all or nothing.

Reservation is two-phase: snapshot every required product (rows locked),
check the whole requirement set, and only then write. Writes are
compare-and-swap on the row version; a missed write discards the attempt's
savepoint and starts over, a bounded number of times.

Decrements live in a savepoint of the caller's transaction and become
visible when the caller commits the order.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping

from app.exceptions import ConflictError, InsufficientStockError, NotFoundError
from app.metrics import stock_reservations_total

logger = logging.getLogger(__name__)


@dataclass
class Reserved:
    """New stock level per reserved product."""

    levels: Dict[int, int] = field(default_factory=dict)


class _WriteMissed(Exception):
    """A compare-and-swap found the row changed since the snapshot."""

    def __init__(self, product_id):
        super().__init__(product_id)
        self.product_id = product_id


class StockLedger:

    def __init__(self, inventory_store, max_retries: int = 3):
        self.inventory = inventory_store
        self.max_retries = max(1, int(max_retries))

    def reserve(self, requirements: Mapping[int, int]) -> Reserved:
        """
        Decrement stock for every product in `requirements` (product_id -> units).

        Raises:
            NotFoundError: a product does not exist
            InsufficientStockError: first product (in requirement order) whose
                stock does not cover the requirement; nothing is written
            ConflictError: every attempt lost a write race
        """
        requirements = {pid: qty for pid, qty in requirements.items() if qty > 0}
        if not requirements:
            return Reserved()

        for attempt in range(1, self.max_retries + 1):
            savepoint = self.inventory.savepoint()
            try:
                levels = self._attempt(requirements)
            except _WriteMissed as miss:
                savepoint.rollback()
                stock_reservations_total.labels(outcome='retry').inc()
                logger.warning(
                    f"Stock write conflict on product {miss.product_id} "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                continue
            except InsufficientStockError:
                savepoint.rollback()
                stock_reservations_total.labels(outcome='insufficient').inc()
                raise
            except Exception:
                savepoint.rollback()
                raise

            savepoint.commit()
            self.inventory.expire_cached(requirements.keys())
            stock_reservations_total.labels(outcome='reserved').inc()
            logger.info(f"Reserved stock for {len(requirements)} product(s) on attempt {attempt}")
            return Reserved(levels)

        stock_reservations_total.labels(outcome='conflict').inc()
        logger.error(f"Stock reservation gave up after {self.max_retries} attempts")
        raise ConflictError(
            'El stock cambió mientras se confirmaba la venta. Intente nuevamente.',
            attempts=self.max_retries
        )

    def _attempt(self, requirements: Dict[int, int]) -> Dict[int, int]:
        snapshot = self.inventory.snapshot(requirements.keys())

        # Phase 1: check everything before touching anything
        for product_id, required in requirements.items():
            row = snapshot.get(product_id)
            if row is None:
                raise NotFoundError(f'Producto #{product_id} no encontrado', {'product_id': product_id})
            if row.quantity < required:
                raise InsufficientStockError(product_id, row.quantity, required)

        # Phase 2: write
        levels = {}
        for product_id, required in requirements.items():
            row = snapshot[product_id]
            if not self.inventory.decrement_stock(product_id, required, row.version):
                raise _WriteMissed(product_id)
            levels[product_id] = row.quantity - required
        return levels
