"""SQLAlchemy implementations of the stores the checkout services consume."""
from app.repositories.inventory_store import InventoryStore, StockSnapshot
from app.repositories.order_store import OrderStore
from app.repositories.shift_store import ShiftStore

__all__ = ['InventoryStore', 'StockSnapshot', 'OrderStore', 'ShiftStore']
