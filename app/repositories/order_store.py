"""Order store."""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models import Order


class OrderStore:

    def __init__(self, session: Session):
        self.session = session

    def insert(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def get_by_id(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id)
        if for_update:
            # Re-read even if the order is already in the session
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def list_by_shift_id(self, shift_id: int) -> List[Order]:
        """Every order of the shift as currently stored (pending changes must be flushed)."""
        return list(self.session.execute(
            select(Order)
            .where(Order.shift_id == shift_id)
            .order_by(Order.created_at, Order.id)
            .execution_options(populate_existing=True)
        ).scalars())

    def search(self, *criteria, limit: Optional[int] = None) -> List[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.lines))
            .where(*criteria)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())
