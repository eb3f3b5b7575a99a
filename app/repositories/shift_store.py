"""Shift store."""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models import Shift, ShiftStatus


class ShiftStore:

    def __init__(self, session: Session):
        self.session = session

    def add(self, shift: Shift) -> Shift:
        self.session.add(shift)
        self.session.flush()
        return shift

    def get_by_id(self, shift_id: int, for_update: bool = False) -> Optional[Shift]:
        query = select(Shift).where(Shift.id == shift_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def get_open_for_employee(self, employee_id: str) -> Optional[Shift]:
        return self.session.execute(
            select(Shift).where(Shift.employee_id == employee_id, Shift.status == ShiftStatus.OPEN)
        ).scalars().first()

    def update(self, shift: Shift, **fields) -> Shift:
        for key, value in fields.items():
            setattr(shift, key, value)
        self.session.flush()
        return shift

    def increment_totals(self, shift_id: int, revenue: Decimal) -> bool:
        """
        Add one order and its revenue in a single UPDATE.

        Only applies to open shifts; False means the shift was closed (or
        does not exist) by the time the order got here.
        """
        result = self.session.execute(
            update(Shift)
            .where(Shift.id == shift_id, Shift.status == ShiftStatus.OPEN)
            .values(
                total_orders=Shift.total_orders + 1,
                total_revenue=Shift.total_revenue + revenue
            )
            .execution_options(synchronize_session=False)
        )
        shift = self.session.identity_map.get(self.session.identity_key(Shift, shift_id))
        if shift is not None:
            self.session.expire(shift, ['total_orders', 'total_revenue'])
        return result.rowcount == 1
