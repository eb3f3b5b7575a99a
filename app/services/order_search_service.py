"""Order search for the cashier's lookup dialog and the admin reports."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.exceptions import ValidationError
from app.models import DeliveryType, Order, OrderStatus
from app.repositories import OrderStore

STATUS_FILTERS = {
    'all': None,
    'completed': OrderStatus.COMPLETED,
    'cancelled': OrderStatus.CANCELLED,
}


def search_orders(session: Session, order_id: Optional[int] = None, shift_id: Optional[int] = None,
                  start: Optional[datetime] = None, end: Optional[datetime] = None,
                  status: str = 'all', delivery_type=None, limit: Optional[int] = None) -> List[Order]:
    """
    Orders matching every given criterion, newest first.

    start/end are inclusive bounds on created_at. delivery_type takes a
    DeliveryType or its value ('local', 'takeaway', 'delivery').

    Raises:
        ValidationError: start after end, or an unknown status or delivery type
    """
    if start and end and start > end:
        raise ValidationError('La fecha de inicio no puede ser posterior a la fecha de fin')

    key = (status or 'all').lower()
    if key not in STATUS_FILTERS:
        raise ValidationError(
            f'Estado inválido: "{status}"', [f'status debe ser uno de: {", ".join(STATUS_FILTERS)}']
        )

    if delivery_type is not None and not isinstance(delivery_type, DeliveryType):
        try:
            delivery_type = DeliveryType(str(delivery_type).lower())
        except ValueError:
            raise ValidationError(
                f'Tipo de entrega inválido: "{delivery_type}"',
                [f'delivery_type debe ser uno de: {", ".join(d.value for d in DeliveryType)}']
            )

    criteria = []
    if order_id is not None:
        criteria.append(Order.id == order_id)
    if shift_id is not None:
        criteria.append(Order.shift_id == shift_id)
    if start is not None:
        criteria.append(Order.created_at >= start)
    if end is not None:
        criteria.append(Order.created_at <= end)
    if delivery_type is not None:
        criteria.append(Order.delivery_type == delivery_type)
    if STATUS_FILTERS[key] is not None:
        criteria.append(Order.status == STATUS_FILTERS[key])

    return OrderStore(session).search(*criteria, limit=limit)
