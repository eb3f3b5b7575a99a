"""Cart value types handed to the checkout services."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.models import DeliveryType


@dataclass(frozen=True)
class Selection:
    """Buyer's pick for one choice group of a combo."""

    choice_group: str
    product_id: int


@dataclass
class CartLine:
    """A cart row: either a combo (with selections) or a standalone inventory item."""

    quantity: int
    combo_id: Optional[int] = None
    product_id: Optional[int] = None
    selections: List[Selection] = field(default_factory=list)

    @property
    def is_combo(self) -> bool:
        return self.combo_id is not None


@dataclass
class Cart:
    lines: List[CartLine] = field(default_factory=list)
    delivery_type: DeliveryType = DeliveryType.LOCAL

    def is_empty(self) -> bool:
        return not self.lines


@dataclass
class LineupComponent:
    """Concrete inventory item a combo line consumes, per combo unit."""

    item: Any
    quantity: int = 1


@dataclass
class PricedLine:
    """
    A cart line bound to its catalog entity.

    This is the line item the rule engine prices: `combo` is None for
    standalone items.
    """

    quantity: int
    unit_price: Decimal
    combo: Any = None
    item: Any = None
    selections: List[Selection] = field(default_factory=list)
    components: List[LineupComponent] = field(default_factory=list)

    @property
    def combo_id(self):
        return self.combo.id if self.combo is not None else None


@dataclass
class Catalog:
    """Read model of everything pricing needs, loaded once per checkout."""

    combos: Dict[int, Any] = field(default_factory=dict)
    inventory: Dict[int, Any] = field(default_factory=dict)
    rules: List[Any] = field(default_factory=list)
