"""
Domain Models

Immutable records produced by the repositories. Normalized fields are
fixed attributes; every raw source column is kept in ``extras``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_COLOR = "Default"
DEFAULT_SIZE = "One Size"


@dataclass(frozen=True)
class MonthPartition:
    """One published month of order data"""
    yyyy: str
    mm: str
    path: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.yyyy}-{self.mm}"


@dataclass(frozen=True)
class OrderLineItem:
    """A single sold line within an order"""
    order_id: str
    line_number: int = 1
    product_name: str = ""
    sku: str = ""
    color: str = ""
    size: str = ""
    upc: str = ""
    quantity: float = 1
    net_revenue: float = 0.0
    unit_price: float = 0.0
    line_discount: float = 0.0
    taxes: float = 0.0
    order_datetime_normalized: Optional[str] = None
    source_month: Optional[str] = None
    extras: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def order_date(self) -> Optional[str]:
        """Date part (YYYY-MM-DD) of the normalized order timestamp"""
        if not self.order_datetime_normalized:
            return None
        return self.order_datetime_normalized[:10]

    @property
    def variant_key(self) -> str:
        """Display key "Product - Color - Size" skipping empty parts"""
        return " - ".join(p for p in (self.product_name, self.color, self.size) if p)

    def get(self, name: str, default: Any = None) -> Any:
        """Read a normalized attribute, falling back to the raw source fields"""
        if name in _ORDER_FIELDS:
            return getattr(self, name)
        return self.extras.get(name, default)


_ORDER_FIELDS = frozenset(OrderLineItem.__dataclass_fields__) - {"extras"}


@dataclass(frozen=True)
class Product:
    """A catalog product variant"""
    product_id: str
    title: str = ""
    sku: str = ""
    upc: str = ""
    color: str = ""
    size: str = ""
    category: str = ""
    style: str = ""
    material: str = ""
    gender: str = ""
    is_available: bool = True
    price: float = 0.0
    images: List[str] = field(default_factory=list, compare=False, hash=False)
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    extras: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def name(self) -> str:
        return self.title
