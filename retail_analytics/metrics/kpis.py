"""
Simple KPIs

Aggregates computed directly over an already filtered set of order lines.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from retail_analytics.models import OrderLineItem


class GroupBy(str, Enum):
    """Row regrouping requested by a KPI"""
    PRODUCT = "product"
    VARIANT = "variant"


@dataclass
class KpiResult:
    """Totals and breakdowns of one KPI"""
    name: str
    total: float
    by_product: Optional[Dict[str, float]] = None
    by_variant: Optional[Dict[str, float]] = None
    by_date: Optional[Dict[str, float]] = None
    group_by: Optional[GroupBy] = None
    aggregate_only: bool = False

    @property
    def requires_grouping(self) -> bool:
        return self.group_by is not None


def _sum_by(
    rows: Sequence[OrderLineItem],
    key: Callable[[OrderLineItem], Optional[str]],
    value: Callable[[OrderLineItem], float],
) -> Dict[str, float]:
    grouped: Dict[str, float] = defaultdict(float)
    for row in rows:
        k = key(row)
        if k:
            grouped[k] += value(row)
    return dict(grouped)


def _quantity(row: OrderLineItem) -> float:
    return row.quantity


def _revenue(row: OrderLineItem) -> float:
    return row.net_revenue


def quantity_sold(rows: Sequence[OrderLineItem]) -> KpiResult:
    """Units sold, grouped by product name"""
    return KpiResult(
        name="quantity_sold",
        total=sum(r.quantity for r in rows),
        by_product=_sum_by(rows, lambda r: r.product_name, _quantity),
        by_date=_sum_by(rows, lambda r: r.order_date, _quantity),
        group_by=GroupBy.PRODUCT,
    )


def quantity_sold_by_variant(rows: Sequence[OrderLineItem]) -> KpiResult:
    """Units sold per product + color + size"""
    return KpiResult(
        name="quantity_sold_by_variant",
        total=sum(r.quantity for r in rows),
        by_product=_sum_by(rows, lambda r: r.product_name, _quantity),
        by_variant=_sum_by(rows, lambda r: r.variant_key, _quantity),
        by_date=_sum_by(rows, lambda r: r.order_date, _quantity),
        group_by=GroupBy.VARIANT,
    )


def total_revenue(rows: Sequence[OrderLineItem]) -> KpiResult:
    """Net revenue of the lines"""
    return KpiResult(
        name="total_revenue",
        total=round(sum(r.net_revenue for r in rows), 2),
        by_product=_sum_by(rows, lambda r: r.product_name, _revenue),
        by_date=_sum_by(rows, lambda r: r.order_date, _revenue),
    )


def _per_order_average(rows: Sequence[OrderLineItem]) -> float:
    orders = {r.order_id for r in rows if r.order_id}
    if not orders:
        return 0.0
    return round(sum(r.net_revenue for r in rows if r.order_id) / len(orders), 2)


def average_order_value(rows: Sequence[OrderLineItem]) -> KpiResult:
    """Net revenue per distinct order"""
    by_date: Dict[str, List[OrderLineItem]] = defaultdict(list)
    for row in rows:
        if row.order_date:
            by_date[row.order_date].append(row)
    return KpiResult(
        name="average_order_value",
        total=_per_order_average(rows),
        by_date={d: _per_order_average(day_rows) for d, day_rows in by_date.items()},
        aggregate_only=True,
    )


SIMPLE_KPIS: Dict[str, Callable[[Sequence[OrderLineItem]], KpiResult]] = {
    "quantity_sold": quantity_sold,
    "quantity_sold_by_variant": quantity_sold_by_variant,
    "total_revenue": total_revenue,
    "average_order_value": average_order_value,
}

ADVANCED_KPIS = frozenset({"attach_rate"})

KPI_ALIASES = {
    "quantitySold": "quantity_sold",
    "quantitySoldByVariant": "quantity_sold_by_variant",
    "totalRevenue": "total_revenue",
    "averageOrderValue": "average_order_value",
    "attachRate": "attach_rate",
}


def resolve_kpi_name(name: str) -> str:
    return KPI_ALIASES.get(name, name)


def requires_advanced_calculation(name: str) -> bool:
    return resolve_kpi_name(name) in ADVANCED_KPIS
