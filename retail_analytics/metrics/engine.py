"""
Metric Engine

Dispatches requested KPI names to simple calculations over the filtered
rows or to the attach rate service, and regroups rows when a KPI asks for
it.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog

from retail_analytics.metrics.attach_rate import AttachRateReport, AttachRateService
from retail_analytics.metrics.kpis import (
    SIMPLE_KPIS,
    GroupBy,
    KpiResult,
    requires_advanced_calculation,
    resolve_kpi_name,
)
from retail_analytics.models import OrderLineItem
from retail_analytics.query import Query, TimeRange

logger = structlog.get_logger(__name__)

KpiValue = Union[KpiResult, AttachRateReport]


@dataclass
class GroupedRow:
    """Synthetic row standing for every line sharing a product or variant"""
    key: str
    product_name: str
    color: str
    size: str
    sku: str
    quantity: float
    net_revenue: float
    group_count: int
    grouped_revenue: float
    first: OrderLineItem


@dataclass
class MetricOutcome:
    rows: List[Union[OrderLineItem, GroupedRow]]
    kpis: Dict[str, KpiValue]

    @property
    def is_grouped(self) -> bool:
        return bool(self.rows) and isinstance(self.rows[0], GroupedRow)


def group_rows(rows: Sequence[OrderLineItem], group_by: GroupBy) -> List[GroupedRow]:
    """
    Collapse rows sharing a product name (or product + color + size).

    The first line of each group supplies sku, color and size; for variant
    grouping the product name shows the full variant key.
    """
    grouped: Dict[str, GroupedRow] = {}
    for row in rows:
        key = row.variant_key if group_by == GroupBy.VARIANT else row.product_name
        group = grouped.get(key)
        if group is None:
            group = grouped[key] = GroupedRow(
                key=key,
                product_name=key if group_by == GroupBy.VARIANT else row.product_name,
                color=row.color,
                size=row.size,
                sku=row.sku,
                quantity=0,
                net_revenue=0.0,
                group_count=0,
                grouped_revenue=0.0,
                first=row,
            )
        group.quantity += row.quantity
        group.group_count += 1
        group.grouped_revenue += row.net_revenue

    for group in grouped.values():
        group.grouped_revenue = round(group.grouped_revenue, 2)
        group.net_revenue = group.grouped_revenue
    return list(grouped.values())


def product_names(rows: Sequence[OrderLineItem]) -> List[str]:
    """Distinct product names in first-seen order"""
    seen: Dict[str, None] = {}
    for row in rows:
        if row.product_name:
            seen.setdefault(row.product_name, None)
    return list(seen)


def _range_of_rows(rows: Sequence[OrderLineItem]) -> Optional[TimeRange]:
    months = sorted({r.source_month for r in rows if r.source_month})
    if not months:
        return None
    return TimeRange(start_yyyymm=months[0], end_yyyymm=months[-1])


class MetricEngine:
    """
    Computes requested KPIs for a filtered row set.

    Example:
        engine = MetricEngine(AttachRateService(repository))
        outcome = await engine.apply_metric(rows, ["quantitySold", "attachRate"], query)
    """

    def __init__(self, attach_rate_service: Optional[AttachRateService] = None):
        self.attach_rate_service = attach_rate_service

    async def _attach_rate(self, rows: Sequence[OrderLineItem], query: Optional[Query]) -> Optional[AttachRateReport]:
        if self.attach_rate_service is None:
            logger.warning("Attach rate requested without an attach rate service")
            return None
        time_range = query.time if query is not None and query.time is not None else _range_of_rows(rows)
        if time_range is None:
            return None
        return await self.attach_rate_service.get_attach_rates_for_range(time_range, product_names(rows))

    async def apply_metric(
        self,
        rows: Sequence[OrderLineItem],
        metrics: Optional[Sequence[str]],
        query: Optional[Query] = None,
    ) -> MetricOutcome:
        """
        Compute ``metrics`` over ``rows``.

        Args:
            rows: Time and product filtered order lines
            metrics: KPI names, snake_case or camelCase
            query: Query the rows answer; its time range scopes attach rate

        Returns:
            MetricOutcome with grouped rows when a KPI requests grouping
        """
        if not metrics or not rows:
            return MetricOutcome(rows=list(rows), kpis={})

        kpis: Dict[str, Any] = {}
        group_by: Optional[GroupBy] = None
        for requested in metrics:
            name = resolve_kpi_name(requested)
            if requires_advanced_calculation(name):
                report = await self._attach_rate(rows, query)
                if report is not None:
                    kpis[name] = report
            elif name in SIMPLE_KPIS:
                result = SIMPLE_KPIS[name](rows)
                kpis[name] = result
                if result.requires_grouping:
                    group_by = result.group_by
            else:
                logger.warning("Unknown KPI ignored", kpi=requested)

        if group_by is not None:
            return MetricOutcome(rows=group_rows(rows, group_by), kpis=kpis)
        return MetricOutcome(rows=list(rows), kpis=kpis)
