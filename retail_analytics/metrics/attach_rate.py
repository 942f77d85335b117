"""
Attach Rate Service

Attach rate is a property of the order, not of a filtered line, so it is
computed over whole months of order history regardless of the current
filter. Per-month variant counts are cached by ``yyyy-mm`` and summed for
any requested range.

An order whose highest line number is 2 or more is an attach order, and
every line of it counts toward its variant's attach orders.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

import structlog

from retail_analytics.cache import CacheManager
from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.models import DEFAULT_COLOR, DEFAULT_SIZE, OrderLineItem
from retail_analytics.query import TimeRange

logger = structlog.get_logger(__name__)


@dataclass
class VariantCounts:
    """Distinct order counts of one product/color/size variant"""
    product_name: str
    color: str
    size: str
    total_orders: int = 0
    attach_orders: int = 0


@dataclass
class AttachRateRecord:
    """Attach orders over total orders, as a percentage"""
    total_orders: int = 0
    attach_orders: int = 0
    rate: float = 0.0


@dataclass
class VariantAttachRate(AttachRateRecord):
    product_name: str = ""
    color: str = ""
    size: str = ""


@dataclass
class AttachRateReport:
    """Attach rates per variant with product, color, size and overall rollups"""
    by_variant: Dict[str, VariantAttachRate]
    by_product: Dict[str, AttachRateRecord]
    by_color: Dict[str, AttachRateRecord]
    by_size: Dict[str, AttachRateRecord]
    overall: AttachRateRecord
    missing_months: List[str]


def attach_percentage(attach_orders: int, total_orders: int) -> float:
    if total_orders <= 0:
        return 0.0
    return round(attach_orders / total_orders * 100, 1)


def variant_key(product_name: str, color: str, size: str) -> str:
    return f"{product_name} - {color} - {size}"


def calculate_from_line_items(rows: Iterable[OrderLineItem]) -> Dict[str, VariantCounts]:
    """
    Count distinct orders and attach orders per variant.

    Lines without a product name or order id are ignored.
    """
    rows = [r for r in rows if r.product_name and r.order_id]

    highest_line: Dict[str, int] = defaultdict(int)
    for row in rows:
        highest_line[row.order_id] = max(highest_line[row.order_id], row.line_number)

    orders: Dict[str, Set[str]] = defaultdict(set)
    attach: Dict[str, Set[str]] = defaultdict(set)
    variants: Dict[str, VariantCounts] = {}
    for row in rows:
        color = row.color or DEFAULT_COLOR
        size = row.size or DEFAULT_SIZE
        key = variant_key(row.product_name, color, size)
        if key not in variants:
            variants[key] = VariantCounts(product_name=row.product_name, color=color, size=size)
        orders[key].add(row.order_id)
        if highest_line[row.order_id] >= 2:
            attach[key].add(row.order_id)

    for key, counts in variants.items():
        counts.total_orders = len(orders[key])
        counts.attach_orders = len(attach[key])
    return variants


def _rollup(records: Dict[str, AttachRateRecord], key: str, counts: VariantCounts) -> None:
    record = records.setdefault(key, AttachRateRecord())
    record.total_orders += counts.total_orders
    record.attach_orders += counts.attach_orders


def convert_to_percentages(
    aggregated: Dict[str, VariantCounts],
    missing_months: Optional[List[str]] = None,
) -> AttachRateReport:
    """Turn summed counts into rates; rollups divide summed counts"""
    by_variant: Dict[str, VariantAttachRate] = {}
    by_product: Dict[str, AttachRateRecord] = {}
    by_color: Dict[str, AttachRateRecord] = {}
    by_size: Dict[str, AttachRateRecord] = {}
    overall = AttachRateRecord()

    for key, counts in aggregated.items():
        by_variant[key] = VariantAttachRate(
            total_orders=counts.total_orders,
            attach_orders=counts.attach_orders,
            rate=attach_percentage(counts.attach_orders, counts.total_orders),
            product_name=counts.product_name,
            color=counts.color,
            size=counts.size,
        )
        _rollup(by_product, counts.product_name, counts)
        _rollup(by_color, counts.color, counts)
        _rollup(by_size, counts.size, counts)
        overall.total_orders += counts.total_orders
        overall.attach_orders += counts.attach_orders

    for records in (by_product, by_color, by_size):
        for record in records.values():
            record.rate = attach_percentage(record.attach_orders, record.total_orders)
    overall.rate = attach_percentage(overall.attach_orders, overall.total_orders)

    return AttachRateReport(
        by_variant=by_variant,
        by_product=by_product,
        by_color=by_color,
        by_size=by_size,
        overall=overall,
        missing_months=list(missing_months or []),
    )


class AttachRateService:
    """
    Attach rate calculations with a per-month cache.

    The cache never expires on its own; call ``clear_cache()`` after source
    data is republished.

    Example:
        service = AttachRateService(repository)
        report = await service.get_attach_rates_for_range(time_range, ["Tin Cloth Cruiser Jacket"])
        report.by_product["Tin Cloth Cruiser Jacket"].rate
    """

    def __init__(
        self,
        repository: OrderRecordRepository,
        cache: Optional[CacheManager] = None,
    ):
        self.repository = repository
        self.monthly_cache = cache or CacheManager("attach_rate", default_ttl=None)
        self.months_calculated = 0

    async def calculate_monthly_attach_rates(self, month: str) -> Optional[Dict[str, VariantCounts]]:
        """
        Variant counts of one month, ``None`` if the month failed to load.

        A month absent from the manifest has no orders and yields ``{}``.
        """
        logger.debug("Calculating monthly attach rates", month=month)
        result = await self.repository.find_by_month_range(TimeRange(start_yyyymm=month, end_yyyymm=month))
        if result.missing:
            return None
        self.months_calculated += 1
        return calculate_from_line_items(result.rows)

    async def _monthly(self, month: str) -> Optional[Dict[str, VariantCounts]]:
        return await self.monthly_cache.get_or_set(month, lambda: self.calculate_monthly_attach_rates(month))

    async def get_attach_rates_for_range(
        self,
        time_range: TimeRange,
        products: Optional[Sequence[str]] = None,
    ) -> AttachRateReport:
        """
        Attach rates for every month of ``time_range``.

        Args:
            time_range: Month range; day bounds are ignored
            products: Restrict to these product names (all when ``None``)

        Returns:
            AttachRateReport, listing months that could not be loaded
        """
        months = time_range.months()
        # the manifest is fetched once before months load concurrently
        await self.repository.manifest.list_months()
        monthly = await asyncio.gather(*(self._monthly(m) for m in months))

        product_filter = set(products) if products is not None else None
        aggregated: Dict[str, VariantCounts] = {}
        missing: List[str] = []
        for month, counts in zip(months, monthly):
            if counts is None:
                missing.append(month)
                continue
            for key, variant in counts.items():
                if product_filter is not None and variant.product_name not in product_filter:
                    continue
                total = aggregated.setdefault(
                    key,
                    VariantCounts(product_name=variant.product_name, color=variant.color, size=variant.size),
                )
                total.total_orders += variant.total_orders
                total.attach_orders += variant.attach_orders

        if missing:
            logger.warning("Attach rate computed without some months", missing_months=missing)
        return convert_to_percentages(aggregated, missing)

    def clear_cache(self) -> None:
        """Drop every cached month"""
        self.monthly_cache.invalidate_all()
