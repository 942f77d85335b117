"""
Orders Product Facets

Summaries of the SKUs, colors and sizes that orders reveal for a product
name, plus product-name suggestions for typeahead.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional

import structlog

from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.query import TimeRange

logger = structlog.get_logger(__name__)

MAX_FACET_VALUES = 50


@dataclass(frozen=True)
class FacetCount:
    value: str
    count: int


@dataclass
class ProductFacetSummary:
    """Facets observed in order lines whose product name matches a text"""
    total: int = 0
    title: str = ""
    skus: List[FacetCount] = field(default_factory=list)
    colors: List[FacetCount] = field(default_factory=list)
    sizes: List[FacetCount] = field(default_factory=list)


def _top(counter: Counter, limit: int = MAX_FACET_VALUES) -> List[FacetCount]:
    return [FacetCount(value=v, count=c) for v, c in counter.most_common(limit)]


class OrdersProductFacets:
    """
    Facet discovery over order lines.

    Example:
        facets = OrdersProductFacets(repository)
        summary = await facets.summarize_by_product_name("cruiser")
    """

    def __init__(
        self,
        repository: OrderRecordRepository,
        default_lookback_months: int = 3,
        today: Callable[[], date] = date.today,
    ):
        self.repository = repository
        self.default_lookback_months = default_lookback_months
        self.today = today

    def _time_range(self, time: Optional[TimeRange]) -> TimeRange:
        return time or TimeRange.last_months(self.default_lookback_months, today=self.today())

    async def summarize_by_product_name(
        self,
        text: str,
        time: Optional[TimeRange] = None,
        limit: int = 100000,
    ) -> ProductFacetSummary:
        """Count SKUs, colors and sizes of lines whose name contains ``text``"""
        query = (text or "").strip()
        if not query:
            return ProductFacetSummary()

        result = await self.repository.find_by_month_range(self._time_range(time))
        needle = query.lower()

        names: Counter = Counter()
        skus: Counter = Counter()
        colors: Counter = Counter()
        sizes: Counter = Counter()
        scanned = 0
        for row in result.rows:
            name = row.product_name.strip()
            if not name or needle not in name.lower():
                continue
            scanned += 1
            if scanned > limit:
                break
            names[name] += 1
            if row.sku:
                skus[row.sku] += 1
            if row.color:
                colors[row.color] += 1
            if row.size:
                sizes[row.size] += 1

        top_names = names.most_common(1)
        return ProductFacetSummary(
            total=min(scanned, limit),
            title=top_names[0][0] if top_names else query,
            skus=_top(skus),
            colors=_top(colors),
            sizes=_top(sizes),
        )

    async def suggest_product_names(
        self,
        text: str,
        time: Optional[TimeRange] = None,
        max_results: int = 50,
    ) -> List[FacetCount]:
        """Product names containing ``text``, most frequent first"""
        query = (text or "").strip().lower()
        if not query:
            return []
        result = await self.repository.find_by_month_range(self._time_range(time))
        names = Counter(
            row.product_name.strip()
            for row in result.rows
            if row.product_name and query in row.product_name.lower()
        )
        return _top(names, max_results)
