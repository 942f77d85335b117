"""
Order Record Repository

Loads monthly order line-item partitions through the manifest.
Supports:
- Single-file partitions with ordered fallback candidates
- Split partitions (order headers + line items joined on order_id)
- Concurrent month loading with per-month outcomes
- Partial results: one failed month never fails the range
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

import structlog

from retail_analytics.config.settings import OrderSourceConfig
from retail_analytics.ingestion.manifest import ManifestResolver
from retail_analytics.io.providers import FlatFileProvider
from retail_analytics.models import MonthPartition, OrderLineItem
from retail_analytics.query import TimeRange
from retail_analytics.transformation.normalizers import (
    normalize_order_row,
    order_header_meta,
    parse_csv_text,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MonthLoaded:
    """A month whose partition was fetched and parsed"""
    partition: MonthPartition
    url: str
    rows: List[OrderLineItem]

    @property
    def key(self) -> str:
        return self.partition.key


@dataclass(frozen=True)
class MonthFailed:
    """A month whose partition could not be fetched or parsed"""
    partition: MonthPartition
    url: Optional[str]
    error: Exception

    @property
    def key(self) -> str:
        return self.partition.key


MonthOutcome = Union[MonthLoaded, MonthFailed]


@dataclass
class MonthRangeResult:
    """Rows of a month range plus which months loaded and which did not"""
    rows: List[OrderLineItem] = field(default_factory=list)
    present: List[MonthLoaded] = field(default_factory=list)
    missing: List[MonthFailed] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.missing)

    @property
    def missing_months(self) -> List[str]:
        return [m.key for m in self.missing]


class OrderRecordRepository:
    """
    Repository over the published monthly order exports.

    Example:
        repo = OrderRecordRepository(provider, settings.orders.active_source)
        result = await repo.find_by_month_range(TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-12"))
        if result.missing:
            ...  # show a partial-data warning
    """

    def __init__(
        self,
        provider: FlatFileProvider,
        source: OrderSourceConfig,
        manifest: Optional[ManifestResolver] = None,
    ):
        self.provider = provider
        self.source = source
        self.manifest = manifest or ManifestResolver(provider, source)

    async def _load_single(self, partition: MonthPartition) -> MonthOutcome:
        """Try candidate files in order; first one that fetches and parses wins"""
        last_error: Optional[Exception] = None
        last_url: Optional[str] = None
        for url in self.manifest.candidates(partition.yyyy, partition.mm):
            last_url = url
            try:
                text = await self.provider.get_text(url)
                raw_rows = parse_csv_text(text)
            except Exception as e:
                logger.debug("Partition candidate failed", url=url, error=str(e))
                last_error = e
                continue
            rows = [normalize_order_row(r, source_month=partition.key) for r in raw_rows]
            return MonthLoaded(partition=partition, url=url, rows=rows)

        if last_error is None:
            last_error = FileNotFoundError(f"No file patterns configured for {partition.key}")
        return MonthFailed(partition=partition, url=last_url, error=last_error)

    async def _load_split(self, partition: MonthPartition) -> MonthOutcome:
        """Fetch order headers and line items and join them on order_id"""
        rel = partition.path or f"{partition.yyyy}/{partition.key}"
        base = f"{self.source.base_dir.rstrip('/')}/{rel.strip('/')}"
        orders_url = f"{base}/orders.csv"
        items_url = f"{base}/line_items.csv"
        try:
            orders_text, items_text = await asyncio.gather(
                self.provider.get_text(orders_url),
                self.provider.get_text(items_url),
            )
            headers_raw = parse_csv_text(orders_text)
            items_raw = parse_csv_text(items_text)
        except Exception as e:
            return MonthFailed(partition=partition, url=items_url, error=e)

        headers: Dict[str, dict] = {}
        for header in headers_raw:
            order_id = header.get("order_id")
            if order_id:
                headers[str(order_id)] = order_header_meta(header)

        rows = [
            normalize_order_row(
                item,
                source_month=partition.key,
                header=headers.get(str(item.get("order_id") or "")),
            )
            for item in items_raw
        ]
        return MonthLoaded(partition=partition, url=items_url, rows=rows)

    async def load_month(self, partition: MonthPartition) -> MonthOutcome:
        """Load one partition, never raising"""
        try:
            if self.source.layout == "split":
                return await self._load_split(partition)
            return await self._load_single(partition)
        except Exception as e:
            logger.error("Unexpected partition load failure", month=partition.key, error=str(e))
            return MonthFailed(partition=partition, url=None, error=e)

    async def find_by_month_range(self, time_range: TimeRange) -> MonthRangeResult:
        """
        Load every published month in ``[start, end]``.

        Args:
            time_range: Month range (``yyyy-mm`` bounds, inclusive)

        Returns:
            MonthRangeResult with rows of loaded months and failed months listed

        Raises:
            ManifestError: if the month list itself cannot be fetched
        """
        started_at = datetime.now()
        in_range = await self.manifest.months_in_range(time_range.start_yyyymm, time_range.end_yyyymm)

        outcomes = await asyncio.gather(*(self.load_month(m) for m in in_range))

        result = MonthRangeResult()
        for outcome in outcomes:
            if isinstance(outcome, MonthLoaded):
                result.present.append(outcome)
                result.rows.extend(outcome.rows)
            else:
                result.missing.append(outcome)
                logger.warning(
                    "Month partition missing",
                    month=outcome.key,
                    url=outcome.url,
                    error=str(outcome.error),
                )

        logger.info(
            "Month range loaded",
            start=time_range.start_yyyymm,
            end=time_range.end_yyyymm,
            present=len(result.present),
            missing=len(result.missing),
            rows=len(result.rows),
            duration_seconds=(datetime.now() - started_at).total_seconds(),
        )
        return result
