"""
Orders Keyword Index

In-memory inverted index over order line items for fast keyword lookup
across product name, SKU, color, size and a few order-level dimensions.
The index is rebuilt only when the requested dimensions or time window
change.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.models import OrderLineItem
from retail_analytics.query import TimeRange

logger = structlog.get_logger(__name__)

DEFAULT_DIMS = ("product_name", "sku", "color", "size")

DIM_ALIASES = {
    "product.title": "product_name",
    "product_name": "product_name",
    "sku": "sku",
    "color": "color",
    "size": "size",
    "order_id": "order_id",
    "demand_store": "demand_store",
    "fulfillment_store": "fulfillment_store",
    "channel": "channel",
    "fulfillment_type": "fulfillment_type",
}

_TOKEN_CLEANUP = re.compile(r"[^a-z0-9\-_.]")


class SearchOperator(str, Enum):
    """How per-token results combine"""
    AND = "AND"
    OR = "OR"


def tokenize(text: Optional[str]) -> List[str]:
    """Lower-case, strip to ``[a-z0-9-_.]``, drop tokens shorter than 2"""
    parts = (text or "").lower().split()
    tokens = (_TOKEN_CLEANUP.sub("", p) for p in parts)
    return [t for t in tokens if len(t) >= 2]


def normalize_dims(dims: Optional[Iterable[str]], default: Sequence[str] = DEFAULT_DIMS) -> Tuple[str, ...]:
    """Map aliases to indexed fields; unknown dims are ignored"""
    out = []
    for d in dims or ():
        mapped = DIM_ALIASES.get(str(d or ""))
        if mapped and mapped not in out:
            out.append(mapped)
    return tuple(out) if out else tuple(default)


def _read(row: OrderLineItem, dim: str) -> str:
    value = row.get(dim, "")
    return "" if value is None else str(value)


@dataclass(frozen=True)
class OrderSummary:
    """First-seen line of an order"""
    order_id: str
    title: str
    sku: str
    color: str
    size: str


@dataclass
class KeywordSearchResult:
    """Matching order ids with per-order summaries; ``error`` set on failure"""
    order_ids: List[str] = field(default_factory=list)
    items: List[OrderSummary] = field(default_factory=list)
    error: Optional[str] = None


class InvertedIndex:
    """Per-dimension token -> order id postings"""

    def __init__(self):
        self.index_by_dim: Dict[str, Dict[str, Set[str]]] = {}
        self.summaries: Dict[str, OrderSummary] = {}
        self.ready = False

    def add_term(self, dim: str, term: str, order_id: str) -> None:
        self.index_by_dim.setdefault(dim, {}).setdefault(term, set()).add(order_id)

    def build_from_rows(self, rows: Iterable[OrderLineItem], dims: Sequence[str]) -> "InvertedIndex":
        for row in rows:
            order_id = row.order_id
            if not order_id:
                continue
            if order_id not in self.summaries:
                self.summaries[order_id] = OrderSummary(
                    order_id=order_id,
                    title=row.product_name,
                    sku=row.sku,
                    color=row.color,
                    size=row.size,
                )
            for dim in dims:
                for term in tokenize(_read(row, dim)):
                    self.add_term(dim, term, order_id)
        self.ready = True
        return self

    def postings(self, dim: str, term: str) -> Set[str]:
        return self.index_by_dim.get(dim, {}).get(term, set())

    def search(
        self,
        text: Optional[str],
        dims: Sequence[str],
        op: SearchOperator = SearchOperator.AND,
        limit: int = 200,
    ) -> KeywordSearchResult:
        tokens = tokenize(text)
        if not tokens:
            return KeywordSearchResult()

        per_token: List[Set[str]] = []
        for token in tokens:
            union: Set[str] = set()
            for dim in dims:
                union |= self.postings(dim, token)
            per_token.append(union)

        if not isinstance(op, SearchOperator):
            op = SearchOperator(str(op).upper())
        if op == SearchOperator.OR:
            final = set().union(*per_token)
        else:
            final = set(per_token[0])
            for postings in per_token[1:]:
                final &= postings

        # sorted for stable output across runs
        order_ids = sorted(final)[:limit]
        items = [self.summaries[oid] for oid in order_ids if oid in self.summaries]
        return KeywordSearchResult(order_ids=order_ids, items=items)


class OrdersKeywordIndex:
    """
    Lazily built keyword index over the orders of a time window.

    Example:
        index = OrdersKeywordIndex(repository)
        result = await index.search("duffle canvas", time=TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-12"))
    """

    def __init__(
        self,
        repository: OrderRecordRepository,
        default_dims: Sequence[str] = DEFAULT_DIMS,
        default_lookback_months: int = 3,
        default_limit: int = 200,
        today: Callable[[], date] = date.today,
    ):
        self.repository = repository
        self.default_dims = tuple(default_dims)
        self.default_lookback_months = default_lookback_months
        self.default_limit = default_limit
        self.today = today
        self._index: Optional[InvertedIndex] = None
        self._key: Optional[Tuple[Tuple[str, ...], str]] = None
        self.build_count = 0

    def _time_range(self, time: Optional[TimeRange]) -> TimeRange:
        if time is not None:
            return time
        return TimeRange.last_months(self.default_lookback_months, today=self.today())

    async def init(
        self,
        dims: Optional[Iterable[str]] = None,
        time: Optional[TimeRange] = None,
    ) -> InvertedIndex:
        """Build the index for ``dims`` + ``time`` or reuse the current one"""
        used_dims = normalize_dims(dims, self.default_dims)
        time_range = self._time_range(time)
        key = (used_dims, time_range.key)

        if self._index is not None and self._key == key:
            return self._index

        result = await self.repository.find_by_month_range(time_range)
        index = InvertedIndex().build_from_rows(result.rows, used_dims)
        self._index = index
        self._key = key
        self.build_count += 1
        logger.info(
            "Keyword index built",
            dims=list(used_dims),
            range=time_range.key,
            orders=len(index.summaries),
            missing_months=result.missing_months,
        )
        return index

    async def search(
        self,
        text: Optional[str],
        dims: Optional[Iterable[str]] = None,
        time: Optional[TimeRange] = None,
        op: SearchOperator = SearchOperator.AND,
        limit: Optional[int] = None,
    ) -> KeywordSearchResult:
        """
        Search orders by keyword.

        Each token matches the union of its postings across ``dims``; tokens
        are combined with AND (intersection) or OR (union). Failures are
        reported in ``error`` rather than raised.
        """
        try:
            used_dims = normalize_dims(dims, self.default_dims)
            index = await self.init(used_dims, time)
            return index.search(text, used_dims, op=op, limit=limit or self.default_limit)
        except Exception as e:
            logger.error("Keyword search failed", text=text, error=str(e))
            return KeywordSearchResult(error=str(e))

    def clear(self) -> None:
        self._index = None
        self._key = None
