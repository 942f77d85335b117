"""
Analytics Service

Orchestrates a query: load months, filter by time, reconcile products (or
apply the plain product filter), then compute metrics. When reconciliation
finds product names nobody has approved yet, the pipeline pauses and hands
back a VerificationRequired instead of numbers.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from retail_analytics.analytics.filters import apply_product, apply_time
from retail_analytics.exceptions import VerificationStateError
from retail_analytics.ingestion.orders_repository import MonthFailed, MonthLoaded, OrderRecordRepository
from retail_analytics.metrics.engine import GroupedRow, KpiValue, MetricEngine
from retail_analytics.models import OrderLineItem
from retail_analytics.query import Query, QueryInput, TimeRange, normalize_query
from retail_analytics.verification.service import (
    ProductRef,
    ProductVerificationService,
    VerificationCandidate,
)

logger = structlog.get_logger(__name__)


@dataclass
class VerificationContext:
    """What the user saw and picked in the catalog search before querying"""
    original_catalog_results: Sequence[ProductRef] = field(default_factory=list)
    user_selected_products: Sequence[ProductRef] = field(default_factory=list)
    search_terms: Sequence[str] = field(default_factory=list)


@dataclass
class QueryResult:
    """Rows and KPIs of a completed query"""
    rows: List[Union[OrderLineItem, GroupedRow]]
    raw_data: List[OrderLineItem]
    kpis: Dict[str, KpiValue]
    present: List[MonthLoaded]
    missing: List[MonthFailed]
    needs_verification: bool = False

    @property
    def has_missing_months(self) -> bool:
        return bool(self.missing)

    @property
    def warnings(self) -> List[str]:
        return [f"Month {m.key} could not be loaded: {m.error}" for m in self.missing]


@dataclass
class VerificationRequired:
    """Pipeline paused until the user approves or rejects discovered products"""
    discovered_products: List[VerificationCandidate]
    approved_results: List[OrderLineItem]
    present: List[MonthLoaded]
    missing: List[MonthFailed]
    verification_context: VerificationContext
    needs_verification: bool = True

    @property
    def raw_data(self) -> List[OrderLineItem]:
        return self.approved_results


QueryOutcome = Union[QueryResult, VerificationRequired]


class AnalyticsEngine:
    """
    Query pipeline over the order repository.

    Example:
        engine = AnalyticsEngine(repository, verification, metrics)
        outcome = await engine.get_orders_for_query(query, context)
        if outcome.needs_verification:
            outcome = await engine.continue_after_verification(outcome, {"Tin Cloth Packer Jacket": True}, query)
    """

    def __init__(
        self,
        repository: OrderRecordRepository,
        verification: Optional[ProductVerificationService] = None,
        metrics: Optional[MetricEngine] = None,
        default_lookback_months: int = 3,
        today: Callable[[], date] = date.today,
    ):
        self.repository = repository
        self.verification = verification or ProductVerificationService()
        self.metrics = metrics or MetricEngine()
        self.default_lookback_months = default_lookback_months
        self.today = today

    def _time_range(self, query: Query) -> TimeRange:
        if query.time is not None:
            return query.time
        return TimeRange.last_months(self.default_lookback_months, today=self.today())

    async def _finish(
        self,
        rows: List[OrderLineItem],
        query: Query,
        present: List[MonthLoaded],
        missing: List[MonthFailed],
    ) -> QueryResult:
        raw_data = list(rows)
        outcome = await self.metrics.apply_metric(rows, query.metric, query)
        if missing:
            logger.warning("Query result is partial", missing_months=[m.key for m in missing])
        return QueryResult(
            rows=outcome.rows,
            raw_data=raw_data,
            kpis=outcome.kpis,
            present=present,
            missing=missing,
        )

    async def get_orders_for_query(
        self,
        query: QueryInput,
        verification_context: Optional[VerificationContext] = None,
    ) -> QueryOutcome:
        """
        Answer a query, or pause for product verification.

        Args:
            query: Query or dict with ``time``, ``product`` and ``metric``
            verification_context: Catalog results and selection to reconcile
                against; without it the plain product filter is applied

        Returns:
            QueryResult, or VerificationRequired when discovered products
            need a decision

        Raises:
            ManifestError: if the month list cannot be fetched
        """
        query = normalize_query(query)
        time_range = self._time_range(query)
        loaded = await self.repository.find_by_month_range(time_range)

        scoped = apply_time(loaded.rows, query.time)

        if verification_context is None:
            scoped = apply_product(scoped, query.product)
        else:
            verdict = self.verification.filter_and_verify(
                scoped,
                verification_context.original_catalog_results,
                verification_context.user_selected_products,
                verification_context.search_terms,
            )
            if verdict.needs_verification:
                logger.info(
                    "Query paused for product verification",
                    discovered=[c.name for c in verdict.discovered_products],
                )
                return VerificationRequired(
                    discovered_products=verdict.discovered_products,
                    approved_results=verdict.approved_results,
                    present=loaded.present,
                    missing=loaded.missing,
                    verification_context=verification_context,
                )
            scoped = verdict.approved_results

        return await self._finish(scoped, query, loaded.present, loaded.missing)

    async def continue_after_verification(
        self,
        pause: Optional[VerificationRequired],
        user_choices: Mapping[str, Any],
        query: QueryInput,
    ) -> QueryResult:
        """
        Resume a paused query with the user's decisions.

        Approved candidates' lines join the already approved lines; product
        filtering is not applied again.

        Raises:
            VerificationStateError: if there is no paused verification
        """
        if not isinstance(pause, VerificationRequired):
            raise VerificationStateError(
                "continue_after_verification called without a pending verification"
            )

        query = normalize_query(query)
        additional = self.verification.process_user_verification(pause.discovered_products, user_choices)
        scoped = list(pause.approved_results) + additional
        logger.info(
            "Verification resolved",
            approved=len(pause.approved_results),
            additional=len(additional),
            total=len(scoped),
        )
        return await self._finish(scoped, query, pause.present, pause.missing)
