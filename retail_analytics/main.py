"""
Retail Analytics Entry Point

Builds the engine from settings and exposes a command line:

    retail-analytics query --start 2024-11 --end 2024-12 --text "tin cloth jacket" --metric quantitySold
    retail-analytics search "duffle canvas" --op OR
    retail-analytics catalog "cruiser" --color "Otter Green"
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
import structlog

from retail_analytics.analytics.service import (
    AnalyticsEngine,
    QueryResult,
    VerificationContext,
    VerificationRequired,
)
from retail_analytics.config import Settings, get_settings
from retail_analytics.config.logging import configure_logging
from retail_analytics.exceptions import AnalyticsError
from retail_analytics.ingestion.catalog_repository import CatalogRepository
from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.io.providers import FlatFileProvider, create_provider
from retail_analytics.metrics.attach_rate import AttachRateService
from retail_analytics.metrics.engine import GroupedRow, MetricEngine
from retail_analytics.query import ProductFilter, Query, TimeRange
from retail_analytics.search.facets import OrdersProductFacets
from retail_analytics.search.keyword_index import OrdersKeywordIndex, SearchOperator
from retail_analytics.verification.service import DecisionMemory, ProductVerificationService

logger = structlog.get_logger(__name__)


@dataclass
class Engine:
    """Every service of one session, wired to a single provider"""
    settings: Settings
    provider: FlatFileProvider
    orders: OrderRecordRepository
    catalog: CatalogRepository
    keyword_index: OrdersKeywordIndex
    facets: OrdersProductFacets
    attach_rate: AttachRateService
    verification: ProductVerificationService
    analytics: AnalyticsEngine

    async def aclose(self) -> None:
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()


def create_engine(
    settings: Optional[Settings] = None,
    provider: Optional[FlatFileProvider] = None,
    today: Callable[[], date] = date.today,
) -> Engine:
    """Construct the services once and share caches between them"""
    settings = settings or get_settings()
    provider = provider or create_provider(settings.provider)

    orders = OrderRecordRepository(provider, settings.orders.active_source)
    catalog = CatalogRepository(provider, settings.catalog, today=today)
    attach_rate = AttachRateService(orders)
    memory = DecisionMemory() if settings.verification.remember_decisions else None
    verification = ProductVerificationService(decision_memory=memory)
    analytics = AnalyticsEngine(
        orders,
        verification=verification,
        metrics=MetricEngine(attach_rate),
        default_lookback_months=settings.index.default_lookback_months,
        today=today,
    )
    keyword_index = OrdersKeywordIndex(
        orders,
        default_dims=settings.index.default_dims,
        default_lookback_months=settings.index.default_lookback_months,
        default_limit=settings.index.search_limit,
        today=today,
    )
    facets = OrdersProductFacets(
        orders,
        default_lookback_months=settings.index.default_lookback_months,
        today=today,
    )

    logger.info(
        "Engine created",
        source=settings.orders.active,
        layout=settings.orders.active_source.layout,
        provider=settings.provider.kind,
    )
    return Engine(
        settings=settings,
        provider=provider,
        orders=orders,
        catalog=catalog,
        keyword_index=keyword_index,
        facets=facets,
        attach_rate=attach_rate,
        verification=verification,
        analytics=analytics,
    )


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


def summarize_result(result: QueryResult) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = []
    for row in result.rows[:20]:
        if isinstance(row, GroupedRow):
            rows.append({
                "product_name": row.product_name,
                "quantity": row.quantity,
                "net_revenue": row.net_revenue,
                "group_count": row.group_count,
            })
        else:
            rows.append({
                "order_id": row.order_id,
                "product_name": row.product_name,
                "color": row.color,
                "size": row.size,
                "quantity": row.quantity,
                "net_revenue": row.net_revenue,
                "order_date": row.order_date,
            })
    return {
        "row_count": len(result.rows),
        "raw_row_count": len(result.raw_data),
        "present_months": [m.key for m in result.present],
        "missing_months": [m.key for m in result.missing],
        "warnings": result.warnings,
        "kpis": {name: asdict(kpi) for name, kpi in result.kpis.items()},
        "rows": rows,
    }


def summarize_pause(pause: VerificationRequired) -> Dict[str, Any]:
    return {
        "needs_verification": True,
        "approved_rows": len(pause.approved_results),
        "discovered_products": [
            {"name": c.name, "order_count": c.order_count, "total_quantity": c.total_quantity}
            for c in pause.discovered_products
        ],
        "missing_months": [m.key for m in pause.missing],
    }


async def run_query(engine: Engine, args: argparse.Namespace) -> Dict[str, Any]:
    time_range = TimeRange(
        start_yyyymm=args.start,
        end_yyyymm=args.end,
        start_date=args.start_date,
        end_date=args.end_date,
    )
    product = ProductFilter(text=args.text) if args.text else None
    query = Query(time=time_range, product=product, metric=args.metric)

    context = None
    if args.text:
        catalog = await engine.catalog.search_products(args.text)
        context = VerificationContext(
            original_catalog_results=catalog.products,
            user_selected_products=list(args.select or []),
            search_terms=product.search_terms(),
        )

    outcome = await engine.analytics.get_orders_for_query(query, context)
    if isinstance(outcome, VerificationRequired):
        if not args.approve_all:
            return summarize_pause(outcome)
        choices = {c.name: True for c in outcome.discovered_products}
        outcome = await engine.analytics.continue_after_verification(outcome, choices, query)
    return summarize_result(outcome)


async def run_search(engine: Engine, args: argparse.Namespace) -> Dict[str, Any]:
    time_range = TimeRange(start_yyyymm=args.start, end_yyyymm=args.end) if args.start and args.end else None
    result = await engine.keyword_index.search(
        args.text,
        dims=args.dims,
        time=time_range,
        op=SearchOperator(args.op),
        limit=args.limit,
    )
    return {
        "error": result.error,
        "count": len(result.order_ids),
        "items": [asdict(item) for item in result.items],
    }


async def run_catalog(engine: Engine, args: argparse.Namespace) -> Dict[str, Any]:
    filters = {
        "available_only": args.available_only,
        "category": args.category,
        "color": args.color,
        "size": args.size,
    }
    result = await engine.catalog.search_products(args.text, filters)
    return {
        "error": result.error,
        "count": len(result.matches),
        "products": [
            {"product_id": m.product.product_id, "title": m.product.title, "color": m.product.color,
             "size": m.product.size, "price": m.product.price, "score": m.score}
            for m in result.matches[: args.limit]
        ],
    }


COMMANDS = {
    "query": run_query,
    "search": run_search,
    "catalog": run_catalog,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retail-analytics", description="Retail order analytics")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    query = sub.add_parser("query", help="Run an analytics query")
    query.add_argument("--start", required=True, help="First month, yyyy-mm")
    query.add_argument("--end", required=True, help="Last month, yyyy-mm")
    query.add_argument("--start-date", default=None, help="First day, yyyy-mm-dd")
    query.add_argument("--end-date", default=None, help="Last day, yyyy-mm-dd")
    query.add_argument("--text", default=None, help="Product search text")
    query.add_argument("--select", action="append", help="Selected catalog product title (repeatable)")
    query.add_argument("--metric", action="append", help="KPI name (repeatable)")
    query.add_argument("--approve-all", action="store_true", help="Approve every discovered product")

    search = sub.add_parser("search", help="Keyword search over orders")
    search.add_argument("text")
    search.add_argument("--dims", nargs="*", default=None)
    search.add_argument("--op", choices=["AND", "OR"], default="AND")
    search.add_argument("--start", default=None)
    search.add_argument("--end", default=None)
    search.add_argument("--limit", type=int, default=None)

    catalog = sub.add_parser("catalog", help="Search the product catalog")
    catalog.add_argument("text", nargs="?", default="")
    catalog.add_argument("--category", default=None)
    catalog.add_argument("--color", default=None)
    catalog.add_argument("--size", default=None)
    catalog.add_argument("--available-only", action="store_true")
    catalog.add_argument("--limit", type=int, default=50)

    return parser


async def run(args: argparse.Namespace, engine: Optional[Engine] = None) -> Dict[str, Any]:
    owned = engine is None
    engine = engine or create_engine()
    try:
        return await COMMANDS[args.command](engine, args)
    finally:
        if owned:
            await engine.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        output = asyncio.run(run(args))
    except (AnalyticsError, ValidationError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        return 1
    print(json.dumps(output, indent=2, default=_jsonable))
    return 0


if __name__ == "__main__":
    sys.exit(main())
