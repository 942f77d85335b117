"""
Data Ingestion Module
"""
from .catalog_repository import (
    CatalogFilters,
    CatalogRepository,
    CatalogSearchResult,
    CatalogSnapshot,
    ProductMatch,
)
from .manifest import ManifestResolver
from .orders_repository import (
    MonthFailed,
    MonthLoaded,
    MonthRangeResult,
    OrderRecordRepository,
)

__all__ = [
    "CatalogFilters",
    "CatalogRepository",
    "CatalogSearchResult",
    "CatalogSnapshot",
    "ProductMatch",
    "ManifestResolver",
    "MonthFailed",
    "MonthLoaded",
    "MonthRangeResult",
    "OrderRecordRepository",
]
