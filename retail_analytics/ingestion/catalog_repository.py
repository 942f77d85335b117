"""
Catalog Repository

Resolves the currently published product catalog, normalizes it and keeps
a search index plus facet hierarchy in a TTL cache.
"""

import re
import time
import unicodedata
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

import structlog

from retail_analytics.cache import CacheManager, Clock
from retail_analytics.config.settings import CatalogSettings
from retail_analytics.ingestion.manifest import expand_template
from retail_analytics.io.providers import FlatFileProvider
from retail_analytics.models import Product
from retail_analytics.query import shift_month
from retail_analytics.transformation.normalizers import normalize_catalog_row, parse_csv_text

logger = structlog.get_logger(__name__)

FACETS = ("category", "color", "size", "style", "material", "gender")
_CASE_INSENSITIVE_FACETS = ("color", "size")
_QUERY_CLEANUP = re.compile(r"[^\w\s-]")


@dataclass
class CatalogIndices:
    """Title word postings and exact-match facet postings (row indices)"""
    by_title: Dict[str, List[int]] = field(default_factory=dict)
    by_facet: Dict[str, Dict[str, List[int]]] = field(default_factory=lambda: {f: {} for f in FACETS})


@dataclass
class FacetHierarchy:
    """Sorted unique values per facet"""
    categories: List[str] = field(default_factory=list)
    styles: List[str] = field(default_factory=list)
    materials: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    genders: List[str] = field(default_factory=list)


@dataclass
class CatalogSnapshot:
    """A loaded catalog with its derived structures"""
    products: List[Product]
    indices: CatalogIndices
    hierarchy: FacetHierarchy
    path: str
    is_selective: bool = False

    @property
    def total_count(self) -> int:
        return len(self.products)


@dataclass
class CatalogFilters:
    """Facet post-filters for catalog search"""
    available_only: bool = False
    category: Optional[str] = None
    style: Optional[str] = None
    material: Optional[str] = None
    gender: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None


@dataclass(frozen=True)
class ProductMatch:
    """A catalog search hit"""
    product: Product
    score: int


@dataclass
class CatalogSearchResult:
    """Ordered catalog hits; ``error`` set when the catalog could not be searched"""
    matches: List[ProductMatch] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def products(self) -> List[Product]:
        return [m.product for m in self.matches]


def _as_filters(filters: Union[CatalogFilters, Mapping[str, object], None]) -> CatalogFilters:
    if filters is None:
        return CatalogFilters()
    if isinstance(filters, CatalogFilters):
        return filters
    return CatalogFilters(**filters)


def _facet_key(facet: str, value: str) -> str:
    return value.lower() if facet in _CASE_INSENSITIVE_FACETS else value


def build_search_indices(products: List[Product]) -> CatalogIndices:
    """Index title words (longer than two characters) and exact facet values"""
    indices = CatalogIndices()
    for i, product in enumerate(products):
        for word in product.title.lower().split():
            if len(word) > 2:
                indices.by_title.setdefault(word, []).append(i)
        for facet in FACETS:
            value = getattr(product, facet)
            if value:
                indices.by_facet[facet].setdefault(_facet_key(facet, value), []).append(i)
    return indices


def extract_hierarchy(products: Iterable[Product]) -> FacetHierarchy:
    values: Dict[str, Set[str]] = {f: set() for f in FACETS}
    for product in products:
        for facet in FACETS:
            value = getattr(product, facet)
            if value:
                values[facet].add(value)
    return FacetHierarchy(
        categories=sorted(values["category"]),
        styles=sorted(values["style"]),
        materials=sorted(values["material"]),
        colors=sorted(values["color"]),
        sizes=sorted(values["size"]),
        genders=sorted(values["gender"]),
    )


def _snapshot(products: List[Product], path: str, is_selective: bool = False) -> CatalogSnapshot:
    return CatalogSnapshot(
        products=products,
        indices=build_search_indices(products),
        hierarchy=extract_hierarchy(products),
        path=path,
        is_selective=is_selective,
    )


class CatalogRepository:
    """
    Repository over the published product catalog.

    Example:
        catalog = CatalogRepository(provider, settings.catalog)
        result = await catalog.search_products("tin cloth jacket", {"color": "Otter Green"})
    """

    def __init__(
        self,
        provider: FlatFileProvider,
        settings: CatalogSettings,
        clock: Clock = time.monotonic,
        today: Callable[[], date] = date.today,
    ):
        self.provider = provider
        self.settings = settings
        self.today = today
        self._cache = CacheManager("catalog", default_ttl=settings.cache_ttl_seconds, clock=clock)
        self._current_path: Optional[str] = None
        self._is_selective = False

    def _expand(self, template: str, **variables: str) -> str:
        return expand_template(template, {"baseDir": self.settings.base_dir, "base": self.settings.base_dir, **variables})

    async def _path_exists(self, path: str) -> bool:
        try:
            return await self.provider.exists(path)
        except Exception as e:
            logger.debug("Catalog probe failed", path=path, error=str(e))
            return False

    async def resolve_catalog_path(self) -> str:
        """
        Find the catalog file to load.

        Priority: override file, canonical current file, newest daily file,
        newest monthly archive, then the canonical path regardless so that a
        missing catalog surfaces as a fetch error.
        """
        override = self.settings.override_file
        if override and await self._path_exists(override):
            return override

        current = self._expand(self.settings.current_file)
        if await self._path_exists(current):
            return current

        today = self.today()
        for offset in range(self.settings.daily_lookback_days):
            d = today - timedelta(days=offset)
            path = self._expand(
                self.settings.daily_pattern,
                yyyy=f"{d.year:04d}",
                mm=f"{d.month:02d}",
                dd=f"{d.day:02d}",
            )
            if await self._path_exists(path):
                return path

        for offset in range(self.settings.monthly_lookback_months):
            d = shift_month(today, -offset)
            path = self._expand(self.settings.archive_pattern, yyyy=f"{d.year:04d}", mm=f"{d.month:02d}")
            if await self._path_exists(path):
                return path

        logger.warning("No catalog file found, falling back to canonical path", path=current)
        return current

    async def load_current_catalog(self) -> CatalogSnapshot:
        """
        Load the current catalog, reusing the cached snapshot while the
        resolved path is unchanged and the TTL has not expired.

        Raises:
            FetchError: if the resolved catalog file cannot be fetched
        """
        path = await self.resolve_catalog_path()
        logger.debug("Catalog resolved", path=path)

        cached = self._cache.get(path)
        if cached is not None:
            return cached

        if self._current_path is not None and self._current_path != path:
            logger.info("Catalog path changed, dropping cache", previous=self._current_path, path=path)
        self._cache.invalidate_all()

        text = await self.provider.get_text(path)
        products = [normalize_catalog_row(r) for r in parse_csv_text(text)]
        products = [p for p in products if p.product_id]

        snapshot = _snapshot(products, path)
        self._cache.set(path, snapshot)
        self._current_path = path
        self._is_selective = False
        logger.info("Catalog loaded", path=path, products=len(products))
        return snapshot

    def _filter(
        self,
        snapshot: CatalogSnapshot,
        candidates: Iterable[int],
        filters: CatalogFilters,
    ) -> List[int]:
        """Apply facet filters to candidate row indices, preserving order"""
        keep = list(candidates)
        for facet in ("category", "style", "material", "gender", "color", "size"):
            value = getattr(filters, facet)
            if not value:
                continue
            allowed = set(snapshot.indices.by_facet[facet].get(_facet_key(facet, value), ()))
            keep = [i for i in keep if i in allowed]
        if filters.available_only:
            keep = [i for i in keep if snapshot.products[i].is_available]
        return keep

    def _match(
        self,
        snapshot: CatalogSnapshot,
        query: Optional[str],
        filters: CatalogFilters,
    ) -> List[ProductMatch]:
        products = snapshot.products

        normalized = unicodedata.normalize("NFKD", str(query or "")).lower()
        terms = _QUERY_CLEANUP.sub(" ", normalized).split()

        if not terms:
            return [
                ProductMatch(product=products[i], score=0)
                for i in self._filter(snapshot, range(len(products)), filters)
            ]

        scores: Dict[int, int] = {}
        for i, product in enumerate(products):
            title = product.title.lower()
            score = sum(1 for term in terms if term in title)
            if score == len(terms):
                scores[i] = score
        if not scores:
            return []

        matches = [
            ProductMatch(product=products[i], score=scores[i])
            for i in self._filter(snapshot, scores, filters)
        ]
        return sorted(matches, key=lambda m: (-m.score, m.product.title.lower(), m.product.title))

    async def search_products(
        self,
        query: Optional[str],
        filters: Union[CatalogFilters, Mapping[str, object], None] = None,
    ) -> CatalogSearchResult:
        """
        Search catalog titles.

        Every query term must appear (substring) in the title. Facet filters
        are applied to the matched subset. Results are ordered by score, then
        title. A catalog that cannot be loaded yields an empty result with
        ``error`` set.
        """
        try:
            snapshot = await self.load_current_catalog()
            return CatalogSearchResult(matches=self._match(snapshot, query, _as_filters(filters)))
        except Exception as e:
            logger.error("Catalog search failed", query=query, error=str(e))
            return CatalogSearchResult(error=str(e))

    async def get_filter_options(
        self,
        filters: Union[CatalogFilters, Mapping[str, object], None] = None,
    ) -> FacetHierarchy:
        """Facet values available within the filtered catalog"""
        snapshot = await self.load_current_catalog()
        matches = self._match(snapshot, "", _as_filters(filters))
        return extract_hierarchy(m.product for m in matches)

    def set_selected_products_cache(self, products: List[Product]) -> None:
        """Replace the cached catalog with a user-chosen subset"""
        if not products or self._current_path is None:
            return
        logger.info("Replacing catalog cache with selected products", products=len(products))
        self._cache.set(self._current_path, _snapshot(list(products), self._current_path, is_selective=True))
        self._is_selective = True

    def reset_to_full_cache(self) -> None:
        """Force a full reload on the next request if the cache is selective"""
        if self._is_selective:
            logger.info("Resetting selective catalog cache")
            self.clear_cache()

    def clear_cache(self) -> None:
        self._cache.invalidate_all()
        self._current_path = None
        self._is_selective = False

    @property
    def is_selective(self) -> bool:
        return self._is_selective
