"""
Manifest Resolver

Lists the published monthly partitions of an order source and expands
path templates into candidate file locations.
"""

import re
from typing import Any, Dict, List, Optional

import structlog

from retail_analytics.config.settings import OrderSourceConfig
from retail_analytics.exceptions import FetchError, ManifestError
from retail_analytics.io.providers import FlatFileProvider
from retail_analytics.models import MonthPartition

logger = structlog.get_logger(__name__)

_TEMPLATE_VAR = re.compile(r"\$\{(\w+)\}")


def expand_template(template: str, variables: Dict[str, str]) -> str:
    """Replace ``${name}`` placeholders; unknown names expand to ''"""
    return _TEMPLATE_VAR.sub(lambda m: str(variables.get(m.group(1), "")), template)


class ManifestResolver:
    """
    Resolves the partitions of one order source.

    The manifest is fetched once and kept for the session; it is assumed
    append-only while the session runs.

    Example:
        resolver = ManifestResolver(provider, settings.orders.active_source)
        months = await resolver.list_months()
        urls = resolver.candidates("2024", "12")
    """

    def __init__(
        self,
        provider: FlatFileProvider,
        source: OrderSourceConfig,
    ):
        self.provider = provider
        self.manifest_url = source.manifest_url
        self.base_dir = source.base_dir
        self.patterns = list(source.month_file_patterns)
        self._manifest: Optional[Any] = None
        self._months: Optional[List[MonthPartition]] = None

    async def get(self) -> Any:
        """Fetch (once) and return the raw manifest document"""
        if self._manifest is not None:
            return self._manifest
        try:
            self._manifest = await self.provider.get_json(self.manifest_url)
        except FetchError as e:
            logger.error("Manifest fetch failed", url=self.manifest_url, error=str(e))
            raise ManifestError(f"Could not fetch manifest {self.manifest_url}: {e}") from e
        return self._manifest

    async def list_months(self) -> List[MonthPartition]:
        """
        List every published month, oldest first.

        Accepts ``{"years": {"2024": ["11", "12"]}}`` and
        ``{"months": [{"month": "2024-11", "path": "2024/2024-11"}]}``.

        Raises:
            ManifestError: if the manifest cannot be fetched or has neither shape
        """
        if self._months is not None:
            return self._months

        manifest = await self.get()
        months = self._parse(manifest)
        self._months = months
        logger.info("Manifest loaded", url=self.manifest_url, months=len(months))
        return months

    def _parse(self, manifest: Any) -> List[MonthPartition]:
        if not isinstance(manifest, dict):
            raise ManifestError(f"Manifest {self.manifest_url} is not a JSON object")

        out: List[MonthPartition] = []
        if isinstance(manifest.get("years"), dict):
            for yyyy in sorted(manifest["years"]):
                for mm in manifest["years"][yyyy] or []:
                    out.append(MonthPartition(yyyy=str(yyyy), mm=str(mm).zfill(2)))
            return sorted(out, key=lambda p: p.key)

        if isinstance(manifest.get("months"), list):
            for rec in manifest["months"]:
                month = rec.get("month") if isinstance(rec, dict) else None
                if not isinstance(month, str) or "-" not in month:
                    logger.warning("Skipping malformed manifest entry", entry=rec)
                    continue
                yyyy, mm = month.split("-", 1)
                out.append(MonthPartition(yyyy=yyyy, mm=mm.zfill(2), path=rec.get("path")))
            return sorted(out, key=lambda p: p.key)

        raise ManifestError(f"Manifest {self.manifest_url} has neither 'years' nor 'months'")

    async def months_in_range(self, start_yyyymm: str, end_yyyymm: str) -> List[MonthPartition]:
        """Published months with ``start <= yyyy-mm <= end``"""
        months = await self.list_months()
        return [m for m in months if start_yyyymm <= m.key <= end_yyyymm]

    def candidates(self, yyyy: str, mm: str) -> List[str]:
        """Candidate file paths for a month, in probing priority order"""
        variables = {
            "yyyy": str(yyyy),
            "mm": str(mm).zfill(2),
            "baseDir": self.base_dir,
            "base": self.base_dir,
        }
        return [expand_template(p, variables) for p in self.patterns]

    def clear(self) -> None:
        """Drop the cached manifest"""
        self._manifest = None
        self._months = None
