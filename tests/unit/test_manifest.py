"""
Unit Tests - Manifest Resolver
"""
import pytest

from retail_analytics.exceptions import ManifestError
from retail_analytics.ingestion.manifest import ManifestResolver, expand_template
from retail_analytics.io.providers import MemoryFlatFileProvider


def test_expand_template_blanks_unknown_variables():
    result = expand_template("${baseDir}/${yyyy}-${mm}/x${other}.csv", {"baseDir": "orders", "yyyy": "2024", "mm": "12"})

    assert result == "orders/2024-12/x.csv"


class TestManifestResolver:
    """Tests for ManifestResolver"""

    @pytest.mark.asyncio
    async def test_years_shape(self, order_source):
        provider = MemoryFlatFileProvider({order_source.manifest_url: {"years": {"2025": ["1"], "2024": ["12", "11"]}}})
        resolver = ManifestResolver(provider, order_source)

        months = await resolver.list_months()

        assert [m.key for m in months] == ["2024-11", "2024-12", "2025-01"]

    @pytest.mark.asyncio
    async def test_months_shape_keeps_paths(self, order_source):
        provider = MemoryFlatFileProvider({
            order_source.manifest_url: {
                "months": [
                    {"month": "2024-12", "path": "2024/2024-12"},
                    {"month": "2024-11", "path": "2024/2024-11"},
                    {"bogus": True},
                ]
            }
        })
        resolver = ManifestResolver(provider, order_source)

        months = await resolver.list_months()

        assert [m.key for m in months] == ["2024-11", "2024-12"]
        assert months[1].path == "2024/2024-12"

    @pytest.mark.asyncio
    async def test_manifest_cached_until_cleared(self, provider, order_source):
        resolver = ManifestResolver(provider, order_source)

        await resolver.list_months()
        await resolver.list_months()
        assert provider.requests.count(order_source.manifest_url) == 1

        resolver.clear()
        await resolver.list_months()
        assert provider.requests.count(order_source.manifest_url) == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_raises(self, order_source):
        resolver = ManifestResolver(MemoryFlatFileProvider(), order_source)

        with pytest.raises(ManifestError):
            await resolver.list_months()

    @pytest.mark.asyncio
    async def test_unknown_shape_raises(self, order_source):
        provider = MemoryFlatFileProvider({order_source.manifest_url: {"files": []}})
        resolver = ManifestResolver(provider, order_source)

        with pytest.raises(ManifestError):
            await resolver.list_months()

    @pytest.mark.asyncio
    async def test_months_in_range_is_inclusive(self, order_source):
        provider = MemoryFlatFileProvider({order_source.manifest_url: {"years": {"2024": ["10", "11", "12"]}}})
        resolver = ManifestResolver(provider, order_source)

        months = await resolver.months_in_range("2024-11", "2024-12")

        assert [m.key for m in months] == ["2024-11", "2024-12"]

    def test_candidates_preserve_pattern_order(self, provider, order_source):
        resolver = ManifestResolver(provider, order_source)

        assert resolver.candidates("2024", "3") == ["orders/2024-03.csv", "orders/2024/2024-03.csv"]
