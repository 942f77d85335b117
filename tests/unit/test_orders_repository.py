"""
Unit Tests - Order Record Repository
"""
import pytest

from retail_analytics.config import OrderSourceConfig
from retail_analytics.exceptions import ManifestError
from retail_analytics.ingestion.orders_repository import MonthFailed, MonthLoaded, OrderRecordRepository
from retail_analytics.io.providers import MemoryFlatFileProvider
from retail_analytics.query import TimeRange


class TestFindByMonthRange:
    """Tests for OrderRecordRepository.find_by_month_range"""

    @pytest.mark.asyncio
    async def test_rows_tagged_with_source_month(self, orders_repository):
        result = await orders_repository.find_by_month_range(TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-12"))

        assert len(result.rows) == 9
        assert {r.source_month for r in result.rows} == {"2024-11", "2024-12"}
        assert not result.is_partial

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [("2024-11", "2024-11"), ("2024-12", "2025-03"), ("2024-01", "2024-10")])
    async def test_rows_stay_in_range(self, orders_repository, start, end):
        result = await orders_repository.find_by_month_range(TimeRange(start_yyyymm=start, end_yyyymm=end))
        in_range = await orders_repository.manifest.months_in_range(start, end)

        assert all(start <= r.source_month <= end for r in result.rows)
        assert len(result.present) + len(result.missing) == len(in_range)

    @pytest.mark.asyncio
    async def test_failed_month_is_reported_not_raised(self, provider, order_source):
        provider.put(order_source.manifest_url, {"years": {"2024": ["10", "11", "12"]}})
        repository = OrderRecordRepository(provider, order_source)

        result = await repository.find_by_month_range(TimeRange(start_yyyymm="2024-10", end_yyyymm="2024-12"))

        assert result.missing_months == ["2024-10"]
        assert isinstance(result.missing[0], MonthFailed)
        assert result.missing[0].error is not None
        assert all(isinstance(m, MonthLoaded) for m in result.present)
        assert len(result.rows) == 9

    @pytest.mark.asyncio
    async def test_blank_lines_do_not_become_rows(self, order_source):
        provider = MemoryFlatFileProvider({
            order_source.manifest_url: {"years": {"2025": ["01"]}},
            "orders/2025-01.csv": (
                "order_id,line_number,product_name,quantity,unit_price\n"
                "1,1,Jacket,1,100\n"
                "\n"
                "2,1,Jacket,1,100\n"
                "\n"
            ),
        })
        repository = OrderRecordRepository(provider, order_source)

        result = await repository.find_by_month_range(TimeRange(start_yyyymm="2025-01", end_yyyymm="2025-01"))

        assert [r.order_id for r in result.rows] == ["1", "2"]
        assert sum(r.quantity for r in result.rows) == 2

    @pytest.mark.asyncio
    async def test_unpadded_bound_loads_only_covered_months(self, order_source):
        provider = MemoryFlatFileProvider({
            order_source.manifest_url: {"years": {"2025": ["01", "02", "10", "11"]}},
        })
        for mm in ("01", "02", "10", "11"):
            provider.put(f"orders/2025-{mm}.csv", "order_id,quantity\n" + f"{mm},1\n")
        repository = OrderRecordRepository(provider, order_source)

        result = await repository.find_by_month_range(TimeRange(start_yyyymm="2025-01", end_yyyymm="2025-2"))

        assert sorted(m.key for m in result.present) == ["2025-01", "2025-02"]

    @pytest.mark.asyncio
    async def test_candidates_probed_in_order(self, provider, orders_repository):
        result = await orders_repository.find_by_month_range(TimeRange(start_yyyymm="2024-12", end_yyyymm="2024-12"))

        assert result.present[0].url == "orders/2024/2024-12.csv"
        assert provider.requests.index("orders/2024-12.csv") < provider.requests.index("orders/2024/2024-12.csv")

    @pytest.mark.asyncio
    async def test_manifest_failure_propagates(self, order_source):
        repository = OrderRecordRepository(MemoryFlatFileProvider(), order_source)

        with pytest.raises(ManifestError):
            await repository.find_by_month_range(TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-12"))

    @pytest.mark.asyncio
    async def test_row_normalization(self, orders_repository):
        result = await orders_repository.find_by_month_range(TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-11"))
        by_order = {(r.order_id, r.line_number): r for r in result.rows}

        first = by_order[("1001", 1)]
        assert first.net_revenue == 250.0
        assert first.order_datetime_normalized == "2024-11-03 10:15:00"
        assert first.extras["sku"] == "TCJ-OG-M"

        tote = by_order[("1003", 1)]
        assert tote.quantity == 2
        assert tote.net_revenue == 40.0


class TestSplitLayout:
    """Order headers and line items joined on order_id"""

    @pytest.mark.asyncio
    async def test_headers_joined_onto_line_items(self):
        source = OrderSourceConfig(manifest_url="retail/index.json", base_dir="retail", layout="split")
        provider = MemoryFlatFileProvider({
            "retail/index.json": {"months": [{"month": "2024-12", "path": "2024/2024-12"}]},
            "retail/2024/2024-12/orders.csv": (
                "order_id,date_time,demand_location,fulfillment_location,channel,fulfillment_type\n"
                'A1,"Dec 1, 2024, 4:54 PM PST",Portland,Seattle DC,web,ship\n'
            ),
            "retail/2024/2024-12/line_items.csv": (
                "order_id,line_number,product_name,quantity,unit_price,line_discount\n"
                "A1,1,Tin Cloth Cruiser Jacket,1,250,50\n"
                "A1,2,Wool Beanie,,35,0\n"
            ),
        })
        repository = OrderRecordRepository(provider, source)

        result = await repository.find_by_month_range(TimeRange(start_yyyymm="2024-12", end_yyyymm="2024-12"))

        assert len(result.rows) == 2
        jacket, beanie = sorted(result.rows, key=lambda r: r.line_number)
        assert jacket.order_datetime_normalized == "2024-12-01 16:54:00"
        assert jacket.net_revenue == 200.0
        assert jacket.get("channel") == "web"
        assert jacket.get("demand_store") == "Portland"
        assert beanie.quantity == 1

    @pytest.mark.asyncio
    async def test_missing_line_items_fail_the_month(self):
        source = OrderSourceConfig(manifest_url="retail/index.json", base_dir="retail", layout="split")
        provider = MemoryFlatFileProvider({
            "retail/index.json": {"years": {"2024": ["12"]}},
            "retail/2024/2024-12/orders.csv": "order_id\nA1\n",
        })
        repository = OrderRecordRepository(provider, source)

        result = await repository.find_by_month_range(TimeRange(start_yyyymm="2024-12", end_yyyymm="2024-12"))

        assert result.rows == []
        assert result.missing_months == ["2024-12"]
