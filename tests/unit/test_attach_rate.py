"""
Unit Tests - Attach Rate
"""
import pytest

from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.metrics.attach_rate import (
    AttachRateService,
    VariantCounts,
    attach_percentage,
    calculate_from_line_items,
    convert_to_percentages,
)
from retail_analytics.models import OrderLineItem
from retail_analytics.query import TimeRange

WINTER = TimeRange(start_yyyymm="2024-11", end_yyyymm="2024-12")


def line(order_id, line_number, product_name, color="", size=""):
    return OrderLineItem(order_id=order_id, line_number=line_number, product_name=product_name, color=color, size=size)


class TestCalculateFromLineItems:
    """Tests for order-scoped variant counting"""

    def test_every_line_of_multi_line_order_is_attach(self):
        rows = [
            line("A", 1, "Jacket", "Brown", "M"),
            line("A", 2, "Beanie", "Red"),
            line("A", 3, "Gloves"),
        ]

        counts = calculate_from_line_items(rows)

        assert set(counts) == {
            "Jacket - Brown - M",
            "Beanie - Red - One Size",
            "Gloves - Default - One Size",
        }
        assert all(c.total_orders == 1 and c.attach_orders == 1 for c in counts.values())

    def test_denominator_is_distinct_orders(self):
        rows = [
            line("A", 1, "Jacket", "Brown", "M"),
            line("A", 2, "Jacket", "Brown", "M"),
            line("B", 1, "Jacket", "Brown", "M"),
            line("C", 1, "Jacket", "Brown", "M"),
            line("", 1, "Jacket", "Brown", "M"),
            line("D", 1, ""),
        ]

        counts = calculate_from_line_items(rows)

        jacket = counts["Jacket - Brown - M"]
        assert jacket.total_orders == 3
        assert jacket.attach_orders == 1
        assert len(counts) == 1


class TestConvertToPercentages:
    """Tests for rollups"""

    def test_rollups_sum_counts_before_dividing(self):
        aggregated = {
            "Jacket - Brown - M": VariantCounts("Jacket", "Brown", "M", total_orders=1, attach_orders=1),
            "Jacket - Brown - L": VariantCounts("Jacket", "Brown", "L", total_orders=9, attach_orders=0),
        }

        report = convert_to_percentages(aggregated)

        assert report.by_variant["Jacket - Brown - M"].rate == 100.0
        assert report.by_variant["Jacket - Brown - L"].rate == 0.0
        # averaging the two variant rates would give 50.0
        assert report.by_product["Jacket"].rate == 10.0
        assert report.by_color["Brown"].total_orders == 10
        assert report.by_size["L"].attach_orders == 0
        assert report.overall.rate == 10.0

    def test_rate_rounded_to_one_decimal(self):
        assert attach_percentage(1, 3) == 33.3
        assert attach_percentage(0, 0) == 0.0


class TestAttachRateService:
    """Tests for AttachRateService"""

    @pytest.mark.asyncio
    async def test_range_report(self, orders_repository):
        service = AttachRateService(orders_repository)

        report = await service.get_attach_rates_for_range(WINTER)

        cruiser = report.by_product["Tin Cloth Cruiser Jacket"]
        assert (cruiser.total_orders, cruiser.attach_orders) == (3, 2)
        assert cruiser.rate == 66.7
        assert report.by_variant["Duffle Bag Canvas - Tan - One Size"].rate == 100.0
        assert report.by_product["Canvas Tote"].rate == 0.0
        assert report.missing_months == []

    @pytest.mark.asyncio
    async def test_product_restriction(self, orders_repository):
        service = AttachRateService(orders_repository)

        report = await service.get_attach_rates_for_range(WINTER, ["Wool Beanie"])

        assert set(report.by_product) == {"Wool Beanie"}
        assert report.overall.total_orders == 1

    @pytest.mark.asyncio
    async def test_monthly_partials_reused(self, provider, orders_repository):
        service = AttachRateService(orders_repository)

        await service.get_attach_rates_for_range(WINTER)
        requests_after_first = len(provider.requests)
        await service.get_attach_rates_for_range(TimeRange(start_yyyymm="2024-12", end_yyyymm="2024-12"))
        await service.get_attach_rates_for_range(WINTER)

        assert service.months_calculated == 2
        assert len(provider.requests) == requests_after_first
        assert len(service.monthly_cache) == 2
        assert "2024-11" in service.monthly_cache and "2024-12" in service.monthly_cache

        service.clear_cache()
        await service.get_attach_rates_for_range(WINTER)
        assert service.months_calculated == 4

    @pytest.mark.asyncio
    async def test_failed_month_not_cached(self, provider, order_source):
        provider.put(order_source.manifest_url, {"years": {"2024": ["10", "11", "12"]}})
        service = AttachRateService(OrderRecordRepository(provider, order_source))
        autumn = TimeRange(start_yyyymm="2024-10", end_yyyymm="2024-12")

        report = await service.get_attach_rates_for_range(autumn)

        assert report.missing_months == ["2024-10"]
        assert "2024-10" not in service.monthly_cache

        provider.put("orders/2024-10.csv", "order_id,line_number,product_name\nX1,1,Wool Beanie\n")
        report = await service.get_attach_rates_for_range(autumn)

        assert report.missing_months == []
        assert report.by_product["Wool Beanie"].total_orders == 2
