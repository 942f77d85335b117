"""
Unit Tests - Product Verification
"""
import pytest

from retail_analytics.models import OrderLineItem, Product
from retail_analytics.verification.service import (
    DecisionMemory,
    ProductVerificationService,
    VerificationState,
)


def line(order_id, product_name, quantity=1):
    return OrderLineItem(order_id=order_id, product_name=product_name, quantity=quantity)


@pytest.fixture
def order_rows():
    return [
        line("1", "Tin Cloth Cruiser Jacket"),
        line("2", "Tin Cloth Cruiser Jacket"),
        line("3", "Tin Cloth Packer Jacket", quantity=2),
        line("4", "Tin Cloth Vest"),
        line("5", "Tin Cloth Work Jacket"),
        line("6", "Wool Beanie"),
        line("7", ""),
    ]


CATALOG = [
    Product(product_id="p1", title="Tin Cloth Cruiser Jacket"),
    Product(product_id="p2", title="Tin Cloth Work Jacket"),
]
TERMS = ["tin", "cloth", "jacket"]


class TestFilterAndVerify:
    """Tests for the verification checkpoint"""

    def test_states(self, order_rows):
        service = ProductVerificationService()

        result = service.filter_and_verify(order_rows, CATALOG, [CATALOG[0]], TERMS)

        assert result.approved_names == {"Tin Cloth Cruiser Jacket"}
        assert result.rejected_names == {"Tin Cloth Work Jacket"}
        assert result.pending_names == {"Tin Cloth Packer Jacket"}
        assert result.filtered_out_names == {"Tin Cloth Vest", "Wool Beanie"}
        assert result.needs_verification
        assert [r.order_id for r in result.approved_results] == ["1", "2"]

        candidate = result.discovered_products[0]
        assert candidate.order_count == 1
        assert candidate.total_quantity == 2
        assert candidate.orders[0].order_id == "3"

    def test_partition_law(self, order_rows):
        service = ProductVerificationService()
        matching = {
            r.product_name for r in order_rows
            if r.product_name and service.contains_all_search_terms(r.product_name, TERMS)
        }

        for selected in ([], [CATALOG[0]], CATALOG, ["Tin Cloth Packer Jacket"]):
            result = service.filter_and_verify(order_rows, CATALOG, selected, TERMS)
            approved, rejected, pending = result.approved_names, result.rejected_names, result.pending_names

            assert approved | rejected | pending == matching
            assert not approved & rejected
            assert not approved & pending
            assert not rejected & pending

    def test_empty_selection_approves_all_matches(self, order_rows):
        result = ProductVerificationService().filter_and_verify(order_rows, CATALOG, [], TERMS)

        assert not result.needs_verification
        assert len(result.approved_results) == 4

    def test_accepts_names_and_dicts(self, order_rows):
        result = ProductVerificationService().filter_and_verify(
            order_rows,
            [{"title": "Tin Cloth Cruiser Jacket"}, {"name": "Tin Cloth Work Jacket"}],
            ["Tin Cloth Work Jacket"],
            TERMS,
        )

        assert result.approved_names == {"Tin Cloth Work Jacket"}
        assert result.rejected_names == {"Tin Cloth Cruiser Jacket"}

    def test_no_search_terms_matches_everything(self):
        service = ProductVerificationService()

        assert service.classify("Wool Beanie", set(), set(), None) == VerificationState.APPROVED
        assert service.contains_all_search_terms("Wool Beanie", [])


class TestUserVerification:
    """Tests for processing user choices"""

    def test_approved_choices_add_lines(self, order_rows):
        service = ProductVerificationService()
        result = service.filter_and_verify(order_rows, [], [CATALOG[0]], ["tin"])

        added = service.process_user_verification(
            result.discovered_products,
            {"Tin Cloth Packer Jacket": True, "Tin Cloth Vest": "approved", "Tin Cloth Work Jacket": "rejected"},
        )

        assert sorted(r.order_id for r in added) == ["3", "4"]

    def test_every_query_reverifies_by_default(self, order_rows):
        service = ProductVerificationService()
        first = service.filter_and_verify(order_rows, CATALOG, [CATALOG[0]], TERMS)
        service.process_user_verification(first.discovered_products, {"Tin Cloth Packer Jacket": True})

        second = service.filter_and_verify(order_rows, CATALOG, [CATALOG[0]], TERMS)

        assert second.pending_names == {"Tin Cloth Packer Jacket"}

    def test_decision_memory_resolves_known_names(self, order_rows):
        memory = DecisionMemory()
        service = ProductVerificationService(decision_memory=memory)
        first = service.filter_and_verify(order_rows, [], [CATALOG[0]], ["tin"])
        service.process_user_verification(first.discovered_products, {"Tin Cloth Packer Jacket": True})

        second = service.filter_and_verify(order_rows, [], [CATALOG[0]], ["tin"])

        assert "Tin Cloth Packer Jacket" in second.approved_names
        assert {"Tin Cloth Vest", "Tin Cloth Work Jacket"} <= second.rejected_names
        assert not second.needs_verification

        memory.clear()
        third = service.filter_and_verify(order_rows, [], [CATALOG[0]], ["tin"])
        assert third.pending_names == {"Tin Cloth Packer Jacket", "Tin Cloth Vest", "Tin Cloth Work Jacket"}
