"""
Product Verification

Checkpoint between the product names that orders reveal and the names the
catalog search and the user already know about. Every order-derived name
lands in exactly one state:

- FILTERED_OUT: does not contain every search term, dropped
- APPROVED: selected by the user, or the user selected nothing
- REJECTED: returned by the catalog search but not selected
- PENDING: in neither the catalog results nor the selection

Pending names are held back until the user approves them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

import structlog

from retail_analytics.models import OrderLineItem, Product

logger = structlog.get_logger(__name__)

ProductRef = Union[Product, str, Mapping[str, Any]]

_APPROVED_CHOICES = {"approved", "approve", "yes", "true"}


class VerificationState(str, Enum):
    FILTERED_OUT = "filtered_out"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


@dataclass
class VerificationCandidate:
    """A product name found in orders but unknown to catalog and selection"""
    name: str
    order_count: int
    total_quantity: float
    orders: List[OrderLineItem] = field(default_factory=list)


@dataclass
class VerificationResult:
    approved_results: List[OrderLineItem] = field(default_factory=list)
    discovered_products: List[VerificationCandidate] = field(default_factory=list)
    approved_names: Set[str] = field(default_factory=set)
    rejected_names: Set[str] = field(default_factory=set)
    filtered_out_names: Set[str] = field(default_factory=set)

    @property
    def needs_verification(self) -> bool:
        return bool(self.discovered_products)

    @property
    def pending_names(self) -> Set[str]:
        return {c.name for c in self.discovered_products}


def product_ref_name(product: ProductRef) -> str:
    """Title of a catalog product, a dict with ``title``/``name``, or a plain name"""
    if isinstance(product, Product):
        return product.title
    if isinstance(product, str):
        return product
    return str(product.get("title") or product.get("name") or "")


def is_approved_choice(choice: Any) -> bool:
    if isinstance(choice, bool):
        return choice
    if isinstance(choice, str):
        return choice.strip().lower() in _APPROVED_CHOICES
    return False


class DecisionMemory:
    """
    In-process record of user approvals and rejections.

    Only consulted when verification is constructed with it; by default every
    query re-verifies discovered names.
    """

    def __init__(self):
        self._decisions: Dict[str, bool] = {}

    def recall(self, name: str) -> Optional[bool]:
        return self._decisions.get(name)

    def remember(self, choices: Mapping[str, Any]) -> None:
        for name, choice in choices.items():
            self._decisions[name] = is_approved_choice(choice)

    def clear(self) -> None:
        self._decisions.clear()

    def __len__(self) -> int:
        return len(self._decisions)


class ProductVerificationService:
    """
    Splits order lines by product name into approved, rejected and pending.

    Example:
        service = ProductVerificationService()
        result = service.filter_and_verify(rows, catalog_matches, selected, ["tin", "cloth"])
        if result.needs_verification:
            extra = service.process_user_verification(result.discovered_products, {"Tin Cloth Packer Jacket": True})
    """

    def __init__(self, decision_memory: Optional[DecisionMemory] = None):
        self.decision_memory = decision_memory

    @staticmethod
    def group_orders_by_product_name(order_rows: Iterable[OrderLineItem]) -> Dict[str, List[OrderLineItem]]:
        """Lines per product name in first-seen order; nameless lines are skipped"""
        groups: Dict[str, List[OrderLineItem]] = {}
        for row in order_rows:
            if row.product_name:
                groups.setdefault(row.product_name, []).append(row)
        return groups

    @staticmethod
    def contains_all_search_terms(product_name: str, search_terms: Optional[Sequence[str]]) -> bool:
        if not search_terms:
            return True
        name = product_name.lower()
        return all(term.lower() in name for term in search_terms)

    def classify(
        self,
        product_name: str,
        catalog_names: Set[str],
        selected_names: Set[str],
        search_terms: Optional[Sequence[str]] = None,
    ) -> VerificationState:
        if not self.contains_all_search_terms(product_name, search_terms):
            return VerificationState.FILTERED_OUT
        if not selected_names or product_name in selected_names:
            return VerificationState.APPROVED
        if product_name in catalog_names:
            return VerificationState.REJECTED
        if self.decision_memory is not None:
            remembered = self.decision_memory.recall(product_name)
            if remembered is not None:
                return VerificationState.APPROVED if remembered else VerificationState.REJECTED
        return VerificationState.PENDING

    def filter_and_verify(
        self,
        order_rows: Sequence[OrderLineItem],
        catalog_results: Iterable[ProductRef],
        user_selected: Iterable[ProductRef],
        search_terms: Optional[Sequence[str]] = None,
    ) -> VerificationResult:
        """
        Reconcile order lines against catalog results and the user selection.

        Args:
            order_rows: Time filtered order lines
            catalog_results: Products the catalog search returned
            user_selected: Products the user checked
            search_terms: Terms every kept name must contain

        Returns:
            VerificationResult; ``needs_verification`` is a pause, not a failure
        """
        groups = self.group_orders_by_product_name(order_rows)
        catalog_names = {product_ref_name(p) for p in catalog_results} - {""}
        selected_names = {product_ref_name(p) for p in user_selected} - {""}

        result = VerificationResult()
        for name, lines in groups.items():
            state = self.classify(name, catalog_names, selected_names, search_terms)
            if state == VerificationState.FILTERED_OUT:
                result.filtered_out_names.add(name)
            elif state == VerificationState.APPROVED:
                result.approved_names.add(name)
                result.approved_results.extend(lines)
            elif state == VerificationState.REJECTED:
                result.rejected_names.add(name)
            else:
                result.discovered_products.append(
                    VerificationCandidate(
                        name=name,
                        order_count=len(lines),
                        total_quantity=sum(line.quantity or 1 for line in lines),
                        orders=list(lines),
                    )
                )

        logger.info(
            "Product verification checkpoint",
            rows=len(order_rows),
            approved=len(result.approved_names),
            rejected=len(result.rejected_names),
            pending=len(result.discovered_products),
            filtered_out=len(result.filtered_out_names),
        )
        return result

    def process_user_verification(
        self,
        discovered_products: Sequence[VerificationCandidate],
        user_choices: Mapping[str, Any],
    ) -> List[OrderLineItem]:
        """Lines of every candidate the user approved; unanswered means rejected"""
        additional: List[OrderLineItem] = []
        for candidate in discovered_products:
            if is_approved_choice(user_choices.get(candidate.name)):
                additional.extend(candidate.orders)
            else:
                logger.debug("Discovered product rejected", product=candidate.name)

        if self.decision_memory is not None:
            self.decision_memory.remember(
                {c.name: user_choices.get(c.name, False) for c in discovered_products}
            )
        return additional
