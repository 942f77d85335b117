"""
Search Module
"""
from .facets import OrdersProductFacets, ProductFacetSummary
from .keyword_index import (
    InvertedIndex,
    KeywordSearchResult,
    OrdersKeywordIndex,
    SearchOperator,
    tokenize,
)

__all__ = [
    "OrdersProductFacets",
    "ProductFacetSummary",
    "InvertedIndex",
    "KeywordSearchResult",
    "OrdersKeywordIndex",
    "SearchOperator",
    "tokenize",
]
