"""
Analytics Module
"""
from .filters import apply_product, apply_time
from .service import (
    AnalyticsEngine,
    QueryResult,
    VerificationContext,
    VerificationRequired,
)

__all__ = [
    "apply_product",
    "apply_time",
    "AnalyticsEngine",
    "QueryResult",
    "VerificationContext",
    "VerificationRequired",
]
