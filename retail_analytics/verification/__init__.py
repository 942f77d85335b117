"""
Verification Module
"""
from .service import (
    DecisionMemory,
    ProductVerificationService,
    VerificationCandidate,
    VerificationResult,
    VerificationState,
)

__all__ = [
    "DecisionMemory",
    "ProductVerificationService",
    "VerificationCandidate",
    "VerificationResult",
    "VerificationState",
]
