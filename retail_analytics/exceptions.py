"""
Engine Exceptions

Transport failures are reported per partition and rarely escape the
repositories; the classes below mark the cases that do.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for engine errors"""


class FetchError(AnalyticsError):
    """A flat file could not be fetched"""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ManifestError(AnalyticsError):
    """The partition manifest could not be fetched or understood"""


class VerificationStateError(AnalyticsError):
    """Verification continuation was called without a pending verification"""
