"""
Review Core Errors

Typed errors surfaced verbatim to callers. The core performs no retries
and no silent recovery.
"""

from typing import Optional


class ReviewCoreError(Exception):
    """Base class for all review core errors"""


class ScreeningError(ReviewCoreError):
    """A screening decision could not be recorded; no state was changed"""

    def __init__(self, message: str, reference_id: Optional[int] = None, phase=None):
        super().__init__(message)
        self.reference_id = reference_id
        self.phase = phase


class InvalidTransition(ScreeningError):
    """Verdict not allowed from the reference's current screening state"""


class MissingExclusionReason(ScreeningError):
    """Exclude verdict recorded without a reason"""


class ReferenceNotFound(ScreeningError):
    """Decision requested for an unknown reference id"""


class CustomFieldError(ReviewCoreError):
    """Custom field value rejected by its declared schema"""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column
