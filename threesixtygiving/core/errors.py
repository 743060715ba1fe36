"""
Exception types raised by the threesixtygiving pipeline.

Per-dataset fetch and parse problems never escape the batch runner; they are
recorded as FetchFailure values. Only registry and unifier errors reach the
caller.
"""

from typing import Optional


class ThreeSixtyGivingError(Exception):
    """Base class for all pipeline errors."""


class RegistryUnavailable(ThreeSixtyGivingError):
    """The registry endpoint could not be reached or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RegistryParseError(ThreeSixtyGivingError):
    """The registry response was not a list of dataset descriptors."""


class ParseError(ThreeSixtyGivingError):
    """
    A downloaded dataset was structurally invalid.

    Args:
        reason: Human-readable explanation
        descriptor: DatasetDescriptor the payload came from
    """

    def __init__(self, reason: str, descriptor=None):
        label = getattr(descriptor, "identifier", None)
        super().__init__(f"{label}: {reason}" if label else reason)
        self.reason = reason
        self.descriptor = descriptor


class EmptyBatchResult(ThreeSixtyGivingError):
    """A batch result contained no successfully parsed datasets."""
