"""Exception hierarchy for the analysis request lifecycle."""

from __future__ import annotations


class ChartSignalError(Exception):
    """Base class for all errors raised by chart_signal."""


class PreconditionError(ChartSignalError):
    """Analyze was requested without the inputs it needs."""


class MissingImageError(PreconditionError):
    def __init__(self, message: str = "Please upload an image first.") -> None:
        super().__init__(message)


class NotAuthenticatedError(PreconditionError):
    def __init__(self, message: str = "Please sign in to analyze images.") -> None:
        super().__init__(message)


class TransportError(ChartSignalError):
    """Network failure or non-success status from a remote endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SchemaError(ChartSignalError):
    """Remote response did not carry the expected payload."""


class InvalidImageError(ChartSignalError):
    """Image payload has a disallowed encoding or exceeds the size bound."""


class VisionServiceError(ChartSignalError):
    """Vision model call failed or returned nothing usable."""


class OutcomeError(ChartSignalError):
    """Trade outcome marked without a result, or marked twice."""


class AnalysisInProgressError(ChartSignalError):
    """The image cannot change while a request is in flight."""
