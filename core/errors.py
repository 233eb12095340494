"""
Error taxonomy for homework analysis.

Only NoContentError and BackendUnavailableError are ever surfaced to the
caller of the pipeline. DecodeError and BackendError are raised per segment
and absorbed by the orchestrator.
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for all analysis errors."""


class NoContentError(AnalysisError):
    """No OCR content to analyze (empty input after segmentation)."""

    def __init__(self, message: str = "No text content detected on the page"):
        super().__init__(message)


class BackendUnavailableError(AnalysisError):
    """The selected backend cannot be used at all for this run."""

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        message = f"Analysis backend '{backend}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DecodeError(AnalysisError):
    """Backend response could not be decoded into exercises."""


class BackendError(AnalysisError):
    """A single backend call failed."""


class BackendTimeoutError(BackendError):
    """The backend did not answer within its timeout."""

    def __init__(self, message: str = "Request timed out. The server took too long to respond."):
        super().__init__(message)


class BackendServerError(BackendError):
    """The backend answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body or ""
        if status_code >= 500:
            message = f"Server is temporarily unavailable ({status_code})"
        else:
            message = f"Server error ({status_code}): {self.body[:200]}"
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.status_code >= 500


class BackendTransportError(BackendError):
    """Connection-level failure talking to the backend."""
