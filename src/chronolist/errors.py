"""Exception hierarchy shared by the matching and playlist layers."""

from __future__ import annotations

from typing import Any, List, Optional


class TimelineError(Exception):
    """Base class for chronolist errors."""


class InvalidInputError(TimelineError, ValueError):
    """Raised when a caller passes structurally invalid input (None lists, blank names)."""


class BackendError(TimelineError):
    """Raised when a library or playlist backend call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """Backend could not serve the request.

    ``total_loss`` marks the backend as unreachable altogether (connection
    refused, DNS failure) rather than a single failing request.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        total_loss: bool = False,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.total_loss = total_loss


class BackendTimeoutError(BackendError):
    """A bounded backend operation exceeded its timeout."""

    def __init__(self, message: str, *, timeout: Optional[float] = None) -> None:
        super().__init__(message)
        self.timeout = timeout


class PermissionDeniedError(BackendError):
    """Backend rejected the credentials or the owner lacks access."""


class ItemNotFoundError(BackendError):
    """Backend does not know the referenced playlist or item."""


class OperationCancelledError(TimelineError):
    """Caller-requested cancellation.

    Carries whatever results were completed before the cancellation was
    observed; those results stay valid.
    """

    def __init__(self, message: str = "Operation cancelled", partial_results: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.partial_results: List[Any] = list(partial_results or [])


class RunAbortedError(TimelineError):
    """A critical system failure stopped a batch before all work was processed."""

    def __init__(self, message: str, *, record: Any = None, partial_results: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.record = record
        self.partial_results: List[Any] = list(partial_results or [])
