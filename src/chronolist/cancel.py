"""Cancellation tokens and bounded backend calls."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Optional, TypeVar

from .errors import BackendTimeoutError, OperationCancelledError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Thread-safe cancellation token backed by ``threading.Event``.

    Tokens are single-use: once cancelled, create a new one for the next run.
    Workers call :meth:`raise_if_cancelled` at loop boundaries; any thread may
    call :meth:`cancel`. A token created with a ``parent`` also reports the
    parent's cancellation, while cancelling the child leaves the parent alone.
    """

    __slots__ = ("_event", "_reason", "_parent")

    def __init__(self, parent: Optional[CancelToken] = None) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._parent = parent

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason and self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set() or self._parent is None:
            return self._reason
        return self._parent.reason

    def raise_if_cancelled(self, partial_results: Optional[list] = None) -> None:
        if self.is_cancelled:
            reason = self.reason
            message = f"Cancelled: {reason}" if reason else "Cancelled by caller"
            raise OperationCancelledError(message, partial_results=partial_results)


def check_cancelled(token: Optional[CancelToken], partial_results: Optional[list] = None) -> None:
    """Raise ``OperationCancelledError`` when ``token`` has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(partial_results)


def call_with_timeout(
    func: Callable[..., T],
    *args: object,
    timeout: Optional[float],
    operation: str,
    **kwargs: object,
) -> T:
    """Run ``func`` and raise ``BackendTimeoutError`` if it does not finish in time.

    A timeout of ``None`` or ``<= 0`` calls ``func`` directly. The timed-out
    call is abandoned, never retried here.
    """
    if not timeout or timeout <= 0:
        return func(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chronolist-call")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError as exc:
        future.cancel()
        LOGGER.warning("%s exceeded %.1fs timeout", operation, timeout)
        raise BackendTimeoutError(f"{operation} timed out after {timeout:g}s", timeout=timeout) from exc
    finally:
        executor.shutdown(wait=False)
