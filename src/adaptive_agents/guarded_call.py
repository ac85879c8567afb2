"""Timeouts and cancellation for blocking calls to external collaborators."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, TypeVar

from .errors import BackendTimeoutError, SessionCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag shared by one session."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation; in-flight calls stop waiting."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise SessionCancelled if cancellation was requested."""
        if self._event.is_set():
            raise SessionCancelled(self.reason or "cancelled")


def call_with_timeout(
    fn: Callable[..., T],
    *args: Any,
    timeout: Optional[float],
    cancel_token: Optional[CancellationToken] = None,
    operation: str = "call",
    poll_interval: float = 0.05,
    on_abandoned_result: Optional[Callable[[T], None]] = None,
) -> T:
    """Run a blocking call with a timeout and an optional cancellation token.

    Exceptions raised by ``fn`` propagate unchanged. A timed out or
    cancelled call is abandoned on its worker thread; the caller is never
    blocked waiting for it. If such a call later returns a value,
    ``on_abandoned_result`` receives it on the worker thread so owned
    resources can be released.
    """
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
    if timeout is None and cancel_token is None:
        return fn(*args)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="guarded-call")
    future = executor.submit(fn, *args)
    try:
        if cancel_token is None:
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                _abandon(future, on_abandoned_result, operation)
                raise BackendTimeoutError(operation, timeout)

        waited = 0.0
        while True:
            step = poll_interval if timeout is None else min(poll_interval, max(timeout - waited, 0.0))
            try:
                return future.result(timeout=step)
            except FutureTimeoutError:
                waited += step
            if cancel_token.cancelled:
                _abandon(future, on_abandoned_result, operation)
                logger.warning("%s cancelled: %s", operation, cancel_token.reason)
                raise SessionCancelled(cancel_token.reason or "cancelled")
            if timeout is not None and waited >= timeout:
                _abandon(future, on_abandoned_result, operation)
                raise BackendTimeoutError(operation, timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _abandon(future: Future, on_abandoned_result: Optional[Callable[[Any], None]], operation: str) -> None:
    """Cancel a pending call, or route its eventual value to ``on_abandoned_result``."""
    if future.cancel() or on_abandoned_result is None:
        return

    def _deliver(done: Future) -> None:
        if done.cancelled() or done.exception() is not None:
            return
        logger.warning("%s returned after it was abandoned; handing off its result", operation)
        on_abandoned_result(done.result())

    future.add_done_callback(_deliver)
