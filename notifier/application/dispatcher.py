"""Background execution of delivery work detached from the request."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class DispatchFailure:
    """Error captured from a background task."""

    label: str
    error: BaseException


class BackgroundDispatcher:
    """Run callables on a thread pool and keep track of their outcome.

    Each submission returns a :class:`~concurrent.futures.Future`. Exceptions
    raised by a task are logged and appended to :attr:`failures` before the
    future completes; they are never re-raised into the submitting code. Only
    the most recent ``max_failures`` entries are kept.
    """

    def __init__(
        self,
        max_workers: int = 4,
        *,
        thread_name_prefix: str = "notifier",
        max_failures: int = 100,
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._lock = threading.Lock()
        self._pending: set[Future] = set()
        self.failures: deque[DispatchFailure] = deque(maxlen=max_failures)

    def submit(
        self, fn: Callable[..., Any], *args: Any, label: str = "task", **kwargs: Any
    ) -> Future:
        future = self._executor.submit(self._run, label, fn, args, kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run(self, label: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Background task %s failed", label)
            with self._lock:
                self.failures.append(DispatchFailure(label=label, error=exc))
            raise

    def pop_failures(self) -> list[DispatchFailure]:
        """Return the recorded failures and forget them."""

        with self._lock:
            drained = list(self.failures)
            self.failures.clear()
        return drained

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every submitted task finished; ``False`` on timeout."""

        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_for_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["BackgroundDispatcher", "DispatchFailure"]
