"""Bounded collaborator calls and cooperative cancellation.

Every external call (publish, read state, apply, verify) goes through
``call_with_timeout`` so each one has a time budget. The call runs
on a worker thread; if it does not return in time the caller gets a
``CallTimeoutError``. Read-only calls abandon the worker; mutating calls
pass ``settle=True`` so the caller waits for the worker to finish before
recovering, and no late write lands after the caller has moved on. Drivers
also receive the timeout and are expected to bound their own work with it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, TypeVar

from helmsman.core.errors import CallTimeoutError, PipelineCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[..., T],
    *args: Any,
    seconds: float,
    description: str = "",
    settle: bool = False,
    **kwargs: Any,
) -> T:
    """Call ``fn(*args, **kwargs)`` and wait at most *seconds* seconds.

    Exceptions raised by *fn* propagate unchanged.

    With *settle*, a call that overruns is still waited for before the
    timeout is raised, so whatever side effect it has has landed by the
    time the caller handles the error.

    Raises
    ------
    CallTimeoutError
        If *fn* has not returned within *seconds* seconds.
    """
    label = description or getattr(fn, "__qualname__", repr(fn))
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="helmsman-call")
    try:
        future = pool.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=seconds)
        except FutureTimeoutError:
            logger.error("%s timed out after %.1fs", label, seconds)
            if settle:
                _wait_for_worker(future, label)
            else:
                future.cancel()
            raise CallTimeoutError(
                f"{label} did not complete within {seconds:g}s"
            ) from None
    finally:
        pool.shutdown(wait=False)


def _wait_for_worker(future: Future[Any], label: str) -> None:
    logger.warning("Waiting for overrunning %s to finish", label)
    late_error = future.exception()
    if late_error is not None:
        logger.error("%s failed after its timeout: %s", label, late_error)
    else:
        logger.warning("%s completed after its timeout", label)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a run.

    Cancelling never interrupts an in-flight stage; the StageRunner checks
    the token between stages only.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(self._reason or "cancelled")
