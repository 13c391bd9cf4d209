"""
spa_deploy.polling — Bounded, cancellable wait for asynchronous provider operations.

Distribution deployments and invalidations complete out-of-band.  The wait
here is a bounded loop: it stops on completion, on timeout, or when the
caller sets the cancel event.  Abandoning the wait never cancels the
provider-side operation.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from spa_deploy.config import get_logger
from spa_deploy.exceptions import PollCancelled

logger = get_logger()

T = TypeVar("T")


class Waiter(Protocol):
    def wait(self, timeout: float | None = None) -> bool: ...

    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    value: T
    completed: bool
    elapsed_seconds: float
    attempts: int


def _cancelled_message(description: str) -> str:
    return f"Stopped waiting for {description}; it continues in the background"


def poll_until(
    check: Callable[[], T],
    *,
    is_done: Callable[[T], bool],
    timeout_seconds: float,
    interval_seconds: float,
    cancel: Waiter | None = None,
    clock: Callable[[], float] = time.monotonic,
    description: str = "operation",
) -> PollOutcome[T]:
    """Call check() until is_done(value), the timeout passes, or cancel is set.

    Returns the last observed value; completed is False on timeout.
    Raises PollCancelled when cancel is set at an interval boundary.
    Exceptions from check() propagate unchanged.
    """
    waiter: Waiter = cancel if cancel is not None else threading.Event()
    start = clock()
    attempts = 0
    while True:
        if waiter.is_set():
            raise PollCancelled(_cancelled_message(description))
        value = check()
        attempts += 1
        elapsed = clock() - start
        if is_done(value):
            return PollOutcome(value, completed=True, elapsed_seconds=elapsed, attempts=attempts)
        if elapsed >= timeout_seconds:
            return PollOutcome(value, completed=False, elapsed_seconds=elapsed, attempts=attempts)
        logger.debug(
            "Waiting for provider operation",
            operation=description,
            status=str(value),
            elapsed_seconds=round(elapsed, 1),
        )
        if waiter.wait(min(interval_seconds, timeout_seconds - elapsed)):
            raise PollCancelled(_cancelled_message(description))
