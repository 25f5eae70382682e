"""Completion polling for asynchronous Azure operations.

Two flavours are supported: blocking on an SDK long-running-operation
poller, and manually refreshing a resource until it settles in a target
state for a number of consecutive observations. Both are bounded by a
Deadline that also carries the operator's stop signal.
"""

import logging
import threading
import time
from collections.abc import Callable, Collection
from typing import Any

from azure.core.exceptions import AzureError

from azure_client import translate_error
from metrics import DELETE_CONFIRMATION_POLLS
from models import AzureAPIError, OperationTimeoutError

logger = logging.getLogger(__name__)

# Longest single blocking wait, so cancellation is noticed promptly
WAIT_SLICE_SECONDS = 0.5


class Deadline:
    """Time bound for one lifecycle operation.

    ``stop_event`` is set when the handler is cancelled (kopf passes one to
    sync handlers as ``stopped``); sleeps abort as soon as it fires.
    """

    def __init__(self, timeout: float, stop_event: threading.Event | None = None) -> None:
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout
        self._stop_event = stop_event

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    @property
    def expired(self) -> bool:
        return self.cancelled or self.remaining() <= 0

    def check(self, what: str) -> None:
        """Raise OperationTimeoutError if the deadline has passed."""
        if self.cancelled:
            raise OperationTimeoutError(f"{what}: cancelled")
        if self.remaining() <= 0:
            raise OperationTimeoutError(
                f"{what}: did not complete within {self.timeout:.0f}s"
            )

    def slice(self, seconds: float = WAIT_SLICE_SECONDS) -> float:
        """Length of the next blocking wait."""
        return min(seconds, self.remaining())

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, returning early on cancellation or expiry."""
        duration = min(seconds, self.remaining())
        if duration <= 0:
            return
        if self._stop_event is not None:
            self._stop_event.wait(duration)
        else:
            time.sleep(duration)


def await_completion(poller: Any, deadline: Deadline, description: str) -> Any:
    """Block until an SDK LROPoller finishes and return its result.

    Waits in slices of WAIT_SLICE_SECONDS and raises OperationTimeoutError
    once the deadline elapses or the handler is cancelled. SDK failures are
    translated to operator errors.
    """
    deadline.check(description)
    try:
        while not poller.done():
            poller.wait(timeout=deadline.slice())
            if not poller.done():
                deadline.check(description)
        return poller.result()
    except AzureError as e:
        raise translate_error(e, description) from e


def wait_for_state(
    refresh: Callable[[], tuple[Any, str]],
    pending: Collection[str],
    target: Collection[str],
    deadline: Deadline,
    poll_interval: float = 10.0,
    continuous_target_occurence: int = 1,
    description: str = "waiting for state",
    sleep: Callable[[float], None] | None = None,
) -> Any:
    """Refresh until the target state is observed enough times in a row.

    ``refresh`` returns ``(result, state)``. A target state increments the
    consecutive counter, a pending state resets it to zero, anything else is
    an error. Returns the result of the last refresh.

    Args:
        refresh: Callable fetching the current state
        pending: States that mean "not there yet"
        target: States that mean "done"
        deadline: Overall bound for the wait
        poll_interval: Seconds between refreshes
        continuous_target_occurence: Consecutive target observations required
        description: Used in error messages
        sleep: Sleep function (default: deadline.sleep)
    """
    if continuous_target_occurence < 1:
        raise ValueError("continuous_target_occurence must be at least 1")

    sleep = sleep or deadline.sleep
    consecutive = 0
    refreshes = 0

    while True:
        deadline.check(
            f"{description} (observed target {consecutive}/"
            f"{continuous_target_occurence} times)"
        )
        result, state = refresh()
        refreshes += 1

        if state in target:
            DELETE_CONFIRMATION_POLLS.labels(state="target").inc()
            consecutive += 1
            logger.debug(
                "%s: state %r (%d/%d)", description, state, consecutive,
                continuous_target_occurence,
            )
            if consecutive >= continuous_target_occurence:
                logger.info("%s: reached %r after %d refreshes", description, state, refreshes)
                return result
        elif state in pending:
            DELETE_CONFIRMATION_POLLS.labels(state="pending").inc()
            if consecutive:
                logger.debug("%s: state %r, resetting target count", description, state)
            consecutive = 0
        else:
            raise AzureAPIError(
                f"{description}: unexpected state {state!r} "
                f"(pending {sorted(pending)}, target {sorted(target)})"
            )

        sleep(poll_interval)
