# influx_catalog/consistency/visibility.py
# Retry/wait policy for the eventual-consistency window between an accepted write and the data
# being queryable. Instead of one blind sleep the query itself is polled with bounded backoff.
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Set

from loguru import logger

from influx_catalog.errors import (
    OperationCancelledError,
    QueryError,
    ServerNotReadyError,
    VisibilityTimeoutError,
)


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff bounded by a total wait budget.

    delays() yields initial_delay, initial_delay*multiplier, ... capped at max_delay per step.
    The last delay is clipped so the sum never exceeds max_wait.
    """

    initial_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 5.0
    max_wait: float = 30.0

    def __post_init__(self):
        if self.initial_delay <= 0 or self.max_delay <= 0 or self.max_wait <= 0:
            raise ValueError("Backoff delays must be positive")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be >= 1")

    def delays(self) -> Iterator[float]:
        waited = 0.0
        delay = min(self.initial_delay, self.max_delay)
        while waited < self.max_wait:
            step = min(delay, self.max_wait - waited)
            waited += step
            yield step
            delay = min(delay * self.multiplier, self.max_delay)


@dataclass(frozen=True)
class FixedDelayPolicy:
    """Single fixed delay, then one attempt."""

    delay: float = 2.0

    def delays(self) -> Iterator[float]:
        yield self.delay


def _pause(delay: float, cancel: Optional[threading.Event], sleep: Callable[[float], None]):
    if cancel is None:
        sleep(delay)
        return
    if cancel.is_set() or cancel.wait(delay):
        raise OperationCancelledError("Wait cancelled")


def wait_for_measurements(catalog, bucket: str, expected: Iterable[str], start="-5y", stop=None,
                          policy=None, cancel: Optional[threading.Event] = None,
                          sleep: Callable[[float], None] = time.sleep) -> Set[str]:
    """
    Poll catalog.list_measurements() until every expected name is visible.

    A short result is a transient view, not an error: it is retried until the policy is exhausted.
    Transport query failures are retried as well; malformed queries are raised at once.

    Returns:
        the last observed set (a superset of expected)
    Raises:
        VisibilityTimeoutError: expected names still missing once the policy is exhausted
        OperationCancelledError: cancel was set while waiting
    """
    expected = set(expected)
    policy = policy or BackoffPolicy()
    observed: Set[str] = set()
    attempts = 0
    succeeded = False
    last_error = None
    for delay in policy.delays():
        _pause(delay, cancel, sleep)
        attempts += 1
        try:
            observed = catalog.list_measurements(bucket, start=start, stop=stop)
        except QueryError as exc:
            if not exc.retryable:
                raise
            last_error = exc
            logger.warning("Catalog query attempt {} failed, retrying: {}", attempts, exc)
            continue
        succeeded = True
        missing = expected - observed
        if not missing:
            logger.debug("All {} measurement(s) visible after {} attempt(s)", len(expected), attempts)
            return observed
        logger.debug("Attempt {}: {} of {} measurement(s) visible", attempts, len(expected) - len(missing), len(expected))

    # an answered query, even an empty one, makes this a visibility timeout
    if last_error is not None and not succeeded:
        raise last_error
    raise VisibilityTimeoutError(expected, observed)


def wait_for_server(session, policy=None, cancel: Optional[threading.Event] = None,
                    sleep: Callable[[float], None] = time.sleep):
    """Block until session.ping() answers, with the same bounded backoff."""
    policy = policy or BackoffPolicy()
    attempts = 0
    if session.ping():
        return
    for delay in policy.delays():
        _pause(delay, cancel, sleep)
        attempts += 1
        if session.ping():
            logger.info("Server ready after {} attempt(s)", attempts + 1)
            return
    raise ServerNotReadyError(f"Server at {session.url} did not answer /ping after {attempts + 1} attempt(s)")
