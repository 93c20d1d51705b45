"""Bounded polling and cooperative cancellation.

The provider finishes terminations and deletions asynchronously. Handlers
that must observe a terminal state poll with a Poller, which gives up with a
WaitTimeoutError once its deadline passes. Every sleep happens on the
CancellationToken, so cancelling the token interrupts an active poll
promptly.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Upper bound for any single termination wait
DEFAULT_WAIT_TIMEOUT_SECONDS = 300.0

# Matches the delay of the boto3 instance_terminated waiter
DEFAULT_POLL_INTERVAL_SECONDS = 15.0


class TeardownCancelledError(Exception):
    """Raised when the run was cancelled before or during an operation."""


class WaitTimeoutError(Exception):
    """A bounded wait reached its deadline before the condition held."""

    def __init__(self, description: str, timeout_seconds: float):
        self.description = description
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timed out after {timeout_seconds:.0f}s waiting for {description}")


class CancellationToken:
    """Thread-safe cancellation signal shared by every outbound call."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TeardownCancelledError(f"Teardown {self._reason}")

    def sleep(self, seconds: float) -> None:
        """Sleep for up to seconds, raising as soon as the token is cancelled."""
        if seconds > 0 and self._event.wait(seconds):
            self.raise_if_cancelled()
        self.raise_if_cancelled()


class Poller:
    """Poll a predicate until it holds or the deadline passes."""

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token = token or CancellationToken()
        self.interval_seconds = max(0.0, interval_seconds)
        self.timeout_seconds = max(0.0, timeout_seconds)
        self._clock = clock

    def wait_until(self, predicate: Callable[[], bool], description: str) -> int:
        """Block until predicate() returns True.

        Args:
            predicate: Condition to evaluate on every poll. Exceptions it raises
                propagate to the caller unchanged.
            description: Human-readable description used in logs and errors.

        Returns:
            Number of polls performed.

        Raises:
            WaitTimeoutError: If the deadline passes first.
            TeardownCancelledError: If the token is cancelled while waiting.
        """
        deadline = self._clock() + self.timeout_seconds
        polls = 0
        logger.info(f"Waiting for {description}")

        while True:
            self.token.raise_if_cancelled()
            polls += 1
            if predicate():
                logger.debug(f"Done waiting for {description} after {polls} poll(s)")
                return polls

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise WaitTimeoutError(description, self.timeout_seconds)

            self.token.sleep(min(self.interval_seconds, remaining))
