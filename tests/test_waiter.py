"""Tests for bounded polling and cancellation."""

import threading

import pytest

from vpcreaper.cleanup.waiter import (
    CancellationToken,
    Poller,
    TeardownCancelledError,
    WaitTimeoutError,
)


class FakeClock:
    """Monotonic clock advanced by the token's sleeps."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class SteppingToken(CancellationToken):
    """Token whose sleep advances a fake clock instead of blocking."""

    def __init__(self, clock: FakeClock):
        super().__init__()
        self.clock = clock
        self.sleeps = []

    def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.clock.now += seconds


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_not_cancelled_by_default(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_raises_with_reason(self):
        token = CancellationToken()
        token.cancel("cancelled by SIGINT")

        assert token.cancelled
        with pytest.raises(TeardownCancelledError, match="SIGINT"):
            token.raise_if_cancelled()

    def test_sleep_zero_returns_immediately(self):
        CancellationToken().sleep(0)

    def test_sleep_interrupted_by_cancel(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            with pytest.raises(TeardownCancelledError):
                token.sleep(30)
        finally:
            timer.cancel()


class TestPoller:
    """Tests for Poller.wait_until."""

    def test_returns_immediately_when_condition_holds(self):
        poller = Poller(interval_seconds=0, timeout_seconds=1)
        assert poller.wait_until(lambda: True, "ready") == 1

    def test_polls_until_condition_holds(self):
        clock = FakeClock()
        token = SteppingToken(clock)
        results = iter([False, False, True])
        poller = Poller(token=token, interval_seconds=5, timeout_seconds=60, clock=clock)

        polls = poller.wait_until(lambda: next(results), "ready")

        assert polls == 3
        assert token.sleeps == [5, 5]

    def test_times_out_at_deadline(self):
        clock = FakeClock()
        token = SteppingToken(clock)
        poller = Poller(token=token, interval_seconds=10, timeout_seconds=25, clock=clock)

        with pytest.raises(WaitTimeoutError) as exc_info:
            poller.wait_until(lambda: False, "never")

        assert exc_info.value.description == "never"
        # Last sleep is trimmed to the remaining time
        assert token.sleeps == [10, 10, 5]

    def test_cancelled_token_stops_wait(self):
        token = CancellationToken()
        token.cancel()
        poller = Poller(token=token, interval_seconds=0, timeout_seconds=5)
        predicate_calls = []

        with pytest.raises(TeardownCancelledError):
            poller.wait_until(lambda: predicate_calls.append(1) or False, "anything")

        assert predicate_calls == []

    def test_predicate_errors_propagate(self):
        poller = Poller(interval_seconds=0, timeout_seconds=5)

        def broken():
            raise RuntimeError("describe failed")

        with pytest.raises(RuntimeError, match="describe failed"):
            poller.wait_until(broken, "broken")

    def test_timeout_error_is_not_a_client_error(self):
        from botocore.exceptions import ClientError

        assert not issubclass(WaitTimeoutError, ClientError)
