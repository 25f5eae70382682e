"""Tests for completion polling."""

import threading
import time

import pytest
from azure.core.exceptions import HttpResponseError
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError

from conftest import FakePoller
from models import AzureAPIError, OperationTimeoutError, ResourceNotFoundError
from polling import WAIT_SLICE_SECONDS, Deadline, await_completion, wait_for_state


def _sequence(states):
    """Refresh function returning the given states in order."""
    calls = []
    remaining = list(states)

    def refresh():
        state = remaining.pop(0)
        calls.append(state)
        return state, state

    return refresh, calls


class TestDeadline:
    """Tests for Deadline."""

    def test_remaining_never_negative(self):
        assert Deadline(0).remaining() == 0.0

    def test_check_raises_when_expired(self):
        with pytest.raises(OperationTimeoutError, match="did not complete within"):
            Deadline(0).check("waiting for thing")

    def test_check_raises_when_cancelled(self):
        stopped = threading.Event()
        stopped.set()

        with pytest.raises(OperationTimeoutError, match="cancelled"):
            Deadline(60, stop_event=stopped).check("waiting for thing")

    def test_sleep_returns_early_when_stopped(self):
        stopped = threading.Event()
        stopped.set()
        deadline = Deadline(60, stop_event=stopped)

        deadline.sleep(30)  # Returns immediately

        assert deadline.cancelled


class TestAwaitCompletion:
    """Tests for await_completion."""

    def test_returns_result(self):
        poller = FakePoller(result="done")

        assert await_completion(poller, Deadline(60), "waiting") == "done"
        assert poller.waits == []

    def test_waits_in_slices(self):
        poller = FakePoller(result="done", waits_until_done=3)

        assert await_completion(poller, Deadline(60), "waiting") == "done"
        assert poller.waits == [WAIT_SLICE_SECONDS] * 3

    def test_not_done_is_timeout(self):
        poller = FakePoller(result=None, done=False)

        with pytest.raises(OperationTimeoutError, match="did not complete within"):
            await_completion(poller, Deadline(0.3), "waiting")
        assert poller.awaited is False

    def test_cancellation_ends_wait(self):
        poller = FakePoller(result=None, done=False)
        stopped = threading.Event()
        threading.Timer(0.1, stopped.set).start()

        start = time.monotonic()
        with pytest.raises(OperationTimeoutError, match="cancelled"):
            await_completion(poller, Deadline(30, stopped), "waiting")

        assert time.monotonic() - start < 2

    def test_translates_not_found(self):
        poller = FakePoller(error=AzureResourceNotFoundError("gone"))

        with pytest.raises(ResourceNotFoundError):
            await_completion(poller, Deadline(60), "waiting")

    def test_translates_other_errors(self):
        poller = FakePoller(error=HttpResponseError(message="Conflict"))

        with pytest.raises(AzureAPIError, match="Conflict"):
            await_completion(poller, Deadline(60), "waiting")

    def test_expired_deadline_does_not_wait(self):
        poller = FakePoller(result="done")

        with pytest.raises(OperationTimeoutError):
            await_completion(poller, Deadline(0), "waiting")
        assert poller.waits == []
        assert poller.awaited is False


class TestWaitForState:
    """Tests for wait_for_state."""

    def test_single_target(self):
        refresh, calls = _sequence(["200", "200", "404"])

        result = wait_for_state(
            refresh, pending={"200"}, target={"404"}, deadline=Deadline(60), sleep=lambda s: None
        )

        assert result == "404"
        assert calls == ["200", "200", "404"]

    def test_pending_resets_consecutive_count(self):
        # Five 404s then a 200 do not count towards the twenty required
        states = ["200", "200"] + ["404"] * 5 + ["200"] + ["404"] * 20
        refresh, calls = _sequence(states)

        wait_for_state(
            refresh,
            pending={"200"},
            target={"404"},
            deadline=Deadline(60),
            continuous_target_occurence=20,
            sleep=lambda s: None,
        )

        assert len(calls) == len(states)

    def test_unexpected_state_is_error(self):
        refresh, _ = _sequence(["200", "500"])

        with pytest.raises(AzureAPIError, match="unexpected state"):
            wait_for_state(
                refresh, pending={"200"}, target={"404"}, deadline=Deadline(60), sleep=lambda s: None
            )

    def test_times_out(self):
        def refresh():
            return None, "200"

        with pytest.raises(OperationTimeoutError, match="observed target 0/1"):
            wait_for_state(refresh, pending={"200"}, target={"404"}, deadline=Deadline(0))

    def test_sleeps_between_refreshes(self):
        refresh, _ = _sequence(["200", "404", "404"])
        sleeps = []

        wait_for_state(
            refresh,
            pending={"200"},
            target={"404"},
            deadline=Deadline(60),
            poll_interval=7.5,
            continuous_target_occurence=2,
            sleep=sleeps.append,
        )

        assert sleeps == [7.5, 7.5]

    def test_rejects_zero_count(self):
        refresh, _ = _sequence([])

        with pytest.raises(ValueError):
            wait_for_state(
                refresh, pending={"200"}, target={"404"}, deadline=Deadline(60),
                continuous_target_occurence=0,
            )
