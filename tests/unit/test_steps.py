"""Tests for step execution and cancellation."""

import os
import signal
from unittest.mock import Mock

import pytest

from k3s_manager.cancellation import CancellationToken, cancel_on_signals
from k3s_manager.exceptions import OperationCancelled, TransportError
from k3s_manager.steps import Step, StepRunner


def _step(name, calls, error=None):
    def action():
        calls.append(name)
        if error:
            raise error

    return Step(name, f"Running {name}", action)


def test_runs_steps_in_order():
    calls = []
    progress = Mock()

    completed = StepRunner(progress=progress).run(
        [_step("one", calls), _step("two", calls), _step("three", calls)]
    )

    assert calls == ["one", "two", "three"]
    assert completed == ["one", "two", "three"]
    assert [c.args[0] for c in progress.call_args_list] == [
        "Running one",
        "Running two",
        "Running three",
    ]


def test_stops_at_first_failure():
    calls = []
    error = TransportError("Invalid exit code from apt-get command: 100", exit_code=100)

    with pytest.raises(TransportError) as exc_info:
        StepRunner().run([_step("one", calls), _step("two", calls, error), _step("three", calls)])

    assert exc_info.value is error
    assert calls == ["one", "two"]


def test_cancelled_before_start():
    token = CancellationToken()
    token.cancel("SIGINT")
    calls = []

    with pytest.raises(OperationCancelled) as exc_info:
        StepRunner(token).run([_step("one", calls)])

    assert calls == []
    assert "SIGINT" in exc_info.value.details


def test_cancellation_lets_current_step_finish():
    token = CancellationToken()
    calls = []

    def cancel():
        calls.append("one")
        token.cancel("SIGTERM")

    with pytest.raises(OperationCancelled):
        StepRunner(token).run([Step("one", "first", cancel), _step("two", calls)])

    assert calls == ["one"]


def test_non_cancellable_step_runs_after_cancellation():
    token = CancellationToken()
    calls = []

    def cancel():
        calls.append("one")
        token.cancel("SIGINT")

    completed = StepRunner(token).run(
        [Step("one", "first", cancel), Step("two", "second", lambda: calls.append("two"), False)]
    )

    assert calls == ["one", "two"]
    assert completed == ["one", "two"]


def test_steps_are_immutable():
    step = Step("one", "first", lambda: None)

    with pytest.raises(AttributeError):
        step.name = "other"


class TestCancellationToken:
    def test_wait_returns_false_on_timeout(self):
        assert CancellationToken().wait(0) is False

    def test_wait_returns_true_when_cancelled(self):
        token = CancellationToken()
        token.cancel()

        assert token.wait(10) is True
        assert token.cancelled

    def test_signal_cancels_token(self):
        token = CancellationToken()
        previous = signal.getsignal(signal.SIGHUP)

        with cancel_on_signals(token, signals=(signal.SIGHUP,)):
            os.kill(os.getpid(), signal.SIGHUP)

        assert token.cancelled
        assert token.reason == "SIGHUP"
        assert signal.getsignal(signal.SIGHUP) == previous
