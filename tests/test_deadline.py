from __future__ import annotations

import threading

import pytest

from navstamp.errors import RunTimeout
from navstamp.utils.deadline import Deadline, run_with_deadline


class _Clock:
    def __init__(self):
        self.t = 100.0

    def __call__(self) -> float:
        return self.t


def test_timeout_is_clamped_to_remaining_budget():
    clock = _Clock()
    d = Deadline(30, clock=clock)
    assert d.timeout(15) == 15

    clock.t += 25
    assert d.timeout(15) == pytest.approx(5)

    clock.t += 10
    assert d.expired()
    with pytest.raises(RunTimeout):
        d.timeout(15)


def test_cancel_expires_immediately():
    d = Deadline(60)
    d.cancel()
    assert d.remaining() == 0.0
    with pytest.raises(RunTimeout):
        d.check("save")


def test_unbounded_never_expires():
    d = Deadline.unbounded()
    assert not d.expired()
    assert d.timeout(15) == 15


def test_non_positive_budget_rejected():
    with pytest.raises(ValueError):
        Deadline(0)


def test_run_with_deadline_returns_result_and_propagates_errors():
    assert run_with_deadline(lambda: 42, Deadline(5)) == 42

    def boom():
        raise KeyError("x")

    with pytest.raises(KeyError):
        run_with_deadline(boom, Deadline(5))


def test_run_with_deadline_times_out_and_cancels():
    gate = threading.Event()
    d = Deadline(0.1)
    try:
        with pytest.raises(RunTimeout):
            run_with_deadline(lambda: gate.wait(5), d, name="hung")
        assert d.expired()
    finally:
        gate.set()
