"""
Run deadline passed into every fetch.

A `Deadline` replaces a global kill timer: fetches ask it for a per-call
timeout clamped to the remaining budget, and the run driver checks it
before persisting so a run that already timed out never writes.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, TypeVar

from navstamp.errors import RunTimeout

T = TypeVar("T")


class Deadline:
    def __init__(self, budget_s: float, *, clock: Callable[[], float] = time.monotonic):
        if budget_s <= 0:
            raise ValueError("budget_s must be > 0")
        self.budget_s = float(budget_s)
        self._clock = clock
        self._expires_at = clock() + self.budget_s
        self._cancelled = threading.Event()

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(float("inf"))

    def remaining(self) -> float:
        if self._cancelled.is_set():
            return 0.0
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self, what: str = "run") -> None:
        if self.expired():
            raise RunTimeout(f"{what} exceeded {self.budget_s:g}s budget")

    def timeout(self, per_call_s: float) -> float:
        """Per-call timeout for an HTTP request, never longer than what is left."""
        self.check("request")
        return max(0.001, min(float(per_call_s), self.remaining()))


def run_with_deadline(fn: Callable[[], T], deadline: Deadline, *, name: str = "run") -> T:
    """
    Run `fn` on a daemon worker thread and wait at most `deadline.remaining()`.

    Raises RunTimeout if the budget runs out first (the worker is cancelled via
    the deadline and abandoned; being a daemon it cannot keep the process alive).
    Exceptions raised by `fn` propagate unchanged.
    """
    box: dict[str, object] = {}

    def _target() -> None:
        try:
            box["result"] = fn()
        except BaseException as e:  # re-raised on the caller's thread
            box["error"] = e

    worker = threading.Thread(target=_target, name=f"navstamp-{name}", daemon=True)
    worker.start()
    remaining = deadline.remaining()
    worker.join(None if remaining == float("inf") else remaining)
    if worker.is_alive():
        deadline.cancel()
        raise RunTimeout(f"{name} exceeded {deadline.budget_s:g}s budget")
    if "error" in box:
        raise box["error"]  # type: ignore[misc]
    return box["result"]  # type: ignore[return-value]
