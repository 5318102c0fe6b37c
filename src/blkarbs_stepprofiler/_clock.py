"""Tick sources for profiling sessions.

Design by Contract:
- Elapsed ticks MUST be non-negative and never decrease while running
- Reading elapsed ticks has no side effects
- After stop() the elapsed value is frozen
"""

import time
from typing import Protocol, runtime_checkable

from beartype import beartype


@runtime_checkable
class Clock(Protocol):
    """Monotonic tick counter consumed by ProfilingSession."""

    @property
    def elapsed_ticks(self) -> int: ...

    @property
    def frequency(self) -> int: ...

    @property
    def is_running(self) -> bool: ...

    def stop(self) -> None: ...


class MonotonicClock:
    """Clock backed by time.perf_counter_ns (1 tick == 1ns).

    Example:
        clock = MonotonicClock.start_new()
        ...
        clock.stop()
        print(clock.elapsed_ticks / clock.frequency)
    """

    FREQUENCY = 1_000_000_000

    def __init__(self) -> None:
        self._start: int = 0
        self._stopped_at: int | None = None
        self._running: bool = False

    @classmethod
    def start_new(cls) -> "MonotonicClock":
        clock = cls()
        clock.start()
        return clock

    def start(self) -> "MonotonicClock":
        self._start = time.perf_counter_ns()
        self._stopped_at = None
        self._running = True
        return self

    @property
    def elapsed_ticks(self) -> int:
        end = self._stopped_at if self._stopped_at is not None else time.perf_counter_ns()
        elapsed = end - self._start
        assert elapsed >= 0, f"Elapsed ticks cannot be negative: {elapsed}"
        return elapsed

    @property
    def frequency(self) -> int:
        return self.FREQUENCY

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        if self._running:
            self._stopped_at = time.perf_counter_ns()
            self._running = False


class ManualClock:
    """Deterministic clock that only moves when told to.

    Args:
        frequency: Ticks per second (default: 10_000_000, i.e. 100ns ticks)

    Usage:
        clock = ManualClock()
        settings = ProfilerSettings(clock_factory=lambda: clock)
        session = ProfilingSession("root", settings=settings)
        with session.step("work"):
            clock.advance_ms(5)
    """

    @beartype
    def __init__(self, frequency: int = 10_000_000) -> None:
        assert frequency > 0, f"Clock frequency must be positive: {frequency}"
        self._frequency = frequency
        self._ticks: int = 0
        self._running: bool = True

    @beartype
    def advance(self, ticks: int) -> None:
        """Move the clock forward by ``ticks``. Ignored once stopped."""
        assert ticks >= 0, f"Clock cannot move backwards: {ticks}"
        if self._running:
            self._ticks += ticks

    @beartype
    def advance_ms(self, milliseconds: int | float) -> None:
        self.advance(round(milliseconds * self._frequency / 1000))

    @property
    def elapsed_ticks(self) -> int:
        return self._ticks

    @property
    def frequency(self) -> int:
        return self._frequency

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        self._running = False
