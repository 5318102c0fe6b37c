"""Core step-tree profiling engine.

Design by Contract (P1 - MANDATORY):
- Durations MUST be non-negative (crash if negative)
- Steps close in strict stack order (crash if a step closes before its children)
- A finalized step never reopens
- Fail-fast on violations

Threading:
    Each ProfilingSession guards its head cursor, children lists and custom-timing
    lists with its own RLock. At most one thread mutates a given session's tree at
    a time; reads of a stopped session are race-free.

All public entry points use beartype for runtime type enforcement.
"""

import platform
import threading
import uuid
from collections.abc import Iterator
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import psutil
from beartype import beartype
from loguru import logger

from blkarbs_stepprofiler._client_timings import ClientTimings
from blkarbs_stepprofiler._clock import Clock
from blkarbs_stepprofiler._settings import DEFAULT_SETTINGS, ProfilerSettings, Storage
from blkarbs_stepprofiler._stack import get_stack_snippet

SQL_CATEGORY = "sql"

_ONE_PLACE = Decimal("0.1")
_ZERO = Decimal("0.0")


def _decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(_ONE_PLACE)


def _process_memory_gb() -> float:
    return psutil.Process().memory_info().rss / 1024**3


@dataclass
class SqlTimingParameter:
    """A captured SQL parameter, value already rendered for display."""

    name: str
    value: str | None
    db_type: str
    size: int = 0
    direction: str = "Input"
    is_nullable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "dbType": self.db_type,
            "size": self.size,
            "direction": self.direction,
            "isNullable": self.is_nullable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SqlTimingParameter":
        return cls(
            name=data["name"],
            value=data.get("value"),
            db_type=data.get("dbType", ""),
            size=int(data.get("size", 0)),
            direction=data.get("direction", "Input"),
            is_nullable=bool(data.get("isNullable", False)),
        )


class CustomTiming:
    """A categorized leaf measurement attached to the step that was head at creation.

    Args:
        session: Running session supplying the clock and settings
        command_string: Command text or description to record
        min_save_ms: Discard this timing on stop() if it ran for less (0 keeps all)

    Attributes:
        category: Category key under which the owning step stores this timing
        execute_type: Free-form label (e.g. "Reader", "Get", "Insert")
        start_milliseconds: Offset from session start (one decimal place)
        duration_milliseconds: Set once by stop(), None until then
        first_fetch_duration_milliseconds: Set by first_fetch_completed() for
            two-phase (reader) operations
        stack_trace_snippet: Filtered caller names, None when capture is disabled
        parameters: Captured SQL parameters (SQL timings only)
        errored: True when the timed block raised

    Example:
        with session.custom_timing("http", "GET /api/users", "Get"):
            response = client.get("/api/users")

    Design by Contract:
        - duration_milliseconds >= 0 once set
        - first_fetch_duration_milliseconds <= duration_milliseconds
    """

    def __init__(
        self,
        session: "ProfilingSession",
        command_string: str,
        min_save_ms: Decimal | int | float = 0,
    ) -> None:
        self.id: uuid.UUID = uuid.uuid4()
        self.session_id: uuid.UUID = session.id
        self.category: str | None = None
        self.command_string: str = command_string
        self.execute_type: str | None = None
        self.duration_milliseconds: Decimal | None = None
        self.first_fetch_duration_milliseconds: Decimal | None = None
        self.parameters: list[SqlTimingParameter] | None = None
        self.errored: bool = False
        self.parent_timing: Timing | None = None
        self._session: ProfilingSession | None = session
        self._min_save_ms: Decimal = Decimal(str(min_save_ms))
        self._start_ticks: int = session.elapsed_ticks
        self.start_milliseconds: Decimal = session.get_rounded_milliseconds(self._start_ticks)
        self.stack_trace_snippet: str | None = None
        if not session.settings.exclude_stack_trace_snippet_from_custom_timings:
            self.stack_trace_snippet = get_stack_snippet(session.settings)

    @property
    def is_stopped(self) -> bool:
        return self.duration_milliseconds is not None

    def first_fetch_completed(self) -> None:
        """Mark the first row/byte as available. Only the first call counts."""
        if self.first_fetch_duration_milliseconds is not None or self._session is None:
            return
        self.first_fetch_duration_milliseconds = self._session.get_duration_milliseconds(
            self._start_ticks
        )

    def stop(self) -> None:
        """Finalize the duration (measured from creation). Idempotent."""
        if self.is_stopped or self._session is None:
            return
        self.duration_milliseconds = self._session.get_duration_milliseconds(self._start_ticks)
        if (
            self._min_save_ms > 0
            and self.duration_milliseconds < self._min_save_ms
            and self.parent_timing is not None
            and self.category is not None
        ):
            self._session._detach_custom_timing(self.parent_timing, self.category, self)

    def __enter__(self) -> "CustomTiming":
        return self

    def __exit__(self, exc_type: Any, *args: Any) -> None:
        if exc_type is not None:
            self.errored = True
        self.stop()

    def __str__(self) -> str:
        return f"{self.command_string[:30]} ({self.duration_milliseconds} ms)"

    def __repr__(self) -> str:
        return f"CustomTiming(category={self.category!r}, command={self.command_string[:30]!r})"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": str(self.id),
            "commandString": self.command_string,
            "executeType": self.execute_type,
            "stackTraceSnippet": self.stack_trace_snippet,
            "startMilliseconds": self.start_milliseconds,
            "durationMilliseconds": self.duration_milliseconds,
            "firstFetchDurationMilliseconds": self.first_fetch_duration_milliseconds,
            "errored": self.errored,
        }
        if self.parameters is not None:
            result["parameters"] = [p.to_dict() for p in self.parameters]
        return result

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], category: str, session_id: uuid.UUID | None = None
    ) -> "CustomTiming":
        # loaded timings have no live session, so __init__ is bypassed
        timing = cls.__new__(cls)
        timing.id = uuid.UUID(data["id"])
        timing.session_id = session_id
        timing.category = category
        timing.command_string = data.get("commandString", "")
        timing.execute_type = data.get("executeType")
        timing.stack_trace_snippet = data.get("stackTraceSnippet")
        timing.start_milliseconds = _decimal(data.get("startMilliseconds")) or _ZERO
        timing.duration_milliseconds = _decimal(data.get("durationMilliseconds"))
        timing.first_fetch_duration_milliseconds = _decimal(
            data.get("firstFetchDurationMilliseconds")
        )
        timing.errored = bool(data.get("errored", False))
        params = data.get("parameters")
        timing.parameters = (
            [SqlTimingParameter.from_dict(p) for p in params] if params is not None else None
        )
        timing.parent_timing = None
        timing._session = None
        timing._min_save_ms = _ZERO
        timing._start_ticks = 0
        return timing


class Timing:
    """A named step in the session's timing tree.

    Timing is its own scope handle: leaving the ``with`` block closes the step,
    including when the block raises.

    Usage:
        with session.step("Load Orders"):
            with session.step("Query", min_save_ms=5):
                rows = repo.fetch()

    Design by Contract:
        - duration_milliseconds >= 0 once set
        - once finalized, a step never reopens
        - parent links are in-memory only and are rebuilt by index_parents()
    """

    def __init__(
        self,
        session: "ProfilingSession",
        parent: "Timing | None",
        name: str,
        min_save_ms: Decimal | int | float | None = None,
        include_children_with_min_save: bool = False,
    ) -> None:
        self.id: uuid.UUID = uuid.uuid4()
        self.session_id: uuid.UUID | None = session.id
        self.name: str = name
        self.parent: Timing | None = parent
        self.children: list[Timing] = []
        self.custom_timings: dict[str, list[CustomTiming]] = {}
        self.min_save_ms: Decimal | None = (
            Decimal(str(min_save_ms)) if min_save_ms is not None else None
        )
        self.include_children_with_min_save: bool = include_children_with_min_save
        self.duration_milliseconds: Decimal | None = None
        self.memory_delta_gb: float | None = None
        self._session: ProfilingSession | None = session
        self.start_ticks: int | None = session.elapsed_ticks
        self.start_milliseconds: Decimal = session.get_rounded_milliseconds(self.start_ticks)
        self._start_memory: float | None = (
            _process_memory_gb() if session.settings.track_memory else None
        )

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def has_custom_timings(self) -> bool:
        return any(self.custom_timings.values())

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_finalized(self) -> bool:
        return self.duration_milliseconds is not None

    @property
    def depth(self) -> int:
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def is_trivial(self, threshold_ms: Decimal) -> bool:
        return self.duration_milliseconds is not None and self.duration_milliseconds <= threshold_ms

    def add_child(self, timing: "Timing") -> None:
        self.children.append(timing)
        timing.parent = self

    def remove_child(self, timing: "Timing") -> None:
        self.children.remove(timing)

    def add_custom_timing(self, category: str, timing: CustomTiming) -> None:
        self.custom_timings.setdefault(category, []).append(timing)
        timing.category = category
        timing.parent_timing = self

    def remove_custom_timing(self, category: str, timing: CustomTiming) -> None:
        timings = self.custom_timings.get(category)
        if timings is None or timing not in timings:
            return
        timings.remove(timing)
        if not timings:
            del self.custom_timings[category]

    def stop(self) -> bool:
        """Finalize this step's duration. Returns False if already finalized."""
        if self.is_finalized or self._session is None or self.start_ticks is None:
            return False
        self.duration_milliseconds = self._session.get_duration_milliseconds(self.start_ticks)
        if self._start_memory is not None:
            self.memory_delta_gb = _process_memory_gb() - self._start_memory
        return True

    def min_save_compare_ms(self) -> Decimal:
        """Duration compared against min_save_ms: own time plus retained descendants."""
        total = self.duration_milliseconds or _ZERO
        if not self.include_children_with_min_save:
            return total
        stack = list(self.children)
        while stack:
            child = stack.pop()
            total += child.duration_milliseconds or _ZERO
            stack.extend(child.children)
        return total

    def index_parents(self) -> None:
        """Rebuild parent links for this subtree from the children lists."""
        stack = [self]
        while stack:
            timing = stack.pop()
            for child in reversed(timing.children):
                child.parent = timing
                stack.append(child)

    def __enter__(self) -> "Timing":
        return self

    def __exit__(self, *args: Any) -> None:
        if self._session is not None:
            self._session.close_step(self)

    def __str__(self) -> str:
        return f"{self.name} ({self.duration_milliseconds} ms)"

    def __repr__(self) -> str:
        return f"Timing(name={self.name!r}, duration_milliseconds={self.duration_milliseconds})"

    def _shallow_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": str(self.id),
            "name": self.name,
            "startOffset": self.start_milliseconds,
            "duration": self.duration_milliseconds,
            "children": [],
            "customTimings": {
                category: [t.to_dict() for t in timings]
                for category, timings in self.custom_timings.items()
            },
        }
        if self.memory_delta_gb is not None:
            result["memoryDeltaGb"] = self.memory_delta_gb
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert this subtree to value data (children arrays, no parent links)."""
        result = self._shallow_dict()
        stack = [(self, result)]
        while stack:
            timing, data = stack.pop()
            for child in timing.children:
                child_data = child._shallow_dict()
                data["children"].append(child_data)
                stack.append((child, child_data))
        return result

    @classmethod
    def _from_shallow_dict(
        cls, data: dict[str, Any], session_id: uuid.UUID | None
    ) -> "Timing":
        # loaded timings have no live session, so __init__ is bypassed
        timing = cls.__new__(cls)
        timing.id = uuid.UUID(data["id"])
        timing.session_id = session_id
        timing.name = data["name"]
        timing.parent = None
        timing.children = []
        timing.custom_timings = {
            category: [CustomTiming.from_dict(t, category, session_id) for t in timings]
            for category, timings in (data.get("customTimings") or {}).items()
        }
        for timings in timing.custom_timings.values():
            for custom in timings:
                custom.parent_timing = timing
        timing.min_save_ms = None
        timing.include_children_with_min_save = False
        timing.duration_milliseconds = _decimal(data.get("duration"))
        memory_delta = data.get("memoryDeltaGb")
        timing.memory_delta_gb = float(memory_delta) if memory_delta is not None else None
        timing._session = None
        timing.start_ticks = None
        timing.start_milliseconds = _decimal(data.get("startOffset")) or _ZERO
        timing._start_memory = None
        return timing

    @classmethod
    def from_dict(cls, data: dict[str, Any], session_id: uuid.UUID | None = None) -> "Timing":
        """Rebuild a subtree from value data. Call index_parents() afterwards."""
        root = cls._from_shallow_dict(data, session_id)
        stack = [(root, data)]
        while stack:
            timing, timing_data = stack.pop()
            for child_data in timing_data.get("children") or []:
                child = cls._from_shallow_dict(child_data, session_id)
                timing.children.append(child)
                stack.append((child, child_data))
        return root


class Suppression:
    """Scope that pauses custom-timing and step capture on a session.

    Only the scope that actually deactivated the session reactivates it, so
    nested suppressions restore correctly.

    Usage:
        with session.suppress():
            noisy_cache_warmup()
    """

    def __init__(self, session: "ProfilingSession | None") -> None:
        self._session = session
        self._was_suppressed = False
        if session is not None and session.is_active:
            session.is_active = False
            self._was_suppressed = True

    @property
    def was_suppressed(self) -> bool:
        return self._was_suppressed

    def release(self) -> None:
        if self._session is not None and self._was_suppressed:
            self._session.is_active = True
            self._was_suppressed = False

    def __enter__(self) -> "Suppression":
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


class ProfilingSession:
    """One profiled unit of work: a tree of timed steps plus attached leaf timings.

    Args:
        name: Display name; also the root step's name
        settings: Immutable profiler configuration (default: DEFAULT_SETTINGS)

    Attributes:
        id: Unique session id (equality and hashing use it)
        started: UTC timestamp at creation
        duration_milliseconds: Total duration, one decimal place, set by stop()
        machine_name: Host the session ran on
        root: Root step
        head: Step currently open and accepting children/leaf timings
        is_active: Gate for step and leaf-timing capture (see suppress())
        client_timings: Optional timings posted by the client
        storage: Per-session storage override

    Example:
        session = ProfilingSession("GET /orders")
        with session.step("Load"):
            with session.custom_timing("redis", "GET orders:42", "Get"):
                cache.get("orders:42")
        session.stop()
        session.print_summary()

    Design by Contract:
        - the clock starts before the root step is created
        - head is always root or a descendant of root
        - stop() runs at most once; later calls return False
    """

    @beartype
    def __init__(self, name: str, settings: ProfilerSettings = DEFAULT_SETTINGS) -> None:
        self.id: uuid.UUID = uuid.uuid4()
        self.name: str = name
        self.settings: ProfilerSettings = settings
        self.started: datetime = datetime.now(UTC)
        self.duration_milliseconds: Decimal = _ZERO
        self.machine_name: str = platform.node()
        self.client_timings: ClientTimings | None = None
        self.storage: Storage | None = None
        self.is_active: bool = True
        self._lock = threading.RLock()
        self._clock: Clock | None = settings.clock_factory()
        self.root: Timing = Timing(self, None, name)
        self.head: Timing | None = self.root

    # -- clock ------------------------------------------------------------

    @property
    def elapsed_ticks(self) -> int:
        assert self._clock is not None, "Session has no running clock (loaded from storage?)"
        return self._clock.elapsed_ticks

    @property
    def is_stopped(self) -> bool:
        return self._clock is None or not self._clock.is_running

    def get_rounded_milliseconds(self, ticks: int) -> Decimal:
        """Convert ticks to milliseconds truncated (not rounded) to one decimal place."""
        assert self._clock is not None, "Session has no running clock (loaded from storage?)"
        assert ticks >= 0, f"Tick span cannot be negative: {ticks}"
        times_ten = (10000 * ticks) // self._clock.frequency
        return (Decimal(times_ten) / 10).quantize(_ONE_PLACE)

    def get_duration_milliseconds(self, start_ticks: int) -> Decimal:
        return self.get_rounded_milliseconds(self.elapsed_ticks - start_ticks)

    # -- steps ------------------------------------------------------------

    @beartype
    def step(
        self,
        name: str,
        min_save_ms: Decimal | int | float | None = None,
        include_children_with_min_save: bool = False,
    ) -> Timing | nullcontext:
        """Open a child step under the current head.

        Args:
            name: Step label
            min_save_ms: Drop the step on close if its duration is <= this
            include_children_with_min_save: Count retained descendants toward min_save_ms

        Returns:
            The new Timing (a context manager), or a no-op context when the
            session is inactive or already stopped.
        """
        if not self.is_active or self.is_stopped:
            return nullcontext()
        with self._lock:
            parent = self.head if self.head is not None else self.root
            timing = Timing(self, parent, name, min_save_ms, include_children_with_min_save)
            parent.add_child(timing)
            self.head = timing
        return timing

    @beartype
    def close_step(self, timing: Timing) -> None:
        """Finalize ``timing``, apply min-save pruning, and move head back to its parent."""
        with self._lock:
            if timing.is_finalized:
                return
            assert self.head is timing, (
                f"Step '{timing.name}' closed out of order: current step is "
                f"'{self.head.name if self.head is not None else None}'"
            )
            timing.stop()
            parent = timing.parent
            if parent is not None and timing.min_save_ms is not None:
                compare_ms = timing.min_save_compare_ms()
                if compare_ms <= timing.min_save_ms:
                    parent.remove_child(timing)
                    logger.debug(
                        f"Pruned step '{timing.name}' ({compare_ms}ms <= {timing.min_save_ms}ms)"
                    )
            self.head = parent

    # -- leaf timings -----------------------------------------------------

    @property
    def is_capturing(self) -> bool:
        """True when leaf timings can attach: active, has a head, clock still running."""
        return self.is_active and self.head is not None and not self.is_stopped

    @beartype
    def add_custom_timing(self, category: str, timing: CustomTiming) -> CustomTiming | None:
        """Attach ``timing`` to the current head under ``category``; None when inactive."""
        with self._lock:
            if not self.is_capturing:
                return None
            self.head.add_custom_timing(category, timing)
        return timing

    @beartype
    def custom_timing(
        self,
        category: str,
        command_string: str,
        execute_type: str | None = None,
        min_save_ms: Decimal | int | float = 0,
    ) -> CustomTiming | None:
        """Start a leaf timing on the current head.

        Returns:
            The running CustomTiming, or None when the session is inactive or has no head.
        """
        if not self.is_capturing:
            return None
        timing = CustomTiming(self, command_string, min_save_ms)
        timing.execute_type = execute_type
        return self.add_custom_timing(category, timing)

    def _detach_custom_timing(self, parent: Timing, category: str, timing: CustomTiming) -> None:
        with self._lock:
            parent.remove_custom_timing(category, timing)

    def suppress(self) -> Suppression:
        """Pause capture until the returned scope is released."""
        return Suppression(self)

    # -- lifecycle --------------------------------------------------------

    def stop(self) -> bool:
        """Stop the clock and finalize every step and leaf timing.

        The session is deactivated; nothing attaches to it afterwards.

        Returns:
            False if the session was already stopped, True otherwise.
        """
        with self._lock:
            if self.is_stopped:
                return False
            self._clock.stop()
            self.is_active = False
            self.duration_milliseconds = self.get_rounded_milliseconds(self._clock.elapsed_ticks)
            for timing in self.get_timing_hierarchy():
                if timing.stop() and not timing.is_root:
                    logger.warning(
                        f"Step '{timing.name}' was still open when session '{self.name}' stopped"
                    )
                # copies: min-save may detach leaves while we walk them
                for timings in list(timing.custom_timings.values()):
                    for custom in list(timings):
                        if not custom.is_stopped:
                            custom.stop()
                            logger.debug(
                                f"Finalized open {custom.category} timing "
                                f"'{custom.command_string[:30]}' at session stop"
                            )
            logger.debug(f"Stopped session '{self.name}' ({self.duration_milliseconds}ms)")
            return True

    def get_timing_hierarchy(self) -> Iterator[Timing]:
        """Yield every step depth-first, pre-order, children left to right."""
        stack = [self.root]
        while stack:
            timing = stack.pop()
            yield timing
            for child in reversed(timing.children):
                stack.append(child)

    @property
    def sql_duration_milliseconds(self) -> Decimal:
        total = _ZERO
        for timing in self.get_timing_hierarchy():
            for sql in timing.custom_timings.get(SQL_CATEGORY, []):
                total += sql.duration_milliseconds or _ZERO
        return total

    @property
    def has_sql_timings(self) -> bool:
        return any(
            timing.custom_timings.get(SQL_CATEGORY) for timing in self.get_timing_hierarchy()
        )

    # -- copies and value data --------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "started": self.started.isoformat(),
            "durationMilliseconds": self.duration_milliseconds,
            "machineName": self.machine_name,
            "root": self.root.to_dict(),
            "clientTimings": self.client_timings.to_dict() if self.client_timings else None,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], settings: ProfilerSettings = DEFAULT_SETTINGS
    ) -> "ProfilingSession":
        """Rebuild a finalized session from value data, re-deriving parent links."""
        # loaded sessions have no clock, so __init__ is bypassed
        session = cls.__new__(cls)
        session.id = uuid.UUID(data["id"])
        session.name = data["name"]
        session.settings = settings
        session.started = datetime.fromisoformat(data["started"])
        session.duration_milliseconds = _decimal(data.get("durationMilliseconds")) or _ZERO
        session.machine_name = data.get("machineName", "")
        client = data.get("clientTimings")
        session.client_timings = ClientTimings.from_dict(client) if client else None
        session.storage = None
        session.is_active = False
        session._lock = threading.RLock()
        session._clock = None
        session.root = Timing.from_dict(data["root"], session.id)
        session.root.index_parents()
        session.head = session.root
        return session

    def clone(self) -> "ProfilingSession":
        """Deep copy with no shared mutable state; the copy has no running clock."""
        with self._lock:
            copy = ProfilingSession.from_dict(self.to_dict(), settings=self.settings)
            copy.storage = self.storage
            copy.is_active = self.is_active
            if self.head is not None:
                head_id = self.head.id
                copy.head = next(
                    (t for t in copy.get_timing_hierarchy() if t.id == head_id), copy.root
                )
        return copy

    # -- reporting --------------------------------------------------------

    @beartype
    def print_summary(self, title: str = "PROFILING RESULTS", show_trivial: bool = False) -> None:
        """Log the step tree, hiding trivial steps unless ``show_trivial``.

        Args:
            title: Header title for the summary table
            show_trivial: Include steps at or below the trivial duration threshold
        """
        threshold = self.settings.trivial_duration_threshold_ms

        logger.info("")
        logger.info("=" * 90)
        logger.info(f"{title:^90}")
        logger.info("=" * 90)
        logger.info(f"{'Step':<50} {'Start':>10} {'Duration':>12} {'Custom':>15}")
        logger.info("-" * 90)

        for timing in self.get_timing_hierarchy():
            if not show_trivial and not timing.is_root and timing.is_trivial(threshold):
                continue
            label = "  " * timing.depth + timing.name
            duration = timing.duration_milliseconds
            duration_str = f"{duration}ms" if duration is not None else "-"
            custom_str = " ".join(
                f"{category}={len(timings)}"
                for category, timings in timing.custom_timings.items()
            )
            logger.info(
                f"{label[:50]:<50} "
                f"{timing.start_milliseconds:>8}ms "
                f"{duration_str:>12} "
                f"{custom_str:>15}"
            )

        logger.info("=" * 90)
        logger.info(f"{'TOTAL':^50} {self.duration_milliseconds:>20}ms")
        logger.info("=" * 90)
        logger.info("")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ProfilingSession) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return f"{self.root.name} ({self.duration_milliseconds} ms)"

    def __repr__(self) -> str:
        return f"ProfilingSession(name={self.name!r}, id={self.id})"


@beartype
def step(
    session: ProfilingSession | None,
    name: str,
    min_save_ms: Decimal | int | float | None = None,
    include_children_with_min_save: bool = False,
) -> Timing | nullcontext:
    """Null-tolerant step: ``with step(maybe_session, "work"):`` never needs an if."""
    if session is None:
        return nullcontext()
    return session.step(name, min_save_ms, include_children_with_min_save)


@beartype
def custom_timing(
    session: ProfilingSession | None,
    category: str,
    command_string: str,
    execute_type: str | None = None,
    min_save_ms: Decimal | int | float = 0,
) -> CustomTiming | nullcontext:
    """Null-tolerant custom timing; returns a no-op context when nothing is captured."""
    if session is None:
        return nullcontext()
    timing = session.custom_timing(category, command_string, execute_type, min_save_ms)
    return timing if timing is not None else nullcontext()


def ignore(session: ProfilingSession | None) -> Suppression:
    """Suppress capture on ``session`` (may be None) for the enclosed block."""
    return Suppression(session)
