"""Session providers: one profiling session per unit of work.

The current unit of work travels in a ContextVar, so it follows asyncio tasks and
stays private to each thread. Sessions live in a lock-protected map keyed by the
unit-of-work key, which makes concurrent registration and lookup across many
simultaneous requests safe.

Usage:
    provider = RequestProfilerProvider(settings)

    with provider.unit_of_work(request_id, route="GET /orders/{id}"):
        provider.start()
        with provider.step("Load Order"):
            ...
        provider.stop()
"""

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Generator, Hashable
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from dataclasses import dataclass
from decimal import Decimal

from beartype import beartype
from loguru import logger

from blkarbs_stepprofiler._core import ProfilingSession, Suppression, Timing, ignore, step
from blkarbs_stepprofiler._settings import DEFAULT_SETTINGS, ProfilerSettings


@dataclass(frozen=True)
class UnitOfWork:
    """Identity of one unit of work (typically one inbound request)."""

    key: Hashable
    route: str | None = None


_current_unit_of_work: ContextVar[UnitOfWork | None] = ContextVar(
    "stepprofiler_unit_of_work", default=None
)


def current_unit_of_work() -> UnitOfWork | None:
    return _current_unit_of_work.get()


class ProfilerProvider(ABC):
    """Starts, stops and looks up the session for the ambient unit of work.

    Subclasses decide how "current" is resolved; stopping and saving are shared.
    """

    def __init__(self, settings: ProfilerSettings = DEFAULT_SETTINGS) -> None:
        self.settings = settings

    @abstractmethod
    def start(self, session_name: str | None = None) -> ProfilingSession:
        """Create a session and make it current for this unit of work."""

    @abstractmethod
    def stop(self, discard_results: bool = False) -> None:
        """Stop the current session; save it unless ``discard_results``."""

    @abstractmethod
    def current(self) -> ProfilingSession | None:
        """Session of the current unit of work, or None."""

    def step(
        self,
        name: str,
        min_save_ms: Decimal | int | float | None = None,
        include_children_with_min_save: bool = False,
    ) -> Timing | nullcontext:
        return step(self.current(), name, min_save_ms, include_children_with_min_save)

    def ignore(self) -> Suppression:
        return ignore(self.current())

    def _stop_session(self, session: ProfilingSession) -> bool:
        return session.stop()

    def _save_session(self, session: ProfilingSession) -> None:
        storage = session.storage if session.storage is not None else self.settings.storage
        if storage is None:
            logger.debug(f"No storage configured; session '{session.name}' not saved")
            return
        storage.save(session)


class RequestProfilerProvider(ProfilerProvider):
    """Provider keyed by unit of work (e.g. one per inbound HTTP request).

    Args:
        settings: Settings for every session this provider starts

    Design by Contract:
        - start() MUST run inside unit_of_work() (crash otherwise)
        - at most one session per unit-of-work key
    """

    NAME_MAX_LENGTH = 50

    @beartype
    def __init__(self, settings: ProfilerSettings = DEFAULT_SETTINGS) -> None:
        super().__init__(settings)
        self._sessions: dict[Hashable, ProfilingSession] = {}
        self._lock = threading.Lock()

    @contextmanager
    def unit_of_work(
        self, key: Hashable, route: str | None = None
    ) -> Generator[UnitOfWork, None, None]:
        """Bind a unit of work to the current context; its session is released on exit.

        Args:
            key: Unique identity of the unit of work (request id, task id...)
            route: Routing/URL information used for default session names
        """
        unit = UnitOfWork(key, route)
        token = _current_unit_of_work.set(unit)
        try:
            yield unit
        finally:
            _current_unit_of_work.reset(token)
            self.release(key)

    def release(self, key: Hashable) -> ProfilingSession | None:
        """Forget the session registered under ``key`` and return it."""
        with self._lock:
            return self._sessions.pop(key, None)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _default_name(self, unit: UnitOfWork) -> str:
        if unit.route:
            return unit.route[: self.NAME_MAX_LENGTH]
        return str(uuid.uuid4())

    @beartype
    def start(self, session_name: str | None = None) -> ProfilingSession:
        unit = _current_unit_of_work.get()
        assert unit is not None, (
            "start() called outside a unit of work; wrap it in provider.unit_of_work(...)"
        )
        name = session_name if session_name else self._default_name(unit)
        session = ProfilingSession(name, settings=self.settings)

        with self._lock:
            previous = self._sessions.get(unit.key)
            self._sessions[unit.key] = session

        if previous is not None:
            logger.warning(
                f"Replaced session '{previous.name}' for unit of work {unit.key!r} "
                f"with '{name}'"
            )
        logger.debug(f"Started session '{name}' for unit of work {unit.key!r}")
        return session

    def current(self) -> ProfilingSession | None:
        unit = _current_unit_of_work.get()
        if unit is None:
            return None
        with self._lock:
            return self._sessions.get(unit.key)

    @beartype
    def stop(self, discard_results: bool = False) -> None:
        session = self.current()
        if session is None:
            return

        # False means this session was already stopped
        if not self._stop_session(session):
            return

        if discard_results:
            unit = _current_unit_of_work.get()
            if unit is not None:
                self.release(unit.key)
            logger.debug(f"Discarded session '{session.name}'")
            return

        self._save_session(session)
