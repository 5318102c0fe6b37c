"""Tests for session providers and storage sinks."""

import asyncio
import json
import sqlite3
import threading
import uuid
from contextlib import nullcontext
from decimal import Decimal
from pathlib import Path

import pytest
from loguru import logger

from blkarbs_stepprofiler import (
    JsonFileStorage,
    LoguruStorage,
    ProfiledConnection,
    ProfilerSettings,
    ProfilingSession,
    RequestProfilerProvider,
    current_unit_of_work,
    from_json,
    to_json,
)


@pytest.fixture
def provider(clock, storage) -> RequestProfilerProvider:
    return RequestProfilerProvider(ProfilerSettings(clock_factory=lambda: clock, storage=storage))


# ---------------------------------------------------------------------------
# RequestProfilerProvider
# ---------------------------------------------------------------------------

class TestRequestProfilerProvider:
    def test_start_outside_unit_of_work_raises(self, provider):
        with pytest.raises(AssertionError, match="outside a unit of work"):
            provider.start("orphan")

    def test_current_outside_unit_of_work_is_none(self, provider):
        assert provider.current() is None
        assert current_unit_of_work() is None

    def test_start_makes_session_current(self, provider):
        with provider.unit_of_work("req-1") as unit:
            session = provider.start("explicit")
            assert provider.current() is session
            assert session.name == "explicit"
            assert current_unit_of_work() is unit

    def test_default_name_from_route_is_truncated(self, provider):
        route = "GET /api/v1/portfolios/" + "x" * 100
        with provider.unit_of_work("req-1", route=route):
            session = provider.start()
        assert session.name == route[: RequestProfilerProvider.NAME_MAX_LENGTH]
        assert len(session.name) == 50

    def test_default_name_without_route_is_uuid(self, provider):
        with provider.unit_of_work("req-1"):
            session = provider.start()
        uuid.UUID(session.name)

    def test_stop_saves_to_storage(self, provider, storage, clock):
        with provider.unit_of_work("req-1"):
            session = provider.start("saved")
            with provider.step("work"):
                clock.advance_ms(3)
            provider.stop()
        assert storage.saved == [session]
        assert session.duration_milliseconds == Decimal("3.0")

    def test_saved_session_is_not_mutated_by_later_queries(self, provider, storage):
        conn = ProfiledConnection(sqlite3.connect(":memory:"), provider.current)
        with provider.unit_of_work("req-1"):
            session = provider.start("saved")
            conn.execute("SELECT 1").fetchall()
            provider.stop()
            payload = to_json(session)
            conn.execute("SELECT 2").fetchall()
        conn.close()
        assert storage.saved == [session]
        assert to_json(session) == payload
        assert len(session.root.custom_timings["sql"]) == 1

    def test_double_stop_saves_once(self, provider, storage):
        with provider.unit_of_work("req-1"):
            provider.start("once")
            provider.stop()
            provider.stop()
        assert len(storage.saved) == 1

    def test_discard_drops_session_without_saving(self, provider, storage):
        with provider.unit_of_work("req-1"):
            session = provider.start("discarded")
            provider.step("never closed")
            provider.stop(discard_results=True)
            assert provider.current() is None
        assert storage.saved == []
        assert session.is_stopped

    def test_session_storage_override_wins(self, provider, storage):
        override_saved: list[ProfilingSession] = []

        class Override:
            def save(self, session):
                override_saved.append(session)

        with provider.unit_of_work("req-1"):
            session = provider.start("override")
            session.storage = Override()
            provider.stop()
        assert override_saved == [session]
        assert storage.saved == []

    def test_stop_without_session_is_noop(self, provider, storage):
        provider.stop()
        with provider.unit_of_work("req-1"):
            provider.stop()
        assert storage.saved == []

    def test_unit_of_work_exit_releases_session(self, provider):
        with provider.unit_of_work("req-1"):
            provider.start("released")
            assert provider.active_count == 1
        assert provider.active_count == 0
        assert provider.current() is None

    def test_restart_replaces_session(self, provider):
        with provider.unit_of_work("req-1"):
            first = provider.start("first")
            second = provider.start("second")
            assert provider.current() is second
            assert first is not second

    def test_helpers_are_noops_without_session(self, provider):
        assert isinstance(provider.step("nothing"), nullcontext)
        with provider.ignore() as scope:
            assert not scope.was_suppressed

    def test_ignore_suppresses_current_session(self, provider):
        with provider.unit_of_work("req-1"):
            session = provider.start("s")
            with provider.ignore():
                assert not session.is_active
            assert session.is_active

    def test_concurrent_threads_get_separate_sessions(self, storage):
        provider = RequestProfilerProvider(ProfilerSettings(storage=storage))
        errors: list[BaseException] = []

        def handle(i: int) -> None:
            try:
                with provider.unit_of_work(f"req-{i}"):
                    session = provider.start(f"request {i}")
                    for _ in range(20):
                        with provider.step("step"):
                            pass
                    assert provider.current() is session
                    provider.stop()
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=handle, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(s.name for s in storage.saved) == sorted(f"request {i}" for i in range(8))
        assert all(len(s.root.children) == 20 for s in storage.saved)
        assert provider.active_count == 0

    def test_asyncio_tasks_get_separate_sessions(self, provider):
        async def handle(i: int) -> ProfilingSession:
            with provider.unit_of_work(f"task-{i}"):
                session = provider.start(f"task {i}")
                await asyncio.sleep(0)
                assert provider.current() is session
                provider.stop()
                return session

        async def main() -> list[ProfilingSession]:
            return await asyncio.gather(*(handle(i) for i in range(5)))

        sessions = asyncio.run(main())
        assert len(set(sessions)) == 5


# ---------------------------------------------------------------------------
# Storage sinks
# ---------------------------------------------------------------------------

class TestStorage:
    def test_json_file_storage_writes_session(self, session, tmp_path: Path):
        session.stop()
        storage = JsonFileStorage(tmp_path / "a" / "b")
        storage.save(session)

        out = tmp_path / "a" / "b" / f"{session.id}.json"
        assert out.exists()
        loaded = from_json(out.read_text())
        assert loaded == session
        assert loaded.name == "root"

    def test_loguru_storage_logs_json(self, session):
        session.stop()
        messages: list[str] = []
        handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="INFO")
        try:
            LoguruStorage().save(session)
        finally:
            logger.remove(handler_id)
        payload = json.loads(messages[-1])
        assert payload["id"] == str(session.id)

    def test_storage_failures_propagate(self, clock):
        class Broken:
            def save(self, session):
                raise OSError("disk full")

        provider = RequestProfilerProvider(
            ProfilerSettings(clock_factory=lambda: clock, storage=Broken())
        )
        with provider.unit_of_work("req-1"):
            provider.start("broken")
            with pytest.raises(OSError, match="disk full"):
                provider.stop()
