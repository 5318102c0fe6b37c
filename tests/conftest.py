"""Shared fixtures: sessions run on a ManualClock so elapsed time is exact."""

import pytest

from blkarbs_stepprofiler import ManualClock, ProfilerSettings, ProfilingSession


class RecordingStorage:
    """Storage sink that keeps saved sessions in memory."""

    def __init__(self) -> None:
        self.saved: list[ProfilingSession] = []

    def save(self, session: ProfilingSession) -> None:
        self.saved.append(session)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(frequency=10_000_000)


@pytest.fixture
def settings(clock: ManualClock) -> ProfilerSettings:
    return ProfilerSettings(clock_factory=lambda: clock)


@pytest.fixture
def session(settings: ProfilerSettings) -> ProfilingSession:
    return ProfilingSession("root", settings=settings)


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()
