"""Storage sinks for finalized sessions.

Sinks do not catch their own failures; callers see them as-is.
"""

from pathlib import Path

from beartype import beartype
from loguru import logger

from blkarbs_stepprofiler._core import ProfilingSession
from blkarbs_stepprofiler._serialization import to_json


class LoguruStorage:
    """Writes each finalized session as one JSON log record.

    Args:
        level: loguru level name (default: "INFO")
    """

    @beartype
    def __init__(self, level: str = "INFO") -> None:
        self.level = level

    @beartype
    def save(self, session: ProfilingSession) -> None:
        logger.log(self.level, to_json(session))


class JsonFileStorage:
    """Writes each finalized session to ``<directory>/<session id>.json``.

    Args:
        directory: Output directory (created on first save)
    """

    @beartype
    def __init__(self, directory: Path) -> None:
        assert directory is not None, "Storage directory cannot be None"
        self.directory = directory

    def path_for(self, session: ProfilingSession) -> Path:
        return self.directory / f"{session.id}.json"

    @beartype
    def save(self, session: ProfilingSession) -> None:
        path = self.path_for(session)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(to_json(session))
        logger.debug(f"Saved session '{session.name}' to {path}")
