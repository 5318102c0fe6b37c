"""Profiler configuration.

Settings are built once at startup and passed by reference into sessions and
providers. The model is frozen; the ``exclude_*`` helpers return a new instance.
"""

from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from blkarbs_stepprofiler._clock import Clock, MonotonicClock

PACKAGE_NAME = "blkarbs_stepprofiler"


@runtime_checkable
class Storage(Protocol):
    """Sink for finalized sessions. Failure handling belongs to the sink."""

    def save(self, session: Any) -> None: ...


@runtime_checkable
class SqlFormatter(Protocol):
    """Turns captured SQL text and parameters into a display string."""

    def format_sql(
        self, command_text: str, parameters: Sequence[Any] | None, command: Any
    ) -> str: ...


class ProfilerSettings(BaseModel):
    """Immutable profiler configuration.

    Attributes:
        stack_max_length: Max length of a captured stack snippet.
        trivial_duration_threshold_ms: Steps at or below this are hidden in summaries.
        exclude_stack_trace_snippet_from_custom_timings: Skip stack capture entirely.
        max_json_response_size: Max serialized payload size in characters.
        track_memory: Sample process RSS via psutil when steps open and close.
        storage: Default sink for finalized sessions.
        sql_formatter: Formatter applied to SQL command text.
        clock_factory: Returns a started Clock for each new session.
        modules_to_exclude: Module prefixes hidden from stack snippets.
        types_to_exclude: Class names hidden from stack snippets.
        methods_to_exclude: Function names hidden from stack snippets.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    stack_max_length: int = Field(default=120, ge=1)
    trivial_duration_threshold_ms: Decimal = Field(default=Decimal("2.0"), ge=0)
    exclude_stack_trace_snippet_from_custom_timings: bool = False
    max_json_response_size: int = Field(default=2_097_152, ge=1)
    track_memory: bool = False
    storage: Storage | None = None
    sql_formatter: SqlFormatter | None = None
    clock_factory: Callable[[], Clock] = MonotonicClock.start_new
    modules_to_exclude: frozenset[str] = frozenset(
        {
            PACKAGE_NAME,
            "contextlib",
            "threading",
            "asyncio",
            "concurrent",
            "runpy",
            "importlib",
            "functools",
            "sqlite3",
        }
    )
    types_to_exclude: frozenset[str] = frozenset()
    methods_to_exclude: frozenset[str] = frozenset({"__init__", "__enter__", "__exit__"})

    @beartype
    def exclude_module(self, module_name: str) -> "ProfilerSettings":
        """Return settings that also hide ``module_name`` (and its submodules)."""
        return self.model_copy(
            update={"modules_to_exclude": self.modules_to_exclude | {module_name}}
        )

    @beartype
    def exclude_type(self, type_name: str) -> "ProfilerSettings":
        return self.model_copy(
            update={"types_to_exclude": self.types_to_exclude | {type_name}}
        )

    @beartype
    def exclude_method(self, method_name: str) -> "ProfilerSettings":
        return self.model_copy(
            update={"methods_to_exclude": self.methods_to_exclude | {method_name}}
        )


DEFAULT_SETTINGS = ProfilerSettings()
