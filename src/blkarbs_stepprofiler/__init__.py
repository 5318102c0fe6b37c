"""blkarbs-stepprofiler: Hierarchical step and SQL timing for units of work.

Provides:
- ProfilingSession: Tree of timed steps for one unit of work, plus leaf timings
- Timing: A step in the tree (context manager returned by ProfilingSession.step)
- CustomTiming: Categorized leaf timing with optional two-phase completion
- SqlTiming / ProfiledConnection: SQL command timing and a DB-API wrapper
- RequestProfilerProvider: One session per unit of work (request, task, job)
- ProfilerSettings: Immutable configuration shared by sessions and providers
- to_json / from_json: Wire format with payload size enforcement

Usage:
    from blkarbs_stepprofiler import ProfilingSession

    session = ProfilingSession("nightly-rebalance")

    with session.step("Load Positions"):
        with session.custom_timing("http", "GET /positions", "Get"):
            positions = broker.positions()
        with session.step("Score", min_save_ms=5):
            scores = model.score(positions)

    session.stop()
    session.print_summary("Rebalance")
"""

from blkarbs_stepprofiler._client_timings import ClientTiming, ClientTimings
from blkarbs_stepprofiler._clock import Clock, ManualClock, MonotonicClock
from blkarbs_stepprofiler._core import (
    SQL_CATEGORY,
    CustomTiming,
    ProfilingSession,
    SqlTimingParameter,
    Suppression,
    Timing,
    custom_timing,
    ignore,
    step,
)
from blkarbs_stepprofiler._provider import (
    ProfilerProvider,
    RequestProfilerProvider,
    UnitOfWork,
    current_unit_of_work,
)
from blkarbs_stepprofiler._serialization import PayloadTooLargeError, from_json, to_json
from blkarbs_stepprofiler._settings import (
    DEFAULT_SETTINGS,
    ProfilerSettings,
    SqlFormatter,
    Storage,
)
from blkarbs_stepprofiler._sql import (
    MAX_BYTE_PARAMETER_SIZE,
    ProfiledConnection,
    ProfiledCursor,
    SqlCommand,
    SqlExecuteType,
    SqlParameter,
    SqlTiming,
)
from blkarbs_stepprofiler._storage import JsonFileStorage, LoguruStorage

__all__ = [
    "DEFAULT_SETTINGS",
    "MAX_BYTE_PARAMETER_SIZE",
    "SQL_CATEGORY",
    "ClientTiming",
    "ClientTimings",
    "Clock",
    "CustomTiming",
    "JsonFileStorage",
    "LoguruStorage",
    "ManualClock",
    "MonotonicClock",
    "PayloadTooLargeError",
    "ProfiledConnection",
    "ProfiledCursor",
    "ProfilerProvider",
    "ProfilerSettings",
    "ProfilingSession",
    "RequestProfilerProvider",
    "SqlCommand",
    "SqlExecuteType",
    "SqlFormatter",
    "SqlParameter",
    "SqlTiming",
    "SqlTimingParameter",
    "Storage",
    "Suppression",
    "Timing",
    "UnitOfWork",
    "current_unit_of_work",
    "custom_timing",
    "from_json",
    "ignore",
    "step",
    "to_json",
]

__version__ = "0.1.0"
