"""SQL command timing and a profiling DB-API wrapper.

Design by Contract:
- An SqlTiming MUST attach to an active session with a current step (crash otherwise)
- Binary parameter values larger than MAX_BYTE_PARAMETER_SIZE are never captured
- Reader timings finish when the cursor is drained or closed, never earlier
"""

import json
import re
import uuid
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from beartype import beartype

from blkarbs_stepprofiler._core import (
    SQL_CATEGORY,
    CustomTiming,
    ProfilingSession,
    SqlTimingParameter,
)

MAX_BYTE_PARAMETER_SIZE = 512

_CROWDED_COMMA = re.compile(r",([^\s])")
_SORTABLE_DATETIME = "%Y-%m-%dT%H:%M:%S"
_READER_KEYWORDS = ("SELECT", "WITH", "PRAGMA", "VALUES", "SHOW", "EXPLAIN")


class SqlExecuteType(str, Enum):
    NON_QUERY = "NonQuery"
    SCALAR = "Scalar"
    READER = "Reader"


@dataclass
class SqlParameter:
    """A bound parameter as handed to the database.

    ``db_type`` and ``size`` are inferred from the value when not given.
    """

    name: str
    value: Any
    db_type: str | None = None
    size: int | None = None
    direction: str = "Input"
    is_nullable: bool = False


@dataclass
class SqlCommand:
    """Command-like object: text plus ordered parameters."""

    command_text: str
    parameters: list[SqlParameter] = field(default_factory=list)

    @classmethod
    def from_dbapi(
        cls, operation: str, parameters: Sequence[Any] | Mapping[str, Any] | None = None
    ) -> "SqlCommand":
        """Build from DB-API ``execute`` arguments.

        Named parameters keep their names; positional ones are named ``?1``, ``?2``...
        """
        if parameters is None:
            return cls(operation)
        if isinstance(parameters, Mapping):
            params = [
                SqlParameter(str(name), value, is_nullable=value is None)
                for name, value in parameters.items()
            ]
        else:
            params = [
                SqlParameter(f"?{i}", value, is_nullable=value is None)
                for i, value in enumerate(parameters, start=1)
            ]
        return cls(operation, params)


def _is_rows(value: Any) -> bool:
    return (
        isinstance(value, Sequence)
        and not isinstance(value, (str, bytes, bytearray))
        and all(isinstance(row, Mapping) for row in value)
    )


def infer_db_type(value: Any) -> str:
    if value is None:
        return "Object"
    if isinstance(value, Enum):
        return infer_db_type(value.value)
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Int64"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, Decimal):
        return "Decimal"
    if isinstance(value, str):
        return "String"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "Binary"
    if isinstance(value, datetime):
        return "DateTime"
    if isinstance(value, date):
        return "Date"
    if isinstance(value, time):
        return "Time"
    if isinstance(value, uuid.UUID):
        return "Guid"
    if _is_rows(value):
        return "Structured"
    return "Object"


def render_parameter_value(value: Any, db_type: str) -> str | None:
    """Return ``value`` in a form safe to store and display."""
    if value is None:
        return None

    if db_type == "Binary":
        if isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
            if len(raw) <= MAX_BYTE_PARAMETER_SIZE:
                return "0x" + raw.hex().upper()
        # too long (or not bytes at all), so blank it
        return None

    if db_type == "Structured" and _is_rows(value):
        pairs = [
            {"Name": str(name), "Value": item}
            for row in value
            for name, item in row.items()
        ]
        return json.dumps(pairs, separators=(",", ":"), default=str)

    if isinstance(value, datetime):
        return value.strftime(_SORTABLE_DATETIME)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).strftime(_SORTABLE_DATETIME)

    # integral value of an enum, not its name
    if isinstance(value, Enum):
        return str(value.value)

    return str(value)


def _parameter_size(parameter: SqlParameter) -> int:
    if parameter.value is None:
        return 0
    if parameter.size is not None:
        return parameter.size
    if isinstance(parameter.value, (str, bytes, bytearray, memoryview)):
        return len(parameter.value)
    return 0


def add_spaces_to_parameters(command_text: str) -> str:
    """Put a space after crowded commas: ``a,b`` -> ``a, b``."""
    return _CROWDED_COMMA.sub(r", \1", command_text)


def get_command_parameters(command: SqlCommand) -> list[SqlTimingParameter] | None:
    """Capture display-safe parameter metadata; None when there are no parameters."""
    if not command.parameters:
        return None

    result: list[SqlTimingParameter] = []
    for parameter in command.parameters:
        if not parameter.name or not parameter.name.strip():
            continue
        db_type = parameter.db_type or infer_db_type(parameter.value)
        result.append(
            SqlTimingParameter(
                name=parameter.name.strip(),
                value=render_parameter_value(parameter.value, db_type),
                db_type=db_type,
                size=_parameter_size(parameter),
                direction=parameter.direction,
                is_nullable=parameter.is_nullable,
            )
        )
    return result


class SqlTiming:
    """Profiles a single SQL execution as a ``"sql"`` custom timing.

    Args:
        command: Command text and parameters
        execute_type: NonQuery, Scalar or Reader
        session: Session whose current step receives the timing

    Usage:
        timing = SqlTiming(SqlCommand("SELECT * FROM t"), SqlExecuteType.READER, session)
        cursor.execute("SELECT * FROM t")
        timing.execution_complete(is_reader=True)
        rows = cursor.fetchall()
        timing.reader_fetch_complete()

    Design by Contract:
        - session MUST be capturing (active, with a head); AssertionError otherwise
    """

    @beartype
    def __init__(
        self,
        command: SqlCommand,
        execute_type: SqlExecuteType,
        session: ProfilingSession | None,
    ) -> None:
        assert session is not None, "SqlTiming requires a profiling session"

        command_text = add_spaces_to_parameters(command.command_text)
        parameters = get_command_parameters(command)

        formatter = session.settings.sql_formatter
        if formatter is not None:
            command_text = formatter.format_sql(command_text, parameters, command)

        custom = session.custom_timing(SQL_CATEGORY, command_text, execute_type.value)
        assert custom is not None, (
            "Cannot attach SQL timing: session is inactive, stopped or has no current step"
        )
        custom.parameters = parameters

        self.execute_type = execute_type
        self._custom_timing: CustomTiming = custom

    @property
    def custom_timing(self) -> CustomTiming:
        return self._custom_timing

    @property
    def start_milliseconds(self) -> Decimal:
        return self._custom_timing.start_milliseconds

    @property
    def duration_milliseconds(self) -> Decimal | None:
        return self._custom_timing.duration_milliseconds

    @property
    def first_fetch_duration_milliseconds(self) -> Decimal | None:
        return self._custom_timing.first_fetch_duration_milliseconds

    def execution_complete(self, is_reader: bool) -> None:
        """Readers only mark the first fetch; everything else is finished."""
        if is_reader:
            self._custom_timing.first_fetch_completed()
        else:
            self._custom_timing.stop()

    def reader_fetch_complete(self) -> None:
        self._custom_timing.stop()

    def execution_failed(self) -> None:
        self._custom_timing.errored = True
        self._custom_timing.stop()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SqlTiming) and self._custom_timing.id == other._custom_timing.id

    def __hash__(self) -> int:
        return hash(self._custom_timing.id)

    def __str__(self) -> str:
        return str(self._custom_timing)


SessionSource = ProfilingSession | Callable[[], ProfilingSession | None] | None


def _resolve(source: SessionSource) -> ProfilingSession | None:
    if source is None or isinstance(source, ProfilingSession):
        return source
    return source()


def _guess_execute_type(operation: str) -> SqlExecuteType:
    keyword = operation.lstrip().split(None, 1)[0].upper() if operation.strip() else ""
    return SqlExecuteType.READER if keyword in _READER_KEYWORDS else SqlExecuteType.NON_QUERY


class ProfiledCursor:
    """DB-API 2.0 cursor wrapper timing every statement as an SqlTiming.

    Statements that produce rows stay open until the cursor is drained or closed.
    Without a capturing session every call passes straight through.
    """

    def __init__(self, cursor: Any, session: SessionSource) -> None:
        self._cursor = cursor
        self._session = session
        self._reader: SqlTiming | None = None

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cursor, name)

    def _start(self, command: SqlCommand, execute_type: SqlExecuteType) -> SqlTiming | None:
        session = _resolve(self._session)
        if session is None or not session.is_capturing:
            return None
        return SqlTiming(command, execute_type, session)

    def _finish_reader(self) -> None:
        if self._reader is not None:
            self._reader.reader_fetch_complete()
            self._reader = None

    def execute(
        self, operation: str, parameters: Sequence[Any] | Mapping[str, Any] | None = None
    ) -> "ProfiledCursor":
        self._finish_reader()
        timing = self._start(
            SqlCommand.from_dbapi(operation, parameters), _guess_execute_type(operation)
        )
        try:
            if parameters is None:
                self._cursor.execute(operation)
            else:
                self._cursor.execute(operation, parameters)
        except Exception:
            if timing is not None:
                timing.execution_failed()
            raise
        if timing is not None:
            is_reader = self._cursor.description is not None
            timing.execution_complete(is_reader)
            if is_reader:
                self._reader = timing
        return self

    def executemany(self, operation: str, seq_of_parameters: Any) -> "ProfiledCursor":
        self._finish_reader()
        timing = self._start(SqlCommand(operation), SqlExecuteType.NON_QUERY)
        try:
            self._cursor.executemany(operation, seq_of_parameters)
        except Exception:
            if timing is not None:
                timing.execution_failed()
            raise
        if timing is not None:
            timing.execution_complete(is_reader=False)
        return self

    def fetchone(self) -> Any:
        row = self._cursor.fetchone()
        if row is None:
            self._finish_reader()
        return row

    def fetchmany(self, size: int | None = None) -> list[Any]:
        expected = size if size is not None else self._cursor.arraysize
        rows = self._cursor.fetchmany(expected)
        if len(rows) < expected:
            self._finish_reader()
        return rows

    def fetchall(self) -> list[Any]:
        rows = self._cursor.fetchall()
        self._finish_reader()
        return rows

    def close(self) -> None:
        self._finish_reader()
        self._cursor.close()

    def __iter__(self) -> Iterator[Any]:
        while True:
            row = self.fetchone()
            if row is None:
                return
            yield row

    def __enter__(self) -> "ProfiledCursor":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class ProfiledConnection:
    """DB-API 2.0 connection wrapper handing out ProfiledCursors.

    Args:
        connection: Underlying DB-API connection
        session: A session, a zero-argument callable returning the current
            session (e.g. ``provider.current``), or None

    Usage:
        conn = ProfiledConnection(sqlite3.connect(":memory:"), provider.current)
        rows = conn.execute("SELECT 1").fetchall()
    """

    def __init__(self, connection: Any, session: SessionSource) -> None:
        self._connection = connection
        self._session = session

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)

    def cursor(self, *args: Any, **kwargs: Any) -> ProfiledCursor:
        return ProfiledCursor(self._connection.cursor(*args, **kwargs), self._session)

    def execute(
        self, operation: str, parameters: Sequence[Any] | Mapping[str, Any] | None = None
    ) -> ProfiledCursor:
        return self.cursor().execute(operation, parameters)

    def __enter__(self) -> "ProfiledConnection":
        self._connection.__enter__()
        return self

    def __exit__(self, *args: Any) -> Any:
        return self._connection.__exit__(*args)
