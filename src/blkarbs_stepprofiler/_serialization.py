"""JSON wire format for profiling sessions.

Field order follows ProfilingSession.to_dict(); decimal millisecond fields always
render with exactly one fractional digit. Oversized payloads are an error, never
silently truncated.
"""

import json
from decimal import Decimal
from typing import Any

from beartype import beartype

from blkarbs_stepprofiler._core import ProfilingSession
from blkarbs_stepprofiler._settings import DEFAULT_SETTINGS, ProfilerSettings

_ONE_PLACE = Decimal("0.1")


class PayloadTooLargeError(ValueError):
    """Serialized session exceeds the configured maximum payload size."""

    def __init__(self, size: int, max_length: int) -> None:
        super().__init__(
            f"Serialized profiler payload is {size} characters; "
            f"maximum allowed is {max_length}"
        )
        self.size = size
        self.max_length = max_length


def _encode_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        # one-decimal floats round-trip through repr() exactly, e.g. 2.0 / 1.5
        return float(value.quantize(_ONE_PLACE))
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@beartype
def to_json(session: ProfilingSession, max_length: int | None = None) -> str:
    """Serialize ``session``.

    Args:
        session: Session to serialize (normally already stopped)
        max_length: Max payload size in characters
            (default: session.settings.max_json_response_size)

    Raises:
        PayloadTooLargeError: Payload exceeds ``max_length``
    """
    limit = max_length if max_length is not None else session.settings.max_json_response_size
    payload = json.dumps(session.to_dict(), default=_encode_default, separators=(",", ":"))
    if len(payload) > limit:
        raise PayloadTooLargeError(len(payload), limit)
    return payload


@beartype
def from_json(text: str, settings: ProfilerSettings = DEFAULT_SETTINGS) -> ProfilingSession:
    """Load a session serialized by to_json(); parent links are rebuilt."""
    data = json.loads(text, parse_float=Decimal)
    return ProfilingSession.from_dict(data, settings=settings)
