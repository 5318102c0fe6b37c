"""Timings reported by the client (browser navigation/paint probes)."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass
class ClientTiming:
    """A single client-side probe, offsets in milliseconds."""

    name: str
    start: Decimal
    duration: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "start": self.start, "duration": self.duration}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientTiming":
        return cls(
            name=str(data["name"]),
            start=Decimal(str(data["start"])),
            duration=Decimal(str(data["duration"])),
        )


@dataclass
class ClientTimings:
    """Client timing list plus the redirect count observed by the client."""

    redirect_count: int = 0
    timings: list[ClientTiming] = field(default_factory=list)

    def __post_init__(self) -> None:
        assert self.redirect_count >= 0, (
            f"Redirect count must be non-negative: {self.redirect_count}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "redirectCount": self.redirect_count,
            "timings": [t.to_dict() for t in self.timings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientTimings":
        """Create from a posted payload; ``timings`` may be missing."""
        return cls(
            redirect_count=int(data.get("redirectCount", 0)),
            timings=[ClientTiming.from_dict(t) for t in data.get("timings") or []],
        )
