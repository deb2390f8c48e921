"""Telemetry record types."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

ParamValue = str | int | float | bool


@dataclass(frozen=True)
class AnalyticsEvent:
    """A recorded usage event. Immutable once appended.

    ``params`` is copied into a read-only mapping on construction.
    """

    name: str
    params: Mapping[str, ParamValue] = field(default_factory=dict)
    timestamp: int = 0  # epoch milliseconds

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "params": dict(self.params), "timestamp": self.timestamp}


@dataclass
class PageView:
    """One contiguous interval of a path being the current page.

    duration_ms stays None until the view is closed by navigation or
    stamped when the tab is hidden. A view with no successor may keep it
    None indefinitely.
    """

    path: str
    started_at: int  # epoch milliseconds
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "started_at": self.started_at, "duration_ms": self.duration_ms}
