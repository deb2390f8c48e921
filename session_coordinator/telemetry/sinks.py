"""
Metrics sinks.

External destinations for telemetry events. Calls are fire-and-forget:
the aggregator catches and discards any exception a sink raises.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO


class MetricsSink(ABC):
    """Destination for telemetry events."""

    @abstractmethod
    def emit(self, event_name: str, params: dict[str, Any]) -> None:
        """Forward one event."""
        ...

    def set_user_id(self, user_id: str | None) -> None:
        """Associate subsequent events with a user. Optional."""

    def set_user_property(self, name: str, value: str) -> None:
        """Attach a user-scoped property. Optional."""

    def close(self) -> None:
        """Flush and release resources. Optional."""


class LoggingMetricsSink(MetricsSink):
    """Writes each event as a log record with the params in ``extra``.

    Pairs with StructuredJsonFormatter to produce one JSON line per event.
    """

    def __init__(self, logger_name: str = "session_coordinator.metrics", level: int = logging.INFO):
        self.logger = logging.getLogger(logger_name)
        self.level = level
        self.user_id: str | None = None
        self.user_properties: dict[str, str] = {}

    def emit(self, event_name: str, params: dict[str, Any]) -> None:
        self.logger.log(
            self.level,
            event_name,
            extra={
                "event_name": event_name,
                "event_params": params,
                "user_id": self.user_id,
                "user_properties": dict(self.user_properties),
            },
        )

    def set_user_id(self, user_id: str | None) -> None:
        self.user_id = user_id

    def set_user_property(self, name: str, value: str) -> None:
        self.user_properties[name] = value


class JsonlMetricsSink(MetricsSink):
    """
    Appends events to a JSONL file, one JSON object per line.

    Each line has:
    - ts: ISO timestamp
    - event: Event name
    - params: Event parameters
    - user_id: Current user identifier, if set

    Example usage:
        with JsonlMetricsSink(Path("metrics.jsonl")) as sink:
            sink.emit("login", {"method": "email"})
    """

    def __init__(self, path: str | Path, *, buffer_size: int = 1):
        """Initialize the sink.

        Args:
            path: Output file. Parent directories are created on open.
            buffer_size: Write buffer size. 1 = line buffered (default).
        """
        self.path = Path(path)
        self.buffer_size = buffer_size
        self.user_id: str | None = None
        self.user_properties: dict[str, str] = {}
        self._file: TextIO | None = None
        self._event_count = 0

    @property
    def event_count(self) -> int:
        return self._event_count

    def open(self) -> JsonlMetricsSink:
        self._handle()
        return self

    def _handle(self) -> TextIO:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a", encoding="utf-8", buffering=self.buffer_size)
        return self._file

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> JsonlMetricsSink:
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def emit(self, event_name: str, params: dict[str, Any]) -> None:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "event": event_name,
            "params": params,
        }
        if self.user_id is not None:
            entry["user_id"] = self.user_id
        if self.user_properties:
            entry["user_properties"] = dict(self.user_properties)

        self._handle().write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        self._event_count += 1

    def set_user_id(self, user_id: str | None) -> None:
        self.user_id = user_id

    def set_user_property(self, name: str, value: str) -> None:
        self.user_properties[name] = value
