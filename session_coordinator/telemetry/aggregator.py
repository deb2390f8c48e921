"""
Telemetry aggregation.

Keeps bounded, append-only histories of usage events and page views and
computes page-view durations from navigation and visibility transitions.
Durations count visible time only: hiding the tab stamps the current view,
and showing it again restarts the clock so the hidden interval is skipped.

All mutation happens on the event loop thread; no locking is needed.
"""

from __future__ import annotations

import logging
import re
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from ..config import DEFAULT_EVENT_HISTORY_LIMIT, DEFAULT_PAGE_VIEW_HISTORY_LIMIT
from ..exceptions import TelemetryError
from .sinks import MetricsSink
from .types import AnalyticsEvent, PageView, ParamValue

logger = logging.getLogger(__name__)

_EMAIL_MASK = re.compile(r"^(.{2})(.*)(@.*)$")


def mask_email(email: str) -> str:
    """Keep the first two characters and the domain: ``al***@example.com``."""
    match = _EMAIL_MASK.match(email)
    if not match:
        return "***"
    return f"{match.group(1)}***{match.group(3)}"


def _coerce_params(params: Mapping[str, Any] | None) -> dict[str, ParamValue]:
    if not params:
        return {}
    coerced: dict[str, ParamValue] = {}
    for key, value in params.items():
        if value is None:
            continue
        coerced[str(key)] = value if isinstance(value, (str, int, float, bool)) else str(value)
    return coerced


class TelemetryAggregator:
    """Bounded event and page-view histories with visible-time durations.

    Args:
        sink: Optional external metrics sink; failures are logged and discarded
        event_history_limit: Maximum retained events (oldest evicted first)
        page_view_history_limit: Maximum retained page views
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        sink: MetricsSink | None = None,
        event_history_limit: int = DEFAULT_EVENT_HISTORY_LIMIT,
        page_view_history_limit: int = DEFAULT_PAGE_VIEW_HISTORY_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self.sink = sink
        self._clock = clock
        self._events: deque[AnalyticsEvent] = deque(maxlen=event_history_limit)
        self._page_views: deque[PageView] = deque(maxlen=page_view_history_limit)
        self._current: PageView | None = None
        self._visible_since = 0
        self._visible_ms = 0
        self._hidden = False

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    @property
    def current_page(self) -> str | None:
        return self._current.path if self._current else None

    # =========================================================================
    # Recording
    # =========================================================================

    def record_event(self, name: str, params: Mapping[str, Any] | None = None) -> AnalyticsEvent:
        """Append an event to the history and forward it to the sink."""
        event = AnalyticsEvent(name=name, params=_coerce_params(params), timestamp=self._now_ms())
        self._events.append(event)
        self._forward(name, lambda sink: sink.emit(name, dict(event.params)))
        return event

    def record_page_view(self, path: str, title: str | None = None) -> PageView:
        """Close the current page view and open a new one for ``path``.

        A view opened while the tab is hidden starts counting once it is shown.
        """
        now = self._now_ms()
        if self._current is not None:
            self._close_current(self._current, now)

        params: dict[str, Any] = {"page_path": path}
        if title:
            params["page_title"] = title
        self.record_event("page_view", params)

        view = PageView(path=path, started_at=now)
        self._page_views.append(view)
        self._current = view
        self._visible_since = now
        self._visible_ms = 0
        return view

    def on_visibility_change(self, hidden: bool) -> None:
        """Account for the tab being hidden or shown again.

        Hidden: stamp the current view with the visible time so far; it stays
        current. Visible: restart the clock so the hidden interval is not
        counted. Repeated signals in the same direction are ignored.
        """
        if hidden == self._hidden:
            return
        self._hidden = hidden
        if self._current is None:
            return

        now = self._now_ms()
        if hidden:
            self._visible_ms += now - self._visible_since
            self._current.duration_ms = self._visible_ms
        else:
            self._visible_since = now

    def record_error(self, message: str, context: Mapping[str, Any] | None = None) -> AnalyticsEvent:
        return self.record_event("error", {"error_message": message, **(context or {})})

    def set_user_identifier(self, user_id: str | None) -> None:
        self._forward("set_user_id", lambda sink: sink.set_user_id(user_id))

    def set_user_property(self, name: str, value: str) -> None:
        self._forward("set_user_property", lambda sink: sink.set_user_property(name, value))

    # =========================================================================
    # Snapshots
    # =========================================================================

    def history(self) -> tuple[AnalyticsEvent, ...]:
        """Recorded events, oldest first."""
        return tuple(self._events)

    def page_view_history(self) -> tuple[PageView, ...]:
        """Recorded page views, oldest first. Entries are copies."""
        return tuple(replace(view) for view in self._page_views)

    def clear(self) -> None:
        """Empty both histories. The current page, if any, stays open."""
        self._events.clear()
        self._page_views.clear()

    # =========================================================================
    # Internals
    # =========================================================================

    def _close_current(self, view: PageView, now: int) -> None:
        if not self._hidden:
            self._visible_ms += now - self._visible_since
        view.duration_ms = self._visible_ms

    def _forward(self, event_name: str, call: Callable[[MetricsSink], None]) -> None:
        if self.sink is None:
            return
        try:
            call(self.sink)
        except Exception as e:
            error = TelemetryError(event_name, e)
            logger.error(
                error.message,
                exc_info=e,
                extra={"error_type": type(error).__name__, **error.details},
            )
