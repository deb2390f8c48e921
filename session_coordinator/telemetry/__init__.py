"""
Usage telemetry.

Bounded event and page-view histories plus best-effort metrics sinks.
"""

from .aggregator import TelemetryAggregator, mask_email
from .sinks import JsonlMetricsSink, LoggingMetricsSink, MetricsSink
from .types import AnalyticsEvent, PageView

__all__ = [
    "AnalyticsEvent",
    "PageView",
    "TelemetryAggregator",
    "mask_email",
    "MetricsSink",
    "LoggingMetricsSink",
    "JsonlMetricsSink",
]
