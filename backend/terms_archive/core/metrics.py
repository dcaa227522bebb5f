"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

RECORDS_TOTAL = Counter(
    "tarc_records_total",
    "Snapshot and version save outcomes",
    labelnames=("kind", "outcome"),
    registry=REGISTRY,
)

UNIT_FAILURES = Counter(
    "tarc_unit_failures_total",
    "Tracked documents that could not be processed",
    labelnames=("reason",),
    registry=REGISTRY,
)

TRACKING_DURATION = Histogram(
    "tarc_tracking_duration_seconds",
    "Duration of a tracking run",
    labelnames=("mode",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "RECORDS_TOTAL",
    "UNIT_FAILURES",
    "TRACKING_DURATION",
    "metrics_response",
]
