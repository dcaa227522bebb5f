"""Tests for the built-in tracking plugins."""

from __future__ import annotations

import logging

import pytest

from conftest import SERVICE_A_ID, SERVICE_A_LOCATION
from terms_archive.archivist.plugins import LoggingPlugin, MetricsPlugin
from terms_archive.archivist.tracker import Archivist
from terms_archive.core.errors import UnreachableError
from terms_archive.core.metrics import REGISTRY


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_metrics_plugin_counts_outcomes(archivist: Archivist, fetcher) -> None:
    archivist.attach(MetricsPlugin())
    first = sample("tarc_records_total", kind="version", outcome="first")
    unchanged = sample("tarc_records_total", kind="snapshot", outcome="unchanged")
    inaccessible = sample("tarc_unit_failures_total", reason="inaccessible")
    runs = sample("tarc_tracking_duration_seconds_count", mode="track")

    archivist.track()
    fetcher.fail(SERVICE_A_LOCATION, UnreachableError(SERVICE_A_LOCATION, "down"))
    archivist.track()

    assert sample("tarc_records_total", kind="version", outcome="first") == first + 2
    assert sample("tarc_records_total", kind="snapshot", outcome="unchanged") == unchanged + 1
    assert sample("tarc_unit_failures_total", reason="inaccessible") == inaccessible + 1
    assert sample("tarc_tracking_duration_seconds_count", mode="track") == runs + 2


def test_logging_plugin_reports_records(archivist: Archivist, caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("terms_archive.tests.tracking")
    archivist.attach(LoggingPlugin(logger))

    with caplog.at_level(logging.INFO, logger="terms_archive.tests.tracking"):
        archivist.track(services=[SERVICE_A_ID])

    messages = [record.getMessage() for record in caplog.records if record.name == logger.name]
    assert messages[0] == "Start tracking 1 documents of 1 services"
    assert "Start tracking, snapshot recorded" in messages
    assert "Start tracking, version recorded" in messages
    assert messages[-1] == "Recorded 1 snapshots and 1 versions, 0 failures"
    recorded = next(r for r in caplog.records if r.getMessage() == "Start tracking, version recorded")
    assert recorded.ctx_service_id == SERVICE_A_ID
