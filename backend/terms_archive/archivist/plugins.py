"""Built-in observers attached to the archivist event bus."""

from __future__ import annotations

import logging

from terms_archive.archivist.events import Plugin, TrackingReport, TrackingRun, UnitFailure
from terms_archive.core.logging import get_logger, unit_context
from terms_archive.core.metrics import RECORDS_TOTAL, TRACKING_DURATION, UNIT_FAILURES
from terms_archive.models.record import Record


class LoggingPlugin(Plugin):
    """Log every lifecycle event."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_logger("terms_archive.tracking")

    def on_tracking_started(self, run: TrackingRun) -> None:
        mode = "extracting" if run.extract_only else "tracking"
        self.logger.info("Start %s %s documents of %s services", mode, run.units, len(run.service_ids))

    def on_tracking_completed(self, report: TrackingReport) -> None:
        self.logger.info(
            "Recorded %s snapshots and %s versions, %s failures",
            report.snapshots_recorded,
            report.versions_recorded,
            len(report.failures),
        )

    def on_first_snapshot_recorded(self, record: Record) -> None:
        self._record("Start tracking, snapshot recorded", record)

    def on_snapshot_recorded(self, record: Record) -> None:
        self._record("Snapshot recorded", record)

    def on_snapshot_not_changed(self, record: Record) -> None:
        self._record("No changes in snapshot", record, level=logging.DEBUG)

    def on_first_version_recorded(self, record: Record) -> None:
        self._record("Start tracking, version recorded", record)

    def on_version_recorded(self, record: Record) -> None:
        self._record("Refilter recorded" if record.is_refilter else "Version recorded", record)

    def on_version_not_changed(self, record: Record) -> None:
        self._record("No changes in version", record, level=logging.DEBUG)

    def on_inaccessible_content(self, failure: UnitFailure) -> None:
        self.logger.warning(
            "Content inaccessible: %s",
            failure.reason,
            extra=unit_context(failure.service_id, failure.document_type),
        )

    def on_error(self, failure: UnitFailure) -> None:
        self.logger.error(
            "Tracking failed: %s",
            failure.reason,
            extra=unit_context(failure.service_id, failure.document_type),
        )

    def _record(self, message: str, record: Record, level: int = logging.INFO) -> None:
        self.logger.log(
            level,
            message,
            extra=unit_context(record.service_id, record.document_type, record_id=record.id),
        )


class MetricsPlugin(Plugin):
    """Feed Prometheus counters from lifecycle events."""

    def on_tracking_completed(self, report: TrackingReport) -> None:
        mode = "extract_only" if report.run.extract_only else "track"
        TRACKING_DURATION.labels(mode=mode).observe(report.duration_seconds)

    def on_first_snapshot_recorded(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="snapshot", outcome="first").inc()

    def on_snapshot_recorded(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="snapshot", outcome="recorded").inc()

    def on_snapshot_not_changed(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="snapshot", outcome="unchanged").inc()

    def on_first_version_recorded(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="version", outcome="first").inc()

    def on_version_recorded(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="version", outcome="recorded").inc()

    def on_version_not_changed(self, record: Record) -> None:
        RECORDS_TOTAL.labels(kind="version", outcome="unchanged").inc()

    def on_inaccessible_content(self, failure: UnitFailure) -> None:
        UNIT_FAILURES.labels(reason="inaccessible").inc()

    def on_error(self, failure: UnitFailure) -> None:
        UNIT_FAILURES.labels(reason="error").inc()


__all__ = ["LoggingPlugin", "MetricsPlugin"]
