"""Tracking orchestration: fetch, snapshot, filter and version every declared document."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from terms_archive.archivist.events import (
    Event,
    EventBus,
    Handler,
    TrackingReport,
    TrackingRun,
    UnitFailure,
)
from terms_archive.archivist.fetcher import FetchedDocument, Fetcher, HttpFetcher
from terms_archive.archivist.filter import FilterRegistry, Filterer
from terms_archive.core.config import Settings
from terms_archive.core.errors import InaccessibleContentError, MissingSnapshotError, UnknownServiceError
from terms_archive.core.logging import get_logger, unit_context
from terms_archive.models.declarations import Service, Terms
from terms_archive.models.record import Record
from terms_archive.recorder.recorder import Recorder
from terms_archive.recorder.repository import VersionedRepository
from terms_archive.services.declarations import load_services
from terms_archive.utils.time import utc_now

logger = get_logger(__name__)

VERSION_MIME_TYPE = "text/markdown"
COMBINED_SEPARATOR = "\n\n"


@dataclass(slots=True)
class _Tally:
    snapshots_recorded: int = 0
    versions_recorded: int = 0
    skipped: bool = False
    failure: UnitFailure | None = None


@dataclass(slots=True)
class _Unit:
    service: Service
    terms: Terms
    tally: _Tally = field(default_factory=_Tally)


class Archivist:
    """Drive tracking runs across services and report every step as an event."""

    def __init__(
        self,
        recorder: Recorder,
        services: Mapping[str, Service],
        fetcher: Fetcher | None = None,
        filterer: Filterer | None = None,
        max_workers: int = 4,
        bus: EventBus | None = None,
    ) -> None:
        self.recorder = recorder
        self.services: dict[str, Service] = dict(services)
        self.fetcher = fetcher or HttpFetcher()
        self.filterer = filterer or FilterRegistry()
        self.max_workers = max_workers
        self.bus = bus or EventBus()
        self._stopping = threading.Event()

    @classmethod
    def from_settings(cls, settings: Settings, services: Mapping[str, Service] | None = None) -> "Archivist":
        return cls(
            recorder=Recorder.from_settings(settings),
            services=services if services is not None else load_services(settings.declarations_path),
            fetcher=HttpFetcher(timeout=settings.fetch_timeout, user_agent=settings.user_agent),
            max_workers=settings.max_workers,
        )

    @property
    def snapshots(self) -> VersionedRepository:
        return self.recorder.snapshots_repository

    @property
    def versions(self) -> VersionedRepository:
        return self.recorder.versions_repository

    def initialize(self) -> "Archivist":
        self.recorder.initialize()
        return self

    def close(self) -> None:
        self.recorder.close()
        close = getattr(self.fetcher, "close", None)
        if callable(close):
            close()

    # Events -----------------------------------------------------------

    def attach(self, plugin: object) -> list[Event]:
        return self.bus.attach(plugin)

    def on(self, event: Event | str, handler: Handler) -> Handler:
        return self.bus.on(event, handler)

    def emit(self, event: Event | str, *args: Any) -> None:
        self.bus.emit(event, *args)

    # Tracking ---------------------------------------------------------

    def track(self, services: Sequence[str] | None = None, extract_only: bool = False) -> TrackingReport:
        """Run one tracking pass; ``extract_only`` regenerates versions from stored snapshots."""
        service_ids = list(services) if services is not None else list(self.services)
        for service_id in service_ids:
            if service_id not in self.services:
                raise UnknownServiceError(service_id)

        units = [
            _Unit(service=self.services[service_id], terms=terms)
            for service_id in service_ids
            for terms in self.services[service_id].terms.values()
        ]
        run = TrackingRun(
            service_ids=tuple(service_ids),
            units=len(units),
            extract_only=extract_only,
            started_at=utc_now(),
        )
        report = TrackingReport(run=run)
        self._stopping.clear()
        logger.info(
            "Tracking %s documents of %s services%s",
            len(units),
            len(service_ids),
            " (extract only)" if extract_only else "",
        )
        self.emit(Event.TRACKING_STARTED, run)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="archivist") as pool:
            futures = [pool.submit(self._track_unit, unit, extract_only) for unit in units]
            for future in futures:
                future.result()

        for unit in units:
            tally = unit.tally
            if tally.skipped:
                report.units_skipped += 1
                continue
            report.units_processed += 1
            report.snapshots_recorded += tally.snapshots_recorded
            report.versions_recorded += tally.versions_recorded
            if tally.failure is not None:
                report.failures.append(tally.failure)
        report.completed_at = utc_now()
        logger.info("Tracking completed in %.2fs", report.duration_seconds, extra={"ctx_report": report.to_dict()})
        self.emit(Event.TRACKING_COMPLETED, report)
        return report

    def stop(self) -> None:
        """Let in-flight documents finish and skip the ones not started yet."""
        self._stopping.set()

    def _track_unit(self, unit: _Unit, extract_only: bool) -> None:
        if self._stopping.is_set():
            unit.tally.skipped = True
            return
        service_id, terms = unit.service.id, unit.terms
        try:
            if extract_only:
                self.refilter(service_id, terms, tally=unit.tally)
            else:
                self.track_terms(service_id, terms, tally=unit.tally)
        except InaccessibleContentError as exc:
            logger.warning("Inaccessible content: %s", exc, extra=unit_context(service_id, terms.type))
            unit.tally.failure = UnitFailure(service_id, terms.type, exc)
            self.emit(Event.INACCESSIBLE_CONTENT, unit.tally.failure)
        except Exception as exc:
            logger.exception("Unexpected error", extra=unit_context(service_id, terms.type))
            unit.tally.failure = UnitFailure(service_id, terms.type, exc)
            self.emit(Event.ERROR, unit.tally.failure)

    def track_terms(self, service_id: str, terms: Terms, tally: _Tally | None = None) -> Record:
        """Fetch, snapshot and version one document type."""
        fetch_date = utc_now()
        documents = self.fetch(terms)
        snapshots = self.record_snapshots(service_id, terms, documents, fetch_date, tally=tally)
        return self.record_version(service_id, terms, snapshots, tally=tally)

    def refilter(self, service_id: str, terms: Terms, tally: _Tally | None = None) -> Record:
        """Regenerate a version from the latest stored snapshots with the current selectors."""
        snapshots: list[Record] = []
        for index in range(len(terms.source_documents)):
            snapshot = self.snapshots.find_latest(service_id, terms.type, terms.source_key(index))
            if snapshot is None:
                raise MissingSnapshotError(f"No snapshot found for {service_id} {terms.type}")
            snapshots.append(snapshot)
        return self.record_version(service_id, terms, snapshots, is_refilter=True, tally=tally)

    def fetch(self, terms: Terms) -> list[FetchedDocument]:
        return [
            self.fetcher.fetch(source_document.location, {"headers": source_document.headers})
            for source_document in terms.source_documents
        ]

    def record_snapshots(
        self,
        service_id: str,
        terms: Terms,
        documents: Sequence[FetchedDocument],
        fetch_date: datetime,
        tally: _Tally | None = None,
    ) -> list[Record]:
        """Save one snapshot per source document.

        Unchanged snapshots come back carrying the id of the stored snapshot
        they are identical to.
        """
        snapshots: list[Record] = []
        for index, document in enumerate(documents):
            record = Record(
                service_id=service_id,
                document_type=terms.type,
                content=document.content,
                mime_type=document.mime_type,
                fetch_date=fetch_date,
                source_document_id=terms.source_key(index),
            )
            snapshot, changed = self._save(self.snapshots, record)
            if changed and tally is not None:
                tally.snapshots_recorded += 1
            if snapshot.is_first_record:
                self.emit(Event.FIRST_SNAPSHOT_RECORDED, snapshot)
            elif changed:
                self.emit(Event.SNAPSHOT_RECORDED, snapshot)
            else:
                self.emit(Event.SNAPSHOT_NOT_CHANGED, snapshot)
            snapshots.append(snapshot)
        return snapshots

    def record_version(
        self,
        service_id: str,
        terms: Terms,
        snapshots: Sequence[Record],
        is_refilter: bool = False,
        tally: _Tally | None = None,
    ) -> Record:
        """Filter ``snapshots`` with the current selectors and save the result as a version."""
        if len(snapshots) != len(terms.source_documents):
            raise ValueError(
                f"{terms.type} of {service_id} has {len(terms.source_documents)} source documents, "
                f"got {len(snapshots)} snapshots"
            )
        contents = [
            self.filterer.filter(snapshot.content, snapshot.mime_type, source_document.rules)
            for snapshot, source_document in zip(snapshots, terms.source_documents)
        ]
        record = Record(
            service_id=service_id,
            document_type=terms.type,
            content=COMBINED_SEPARATOR.join(contents),
            mime_type=VERSION_MIME_TYPE,
            fetch_date=max(snapshot.fetch_date for snapshot in snapshots),
            snapshot_ids=tuple(snapshot.id for snapshot in snapshots if snapshot.id),
            is_refilter=is_refilter,
        )
        version, changed = self._save(self.versions, record)
        if changed and tally is not None:
            tally.versions_recorded += 1
        if version.is_first_record:
            self.emit(Event.FIRST_VERSION_RECORDED, version)
        elif changed:
            self.emit(Event.VERSION_RECORDED, version)
        else:
            self.emit(Event.VERSION_NOT_CHANGED, version)
        return version

    @staticmethod
    def _save(repository: VersionedRepository, record: Record) -> tuple[Record, bool]:
        result = repository.save(record)
        if result.changed:
            return record.with_identity(result.id, result.is_first_record), True
        current = repository.find_current(record.service_id, record.document_type, record.source_document_id)
        return record.with_identity(current.id if current else None, False), False


__all__ = ["Archivist"]
