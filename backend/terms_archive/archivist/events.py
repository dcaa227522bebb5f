"""Lifecycle events and the bus dispatching them to observers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable

from terms_archive.core.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[..., Any]
HandlerErrorCallback = Callable[["Event", BaseException], None]


class Event(str, Enum):
    TRACKING_STARTED = "tracking_started"
    TRACKING_COMPLETED = "tracking_completed"
    FIRST_SNAPSHOT_RECORDED = "first_snapshot_recorded"
    SNAPSHOT_RECORDED = "snapshot_recorded"
    SNAPSHOT_NOT_CHANGED = "snapshot_not_changed"
    FIRST_VERSION_RECORDED = "first_version_recorded"
    VERSION_RECORDED = "version_recorded"
    VERSION_NOT_CHANGED = "version_not_changed"
    INACCESSIBLE_CONTENT = "inaccessible_content"
    ERROR = "error"

    @property
    def handler_name(self) -> str:
        return f"on_{self.value}"


@dataclass(frozen=True, slots=True)
class TrackingRun:
    """Payload of ``tracking_started``."""

    service_ids: tuple[str, ...]
    units: int
    extract_only: bool
    started_at: datetime


@dataclass(frozen=True, slots=True)
class UnitFailure:
    """Payload of ``inaccessible_content`` and ``error``."""

    service_id: str
    document_type: str
    error: BaseException

    @property
    def reason(self) -> str:
        return str(self.error)


@dataclass(slots=True)
class TrackingReport:
    """Payload of ``tracking_completed``; also returned by ``Archivist.track``."""

    run: TrackingRun
    completed_at: datetime | None = None
    snapshots_recorded: int = 0
    versions_recorded: int = 0
    units_processed: int = 0
    units_skipped: int = 0
    failures: list[UnitFailure] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.run.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "services": len(self.run.service_ids),
            "units": self.run.units,
            "extract_only": self.run.extract_only,
            "processed": self.units_processed,
            "skipped": self.units_skipped,
            "snapshots_recorded": self.snapshots_recorded,
            "versions_recorded": self.versions_recorded,
            "failures": [
                {"service_id": f.service_id, "document_type": f.document_type, "reason": f.reason}
                for f in self.failures
            ],
        }


class Plugin:
    """Base class for observers attached with :meth:`EventBus.attach`.

    Subclasses define ``on_<event>`` methods for the events they handle. When
    ``events`` is set, only those events are subscribed and each of them must
    have a handler.
    """

    events: ClassVar[Iterable[Event] | None] = None


def forward_to_excepthook(event: Event, exc: BaseException) -> None:
    """Hand a failed handler's exception to ``threading.excepthook``."""
    threading.excepthook(
        threading.ExceptHookArgs([type(exc), exc, exc.__traceback__, threading.current_thread()])
    )


class EventBus:
    """Synchronous, ordered event dispatch.

    Handlers run one at a time, in emission order, whichever thread emits.
    A handler raising is logged, reported to ``on_handler_error`` (the thread
    excepthook unless replaced, ``None`` to only log) and never reaches the
    emitter.
    """

    def __init__(self, on_handler_error: HandlerErrorCallback | None = forward_to_excepthook) -> None:
        self._handlers: dict[Event, list[Handler]] = {}
        self._lock = threading.RLock()
        self.on_handler_error = on_handler_error

    def on(self, event: Event | str, handler: Handler) -> Handler:
        event = Event(event)
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)
        return handler

    def off(self, event: Event | str, handler: Handler) -> None:
        event = Event(event)
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def remove_all_listeners(self, event: Event | str | None = None) -> None:
        with self._lock:
            if event is None:
                self._handlers.clear()
            else:
                self._handlers.pop(Event(event), None)

    def listeners(self, event: Event | str) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(Event(event), []))

    def event_names(self) -> list[Event]:
        with self._lock:
            return [event for event, handlers in self._handlers.items() if handlers]

    def emit(self, event: Event | str, *args: Any) -> None:
        event = Event(event)
        with self._lock:
            for handler in list(self._handlers.get(event, [])):
                try:
                    handler(*args)
                except Exception as exc:
                    self._report(event, handler, exc)

    def attach(self, plugin: object) -> list[Event]:
        """Subscribe the ``on_<event>`` methods of ``plugin``; return the events attached."""
        declared = getattr(plugin, "events", None)
        candidates = [Event(event) for event in declared] if declared is not None else list(Event)
        attached: list[Event] = []
        for event in candidates:
            handler = getattr(plugin, event.handler_name, None)
            if not callable(handler):
                if declared is not None:
                    raise TypeError(f"{type(plugin).__name__} declares {event.value} but has no {event.handler_name}()")
                continue
            self.on(event, handler)
            attached.append(event)
        logger.debug("Attached %s to %s events", type(plugin).__name__, len(attached))
        return attached

    def _report(self, event: Event, handler: Handler, exc: Exception) -> None:
        name = getattr(handler, "__qualname__", repr(handler))
        logger.error("Handler %s failed on %s", name, event.value, exc_info=exc)
        if self.on_handler_error is None:
            return
        try:
            self.on_handler_error(event, exc)
        except Exception:
            logger.exception("Handler error callback failed")


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "forward_to_excepthook",
    "Plugin",
    "TrackingReport",
    "TrackingRun",
    "UnitFailure",
]
