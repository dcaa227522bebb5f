"""Tests for the event bus."""

from __future__ import annotations

import threading

import pytest

from terms_archive.archivist.events import Event, EventBus, Plugin


def test_handlers_run_in_subscription_order() -> None:
    bus = EventBus()
    calls: list[str] = []
    bus.on(Event.SNAPSHOT_RECORDED, lambda record: calls.append(f"first {record}"))
    bus.on("snapshot_recorded", lambda record: calls.append(f"second {record}"))

    bus.emit(Event.SNAPSHOT_RECORDED, "r1")

    assert calls == ["first r1", "second r1"]
    assert bus.event_names() == [Event.SNAPSHOT_RECORDED]


def test_unknown_event_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        EventBus().on("snapshotRecorded", print)


def test_off_and_remove_all_listeners() -> None:
    bus = EventBus()
    calls: list[str] = []

    def handler(*args: object) -> None:
        calls.append("called")

    bus.on(Event.ERROR, handler)
    bus.off(Event.ERROR, handler)
    bus.emit(Event.ERROR, None)
    assert calls == []

    bus.on(Event.ERROR, handler)
    bus.on(Event.TRACKING_STARTED, handler)
    bus.remove_all_listeners(Event.ERROR)
    assert bus.listeners(Event.ERROR) == []
    assert bus.listeners(Event.TRACKING_STARTED) == [handler]
    bus.remove_all_listeners()
    assert bus.event_names() == []


def test_failing_handler_is_isolated_and_reported() -> None:
    reported: list[tuple[Event, BaseException]] = []
    bus = EventBus(on_handler_error=lambda event, exc: reported.append((event, exc)))
    calls: list[str] = []

    def broken(*args: object) -> None:
        raise RuntimeError("plugin bug")

    bus.on(Event.VERSION_RECORDED, broken)
    bus.on(Event.VERSION_RECORDED, lambda record: calls.append(record))

    bus.emit(Event.VERSION_RECORDED, "v1")

    assert calls == ["v1"]
    assert [(event, str(exc)) for event, exc in reported] == [(Event.VERSION_RECORDED, "plugin bug")]


def test_attach_subscribes_every_defined_handler() -> None:
    class Observer:
        def __init__(self) -> None:
            self.seen: list[str] = []

        def on_tracking_started(self, run: object) -> None:
            self.seen.append("started")

        def on_error(self, failure: object) -> None:
            self.seen.append("error")

    bus = EventBus()
    observer = Observer()
    attached = bus.attach(observer)
    bus.emit(Event.TRACKING_STARTED, None)
    bus.emit(Event.ERROR, None)
    bus.emit(Event.VERSION_RECORDED, None)

    assert set(attached) == {Event.TRACKING_STARTED, Event.ERROR}
    assert observer.seen == ["started", "error"]


def test_attach_restricts_to_declared_events() -> None:
    class Declared(Plugin):
        events = (Event.TRACKING_COMPLETED,)

        def on_tracking_started(self, run: object) -> None:
            raise AssertionError("not subscribed")

        def on_tracking_completed(self, report: object) -> None:
            pass

    bus = EventBus()
    assert bus.attach(Declared()) == [Event.TRACKING_COMPLETED]
    bus.emit(Event.TRACKING_STARTED, None)


def test_attach_requires_handlers_for_declared_events() -> None:
    class Incomplete(Plugin):
        events = (Event.ERROR,)

    with pytest.raises(TypeError):
        EventBus().attach(Incomplete())


def test_handler_errors_reach_the_thread_excepthook_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    hooked: list[threading.ExceptHookArgs] = []
    monkeypatch.setattr(threading, "excepthook", hooked.append)

    def broken(*args: object) -> None:
        raise RuntimeError("plugin bug")

    bus = EventBus()
    bus.on(Event.ERROR, broken)
    bus.emit(Event.ERROR, "failure")

    assert len(hooked) == 1
    assert hooked[0].exc_type is RuntimeError
    assert str(hooked[0].exc_value) == "plugin bug"
    assert hooked[0].thread is threading.current_thread()

    silent = EventBus(on_handler_error=None)
    silent.on(Event.ERROR, broken)
    silent.emit(Event.ERROR, "failure")
    assert len(hooked) == 1
