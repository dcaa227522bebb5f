"""Test fixtures for Terms Archive."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Mapping

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from terms_archive.archivist.events import Event, EventBus  # noqa: E402
from terms_archive.archivist.fetcher import FetchedDocument  # noqa: E402
from terms_archive.archivist.tracker import Archivist  # noqa: E402
from terms_archive.models.declarations import Service, SourceDocument, Terms  # noqa: E402
from terms_archive.recorder.recorder import Recorder  # noqa: E402
from terms_archive.recorder.repository import VersionedRepository  # noqa: E402

AUTHOR_NAME = "Terms Archive Test"
AUTHOR_EMAIL = "test@terms-archive.invalid"

SERVICE_A_ID = "service·A"
SERVICE_A_TYPE = "Terms of Service"
SERVICE_A_LOCATION = "https://www.servicea.example/tos"
SERVICE_A_HTML = """<!DOCTYPE html>
<html>
  <head><title>Service A</title><style>p { color: red; }</style></head>
  <body>
    <nav>Menu</nav>
    <main>
      <h1>Terms of service</h1>
      <p>First   clause.</p>
      <div class="ad">Buy now</div>
      <p>Second clause with UTF-8 çhãràčtęrs.</p>
    </main>
  </body>
</html>
"""
SERVICE_A_VERSION = "# Terms of service\n\nFirst clause.\n\nSecond clause with UTF-8 çhãràčtęrs."

SERVICE_B_ID = "Service B!"
SERVICE_B_TYPE = "Privacy Policy"
SERVICE_B_LOCATION = "https://www.serviceb.example/privacy"
SERVICE_B_TEXT = "Privacy policy  \n\n\n\nWe collect nothing.\n"
SERVICE_B_VERSION = "Privacy policy\n\nWe collect nothing."


class FakeFetcher:
    """In-memory fetcher: maps locations to documents or to exceptions to raise."""

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []

    def serve(self, location: str, content: str | bytes, mime_type: str) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.responses[location] = FetchedDocument(location=location, content=content, mime_type=mime_type)

    def fail(self, location: str, error: Exception) -> None:
        self.responses[location] = error

    def fetch(self, location: str, options: Mapping[str, Any] | None = None) -> FetchedDocument:
        self.calls.append(location)
        response = self.responses[location]
        if isinstance(response, Exception):
            raise response
        return response


class EventRecorder:
    """Plugin keeping the ordered trace of every event."""

    def __init__(self) -> None:
        self.trace: list[tuple[Event, tuple[Any, ...]]] = []
        for event in Event:
            setattr(self, event.handler_name, self._handler(event))

    def _handler(self, event: Event):
        def handle(*args: Any) -> None:
            self.trace.append((event, args))

        return handle

    def names(self) -> list[Event]:
        return [event for event, _ in self.trace]

    def payloads(self, event: Event) -> list[Any]:
        return [args[0] for name, args in self.trace if name == event]

    def clear(self) -> None:
        self.trace.clear()


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("TARC_SNAPSHOTS_PATH", str(tmp_path / "snapshots"))
    monkeypatch.setenv("TARC_VERSIONS_PATH", str(tmp_path / "versions"))
    monkeypatch.setenv("TARC_DECLARATIONS_PATH", str(tmp_path / "declarations"))
    monkeypatch.delenv("TARC_CONFIG", raising=False)

    from terms_archive.api import dependencies as deps
    from terms_archive.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._SERVICES = None
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._SERVICES = None


@pytest.fixture
def repository(tmp_path: Path) -> VersionedRepository:
    repo = VersionedRepository(tmp_path / "store", AUTHOR_NAME, AUTHOR_EMAIL).initialize()
    yield repo
    repo.close()


@pytest.fixture
def services() -> dict[str, Service]:
    return {
        SERVICE_A_ID: Service(
            id=SERVICE_A_ID,
            name="Service A",
            terms={
                SERVICE_A_TYPE: Terms(
                    type=SERVICE_A_TYPE,
                    source_documents=[
                        SourceDocument(location=SERVICE_A_LOCATION, content_selectors=["main"], remove_selectors=[".ad"])
                    ],
                )
            },
        ),
        SERVICE_B_ID: Service(
            id=SERVICE_B_ID,
            name="Service B",
            terms={
                SERVICE_B_TYPE: Terms(
                    type=SERVICE_B_TYPE,
                    source_documents=[SourceDocument(location=SERVICE_B_LOCATION)],
                )
            },
        ),
    }


@pytest.fixture
def fetcher() -> FakeFetcher:
    fake = FakeFetcher()
    fake.serve(SERVICE_A_LOCATION, SERVICE_A_HTML, "text/html")
    fake.serve(SERVICE_B_LOCATION, SERVICE_B_TEXT, "text/plain")
    return fake


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def handler_errors() -> list[tuple[Event, BaseException]]:
    return []


@pytest.fixture
def archivist(
    tmp_path: Path,
    services: dict[str, Service],
    fetcher: FakeFetcher,
    events: EventRecorder,
    handler_errors: list[tuple[Event, BaseException]],
) -> Archivist:
    recorder = Recorder(
        VersionedRepository(tmp_path / "snapshots", AUTHOR_NAME, AUTHOR_EMAIL),
        VersionedRepository(tmp_path / "versions", AUTHOR_NAME, AUTHOR_EMAIL),
    )
    bus = EventBus(on_handler_error=lambda event, exc: handler_errors.append((event, exc)))
    app = Archivist(recorder=recorder, services=services, fetcher=fetcher, max_workers=2, bus=bus).initialize()
    app.attach(events)
    yield app
    app.close()
