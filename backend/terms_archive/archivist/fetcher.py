"""Retrieve source documents over HTTP."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import Any, Mapping, Protocol
from urllib.parse import urlparse

import requests

from terms_archive.core.errors import FetchTimeoutError, HttpStatusError, UnreachableError
from terms_archive.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class FetchedDocument:
    location: str
    content: bytes
    mime_type: str


class Fetcher(Protocol):
    def fetch(self, location: str, options: Mapping[str, Any] | None = None) -> FetchedDocument:
        ...


class HttpFetcher:
    """Fetch documents with ``requests``; failures raise classified ``FetchError``s."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def fetch(self, location: str, options: Mapping[str, Any] | None = None) -> FetchedDocument:
        options = options or {}
        headers = dict(options.get("headers") or {})
        timeout = options.get("timeout", self.timeout)
        try:
            resp = self.session.get(location, headers=headers, timeout=timeout, allow_redirects=True)
        except requests.Timeout as exc:
            raise FetchTimeoutError(location, f"timed out after {timeout}s") from exc
        except (requests.ConnectionError, requests.exceptions.InvalidURL, requests.exceptions.MissingSchema) as exc:
            raise UnreachableError(location, str(exc)) from exc
        except requests.RequestException as exc:
            raise UnreachableError(location, str(exc)) from exc
        if not resp.ok:
            raise HttpStatusError(location, resp.status_code)
        mime_type = _mime_type(resp.headers.get("Content-Type"), location)
        logger.debug("Fetched %s (%s, %s bytes)", location, mime_type, len(resp.content))
        return FetchedDocument(location=location, content=resp.content, mime_type=mime_type)

    def close(self) -> None:
        self.session.close()


def _mime_type(content_type: str | None, location: str) -> str:
    if content_type:
        essence = content_type.split(";", 1)[0].strip().lower()
        if essence:
            return essence
    guessed, _ = mimetypes.guess_type(urlparse(location).path)
    return guessed or DEFAULT_MIME_TYPE


__all__ = ["FetchedDocument", "Fetcher", "HttpFetcher"]
