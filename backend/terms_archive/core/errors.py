"""Exception hierarchy for Terms Archive."""

from __future__ import annotations


class TermsArchiveError(Exception):
    """Base exception for Terms Archive."""


class InaccessibleContentError(TermsArchiveError):
    """Content of a document could not be obtained or extracted.

    Expected during normal operation; reported per unit, never aborts a run.
    """


class FetchError(InaccessibleContentError):
    """Fetching a source document failed."""

    def __init__(self, location: str, message: str) -> None:
        super().__init__(f"Fetch failed for {location}: {message}")
        self.location = location


class UnreachableError(FetchError):
    pass


class FetchTimeoutError(FetchError):
    pass


class HttpStatusError(FetchError):
    def __init__(self, location: str, status: int) -> None:
        super().__init__(location, f"received HTTP code {status}")
        self.status = status


class SelectorNotFoundError(InaccessibleContentError):
    """None of the content selectors matched the document."""

    def __init__(self, selectors: list[str]) -> None:
        super().__init__(f"The provided selector(s) {selectors!r} have no match in the document")
        self.selectors = selectors


class UnsupportedMimeTypeError(InaccessibleContentError):
    def __init__(self, mime_type: str) -> None:
        super().__init__(f"No filter registered for media type {mime_type!r}")
        self.mime_type = mime_type


class MissingSnapshotError(InaccessibleContentError):
    """Extract-only pass requested for a document without any stored snapshot."""


class StorageError(TermsArchiveError):
    """Underlying history log could not be read or written."""


class UnknownServiceError(TermsArchiveError):
    def __init__(self, service_id: str) -> None:
        super().__init__(f"Could not find any service with id {service_id!r}")
        self.service_id = service_id


class InvalidRecordError(TermsArchiveError, ValueError):
    pass


class DeclarationError(TermsArchiveError):
    """A service declaration file is malformed."""


__all__ = [
    "TermsArchiveError",
    "InaccessibleContentError",
    "FetchError",
    "UnreachableError",
    "FetchTimeoutError",
    "HttpStatusError",
    "SelectorNotFoundError",
    "UnsupportedMimeTypeError",
    "MissingSnapshotError",
    "StorageError",
    "UnknownServiceError",
    "InvalidRecordError",
    "DeclarationError",
]
