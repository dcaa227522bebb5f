"""Record: one captured state of one tracked document."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from terms_archive.core.errors import InvalidRecordError


@dataclass(frozen=True, slots=True)
class Record:
    """Immutable snapshot or version content at a point in time.

    ``fetch_date`` is when the content was observed, not when it was stored.
    ``id`` and ``is_first_record`` are only known once the record has been
    read back from a repository.
    """

    service_id: str
    document_type: str
    content: bytes
    mime_type: str
    fetch_date: datetime
    snapshot_ids: tuple[str, ...] = ()
    is_refilter: bool = False
    source_document_id: str | None = None
    id: str | None = field(default=None, compare=False)
    is_first_record: bool | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        for name in ("service_id", "document_type", "mime_type"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise InvalidRecordError(f"Record.{name} must be a non-empty string, got {value!r}")
        if isinstance(self.content, str):
            object.__setattr__(self, "content", self.content.encode("utf-8"))
        elif isinstance(self.content, (bytearray, memoryview)):
            object.__setattr__(self, "content", bytes(self.content))
        elif not isinstance(self.content, bytes):
            raise InvalidRecordError(f"Record.content must be bytes or str, got {type(self.content).__name__}")
        if not isinstance(self.fetch_date, datetime):
            raise InvalidRecordError(f"Record.fetch_date must be a datetime, got {self.fetch_date!r}")
        if self.fetch_date.tzinfo is None:
            object.__setattr__(self, "fetch_date", self.fetch_date.replace(tzinfo=timezone.utc))
        if isinstance(self.snapshot_ids, str):
            object.__setattr__(self, "snapshot_ids", (self.snapshot_ids,))
        else:
            object.__setattr__(self, "snapshot_ids", tuple(self.snapshot_ids))

    @property
    def snapshot_id(self) -> str | None:
        return self.snapshot_ids[0] if self.snapshot_ids else None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def with_identity(self, record_id: str | None, is_first_record: bool) -> "Record":
        return replace(self, id=record_id, is_first_record=is_first_record)


__all__ = ["Record"]
