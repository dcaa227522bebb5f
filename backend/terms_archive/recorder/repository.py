"""Commit-based, content-addressed history of records.

A repository keeps one linear history per store directory. Every save that
changes a document appends a commit to a SQLite log and rewrites the
document's file in the working tree, so that
``<store>/<service_id>/<document_type><ext>`` always holds the current content
while older states are only reachable through the repository API.

Commit ids are SHA-1 digests of the parent id, the content digest, the path,
the author, the fetch date and the commit message, so two stores fed the same
logical history end up with identical ids.
"""

from __future__ import annotations

import mimetypes
import os
import shutil
import sqlite3
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Sequence

import orjson

from terms_archive.core.errors import InvalidRecordError, StorageError
from terms_archive.core.logging import get_logger, unit_context
from terms_archive.db.sqlite import SQLiteDatabase
from terms_archive.models.record import Record
from terms_archive.utils.hashing import commit_digest, sha256_bytes
from terms_archive.utils.text import safe_path_segment
from terms_archive.utils.time import from_ms, to_ms

logger = get_logger(__name__)

LOG_FILENAME = ".history.sqlite"

SCHEMA = """
CREATE TABLE IF NOT EXISTS blobs (
  sha256 TEXT PRIMARY KEY,
  content BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS commits (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  parent_id TEXT,
  service_id TEXT NOT NULL,
  document_type TEXT NOT NULL,
  source_document_id TEXT NOT NULL DEFAULT '',
  path TEXT NOT NULL,
  action TEXT NOT NULL,
  message TEXT NOT NULL,
  body TEXT NOT NULL,
  author TEXT NOT NULL,
  fetch_ts INTEGER NOT NULL,
  mime_type TEXT NOT NULL,
  blob_sha256 TEXT NOT NULL REFERENCES blobs (sha256),
  snapshot_ids TEXT NOT NULL,
  is_refilter INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_commits_axis
  ON commits (service_id, document_type, source_document_id, seq);
CREATE INDEX IF NOT EXISTS idx_commits_chronology
  ON commits (fetch_ts, seq);
"""

_SELECT_RECORDS = """
SELECT c.seq, c.id, c.service_id, c.document_type, c.source_document_id, c.action,
       c.fetch_ts, c.mime_type, c.snapshot_ids, c.is_refilter, b.content
FROM commits AS c
JOIN blobs AS b ON b.sha256 = c.blob_sha256
"""

_MIME_EXTENSIONS = {
    "text/html": ".html",
    "application/xhtml+xml": ".html",
    "text/markdown": ".md",
    "text/plain": ".txt",
    "application/pdf": ".pdf",
}


class Action(str, Enum):
    START_TRACKING = "Start tracking"
    UPDATE = "Update"
    REFILTER = "Refilter"


@dataclass(frozen=True, slots=True)
class SaveResult:
    """Outcome of :meth:`VersionedRepository.save`; ``id`` is ``None`` when nothing changed."""

    id: str | None
    is_first_record: bool

    @property
    def changed(self) -> bool:
        return self.id is not None


@dataclass(frozen=True, slots=True)
class Commit:
    id: str
    parent_id: str | None
    message: str
    body: str
    author: str
    fetch_ts: int


class VersionedRepository:
    """Append-only history of :class:`Record` objects for one store directory."""

    page_size = 100

    def __init__(self, path: Path, author_name: str, author_email: str) -> None:
        self.path = path.expanduser()
        self.author = f"{author_name} <{author_email}>"
        self._db = SQLiteDatabase(self.path / LOG_FILENAME)
        self._lock = threading.RLock()
        self._initialized = False

    def __repr__(self) -> str:
        return f"VersionedRepository({str(self.path)!r})"

    def initialize(self) -> "VersionedRepository":
        with self._lock:
            if not self._initialized:
                try:
                    self.path.mkdir(parents=True, exist_ok=True)
                    self._db.ensure_schema(SCHEMA)
                except (sqlite3.Error, OSError) as exc:
                    raise StorageError(f"Could not initialize repository at {self.path}: {exc}") from exc
                self._initialized = True
        return self

    def close(self) -> None:
        with self._lock:
            self._db.close()
            self._initialized = False

    # Writes -----------------------------------------------------------

    def save(self, record: Record) -> SaveResult:
        """Persist ``record`` unless its content equals the current one for its document."""
        if not isinstance(record, Record):
            raise InvalidRecordError(f"Expected a Record, got {type(record).__name__}")
        with self._lock:
            self.initialize()
            try:
                return self._save(record)
            except (sqlite3.Error, OSError) as exc:
                raise StorageError(
                    f"Could not save {record.service_id} {record.document_type} in {self.path}: {exc}"
                ) from exc

    def _save(self, record: Record) -> SaveResult:
        current = self._current_row(record)
        if current is not None and bytes(current["content"]) == record.content:
            logger.debug(
                "Content unchanged, nothing to record",
                extra=unit_context(record.service_id, record.document_type, store=str(self.path)),
            )
            return SaveResult(id=None, is_first_record=False)

        is_first_record = current is None
        if is_first_record:
            action = Action.START_TRACKING
        elif record.is_refilter:
            action = Action.REFILTER
        else:
            action = Action.UPDATE

        relative_path = self._relative_path(record)
        digest = sha256_bytes(record.content)
        commit = self._build_commit(record, action, relative_path, digest)
        previous_path = current["path"] if current is not None else None

        undo = self._write_working_file(relative_path, record.content, previous_path)
        try:
            with self._db.transaction() as cursor:
                cursor.execute(
                    "INSERT OR IGNORE INTO blobs (sha256, content) VALUES (?, ?)",
                    [digest, record.content],
                )
                cursor.execute(
                    """
                    INSERT INTO commits (
                      id, parent_id, service_id, document_type, source_document_id, path,
                      action, message, body, author, fetch_ts, mime_type, blob_sha256,
                      snapshot_ids, is_refilter
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        commit.id,
                        commit.parent_id,
                        record.service_id,
                        record.document_type,
                        record.source_document_id or "",
                        relative_path,
                        action.value,
                        commit.message,
                        commit.body,
                        commit.author,
                        commit.fetch_ts,
                        record.mime_type,
                        digest,
                        orjson.dumps(list(record.snapshot_ids)).decode("utf-8"),
                        int(record.is_refilter),
                    ],
                )
        except sqlite3.Error:
            undo()
            raise

        logger.info(
            "%s recorded",
            action.value,
            extra=unit_context(record.service_id, record.document_type, record_id=commit.id),
        )
        return SaveResult(id=commit.id, is_first_record=is_first_record)

    def _build_commit(self, record: Record, action: Action, relative_path: str, digest: str) -> Commit:
        row = self._db.execute("SELECT id FROM commits ORDER BY seq DESC LIMIT 1").fetchone()
        parent_id = row["id"] if row else None
        message = f"{action.value} {record.service_id} {record.document_type}"
        body = "\n".join(
            f"This version was recorded after filtering snapshot {snapshot_id}"
            for snapshot_id in record.snapshot_ids
        )
        fetch_ts = to_ms(record.fetch_date)
        commit_id = commit_digest(
            f"parent {parent_id or ''}",
            f"blob {digest}",
            f"path {relative_path}",
            f"author {self.author} {fetch_ts}",
            message,
            body,
        )
        return Commit(
            id=commit_id,
            parent_id=parent_id,
            message=message,
            body=body,
            author=self.author,
            fetch_ts=fetch_ts,
        )

    def remove_all(self) -> None:
        """Purge every commit and working-tree file of this store."""
        with self._lock:
            self.initialize()
            try:
                with self._db.transaction() as cursor:
                    cursor.execute("DELETE FROM commits")
                    cursor.execute("DELETE FROM blobs")
                    cursor.execute("DELETE FROM sqlite_sequence WHERE name = 'commits'")
                for child in self.path.iterdir():
                    if child.name.startswith(LOG_FILENAME):
                        continue
                    if child.is_dir():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            except (sqlite3.Error, OSError) as exc:
                raise StorageError(f"Could not purge repository at {self.path}: {exc}") from exc
        logger.info("Removed all records from %s", self.path)

    # Reads ------------------------------------------------------------

    def find_by_id(self, record_id: str) -> Record | None:
        rows = self._read(_SELECT_RECORDS + " WHERE c.id = ?", [record_id])
        return self._to_record(rows[0]) if rows else None

    def find_latest(
        self,
        service_id: str,
        document_type: str,
        source_document_id: str | None = None,
    ) -> Record | None:
        """Most recent record by fetch date; equal dates resolve to the last committed."""
        rows = self._read(
            _SELECT_RECORDS
            + """
            WHERE c.service_id = ? AND c.document_type = ? AND c.source_document_id = ?
            ORDER BY c.fetch_ts DESC, c.seq DESC
            LIMIT 1
            """,
            [service_id, document_type, source_document_id or ""],
        )
        return self._to_record(rows[0]) if rows else None

    find_latest_by_service_id_and_document_type = find_latest

    def find_current(
        self,
        service_id: str,
        document_type: str,
        source_document_id: str | None = None,
    ) -> Record | None:
        """Last committed record, i.e. the content currently held in the working tree."""
        rows = self._read(
            _SELECT_RECORDS
            + """
            WHERE c.service_id = ? AND c.document_type = ? AND c.source_document_id = ?
            ORDER BY c.seq DESC
            LIMIT 1
            """,
            [service_id, document_type, source_document_id or ""],
        )
        return self._to_record(rows[0]) if rows else None

    def find_all(self) -> list[Record]:
        rows = self._read(_SELECT_RECORDS + " ORDER BY c.fetch_ts, c.seq")
        return [self._to_record(row) for row in rows]

    def iterate(
        self,
        service_id: str | None = None,
        document_type: str | None = None,
    ) -> Iterator[Record]:
        """Lazily yield records in ascending fetch date, one page per lock acquisition."""
        filters: list[str] = []
        params: list[Any] = []
        if service_id is not None:
            filters.append("c.service_id = ?")
            params.append(service_id)
        if document_type is not None:
            filters.append("c.document_type = ?")
            params.append(document_type)

        cursor_key: tuple[int, int] | None = None
        while True:
            clauses = list(filters)
            page_params = list(params)
            if cursor_key is not None:
                clauses.append("(c.fetch_ts > ? OR (c.fetch_ts = ? AND c.seq > ?))")
                page_params.extend([cursor_key[0], cursor_key[0], cursor_key[1]])
            where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
            rows = self._read(
                _SELECT_RECORDS + where + " ORDER BY c.fetch_ts, c.seq LIMIT ?",
                [*page_params, self.page_size],
            )
            for row in rows:
                yield self._to_record(row)
            if len(rows) < self.page_size:
                return
            cursor_key = (rows[-1]["fetch_ts"], rows[-1]["seq"])

    def count(self) -> int:
        rows = self._read("SELECT COUNT(*) AS count FROM commits")
        return int(rows[0]["count"])

    def commit_for(self, record_id: str) -> Commit | None:
        """Return the log entry backing a record."""
        rows = self._read(
            "SELECT id, parent_id, message, body, author, fetch_ts FROM commits WHERE id = ?",
            [record_id],
        )
        if not rows:
            return None
        row = rows[0]
        return Commit(
            id=row["id"],
            parent_id=row["parent_id"],
            message=row["message"],
            body=row["body"],
            author=row["author"],
            fetch_ts=row["fetch_ts"],
        )

    def file_path(self, record: Record) -> Path:
        """Working-tree location holding the current content of ``record``'s document."""
        return self.path / self._relative_path(record)

    # Internal helpers -------------------------------------------------

    def _read(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self._lock:
            self.initialize()
            try:
                return self._db.query(sql, params)
            except sqlite3.Error as exc:
                raise StorageError(f"Could not read repository at {self.path}: {exc}") from exc

    def _current_row(self, record: Record) -> sqlite3.Row | None:
        return self._db.execute(
            """
            SELECT c.path, b.content
            FROM commits AS c
            JOIN blobs AS b ON b.sha256 = c.blob_sha256
            WHERE c.service_id = ? AND c.document_type = ? AND c.source_document_id = ?
            ORDER BY c.seq DESC
            LIMIT 1
            """,
            [record.service_id, record.document_type, record.source_document_id or ""],
        ).fetchone()

    def _relative_path(self, record: Record) -> str:
        name = safe_path_segment(record.document_type)
        if record.source_document_id:
            name = f"{name}.{safe_path_segment(record.source_document_id)}"
        return f"{safe_path_segment(record.service_id)}/{name}{_extension_for(record.mime_type)}"

    def _write_working_file(self, relative_path: str, content: bytes, previous_path: str | None):
        """Write the current content and return a callable restoring the previous state."""
        target = self.path / relative_path
        previous = self.path / previous_path if previous_path else None
        previous_content = previous.read_bytes() if previous is not None and previous.exists() else None

        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.tmp")
        tmp_path.write_bytes(content)
        os.replace(tmp_path, target)
        if previous is not None and previous != target and previous.exists():
            previous.unlink()

        def undo() -> None:
            if previous is None or previous != target:
                target.unlink(missing_ok=True)
            if previous is not None and previous_content is not None:
                previous.parent.mkdir(parents=True, exist_ok=True)
                previous.write_bytes(previous_content)

        return undo

    @staticmethod
    def _to_record(row: sqlite3.Row) -> Record:
        return Record(
            service_id=row["service_id"],
            document_type=row["document_type"],
            content=bytes(row["content"]),
            mime_type=row["mime_type"],
            fetch_date=from_ms(row["fetch_ts"]),
            snapshot_ids=tuple(orjson.loads(row["snapshot_ids"])),
            is_refilter=bool(row["is_refilter"]),
            source_document_id=row["source_document_id"] or None,
            id=row["id"],
            is_first_record=row["action"] == Action.START_TRACKING.value,
        )


def _extension_for(mime_type: str) -> str:
    essence = mime_type.split(";", 1)[0].strip().lower()
    return _MIME_EXTENSIONS.get(essence) or mimetypes.guess_extension(essence) or ""


__all__ = ["Action", "Commit", "SaveResult", "VersionedRepository"]
