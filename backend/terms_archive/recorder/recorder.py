"""Snapshot and version stores used by a tracking run."""

from __future__ import annotations

from terms_archive.core.config import Settings
from terms_archive.recorder.repository import VersionedRepository


class Recorder:
    """Own the raw-snapshot and derived-version repositories."""

    def __init__(
        self,
        snapshots_repository: VersionedRepository,
        versions_repository: VersionedRepository,
    ) -> None:
        if snapshots_repository.path.resolve() == versions_repository.path.resolve():
            raise ValueError("Snapshots and versions must be stored in distinct directories")
        self.snapshots_repository = snapshots_repository
        self.versions_repository = versions_repository

    @classmethod
    def from_settings(cls, settings: Settings) -> "Recorder":
        return cls(
            snapshots_repository=VersionedRepository(
                settings.snapshots_path, settings.author_name, settings.author_email
            ),
            versions_repository=VersionedRepository(
                settings.versions_path, settings.author_name, settings.author_email
            ),
        )

    def initialize(self) -> "Recorder":
        self.snapshots_repository.initialize()
        self.versions_repository.initialize()
        return self

    def close(self) -> None:
        self.snapshots_repository.close()
        self.versions_repository.close()

    def remove_all(self) -> None:
        self.snapshots_repository.remove_all()
        self.versions_repository.remove_all()


__all__ = ["Recorder"]
