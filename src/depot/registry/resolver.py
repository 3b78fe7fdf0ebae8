"""Resolve a requested version to a record and the artifact backing it."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from depot.errors import NotFoundError, NotFoundReason
from depot.models import VersionRecord
from depot.registry.filenames import sanitize_base_name
from depot.registry.ordering import sort_records
from depot.registry.store import VersionStore


logger = logging.getLogger(__name__)

LATEST = "latest"

# Separators used by past file naming schemes (name_1.0.exe, app-1.0.exe)
LEGACY_SEPARATORS = ("_", "-")


@dataclass
class Resolution:
    """A resolved version: its record and the file on disk."""

    record: VersionRecord
    path: Path

    @property
    def file_name(self) -> str:
        return self.path.name


class VersionResolver:
    """Answers "which file backs version V of project P"."""

    def __init__(self, store: VersionStore) -> None:
        self.store = store

    def list_versions(self, project_id: str) -> list[VersionRecord]:
        """All records of a project, newest first."""
        return sort_records(self.store.load(project_id))

    def resolve(self, project_id: str, token: str) -> Resolution:
        """Resolve ``latest`` or an exact version token."""
        if token == LATEST:
            return self.resolve_latest(project_id)
        return self.resolve_exact(project_id, token)

    def resolve_latest(self, project_id: str) -> Resolution:
        """Resolve the newest version.

        Storage order is not trusted: records are sorted on every read.
        """
        records = self.list_versions(project_id)
        if not records:
            raise NotFoundError(NotFoundReason.NO_VERSIONS)
        record = records[0]
        return Resolution(record=record, path=self.locate_file(project_id, record))

    def resolve_exact(self, project_id: str, version: str) -> Resolution:
        """Resolve a version by exact string match ("1.0" is not "1.0.0")."""
        record = self.find_record(project_id, version)
        if record is None:
            raise NotFoundError(
                NotFoundReason.VERSION_NOT_FOUND,
                f"Version {version} does not exist",
            )
        return Resolution(record=record, path=self.locate_file(project_id, record))

    def find_record(self, project_id: str, version: str) -> Optional[VersionRecord]:
        for record in self.store.load(project_id):
            if record.version == version:
                return record
        return None

    def locate_file(self, project_id: str, record: VersionRecord) -> Path:
        """Find the artifact for a record.

        The stored ``fileName`` is tried first. Records written under older
        naming schemes may point at a name that no longer exists, so the
        uploads directory is then scanned (once, not recursively) for a name
        containing ``_{version}.`` or ``-{version}.``.

        Raises:
            NotFoundError: ``file_missing`` when nothing matches
        """
        uploads = self.store.uploads_dir(project_id)
        if record.file_name and sanitize_base_name(record.file_name) != record.file_name:
            logger.warning(
                "Ignoring stored name %r of %s %s: not a plain file name",
                record.file_name, project_id, record.version,
            )
        elif record.file_name:
            literal = uploads / record.file_name
            if literal.is_file():
                return literal

        found = self._scan_uploads(uploads, record.version)
        if found is not None:
            logger.info(
                "Resolved %s %s to %s (stored name %r not on disk)",
                project_id, record.version, found.name, record.file_name,
            )
            return found

        logger.warning(
            "Storage drift: %s %s has a record but no file (stored name %r)",
            project_id, record.version, record.file_name,
        )
        raise NotFoundError(
            NotFoundReason.FILE_MISSING,
            f"File for version {record.version} is missing on disk",
        )

    def _scan_uploads(self, uploads: Path, version: str) -> Optional[Path]:
        try:
            entries = sorted(entry for entry in uploads.iterdir() if entry.is_file())
        except OSError as e:
            logger.error("Failed to list %s: %s", uploads, e)
            return None

        tokens = [f"{sep}{version}." for sep in LEGACY_SEPARATORS]
        candidates = [entry for entry in entries if any(t in entry.name for t in tokens)]
        if not candidates:
            return None

        for entry in candidates:
            if _is_exact_match(entry.name, tokens):
                return entry
        return candidates[0]


def _is_exact_match(name: str, tokens: list[str]) -> bool:
    """The version token is followed only by the final extension.

    ``setup_1.0.exe`` is an exact match for 1.0, ``setup_1.0.1.exe`` is not.
    """
    for token in tokens:
        idx = name.rfind(token)
        if idx >= 0 and "." not in name[idx + len(token):]:
            return True
    return False
