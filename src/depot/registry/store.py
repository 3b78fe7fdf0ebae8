"""Per-project version record storage.

Layout under the data directory::

    projects/{project_id}/versions.json   ordered list of VersionRecord
    projects/{project_id}/uploads/        artifacts, addressed by fileName

There is no caching: every call re-reads the file, so concurrent readers
always see the last completed save.
"""

import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from pydantic import ValidationError as SchemaError

from depot.errors import StorageError, ValidationError
from depot.models import VersionRecord
from depot.registry.migrations import migrate_record, needs_migration


logger = logging.getLogger(__name__)

PROJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
VERSIONS_FILE = "versions.json"
UPLOADS_DIR = "uploads"


def is_valid_project_id(project_id: str) -> bool:
    """URL- and path-safe project identifier."""
    return bool(project_id) and PROJECT_ID_PATTERN.match(project_id) is not None and ".." not in project_id


class VersionStore:
    """Durable, per-project list of version records."""

    def __init__(self, root: Path) -> None:
        """Initialize the store.

        Args:
            root: Data directory; project trees live under ``root/projects``
        """
        self.root = Path(root)

    def project_dir(self, project_id: str) -> Path:
        if not is_valid_project_id(project_id):
            raise ValidationError(f"Invalid project id: {project_id!r}")
        return self.root / "projects" / project_id

    def versions_path(self, project_id: str) -> Path:
        return self.project_dir(project_id) / VERSIONS_FILE

    def uploads_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / UPLOADS_DIR

    def create(self, project_id: str) -> None:
        """Allocate the storage tree and an empty version list."""
        try:
            self.uploads_dir(project_id).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create storage for %s: %s", project_id, e)
            raise StorageError(f"Could not create storage for project '{project_id}'") from e
        if not self.versions_path(project_id).exists():
            self.save(project_id, [])

    def purge(self, project_id: str) -> None:
        """Remove the project's storage tree, artifacts included."""
        project_dir = self.project_dir(project_id)
        if not project_dir.exists():
            return
        try:
            shutil.rmtree(project_dir)
        except OSError as e:
            logger.error("Failed to remove storage for %s: %s", project_id, e)
            raise StorageError(f"Could not remove storage for project '{project_id}'") from e
        logger.info("Purged storage for project %s", project_id)

    def load(self, project_id: str) -> list[VersionRecord]:
        """Load the project's records in stored order.

        A missing file is an empty project. An unreadable or corrupt file is
        logged and also treated as empty; version metadata can be rebuilt by
        re-uploading, an unavailable download endpoint cannot.
        """
        path = self.versions_path(project_id)
        if not path.exists():
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Failed to read %s, treating as empty: %s", path, e)
            return []

        if not isinstance(raw, list):
            logger.error("Unexpected content in %s (expected a list), treating as empty", path)
            return []

        records: list[VersionRecord] = []
        migrated = 0
        for entry in raw:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed entry in %s: %r", path, entry)
                continue
            if needs_migration(entry):
                migrated += 1
            try:
                records.append(VersionRecord.from_stored(migrate_record(project_id, entry)))
            except SchemaError as e:
                logger.warning(
                    "Skipping invalid record %r in %s: %s",
                    entry.get("version"), path, e.errors()[0].get("msg", e),
                )

        if migrated:
            logger.info("Migrated %d legacy record(s) for project %s", migrated, project_id)
        return records

    def save(self, project_id: str, records: list[VersionRecord]) -> None:
        """Overwrite the project's records with ``records``, in the given order.

        The caller sorts; the store writes exactly what it is handed.

        Raises:
            StorageError: If the file could not be written
        """
        path = self.versions_path(project_id)
        payload = [record.to_stored() for record in records]

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".versions-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            raise StorageError(f"Could not save versions for project '{project_id}'") from e
