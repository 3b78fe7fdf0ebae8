"""Publishing new releases.

An upload is: validate, derive the stored name, then (per project, under a
lock) load the records, reject a duplicate version, write the artifact, append
the record, sort and save.

Without the lock two concurrent uploads to one project can both load the same
list and the second save silently drops the first record (last write wins on
the whole file). ``ProjectLocks`` closes that race for a single process; it
does not coordinate several server processes sharing a data directory.
"""

import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from depot.errors import ConflictError, ForbiddenError, StorageError, ValidationError
from depot.models import VersionRecord, default_release_notes, utcnow
from depot.registry.filenames import (
    derive_stored_name,
    repair_filename_encoding,
    sanitize_base_name,
)
from depot.registry.migrations import download_path
from depot.registry.ordering import is_valid_version, sort_records
from depot.registry.store import VersionStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    """Resolved permission of the caller on one project."""

    project_id: str
    is_owner_or_admin: bool


class ProjectLocks:
    """In-process mutual exclusion, one lock per project."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, project_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = self._locks[project_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, project_id: str) -> Iterator[None]:
        with self.get(project_id):
            yield


class ReleasePublisher:
    """Turns an uploaded file into a persisted VersionRecord."""

    def __init__(
        self,
        store: VersionStore,
        locks: Optional[ProjectLocks] = None,
        strict_versions: bool = True,
    ) -> None:
        """Initialize the publisher.

        Args:
            store: Version record store
            locks: Per-project locks; None reproduces the unlocked
                   load-append-save sequence (and its race)
            strict_versions: Only accept digits-and-dots versions
        """
        self.store = store
        self.locks = locks
        self.strict_versions = strict_versions

    def publish(
        self,
        access: AccessDecision,
        file_name: Optional[str],
        stream: Optional[BinaryIO],
        version: Optional[str],
        release_notes: Optional[str] = None,
    ) -> VersionRecord:
        """Publish a new version of a project.

        Args:
            access: Caller's permission on the project
            file_name: Name the file was uploaded under
            stream: File contents
            version: Version string
            release_notes: Optional notes, a placeholder is generated if empty

        Returns:
            The persisted record (``download_url`` is the relative path)

        Raises:
            ForbiddenError: Caller is neither owner nor admin
            ValidationError: Missing file or malformed version
            ConflictError: Version already published
            StorageError: Artifact or version list could not be written
        """
        if not access.is_owner_or_admin:
            raise ForbiddenError(f"Not allowed to publish to project '{access.project_id}'")

        version = (version or "").strip()
        if not version:
            raise ValidationError("Missing version number")
        if not is_valid_version(version, strict=self.strict_versions):
            raise ValidationError(f"Invalid version number: {version!r}")

        base_name = sanitize_base_name(repair_filename_encoding(file_name or ""))
        if stream is None or not base_name:
            raise ValidationError("No file uploaded")

        project_id = access.project_id
        stored_name, original_name = derive_stored_name(base_name, version)

        guard = self.locks.hold(project_id) if self.locks else nullcontext()
        with guard:
            records = self.store.load(project_id)
            if any(record.version == version for record in records):
                raise ConflictError(f"Version {version} already exists")

            size = self._write_artifact(project_id, stored_name, stream)

            record = VersionRecord(
                version=version,
                release_date=utcnow(),
                release_notes=release_notes or default_release_notes(version),
                file_name=stored_name,
                original_file_name=original_name,
                download_url=download_path(project_id, version),
                size=size,
            )
            records.append(record)
            # The artifact stays on disk if this fails; re-uploading the same
            # version overwrites it.
            self.store.save(project_id, sort_records(records))

        logger.info(
            "Published %s %s as %s (%d bytes)", project_id, version, stored_name, size,
        )
        return record

    def _write_artifact(self, project_id: str, stored_name: str, stream: BinaryIO) -> int:
        uploads = self.store.uploads_dir(project_id)
        try:
            uploads.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=uploads, prefix=".upload-", suffix=".part")
            try:
                with os.fdopen(fd, "wb") as f:
                    shutil.copyfileobj(stream, f)
                    size = f.tell()
                os.replace(tmp_name, uploads / stored_name)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            logger.error("Failed to write artifact %s for %s: %s", stored_name, project_id, e)
            raise StorageError(f"Could not store file {stored_name}") from e
        return size
