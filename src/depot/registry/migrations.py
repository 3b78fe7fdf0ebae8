"""Load-time migrations for stored version records.

Each migration is a pure function taking the project id and a raw record
dictionary (camelCase keys, as found in versions.json) and returning a new
dictionary. ``migrate_record`` runs all of them in order and stamps the current
schema tag. Migrations are idempotent, so running them over records that are
already current changes nothing.

The migrated copy only lives in memory; it reaches disk on the next save.
"""

from typing import Callable

from depot.models import CURRENT_SCHEMA_VERSION, DEFAULT_ORIGINAL_NAME
from depot.registry.filenames import recover_original_name


Migration = Callable[[str, dict], dict]

# Release date given to records stored without one
UNKNOWN_RELEASE_DATE = "1970-01-01T00:00:00Z"


def download_path(project_id: str, version: str) -> str:
    """Relative download path for a version."""
    return f"/download/{project_id}/{version}"


def repair_download_url(project_id: str, record: dict) -> dict:
    """Replace a missing or broken downloadUrl with a relative path."""
    url = record.get("downloadUrl")
    if url and "undefined" not in str(url):
        return record
    return {**record, "downloadUrl": download_path(project_id, record.get("version", ""))}


def backfill_original_file_name(project_id: str, record: dict) -> dict:
    """Infer originalFileName for records written before it was stored.

    Approximate: see ``recover_original_name`` for the known ambiguity.
    """
    if record.get("originalFileName"):
        return record
    recovered = recover_original_name(record.get("fileName"), record.get("version", ""))
    return {**record, "originalFileName": recovered or DEFAULT_ORIGINAL_NAME}


def backfill_release_date(project_id: str, record: dict) -> dict:
    """Pin a fixed placeholder date on records stored without releaseDate."""
    if record.get("releaseDate"):
        return record
    return {**record, "releaseDate": UNKNOWN_RELEASE_DATE}


MIGRATIONS: list[tuple[str, Migration]] = [
    ("repair_download_url", repair_download_url),
    ("backfill_original_file_name", backfill_original_file_name),
    ("backfill_release_date", backfill_release_date),
]


def migrate_record(project_id: str, record: dict) -> dict:
    """Apply every migration and stamp the current schema version."""
    for _name, migration in MIGRATIONS:
        record = migration(project_id, record)
    return {**record, "schemaVersion": CURRENT_SCHEMA_VERSION}


def needs_migration(record: dict) -> bool:
    """Whether a stored record predates the current schema."""
    tag = record.get("schemaVersion")
    return not isinstance(tag, int) or tag < CURRENT_SCHEMA_VERSION
