"""Version registry: ordering, stored names, storage, resolution, publishing."""

from .filenames import (
    derive_stored_name,
    recover_original_name,
    repair_filename_encoding,
    sanitize_base_name,
    split_extension,
)
from .migrations import MIGRATIONS, migrate_record
from .ordering import compare_versions, is_valid_version, parse_version, sort_records
from .publisher import AccessDecision, ProjectLocks, ReleasePublisher
from .resolver import LATEST, Resolution, VersionResolver
from .store import VersionStore, is_valid_project_id

__all__ = [
    "AccessDecision",
    "LATEST",
    "MIGRATIONS",
    "ProjectLocks",
    "ReleasePublisher",
    "Resolution",
    "VersionResolver",
    "VersionStore",
    "compare_versions",
    "derive_stored_name",
    "is_valid_project_id",
    "is_valid_version",
    "migrate_record",
    "parse_version",
    "recover_original_name",
    "repair_filename_encoding",
    "sanitize_base_name",
    "sort_records",
    "split_extension",
]
