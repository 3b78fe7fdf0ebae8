"""Data models for Depot."""

from .schemas import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_ORIGINAL_NAME,
    Project,
    Role,
    User,
    VersionRecord,
    default_release_notes,
    utcnow,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_ORIGINAL_NAME",
    "Project",
    "Role",
    "User",
    "VersionRecord",
    "default_release_notes",
    "utcnow",
]
