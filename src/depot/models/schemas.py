"""SQLModel schemas for Depot records.

These are plain (non-table) SQLModel models: Depot persists flat JSON files,
so the models only carry validation and the mapping between Python field names
and the camelCase keys found in the stored files.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


# Nominal schema tag written with every VersionRecord. Records without a tag
# were written before migrations existed and are treated as version 0.
CURRENT_SCHEMA_VERSION = 2

# Placeholder used when an original file name cannot be recovered
DEFAULT_ORIGINAL_NAME = "update"


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def default_release_notes(version: str) -> str:
    """Release notes used when an upload does not provide any."""
    return f"Version {version} update"


def _isoformat(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class Role(str, Enum):
    """Account roles."""

    ADMIN = "admin"
    USER = "user"


class VersionRecord(SQLModel):
    """One published release of a project."""

    version: str
    release_date: datetime = Field(default_factory=utcnow)
    release_notes: str = ""
    file_name: str = ""  # empty for records that predate stored names
    original_file_name: str = DEFAULT_ORIGINAL_NAME
    download_url: str = ""
    size: Optional[int] = None  # bytes, unknown for old records
    schema_version: int = CURRENT_SCHEMA_VERSION

    # Stored key -> field name
    STORED_KEYS: ClassVar[dict[str, str]] = {
        "version": "version",
        "releaseDate": "release_date",
        "releaseNotes": "release_notes",
        "fileName": "file_name",
        "originalFileName": "original_file_name",
        "downloadUrl": "download_url",
        "size": "size",
        "schemaVersion": "schema_version",
    }

    @classmethod
    def from_stored(cls, data: dict) -> "VersionRecord":
        """Build a record from a (migrated) stored dictionary.

        Unknown keys are ignored so files written by newer versions still load.
        """
        values = {
            field_name: data[key]
            for key, field_name in cls.STORED_KEYS.items()
            if key in data and data[key] is not None
        }
        return cls.model_validate(values)

    def to_stored(self) -> dict:
        """Serialize to the camelCase layout used in versions.json."""
        return {
            "version": self.version,
            "releaseDate": _isoformat(self.release_date),
            "releaseNotes": self.release_notes,
            "fileName": self.file_name,
            "originalFileName": self.original_file_name,
            "downloadUrl": self.download_url,
            "size": self.size,
            "schemaVersion": CURRENT_SCHEMA_VERSION,
        }

    def to_payload(self, download_url: Optional[str] = None) -> dict:
        """Serialize for API responses, replacing the stored download URL."""
        payload = self.to_stored()
        del payload["schemaVersion"]
        if download_url is not None:
            payload["downloadUrl"] = download_url
        return payload


class Project(SQLModel):
    """A tenant owning its own releases and upload credential."""

    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    api_key: str
    owner: str
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_stored(cls, data: dict) -> "Project":
        return cls.model_validate({
            "id": data["id"],
            "name": data.get("name") or data["id"],
            "description": data.get("description"),
            "icon": data.get("icon"),
            "api_key": data["apiKey"],
            "owner": data.get("owner") or "admin",
            "created_at": data.get("createdAt") or utcnow(),
        })

    def to_stored(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "apiKey": self.api_key,
            "owner": self.owner,
            "createdAt": _isoformat(self.created_at),
        }

    def to_public(self) -> dict:
        """Project metadata without the upload credential."""
        data = self.to_stored()
        del data["apiKey"]
        return data


class User(SQLModel):
    """An account allowed to use the management API."""

    username: str
    role: Role = Role.USER
    token_hash: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_stored(cls, data: dict) -> "User":
        return cls.model_validate({
            "username": data["username"],
            "role": data.get("role", Role.USER.value),
            "token_hash": data.get("tokenHash", ""),
            "created_at": data.get("createdAt") or utcnow(),
        })

    def to_stored(self) -> dict:
        return {
            "username": self.username,
            "role": self.role.value,
            "tokenHash": self.token_hash,
            "createdAt": _isoformat(self.created_at),
        }

    def to_public(self) -> dict:
        return {
            "username": self.username,
            "role": self.role.value,
            "createdAt": _isoformat(self.created_at),
        }
