"""Error types for Depot.

Every expected, user-facing failure is a ``DepotError`` subclass carrying an
HTTP status and a short machine-readable code. The API translates them into
``{"error": ..., "code": ...}`` bodies; the CLI prints the message and exits 1.
"""

from enum import Enum
from typing import Optional


class NotFoundReason(str, Enum):
    """Why a lookup came back empty."""

    PROJECT_NOT_FOUND = "project_not_found"
    NO_VERSIONS = "no_versions"
    VERSION_NOT_FOUND = "version_not_found"
    FILE_MISSING = "file_missing"  # metadata exists, artifact does not
    USER_NOT_FOUND = "user_not_found"


class DepotError(Exception):
    """Base class for Depot errors."""

    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFoundError(DepotError):
    """A project, version or artifact could not be found."""

    status_code = 404

    def __init__(self, reason: NotFoundReason, message: Optional[str] = None) -> None:
        super().__init__(message or _NOT_FOUND_MESSAGES[reason])
        self.reason = reason
        self.code = reason.value


_NOT_FOUND_MESSAGES = {
    NotFoundReason.PROJECT_NOT_FOUND: "Project not found",
    NotFoundReason.NO_VERSIONS: "No versions have been published",
    NotFoundReason.VERSION_NOT_FOUND: "Version does not exist",
    NotFoundReason.FILE_MISSING: "File is missing on disk",
    NotFoundReason.USER_NOT_FOUND: "User not found",
}


class ConflictError(DepotError):
    """The resource already exists (e.g. a duplicate version string)."""

    status_code = 409
    code = "conflict"


class ValidationError(DepotError):
    """A required field is missing or malformed."""

    status_code = 400
    code = "validation_error"


class UnauthorizedError(DepotError):
    """No credential, or a credential that does not match."""

    status_code = 401
    code = "unauthorized"


class ForbiddenError(DepotError):
    """Authenticated, but not allowed to perform the operation."""

    status_code = 403
    code = "forbidden"


class StorageError(DepotError):
    """Reading or writing durable state failed."""

    status_code = 500
    code = "storage_error"
