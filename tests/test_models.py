"""Tests for Depot models and errors."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as SchemaError

from depot.errors import (
    ConflictError,
    DepotError,
    NotFoundError,
    NotFoundReason,
    StorageError,
    ValidationError,
)
from depot.models import (
    CURRENT_SCHEMA_VERSION,
    Project,
    Role,
    User,
    VersionRecord,
    default_release_notes,
)


class TestVersionRecord:
    """Tests for the VersionRecord model."""

    def test_defaults(self) -> None:
        record = VersionRecord(version="1.0", file_name="app_1.0.exe")
        assert record.original_file_name == "update"
        assert record.size is None
        assert record.schema_version == CURRENT_SCHEMA_VERSION
        assert record.release_date.tzinfo is not None

    def test_version_required(self) -> None:
        with pytest.raises(SchemaError):
            VersionRecord.from_stored({"fileName": "a.exe"})

    def test_file_name_optional(self) -> None:
        assert VersionRecord.from_stored({"version": "1.0"}).file_name == ""

    def test_from_stored(self) -> None:
        record = VersionRecord.from_stored({
            "version": "1.2.0",
            "releaseDate": "2024-03-01T12:00:00Z",
            "releaseNotes": "Bug fixes",
            "fileName": "app_1.2.0.exe",
            "originalFileName": "app",
            "downloadUrl": "/download/app/1.2.0",
            "size": None,
            "future": "ignored",
        })
        assert record.version == "1.2.0"
        assert record.release_date == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert record.original_file_name == "app"
        assert record.size is None

    def test_to_stored_is_camel_case(self) -> None:
        record = VersionRecord(
            version="1.0",
            release_date=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            file_name="app_1.0.exe",
            original_file_name="app",
            size=42,
        )
        assert record.to_stored() == {
            "version": "1.0",
            "releaseDate": "2024-01-02T03:04:05Z",
            "releaseNotes": "",
            "fileName": "app_1.0.exe",
            "originalFileName": "app",
            "downloadUrl": "",
            "size": 42,
            "schemaVersion": CURRENT_SCHEMA_VERSION,
        }

    def test_payload_replaces_url(self) -> None:
        record = VersionRecord(version="1.0", file_name="a_1.0.exe", download_url="/download/a/1.0")
        payload = record.to_payload("https://u.example.com/download/a/1.0")
        assert payload["downloadUrl"] == "https://u.example.com/download/a/1.0"
        assert "schemaVersion" not in payload
        assert record.to_payload()["downloadUrl"] == "/download/a/1.0"

    def test_default_release_notes(self) -> None:
        assert default_release_notes("2.0") == "Version 2.0 update"


class TestProject:
    """Tests for the Project model."""

    def test_from_stored_defaults(self) -> None:
        project = Project.from_stored({"id": "app", "apiKey": "k"})
        assert project.name == "app"
        assert project.owner == "admin"

    def test_public_hides_key(self) -> None:
        project = Project(id="app", name="App", api_key="secret", owner="alice")
        assert "apiKey" not in project.to_public()
        assert project.to_stored()["apiKey"] == "secret"

    def test_round_trip(self) -> None:
        project = Project(id="app", name="App", description="d", icon="i", api_key="k", owner="bob")
        assert Project.from_stored(project.to_stored()) == project


class TestUser:
    """Tests for the User model."""

    def test_is_admin(self) -> None:
        assert User(username="a", role=Role.ADMIN).is_admin
        assert not User(username="b").is_admin

    def test_public_hides_hash(self) -> None:
        user = User(username="alice", token_hash="abc")
        assert "tokenHash" not in user.to_public()
        assert User.from_stored(user.to_stored()).token_hash == "abc"

    def test_invalid_role(self) -> None:
        with pytest.raises(SchemaError):
            User.from_stored({"username": "alice", "role": "owner"})


class TestErrors:
    """Tests for the error taxonomy."""

    def test_not_found_reasons_distinguishable(self) -> None:
        codes = {NotFoundError(reason).code for reason in NotFoundReason}
        assert len(codes) == len(NotFoundReason)
        assert all(NotFoundError(reason).status_code == 404 for reason in NotFoundReason)

    def test_not_found_default_message(self) -> None:
        error = NotFoundError(NotFoundReason.NO_VERSIONS)
        assert error.to_dict() == {"error": "No versions have been published", "code": "no_versions"}

    def test_not_found_custom_message(self) -> None:
        error = NotFoundError(NotFoundReason.PROJECT_NOT_FOUND, "Project 'x' not found")
        assert str(error) == "Project 'x' not found"

    @pytest.mark.parametrize(
        "error_cls,status,code",
        [
            (ConflictError, 409, "conflict"),
            (ValidationError, 400, "validation_error"),
            (StorageError, 500, "storage_error"),
        ],
    )
    def test_status_codes(self, error_cls, status: int, code: str) -> None:
        error = error_cls("boom")
        assert isinstance(error, DepotError)
        assert error.status_code == status
        assert error.to_dict() == {"error": "boom", "code": code}
