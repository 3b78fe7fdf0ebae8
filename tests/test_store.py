"""Tests for the version record store."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from depot.errors import StorageError, ValidationError
from depot.models import CURRENT_SCHEMA_VERSION, VersionRecord
from depot.registry.resolver import VersionResolver
from depot.registry.store import VersionStore, is_valid_project_id


def write_versions(store: VersionStore, project_id: str, payload) -> Path:
    path = store.versions_path(project_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


class TestProjectIds:
    """Tests for project id validation."""

    @pytest.mark.parametrize("project_id", ["app", "my-app", "App_2", "com.example.app"])
    def test_valid(self, project_id: str) -> None:
        assert is_valid_project_id(project_id)

    @pytest.mark.parametrize("project_id", ["", "..", "a/b", "-app", ".hidden", "a..b", "a b"])
    def test_invalid(self, project_id: str) -> None:
        assert not is_valid_project_id(project_id)

    def test_store_rejects_unsafe_id(self, store: VersionStore) -> None:
        with pytest.raises(ValidationError):
            store.project_dir("../outside")


class TestLoad:
    """Tests for loading records."""

    def test_missing_file_is_empty(self, store: VersionStore) -> None:
        assert store.load("nothing-here") == []

    def test_corrupt_file_is_empty(self, store: VersionStore, caplog) -> None:
        write_versions(store, "app", "{not json")
        with caplog.at_level(logging.ERROR):
            assert store.load("app") == []
        assert "treating as empty" in caplog.text

    def test_non_list_is_empty(self, store: VersionStore) -> None:
        write_versions(store, "app", {"version": "1.0"})
        assert store.load("app") == []

    def test_keeps_stored_order(self, store: VersionStore) -> None:
        write_versions(store, "app", [
            {"version": "1.0", "fileName": "a_1.0.exe", "schemaVersion": CURRENT_SCHEMA_VERSION},
            {"version": "2.0", "fileName": "a_2.0.exe", "schemaVersion": CURRENT_SCHEMA_VERSION},
        ])
        assert [r.version for r in store.load("app")] == ["1.0", "2.0"]

    def test_legacy_records_migrated(self, store: VersionStore, caplog) -> None:
        write_versions(store, "app", [
            {"version": "1.0", "fileName": "setup_1.0.exe", "downloadUrl": "undefined"},
        ])
        with caplog.at_level(logging.INFO):
            records = store.load("app")

        assert len(records) == 1
        assert records[0].download_url == "/download/app/1.0"
        assert records[0].original_file_name == "setup"
        assert records[0].schema_version == CURRENT_SCHEMA_VERSION
        assert "Migrated 1 legacy record" in caplog.text

    def test_migration_not_persisted_until_save(self, store: VersionStore) -> None:
        path = write_versions(store, "app", [{"version": "1.0", "fileName": "setup_1.0.exe"}])
        store.load("app")
        assert "schemaVersion" not in json.loads(path.read_text())[0]

    def test_invalid_entries_skipped(self, store: VersionStore, caplog) -> None:
        write_versions(store, "app", [
            "garbage",
            {"fileName": "a_1.0.exe"},  # no version
            {"version": "2.0", "fileName": "a_2.0.exe"},
        ])
        with caplog.at_level(logging.WARNING):
            records = store.load("app")
        assert [r.version for r in records] == ["2.0"]
        assert "Skipping" in caplog.text

    def test_record_without_file_name_loads(self, store: VersionStore) -> None:
        """Records written before stored names existed resolve by scanning uploads."""
        write_versions(store, "app", [{
            "version": "1.0.0",
            "releaseDate": "2024-01-01T00:00:00.000Z",
            "downloadUrl": "/download/1.0.0",
            "releaseNotes": "x",
        }])
        uploads = store.uploads_dir("app")
        uploads.mkdir(parents=True)
        (uploads / "app-1.0.0.exe").write_bytes(b"legacy")

        records = store.load("app")
        assert len(records) == 1
        assert records[0].file_name == ""
        assert records[0].original_file_name == "update"

        resolution = VersionResolver(store).resolve_latest("app")
        assert resolution.file_name == "app-1.0.0.exe"

    def test_undated_record_gets_stable_date(self, store: VersionStore) -> None:
        write_versions(store, "app", [{"version": "1.0.0", "fileName": "a_1.0.0.exe"}])
        first = store.load("app")[0].release_date
        second = store.load("app")[0].release_date
        assert first == second == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_unknown_keys_ignored(self, store: VersionStore) -> None:
        write_versions(store, "app", [
            {"version": "1.0", "fileName": "a_1.0.exe", "checksum": "abc"},
        ])
        assert store.load("app")[0].version == "1.0"


class TestSave:
    """Tests for saving records."""

    def test_round_trip(self, store: VersionStore) -> None:
        records = [
            VersionRecord(version="2.0", file_name="a_2.0.exe", release_notes="Two", size=3),
            VersionRecord(version="1.0", file_name="a_1.0.exe", release_notes="One"),
        ]
        store.save("app", records)
        loaded = store.load("app")
        assert [r.version for r in loaded] == ["2.0", "1.0"]
        assert loaded[0].release_notes == "Two"
        assert loaded[0].size == 3

    def test_camel_case_layout(self, store: VersionStore) -> None:
        store.save("app", [VersionRecord(version="1.0", file_name="a_1.0.exe")])
        raw = json.loads(store.versions_path("app").read_text())[0]
        assert set(raw) >= {"version", "releaseDate", "releaseNotes", "fileName",
                            "originalFileName", "downloadUrl", "schemaVersion"}
        assert raw["releaseDate"].endswith("Z")

    def test_no_temp_files_left(self, store: VersionStore) -> None:
        store.save("app", [])
        leftovers = [p.name for p in store.project_dir("app").iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_write_failure_raises_storage_error(self, store: VersionStore, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        broken = VersionStore(blocker)
        with pytest.raises(StorageError):
            broken.save("app", [])


class TestCreateAndPurge:
    """Tests for allocating and removing project storage."""

    def test_create(self, store: VersionStore) -> None:
        store.create("app")
        assert store.uploads_dir("app").is_dir()
        assert store.load("app") == []
        assert store.versions_path("app").exists()

    def test_create_keeps_existing_records(self, store: VersionStore) -> None:
        store.save("app", [VersionRecord(version="1.0", file_name="a_1.0.exe")])
        store.create("app")
        assert len(store.load("app")) == 1

    def test_purge(self, store: VersionStore) -> None:
        store.create("app")
        (store.uploads_dir("app") / "a_1.0.exe").write_bytes(b"x")
        store.purge("app")
        assert not store.project_dir("app").exists()

    def test_purge_missing_is_noop(self, store: VersionStore) -> None:
        store.purge("ghost")
