"""Shared fixtures for Depot tests."""

import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import depot.api.main as api_main
from depot.access import ProjectRegistry, UserRegistry
from depot.api.main import app
from depot.config import DepotConfig
from depot.models import Role
from depot.registry import (
    AccessDecision,
    ProjectLocks,
    ReleasePublisher,
    VersionResolver,
    VersionStore,
)


ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir: Path) -> VersionStore:
    return VersionStore(data_dir)


@pytest.fixture
def projects(data_dir: Path, store: VersionStore) -> ProjectRegistry:
    return ProjectRegistry(data_dir / "projects.json", store)


@pytest.fixture
def users(data_dir: Path) -> UserRegistry:
    return UserRegistry(data_dir / "users.json", admin_token=ADMIN_TOKEN)


@pytest.fixture
def resolver(store: VersionStore) -> VersionResolver:
    return VersionResolver(store)


@pytest.fixture
def publisher(store: VersionStore) -> ReleasePublisher:
    return ReleasePublisher(store, locks=ProjectLocks())


@pytest.fixture
def publish(publisher: ReleasePublisher):
    """Publish ``content`` as ``version`` with full access."""

    def _publish(project_id: str, version: str, name: str = "setup.exe",
                 content: bytes = b"binary"):
        return publisher.publish(
            AccessDecision(project_id=project_id, is_owner_or_admin=True),
            file_name=name,
            stream=io.BytesIO(content),
            version=version,
        )

    return _publish


@pytest.fixture
def config(data_dir: Path) -> DepotConfig:
    """Configuration pointing at the temporary data directory."""
    return DepotConfig(data_dir=str(data_dir), admin_token=ADMIN_TOKEN)


@pytest.fixture
def client(config: DepotConfig):
    """Create a test client serving from a temporary data directory."""
    original_config = api_main.config
    original_locks = api_main.project_locks

    api_main.config = config
    api_main.project_locks = ProjectLocks()

    with TestClient(app) as client:
        yield client

    # Restore originals
    api_main.config = original_config
    api_main.project_locks = original_locks


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def alice(users: UserRegistry) -> tuple:
    """A regular user and her bearer headers."""
    user, token = users.create("alice", role=Role.USER)
    return user, {"Authorization": f"Bearer {token}"}
