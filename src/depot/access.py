"""Project and user registries.

Both are explicit repository objects over a flat JSON file. Every operation
re-reads the file and writes it back whole, so concurrent writers follow
last-write-wins; management traffic is low enough for that to be acceptable.
"""

import hashlib
import hmac
import json
import logging
import os
import secrets
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as SchemaError

from depot.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    NotFoundReason,
    StorageError,
    ValidationError,
)
from depot.models import Project, Role, User
from depot.registry import AccessDecision, VersionStore, is_valid_project_id


logger = logging.getLogger(__name__)

BOOTSTRAP_ADMIN = "admin"


def generate_api_key() -> str:
    """New random upload credential."""
    return secrets.token_hex(24)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _read_list(path: Path) -> list[dict]:
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error("Failed to read %s, treating as empty: %s", path, e)
        return []
    if not isinstance(data, list):
        logger.error("Unexpected content in %s (expected a list), treating as empty", path)
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def _write_list(path: Path, entries: list[dict]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        raise StorageError(f"Could not save {path.name}") from e


class ProjectRegistry:
    """Project definitions: id, metadata, owner and upload key."""

    def __init__(self, path: Path, store: VersionStore) -> None:
        self.path = Path(path)
        self.store = store

    def load(self) -> list[Project]:
        projects = []
        for entry in _read_list(self.path):
            try:
                projects.append(Project.from_stored(entry))
            except (KeyError, SchemaError) as e:
                logger.warning("Skipping invalid project entry %r: %s", entry.get("id"), e)
        return projects

    def save(self, projects: list[Project]) -> None:
        _write_list(self.path, [project.to_stored() for project in projects])

    def get(self, project_id: str) -> Optional[Project]:
        for project in self.load():
            if project.id == project_id:
                return project
        return None

    def require(self, project_id: str) -> Project:
        """Get a project or raise ``project_not_found``."""
        project = self.get(project_id)
        if project is None:
            raise NotFoundError(
                NotFoundReason.PROJECT_NOT_FOUND,
                f"Project '{project_id}' not found",
            )
        return project

    def list_projects(self, user: Optional[User] = None) -> list[Project]:
        """Projects visible to ``user``: all for admins, owned ones otherwise.

        With no user (local CLI use) every project is returned.
        """
        projects = self.load()
        if user is not None and not user.is_admin:
            projects = [p for p in projects if p.owner == user.username]
        return sorted(projects, key=lambda p: p.id)

    def create(
        self,
        project_id: str,
        owner: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Project:
        """Register a project and allocate its storage."""
        if not is_valid_project_id(project_id):
            raise ValidationError(
                f"Invalid project id '{project_id}': use letters, digits, '.', '_' and '-'"
            )
        projects = self.load()
        if any(p.id == project_id for p in projects):
            raise ConflictError(f"Project '{project_id}' already exists")

        project = Project(
            id=project_id,
            name=name or project_id,
            description=description,
            icon=icon,
            api_key=generate_api_key(),
            owner=owner,
        )
        self.store.create(project_id)
        projects.append(project)
        self.save(projects)
        logger.info("Created project %s (owner %s)", project_id, owner)
        return project

    def update(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Project:
        """Change display metadata. The id and key are not editable here."""
        projects = self.load()
        for project in projects:
            if project.id == project_id:
                if name is not None:
                    project.name = name
                if description is not None:
                    project.description = description
                if icon is not None:
                    project.icon = icon
                self.save(projects)
                return project
        raise NotFoundError(NotFoundReason.PROJECT_NOT_FOUND, f"Project '{project_id}' not found")

    def delete(self, project_id: str, purge: bool = False) -> Project:
        """Remove a project, and its files if ``purge``."""
        projects = self.load()
        remaining = [p for p in projects if p.id != project_id]
        if len(remaining) == len(projects):
            raise NotFoundError(NotFoundReason.PROJECT_NOT_FOUND, f"Project '{project_id}' not found")
        removed = next(p for p in projects if p.id == project_id)
        self.save(remaining)
        if purge:
            self.store.purge(project_id)
        logger.info("Deleted project %s%s", project_id, " and its files" if purge else "")
        return removed

    def rotate_key(self, project_id: str) -> Project:
        """Issue a new upload key. The old key stops working immediately."""
        projects = self.load()
        for project in projects:
            if project.id == project_id:
                project.api_key = generate_api_key()
                self.save(projects)
                logger.info("Rotated upload key for project %s", project_id)
                return project
        raise NotFoundError(NotFoundReason.PROJECT_NOT_FOUND, f"Project '{project_id}' not found")

    def verify_api_key(self, project_id: str, api_key: Optional[str]) -> bool:
        project = self.get(project_id)
        if project is None or not api_key:
            return False
        return hmac.compare_digest(project.api_key.encode(), api_key.encode())

    def can_manage(self, project: Project, user: Optional[User]) -> bool:
        return user is not None and (user.is_admin or project.owner == user.username)

    def access_for(
        self,
        project_id: str,
        user: Optional[User] = None,
        api_key: Optional[str] = None,
    ) -> AccessDecision:
        """Resolve the caller's permission on a project.

        The holder of the project's key acts as its owner.
        """
        project = self.require(project_id)
        allowed = self.can_manage(project, user) or self.verify_api_key(project_id, api_key)
        return AccessDecision(project_id=project_id, is_owner_or_admin=allowed)


class UserRegistry:
    """Accounts for the management API, authenticated by bearer token."""

    def __init__(self, path: Path, admin_token: Optional[str] = None) -> None:
        """Initialize the registry.

        Args:
            path: users.json location
            admin_token: Bootstrap token that authenticates as ``admin``
                         without an entry in users.json
        """
        self.path = Path(path)
        self.admin_token = admin_token

    def load(self) -> list[User]:
        users = []
        for entry in _read_list(self.path):
            try:
                users.append(User.from_stored(entry))
            except (KeyError, SchemaError) as e:
                logger.warning("Skipping invalid user entry %r: %s", entry.get("username"), e)
        return users

    def save(self, users: list[User]) -> None:
        _write_list(self.path, [user.to_stored() for user in users])

    def list_users(self) -> list[User]:
        return sorted(self.load(), key=lambda u: u.username)

    def get(self, username: str) -> Optional[User]:
        for user in self.load():
            if user.username == username:
                return user
        return None

    def create(self, username: str, role: Role = Role.USER) -> tuple[User, str]:
        """Create a user.

        Returns:
            Tuple of (user, clear-text token). Only the hash is stored.
        """
        username = (username or "").strip()
        if not username or not is_valid_project_id(username):
            raise ValidationError(f"Invalid username '{username}'")
        users = self.load()
        if any(u.username == username for u in users):
            raise ConflictError(f"User '{username}' already exists")

        token = secrets.token_urlsafe(32)
        user = User(username=username, role=role, token_hash=hash_token(token))
        users.append(user)
        self.save(users)
        logger.info("Created user %s (%s)", username, role.value)
        return user, token

    def delete(self, username: str) -> None:
        users = self.load()
        remaining = [u for u in users if u.username != username]
        if len(remaining) == len(users):
            raise NotFoundError(NotFoundReason.USER_NOT_FOUND, f"User '{username}' not found")
        self.save(remaining)
        logger.info("Deleted user %s", username)

    def set_role(self, username: str, role: Role) -> User:
        users = self.load()
        for user in users:
            if user.username == username:
                user.role = role
                self.save(users)
                logger.info("Set role of %s to %s", username, role.value)
                return user
        raise NotFoundError(NotFoundReason.USER_NOT_FOUND, f"User '{username}' not found")

    def authenticate(self, token: Optional[str]) -> Optional[User]:
        """Map a bearer token to a user, None if it matches nobody."""
        if not token:
            return None
        if self.admin_token and hmac.compare_digest(token.encode(), self.admin_token.encode()):
            return User(username=BOOTSTRAP_ADMIN, role=Role.ADMIN)
        digest = hash_token(token)
        for user in self.load():
            if user.token_hash and hmac.compare_digest(user.token_hash, digest):
                return user
        return None


def require_admin(user: Optional[User]) -> User:
    """Raise unless ``user`` is an admin."""
    if user is None or not user.is_admin:
        raise ForbiddenError("Admin role required")
    return user
