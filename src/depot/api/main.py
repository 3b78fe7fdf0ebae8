"""FastAPI application for the Depot update server."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    Query,
    Request,
    UploadFile,
)
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from depot import __version__
from depot.access import ProjectRegistry, UserRegistry, require_admin
from depot.config import DepotConfig
from depot.errors import DepotError, ForbiddenError, NotFoundError, UnauthorizedError
from depot.geo import GeoLocator
from depot.logging_config import access_logger
from depot.models import Project, Role, User, VersionRecord
from depot.registry import (
    ProjectLocks,
    ReleasePublisher,
    VersionResolver,
    VersionStore,
)


logger = logging.getLogger(__name__)

# Configuration, read once at import; tests replace it
config = DepotConfig.load()

# Shared across requests so uploads to one project serialize
project_locks = ProjectLocks()


def get_store() -> VersionStore:
    """Get the version record store."""
    return VersionStore(config.data_path)


def get_projects() -> ProjectRegistry:
    """Get the project registry."""
    return ProjectRegistry(config.projects_file, get_store())


def get_users() -> UserRegistry:
    """Get the user registry."""
    return UserRegistry(config.users_file, admin_token=config.admin_token)


def get_resolver() -> VersionResolver:
    return VersionResolver(get_store())


def get_publisher() -> ReleasePublisher:
    return ReleasePublisher(
        get_store(),
        locks=project_locks if config.upload_locking else None,
        strict_versions=config.strict_versions,
    )


def get_geolocator() -> Optional[GeoLocator]:
    if not config.geo_lookup_url:
        return None
    return GeoLocator(config.geo_lookup_url, timeout=config.geo_timeout)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    config.data_path.mkdir(parents=True, exist_ok=True)
    logger.info("Serving releases from %s", config.data_path.resolve())
    yield


app = FastAPI(
    title="Depot API",
    description="Self-hosted update server - publish releases and serve the latest build",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(DepotError)
async def depot_error_handler(request: Request, exc: DepotError) -> JSONResponse:
    """Translate Depot errors into JSON error bodies."""
    if isinstance(exc, NotFoundError):
        logger.info("%s %s -> not found (%s)", request.method, request.url.path, exc.code)
    elif exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Helpers


def download_url(request: Request, project_id: str, version: str) -> str:
    """Absolute download URL computed from the current request.

    Stored URLs are never trusted: hosts and schemes change.
    """
    base = config.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/download/{project_id}/{version}"


def record_payload(request: Request, project_id: str, record: VersionRecord) -> dict:
    return record.to_payload(download_url(request, project_id, record.version))


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def optional_user(authorization: Optional[str] = Header(None)) -> Optional[User]:
    """The authenticated user, or None."""
    return get_users().authenticate(_bearer_token(authorization))


def current_user(user: Optional[User] = Depends(optional_user)) -> User:
    """The authenticated user; 401 without a valid bearer token."""
    if user is None:
        raise UnauthorizedError("Missing or invalid bearer token")
    return user


def log_download(project_id: str, version: str, file_name: str, client_ip: Optional[str]) -> None:
    """Background task: one access-log line per download."""
    location = None
    geolocator = get_geolocator()
    if geolocator is not None:
        with geolocator:
            location = geolocator.describe(client_ip)
    access_logger.info(
        "download project=%s version=%s file=%s ip=%s location=%s",
        project_id, version, file_name, client_ip or "-", location or "-",
    )


# Public endpoints


@app.get("/")
def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "Depot API",
        "version": __version__,
        "description": "Self-hosted update server",
        "docs_url": "/docs",
    }


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/version/{project_id}")
def get_latest_version(project_id: str, request: Request) -> dict:
    """Metadata of the latest version of a project."""
    get_projects().require(project_id)
    resolution = get_resolver().resolve_latest(project_id)
    return record_payload(request, project_id, resolution.record)


@app.get("/api/versions/{project_id}")
def list_versions(project_id: str, request: Request) -> dict:
    """All published versions, newest first."""
    get_projects().require(project_id)
    records = get_resolver().list_versions(project_id)
    return {
        "projectId": project_id,
        "versions": [record_payload(request, project_id, r) for r in records],
        "total": len(records),
    }


@app.get("/download/{project_id}/{version}")
def download(
    project_id: str,
    version: str,
    request: Request,
    background_tasks: BackgroundTasks,
) -> FileResponse:
    """Download a version's artifact; ``version`` may be ``latest``."""
    get_projects().require(project_id)
    resolution = get_resolver().resolve(project_id, version)

    client_ip = request.client.host if request.client else None
    background_tasks.add_task(
        log_download, project_id, resolution.record.version, resolution.file_name, client_ip,
    )
    return FileResponse(
        resolution.path,
        filename=resolution.file_name,
        media_type="application/octet-stream",
    )


# Publishing


@app.post("/api/upload/{project_id}")
def upload_version(
    project_id: str,
    request: Request,
    file: Optional[UploadFile] = File(None),
    version: Optional[str] = Form(None),
    release_notes: Optional[str] = Form(None, alias="releaseNotes"),
    x_api_key: Optional[str] = Header(None),
    user: Optional[User] = Depends(optional_user),
) -> dict:
    """Publish a new version.

    Authenticate with the project's key in ``X-API-Key``, or as the project
    owner (or an admin) with a bearer token.
    """
    access = get_projects().access_for(project_id, user=user, api_key=x_api_key)
    if not access.is_owner_or_admin and user is None:
        raise UnauthorizedError("Invalid or missing API key")

    record = get_publisher().publish(
        access,
        file_name=file.filename if file else None,
        stream=file.file if file else None,
        version=version,
        release_notes=release_notes,
    )
    access_logger.info(
        "upload project=%s version=%s file=%s by=%s",
        project_id, record.version, record.file_name, user.username if user else "api-key",
    )
    return {
        "message": "Version published",
        "version": record_payload(request, project_id, record),
    }


# Project management


class ProjectCreateRequest(BaseModel):
    """Request to register a project."""
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class ProjectUpdateRequest(BaseModel):
    """Request to change project metadata."""
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class UserCreateRequest(BaseModel):
    """Request to create a user."""
    username: str
    role: Role = Role.USER


class RoleUpdateRequest(BaseModel):
    """Request to change a user's role."""
    role: Role


@app.get("/api/me")
def whoami(user: User = Depends(current_user)) -> dict:
    """The authenticated account."""
    return user.to_public()


@app.get("/api/projects")
def list_projects(user: User = Depends(current_user)) -> list[dict]:
    """Projects the caller owns (all of them for admins)."""
    return [project.to_public() for project in get_projects().list_projects(user)]


@app.post("/api/projects")
def create_project(payload: ProjectCreateRequest, user: User = Depends(current_user)) -> dict:
    """Register a project owned by the caller. The response carries its key."""
    project = get_projects().create(
        payload.id,
        owner=user.username,
        name=payload.name,
        description=payload.description,
        icon=payload.icon,
    )
    return project.to_stored()


def _managed_project(registry: ProjectRegistry, project_id: str, user: User) -> Project:
    project = registry.require(project_id)
    if not registry.can_manage(project, user):
        raise ForbiddenError(f"Not allowed to manage project '{project_id}'")
    return project


@app.get("/api/projects/{project_id}")
def get_project(project_id: str, user: User = Depends(current_user)) -> dict:
    """Project details, including its upload key."""
    project = _managed_project(get_projects(), project_id, user)
    data = project.to_stored()
    data["versions"] = len(get_store().load(project_id))
    return data


@app.patch("/api/projects/{project_id}")
def update_project(
    project_id: str,
    update: ProjectUpdateRequest,
    user: User = Depends(current_user),
) -> dict:
    """Change a project's display metadata."""
    registry = get_projects()
    _managed_project(registry, project_id, user)
    project = registry.update(
        project_id,
        name=update.name,
        description=update.description,
        icon=update.icon,
    )
    return project.to_public()


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    purge: bool = Query(False, description="Also delete uploaded files and version history"),
    user: User = Depends(current_user),
) -> dict:
    """Remove a project."""
    registry = get_projects()
    _managed_project(registry, project_id, user)
    registry.delete(project_id, purge=purge)
    return {"status": "removed", "project": project_id, "purged": purge}


@app.post("/api/projects/{project_id}/rotate-key")
def rotate_project_key(project_id: str, user: User = Depends(current_user)) -> dict:
    """Issue a new upload key; the previous one stops working immediately."""
    registry = get_projects()
    _managed_project(registry, project_id, user)
    project = registry.rotate_key(project_id)
    return {"id": project.id, "apiKey": project.api_key}


# User management (admin only)


@app.get("/api/users")
def list_users(user: User = Depends(current_user)) -> list[dict]:
    """All accounts."""
    require_admin(user)
    return [u.to_public() for u in get_users().list_users()]


@app.post("/api/users")
def create_user(payload: UserCreateRequest, user: User = Depends(current_user)) -> dict:
    """Create an account. The token is only ever shown in this response."""
    require_admin(user)
    created, token = get_users().create(payload.username, role=payload.role)
    return {**created.to_public(), "token": token}


@app.delete("/api/users/{username}")
def delete_user(username: str, user: User = Depends(current_user)) -> dict:
    """Delete an account. Projects it owns are kept."""
    require_admin(user)
    get_users().delete(username)
    return {"status": "removed", "username": username}


@app.put("/api/users/{username}/role")
def set_user_role(
    username: str,
    payload: RoleUpdateRequest,
    user: User = Depends(current_user),
) -> dict:
    """Change an account's role."""
    require_admin(user)
    return get_users().set_role(username, payload.role).to_public()
