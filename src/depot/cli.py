"""Click CLI for Depot."""

import os
from pathlib import Path
from typing import NoReturn, Optional

import click
from trogon import tui

from depot import __version__
from depot.access import ProjectRegistry, UserRegistry
from depot.config import DepotConfig
from depot.errors import DepotError
from depot.models import Role
from depot.registry import (
    AccessDecision,
    ProjectLocks,
    ReleasePublisher,
    VersionResolver,
    VersionStore,
)


def _fail(message: str) -> NoReturn:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    raise SystemExit(1)


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "?"
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class Context:
    """Registries built from the active configuration."""

    def __init__(self, config: DepotConfig, config_path: Optional[Path] = None) -> None:
        self.config = config
        self.config_path = config_path
        self.store = VersionStore(config.data_path)
        self.projects = ProjectRegistry(config.projects_file, self.store)
        self.users = UserRegistry(config.users_file, admin_token=config.admin_token)
        self.resolver = VersionResolver(self.store)

    def publisher(self) -> ReleasePublisher:
        return ReleasePublisher(
            self.store,
            locks=ProjectLocks() if self.config.upload_locking else None,
            strict_versions=self.config.strict_versions,
        )


pass_context = click.make_pass_decorator(Context)


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="depot")
@click.option(
    "--data-dir",
    envvar="DEPOT_DATA_DIR",
    type=click.Path(file_okay=False),
    help="Directory holding projects, users and uploads",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Config file (default: ~/.depot/config.json)",
)
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[str], config_path: Optional[str]) -> None:
    """Depot - self-hosted update server.

    Publish versioned application builds and serve the latest one to clients.

    Quick start:
        depot projects add my-app       Register a project (prints its upload key)
        depot versions publish my-app setup.exe --version 1.0.0
        depot serve                     Start the HTTP server
        depot tui                       Launch command explorer (Trogon)
    """
    path = Path(config_path) if config_path else None
    config = DepotConfig.load(path)
    if data_dir:
        config.data_dir = data_dir
    ctx.obj = Context(config, path)


@cli.command()
@click.option("--host", help="Host to bind to (default from config)")
@click.option("--port", type=int, help="Port to bind to (default from config)")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
@pass_context
def serve(ctx: Context, host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Start the Depot API server."""
    import uvicorn

    from depot.logging_config import setup_logging

    config = ctx.config
    host = host or config.host
    port = port or config.port

    # The app loads its own config; hand over the effective settings
    if ctx.config_path:
        os.environ["DEPOT_CONFIG"] = str(ctx.config_path)
    os.environ["DEPOT_DATA_DIR"] = str(config.data_path)
    setup_logging(config.log_level, config.log_file)

    click.echo(f"Starting Depot server at http://{host}:{port}")
    click.echo(f"Data directory: {config.data_path.resolve()}")
    click.echo("Press Ctrl+C to stop")
    uvicorn.run(
        "depot.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


# =============================================================================
# Projects Commands - Manage registered projects
# =============================================================================


@cli.group()
def projects() -> None:
    """Manage registered projects.

    Commands for listing, adding, removing, and inspecting projects.
    """
    pass


@projects.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed information")
@pass_context
def projects_list(ctx: Context, verbose: bool) -> None:
    """List all registered projects."""
    all_projects = ctx.projects.list_projects()

    if not all_projects:
        click.echo("No projects registered.")
        return

    click.echo("\n📦 Registered Projects:")
    click.echo("=" * 50)

    for project in all_projects:
        records = ctx.resolver.list_versions(project.id)
        latest = records[0].version if records else None

        badge_str = f" [latest {latest}]" if latest else " [no releases]"
        click.echo(f"\n  {project.id}{badge_str}")

        if project.name != project.id:
            click.echo(f"    {project.name}")
        if project.description:
            desc = project.description[:60] + "..." if len(project.description) > 60 else project.description
            click.echo(f"    {desc}")

        if verbose:
            click.echo(f"    Owner: {project.owner}")
            click.echo(f"    Versions: {len(records)}")
            click.echo(f"    Created: {project.created_at.strftime('%Y-%m-%d %H:%M')}")

    click.echo(f"\nTotal: {len(all_projects)} projects")


@projects.command("add")
@click.argument("project_id")
@click.option("--name", "-n", help="Display name (default: the id)")
@click.option("--description", "-d", help="Project description")
@click.option("--icon", help="Icon URL")
@click.option("--owner", "-o", default="admin", show_default=True, help="Owning username")
@pass_context
def projects_add(
    ctx: Context,
    project_id: str,
    name: Optional[str],
    description: Optional[str],
    icon: Optional[str],
    owner: str,
) -> None:
    """Add a new project.

    PROJECT_ID: Unique, URL-safe identifier
    """
    try:
        project = ctx.projects.create(
            project_id, owner=owner, name=name, description=description, icon=icon,
        )
    except DepotError as e:
        _fail(e.message)

    click.echo(f"✓ Added project: {project.id}")
    click.echo(f"  Upload key: {project.api_key}")


@projects.command("remove")
@click.argument("project_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--purge", is_flag=True, help="Also delete uploaded files and version history")
@pass_context
def projects_remove(ctx: Context, project_id: str, yes: bool, purge: bool) -> None:
    """Remove a project.

    PROJECT_ID: Project to remove
    """
    if ctx.projects.get(project_id) is None:
        _fail(f"Project '{project_id}' not found.")

    if not yes:
        msg = f"Remove project '{project_id}'"
        if purge:
            count = len(ctx.store.load(project_id))
            msg += f" and delete {count} release(s) from disk"
        msg += "?"
        click.confirm(msg, abort=True)

    try:
        ctx.projects.delete(project_id, purge=purge)
    except DepotError as e:
        _fail(e.message)

    click.echo(f"✓ Removed project: {project_id}")
    if purge:
        click.echo("  Deleted uploaded files")


@projects.command("show")
@click.argument("project_id")
@click.option("--show-key", is_flag=True, help="Print the upload key")
@pass_context
def projects_show(ctx: Context, project_id: str, show_key: bool) -> None:
    """Show detailed information about a project.

    PROJECT_ID: Project to inspect
    """
    project = ctx.projects.get(project_id)
    if project is None:
        _fail(f"Project '{project_id}' not found.")

    records = ctx.resolver.list_versions(project_id)

    click.echo(f"\n📦 {project.name} ({project.id})")
    click.echo("=" * 50)
    if project.description:
        click.echo(f"  {project.description}")
    click.echo(f"  Owner:    {project.owner}")
    click.echo(f"  Created:  {project.created_at.strftime('%Y-%m-%d %H:%M')}")
    click.echo(f"  Storage:  {ctx.store.project_dir(project_id)}")
    if show_key:
        click.echo(f"  Key:      {project.api_key}")
    click.echo(f"  Versions: {len(records)}")
    if records:
        click.echo(f"  Latest:   {records[0].version} ({records[0].release_date.strftime('%Y-%m-%d')})")


@projects.command("rotate-key")
@click.argument("project_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_context
def projects_rotate_key(ctx: Context, project_id: str, yes: bool) -> None:
    """Issue a new upload key for a project.

    The old key stops working immediately.
    """
    if ctx.projects.get(project_id) is None:
        _fail(f"Project '{project_id}' not found.")
    if not yes:
        click.confirm(f"Rotate the upload key of '{project_id}'?", abort=True)

    project = ctx.projects.rotate_key(project_id)
    click.echo(f"✓ New upload key for {project_id}: {project.api_key}")


# =============================================================================
# Versions Commands - Publish and inspect releases
# =============================================================================


@cli.group()
def versions() -> None:
    """Publish and inspect releases."""
    pass


@versions.command("list")
@click.argument("project_id")
@pass_context
def versions_list(ctx: Context, project_id: str) -> None:
    """List a project's versions, newest first."""
    if ctx.projects.get(project_id) is None:
        _fail(f"Project '{project_id}' not found.")

    records = ctx.resolver.list_versions(project_id)
    if not records:
        click.echo("No versions published.")
        return

    click.echo(f"\n=== {project_id} releases ===\n")
    for i, record in enumerate(records):
        marker = click.style(" (latest)", fg="green") if i == 0 else ""
        click.echo(f"  {record.version}{marker}")
        click.echo(
            f"    {record.release_date.strftime('%Y-%m-%d %H:%M')} | "
            f"{record.file_name} | {_format_size(record.size)}"
        )
        if record.release_notes:
            click.echo(f"    {record.release_notes.splitlines()[0][:70]}")

    click.echo(f"\nTotal: {len(records)} versions")


@versions.command("latest")
@click.argument("project_id")
@pass_context
def versions_latest(ctx: Context, project_id: str) -> None:
    """Show the latest version and the file serving it."""
    try:
        ctx.projects.require(project_id)
        resolution = ctx.resolver.resolve_latest(project_id)
    except DepotError as e:
        _fail(e.message)

    click.echo(resolution.record.version)
    click.echo(f"  File: {resolution.path}")


@versions.command("resolve")
@click.argument("project_id")
@click.argument("version")
@pass_context
def versions_resolve(ctx: Context, project_id: str, version: str) -> None:
    """Show which file a download of VERSION (or "latest") would serve."""
    try:
        ctx.projects.require(project_id)
        resolution = ctx.resolver.resolve(project_id, version)
    except DepotError as e:
        _fail(e.message)

    click.echo(f"{resolution.record.version} -> {resolution.path}")
    if resolution.file_name != resolution.record.file_name:
        click.echo(click.style(
            f"  stored name {resolution.record.file_name!r} is missing, matched by scan",
            fg="yellow",
        ))


@versions.command("publish")
@click.argument("project_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--version", "-V", "version", required=True, help="Version number, e.g. 1.2.0")
@click.option("--notes", "-m", help="Release notes")
@pass_context
def versions_publish(
    ctx: Context,
    project_id: str,
    file: str,
    version: str,
    notes: Optional[str],
) -> None:
    """Publish FILE as a new version of a project.

    Local use has full access: no upload key is needed.
    """
    path = Path(file)
    try:
        ctx.projects.require(project_id)
        with open(path, "rb") as stream:
            record = ctx.publisher().publish(
                AccessDecision(project_id=project_id, is_owner_or_admin=True),
                file_name=path.name,
                stream=stream,
                version=version,
                release_notes=notes,
            )
    except DepotError as e:
        _fail(e.message)

    click.echo(f"✓ Published {project_id} {record.version} as {record.file_name}")


# =============================================================================
# Users Commands - Accounts for the management API
# =============================================================================


@cli.group()
def users() -> None:
    """Manage accounts for the management API."""
    pass


@users.command("list")
@pass_context
def users_list(ctx: Context) -> None:
    """List accounts."""
    accounts = ctx.users.list_users()
    if not accounts:
        click.echo("No users.")
        return
    for user in accounts:
        role = click.style(user.role.value, fg="yellow") if user.is_admin else user.role.value
        click.echo(f"  {user.username} [{role}]")
    click.echo(f"\nTotal: {len(accounts)} users")


@users.command("add")
@click.argument("username")
@click.option("--admin", is_flag=True, help="Grant the admin role")
@pass_context
def users_add(ctx: Context, username: str, admin: bool) -> None:
    """Create an account and print its bearer token (shown only once)."""
    try:
        user, token = ctx.users.create(username, role=Role.ADMIN if admin else Role.USER)
    except DepotError as e:
        _fail(e.message)

    click.echo(f"✓ Added user: {user.username} ({user.role.value})")
    click.echo(f"  Token: {token}")


@users.command("remove")
@click.argument("username")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_context
def users_remove(ctx: Context, username: str, yes: bool) -> None:
    """Delete an account."""
    if not yes:
        click.confirm(f"Remove user '{username}'?", abort=True)
    try:
        ctx.users.delete(username)
    except DepotError as e:
        _fail(e.message)
    click.echo(f"✓ Removed user: {username}")


@users.command("role")
@click.argument("username")
@click.argument("role", type=click.Choice([r.value for r in Role]))
@pass_context
def users_role(ctx: Context, username: str, role: str) -> None:
    """Change an account's role."""
    try:
        user = ctx.users.set_role(username, Role(role))
    except DepotError as e:
        _fail(e.message)
    click.echo(f"✓ {user.username} is now {user.role.value}")


# =============================================================================
# Manifest Commands - YAML release manifests
# =============================================================================


@cli.group("manifest")
def manifest_group() -> None:
    """Export and check YAML release manifests.

    Examples:
        depot manifest export my-app
        depot manifest export my-app -o releases.yaml --base-url https://updates.example.com
        depot manifest validate releases.yaml
    """
    pass


@manifest_group.command("export")
@click.argument("project_id")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file path")
@click.option("--base-url", help="Public server URL for absolute download links")
@pass_context
def manifest_export(
    ctx: Context,
    project_id: str,
    output: Optional[str],
    base_url: Optional[str],
) -> None:
    """Export a project's releases as a YAML manifest."""
    from depot.manifest import export_manifest_yaml

    project = ctx.projects.get(project_id)
    if project is None:
        _fail(f"Project '{project_id}' not found.")

    records = ctx.store.load(project_id)
    output_path = Path(output) if output else Path(f"{project_id}.releases.yaml")
    export_manifest_yaml(
        project,
        records,
        output_path=output_path,
        base_url=base_url or ctx.config.public_base_url,
    )

    click.echo(click.style(f"✓ Exported to {output_path}", fg="green"))
    click.echo(f"   {len(records)} release(s)")


@manifest_group.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def manifest_validate(path: str) -> None:
    """Check a manifest file for structural errors."""
    import yaml

    from depot.manifest import parse_manifest_file, validate_manifest

    try:
        manifest = parse_manifest_file(Path(path))
    except yaml.YAMLError as e:
        _fail(f"Invalid YAML: {e}")

    is_valid, errors = validate_manifest(manifest)
    if is_valid:
        click.echo(click.style(f"✓ {path} is valid", fg="green"))
        return
    for error in errors:
        click.echo(click.style(f"  ✗ {error}", fg="red"))
    raise SystemExit(1)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group("config")
def config_group() -> None:
    """Inspect and initialise configuration."""
    pass


@config_group.command("show")
@pass_context
def config_show(ctx: Context) -> None:
    """Print the effective configuration."""
    from dataclasses import asdict

    for key, value in asdict(ctx.config).items():
        if key == "admin_token" and value:
            value = "********"
        click.echo(f"  {key}: {value}")


@config_group.command("init")
@click.option("--path", type=click.Path(dir_okay=False), help="Where to write the file")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(path: Optional[str], force: bool) -> None:
    """Write a config file with default values."""
    target = Path(path) if path else DepotConfig.get_config_path()
    if target.exists() and not force:
        _fail(f"{target} already exists (use --force to overwrite)")
    written = DepotConfig().save(target)
    click.echo(f"✓ Wrote {written}")


if __name__ == "__main__":
    cli()
