"""Release manifest format.

A manifest is a YAML snapshot of a project's releases, suitable for mirroring
to a static host or attaching to a changelog. It never contains the upload key.

Layout:
```yaml
manifest:
  version: "1.0"
  generated_at: "2026-01-17T10:30:00Z"

project:
  id: "my-app"
  name: "My App"
  description: "Desktop client"
  owner: "alice"

latest: "1.2.0"

releases:
  - version: "1.2.0"
    release_date: "2026-01-17T10:00:00Z"
    file_name: "my-app_1.2.0.exe"
    original_file_name: "my-app"
    size: 1048576
    download_url: "https://updates.example.com/download/my-app/1.2.0"
    release_notes: |
      Fixed crash on startup
```
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from depot.models import Project, VersionRecord
from depot.registry import sort_records


MANIFEST_VERSION = "1.0"


def generate_manifest(
    project: Project,
    records: list[VersionRecord],
    base_url: Optional[str] = None,
) -> dict:
    """Build a manifest dictionary for a project.

    Args:
        project: Project to describe
        records: Its version records, in any order
        base_url: Public server URL; download links stay relative without it

    Returns:
        Dictionary in manifest format
    """
    ordered = sort_records(records)
    prefix = base_url.rstrip("/") if base_url else ""

    return {
        "manifest": {
            "version": MANIFEST_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        },
        "project": {
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "owner": project.owner,
        },
        "latest": ordered[0].version if ordered else None,
        "releases": [
            {
                "version": record.version,
                "release_date": record.release_date.isoformat(),
                "file_name": record.file_name,
                "original_file_name": record.original_file_name,
                "size": record.size,
                "download_url": f"{prefix}/download/{project.id}/{record.version}",
                "release_notes": record.release_notes,
            }
            for record in ordered
        ],
    }


def _str_representer(dumper, data):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


class _ManifestDumper(yaml.SafeDumper):
    pass


_ManifestDumper.add_representer(str, _str_representer)


def export_manifest_yaml(
    project: Project,
    records: list[VersionRecord],
    output_path: Optional[Path] = None,
    base_url: Optional[str] = None,
) -> str:
    """Export a project's manifest to YAML.

    Args:
        project: Project to export
        records: Its version records
        output_path: Optional path to write file to
        base_url: Public server URL for absolute download links

    Returns:
        YAML string
    """
    manifest = generate_manifest(project, records, base_url=base_url)

    yaml_content = yaml.dump(
        manifest,
        Dumper=_ManifestDumper,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
        width=100,
    )

    if output_path:
        output_path.write_text(yaml_content, encoding="utf-8")

    return yaml_content


def parse_manifest_file(path: Path) -> dict:
    """Parse a manifest file."""
    content = path.read_text(encoding="utf-8")
    return yaml.safe_load(content) or {}


def validate_manifest(manifest: dict) -> tuple[bool, list[str]]:
    """Validate a manifest dictionary.

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = []

    if not isinstance(manifest, dict):
        return False, ["Manifest must be a mapping"]

    if "manifest" not in manifest:
        errors.append("Missing required 'manifest' section")
    elif not isinstance(manifest["manifest"], dict) or "version" not in manifest["manifest"]:
        errors.append("Missing manifest version")

    if "project" not in manifest:
        errors.append("Missing required 'project' section")
    elif not isinstance(manifest["project"], dict) or "id" not in manifest["project"]:
        errors.append("Missing project id")

    releases = manifest.get("releases", [])
    if not isinstance(releases, list):
        errors.append("'releases' must be a list")
        releases = []

    seen = set()
    for i, release in enumerate(releases):
        if not isinstance(release, dict) or not release.get("version"):
            errors.append(f"Release #{i + 1} has no version")
            continue
        version = str(release["version"])
        if version in seen:
            errors.append(f"Duplicate version {version}")
        seen.add(version)

    latest = manifest.get("latest")
    if latest is not None and str(latest) not in seen:
        errors.append(f"Latest version {latest} is not among the releases")

    return len(errors) == 0, errors
