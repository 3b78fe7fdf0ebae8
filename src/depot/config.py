"""Depot configuration management.

Settings are read from a JSON file (``$DEPOT_CONFIG`` or ~/.depot/config.json),
then selected environment variables override them.
"""

import json
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional


# Default configuration values
DEFAULT_DATA_DIR = "data"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_GEO_TIMEOUT = 2.0

# Environment variable -> config field
ENV_OVERRIDES = {
    "DEPOT_DATA_DIR": "data_dir",
    "DEPOT_HOST": "host",
    "DEPOT_PORT": "port",
    "DEPOT_BASE_URL": "public_base_url",
    "DEPOT_ADMIN_TOKEN": "admin_token",
    "DEPOT_LOG_LEVEL": "log_level",
    "DEPOT_LOG_FILE": "log_file",
    "DEPOT_GEO_LOOKUP_URL": "geo_lookup_url",
}


@dataclass
class DepotConfig:
    """Depot server configuration."""

    # Storage
    data_dir: str = DEFAULT_DATA_DIR

    # Server
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    # Overrides the request's base URL when building download links
    public_base_url: Optional[str] = None

    # Uploads
    strict_versions: bool = True  # digits and dots only
    upload_locking: bool = True  # per-project lock around load-append-save

    # Auth: bootstrap token that acts as the "admin" user
    admin_token: Optional[str] = None

    # Logging
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None  # append-only access/event log

    # Geolocation of download clients, e.g. "http://ip-api.com/json/{ip}"
    geo_lookup_url: Optional[str] = None
    geo_timeout: float = DEFAULT_GEO_TIMEOUT

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def projects_file(self) -> Path:
        return self.data_path / "projects.json"

    @property
    def users_file(self) -> Path:
        return self.data_path / "users.json"

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        env_path = os.environ.get("DEPOT_CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        return Path.home() / ".depot" / "config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None, use_env: bool = True) -> "DepotConfig":
        """Load configuration from file, or defaults if not found.

        Args:
            path: Config file to read instead of the default location
            use_env: Apply DEPOT_* environment overrides
        """
        config_path = path or cls.get_config_path()
        config = cls()

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                # Only use known fields to avoid issues with old config versions
                known_fields = {f.name for f in cls.__dataclass_fields__.values()}
                filtered_data = {k: v for k, v in data.items() if k in known_fields}
                config = cls(**filtered_data)
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
                # Invalid config, use defaults
                pass

        if use_env:
            config.apply_env(os.environ)
        return config

    def apply_env(self, environ) -> None:
        """Override fields from DEPOT_* environment variables."""
        for var, field_name in ENV_OVERRIDES.items():
            value = environ.get(var)
            if not value:
                continue
            if field_name == "port":
                try:
                    value = int(value)
                except ValueError:
                    continue
            setattr(self, field_name, value)

    def save(self, path: Optional[Path] = None) -> Path:
        """Save configuration to file."""
        config_path = path or self.get_config_path()

        # Ensure directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)
        return config_path

    def reset(self) -> None:
        """Reset configuration to defaults."""
        defaults = DepotConfig()
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(defaults, name))
