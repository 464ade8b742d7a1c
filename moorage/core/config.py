"""Moorage runtime configuration and settings.

Values are resolved in three layers: platform defaults, the first YAML
config file found, then ``MOORAGE_<FIELD>`` environment variables.
"""
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, get_args, get_origin

import yaml

from moorage.core.errors import ConfigError

ACCESS_MODES = ("auto", "direct", "helper")
ENV_PREFIX = "MOORAGE_"


def default_config_dir() -> Path:
    """Return a suitable config directory for the current platform."""
    home = Path.home()
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "moorage"
        return home / "AppData" / "Roaming" / "moorage"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "moorage"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return (Path(xdg) if xdg else home / ".config") / "moorage"


def default_config_paths() -> List[Path]:
    """Config file search order (after --config and $MOORAGE_CONFIG)."""
    return [
        Path("moorage.yml"),
        default_config_dir() / "moorage.yml",
        Path("/etc/moorage/moorage.yml"),
    ]


@dataclass
class MoorageConfig:
    """Runtime configuration for Moorage operations.

    Attributes:
        state_file: Where the running-container snapshot is written
        backup_dir: Directory holding scheduled volume archives
        log_file: Append-only operation log
        backup_rotation_count: Archives kept per volume (<= 0 keeps all)
        manual_rotation_count: Manual archives kept per volume
        access_mode: auto, direct (walk the volumes root) or helper (copy via container)
        volumes_root: Runtime storage area holding ``<volume>/_data``
        helper_image: Image used for short-lived helper containers
        helper_mount_point: Where helpers mount the volume
        docker_host: Remote daemon URL passed to the docker CLI
        docker_context: Docker context name
        command_timeout: Timeout in seconds for non-streaming runtime commands
        hook_script: Executable called as ``<script> <event> <detail>``
        webhook_url: Incoming-webhook URL for notifications
    """

    state_file: Path = field(default_factory=lambda: default_config_dir() / "containers.json")
    backup_dir: Path = field(default_factory=lambda: default_config_dir() / "backups")
    log_file: Path = field(default_factory=lambda: default_config_dir() / "moorage.log")
    backup_rotation_count: int = 7
    manual_rotation_count: int = 5
    access_mode: str = "auto"
    volumes_root: Path = Path("/var/lib/docker/volumes")
    helper_image: str = "alpine"
    helper_mount_point: str = "/data"
    docker_host: Optional[str] = None
    docker_context: Optional[str] = None
    command_timeout: int = 60
    hook_script: Optional[str] = None
    webhook_url: Optional[str] = None

    def __post_init__(self):
        for f in fields(self):
            setattr(self, f.name, _coerce(f.name, f.type, getattr(self, f.name)))
        if self.access_mode not in ACCESS_MODES:
            raise ConfigError(
                f"access_mode must be one of {', '.join(ACCESS_MODES)}, got '{self.access_mode}'"
            )
        if not self.helper_mount_point.startswith("/") or self.helper_mount_point == "/":
            raise ConfigError(f"helper_mount_point must be an absolute directory, got '{self.helper_mount_point}'")

    @property
    def manual_backup_dir(self) -> Path:
        return self.backup_dir / "manual"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MoorageConfig":
        """Build a config from a mapping (e.g. a parsed YAML file)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def with_env(self, environ: Optional[Dict[str, str]] = None) -> "MoorageConfig":
        """Return a copy with MOORAGE_<FIELD> environment overrides applied.

        Environment variables:
            MOORAGE_BACKUP_DIR: Backup directory
            MOORAGE_BACKUP_ROTATION_COUNT: Archives kept per volume
            MOORAGE_WEBHOOK_URL: Notification webhook
            ... one per field
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(self):
            value = environ.get(ENV_PREFIX + f.name.upper())
            if value is not None:
                overrides[f.name] = value
        return replace(self, **overrides) if overrides else self


def _coerce(name: str, annotation: Any, value: Any) -> Any:
    """Coerce YAML/env values to the field's declared type."""
    optional = get_origin(annotation) is Union
    if optional:
        annotation = next(arg for arg in get_args(annotation) if arg is not type(None))

    if value is None or (optional and value == ""):
        if optional:
            return None
        raise ConfigError(f"{name} must not be empty")

    if annotation is Path:
        return Path(os.path.expanduser(str(value)))
    if annotation is int:
        if isinstance(value, bool):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    return str(value)


def find_config_file(config_path: Optional[str] = None) -> Optional[Path]:
    """Locate the active config file, or None to run on defaults.

    An explicitly requested file (argument or $MOORAGE_CONFIG) must exist.
    """
    explicit = config_path or os.environ.get("MOORAGE_CONFIG")
    if explicit:
        path = Path(explicit).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path

    for path in default_config_paths():
        if path.exists():
            return path
    return None


def load_config(config_path: Optional[str] = None,
                environ: Optional[Dict[str, str]] = None) -> MoorageConfig:
    """Load configuration from YAML plus environment overrides."""
    path = find_config_file(config_path)
    data: Dict[str, Any] = {}

    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

    return MoorageConfig.from_dict(data).with_env(environ)
