"""Restore configuration.

Settings are resolved exactly once at startup into an immutable
``RestoreConfig`` and passed explicitly to every component. Precedence,
lowest first: built-in defaults, YAML config file, environment, CLI flags.

Example YAML (``pages-restore.yaml``)::

    data_dir: /data/backup
    remote_data_root: /data/user
    ssh_port: 122
    extra_ssh_options: "-o StrictHostKeyChecking=no"
    finalize_parallelism: 8
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from pages_restore.errors import ConfigurationError

DEFAULT_SNAPSHOT = "current"
DEFAULT_SSH_PORT = 122
DEFAULT_SSH_USER = "admin"
DEFAULT_REMOTE_DATA_ROOT = "/data/user"
DEFAULT_REMOTE_IDENTITY = "git"
DEFAULT_ROUTE_COMMAND = "github-env ./bin/dpages-cluster-restore-routes"
DEFAULT_FINALIZE_COMMAND = "github-env ./bin/dpages-cluster-restore-finalize"
DEFAULT_NODES_COMMAND = "ghe-cluster-nodes --role pages --hostnames"
FINALIZE_CHUNK_SIZE = 1000
CONTENT_PATH_DEPTH = 5

# Environment variable -> RestoreConfig field
ENV_VARS: Dict[str, str] = {
    "GHE_RESTORE_SNAPSHOT": "snapshot",
    "GHE_DATA_DIR": "data_dir",
    "GHE_REMOTE_DATA_USER_DIR": "remote_data_root",
    "GHE_CLUSTER": "cluster",
    "GHE_EXTRA_SSH_OPTS": "extra_ssh_options",
    "GHE_SSH_PORT": "ssh_port",
    "GHE_SSH_USER": "ssh_user",
    "GHE_SSH_KEY": "ssh_key",
    "PAGES_RESTORE_METRICS_FILE": "metrics_textfile",
}

CONFIG_PATH_ENV = "PAGES_RESTORE_CONFIG"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class RestoreConfig:
    """Immutable settings for one restore run."""

    data_dir: Path = field(default_factory=lambda: Path("data"))
    snapshot: str = DEFAULT_SNAPSHOT
    remote_data_root: str = DEFAULT_REMOTE_DATA_ROOT
    cluster: bool = False
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_user: str = DEFAULT_SSH_USER
    ssh_key: Optional[str] = None
    connect_timeout: int = 30
    command_timeout: Optional[int] = None
    extra_ssh_options: Tuple[str, ...] = ()
    remote_identity: str = DEFAULT_REMOTE_IDENTITY
    route_command: str = DEFAULT_ROUTE_COMMAND
    finalize_command: str = DEFAULT_FINALIZE_COMMAND
    nodes_command: str = DEFAULT_NODES_COMMAND
    content_depth: int = CONTENT_PATH_DEPTH
    finalize_chunk_size: int = FINALIZE_CHUNK_SIZE
    finalize_parallelism: int = 4
    parallel_transfers: int = 1
    metrics_textfile: Optional[Path] = None

    @property
    def snapshot_dir(self) -> Path:
        return self.data_dir / self.snapshot

    @property
    def pages_dir(self) -> Path:
        return self.snapshot_dir / "pages"

    def validate(self) -> "RestoreConfig":
        """Check value ranges; returns self so calls can be chained."""
        if not self.snapshot or "/" in self.snapshot:
            raise ConfigurationError(
                f"Invalid snapshot label: {self.snapshot!r}",
                context={"snapshot": self.snapshot},
            )
        if not 0 < self.ssh_port < 65536:
            raise ConfigurationError(
                f"ssh_port out of range: {self.ssh_port}",
                context={"ssh_port": self.ssh_port},
            )
        for name in (
            "content_depth",
            "finalize_chunk_size",
            "finalize_parallelism",
            "parallel_transfers",
        ):
            if getattr(self, name) < 1:
                raise ConfigurationError(
                    f"{name} must be >= 1", context={name: getattr(self, name)}
                )
        if not self.remote_data_root.startswith("/"):
            raise ConfigurationError(
                "remote_data_root must be an absolute path",
                context={"remote_data_root": self.remote_data_root},
            )
        return self


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {value!r}")


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env/CLI value into the field's type."""
    if value is None:
        return None
    try:
        if name == "data_dir":
            return Path(value).expanduser()
        if name == "metrics_textfile":
            return Path(value).expanduser()
        if name == "cluster":
            return _parse_bool(name, value)
        if name == "extra_ssh_options":
            if isinstance(value, str):
                return tuple(shlex.split(value))
            return tuple(str(v) for v in value)
        if name in (
            "ssh_port",
            "connect_timeout",
            "command_timeout",
            "content_depth",
            "finalize_chunk_size",
            "finalize_parallelism",
            "parallel_transfers",
        ):
            return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {value!r}", context={"error": str(e)}
        ) from e
    return str(value)


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Config file not found: {path}", context={"path": str(path)}
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse config file {path}: {e}", context={"path": str(path)}
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping",
            context={"path": str(path)},
        )
    return data


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> RestoreConfig:
    """Build the run configuration.

    Args:
        path: Optional YAML file; falls back to ``$PAGES_RESTORE_CONFIG``
        environ: Environment mapping (defaults to ``os.environ``)
        overrides: CLI-level values; ``None`` entries are ignored

    Returns:
        A validated, frozen RestoreConfig.

    Raises:
        ConfigurationError: unknown keys, bad values or unreadable file
    """
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(RestoreConfig)}
    values: Dict[str, Any] = {}

    if path is None and environ.get(CONFIG_PATH_ENV):
        path = Path(environ[CONFIG_PATH_ENV])
    if path is not None:
        file_values = _load_yaml(Path(path))
        unknown = sorted(set(file_values) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown config keys: {', '.join(unknown)}",
                context={"path": str(path)},
            )
        values.update(file_values)

    for env_name, field_name in ENV_VARS.items():
        if env_name in environ:
            values[field_name] = environ[env_name]

    for key, value in (overrides or {}).items():
        if key not in known:
            raise ConfigurationError(f"Unknown override: {key}")
        if value is not None:
            values[key] = value

    coerced = {k: _coerce(k, v) for k, v in values.items()}
    return replace(RestoreConfig(), **coerced).validate()
