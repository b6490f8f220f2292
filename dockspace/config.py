"""
Configuration for dockspace.

Values come from (lowest to highest precedence) the dataclass defaults, a
YAML file, ``DOCKSPACE_*`` environment variables (optionally loaded from a
``.env`` file) and finally CLI flags applied by the caller.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".dockspace"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
ENV_PREFIX = "DOCKSPACE_"

SUPPORTED_ENGINES = ("docker", "podman")


@dataclass
class ReclaimConfig:
    """Settings shared by every component of a run.

    Attributes:
        engine_binary: Container engine CLI to drive (docker or podman)
        root_path: Engine data root whose filesystem is measured and locked
        backup_dir: Where archived volumes and images are written
        run_log_path: Append-only JSON-lines audit trail of RunReports
        lock_dir: Directory holding per-root run lock files
        command_timeout: Seconds to wait for a single engine command
        backup_image: Helper image used to tar volume contents
        use_sudo_for_logs: Truncate unwritable log files through sudo
        warning_percent: Disk usage at which a Safe run is recommended
        critical_percent: Disk usage at which an Aggressive run is recommended
        emergency_percent: Disk usage at which an Emergency run is recommended
    """

    engine_binary: str = "docker"
    root_path: str = "/var/lib/docker"
    backup_dir: str = str(CONFIG_DIR / "backups")
    run_log_path: str = str(CONFIG_DIR / "runs.jsonl")
    lock_dir: str = str(CONFIG_DIR / "locks")
    command_timeout: float = 120.0
    backup_image: str = "alpine:3"
    use_sudo_for_logs: bool = False
    warning_percent: float = 80.0
    critical_percent: float = 90.0
    emergency_percent: float = 95.0
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.engine_binary not in SUPPORTED_ENGINES:
            raise ValueError(
                f"engine_binary must be one of {', '.join(SUPPORTED_ENGINES)}, "
                f"got {self.engine_binary!r}"
            )
        if self.command_timeout <= 0:
            raise ValueError("command_timeout must be positive")
        if not 0 < self.warning_percent <= self.critical_percent <= self.emergency_percent <= 100:
            raise ValueError(
                "thresholds must satisfy 0 < warning_percent <= critical_percent "
                "<= emergency_percent <= 100"
            )

    def with_overrides(self, **overrides: Any) -> "ReclaimConfig":
        """Return a copy with the non-None overrides applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values) if values else self

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw YAML/env value to the type of the named field."""
    default = getattr(ReclaimConfig, name, None)
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, float):
        return float(raw)
    return str(raw)


def load_env(env_file: str | None = None) -> None:
    """Load ``DOCKSPACE_*`` variables from a .env file without overriding the environment."""
    if env_file:
        load_dotenv(env_file, override=False)
        return
    for candidate in (Path.cwd() / ".env", CONFIG_DIR / ".env"):
        if candidate.exists():
            load_dotenv(candidate, override=False)
            logger.debug(f"Loaded environment from {candidate}")


def _from_env(environ: dict[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for f in fields(ReclaimConfig):
        if f.name == "extra":
            continue
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            values[f.name] = _coerce(f.name, environ[key])
    return values


def _from_file(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        payload = yaml.safe_load(fh) or {}

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(payload).__name__}")

    known = {f.name for f in fields(ReclaimConfig)} - {"extra"}
    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, raw in payload.items():
        name = str(key).replace("-", "_")
        if name in known:
            values[name] = _coerce(name, raw)
        else:
            extra[name] = raw

    if extra:
        logger.warning(f"Ignoring unknown config keys in {path}: {', '.join(sorted(extra))}")
        values["extra"] = extra
    return values


def load_config(
    path: str | None = None,
    environ: dict[str, str] | None = None,
) -> ReclaimConfig:
    """
    Build a ReclaimConfig from file and environment.

    Args:
        path: Optional YAML config path; defaults to ~/.dockspace/config.yaml
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ReclaimConfig instance

    Raises:
        ValueError: If the file is malformed or a value is out of range
        FileNotFoundError: If an explicit path does not exist
    """
    config_path = Path(path).expanduser() if path else CONFIG_FILE
    values: dict[str, Any] = {}

    if config_path.exists():
        try:
            values.update(_from_file(config_path))
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse config at {config_path}: {e}") from e
        logger.debug(f"Loaded config from {config_path}")
    elif path:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    values.update(_from_env(dict(os.environ if environ is None else environ)))
    return ReclaimConfig(**values)
