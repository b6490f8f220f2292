"""
Container engine command surface.

Wraps the docker (or podman) CLI: read-only queries that return parsed
JSON rows, and the handful of mutations a reclamation run needs. Every
call is bounded by ``command_timeout``.
"""

import json
import logging
import os
import shutil
import subprocess
from typing import Any

from dockspace.config import ReclaimConfig
from dockspace.errors import (
    EngineCommandError,
    EngineTimeoutError,
    EngineUnreachableError,
)
from dockspace.models import Category
from dockspace.retry import RetryConfig, RetryManager

logger = logging.getLogger(__name__)

# stderr fragments that mean the daemon itself is gone, not that one
# object could not be removed.
UNREACHABLE_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "error during connect",
    "connection refused",
    "cannot connect to podman",
)

QUERY_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=5.0,
    retryable_exceptions=(EngineTimeoutError, EngineUnreachableError),
)

# Networks the engine creates itself; they can never be removed.
BUILTIN_NETWORKS = frozenset({"bridge", "host", "none", "podman"})

_REMOVE_COMMANDS: dict[Category, list[str]] = {
    Category.CONTAINERS: ["rm"],
    Category.IMAGES: ["rmi"],
    Category.VOLUMES: ["volume", "rm"],
    Category.NETWORKS: ["network", "rm"],
}


def _parse_json_lines(output: str) -> list[dict[str, Any]]:
    """Parse ``--format '{{json .}}'`` output, one object per line."""
    rows = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparseable engine output line: {line[:80]}")
            continue
        if isinstance(row, dict):
            rows.append(row)
    return rows


class DockerEngine:
    """CLI-backed engine interface.

    Example:
        engine = DockerEngine(ReclaimConfig())
        engine.ping()
        for row in engine.list_images():
            print(row["Repository"], row["Size"])
    """

    def __init__(self, config: ReclaimConfig, retry: RetryManager | None = None):
        self.config = config
        self.binary = config.engine_binary
        self.timeout = config.command_timeout
        self._retry = retry or RetryManager(QUERY_RETRY_CONFIG)

    def _run(self, args: list[str], timeout: float | None = None) -> str:
        command = [self.binary, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            proc = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            raise EngineUnreachableError(f"{self.binary} CLI not found", command) from e
        except subprocess.TimeoutExpired as e:
            raise EngineTimeoutError(
                f"{' '.join(command)} timed out after {timeout or self.timeout:.0f}s", command
            ) from e
        except OSError as e:
            raise EngineUnreachableError(f"Cannot run {self.binary}: {e}", command) from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            if any(marker in stderr.lower() for marker in UNREACHABLE_MARKERS):
                raise EngineUnreachableError(stderr, command)
            raise EngineCommandError(stderr or f"exit status {proc.returncode}", command, proc.returncode)
        return proc.stdout

    def _query(self, args: list[str]) -> str:
        return self._retry.call(self._run, args)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ping(self) -> str:
        """Return the server version, raising EngineUnreachableError if the daemon is down."""
        output = self._query(["version", "--format", "{{json .Server.Version}}"])
        try:
            return str(json.loads(output.strip() or '""'))
        except json.JSONDecodeError:
            return output.strip()

    def system_df(self) -> list[dict[str, Any]]:
        """Per-type usage rows (Images, Containers, Local Volumes, Build Cache)."""
        return _parse_json_lines(self._query(["system", "df", "--format", "{{json .}}"]))

    def system_df_verbose(self) -> dict[str, Any]:
        output = self._query(["system", "df", "-v", "--format", "{{json .}}"]).strip()
        if not output:
            return {}
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise EngineCommandError(f"Unexpected 'system df -v' output: {e}") from e
        return data if isinstance(data, dict) else {}

    def list_containers(self) -> list[dict[str, Any]]:
        return _parse_json_lines(
            self._query(["ps", "--all", "--size", "--no-trunc", "--format", "{{json .}}"])
        )

    def list_images(self) -> list[dict[str, Any]]:
        return _parse_json_lines(
            self._query(["image", "ls", "--no-trunc", "--format", "{{json .}}"])
        )

    def list_volumes(self) -> list[dict[str, Any]]:
        return list(self.system_df_verbose().get("Volumes") or [])

    def list_build_cache(self) -> list[dict[str, Any]]:
        return list(self.system_df_verbose().get("BuildCache") or [])

    def list_networks(self) -> list[dict[str, Any]]:
        """Network rows enriched with the ``Containers`` map from ``network inspect``."""
        rows = _parse_json_lines(self._query(["network", "ls", "--no-trunc", "--format", "{{json .}}"]))
        ids = [row["ID"] for row in rows if row.get("ID")]
        if not ids:
            return rows
        details = self.inspect(["network", "inspect", *ids])
        attached = {item.get("Id"): item.get("Containers") or {} for item in details}
        for row in rows:
            row["Containers"] = attached.get(row.get("ID"), {})
        return rows

    def inspect(self, args: list[str]) -> list[dict[str, Any]]:
        output = self._query(args).strip()
        if not output:
            return []
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise EngineCommandError(f"Unexpected inspect output: {e}") from e
        return data if isinstance(data, list) else [data]

    def container_log_paths(self, container_ids: list[str]) -> dict[str, str]:
        if not container_ids:
            return {}
        details = self.inspect(["container", "inspect", *container_ids])
        return {item["Id"]: item["LogPath"] for item in details if item.get("Id") and item.get("LogPath")}

    def log_size(self, log_path: str) -> int | None:
        """
        Size of a container log file in bytes.

        Log directories are usually readable by root only. With
        ``use_sudo_for_logs`` the size is read through ``sudo -n stat``;
        None means the file is there but its size could not be read.

        Raises:
            FileNotFoundError: If the log file does not exist
            PermissionError: If the file is unreadable and sudo is not enabled
        """
        try:
            return os.stat(log_path).st_size
        except PermissionError:
            if not self.config.use_sudo_for_logs or os.geteuid() == 0:
                raise

        command = ["sudo", "-n", "stat", "-c", "%s", log_path]
        try:
            proc = subprocess.run(command, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Cannot size {log_path} through sudo: {e}")
            return None
        if proc.returncode != 0:
            logger.warning(f"Cannot size {log_path} through sudo: {(proc.stderr or '').strip()}")
            return None
        try:
            return int(proc.stdout.strip())
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Mutations (never retried)
    # ------------------------------------------------------------------

    def delete(self, category: Category, object_id: str) -> None:
        """Delete one object. Raises an EngineError subclass on failure."""
        if category is Category.LOGS:
            self.truncate_log(object_id)
            return
        if category is Category.BUILD_CACHE:
            self._run(["builder", "prune", "--force", "--filter", f"id={object_id}"])
        else:
            self._run([*_REMOVE_COMMANDS[category], object_id])
        logger.info(f"Removed {category.value} {object_id[:12]}")

    def truncate_log(self, container_id: str) -> None:
        """Truncate a container's json log file to zero bytes."""
        paths = self.container_log_paths([container_id])
        log_path = paths.get(container_id) or next(iter(paths.values()), None)
        if not log_path:
            raise EngineCommandError(f"No log file recorded for container {container_id[:12]}")

        if os.access(log_path, os.W_OK):
            try:
                os.truncate(log_path, 0)
            except OSError as e:
                raise EngineCommandError(f"Cannot truncate {log_path}: {e}") from e
        else:
            command = ["truncate", "-s", "0", log_path]
            if self.config.use_sudo_for_logs and os.geteuid() != 0:
                command.insert(0, "sudo")
            if not shutil.which(command[0]):
                raise EngineCommandError(f"{command[0]} not available to truncate {log_path}")
            try:
                subprocess.run(command, check=True, capture_output=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise EngineTimeoutError(f"Truncating {log_path} timed out", command) from e
            except OSError as e:
                raise EngineCommandError(f"Cannot run {command[0]}: {e}", command) from e
            except subprocess.CalledProcessError as e:
                raise EngineCommandError(
                    f"Cannot truncate {log_path}: {(e.stderr or b'').decode(errors='replace').strip()}",
                    command,
                    e.returncode,
                ) from e
        logger.info(f"Truncated log for container {container_id[:12]}")

    def run_helper(self, args: list[str], timeout: float | None = None) -> str:
        """Run an arbitrary engine subcommand (used by the backup archiver)."""
        return self._run(args, timeout=timeout)
