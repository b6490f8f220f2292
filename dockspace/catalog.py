"""
Reclaim catalog: turns engine listings into ReclaimableObjects.

Listings are cached for the lifetime of the catalog so one planning pass
sees a consistent view of the engine; call ``refresh()`` to drop the cache.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from dockspace.engine import BUILTIN_NETWORKS, DockerEngine
from dockspace.errors import EngineError, EngineUnreachableError, ProbeError, ProbeErrorKind
from dockspace.models import Category, ListFilter, ObjectState, ReclaimableObject
from dockspace.units import parse_size, parse_timestamp

logger = logging.getLogger(__name__)

_RUNNING_STATES = {"running", "paused", "restarting"}
_STOPPED_STATES = {"exited", "created", "dead"}
_NONE = "<none>"
_NEWEST = datetime.max.replace(tzinfo=timezone.utc)


def sort_key(obj: ReclaimableObject) -> tuple[int, datetime, str]:
    """Largest first, then oldest first; objects without a timestamp go last."""
    return (-obj.size_bytes, obj.created_at or _NEWEST, obj.id)


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _container_state(row: dict[str, Any]) -> ObjectState:
    state = str(row.get("State") or "").lower()
    if not state:
        status = str(row.get("Status") or "").lower()
        if status.startswith("up"):
            state = "running"
        elif status.startswith(("exited", "created", "dead")):
            state = "exited"
    if state in _RUNNING_STATES:
        return ObjectState.IN_USE
    if state in _STOPPED_STATES:
        return ObjectState.UNUSED
    return ObjectState.UNKNOWN


class ReclaimCatalog:
    """Enumerates reclaimable objects per category."""

    def __init__(self, engine: DockerEngine):
        self.engine = engine
        self._cache: dict[Category, list[ReclaimableObject]] = {}
        self._containers: list[dict[str, Any]] | None = None

    def refresh(self) -> None:
        self._cache.clear()
        self._containers = None

    def list(self, category: Category, list_filter: ListFilter = ListFilter.ALL) -> list[ReclaimableObject]:
        """
        List objects of a category matching the filter.

        Args:
            category: Category to enumerate
            list_filter: DANGLING, UNUSED (dangling or unused) or ALL

        Returns:
            Objects sorted by size descending, ties by creation time ascending

        Raises:
            ProbeError: If the engine cannot be queried for this category
        """
        objects = self._load(category)
        return [obj for obj in objects if list_filter.accepts(obj.state)]

    def get(self, category: Category, identifiers: list[str]) -> list[ReclaimableObject]:
        """Resolve human-entered ids or names, keeping the order they were given.

        Identifiers the engine does not list are returned as UNKNOWN objects
        so the engine can still be asked to act on them.
        """
        try:
            known = self._load(category)
        except ProbeError as e:
            logger.warning(f"Cannot list {category.value} to resolve ids: {e}")
            known = []

        resolved = []
        for ident in identifiers:
            match = next(
                (
                    obj
                    for obj in known
                    if obj.id == ident or obj.name == ident or obj.id.startswith(ident)
                    or obj.id.split(":", 1)[-1].startswith(ident)
                ),
                None,
            )
            resolved.append(
                match
                or ReclaimableObject(id=ident, category=category, size_bytes=0, state=ObjectState.UNKNOWN)
            )
        return resolved

    def _load(self, category: Category) -> list[ReclaimableObject]:
        if category in self._cache:
            return self._cache[category]

        loaders = {
            Category.CONTAINERS: self._load_containers,
            Category.IMAGES: self._load_images,
            Category.VOLUMES: self._load_volumes,
            Category.BUILD_CACHE: self._load_build_cache,
            Category.NETWORKS: self._load_networks,
            Category.LOGS: self._load_logs,
        }
        try:
            objects = loaders[category]()
        except EngineUnreachableError as e:
            raise ProbeError(ProbeErrorKind.UNREACHABLE, f"Engine unreachable: {e}") from e
        except EngineError as e:
            raise ProbeError(ProbeErrorKind.UNREACHABLE, f"Cannot list {category.value}: {e}") from e
        except PermissionError as e:
            raise ProbeError(ProbeErrorKind.PERMISSION_DENIED, f"Cannot read {category.value}: {e}") from e

        objects.sort(key=sort_key)
        self._cache[category] = objects
        logger.debug(f"Catalogued {len(objects)} {category.value}")
        return objects

    def _container_rows(self) -> list[dict[str, Any]]:
        if self._containers is None:
            self._containers = self.engine.list_containers()
        return self._containers

    def _load_containers(self) -> list[ReclaimableObject]:
        return [
            ReclaimableObject(
                id=row["ID"],
                category=Category.CONTAINERS,
                size_bytes=parse_size(row.get("Size")) or 0,
                state=_container_state(row),
                created_at=parse_timestamp(row.get("CreatedAt")),
                name=str(row.get("Names") or "") or None,
            )
            for row in self._container_rows()
            if row.get("ID")
        ]

    def _load_images(self) -> list[ReclaimableObject]:
        containers = self._container_rows()
        merged: dict[str, dict[str, Any]] = {}

        # `image ls` prints one row per tag; fold tags of the same image id.
        for row in self.engine.list_images():
            image_id = row.get("ID")
            if not image_id:
                continue
            entry = merged.setdefault(image_id, {"row": row, "refs": set()})
            repo, tag = row.get("Repository") or _NONE, row.get("Tag") or _NONE
            if repo != _NONE:
                entry["refs"].add(repo if tag == _NONE else f"{repo}:{tag}")
                if tag == "latest":
                    entry["refs"].add(repo)

        objects = []
        for image_id, entry in merged.items():
            short_id = image_id.split(":", 1)[-1][:12]
            names = entry["refs"]
            running: set[str] = set()
            stopped: set[str] = set()
            for container in containers:
                used = str(container.get("Image") or "")
                bare = used.split(":", 1)[-1] if used.startswith("sha256:") else used
                if used in names or used == image_id or (bare and short_id.startswith(bare[:12])):
                    target = running if _container_state(container) is ObjectState.IN_USE else stopped
                    target.add(container["ID"])

            if running:
                state = ObjectState.IN_USE
            elif not names:
                state = ObjectState.DANGLING
            else:
                state = ObjectState.UNUSED

            objects.append(
                ReclaimableObject(
                    id=image_id,
                    category=Category.IMAGES,
                    size_bytes=parse_size(entry["row"].get("Size")) or 0,
                    state=state,
                    referenced_by=frozenset(running | stopped),
                    created_at=parse_timestamp(entry["row"].get("CreatedAt")),
                    name=sorted(names)[0] if names else None,
                )
            )
        return objects

    def _load_volumes(self) -> list[ReclaimableObject]:
        objects = []
        for row in self.engine.list_volumes():
            name = row.get("Name")
            if not name:
                continue
            links = int(row.get("Links") or 0)
            size = parse_size(row.get("Size"))
            if links > 0:
                state = ObjectState.IN_USE
            elif size is None and row.get("Links") is None:
                state = ObjectState.UNKNOWN
            else:
                state = ObjectState.DANGLING
            objects.append(
                ReclaimableObject(
                    id=name,
                    category=Category.VOLUMES,
                    size_bytes=size or 0,
                    state=state,
                    created_at=parse_timestamp(row.get("CreatedAt")),
                    name=name,
                )
            )
        return objects

    def _load_build_cache(self) -> list[ReclaimableObject]:
        objects = []
        for row in self.engine.list_build_cache():
            cache_id = row.get("ID")
            if not cache_id:
                continue
            if _truthy(row.get("InUse")):
                state = ObjectState.IN_USE
            elif _truthy(row.get("Shared")):
                state = ObjectState.UNUSED
            else:
                state = ObjectState.DANGLING
            objects.append(
                ReclaimableObject(
                    id=cache_id,
                    category=Category.BUILD_CACHE,
                    size_bytes=parse_size(row.get("Size")) or 0,
                    state=state,
                    created_at=parse_timestamp(row.get("CreatedAt") or row.get("CreatedSince")),
                    name=row.get("Description") or None,
                )
            )
        return objects

    def _load_networks(self) -> list[ReclaimableObject]:
        objects = []
        for row in self.engine.list_networks():
            network_id = row.get("ID")
            if not network_id:
                continue
            attached = frozenset((row.get("Containers") or {}).keys())
            builtin = row.get("Name") in BUILTIN_NETWORKS
            objects.append(
                ReclaimableObject(
                    id=network_id,
                    category=Category.NETWORKS,
                    size_bytes=0,
                    state=ObjectState.IN_USE if builtin or attached else ObjectState.UNUSED,
                    referenced_by=attached,
                    created_at=parse_timestamp(row.get("CreatedAt")),
                    name=row.get("Name"),
                )
            )
        return objects

    def _load_logs(self) -> list[ReclaimableObject]:
        rows = self._container_rows()
        names = {row["ID"]: row.get("Names") for row in rows if row.get("ID")}
        paths = self.engine.container_log_paths(list(names))

        objects = []
        for container_id, log_path in paths.items():
            # Truncating a log never removes the container, so log content
            # is reclaimable whatever state the container is in.
            try:
                size = self.engine.log_size(log_path)
                state = ObjectState.UNUSED
            except PermissionError:
                size, state = 0, ObjectState.UNKNOWN
            except FileNotFoundError:
                continue
            if size is None:
                logger.debug(f"Log size unavailable for {container_id[:12]}; truncating anyway")
                size = 0
            objects.append(
                ReclaimableObject(
                    id=container_id,
                    category=Category.LOGS,
                    size_bytes=size,
                    state=state,
                    name=names.get(container_id) or None,
                )
            )
        return objects
