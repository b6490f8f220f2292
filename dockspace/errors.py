"""Exception types for dockspace.

Each family carries a ``kind`` so callers can branch on the failure mode
without string matching, and so every kind can be written to the run log.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dockspace.models import PlanStep


class ProbeErrorKind(Enum):
    UNREACHABLE = "unreachable"
    PERMISSION_DENIED = "permission_denied"


class GateErrorKind(Enum):
    CONFIRMATION_REQUIRED = "confirmation_required"
    BACKUP_REQUIRED = "backup_required"
    BACKUP_FAILED = "backup_failed"


class ExecutionErrorKind(Enum):
    OBJECT_FAILED = "object_failed"
    TIMEOUT = "timeout"
    ENGINE_UNREACHABLE = "engine_unreachable"


class DockspaceError(Exception):
    """Base class for all dockspace errors."""


class ProbeError(DockspaceError):
    def __init__(self, kind: ProbeErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class GateError(DockspaceError):
    """Raised when a plan step cannot be authorized."""

    def __init__(self, kind: GateErrorKind, step: "PlanStep", message: str = ""):
        super().__init__(message or f"{kind.value}: {step.category.value}")
        self.kind = kind
        self.step = step


class ExecutionError(DockspaceError):
    def __init__(self, kind: ExecutionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class EngineError(ExecutionError):
    """Base class for failures talking to the container engine."""

    kind_default = ExecutionErrorKind.OBJECT_FAILED

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(self.kind_default, message)
        self.command = command or []


class EngineUnreachableError(EngineError):
    """The engine binary is missing or the daemon did not answer."""

    kind_default = ExecutionErrorKind.ENGINE_UNREACHABLE


class EngineTimeoutError(EngineError):
    kind_default = ExecutionErrorKind.TIMEOUT


class EngineCommandError(EngineError):
    """The engine answered but refused the command."""

    def __init__(self, message: str, command: list[str] | None = None, returncode: int = 1):
        super().__init__(message, command)
        self.returncode = returncode


class BackupError(DockspaceError):
    def __init__(self, object_id: str, message: str):
        super().__init__(f"Backup of {object_id} failed: {message}")
        self.object_id = object_id


class RunLockedError(DockspaceError):
    """Another reclamation run holds the lock for the same root."""

    def __init__(self, root_path: str, holder: str | None = None):
        detail = f" (held by {holder})" if holder else ""
        super().__init__(f"Another run is already reclaiming {root_path}{detail}")
        self.root_path = root_path
        self.holder = holder
