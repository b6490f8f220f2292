"""
Per-root run lock.

Only one reclamation run may operate on an engine root at a time. The lock
is an exclusive, non-blocking ``flock`` on a file keyed by the root path,
so it is released by the kernel if the holding process dies.
"""

import fcntl
import hashlib
import logging
import os
from pathlib import Path

from dockspace.errors import RunLockedError

logger = logging.getLogger(__name__)


class RunLock:
    """
    Example:
        with RunLock("/var/lib/docker", "~/.dockspace/locks"):
            ...
    """

    def __init__(self, root_path: str, lock_dir: str | Path):
        self.root_path = root_path
        key = hashlib.sha256(os.path.abspath(root_path).encode()).hexdigest()[:16]
        self.lock_path = Path(lock_dir).expanduser() / f"run-{key}.lock"
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """
        Raises:
            RunLockedError: If another process holds the lock
        """
        if self._fd is not None:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            holder = self._read_holder(fd)
            os.close(fd)
            raise RunLockedError(self.root_path, holder) from None

        os.ftruncate(fd, 0)
        os.write(fd, f"pid={os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired run lock {self.lock_path}")

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released run lock {self.lock_path}")

    @staticmethod
    def _read_holder(fd: int) -> str | None:
        try:
            content = os.pread(fd, 64, 0).decode(errors="replace").strip()
        except OSError:
            return None
        return content or None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
