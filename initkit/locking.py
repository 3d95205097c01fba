import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from initkit.errors import InitializationLockedError
from initkit.logging import get_logger

logger = get_logger(__name__)


class ProjectLock:
    """Exclusive file lock preventing concurrent runs against one project"""

    def __init__(self, lock_path: Path):
        self.lock_path = Path(lock_path)
        self._handle: Optional[object] = None

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Acquire the lock without blocking"""
        if self._handle is not None:
            return

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            logger.warning("project_lock_contended", lock_path=str(self.lock_path))
            raise InitializationLockedError(self.lock_path)

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()} {time.time():.0f}\n")
        handle.flush()

        self._handle = handle
        logger.debug("project_lock_acquired", lock_path=str(self.lock_path))

    def release(self) -> None:
        if self._handle is None:
            return

        handle = self._handle
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

        # Lock file stays on disk; only the flock is released
        logger.debug("project_lock_released", lock_path=str(self.lock_path))

    @contextmanager
    def hold(self) -> Iterator["ProjectLock"]:
        self.acquire()
        try:
            yield self
        finally:
            self.release()
