"""Single-instance process lock.

Two tracker processes must never share a snapshot. The lock is an advisory
``flock`` on a file in the state directory, held for the life of the process
and released by the kernel if the process dies.
"""

import fcntl
from pathlib import Path
from typing import IO, Any

import structlog

log = structlog.get_logger(__name__)


class ProcessLock:
    """Exclusive, non-blocking lock on a file.

    Example:
        >>> lock = ProcessLock(Path(".wg-tracker/lock"))
        >>> if lock.acquire():
        ...     try:
        ...         run()
        ...     finally:
        ...         lock.release()
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True if this process now holds the lock, False if another
            process already does.

        Raises:
            OSError: If the lock file cannot be created.
        """
        if self._handle is not None:
            return True

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "w")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            log.info("lock_held_elsewhere", path=str(self.path))
            return False

        self._handle = handle
        log.debug("lock_acquired", path=str(self.path))
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        self._handle.close()
        self._handle = None
        log.debug("lock_released", path=str(self.path))

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, *args: Any) -> None:
        self.release()
