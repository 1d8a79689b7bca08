"""Per-environment rotation lease backed by a lock file."""
import json
import logging
import os
import time
from pathlib import Path

from .errors import RotationLockedError

logger = logging.getLogger(__name__)

# Locks older than this are considered abandoned by a crashed process.
STALE_LOCK_SECONDS = 3600


class RotationLock:
    """
    At-most-one rotation per environment across processes.

    The lock file is created with O_CREAT | O_EXCL, so only one process can
    hold it. Use as a context manager.
    """

    def __init__(self, lock_dir, environment: str, stale_after: float = STALE_LOCK_SECONDS):
        self.path = Path(lock_dir) / f"rotate-{environment}.lock"
        self.environment = environment
        self.stale_after = stale_after
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(2):
            try:
                fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
            except FileExistsError:
                if attempt == 0 and self._reclaim_stale():
                    continue
                raise RotationLockedError(
                    f"Rotation of {self.environment} is already in progress (lock: {self.path})"
                )
            with os.fdopen(fd, "w") as f:
                json.dump({"pid": os.getpid(), "acquired_at": time.time()}, f)
            self._held = True
            logger.debug(f"Acquired rotation lock {self.path}")
            return

    def _reclaim_stale(self) -> bool:
        try:
            age = time.time() - os.path.getmtime(self.path)
        except FileNotFoundError:
            return True
        if age <= self.stale_after:
            return False
        logger.warning(f"Removing stale rotation lock {self.path} ({int(age)}s old)")
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        return True

    def release(self) -> None:
        if not self._held:
            return
        try:
            os.remove(self.path)
        except FileNotFoundError:
            logger.warning(f"Rotation lock {self.path} disappeared before release")
        self._held = False

    def __enter__(self) -> "RotationLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
