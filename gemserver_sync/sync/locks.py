"""Advisory file locks for the sync engine.

Two kinds of lock are used:
- a path-keyed lock around every read-modify-write of a single synced file,
  shared by uploads, downloads and overwrites of that path;
- a fixed directory lock that makes creation of the sync root idempotent
  when several processes start at once.

Lock files never live next to the data they guard: the path lock for
``/root/.gemstash/gems/rack.gem`` is ``<lock_dir>/path.<digest>.lock``. That
keeps lock files out of the upload enumeration and means the data file is
never opened (or truncated) by the locking primitive.
"""

import contextlib
import hashlib
import logging
import time
from pathlib import Path
from typing import Iterator, Union

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)
logging.getLogger("filelock").setLevel(logging.INFO)

__all__ = ["PathLocker", "directory_lock", "Timeout"]

_POLL_INTERVAL = 0.05  # seconds


def _digest(target: Path) -> str:
    return hashlib.sha256(str(target).encode("utf-8")).hexdigest()[:32]


class PathLocker:
    """Hands out cross-process locks keyed by filesystem path.

    Attributes:
        lock_dir: Directory holding the lock files
        timeout: Seconds to wait for a lock; negative waits forever
    """

    def __init__(self, lock_dir: Path, timeout: float = -1):
        self.lock_dir = Path(lock_dir).expanduser()
        self.timeout = timeout
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_file_for(self, path: Union[str, Path]) -> Path:
        """Return the lock file guarding ``path``."""
        resolved = Path(path).expanduser().resolve(strict=False)
        return self.lock_dir / f"path.{_digest(resolved)}.lock"

    @contextlib.contextmanager
    def hold(self, path: Union[str, Path]) -> Iterator[None]:
        """Hold the lock for ``path`` for the duration of the block.

        The lock is released on normal exit and when the block raises.

        Raises:
            filelock.Timeout: If the lock is not acquired within ``timeout``
        """
        lock_file = self.lock_file_for(path)
        lock = FileLock(str(lock_file), timeout=self.timeout, thread_local=False)
        start = time.monotonic()
        lock.acquire(poll_interval=_POLL_INTERVAL)
        wait_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Locked {path} after {wait_ms:.1f}ms ({lock_file.name})")
        try:
            yield
        finally:
            lock.release()


@contextlib.contextmanager
def directory_lock(lock_path: Union[str, Path], timeout: float = -1) -> Iterator[None]:
    """Hold the well-known lock guarding sync root creation.

    Args:
        lock_path: Lock file path, shared by every process on the host
        timeout: Seconds to wait; negative waits forever
    """
    lock_path = Path(lock_path).expanduser()
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(lock_path), timeout=timeout, thread_local=False)
    lock.acquire(poll_interval=_POLL_INTERVAL)
    try:
        yield
    finally:
        lock.release()
