"""Storage sync engine for gemserver-sync.

The package server runs in a container whose disk does not survive restarts.
StorageSync keeps the server's data directory and an object store bucket
eventually consistent:

- upload_service: push local files that are new or differ from the bucket
- download_service: pull bucket objects that are missing or differ locally

Change detection compares base64 MD5 digests, or size and CRC32C for objects
the store reports no MD5 for. Every read-modify-write of a single path happens
under an advisory lock keyed by that path.
"""

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import logging

from gemserver_sync.config import SyncConfig
from gemserver_sync.storage.base import ObjectStore, RemoteObject
from gemserver_sync.sync.locks import PathLocker, directory_lock
from gemserver_sync.utils.disk import DiskUsage, get_disk_usage
from gemserver_sync.utils.hashing import (
    compare_hashes,
    crc32c_base64_file,
    hash_directory,
    md5_base64_file,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Downloads land in ".<name>.part" next to the destination until complete
PARTIAL_SUFFIX = ".part"


class DiskSpaceError(RuntimeError):
    """Local volume is too full to download; the pass is aborted."""

    def __init__(self, ratio: float, limit: float):
        self.ratio = ratio
        self.limit = limit
        super().__init__(
            f"Error downloading: disk usage at {ratio:.4f} "
            f"(limit {limit}). Increase disk space!"
        )


class SyncPhase(Enum):
    """Where a reconciliation pass currently is."""
    IDLE = "idle"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"


class SyncState(Enum):
    """Relationship between the local and remote copy of one path."""
    LOCAL_ONLY = "local_only"
    REMOTE_ONLY = "remote_only"
    MATCHING = "matching"
    DIFFERING = "differing"


@dataclass
class SyncStats:
    """Statistics from a reconciliation pass."""

    success: bool = True
    phase: SyncPhase = SyncPhase.IDLE

    # File counts
    files_uploaded: int = 0
    files_downloaded: int = 0
    files_unchanged: int = 0
    files_failed: int = 0

    # Size stats
    bytes_uploaded: int = 0
    bytes_downloaded: int = 0

    # Timing
    started_at: float = 0.0
    completed_at: float = 0.0
    duration_ms: float = 0.0

    errors: List[str] = field(default_factory=list)

    @property
    def files_transferred(self) -> int:
        """Uploads plus downloads."""
        return self.files_uploaded + self.files_downloaded

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "success": self.success,
            "phase": self.phase.value,
            "files_uploaded": self.files_uploaded,
            "files_downloaded": self.files_downloaded,
            "files_unchanged": self.files_unchanged,
            "files_failed": self.files_failed,
            "bytes_uploaded": self.bytes_uploaded,
            "bytes_downloaded": self.bytes_downloaded,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
        }


class StorageSync:
    """Reconciles a local sync root with an object store.

    Attributes:
        config: SyncConfig with paths and limits
        store: Remote object store
        locker: Path-keyed advisory locks
    """

    def __init__(
        self,
        config: SyncConfig,
        store: ObjectStore,
        locker: Optional[PathLocker] = None,
        disk_usage: Optional[Callable[[Path], DiskUsage]] = None,
    ):
        """Initialize the sync engine.

        Args:
            config: Sync configuration
            store: Object store holding the remote copies
            locker: Lock provider. Defaults to one rooted at config.lock_dir
            disk_usage: Returns usage of the volume at a path. Defaults to
                        get_disk_usage
        """
        self.config = config
        self.store = store
        self.locker = locker or PathLocker(config.lock_dir, timeout=config.lock_timeout)
        self._disk_usage = disk_usage or get_disk_usage

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        # Stats of the pass running on this thread, if any
        self._local = threading.local()

    @property
    def sync_dir(self) -> Path:
        """Root of the local tree being synchronized."""
        return Path(self.config.sync_dir)

    # ------------------------------------------------------------------
    # Path <-> object name mapping
    # ------------------------------------------------------------------

    def key_for(self, path: PathLike) -> str:
        """Object name for a local path under the sync root."""
        rel = Path(path).relative_to(self.sync_dir).as_posix()
        if self.config.key_prefix:
            return f"{self.config.key_prefix}/{rel}"
        return rel

    def path_for(self, name: str) -> Path:
        """Local path for an object name.

        Raises:
            ValueError: If the name does not map to a file inside the sync root
        """
        rel = name
        if self.config.key_prefix:
            prefix = self.config.key_prefix + "/"
            if not name.startswith(prefix):
                raise ValueError(f"Object {name!r} is outside prefix {prefix!r}")
            rel = name[len(prefix):]

        parts = PurePosixPath(rel).parts
        if not parts or rel.startswith("/") or ".." in parts:
            raise ValueError(f"Object name does not map into the sync root: {name!r}")
        return self.sync_dir.joinpath(*parts)

    def is_excluded(self, path: PathLike) -> bool:
        """True if the path falls in the cache subtree and is never uploaded."""
        marker = self.config.cache_marker
        if not marker:
            return False
        return marker in Path(path).relative_to(self.sync_dir).as_posix()

    @staticmethod
    def partial_path_for(path: PathLike) -> Path:
        """Temp file a download of ``path`` is written to before replacing it."""
        path = Path(path)
        return path.with_name(f".{path.name}{PARTIAL_SUFFIX}")

    @staticmethod
    def is_partial(path: PathLike) -> bool:
        """True for an in-flight (or abandoned) download temp file."""
        name = Path(path).name
        return name.startswith(".") and name.endswith(PARTIAL_SUFFIX)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def run(self) -> "Future[SyncStats]":
        """Schedule one reconciliation pass in the background.

        Returns immediately. Each call schedules a new pass; passes are not
        coalesced. Failures are logged and reported through the returned
        future's SyncStats rather than raised.

        Returns:
            Future resolving to the pass's SyncStats
        """
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix="storage-sync",
                )
            return self._executor.submit(self._run_pass)

    def _run_pass(self) -> SyncStats:
        try:
            return self.sync()
        except Exception as e:
            logger.exception("Storage sync pass failed")
            stats = getattr(self._local, "failed", None)
            self._local.failed = None
            if stats is None:
                stats = SyncStats(started_at=time.time(), success=False)
                stats.errors.append(f"{type(e).__name__}: {e}")
            return self._finalize_stats(stats)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background executor.

        Args:
            wait: Block until scheduled passes have finished
        """
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "StorageSync":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def sync(self) -> SyncStats:
        """Run one pass: upload local changes, then download remote ones.

        Returns:
            SyncStats for the pass

        Raises:
            DiskSpaceError: If the local volume is too full to download
        """
        return self._tracked_pass(
            (SyncPhase.UPLOADING, self.upload_service),
            (SyncPhase.DOWNLOADING, self.download_service),
        )

    def restore(self) -> SyncStats:
        """Populate the sync root from the store before the server starts.

        Returns:
            SyncStats for the download-only pass

        Raises:
            DiskSpaceError: If the local volume is too full to download
        """
        return self._tracked_pass((SyncPhase.DOWNLOADING, self.download_service))

    def _tracked_pass(self, *steps: Tuple[SyncPhase, Callable[[], None]]) -> SyncStats:
        stats = SyncStats(started_at=time.time())
        self._local.stats = stats
        try:
            for phase, service in steps:
                stats.phase = phase
                service()
        except Exception as e:
            # phase is left at the step that failed
            stats.success = False
            stats.errors.append(f"{type(e).__name__}: {e}")
            self._local.failed = stats
            raise
        finally:
            self._local.stats = None

        stats.phase = SyncPhase.IDLE
        stats.success = stats.files_failed == 0
        return self._finalize_stats(stats)

    def prepare_dir(self) -> None:
        """Create the sync root, serialized across processes."""
        with directory_lock(self.config.dir_lock_path, timeout=self.config.lock_timeout):
            self.sync_dir.mkdir(parents=True, exist_ok=True)

    def upload_service(self) -> None:
        """Upload every non-cache file under the sync root that needs it."""
        logger.info("Running uploading service...")
        self.prepare_dir()

        lock_dir = self.locker.lock_dir.resolve()
        for path in sorted(self.sync_dir.rglob("*")):
            if self.is_excluded(path) or self.is_partial(path) or not path.is_file():
                continue
            if lock_dir in path.resolve().parents:
                continue
            self.try_upload(path)

    def try_upload(self, path: PathLike) -> bool:
        """Upload a file if the store lacks it or holds different content.

        Args:
            path: Local file under the sync root

        Returns:
            True if content was sent to the store
        """
        path = Path(path)
        name = self.key_for(path)
        uploaded = False

        with self.locker.hold(path):
            if not self.store.exists(name):
                self._upload(path, name)
                uploaded = True
            if self.file_changed(path):
                self._upload(path, name)
                uploaded = True

        if not uploaded:
            self._record(files_unchanged=1)
        return uploaded

    def _upload(self, path: Path, name: str) -> None:
        size = path.stat().st_size
        self.store.put(path, name)
        logger.debug(f"Uploaded {name} ({size} bytes)")
        self._record(files_uploaded=1, bytes_uploaded=size)

    def download_service(self) -> None:
        """Download every stored object that is missing or differs locally.

        Raises:
            DiskSpaceError: If the local volume is too full
        """
        logger.info("Running downloading service...")
        self.prepare_dir()

        objects = self.store.list(self.config.key_prefix or None)
        if not objects:
            return

        for obj in objects:
            try:
                path = self.path_for(obj.name)
            except ValueError as e:
                logger.warning(f"Skipping object: {e}")
                continue
            self.try_download(path)

    def try_download(self, path: PathLike) -> bool:
        """Download one object if the local copy is missing or differs.

        Content is written to a sibling temp file and moved over ``path`` only
        once complete, so a failed transfer never leaves a truncated copy that
        the next upload would push back to the store. A failed transfer is
        logged and counted; it does not raise.

        Args:
            path: Local destination under the sync root

        Returns:
            True if content was written locally

        Raises:
            DiskSpaceError: If disk usage is at or above the configured limit
        """
        path = Path(path)
        usage = self._disk_usage(self.config.volume_root)
        if usage.ratio >= self.config.max_disk_usage:
            raise DiskSpaceError(usage.ratio, self.config.max_disk_usage)

        name = self.key_for(path)
        partial = self.partial_path_for(path)
        with self.locker.hold(path):
            try:
                if path.exists():
                    if not path.is_file():
                        raise IsADirectoryError(f"{path} exists and is not a regular file")
                    if not self.file_changed(path):
                        self._record(files_unchanged=1)
                        return False
                path.parent.mkdir(parents=True, exist_ok=True)
                self.store.download(name, partial)
                os.replace(partial, path)
            except Exception as e:
                logger.warning(f"Could not download {name}: {e}")
                if partial.is_file():
                    partial.unlink()
                self._record(files_failed=1, error=f"Failed to download {name}: {e}")
                return False

        size = path.stat().st_size
        logger.debug(f"Downloaded {name} ({size} bytes)")
        self._record(files_downloaded=1, bytes_downloaded=size)
        return True

    def file_changed(self, path: PathLike) -> bool:
        """Check whether a local file differs from its stored copy.

        Args:
            path: Local file under the sync root

        Returns:
            True if the file is missing locally, missing remotely, or the
            digests differ
        """
        path = Path(path)
        if not path.exists():
            return True
        remote = self.store.get(self.key_for(path))
        if remote is None:
            return True
        return self._differs(path, remote)

    def _differs(self, path: Path, remote: RemoteObject) -> bool:
        if remote.md5_hash is not None:
            return remote.md5_hash != md5_base64_file(path)

        # Composite objects carry no MD5
        if remote.size != path.stat().st_size:
            return True
        if remote.crc32c is not None:
            return remote.crc32c != crc32c_base64_file(path)
        logger.warning(f"{remote.name} has no checksum in the store, comparing sizes only")
        return False

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _record(self, error: Optional[str] = None, **counts: int) -> None:
        stats = getattr(self._local, "stats", None)
        if stats is None:
            return
        for key, value in counts.items():
            setattr(stats, key, getattr(stats, key) + value)
        if error:
            stats.errors.append(error)

    def _finalize_stats(self, stats: SyncStats) -> SyncStats:
        """Finalize stats with timing info and log the summary."""
        self._local.stats = None
        stats.completed_at = time.time()
        stats.duration_ms = (stats.completed_at - stats.started_at) * 1000

        logger.info(
            f"Sync pass: "
            f"{stats.files_uploaded} uploaded, "
            f"{stats.files_downloaded} downloaded, "
            f"{stats.files_unchanged} unchanged, "
            f"{stats.files_failed} failed "
            f"in {stats.duration_ms:.1f}ms"
        )

        return stats

    def get_sync_status(self) -> Dict[str, Any]:
        """Classify every known path by its local/remote relationship.

        Returns:
            Dict with per-state path lists and an in_sync flag
        """
        local_hashes: Dict[str, str] = {}
        if self.sync_dir.exists():
            for rel, digest in hash_directory(self.sync_dir, self.config.cache_marker).items():
                if not self.is_partial(rel):
                    local_hashes[self.key_for(self.sync_dir / rel)] = digest

        objects = self.store.list(self.config.key_prefix or None)
        remote_hashes = {obj.name: obj.md5_hash or "" for obj in objects}
        without_md5 = {obj.name: obj for obj in objects if obj.md5_hash is None}

        diff = compare_hashes(local_hashes, remote_hashes)
        # "modified" names exist locally, so they map into the sync root
        for name in [n for n in diff["modified"] if n in without_md5]:
            if not self._differs(self.path_for(name), without_md5[name]):
                diff["modified"].remove(name)
                diff["unchanged"].append(name)
        diff["unchanged"].sort()
        states = {
            SyncState.LOCAL_ONLY: diff["added"],
            SyncState.REMOTE_ONLY: diff["removed"],
            SyncState.DIFFERING: diff["modified"],
            SyncState.MATCHING: diff["unchanged"],
        }

        return {
            "sync_dir": str(self.sync_dir),
            "store": self.store.describe(),
            "sync_dir_exists": self.sync_dir.exists(),
            "in_sync": not (diff["added"] or diff["removed"] or diff["modified"]),
            "counts": {state.value: len(paths) for state, paths in states.items()},
            "paths": {state.value: paths for state, paths in states.items()},
        }

    def state_of(self, path: PathLike) -> SyncState:
        """SyncState of a single path.

        Raises:
            FileNotFoundError: If the path exists in neither store
        """
        path = Path(path)
        local = path.is_file()
        remote = self.store.get(self.key_for(path))
        if local and remote is None:
            return SyncState.LOCAL_ONLY
        if remote is not None and not local:
            return SyncState.REMOTE_ONLY
        if remote is None:
            raise FileNotFoundError(f"{path} exists neither locally nor remotely")
        if self._differs(path, remote):
            return SyncState.DIFFERING
        return SyncState.MATCHING
