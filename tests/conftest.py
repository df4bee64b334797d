"""Shared pytest fixtures for gemserver-sync tests.

Provides temp sync roots, a directory-backed object store and a fake disk
usage source so the sync engine can be exercised without cloud access.
"""

import logging

import pytest

from gemserver_sync.config import SyncConfig
from gemserver_sync.storage.local import LocalObjectStore
from gemserver_sync.sync.engine import StorageSync
from gemserver_sync.utils.disk import DiskUsage


def make_usage(used: int, total: int = 100000) -> DiskUsage:
    """Build a DiskUsage with the given used/total bytes."""
    return DiskUsage(
        total_bytes=total,
        used_bytes=used,
        free_bytes=total - used,
        percent_used=used / total * 100,
    )


@pytest.fixture
def tmp_dirs(tmp_path):
    """Create temporary sync root, store root and lock directories."""
    sync_dir = tmp_path / "gemstash"
    store_dir = tmp_path / "bucket"
    lock_dir = tmp_path / "locks"
    sync_dir.mkdir()
    store_dir.mkdir()
    return {
        "sync": sync_dir,
        "store": store_dir,
        "locks": lock_dir,
        "root": tmp_path,
    }


@pytest.fixture
def sample_config(tmp_dirs):
    """Create a SyncConfig pointing at the temp directories."""
    return SyncConfig(
        sync_dir=tmp_dirs["sync"],
        environment="test",
        store_type="local",
        local_store_dir=tmp_dirs["store"],
        lock_dir=tmp_dirs["locks"],
        dir_lock_path=tmp_dirs["root"] / "gemstash_dir.lock",
        lock_timeout=5,
    )


@pytest.fixture
def store(tmp_dirs):
    """Directory-backed object store."""
    return LocalObjectStore(tmp_dirs["store"])


@pytest.fixture
def engine(sample_config, store):
    """StorageSync with plenty of free disk space."""
    sync = StorageSync(sample_config, store, disk_usage=lambda _root: make_usage(50000))
    yield sync
    sync.shutdown(wait=True)


@pytest.fixture
def populated_root(tmp_dirs):
    """Sync root holding a few gems, the specs index and a cached gem."""
    root = tmp_dirs["sync"]

    (root / "gems").mkdir()
    (root / "gems" / "rack-2.2.8.gem").write_bytes(b"rack gem bytes" * 50)
    (root / "gems" / "sinatra-3.1.0.gem").write_bytes(b"sinatra gem bytes" * 40)
    (root / "specs.4.8").write_text("rack 2.2.8\nsinatra 3.1.0\n")
    (root / "gem_cache").mkdir()
    (root / "gem_cache" / "rails-7.1.0.gem").write_bytes(b"cached upstream gem")

    return tmp_dirs


@pytest.fixture
def restore_root_logger():
    """Put root logger handlers and level back after a test reconfigures them."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def usage():
    """Factory for DiskUsage values: ``usage(used, total=100000)``."""
    return make_usage
