"""Synchronization module for gemserver-sync.

This module provides:
- StorageSync: Bidirectional reconciliation between the package server's
  data directory and an object store
- PathLocker: Cross-process advisory locks keyed by file path

Pass order: upload local changes first, then download remote ones.
"""

from gemserver_sync.sync.engine import (
    DiskSpaceError,
    StorageSync,
    SyncPhase,
    SyncState,
    SyncStats,
)
from gemserver_sync.sync.locks import PathLocker, directory_lock

__all__ = [
    "StorageSync",
    "SyncStats",
    "SyncPhase",
    "SyncState",
    "DiskSpaceError",
    "PathLocker",
    "directory_lock",
]
