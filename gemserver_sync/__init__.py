"""gemserver-sync - Persist a private gem server's data in cloud storage.

The gem server runs on ephemeral compute, so every gem pushed to it lives on
a disk that is wiped when the container restarts. gemserver-sync reconciles
the server's data directory with an object store bucket on a schedule so that
a restarted server comes back with everything it had.

Key Features:
    - Bidirectional sync with base64 MD5 change detection
    - Cross-process advisory locks per synced path
    - Cache subtree excluded from uploads
    - Download guard when the local volume is nearly full
    - Google Cloud Storage and local-directory object stores

Quick Start:
    from gemserver_sync import SyncConfig, create_storage_sync

    sync = create_storage_sync(SyncConfig.from_env())
    sync.restore()          # before starting the gem server
    future = sync.run()     # then on every tick of the host's scheduler

Classes:
    StorageSync: Reconciliation engine
    SyncConfig: Configuration for a StorageSync instance
    SyncStats: Result of one pass
    ObjectStore: Interface for remote storage backends
"""

__version__ = "0.3.0"
__license__ = "Apache-2.0"

from .config import (
    SyncConfig,
    Environment,
    resolve_sync_root,
)

from .storage import ObjectStore, RemoteObject, get_store, store_from_config

from .sync.engine import (
    StorageSync,
    SyncStats,
    SyncPhase,
    SyncState,
    DiskSpaceError,
)
from .sync.locks import PathLocker

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "SyncConfig",
    "Environment",
    "resolve_sync_root",
    # Storage
    "ObjectStore",
    "RemoteObject",
    "get_store",
    "store_from_config",
    # Sync
    "StorageSync",
    "SyncStats",
    "SyncPhase",
    "SyncState",
    "DiskSpaceError",
    "PathLocker",
    "create_storage_sync",
]


def create_storage_sync(config: SyncConfig = None, client=None) -> StorageSync:
    """Convenience function to build a StorageSync and its object store.

    Args:
        config: Sync configuration. Defaults to SyncConfig.from_env()
        client: Optional ``google.cloud.storage.Client`` for the gcs store

    Returns:
        Configured StorageSync instance

    Example:
        sync = create_storage_sync(SyncConfig(store_type="local",
                                              local_store_dir="/tmp/bucket"))
    """
    config = config or SyncConfig.from_env()
    store = store_from_config(config, client=client)
    return StorageSync(config, store)
