"""Object store backends.

Available backends:
    - GcsObjectStore: Google Cloud Storage bucket (production)
    - LocalObjectStore: Directory on the local filesystem (development, tests)

Usage:
    from gemserver_sync.storage import get_store

    store = get_store("gcs", bucket_name="my-project")
    for obj in store.list():
        print(obj.name, obj.md5_hash)
"""

from .base import ObjectStore, RemoteObject


def get_store(kind: str = "gcs", **kwargs) -> ObjectStore:
    """Create an object store backend.

    Args:
        kind: Backend name ("gcs" or "local")
        **kwargs: Passed to the backend constructor

    Returns:
        ObjectStore instance

    Raises:
        NotImplementedError: If the backend is not supported
    """
    target = kind.lower()

    if target == "gcs":
        from .gcs import GcsObjectStore
        return GcsObjectStore(**kwargs)
    elif target == "local":
        from .local import LocalObjectStore
        return LocalObjectStore(**kwargs)
    else:
        raise NotImplementedError(
            f"Object store '{kind}' is not supported. "
            f"Supported stores: gcs, local"
        )


def store_from_config(config, client=None) -> ObjectStore:
    """Create the object store described by a SyncConfig.

    Args:
        config: SyncConfig with store settings
        client: Optional pre-built ``google.cloud.storage.Client``

    Returns:
        ObjectStore instance
    """
    if config.store_type == "local":
        if config.local_store_dir is None:
            raise ValueError("local_store_dir is required for the local object store")
        return get_store("local", root=config.local_store_dir)

    kwargs: dict = {
        "bucket_name": config.bucket_name,
        "project": config.project_id,
        "credentials_path": config.credentials_path,
        "timeout": config.operation_timeout,
    }
    if client is not None:
        kwargs["client"] = client
    return get_store(config.store_type, **kwargs)


__all__ = [
    "ObjectStore",
    "RemoteObject",
    "get_store",
    "store_from_config",
]
