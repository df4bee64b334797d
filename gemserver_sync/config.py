"""Configuration dataclasses for gemserver-sync."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional


class Environment(Enum):
    """Deployment environment, read from ``APP_ENV``."""
    PRODUCTION = "production"
    DEV = "dev"
    TEST = "test"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Environment":
        """Map an ``APP_ENV`` value to an Environment.

        Only "production" selects the production deployment. Unset, empty and
        unrecognised values (e.g. "staging") are treated as development.
        """
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.DEV


# Package-server data directory inside the deployed container
PRODUCTION_SYNC_DIR = Path("/root/.gemstash")

DEFAULT_CACHE_MARKER = "gem_cache"
DEFAULT_MAX_DISK_USAGE = 0.95
DEFAULT_STATE_DIR = Path("~/.gemserver_sync")


def resolve_sync_root(environment: Environment = Environment.DEV) -> Path:
    """Return the package server's data directory for an environment.

    Production uses the fixed container path; every other environment
    uses ``~/.gemstash`` of the current user.
    """
    if environment == Environment.PRODUCTION:
        return PRODUCTION_SYNC_DIR
    return Path("~/.gemstash").expanduser()


@dataclass
class SyncConfig:
    """Configuration for a StorageSync instance.

    Attributes:
        sync_dir: Local sync root (the package server's data directory)
        environment: Deployment environment
        store_type: Object store backend ("gcs" or "local")
        bucket_name: Bucket holding the synced objects
        project_id: Google Cloud project id
        credentials_path: Service account key file (None for ADC)
        local_store_dir: Root of the "local" object store backend
        key_prefix: Leading segment prepended to every object name
        cache_marker: Local paths containing this are never uploaded
        max_disk_usage: Downloads abort at or above this used/total ratio
        volume_root: Path on the volume whose usage gates downloads
        lock_dir: Directory holding per-path lock files
        dir_lock_path: Lock file guarding creation of the sync root
        lock_timeout: Seconds to wait for a lock (negative blocks forever)
        operation_timeout: Deadline in seconds for each store call
        max_workers: Background passes allowed to run at once
    """
    sync_dir: Optional[Path] = None
    environment: Environment = Environment.DEV
    store_type: str = "gcs"
    bucket_name: Optional[str] = None
    project_id: Optional[str] = None
    credentials_path: Optional[Path] = None
    local_store_dir: Optional[Path] = None
    key_prefix: str = ""
    cache_marker: str = DEFAULT_CACHE_MARKER
    max_disk_usage: float = DEFAULT_MAX_DISK_USAGE
    volume_root: Path = field(default_factory=lambda: Path("/"))
    lock_dir: Optional[Path] = None
    dir_lock_path: Optional[Path] = None
    lock_timeout: float = -1
    operation_timeout: float = 60.0
    max_workers: int = 1

    def __post_init__(self):
        """Coerce paths, fill derived defaults and validate ranges."""
        if isinstance(self.environment, str):
            self.environment = Environment.from_value(self.environment)

        for name in ("sync_dir", "credentials_path", "local_store_dir",
                     "volume_root", "lock_dir", "dir_lock_path"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value).expanduser())

        if self.sync_dir is None:
            self.sync_dir = resolve_sync_root(self.environment)
        if self.lock_dir is None:
            self.lock_dir = DEFAULT_STATE_DIR.expanduser() / "locks"
        if self.dir_lock_path is None:
            self.dir_lock_path = DEFAULT_STATE_DIR.expanduser() / "gemstash_dir.lock"
        if self.bucket_name is None:
            self.bucket_name = self.project_id

        self.key_prefix = self.key_prefix.strip("/")
        self.store_type = self.store_type.lower()

        if not 0 < self.max_disk_usage <= 1:
            raise ValueError(
                f"max_disk_usage must be in (0, 1], got {self.max_disk_usage}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "SyncConfig":
        """Build a config from environment variables.

        Explicit keyword overrides win over the environment; ``None``
        overrides are ignored so CLI flags that were not given fall through.

        Args:
            environ: Mapping to read instead of ``os.environ``
            **overrides: Field values taking precedence

        Returns:
            SyncConfig instance
        """
        env = os.environ if environ is None else environ

        values = {
            "environment": Environment.from_value(env.get("APP_ENV")),
            "sync_dir": env.get("GEMSERVER_SYNC_DIR"),
            "store_type": env.get("GEMSERVER_STORE", "gcs"),
            "bucket_name": env.get("GEMSERVER_BUCKET"),
            "project_id": env.get("GOOGLE_CLOUD_PROJECT"),
            "credentials_path": env.get("GOOGLE_APPLICATION_CREDENTIALS"),
            "local_store_dir": env.get("GEMSERVER_LOCAL_STORE_DIR"),
            "key_prefix": env.get("GEMSERVER_KEY_PREFIX", ""),
            "cache_marker": env.get("GEMSERVER_CACHE_MARKER", DEFAULT_CACHE_MARKER),
            "lock_dir": env.get("GEMSERVER_LOCK_DIR"),
        }
        raw_usage = env.get("GEMSERVER_MAX_DISK_USAGE")
        if raw_usage:
            try:
                values["max_disk_usage"] = float(raw_usage)
            except ValueError:
                raise ValueError(
                    f"GEMSERVER_MAX_DISK_USAGE must be a number, got {raw_usage!r}"
                ) from None

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "sync_dir": str(self.sync_dir),
            "environment": self.environment.value,
            "store_type": self.store_type,
            "bucket_name": self.bucket_name,
            "project_id": self.project_id,
            "key_prefix": self.key_prefix,
            "cache_marker": self.cache_marker,
            "max_disk_usage": self.max_disk_usage,
            "lock_dir": str(self.lock_dir),
        }
