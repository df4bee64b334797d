"""Abstract base class for object store backends.

The sync engine talks to remote storage only through this interface, so the
production Cloud Storage backend and the directory-backed development backend
are interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging


@dataclass(frozen=True)
class RemoteObject:
    """Handle to a named blob in an object store.

    Attributes:
        name: Object name (slash-separated key)
        md5_hash: Base64 MD5 of the content, as computed by the store. None
                  when the store has none (GCS composite objects)
        size: Content length in bytes
        crc32c: Base64 big-endian CRC32C, when the store reports one
    """
    name: str
    md5_hash: Optional[str]
    size: int = 0
    crc32c: Optional[str] = None
    store: Optional["ObjectStore"] = field(default=None, compare=False, repr=False)

    def download(self, dest: Path) -> None:
        """Download this object's content to ``dest``."""
        if self.store is None:
            raise RuntimeError(f"RemoteObject {self.name!r} is not bound to a store")
        self.store.download(self.name, dest)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "md5_hash": self.md5_hash,
            "crc32c": self.crc32c,
            "size": self.size,
        }


class ObjectStore(ABC):
    """Abstract base class for object stores.

    Example:
        class MemoryStore(ObjectStore):
            def get(self, name):
                blob = self._blobs.get(name)
                return RemoteObject(name, md5_base64_bytes(blob), len(blob), store=self) if blob else None
            # ... implement other methods
    """

    def __init__(self):
        """Initialize the store with a logger."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def get(self, name: str) -> Optional[RemoteObject]:
        """Fetch metadata for one object.

        Args:
            name: Object name

        Returns:
            RemoteObject, or None if no object has that name
        """

    @abstractmethod
    def put(self, local_path: Path, name: str) -> RemoteObject:
        """Upload a local file, creating or overwriting ``name``.

        Args:
            local_path: File to upload
            name: Destination object name

        Returns:
            RemoteObject for the stored content
        """

    @abstractmethod
    def list(self, prefix: Optional[str] = None) -> List[RemoteObject]:
        """List objects, optionally only those whose name starts with prefix.

        Implementations return an empty list when the listing fails; callers
        treat that as "nothing to do".
        """

    @abstractmethod
    def download(self, name: str, dest: Path) -> None:
        """Write the content of object ``name`` to ``dest``.

        Raises:
            FileNotFoundError: If the object does not exist
        """

    def exists(self, name: str) -> bool:
        """Check whether an object exists."""
        return self.get(name) is not None

    def describe(self) -> str:
        """Human-readable location of the store, for logs and status."""
        return self.__class__.__name__
