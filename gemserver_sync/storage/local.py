"""Directory-backed object store.

Stores each object as a file under a root directory, using the object name
as the relative path. Used for local development of the package server and
as the store in tests; digests use the same encoding as Cloud Storage.
"""

import shutil
from pathlib import Path
from typing import List, Optional

from ..utils.hashing import md5_base64_file
from .base import ObjectStore, RemoteObject


class LocalObjectStore(ObjectStore):
    """Object store rooted at a local directory."""

    def __init__(self, root: Path):
        super().__init__()
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, name: str) -> Path:
        path = (self.root / name).resolve()
        root = self.root.resolve()
        if path != root and root not in path.parents:
            raise ValueError(f"Object name escapes store root: {name!r}")
        return path

    def _to_remote(self, name: str, path: Path) -> RemoteObject:
        return RemoteObject(
            name=name,
            md5_hash=md5_base64_file(path),
            size=path.stat().st_size,
            store=self,
        )

    def get(self, name: str) -> Optional[RemoteObject]:
        path = self._path_for(name)
        if not path.is_file():
            return None
        return self._to_remote(name, path)

    def put(self, local_path: Path, name: str) -> RemoteObject:
        path = self._path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, path)
        self.logger.debug(f"Stored {local_path} as {name}")
        return self._to_remote(name, path)

    def list(self, prefix: Optional[str] = None) -> List[RemoteObject]:
        result: List[RemoteObject] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            name = path.relative_to(self.root).as_posix()
            if prefix and not name.startswith(prefix):
                continue
            result.append(self._to_remote(name, path))
        return result

    def download(self, name: str, dest: Path) -> None:
        path = self._path_for(name)
        if not path.is_file():
            raise FileNotFoundError(f"Object not found: {name}")
        shutil.copyfile(path, dest)

    def describe(self) -> str:
        return f"file://{self.root}"
