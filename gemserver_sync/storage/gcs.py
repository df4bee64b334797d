"""Google Cloud Storage object store."""

import logging
from pathlib import Path
from typing import List, Optional

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage as gcs_storage

from .base import ObjectStore, RemoteObject

log = logging.getLogger(__name__)


class GcsObjectStore(ObjectStore):
    """Object store backed by a single Cloud Storage bucket.

    The bucket is looked up on first use and created when it does not exist
    yet, so a freshly provisioned project needs no manual setup. Every request
    carries ``timeout`` so a stuck call cannot block a sync pass forever.
    """

    def __init__(
        self,
        bucket_name: str,
        project: Optional[str] = None,
        credentials_path: Optional[str] = None,
        timeout: float = 60.0,
        client=None,
    ):
        super().__init__()
        if not bucket_name:
            raise ValueError("Bucket name required: set GEMSERVER_BUCKET or GOOGLE_CLOUD_PROJECT")

        self.bucket_name = bucket_name
        self.timeout = timeout

        if client is None:
            kwargs: dict = {}
            if project:
                kwargs["project"] = project
            if credentials_path:
                from google.oauth2 import service_account

                kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                    str(credentials_path)
                )
            client = gcs_storage.Client(**kwargs)

        self._client = client
        self._bucket = None

    @property
    def bucket(self):
        """The bucket, created on first access if missing."""
        if self._bucket is None:
            bucket = self._client.lookup_bucket(self.bucket_name, timeout=self.timeout)
            if bucket is None:
                log.info(f"Bucket {self.bucket_name} not found, creating it")
                bucket = self._client.create_bucket(self.bucket_name, timeout=self.timeout)
            self._bucket = bucket
        return self._bucket

    def _to_remote(self, blob) -> RemoteObject:
        return RemoteObject(
            name=blob.name,
            md5_hash=blob.md5_hash,
            size=blob.size or 0,
            crc32c=blob.crc32c,
            store=self,
        )

    def get(self, name: str) -> Optional[RemoteObject]:
        blob = self.bucket.get_blob(name, timeout=self.timeout)
        if blob is None:
            return None
        return self._to_remote(blob)

    def put(self, local_path: Path, name: str) -> RemoteObject:
        blob = self.bucket.blob(name)
        blob.upload_from_filename(str(local_path), timeout=self.timeout)
        log.debug(f"Uploaded {local_path} to gs://{self.bucket_name}/{name}")
        return self._to_remote(blob)

    def list(self, prefix: Optional[str] = None) -> List[RemoteObject]:
        try:
            return [
                self._to_remote(blob)
                for blob in self.bucket.list_blobs(prefix=prefix or None, timeout=self.timeout)
                if not blob.name.endswith("/")
            ]
        except gcs_exceptions.GoogleAPIError as e:
            log.warning(f"Listing gs://{self.bucket_name} failed: {e}")
            return []

    def download(self, name: str, dest: Path) -> None:
        blob = self.bucket.blob(name)
        try:
            blob.download_to_filename(str(dest), timeout=self.timeout)
        except gcs_exceptions.NotFound:
            raise FileNotFoundError(f"Object not found: gs://{self.bucket_name}/{name}") from None
        log.debug(f"Downloaded gs://{self.bucket_name}/{name} to {dest}")

    def describe(self) -> str:
        return f"gs://{self.bucket_name}"
