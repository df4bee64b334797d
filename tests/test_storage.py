"""Tests for gemserver_sync.storage backends and factory.

Validates the directory-backed store, backend selection, and the Cloud
Storage backend against a mocked ``google.cloud.storage.Client``.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcs_exceptions

from gemserver_sync.config import SyncConfig
from gemserver_sync.storage import ObjectStore, RemoteObject, get_store, store_from_config
from gemserver_sync.storage.gcs import GcsObjectStore
from gemserver_sync.storage.local import LocalObjectStore
from gemserver_sync.utils.hashing import md5_base64_bytes


def make_blob(name, data=b"gem", md5_hash=None, crc32c=None):
    blob = MagicMock()
    blob.name = name
    blob.md5_hash = md5_hash or md5_base64_bytes(data)
    blob.crc32c = crc32c
    blob.size = len(data)
    return blob


@pytest.fixture
def gcs_client():
    """Mocked storage client whose bucket already exists."""
    client = MagicMock()
    client.lookup_bucket.return_value = MagicMock(name="bucket")
    return client


class TestRemoteObject:
    """Test RemoteObject handles."""

    def test_equality_ignores_store(self, store):
        a = RemoteObject("gems/rack.gem", "abc", 3, store=store)
        b = RemoteObject("gems/rack.gem", "abc", 3)
        assert a == b

    def test_unbound_download_raises(self, tmp_path):
        with pytest.raises(RuntimeError, match="not bound"):
            RemoteObject("gems/rack.gem", "abc").download(tmp_path / "rack.gem")

    def test_to_dict(self):
        d = RemoteObject("specs.4.8", "abc", 10).to_dict()
        assert d == {"name": "specs.4.8", "md5_hash": "abc", "crc32c": None, "size": 10}


class TestLocalObjectStore:
    """Test the directory-backed store."""

    def test_put_and_get(self, store, tmp_path):
        src = tmp_path / "rack.gem"
        src.write_bytes(b"rack gem")

        obj = store.put(src, "gems/rack.gem")

        assert obj.md5_hash == md5_base64_bytes(b"rack gem")
        assert obj.size == len(b"rack gem")
        assert store.get("gems/rack.gem") == obj
        assert store.exists("gems/rack.gem")

    def test_get_missing(self, store):
        assert store.get("gems/missing.gem") is None
        assert not store.exists("gems/missing.gem")

    def test_put_overwrites(self, store, tmp_path):
        src = tmp_path / "rack.gem"
        src.write_bytes(b"v1")
        store.put(src, "rack.gem")
        src.write_bytes(b"v2")
        store.put(src, "rack.gem")
        assert store.get("rack.gem").md5_hash == md5_base64_bytes(b"v2")

    def test_list_sorted_with_prefix(self, store, tmp_path):
        src = tmp_path / "f"
        src.write_bytes(b"x")
        for name in ("specs.4.8", "gems/b.gem", "gems/a.gem"):
            store.put(src, name)

        assert [o.name for o in store.list()] == ["gems/a.gem", "gems/b.gem", "specs.4.8"]
        assert [o.name for o in store.list("gems/")] == ["gems/a.gem", "gems/b.gem"]

    def test_download(self, store, tmp_path):
        src = tmp_path / "src.gem"
        src.write_bytes(b"payload")
        obj = store.put(src, "gems/x.gem")

        dest = tmp_path / "out.gem"
        obj.download(dest)

        assert dest.read_bytes() == b"payload"

    def test_download_missing_raises(self, store, tmp_path):
        with pytest.raises(FileNotFoundError):
            store.download("nope.gem", tmp_path / "nope.gem")

    def test_name_escaping_root_rejected(self, store):
        with pytest.raises(ValueError, match="escapes"):
            store.get("../outside.gem")

    def test_describe(self, store, tmp_dirs):
        assert store.describe() == f"file://{tmp_dirs['store']}"


class TestGetStore:
    """Test the backend factory."""

    def test_local(self, tmp_path):
        assert isinstance(get_store("local", root=tmp_path), LocalObjectStore)

    def test_gcs(self, gcs_client):
        store = get_store("GCS", bucket_name="gems", client=gcs_client)
        assert isinstance(store, GcsObjectStore)
        assert isinstance(store, ObjectStore)

    def test_unknown(self):
        with pytest.raises(NotImplementedError, match="s3"):
            get_store("s3")


class TestStoreFromConfig:
    """Test building a store from SyncConfig."""

    def test_local(self, sample_config):
        store = store_from_config(sample_config)
        assert isinstance(store, LocalObjectStore)
        assert store.root == Path(sample_config.local_store_dir)

    def test_local_requires_dir(self, tmp_path):
        config = SyncConfig(store_type="local", lock_dir=tmp_path / "locks")
        with pytest.raises(ValueError, match="local_store_dir"):
            store_from_config(config)

    def test_gcs_passes_settings(self, gcs_client, tmp_path):
        config = SyncConfig(project_id="my-gems", operation_timeout=12.5, lock_dir=tmp_path)
        store = store_from_config(config, client=gcs_client)
        assert store.bucket_name == "my-gems"
        assert store.timeout == 12.5

    def test_gcs_requires_bucket(self, gcs_client, tmp_path):
        config = SyncConfig(lock_dir=tmp_path)
        with pytest.raises(ValueError, match="Bucket name required"):
            store_from_config(config, client=gcs_client)


class TestGcsObjectStore:
    """Test the Cloud Storage backend with a mocked client."""

    def test_bucket_created_when_missing(self, gcs_client):
        gcs_client.lookup_bucket.return_value = None
        store = GcsObjectStore("gems", client=gcs_client)

        bucket = store.bucket

        gcs_client.create_bucket.assert_called_once_with("gems", timeout=60.0)
        assert bucket is gcs_client.create_bucket.return_value
        # Cached after first lookup
        assert store.bucket is bucket
        gcs_client.lookup_bucket.assert_called_once()

    def test_existing_bucket_not_created(self, gcs_client):
        store = GcsObjectStore("gems", client=gcs_client)
        assert store.bucket is gcs_client.lookup_bucket.return_value
        gcs_client.create_bucket.assert_not_called()

    def test_get(self, gcs_client):
        bucket = gcs_client.lookup_bucket.return_value
        bucket.get_blob.return_value = make_blob("gems/rack.gem", b"rack")
        store = GcsObjectStore("gems", client=gcs_client)

        obj = store.get("gems/rack.gem")

        assert obj.name == "gems/rack.gem"
        assert obj.md5_hash == md5_base64_bytes(b"rack")
        assert obj.size == 4
        assert obj.store is store

    def test_composite_object_has_only_crc32c(self, gcs_client):
        blob = make_blob("gems/big.gem", b"big", crc32c="yZRlqg==")
        blob.md5_hash = None
        gcs_client.lookup_bucket.return_value.get_blob.return_value = blob
        store = GcsObjectStore("gems", client=gcs_client)

        obj = store.get("gems/big.gem")

        assert obj.md5_hash is None
        assert obj.crc32c == "yZRlqg=="

    def test_get_missing(self, gcs_client):
        gcs_client.lookup_bucket.return_value.get_blob.return_value = None
        store = GcsObjectStore("gems", client=gcs_client)
        assert store.get("gems/none.gem") is None
        assert not store.exists("gems/none.gem")

    def test_put_uses_timeout(self, gcs_client, tmp_path):
        bucket = gcs_client.lookup_bucket.return_value
        blob = make_blob("gems/rack.gem", b"rack")
        bucket.blob.return_value = blob
        src = tmp_path / "rack.gem"
        src.write_bytes(b"rack")
        store = GcsObjectStore("gems", client=gcs_client, timeout=5)

        store.put(src, "gems/rack.gem")

        bucket.blob.assert_called_with("gems/rack.gem")
        blob.upload_from_filename.assert_called_once_with(str(src), timeout=5)

    def test_list_skips_directory_placeholders(self, gcs_client):
        bucket = gcs_client.lookup_bucket.return_value
        bucket.list_blobs.return_value = [make_blob("gems/"), make_blob("gems/rack.gem")]
        store = GcsObjectStore("gems", client=gcs_client)

        names = [o.name for o in store.list("gems/")]

        assert names == ["gems/rack.gem"]
        bucket.list_blobs.assert_called_once_with(prefix="gems/", timeout=60.0)

    def test_list_failure_returns_empty(self, gcs_client, caplog):
        bucket = gcs_client.lookup_bucket.return_value
        bucket.list_blobs.side_effect = gcs_exceptions.ServiceUnavailable("backend down")
        store = GcsObjectStore("gems", client=gcs_client)

        assert store.list() == []
        assert "Listing gs://gems failed" in caplog.text

    def test_download_missing_maps_to_file_not_found(self, gcs_client, tmp_path):
        blob = gcs_client.lookup_bucket.return_value.blob.return_value
        blob.download_to_filename.side_effect = gcs_exceptions.NotFound("gone")
        store = GcsObjectStore("gems", client=gcs_client)

        with pytest.raises(FileNotFoundError, match="gs://gems/gems/gone.gem"):
            store.download("gems/gone.gem", tmp_path / "gone.gem")

    def test_download(self, gcs_client, tmp_path):
        blob = gcs_client.lookup_bucket.return_value.blob.return_value
        store = GcsObjectStore("gems", client=gcs_client, timeout=7)
        dest = tmp_path / "rack.gem"

        store.download("gems/rack.gem", dest)

        blob.download_to_filename.assert_called_once_with(str(dest), timeout=7)

    def test_describe(self, gcs_client):
        assert GcsObjectStore("gems", client=gcs_client).describe() == "gs://gems"
