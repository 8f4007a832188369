"""Tests for the GCS adapter against a mocked storage client."""

from __future__ import annotations

import io
import json
from unittest.mock import MagicMock

import pytest
import requests
from google.api_core.exceptions import Forbidden, NotFound

from tfregistry.core.context import CancelScope, OperationCancelled
from tfregistry.storage import ObjectNotFound, ObjectStore, ObjectStoreFailed
from tfregistry.storage import gcs as gcs_module
from tfregistry.storage.gcs import GcsObjectStore, load_credentials

KEY = "registry/acme/vpc/aws/2.0.0/module.zip"


@pytest.fixture
def bucket() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gcs(bucket) -> GcsObjectStore:
    client = MagicMock()
    client.bucket.return_value = bucket
    store = GcsObjectStore("modules", client=client)
    client.bucket.assert_called_once_with("modules")
    return store


class TestGcsObjectStore:
    def test_satisfies_protocol(self, gcs):
        assert isinstance(gcs, ObjectStore)
        assert gcs.backend == "gcs"

    def test_exists(self, gcs, bucket):
        bucket.blob.return_value.exists.return_value = True
        assert gcs.exists(KEY, timeout=3.5) is True
        bucket.blob.assert_called_once_with(KEY)
        bucket.blob.return_value.exists.assert_called_once_with(timeout=3.5)

    def test_exists_forbidden(self, gcs, bucket):
        bucket.blob.return_value.exists.side_effect = Forbidden("nope")
        with pytest.raises(ObjectStoreFailed):
            gcs.exists(KEY)

    def test_get_opens_reader(self, gcs, bucket):
        reader = io.BytesIO(b"zip")
        bucket.blob.return_value.open.return_value = reader
        assert gcs.get(KEY) is reader
        bucket.blob.return_value.reload.assert_called_once()
        bucket.blob.return_value.open.assert_called_once_with("rb")

    def test_get_missing(self, gcs, bucket):
        bucket.blob.return_value.reload.side_effect = NotFound("missing")
        with pytest.raises(ObjectNotFound):
            gcs.get(KEY)

    def test_put(self, gcs, bucket):
        content = io.BytesIO(b"zip")
        gcs.put(KEY, content, "application/zip")
        bucket.blob.return_value.upload_from_file.assert_called_once_with(
            content, content_type="application/zip"
        )

    def test_put_failure(self, gcs, bucket):
        bucket.blob.return_value.upload_from_file.side_effect = Forbidden("quota")
        with pytest.raises(ObjectStoreFailed, match="upload failed"):
            gcs.put(KEY, io.BytesIO(b"zip"), "application/zip", timeout=10)

    def test_put_connection_error_is_store_failure(self, gcs, bucket):
        bucket.blob.return_value.upload_from_file.side_effect = requests.exceptions.ConnectionError(
            "connection reset by peer"
        )
        with pytest.raises(ObjectStoreFailed, match="connection reset"):
            gcs.put(KEY, io.BytesIO(b"zip"), "application/zip")

    def test_put_with_cancelled_scope_never_uploads(self, gcs, bucket):
        scope = CancelScope(60)
        scope.cancel("client disconnected")
        with pytest.raises(OperationCancelled):
            gcs.put(KEY, io.BytesIO(b"zip"), "application/zip", scope=scope)
        bucket.blob.return_value.upload_from_file.assert_not_called()


class TestLoadCredentials:
    def test_empty_means_default_credentials(self):
        assert load_credentials("") is None
        assert load_credentials("   ") is None

    def test_json_content(self, monkeypatch):
        seen = {}
        monkeypatch.setattr(
            gcs_module.service_account.Credentials,
            "from_service_account_info",
            lambda info: seen.setdefault("info", info),
        )
        payload = {"type": "service_account", "project_id": "p"}
        assert load_credentials(json.dumps(payload)) == payload

    def test_file_path(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            gcs_module.service_account.Credentials,
            "from_service_account_file",
            lambda path: f"file:{path}",
        )
        path = tmp_path / "sa.json"
        assert load_credentials(str(path)) == f"file:{path}"
