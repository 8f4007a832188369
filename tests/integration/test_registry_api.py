"""Integration tests for the registry HTTP API.

The app runs over FastAPI's TestClient with the fake fetcher, a local store
and an in-memory metadata service.
"""

from __future__ import annotations

import asyncio
import io
import json
import time
import zipfile

import pytest
from fastapi.testclient import TestClient

from tfregistry.api.app import create_app
from tfregistry.client.metadata import MetadataNotFound, MetadataQueryFailed
from tfregistry.core.cache import MaterializationCache
from tfregistry.core.context import OperationCancelled
from tfregistry.core.fetcher import CloneFailed
from tfregistry.models.metadata import (
    ModuleDetails,
    Platform,
    ProviderFile,
    ProviderVersion,
    VcsConnection,
)

PUBLIC = "https://reg.example.com/terraform/modules/v1/download/acme/vpc/aws/2.0.0/module.zip"


class FakeMetadata:
    def __init__(self) -> None:
        self.modules = {
            ("acme", "vpc", "aws"): ModuleDetails(
                source="https://github.com/acme/terraform-aws-vpc.git",
                tag_prefix="v",
                vcs=VcsConnection(vcs_type="GITHUB", access_token="tok"),
            )
        }
        self.versions = {("acme", "vpc", "aws"): ["1.0.0", "2.0.0"]}
        self.error: Exception | None = None

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def get_module_versions(self, organization, name, provider):
        self._check()
        try:
            return self.versions[(organization, name, provider)]
        except KeyError:
            raise MetadataNotFound(f"module {organization}/{name}/{provider} not found") from None

    def get_module(self, organization, name, provider):
        self._check()
        try:
            return self.modules[(organization, name, provider)]
        except KeyError:
            raise MetadataNotFound(f"module {organization}/{name}/{provider} not found") from None

    def get_provider_versions(self, organization, provider):
        self._check()
        return [
            ProviderVersion(
                version="5.1.0",
                protocols=["5.0"],
                platforms=[Platform(os="linux", arch="amd64")],
            )
        ]

    def get_provider_file(self, organization, provider, version, os, arch):
        self._check()
        return ProviderFile(
            protocols=["5.0"], os=os, arch=arch, filename="p.zip", download_url="https://dl/p.zip"
        )


@pytest.fixture
def metadata() -> FakeMetadata:
    return FakeMetadata()


@pytest.fixture
def client(local_config, cache, metadata) -> TestClient:
    return TestClient(create_app(local_config, cache=cache, metadata=metadata))


class TestServiceRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "UP"}

    def test_discovery(self, client):
        assert client.get("/.well-known/terraform.json").json() == {
            "modules.v1": "/terraform/modules/v1/",
            "providers.v1": "/terraform/providers/v1/",
        }


class TestModuleRoutes:
    def test_versions(self, client):
        response = client.get("/terraform/modules/v1/acme/vpc/aws/versions")
        assert response.status_code == 200
        assert response.json() == {
            "modules": [{"versions": [{"version": "1.0.0"}, {"version": "2.0.0"}]}]
        }

    def test_versions_unknown_module(self, client):
        response = client.get("/terraform/modules/v1/acme/nope/aws/versions")
        assert response.status_code == 404
        assert "not found" in response.json()["error"]

    def test_download_materializes_then_hits(self, client, fetcher, store):
        first = client.get("/terraform/modules/v1/acme/vpc/aws/2.0.0/download")
        assert first.status_code == 204
        assert first.headers["X-Terraform-Get"] == PUBLIC
        assert first.content == b""

        second = client.get("/terraform/modules/v1/acme/vpc/aws/2.0.0/download")
        assert second.status_code == 204
        assert second.headers["X-Terraform-Get"] == PUBLIC
        assert len(fetcher.calls) == 1
        assert store.put_calls == 1

        source, version = fetcher.calls[0]
        assert version == "2.0.0"
        assert source.tag_prefix == "v"
        assert source.credential.secret == "tok"

    def test_archive_download(self, client):
        client.get("/terraform/modules/v1/acme/vpc/aws/2.0.0/download")
        response = client.get(
            "/terraform/modules/v1/download/acme/vpc/aws/2.0.0/module.zip"
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"] == (
            'attachment; filename="acme-vpc-aws-2.0.0.zip"'
        )
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert "terraform-aws-vpc/main.tf" in zf.namelist()

    def test_archive_not_materialized(self, client):
        response = client.get("/terraform/modules/v1/download/acme/vpc/aws/9.9.9/module.zip")
        assert response.status_code == 404

    def test_clone_failure_is_500_with_stage(self, client, fetcher, store):
        fetcher.error = CloneFailed("git clone exited with status 128", returncode=128)
        response = client.get("/terraform/modules/v1/acme/vpc/aws/2.0.0/download")
        assert response.status_code == 500
        body = response.json()
        assert body["stage"] == "fetch"
        assert "status 128" in body["error"]
        assert store.put_calls == 0

    def test_unknown_module_download(self, client, fetcher):
        response = client.get("/terraform/modules/v1/acme/nope/aws/1.0.0/download")
        assert response.status_code == 404
        assert fetcher.calls == []

    def test_metadata_outage_is_502(self, client, metadata):
        metadata.error = MetadataQueryFailed("metadata api returned status 503")
        response = client.get("/terraform/modules/v1/acme/vpc/aws/versions")
        assert response.status_code == 502

    @pytest.mark.parametrize(
        "path",
        [
            "/terraform/modules/v1/acme/vpc/aws/1.0.0%3Brm/download",
            "/terraform/modules/v1/acme/.hidden/aws/1.0.0/download",
            "/terraform/modules/v1/download/acme/-vpc/aws/1.0.0/module.zip",
            "/terraform/modules/v1/acme/v%20pc/aws/versions",
        ],
    )
    def test_invalid_segments_rejected(self, client, fetcher, path):
        response = client.get(path)
        assert response.status_code == 400
        assert fetcher.calls == []


class TestProviderRoutes:
    def test_versions(self, client):
        response = client.get("/terraform/providers/v1/acme/aws/versions")
        assert response.status_code == 200
        assert response.json() == {
            "versions": [
                {
                    "version": "5.1.0",
                    "protocols": ["5.0"],
                    "platforms": [{"os": "linux", "arch": "amd64"}],
                }
            ]
        }

    def test_download(self, client):
        response = client.get("/terraform/providers/v1/acme/aws/5.1.0/download/linux/amd64")
        assert response.status_code == 200
        body = response.json()
        assert body["os"] == "linux"
        assert body["arch"] == "amd64"
        assert body["download_url"] == "https://dl/p.zip"
        assert body["signing_keys"] == {"gpg_public_keys": []}

    def test_download_rejects_bad_platform(self, client):
        response = client.get("/terraform/providers/v1/acme/aws/5.1.0/download/linux%20x/amd64")
        assert response.status_code == 400


class TestCreateApp:
    def test_builds_collaborators_from_config(self, local_config):
        app = create_app(local_config)
        assert app.state.cache.store.backend == "local"
        assert app.state.cache.hostname == "https://reg.example.com"
        app.state.metadata.close()


class BlockingFetcher:
    """Holds ``fetch`` until its scope fires, like a clone of a huge repo."""

    def __init__(self) -> None:
        self.reasons: list[str] = []

    def fetch(self, source, version, *, scope=None):
        deadline = time.monotonic() + 5
        while not scope.cancelled and time.monotonic() < deadline:
            time.sleep(0.01)
        try:
            scope.check("fetch")
        except OperationCancelled as exc:
            self.reasons.append(str(exc))
            raise
        raise AssertionError("fetch was never cancelled")


def _call_then_disconnect(app, path: str) -> list[dict]:
    """Drive *app* over raw ASGI with a client that hangs up after sending."""
    sent: list[dict] = []
    received = 0

    async def receive():
        nonlocal received
        received += 1
        if received == 1:
            return {"type": "http.request", "body": b"", "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    asyncio.run(app(scope, receive, send))
    return sent


class TestClientDisconnect:
    def test_disconnect_cancels_clone(self, local_config, store, metadata, monkeypatch):
        monkeypatch.setattr("tfregistry.api.app.DISCONNECT_POLL_SECONDS", 0.01)
        fetcher = BlockingFetcher()
        cache = MaterializationCache(store, fetcher, hostname="https://reg.example.com")
        app = create_app(local_config, cache=cache, metadata=metadata)

        started = time.monotonic()
        sent = _call_then_disconnect(app, "/terraform/modules/v1/acme/vpc/aws/2.0.0/download")

        assert time.monotonic() - started < 5
        assert fetcher.reasons == ["fetch client disconnected"]
        assert sent[0]["type"] == "http.response.start"
        assert sent[0]["status"] == 500
        assert json.loads(sent[1]["body"])["stage"] == "fetch"
        assert store.put_calls == 0
