"""Shared test fixtures for tfregistry."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from tfregistry.config import RegistryConfig
from tfregistry.core.cache import MaterializationCache
from tfregistry.core.context import CancelScope
from tfregistry.core.leases import KeyLeases
from tfregistry.models.archives import Workspace
from tfregistry.models.coordinates import ModuleCoordinate, SourceDescriptor
from tfregistry.storage.local import LocalObjectStore

HOSTNAME = "https://reg.example.com"


class FakeFetcher:
    """Stands in for VersionControlFetcher: writes a small module tree.

    Records every call; set ``error`` to make ``fetch`` raise instead.
    """

    def __init__(self, work_dir: Path, files: dict[str, str] | None = None) -> None:
        self.work_dir = work_dir
        self.files = files or {"main.tf": 'variable "cidr" {}\n', "README.md": "# vpc\n"}
        self.calls: list[tuple[SourceDescriptor, str]] = []
        self.workspaces: list[Workspace] = []
        self.error: Exception | None = None
        self.before_return: Callable[[], None] | None = None

    def fetch(
        self,
        source: SourceDescriptor,
        version: str,
        *,
        scope: CancelScope | None = None,
    ) -> Workspace:
        self.calls.append((source, version))
        if self.error is not None:
            raise self.error
        root = Path(tempfile.mkdtemp(prefix="tfregistry-", dir=self.work_dir))
        checkout = root / "terraform-aws-vpc"
        for rel, text in self.files.items():
            path = checkout / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        (checkout / ".git").mkdir()
        (checkout / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        workspace = Workspace(root=root, module_root=checkout, ref=f"{source.tag_prefix}{version}")
        self.workspaces.append(workspace)
        if self.before_return is not None:
            self.before_return()
        return workspace


class CountingStore(LocalObjectStore):
    """LocalObjectStore that counts calls and can be told to fail puts."""

    def __init__(self, base_path: Path) -> None:
        super().__init__(base_path)
        self.exists_calls = 0
        self.put_calls = 0
        self.put_error: Exception | None = None

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        self.exists_calls += 1
        return super().exists(key, timeout=timeout)

    def put(self, key, content, content_type, *, timeout=None, scope=None) -> None:
        self.put_calls += 1
        if self.put_error is not None:
            raise self.put_error
        super().put(key, content, content_type, timeout=timeout, scope=scope)


@pytest.fixture
def coordinate() -> ModuleCoordinate:
    return ModuleCoordinate(organization="acme", name="vpc", provider="aws", version="2.0.0")


@pytest.fixture
def source() -> SourceDescriptor:
    return SourceDescriptor(
        source_url="https://github.com/acme/terraform-aws-vpc.git", tag_prefix="v"
    )


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path: Path) -> CountingStore:
    """Provide a fresh counting LocalObjectStore in a temp directory."""
    return CountingStore(tmp_path / "store")


@pytest.fixture
def fetcher(work_dir: Path) -> FakeFetcher:
    return FakeFetcher(work_dir)


@pytest.fixture
def cache(store: CountingStore, fetcher: FakeFetcher) -> MaterializationCache:
    """Provide a MaterializationCache over the fake fetcher and counting store."""
    return MaterializationCache(store, fetcher, hostname=HOSTNAME, leases=KeyLeases())


@pytest.fixture
def local_config(tmp_path: Path) -> RegistryConfig:
    """Provide a RegistryConfig using local storage under tmp_path."""
    return RegistryConfig(
        storage_type="LOCAL",
        local_storage_path=tmp_path / "store",
        work_dir=tmp_path / "work",
        hostname=HOSTNAME,
        api_url="http://metadata.test",
    )


@pytest.fixture
def git_repo(tmp_path: Path) -> Callable[..., Path]:
    """Build a local git repository with one commit and the given tags.

    Skips the test when no ``git`` binary is available.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def _git(repo: Path, *args: str) -> None:
        subprocess.run(
            ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", *args],
            cwd=repo,
            check=True,
            capture_output=True,
        )

    def _make(files: dict[str, str], tags: tuple[str, ...] = ("v1.0.0",)) -> Path:
        repo = tmp_path / "upstream" / "terraform-aws-vpc"
        repo.mkdir(parents=True)
        _git(repo, "init", "--quiet")
        for rel, text in files.items():
            path = repo / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        _git(repo, "add", "--all")
        _git(repo, "commit", "--quiet", "-m", "initial")
        for tag in tags:
            _git(repo, "tag", tag)
        return repo

    return _make
