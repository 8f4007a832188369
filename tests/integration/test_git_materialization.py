"""End-to-end materialization against a real local git repository.

Skipped when no ``git`` binary is installed.
"""

from __future__ import annotations

import zipfile

import pytest

from tfregistry.core.cache import MaterializationCache, MaterializationError
from tfregistry.core.fetcher import CloneFailed, VersionControlFetcher
from tfregistry.core.keys import cache_key
from tfregistry.core.leases import KeyLeases
from tfregistry.models.coordinates import ModuleCoordinate, SourceDescriptor
from tfregistry.models.events import MaterializationStage

FILES = {
    "main.tf": 'module "subnets" { source = "./modules/subnets" }\n',
    "modules/subnets/main.tf": "# subnets\n",
    "README.md": "# vpc\n",
}


@pytest.fixture
def real_cache(store, work_dir) -> MaterializationCache:
    return MaterializationCache(
        store,
        VersionControlFetcher(work_dir=work_dir),
        hostname="https://reg.example.com",
        leases=KeyLeases(),
    )


class TestGitMaterialization:
    def test_clone_pack_upload(self, git_repo, real_cache, store, work_dir):
        repo = git_repo(FILES, tags=("v1.0.0",))
        coordinate = ModuleCoordinate(organization="acme", name="vpc", provider="aws", version="1.0.0")
        source = SourceDescriptor(source_url=repo.as_uri(), tag_prefix="v")

        path = real_cache.materialize(coordinate, source)

        assert path.endswith("/terraform/modules/v1/download/acme/vpc/aws/1.0.0/module.zip")
        with store.get(cache_key(coordinate)) as fh, zipfile.ZipFile(fh) as zf:
            names = zf.namelist()
            assert names[0] == "terraform-aws-vpc/"
            assert "terraform-aws-vpc/modules/subnets/main.tf" in names
            assert not any(n.startswith("terraform-aws-vpc/.git") for n in names)
            assert zf.read("terraform-aws-vpc/README.md") == b"# vpc\n"
        assert list(work_dir.iterdir()) == []

    def test_folder_inside_repository(self, git_repo, real_cache, store):
        repo = git_repo(FILES, tags=("1.0.0",))
        coordinate = ModuleCoordinate(organization="acme", name="subnets", provider="aws", version="1.0.0")
        source = SourceDescriptor(source_url=repo.as_uri(), folder="modules/subnets")

        real_cache.materialize(coordinate, source)

        with store.get(cache_key(coordinate)) as fh, zipfile.ZipFile(fh) as zf:
            assert zf.namelist() == ["subnets/", "subnets/main.tf"]

    def test_unknown_tag_fails_at_fetch(self, git_repo, real_cache, store, work_dir):
        repo = git_repo(FILES, tags=("v1.0.0",))
        coordinate = ModuleCoordinate(organization="acme", name="vpc", provider="aws", version="9.9.9")
        source = SourceDescriptor(source_url=repo.as_uri(), tag_prefix="v")

        with pytest.raises(MaterializationError) as excinfo:
            real_cache.materialize(coordinate, source)

        assert excinfo.value.stage is MaterializationStage.FETCH
        assert isinstance(excinfo.value.cause, CloneFailed)
        assert excinfo.value.cause.returncode not in (None, 0)
        assert store.exists(cache_key(coordinate)) is False
        assert list(work_dir.iterdir()) == []

    def test_same_tag_packs_identical_bytes(self, git_repo, store, work_dir):
        repo = git_repo(FILES, tags=("v1.0.0",))
        fetcher = VersionControlFetcher(work_dir=work_dir)
        source = SourceDescriptor(source_url=repo.as_uri(), tag_prefix="v")
        digests = []
        for version_name in ("a", "b"):
            cache = MaterializationCache(store, fetcher, hostname="http://h")
            coordinate = ModuleCoordinate(
                organization="acme", name=version_name, provider="aws", version="1.0.0"
            )
            cache.materialize(coordinate, source)
            with store.get(cache_key(coordinate)) as fh:
                digests.append(fh.read())
        assert digests[0] == digests[1]
