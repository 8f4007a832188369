"""GraphQL client for the upstream metadata service.

The service resolves organization -> module/provider -> version graphs and
the VCS connection of each module. Every call is one POST to the GraphQL
endpoint with a fixed client-level timeout. Results are not cached.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tfregistry.config import RegistryConfig
from tfregistry.models.coordinates import check_segment
from tfregistry.models.metadata import (
    GpgPublicKey,
    ModuleDetails,
    Platform,
    ProviderFile,
    ProviderVersion,
    SigningKeys,
)

logger = logging.getLogger(__name__)


class MetadataNotFound(RuntimeError):
    """The organization, module, provider or version does not exist upstream."""


class MetadataQueryFailed(RuntimeError):
    """The metadata service could not be queried or returned garbage."""


MODULE_VERSIONS_QUERY = """
{
  organization(filter: "name==%(organization)s") {
    edges { node { id name
      module(filter: "name==%(name)s;provider==%(provider)s") {
        edges { node { id name provider
          version { edges { node { id version } } }
        } }
      }
    } }
  }
}"""

MODULE_QUERY = """
{
  organization(filter: "name==%(organization)s") {
    edges { node { id
      module(filter: "name==%(name)s;provider==%(provider)s") {
        edges { node { id source folder tagPrefix
          vcs { id vcsType connectionType accessToken clientId }
          ssh { id sshType privateKey }
        } }
      }
    } }
  }
}"""

PROVIDER_VERSIONS_QUERY = """
{
  organization(filter: "name==%(organization)s") {
    edges { node { id name
      provider(filter: "name==%(provider)s") {
        edges { node { id name
          version { edges { node { id versionNumber protocols
            implementation { edges { node { id os arch } } }
          } } }
        } }
      }
    } }
  }
}"""

PROVIDER_FILE_QUERY = """
{
  organization(filter: "name==%(organization)s") {
    edges { node { id
      provider(filter: "name==%(provider)s") {
        edges { node { id
          version(filter: "versionNumber==%(version)s") {
            edges { node { id protocols
              implementation(filter: "os==%(os)s;arch==%(arch)s") {
                edges { node { id os arch filename downloadUrl shasumsUrl
                  shasumsSignatureUrl shasum keyId asciiArmor trustSignature
                  source sourceUrl } }
              }
            } }
          }
        } }
      }
    } }
  }
}"""


def _edges(node: dict[str, Any] | None, field: str) -> list[dict[str, Any]]:
    """Nodes under ``node[field].edges[*].node``, tolerating nulls."""
    container = (node or {}).get(field) or {}
    return [edge.get("node") or {} for edge in container.get("edges") or []]


def _split_protocols(value: str | None) -> list[str]:
    return [p.strip() for p in (value or "").split(",") if p.strip()]


class MetadataClient:
    """Synchronous client for the metadata GraphQL API.

    Parameters
    ----------
    base_url:
        Root URL of the metadata service.
    graphql_path:
        Path of the GraphQL endpoint under *base_url*.
    token:
        Optional bearer token sent with every request.
    timeout:
        Client-level timeout in seconds for every request.
    transport:
        Custom httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        graphql_path: str = "/graphql/api/v1",
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._path = graphql_path
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: RegistryConfig) -> MetadataClient:
        return cls(
            config.api_url,
            graphql_path=config.graphql_path,
            token=config.api_token,
            timeout=config.metadata_timeout_seconds,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> MetadataClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST one GraphQL query and return its ``data`` object.

        Raises
        ------
        MetadataQueryFailed
            On transport errors, non-200 responses, undecodable bodies or
            GraphQL ``errors``.
        """
        try:
            response = self._http.post(
                self._path, json={"query": query, "variables": variables or {}}
            )
        except httpx.HTTPError as exc:
            raise MetadataQueryFailed(f"metadata request failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise MetadataQueryFailed(
                f"metadata api returned status {response.status_code}: {response.text[:500]}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise MetadataQueryFailed(f"undecodable metadata response: {exc}") from exc

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            raise MetadataQueryFailed(f"graphql error: {errors[0].get('message', errors[0])}")
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise MetadataQueryFailed("metadata response carries no data")
        return data

    def _query(self, template: str, **params: str) -> dict[str, Any]:
        for field, value in params.items():
            check_segment(value, field)
        return self.execute(template % params)

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def get_module_versions(self, organization: str, name: str, provider: str) -> list[str]:
        """All published versions of a module, in upstream order.

        An unknown module raises ``MetadataNotFound`` (a 404 at the API)
        rather than answering 200 with an empty or null version list, as
        some registries do. A known module without versions returns ``[]``.
        """
        data = self._query(
            MODULE_VERSIONS_QUERY, organization=organization, name=name, provider=provider
        )
        modules = [module for org in _edges(data, "organization") for module in _edges(org, "module")]
        if not modules:
            raise MetadataNotFound(f"module {organization}/{name}/{provider} not found")
        versions = [
            version["version"]
            for module in modules
            for version in _edges(module, "version")
            if version.get("version")
        ]
        logger.debug("Found %d versions for %s/%s/%s", len(versions), organization, name, provider)
        return versions

    def get_module(self, organization: str, name: str, provider: str) -> ModuleDetails:
        """Source location and VCS connection of a module.

        Raises ``MetadataNotFound`` when the module does not exist.
        """
        data = self._query(MODULE_QUERY, organization=organization, name=name, provider=provider)
        for org in _edges(data, "organization"):
            for module in _edges(org, "module"):
                try:
                    return ModuleDetails.model_validate(module)
                except ValidationError as exc:
                    raise MetadataQueryFailed(f"malformed module record: {exc}") from exc
        raise MetadataNotFound(f"module {organization}/{name}/{provider} not found")

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def get_provider_versions(self, organization: str, provider: str) -> list[ProviderVersion]:
        data = self._query(PROVIDER_VERSIONS_QUERY, organization=organization, provider=provider)
        providers = [prov for org in _edges(data, "organization") for prov in _edges(org, "provider")]
        if not providers:
            raise MetadataNotFound(f"provider {organization}/{provider} not found")
        return [
            ProviderVersion(
                version=version.get("versionNumber") or "",
                protocols=_split_protocols(version.get("protocols")),
                platforms=[
                    Platform(os=impl.get("os") or "", arch=impl.get("arch") or "")
                    for impl in _edges(version, "implementation")
                ],
            )
            for prov in providers
            for version in _edges(prov, "version")
        ]

    def get_provider_file(
        self, organization: str, provider: str, version: str, os: str, arch: str
    ) -> ProviderFile:
        """Download descriptor of one provider build.

        Raises ``MetadataNotFound`` when no implementation matches.
        """
        data = self._query(
            PROVIDER_FILE_QUERY,
            organization=organization,
            provider=provider,
            version=version,
            os=os,
            arch=arch,
        )
        for org in _edges(data, "organization"):
            for prov in _edges(org, "provider"):
                for ver in _edges(prov, "version"):
                    for impl in _edges(ver, "implementation"):
                        return ProviderFile(
                            protocols=_split_protocols(ver.get("protocols")),
                            os=impl.get("os") or os,
                            arch=impl.get("arch") or arch,
                            filename=impl.get("filename") or "",
                            download_url=impl.get("downloadUrl") or "",
                            shasums_url=impl.get("shasumsUrl") or "",
                            shasums_signature_url=impl.get("shasumsSignatureUrl") or "",
                            shasum=impl.get("shasum") or "",
                            signing_keys=SigningKeys(
                                gpg_public_keys=[
                                    GpgPublicKey(
                                        key_id=impl.get("keyId") or "",
                                        ascii_armor=impl.get("asciiArmor") or "",
                                        trust_signature=impl.get("trustSignature") or "",
                                        source=impl.get("source") or "",
                                        source_url=impl.get("sourceUrl") or "",
                                    )
                                ]
                            ),
                        )
        raise MetadataNotFound(
            f"provider file {organization}/{provider}/{version}/{os}/{arch} not found"
        )
