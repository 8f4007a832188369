"""Models for what the upstream metadata service tells us about modules and providers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from tfregistry.models.coordinates import (
    NoCredential,
    SourceDescriptor,
    SshKeyCredential,
    TokenCredential,
)


class VcsConnection(BaseModel):
    """A VCS connection attached to a module (token based)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = ""
    vcs_type: str | None = Field(default="", alias="vcsType")
    connection_type: str | None = Field(default="", alias="connectionType")
    access_token: str | None = Field(default="", alias="accessToken", repr=False)
    client_id: str | None = Field(default="", alias="clientId")


class SshConnection(BaseModel):
    """An SSH key attached to a module."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = ""
    ssh_type: str | None = Field(default="rsa", alias="sshType")
    private_key: str | None = Field(default="", alias="privateKey", repr=False)


class ModuleDetails(BaseModel):
    """Source location of a registry module, as stored upstream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = ""
    source: str
    folder: str | None = ""
    tag_prefix: str | None = Field(default="", alias="tagPrefix")
    vcs: VcsConnection | None = None
    ssh: SshConnection | None = None

    def to_source_descriptor(self) -> SourceDescriptor:
        """Collapse the upstream record into a SourceDescriptor.

        A VCS connection wins over an SSH key; neither means a public clone.
        """
        if self.vcs is not None:
            credential = TokenCredential(
                vcs_type=self.vcs.vcs_type or "",
                connection_type=self.vcs.connection_type or "",
                token=self.vcs.access_token or "",
            )
        elif self.ssh is not None:
            credential = SshKeyCredential(
                key_type=self.ssh.ssh_type or "rsa",
                private_key=self.ssh.private_key or "",
            )
        else:
            credential = NoCredential()

        return SourceDescriptor(
            source_url=self.source,
            folder=self.folder or "",
            tag_prefix=self.tag_prefix or "",
            credential=credential,
        )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class Platform(BaseModel):
    model_config = ConfigDict(frozen=True)

    os: str
    arch: str


class ProviderVersion(BaseModel):
    """One entry of the provider versions listing."""

    model_config = ConfigDict(frozen=True)

    version: str
    protocols: list[str] = []
    platforms: list[Platform] = []


class GpgPublicKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_id: str = ""
    ascii_armor: str = ""
    trust_signature: str = ""
    source: str = ""
    source_url: str = ""


class SigningKeys(BaseModel):
    model_config = ConfigDict(frozen=True)

    gpg_public_keys: list[GpgPublicKey] = []


class ProviderFile(BaseModel):
    """Download descriptor for one provider build (os/arch).

    Field names follow the registry protocol's JSON (snake_case), so
    ``model_dump()`` is the response body as-is.
    """

    model_config = ConfigDict(frozen=True)

    protocols: list[str] = []
    os: str
    arch: str
    filename: str = ""
    download_url: str = ""
    shasums_url: str = ""
    shasums_signature_url: str = ""
    shasum: str = ""
    signing_keys: SigningKeys = SigningKeys()
