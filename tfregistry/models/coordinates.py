"""Module coordinates, source descriptors and VCS credential variants.

A ``ModuleCoordinate`` identifies exactly one packaged archive. Once a
coordinate is materialized its archive never changes: the version tag pins
the content.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# One path segment: no separators, no leading dot (rules out "." and "..").
SEGMENT_PATTERN = re.compile(r"[A-Za-z0-9_][A-Za-z0-9._+-]*")

PUBLIC_VCS_TYPE = "PUBLIC"
SSH_VCS_PREFIX = "SSH~"


def check_segment(value: str, field: str = "segment") -> str:
    """Validate that *value* is usable as a single key/path segment."""
    if not isinstance(value, str) or not SEGMENT_PATTERN.fullmatch(value):
        raise ValueError(f"invalid {field}: {value!r}")
    return value


class ModuleCoordinate(BaseModel):
    """The (organization, name, provider, version) tuple of one artifact."""

    model_config = ConfigDict(frozen=True)

    organization: str
    name: str
    provider: str
    version: str

    @field_validator("organization", "name", "provider", "version")
    @classmethod
    def _single_segment(cls, value: str, info: ValidationInfo) -> str:
        return check_segment(value, info.field_name)

    def __str__(self) -> str:
        return f"{self.organization}/{self.name}/{self.provider}/{self.version}"

    @property
    def archive_filename(self) -> str:
        """Attachment filename used when the archive is downloaded."""
        return f"{self.organization}-{self.name}-{self.provider}-{self.version}.zip"


# ---------------------------------------------------------------------------
# VCS credentials
# ---------------------------------------------------------------------------


class NoCredential(BaseModel):
    """Public repository, cloned anonymously."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    @property
    def vcs_type(self) -> str:
        return PUBLIC_VCS_TYPE

    @property
    def secret(self) -> str:
        return ""


class TokenCredential(BaseModel):
    """Access token from a VCS connection (GitHub, GitLab, Bitbucket, ...)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["token"] = "token"
    vcs_type: str
    connection_type: str = ""
    token: str = Field(default="", repr=False)

    @property
    def secret(self) -> str:
        return self.token


class SshKeyCredential(BaseModel):
    """Private key for cloning over SSH."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ssh"] = "ssh"
    key_type: str = "rsa"
    private_key: str = Field(repr=False)

    @property
    def vcs_type(self) -> str:
        return f"{SSH_VCS_PREFIX}{self.key_type}"

    @property
    def secret(self) -> str:
        return self.private_key


VcsCredential = Annotated[
    Union[NoCredential, TokenCredential, SshKeyCredential],
    Field(discriminator="kind"),
]


class SourceDescriptor(BaseModel):
    """Where a module's source lives and how to authenticate against it.

    Owned by a single materialization call; never persisted.
    """

    model_config = ConfigDict(frozen=True)

    source_url: str
    folder: str = ""
    tag_prefix: str = ""
    credential: VcsCredential = Field(default_factory=NoCredential)

    @property
    def vcs_type(self) -> str:
        return self.credential.vcs_type
