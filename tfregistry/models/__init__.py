"""tfregistry data models: Pydantic v2, frozen (immutable)."""

from tfregistry.models.archives import PackedArchive, Workspace
from tfregistry.models.coordinates import (
    PUBLIC_VCS_TYPE,
    ModuleCoordinate,
    NoCredential,
    SourceDescriptor,
    SshKeyCredential,
    TokenCredential,
    VcsCredential,
    check_segment,
)
from tfregistry.models.events import (
    EventOutcome,
    MaterializationEvent,
    MaterializationStage,
)
from tfregistry.models.metadata import (
    GpgPublicKey,
    ModuleDetails,
    Platform,
    ProviderFile,
    ProviderVersion,
    SigningKeys,
    SshConnection,
    VcsConnection,
)

__all__ = [
    # coordinates
    "ModuleCoordinate",
    "SourceDescriptor",
    "VcsCredential",
    "NoCredential",
    "TokenCredential",
    "SshKeyCredential",
    "PUBLIC_VCS_TYPE",
    "check_segment",
    # archives
    "Workspace",
    "PackedArchive",
    # events
    "MaterializationStage",
    "EventOutcome",
    "MaterializationEvent",
    # metadata
    "ModuleDetails",
    "VcsConnection",
    "SshConnection",
    "Platform",
    "ProviderVersion",
    "GpgPublicKey",
    "SigningKeys",
    "ProviderFile",
]
