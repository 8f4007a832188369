"""Process configuration: env-driven, loaded once at startup.

Centralized config using pydantic-settings. Reads from a .env file and
TFREGISTRY_* environment variables. The variable names used by existing
registry deployments (``AzBuilderRegistry``, ``RegistryStorageType``,
``AwsStorageBucketName``, ...) are accepted as aliases.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env(name: str, *legacy: str) -> AliasChoices:
    # Never the bare field name: HOSTNAME is set in most environments.
    return AliasChoices(f"TFREGISTRY_{name.upper()}", *legacy)


class RegistryConfig(BaseSettings):
    """Registry configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export TFREGISTRY_STORAGE_TYPE=GCP
        export TFREGISTRY_GCP_BUCKET_NAME=modules
        export TFREGISTRY_HOSTNAME=https://registry.example.com

    Or with the legacy names::

        RegistryStorageType=AWS
        AwsStorageBucketName=modules
        AzBuilderRegistry=https://registry.example.com
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TFREGISTRY_",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    log_level: str = "INFO"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = Field(default=8080, validation_alias=_env("port", "PORT"))

    # Public base URL used to build X-Terraform-Get download paths
    hostname: str = Field(
        default="http://localhost:8080",
        validation_alias=_env("hostname", "AzBuilderRegistry"),
    )

    # Upstream metadata service
    api_url: str = Field(
        default="http://localhost:8081",
        validation_alias=_env("api_url", "AzBuilderApiUrl"),
    )
    graphql_path: str = "/graphql/api/v1"
    api_token: str = Field(default="", repr=False)
    metadata_timeout_seconds: float = 10.0

    # Storage backend: AWS | AZURE | GCP | LOCAL
    storage_type: str = Field(
        default="AWS", validation_alias=_env("storage_type", "RegistryStorageType")
    )

    aws_bucket_name: str = Field(
        default="", validation_alias=_env("aws_bucket_name", "AwsStorageBucketName")
    )
    aws_region: str = Field(
        default="us-east-1", validation_alias=_env("aws_region", "AwsStorageRegion")
    )
    aws_access_key: str = Field(
        default="", repr=False, validation_alias=_env("aws_access_key", "AwsStorageAccessKey")
    )
    aws_secret_key: str = Field(
        default="", repr=False, validation_alias=_env("aws_secret_key", "AwsStorageSecretKey")
    )
    aws_endpoint: str = Field(
        default="", validation_alias=_env("aws_endpoint", "AwsEndpoint")
    )

    azure_account_name: str = Field(
        default="",
        validation_alias=_env("azure_account_name", "AzureStorageAccountName"),
    )
    azure_account_key: str = Field(
        default="",
        repr=False,
        validation_alias=_env("azure_account_key", "AzureStorageAccountKey"),
    )
    azure_container_name: str = Field(
        default="",
        validation_alias=_env("azure_container_name", "AzureStorageContainerName"),
    )

    gcp_project_id: str = Field(
        default="", validation_alias=_env("gcp_project_id", "GcpStorageProjectId")
    )
    gcp_bucket_name: str = Field(
        default="", validation_alias=_env("gcp_bucket_name", "GcpStorageBucketName")
    )
    # JSON content or a path to a service account file
    gcp_credentials: str = Field(
        default="",
        repr=False,
        validation_alias=_env("gcp_credentials", "GcpStorageCredentials"),
    )

    local_storage_path: Path = Path(".tfregistry/storage")

    # Materialization
    work_dir: Path | None = None  # None: system temp directory
    materialize_timeout_seconds: float = 300.0
    per_key_lease: bool = True
    archive_exclude: list[str] = [".git"]
    git_binary: str = "git"

    @property
    def normalized_storage_type(self) -> str:
        """Storage type with the ``*StorageImpl`` spellings folded in."""
        value = self.storage_type.strip().upper()
        return value.removesuffix("STORAGEIMPL")


# Module-level singleton; import as `from tfregistry.config import config`
config = RegistryConfig()
