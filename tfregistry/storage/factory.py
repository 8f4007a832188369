"""Pick the one ObjectStore adapter for this process, from configuration.

SDK modules are imported lazily so a deployment only needs the client
library of the backend it actually uses at import time.
"""

from __future__ import annotations

from tfregistry.config import RegistryConfig
from tfregistry.storage import ObjectStore
from tfregistry.storage.guard import enforce_storage_constraints


def build_object_store(config: RegistryConfig) -> ObjectStore:
    """Validate the storage settings and build the matching adapter.

    Raises
    ------
    StorageConfigError
        If the configuration is unusable (see ``enforce_storage_constraints``).
    """
    backend = enforce_storage_constraints(config)

    if backend == "AWS":
        from tfregistry.storage.s3 import S3ObjectStore

        return S3ObjectStore(
            config.aws_bucket_name,
            region=config.aws_region,
            access_key=config.aws_access_key,
            secret_key=config.aws_secret_key,
            endpoint=config.aws_endpoint,
        )

    if backend == "AZURE":
        from tfregistry.storage.azure_blob import AzureBlobObjectStore

        return AzureBlobObjectStore(
            config.azure_container_name,
            account_name=config.azure_account_name,
            account_key=config.azure_account_key,
        )

    if backend == "GCP":
        from tfregistry.storage.gcs import GcsObjectStore

        return GcsObjectStore(
            config.gcp_bucket_name,
            project_id=config.gcp_project_id,
            credentials=config.gcp_credentials,
        )

    from tfregistry.storage.local import LocalObjectStore

    return LocalObjectStore(config.local_storage_path)
