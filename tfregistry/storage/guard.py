"""Storage configuration guard: validates backend settings at startup.

The guard runs once before any adapter is built and fails hard (raises
``StorageConfigError``) if the selected backend is unknown or is missing a
setting it cannot work without. All violations are reported together.

This module is the single place that knows which settings each backend
requires. Nothing downstream branches on backend identity.
"""

from __future__ import annotations

import logging

from tfregistry.config import RegistryConfig

logger = logging.getLogger(__name__)

# Backend name -> RegistryConfig fields that must be non-empty.
REQUIRED_SETTINGS: dict[str, list[str]] = {
    "AWS": ["aws_bucket_name", "aws_region"],
    "AZURE": ["azure_account_name", "azure_account_key", "azure_container_name"],
    "GCP": ["gcp_bucket_name"],
    "LOCAL": ["local_storage_path"],
}


class StorageConfigError(RuntimeError):
    """Raised when the storage configuration cannot be used.

    The process cannot serve downloads without a store; this must not be
    caught and ignored.
    """


def enforce_storage_constraints(config: RegistryConfig) -> str:
    """Validate the storage settings and return the normalized backend name.

    Raises
    ------
    StorageConfigError
        If the storage type is unknown or required settings are empty.
    """
    backend = config.normalized_storage_type
    required = REQUIRED_SETTINGS.get(backend)
    if required is None:
        msg = (
            f"Unknown storage type {config.storage_type!r}. "
            f"Supported values: {', '.join(REQUIRED_SETTINGS)}"
        )
        logger.critical(msg)
        raise StorageConfigError(msg)

    violations = [
        f"'{field}' is required for {backend} storage. "
        f"Set TFREGISTRY_{field.upper()}."
        for field in required
        if not str(getattr(config, field, "") or "").strip()
    ]

    if violations:
        msg = (
            "Storage configuration guard failed.\n"
            + "\n".join(f"  - {v}" for v in violations)
        )
        logger.critical(msg)
        raise StorageConfigError(msg)

    logger.info("Storage configuration guard passed (%s).", backend)
    return backend
