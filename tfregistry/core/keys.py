"""Key and path derivation for cached module archives.

The storage key and the public download path are both fixed templates over
the coordinate. They do not depend on which storage backend is active.
"""

from __future__ import annotations

from tfregistry.models.coordinates import ModuleCoordinate

ARCHIVE_CONTENT_TYPE = "application/zip"
DOWNLOAD_ROUTE_PREFIX = "/terraform/modules/v1/download"


def cache_key(coordinate: ModuleCoordinate) -> str:
    """Storage key of a coordinate's archive."""
    return (
        f"registry/{coordinate.organization}/{coordinate.name}/"
        f"{coordinate.provider}/{coordinate.version}/module.zip"
    )


def download_route(coordinate: ModuleCoordinate) -> str:
    """Path (without host) of the archive download route."""
    return (
        f"{DOWNLOAD_ROUTE_PREFIX}/{coordinate.organization}/{coordinate.name}/"
        f"{coordinate.provider}/{coordinate.version}/module.zip"
    )


def public_path(hostname: str, coordinate: ModuleCoordinate) -> str:
    """Public URL handed to Terraform in ``X-Terraform-Get``."""
    return f"{hostname.rstrip('/')}{download_route(coordinate)}"
