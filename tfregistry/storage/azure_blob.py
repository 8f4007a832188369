"""Azure Blob Storage object store (azure-storage-blob).

Authenticates with a storage account name and shared key against
``https://{account}.blob.core.windows.net/``.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, BinaryIO

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from tfregistry.storage import ObjectNotFound, ObjectStoreFailed

if TYPE_CHECKING:
    from tfregistry.core.context import CancelScope

logger = logging.getLogger(__name__)


class _ChunkStream(io.RawIOBase):
    """Read-only file object over an iterator of byte chunks."""

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


class AzureBlobObjectStore:
    """Object store on one Azure blob container.

    Parameters
    ----------
    account_name, account_key:
        Shared-key credentials of the storage account.
    container:
        Container holding the archives.
    service_client:
        Pre-built ``BlobServiceClient`` (tests inject a mock here).
    """

    def __init__(
        self,
        container: str,
        *,
        account_name: str = "",
        account_key: str = "",
        service_client: Any = None,
    ) -> None:
        if service_client is None:
            service_client = BlobServiceClient(
                account_url=f"https://{account_name}.blob.core.windows.net/",
                credential={"account_name": account_name, "account_key": account_key},
            )
        self._container = service_client.get_container_client(container)
        self._container_name = container

    @property
    def backend(self) -> str:
        return "azure-blob"

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        try:
            return bool(self._container.get_blob_client(key).exists(**_timeout(timeout)))
        except AzureError as exc:
            raise ObjectStoreFailed(f"Azure exists failed for {key}: {exc}") from exc

    def get(self, key: str) -> BinaryIO:
        try:
            downloader = self._container.download_blob(key)
        except ResourceNotFoundError as exc:
            raise ObjectNotFound(f"object not found in Azure: {key}") from exc
        except AzureError as exc:
            raise ObjectStoreFailed(f"Azure download failed for {key}: {exc}") from exc
        return io.BufferedReader(_ChunkStream(iter(downloader.chunks())))

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str,
        *,
        timeout: float | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        kwargs: dict[str, Any] = _timeout(timeout)
        if scope is not None:
            scope.check("upload")
            kwargs["progress_hook"] = lambda current, total: scope.check("upload")
        try:
            self._container.upload_blob(
                name=key,
                data=content,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
                **kwargs,
            )
        except AzureError as exc:
            raise ObjectStoreFailed(f"Azure upload failed for {key}: {exc}") from exc
        logger.debug("AzureBlobObjectStore: uploaded %s/%s", self._container_name, key)


def _timeout(timeout: float | None) -> dict[str, Any]:
    # The SDK takes whole seconds.
    if timeout is None:
        return {}
    return {"timeout": max(1, int(timeout))}
