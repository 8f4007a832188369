"""Google Cloud Storage object store (google-cloud-storage).

Credentials may be given as service-account JSON content or as a path to a
service-account file; when empty, application-default credentials are used.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, BinaryIO

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from google.oauth2 import service_account
from requests.exceptions import RequestException

from tfregistry.storage import ObjectNotFound, ObjectStoreFailed

if TYPE_CHECKING:
    from tfregistry.core.context import CancelScope

logger = logging.getLogger(__name__)

# The resumable-media layer lets raw requests errors through.
_ERRORS = (GoogleAPIError, GoogleAuthError, RequestException)


def load_credentials(credentials: str) -> service_account.Credentials | None:
    """Parse *credentials* as JSON content first, then as a file path."""
    if not credentials.strip():
        return None
    try:
        info = json.loads(credentials)
    except ValueError:
        return service_account.Credentials.from_service_account_file(credentials)
    return service_account.Credentials.from_service_account_info(info)


class GcsObjectStore:
    """Object store on one GCS bucket.

    Parameters
    ----------
    bucket:
        Bucket holding the archives.
    project_id, credentials:
        Client settings (see ``load_credentials``).
    client:
        Pre-built ``storage.Client`` (tests inject a mock here).
    """

    def __init__(
        self,
        bucket: str,
        *,
        project_id: str = "",
        credentials: str = "",
        client: Any = None,
    ) -> None:
        if client is None:
            client = storage.Client(
                project=project_id or None,
                credentials=load_credentials(credentials),
            )
        self._bucket = client.bucket(bucket)
        self._bucket_name = bucket

    @property
    def backend(self) -> str:
        return "gcs"

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        try:
            return bool(self._bucket.blob(key).exists(**_timeout(timeout)))
        except _ERRORS as exc:
            raise ObjectStoreFailed(f"GCS exists failed for {key}: {exc}") from exc

    def get(self, key: str) -> BinaryIO:
        blob = self._bucket.blob(key)
        try:
            # BlobReader fetches lazily, so load the metadata first to
            # surface a missing object here rather than on first read.
            blob.reload()
            return blob.open("rb")
        except NotFound as exc:
            raise ObjectNotFound(f"object not found in GCS: {key}") from exc
        except _ERRORS as exc:
            raise ObjectStoreFailed(f"GCS download failed for {key}: {exc}") from exc

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str,
        *,
        timeout: float | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        # No progress hook on upload_from_file: the scope is checked up front
        # and the remaining time bounds the request.
        if scope is not None:
            scope.check("upload")
        try:
            self._bucket.blob(key).upload_from_file(
                content, content_type=content_type, **_timeout(timeout)
            )
        except _ERRORS as exc:
            raise ObjectStoreFailed(f"GCS upload failed for {key}: {exc}") from exc
        logger.debug("GcsObjectStore: uploaded gs://%s/%s", self._bucket_name, key)


def _timeout(timeout: float | None) -> dict[str, float]:
    return {} if timeout is None else {"timeout": timeout}
