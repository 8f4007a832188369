"""S3 (and S3-compatible) object store backed by boto3.

When a custom endpoint is configured (MinIO, LocalStack, ...) the client
switches to path-style addressing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, BinaryIO

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tfregistry.storage import ObjectNotFound, ObjectStoreFailed

if TYPE_CHECKING:
    from tfregistry.core.context import CancelScope

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """Object store on one S3 bucket.

    Parameters
    ----------
    bucket:
        Bucket holding the archives.
    region, access_key, secret_key, endpoint:
        Client settings. Empty keys fall back to boto3's default credential
        chain; an empty endpoint means AWS itself.
    client:
        Pre-built boto3 S3 client (tests inject a mock here).
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-east-1",
        access_key: str = "",
        secret_key: str = "",
        endpoint: str = "",
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        if client is None:
            kwargs: dict[str, Any] = {"region_name": region}
            if access_key and secret_key:
                kwargs["aws_access_key_id"] = access_key
                kwargs["aws_secret_access_key"] = secret_key
            if endpoint:
                kwargs["endpoint_url"] = endpoint
                kwargs["config"] = Config(s3={"addressing_style": "path"})
            client = boto3.client("s3", **kwargs)
        self._client = client

    @property
    def backend(self) -> str:
        return "s3"

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise ObjectStoreFailed(f"S3 head_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreFailed(f"S3 head_object failed for {key}: {exc}") from exc
        return True

    def get(self, key: str) -> BinaryIO:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise ObjectNotFound(f"object not found in S3: {key}") from exc
            raise ObjectStoreFailed(f"S3 get_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreFailed(f"S3 get_object failed for {key}: {exc}") from exc
        # botocore StreamingBody: read(amt) + close()
        return response["Body"]

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str,
        *,
        timeout: float | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        # boto3 has no per-call timeout; connect/read timeouts live on the client.
        # The scope, deadline included, is checked from the transfer's
        # progress callback, which runs as each part's bytes go out.
        kwargs: dict[str, Any] = {"ExtraArgs": {"ContentType": content_type}}
        if scope is not None:
            scope.check("upload")
            kwargs["Callback"] = _progress_check(scope)
        try:
            self._client.upload_fileobj(content, self._bucket, key, **kwargs)
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise ObjectStoreFailed(f"S3 upload failed for {key}: {exc}") from exc
        logger.debug("S3ObjectStore: uploaded s3://%s/%s", self._bucket, key)


def _progress_check(scope: CancelScope) -> Callable[[int], None]:
    def _callback(bytes_transferred: int) -> None:
        scope.check("upload")

    return _callback
