"""Local filesystem object store, for development and tests.

Storage layout: {base_path}/{key}; keys are slash-separated relative paths.
Writes land in a temp file in the target directory and are renamed into
place, so a key only becomes visible once its content is complete.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from tfregistry.core.context import CancelScope, OperationCancelled
from tfregistry.storage import ObjectNotFound, ObjectStoreFailed

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1 << 20


class LocalObjectStore:
    """Directory-backed key/value store.

    Parameters
    ----------
    base_path:
        Root directory for stored objects. Created if missing.
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base = Path(base_path).resolve()
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def backend(self) -> str:
        return "local"

    @property
    def base_path(self) -> Path:
        return self._base

    def _object_path(self, key: str) -> Path:
        """Map a key to its file, refusing keys that leave the base directory."""
        path = (self._base / key).resolve()
        if not key or not path.is_relative_to(self._base) or path == self._base:
            raise ObjectStoreFailed(f"invalid key: {key!r}")
        return path

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        return self._object_path(key).is_file()

    def get(self, key: str) -> BinaryIO:
        path = self._object_path(key)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise ObjectNotFound(f"object not found: {key}") from exc
        except OSError as exc:
            raise ObjectStoreFailed(f"failed to read {key}: {exc}") from exc

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str,
        *,
        timeout: float | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        path = self._object_path(key)
        tmp_name = ""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".upload-", dir=path.parent)
            with os.fdopen(fd, "wb") as out:
                _copy(content, out, scope)
            os.replace(tmp_name, path)
        except OperationCancelled:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise ObjectStoreFailed(f"failed to write {key}: {exc}") from exc

        logger.debug("LocalObjectStore: wrote %s (%s)", path, content_type)


def _copy(src: BinaryIO, dst: BinaryIO, scope: CancelScope | None) -> None:
    while True:
        if scope is not None:
            scope.check("upload")
        chunk = src.read(_CHUNK_SIZE)
        if not chunk:
            return
        dst.write(chunk)
