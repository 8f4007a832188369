"""Object store protocol shared by every storage backend.

All backends implement the ``ObjectStore`` protocol: ``exists``, ``get`` and
``put`` over string keys, plus a ``backend`` name for status output. The
cache only ever talks to this protocol; one concrete adapter is chosen at
startup by ``tfregistry.storage.factory.build_object_store``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tfregistry.core.context import CancelScope


class ObjectNotFound(RuntimeError):
    """Raised by ``get`` when the key does not exist."""


class ObjectStoreFailed(RuntimeError):
    """Raised on any transport, authentication or quota error."""


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol that every storage adapter must implement.

    The store is a plain key/value blob store. It does not enforce
    write-once semantics; the cache checks ``exists`` before ``put``.
    """

    @property
    def backend(self) -> str:
        """Human-readable backend name (``"s3"``, ``"azure-blob"``, ...)."""
        ...

    def exists(self, key: str, *, timeout: float | None = None) -> bool:
        """Metadata-only existence check. Absence is ``False``, not an error.

        Raises
        ------
        ObjectStoreFailed
            On errors other than the object being absent.
        """
        ...

    def get(self, key: str) -> BinaryIO:
        """Open the object for reading.

        The caller must read the stream to the end (or abandon it) and
        ``close()`` it.

        Raises
        ------
        ObjectNotFound
            If *key* is absent.
        ObjectStoreFailed
            On any other error.
        """
        ...

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str,
        *,
        timeout: float | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        """Upload *content* (read to EOF) under *key*.

        When *scope* is given the upload checks it while data is in flight
        and stops with ``OperationCancelled`` once it is no longer live.

        Raises
        ------
        ObjectStoreFailed
            On any transport, authentication or quota error.
        OperationCancelled
            If *scope* is cancelled or expires mid-upload.
        """
        ...


__all__ = ["ObjectNotFound", "ObjectStore", "ObjectStoreFailed"]
