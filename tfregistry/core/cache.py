"""Module materialization cache: the object store as a lazily-filled archive cache.

The MaterializationCache wires together the ObjectStore, the
VersionControlFetcher and the archiver. For one coordinate it:

    derive key -> exists? -> (miss) lease -> exists? -> fetch -> pack
        -> put -> cleanup -> public path

Every stage outcome is emitted as a structured ``MaterializationEvent``; this
is the only component that logs materialization progress.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import time
from collections.abc import Callable
from typing import BinaryIO, TypeVar

from tfregistry.config import RegistryConfig
from tfregistry.core.archiver import pack
from tfregistry.core.context import CancelScope
from tfregistry.core.fetcher import VersionControlFetcher
from tfregistry.core.keys import ARCHIVE_CONTENT_TYPE, cache_key, public_path
from tfregistry.core.leases import KeyLeases
from tfregistry.models.archives import PackedArchive, Workspace
from tfregistry.models.coordinates import ModuleCoordinate, SourceDescriptor
from tfregistry.models.events import (
    EventOutcome,
    MaterializationEvent,
    MaterializationStage,
)
from tfregistry.storage import ObjectStore

logger = logging.getLogger("tfregistry.materialization")

T = TypeVar("T")

EventListener = Callable[[MaterializationEvent], None]


class MaterializationError(RuntimeError):
    """A materialization call failed at ``stage``.

    The underlying error (``CloneFailed``, ``ArchiveFailed``,
    ``ObjectStoreFailed``, ``OperationCancelled``, ...) is chained as
    ``__cause__`` and kept on ``cause``.
    """

    def __init__(
        self,
        stage: MaterializationStage,
        coordinate: ModuleCoordinate,
        cause: BaseException,
    ) -> None:
        super().__init__(f"{coordinate} failed at {stage.value}: {cause}")
        self.stage = stage
        self.coordinate = coordinate
        self.cause = cause


class MaterializationCache:
    """Serves module archives from the store, building them on a miss.

    Parameters
    ----------
    store:
        The active ObjectStore adapter.
    fetcher:
        Clones module source into ephemeral workspaces.
    hostname:
        Public base URL used to build download paths.
    archive_exclude:
        Top-level names left out of every archive.
    leases:
        Per-key lease table. ``None`` disables same-key serialization.
    """

    def __init__(
        self,
        store: ObjectStore,
        fetcher: VersionControlFetcher,
        *,
        hostname: str,
        archive_exclude: tuple[str, ...] | list[str] = (".git",),
        leases: KeyLeases | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._hostname = hostname
        self._exclude = tuple(archive_exclude)
        self._leases = leases
        self._listeners: list[EventListener] = []

    @classmethod
    def from_config(cls, config: RegistryConfig, store: ObjectStore) -> MaterializationCache:
        return cls(
            store,
            VersionControlFetcher(git_binary=config.git_binary, work_dir=config.work_dir),
            hostname=config.hostname,
            archive_exclude=config.archive_exclude,
            leases=KeyLeases() if config.per_key_lease else None,
        )

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def store(self) -> ObjectStore:
        return self._store

    def add_listener(self, listener: EventListener) -> None:
        """Receive every MaterializationEvent emitted from now on."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Materialize
    # ------------------------------------------------------------------

    def materialize(
        self,
        coordinate: ModuleCoordinate,
        source: SourceDescriptor,
        *,
        scope: CancelScope | None = None,
    ) -> str:
        """Make sure *coordinate*'s archive is in the store; return its public path.

        Lifecycle on a miss:
        1. Hold the key's lease (waiting no longer than *scope* allows) and
           re-check the store
        2. Fetch the tagged source into a workspace
        3. Pack the module root into a zip
        4. Upload the zip
        5. Delete workspace and zip, whatever happened above

        Raises
        ------
        MaterializationError
            Tagged with the stage that failed. Nothing is retried, and a failed
            upload leaves the key absent.
        """
        key = cache_key(coordinate)
        path = public_path(self._hostname, coordinate)

        if self._lookup(coordinate, key, scope):
            self._emit(coordinate, key, MaterializationStage.LOOKUP, EventOutcome.HIT)
            return path
        self._emit(coordinate, key, MaterializationStage.LOOKUP, EventOutcome.MISS)

        with contextlib.ExitStack() as stack:
            if self._leases is not None:
                leases = self._leases
                self._run_stage(
                    MaterializationStage.LOOKUP, coordinate, key, scope,
                    lambda: stack.enter_context(leases.hold(key, scope=scope)),
                    emit_ok=False,
                )
            # Another caller may have filled the key while we waited.
            if self._lookup(coordinate, key, scope):
                self._emit(
                    coordinate, key, MaterializationStage.LOOKUP, EventOutcome.HIT,
                    detail="populated while waiting for lease",
                )
                return path
            self._populate(coordinate, key, source, scope)

        return path

    def download(self, coordinate: ModuleCoordinate) -> BinaryIO:
        """Open the stored archive of *coordinate* (caller closes it).

        Raises ``ObjectNotFound`` if it was never materialized.
        """
        return self._store.get(cache_key(coordinate))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _lookup(
        self, coordinate: ModuleCoordinate, key: str, scope: CancelScope | None
    ) -> bool:
        def _exists() -> bool:
            return self._store.exists(key, timeout=_remaining(scope))

        return self._run_stage(
            MaterializationStage.LOOKUP, coordinate, key, scope, _exists, emit_ok=False
        )

    def _populate(
        self,
        coordinate: ModuleCoordinate,
        key: str,
        source: SourceDescriptor,
        scope: CancelScope | None,
    ) -> None:
        workspace: Workspace | None = None
        archive: PackedArchive | None = None
        try:
            workspace = self._run_stage(
                MaterializationStage.FETCH, coordinate, key, scope,
                lambda: self._fetcher.fetch(source, coordinate.version, scope=scope),
                describe=lambda ws: f"ref={ws.ref}",
            )
            destination = workspace.root.with_name(f"{workspace.root.name}.zip")
            archive = self._run_stage(
                MaterializationStage.PACK, coordinate, key, scope,
                lambda: pack(workspace.module_root, destination, exclude=self._exclude),
                describe=_describe_archive,
            )
            self._run_stage(
                MaterializationStage.UPLOAD, coordinate, key, scope,
                lambda: self._upload(key, archive, scope),
                describe=lambda _: f"bytes={archive.size_bytes}",
            )
        finally:
            _cleanup(workspace, archive)

    def _upload(self, key: str, archive: PackedArchive, scope: CancelScope | None) -> None:
        with open(archive.path, "rb") as fh:
            self._store.put(
                key, fh, ARCHIVE_CONTENT_TYPE, timeout=_remaining(scope), scope=scope
            )

    def _run_stage(
        self,
        stage: MaterializationStage,
        coordinate: ModuleCoordinate,
        key: str,
        scope: CancelScope | None,
        action: Callable[[], T],
        *,
        describe: Callable[[T], str] | None = None,
        emit_ok: bool = True,
    ) -> T:
        started = time.perf_counter()
        try:
            if scope is not None:
                scope.check(stage.value)
            result = action()
        except Exception as exc:
            self._emit(
                coordinate, key, stage, EventOutcome.FAILED,
                duration_ms=_elapsed_ms(started), detail=str(exc),
            )
            raise MaterializationError(stage, coordinate, exc) from exc

        if emit_ok:
            self._emit(
                coordinate, key, stage, EventOutcome.OK,
                duration_ms=_elapsed_ms(started),
                detail=describe(result) if describe else "",
            )
        return result

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(
        self,
        coordinate: ModuleCoordinate,
        key: str,
        stage: MaterializationStage,
        outcome: EventOutcome,
        *,
        duration_ms: float = 0.0,
        detail: str = "",
    ) -> None:
        event = MaterializationEvent(
            coordinate=str(coordinate),
            key=key,
            stage=stage,
            outcome=outcome,
            duration_ms=round(duration_ms, 3),
            detail=detail,
        )
        level = logging.WARNING if outcome is EventOutcome.FAILED else logging.INFO
        logger.log(
            level,
            "%s stage=%s outcome=%s %s",
            event.coordinate,
            stage.value,
            outcome.value,
            detail,
            extra={"materialization": event.model_dump(mode="json")},
        )
        for listener in self._listeners:
            listener(event)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _remaining(scope: CancelScope | None) -> float | None:
    return scope.remaining() if scope is not None else None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _describe_archive(archive: PackedArchive) -> str:
    detail = f"entries={archive.entry_count} bytes={archive.size_bytes} sha256={archive.sha256}"
    if archive.skipped:
        detail += f" skipped={','.join(archive.skipped)}"
    return detail


def _cleanup(workspace: Workspace | None, archive: PackedArchive | None) -> None:
    """Delete the call's ephemeral files. Never raises."""
    if workspace is not None:
        shutil.rmtree(workspace.root, ignore_errors=True)
    if archive is not None:
        try:
            archive.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove archive %s: %s", archive.path, exc)

