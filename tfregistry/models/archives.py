"""Transient archive and workspace models.

Both describe files owned by exactly one materialization call. Neither is
ever persisted; the paths stop being valid once the call cleans up.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class Workspace(BaseModel):
    """An ephemeral clone of module source.

    ``root`` is what gets deleted; ``module_root`` is what gets packed
    (the checkout, or the configured folder inside it).
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    module_root: Path
    ref: str


class PackedArchive(BaseModel):
    """A zip file produced from a directory tree, plus what went into it."""

    model_config = ConfigDict(frozen=True)

    path: Path
    base_name: str
    entry_count: int
    size_bytes: int
    sha256: str  # hex digest of the zip bytes
    skipped: list[str] = []  # relative paths of symlinks and special files
