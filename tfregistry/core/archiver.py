"""Deterministic zip packing of a module directory.

Layout: every entry is stored as ``{base_name}/{relative_path}`` where
``base_name`` is the packed directory's own name, so the archive unpacks into
a single self-named directory. Directories are zero-length entries with a
trailing ``/``; files are deflated.

Traversal is sorted and every entry carries the same fixed timestamp, so
packing the same tree twice yields the same bytes.

Non-regular files are skipped: symlinks are never followed or stored, and
neither are FIFOs, sockets or device nodes. Their relative paths are
reported in ``PackedArchive.skipped``.
"""

from __future__ import annotations

import os
import stat
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path

from tfregistry.core.hasher import sha256_file
from tfregistry.models.archives import PackedArchive

# Earliest timestamp the zip format can represent.
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)

_DIR_MODE = stat.S_IFDIR | 0o755
_MSDOS_DIRECTORY = 0x10


class ArchiveFailed(RuntimeError):
    """Raised when a directory tree cannot be packed."""


def _dir_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name if name.endswith("/") else f"{name}/", FIXED_DATE_TIME)
    info.compress_type = zipfile.ZIP_STORED
    info.external_attr = (_DIR_MODE << 16) | _MSDOS_DIRECTORY
    return info


def _file_info(name: str, mode: int) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, FIXED_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = (stat.S_IFREG | stat.S_IMODE(mode)) << 16
    return info


def pack(
    directory_root: Path | str,
    destination: Path | str | None = None,
    *,
    exclude: Iterable[str] = (),
) -> PackedArchive:
    """Pack *directory_root* into a zip file.

    Parameters
    ----------
    directory_root:
        Directory to pack. Its own name becomes the archive's root entry.
    destination:
        Path of the zip to write. Defaults to a new temp file next to
        *directory_root*; the caller owns (and must delete) the result.
    exclude:
        Names directly under *directory_root* to leave out (e.g. ``.git``).

    Raises
    ------
    ArchiveFailed
        If the root is not a directory or any read/write fails. A partially
        written destination file is removed before raising.
    """
    root = Path(directory_root)
    if not root.is_dir():
        raise ArchiveFailed(f"not a directory: {root}")

    base_name = root.resolve().name
    excluded = set(exclude)

    if destination is None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{base_name}-", suffix=".zip", dir=root.resolve().parent
        )
        os.close(fd)
        archive_path = Path(tmp_name)
    else:
        archive_path = Path(destination)

    entry_count = 0
    skipped: list[str] = []

    def _walk_error(exc: OSError) -> None:
        raise exc

    try:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(_dir_info(base_name), b"")
            entry_count += 1

            for current, dirnames, filenames in os.walk(root, onerror=_walk_error):
                current_path = Path(current)
                rel_dir = current_path.relative_to(root)
                at_top = rel_dir == Path(".")

                kept_dirs: list[str] = []
                for dirname in sorted(dirnames):
                    rel = (rel_dir / dirname).as_posix()
                    if at_top and dirname in excluded:
                        continue
                    if (current_path / dirname).is_symlink():
                        skipped.append(rel)
                        continue
                    kept_dirs.append(dirname)
                    zf.writestr(_dir_info(f"{base_name}/{rel}"), b"")
                    entry_count += 1
                # os.walk descends into whatever is left in dirnames, in order.
                dirnames[:] = kept_dirs

                for filename in sorted(filenames):
                    if at_top and filename in excluded:
                        continue
                    path = current_path / filename
                    rel = (rel_dir / filename).as_posix()
                    st = path.lstat()
                    if not stat.S_ISREG(st.st_mode):
                        skipped.append(rel)
                        continue
                    info = _file_info(f"{base_name}/{rel}", st.st_mode)
                    with open(path, "rb") as src, zf.open(info, "w") as dst:
                        for chunk in iter(lambda: src.read(1024 * 1024), b""):
                            dst.write(chunk)
                    entry_count += 1
    except (OSError, zipfile.BadZipFile, ValueError) as exc:
        archive_path.unlink(missing_ok=True)
        raise ArchiveFailed(f"failed to pack {root}: {exc}") from exc

    return PackedArchive(
        path=archive_path,
        base_name=base_name,
        entry_count=entry_count,
        size_bytes=archive_path.stat().st_size,
        sha256=sha256_file(archive_path),
        skipped=skipped,
    )
