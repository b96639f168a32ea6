"""Local directory traversal producing the flat list of files to push."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path, PurePath

from onedrive_sync.errors import LocalFSError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFile:
    """A regular file found under the local root.

    Attributes:
        path: Absolute or root-joined filesystem path.
        relative_path: Path relative to the root, '/'-separated.
        size_bytes: File size at scan time.
    """

    path: Path
    relative_path: str
    size_bytes: int


@dataclass(frozen=True)
class LocalDirectory:
    """A directory found under the local root; traversed, never emitted."""

    path: Path
    relative_path: str


LocalEntry = LocalFile | LocalDirectory


def relative_to_root(path: str | PurePath, root: str | PurePath) -> str:
    """Map a local path under ``root`` to its '/'-separated relative form.

    "MyLocalVault/Notas/test.md" under "MyLocalVault" maps to "Notas/test.md".

    Raises:
        ValueError: If ``path`` is not inside ``root``.
    """
    return PurePath(path).relative_to(PurePath(root)).as_posix()


def _scan(directory: Path, root: Path) -> Iterator[LocalEntry]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise LocalFSError(f"cannot list {directory}: {exc}") from exc

    for entry in entries:
        path = Path(entry.path)
        relative = relative_to_root(path, root)
        if entry.is_symlink():
            logger.debug("[_scan] skipping symlink; path:%s", relative)
        elif entry.is_dir(follow_symlinks=False):
            yield LocalDirectory(path=path, relative_path=relative)
        elif entry.is_file(follow_symlinks=False):
            try:
                size = entry.stat(follow_symlinks=False).st_size
            except FileNotFoundError:
                logger.debug("[_scan] file vanished during scan; path:%s", relative)
                continue
            except OSError as exc:
                raise LocalFSError(f"cannot stat {path}: {exc}") from exc
            yield LocalFile(path=path, relative_path=relative, size_bytes=size)


def _walk(directory: Path, root: Path) -> Iterator[LocalFile]:
    for entry in _scan(directory, root):
        match entry:
            case LocalFile():
                yield entry
            case LocalDirectory(path=subdir):
                yield from _walk(subdir, root)


def enumerate_files(root: str | Path) -> list[LocalFile]:
    """Recursively list every regular file under ``root``, depth first.

    Entries are visited in name order within each directory, so the
    result is deterministic for an unchanged tree. Empty directories
    contribute nothing.

    Args:
        root: Local directory to enumerate.

    Returns:
        One LocalFile per regular file; empty for an empty directory.

    Raises:
        LocalFSError: If ``root`` does not exist, is not a directory, or
            a subdirectory cannot be read.
    """
    root_path = Path(root)
    if not root_path.exists():
        raise LocalFSError(f"local root does not exist: {root_path}")
    if not root_path.is_dir():
        raise LocalFSError(f"local root is not a directory: {root_path}")

    files = list(_walk(root_path, root_path))
    logger.info("[enumerate_files] scanned local root; root:%s;file_count:%d", root_path, len(files))
    return files
