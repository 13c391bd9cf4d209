"""
spa_deploy.manifest — Build the local file manifest for a site directory.

One FileEntry per regular file under the root.  Symlinks are never
followed, so link cycles cannot occur and linked files are not published.

Hash algorithm:
    - SHA-256 over the raw file bytes, streamed in 1 MiB chunks
    - full 64-character hex digest
"""

from __future__ import annotations

import fnmatch
import hashlib
import mimetypes
import os
import stat
from collections.abc import Iterable
from pathlib import Path

from spa_deploy.config import get_logger
from spa_deploy.exceptions import SiteRootUnreadable
from spa_deploy.models import DEFAULT_CONTENT_TYPE, FileEntry

logger = get_logger()

CHUNK_SIZE = 1024 * 1024


def compute_file_hash(path: Path) -> str:
    """Return the SHA-256 hex digest of a file's contents."""
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def guess_content_type(relative_path: str) -> str:
    """Content type from the file extension; generic binary when unknown."""
    content_type, _ = mimetypes.guess_type(relative_path, strict=False)
    return content_type or DEFAULT_CONTENT_TYPE


def is_excluded(relative_path: str, patterns: Iterable[str]) -> bool:
    basename = relative_path.rsplit("/", 1)[-1]
    return any(
        fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(basename, pattern)
        for pattern in patterns
    )


def _raise_walk_error(error: OSError) -> None:
    raise SiteRootUnreadable(f"Cannot read directory {error.filename}: {error.strerror}") from error


def load_manifest(root: str | Path, *, exclude: Iterable[str] = ()) -> list[FileEntry]:
    """Walk root and return its FileEntry list, sorted by relative path.

    Raises SiteRootUnreadable when root is missing, is not a directory, or
    any file or directory under it cannot be read.
    """
    root_path = Path(root)
    patterns = tuple(exclude)
    if not root_path.exists():
        raise SiteRootUnreadable(f"Site directory does not exist: {root_path}")
    if not root_path.is_dir():
        raise SiteRootUnreadable(f"Site path is not a directory: {root_path}")
    if not os.access(root_path, os.R_OK | os.X_OK):
        raise SiteRootUnreadable(f"Site directory is not readable: {root_path}")

    entries: list[FileEntry] = []
    for dirpath, dirnames, filenames in os.walk(
        root_path, followlinks=False, onerror=_raise_walk_error
    ):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            relative_path = path.relative_to(root_path).as_posix()
            try:
                mode = path.lstat().st_mode
            except OSError as exc:
                raise SiteRootUnreadable(f"Cannot stat {path}: {exc.strerror}") from exc
            if not stat.S_ISREG(mode):
                logger.debug("Skipping non-regular file", path=relative_path)
                continue
            if is_excluded(relative_path, patterns):
                logger.debug("Skipping excluded file", path=relative_path)
                continue
            try:
                content_hash = compute_file_hash(path)
                size_bytes = path.stat().st_size
            except OSError as exc:
                raise SiteRootUnreadable(f"Cannot read {path}: {exc.strerror}") from exc
            entries.append(
                FileEntry(
                    relative_path=relative_path,
                    content_hash=content_hash,
                    size_bytes=size_bytes,
                    content_type=guess_content_type(relative_path),
                )
            )

    entries.sort(key=lambda e: e.relative_path)
    logger.info(
        "Loaded local manifest",
        root=str(root_path),
        files=len(entries),
        total_bytes=sum(e.size_bytes for e in entries),
    )
    return entries
