"""File helpers — directory walk, retrying copy, guarded path joins."""

from __future__ import annotations

import errno
import re
import shutil
import time
from pathlib import Path

from loguru import logger

from gamesaver.core.errors import PathEscapeError

# Errors worth retrying: the file is locked or briefly inaccessible
_TRANSIENT_ERRNOS = {errno.EBUSY, errno.EACCES, errno.EPERM}
# ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION
_TRANSIENT_WINERRORS = {32, 33}

_BASE_DELAY = 0.2
_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def walk_files(root: Path) -> list[Path]:
    """Return every regular file beneath *root*, sorted. Symlinks are skipped."""
    return sorted(
        child for child in root.rglob("*") if child.is_file() and not child.is_symlink()
    )


def is_transient_error(error: OSError) -> bool:
    if isinstance(error, PermissionError):
        return True
    if getattr(error, "winerror", None) in _TRANSIENT_WINERRORS:
        return True
    return error.errno in _TRANSIENT_ERRNOS


def copy_file_with_retries(src: Path, dest: Path, retries: int = 3) -> None:
    """
    Copy one file, retrying locked/busy/permission failures with exponential backoff.

    Any other ``OSError`` is raised immediately; so is the last transient
    failure once *retries* is exhausted.
    """
    for attempt in range(retries + 1):
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
            return
        except OSError as e:
            if attempt >= retries or not is_transient_error(e):
                raise
            delay = _BASE_DELAY * (2**attempt)
            logger.debug(f"Copy of {src.name} failed ({e}), retrying in {delay:.1f}s")
            time.sleep(delay)


def remove_dir(path: Path) -> None:
    """Delete a directory tree if it exists. Errors propagate."""
    if path.exists():
        shutil.rmtree(path)


def split_stored_path(value: str) -> list[str]:
    """Split a stored relative path on either separator, as written on any OS."""
    return [part for part in re.split(r"[\\/]+", value) if part and part != "."]


def safe_join(root: Path, *parts: str) -> Path:
    """
    Join stored path fragments under *root*.

    Raises PathEscapeError if a fragment is absolute or the result
    resolves outside *root*.
    """
    target = Path(root)
    for part in parts:
        if part.startswith(("/", "\\")) or _DRIVE_RE.match(part):
            raise PathEscapeError(part)
        for piece in split_stored_path(part):
            target = target / piece
    base = Path(root).resolve()
    resolved = target.resolve()
    if resolved != base and not resolved.is_relative_to(base):
        raise PathEscapeError(str(target))
    return target
