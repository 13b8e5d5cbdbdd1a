"""Atomic file writes for the file-backed page and history stores."""

import os
from pathlib import Path
from typing import Optional

import structlog

from saynote.services.exceptions import FileModifiedError

logger = structlog.get_logger()


def file_mtime(path: Path) -> Optional[float]:
    """Modification time of ``path``, or None if it does not exist."""
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return None


def _check_unmodified(path: Path, expected_mtime: Optional[float], stage: str) -> None:
    if expected_mtime is None:
        return
    current = file_mtime(path)
    if current is not None and current != expected_mtime:
        raise FileModifiedError(str(path), f"File was modified by another writer ({stage} check)")


def atomic_write(path: Path, content: str, expected_mtime: Optional[float] = None) -> float:
    """
    Atomically write content to file with temp-file-rename pattern.

    This function implements safe file writing with:
    1. Early modification check (before write)
    2. Write to temporary file
    3. fsync to ensure data is on disk
    4. Late modification check (after write, before rename)
    5. Atomic rename to replace original file

    Args:
        path: Target file path (parent directories are created)
        content: Content to write
        expected_mtime: mtime the caller last saw; if the file now has a
                        different mtime someone else wrote it (None skips the check)

    Returns:
        The new file's mtime, to pass as ``expected_mtime`` next time

    Raises:
        FileModifiedError: If file was modified by another writer
        OSError: On file I/O errors
        PermissionError: On permission errors
    """
    _check_unmodified(path, expected_mtime, "early")

    path.parent.mkdir(parents=True, exist_ok=True)
    # Same directory keeps the rename on one filesystem
    temp_path = path.parent / f".{path.name}.tmp.{os.getpid()}"

    try:
        temp_path.write_text(content, encoding='utf-8')

        with open(temp_path, 'r+', encoding='utf-8') as f:
            f.flush()
            os.fsync(f.fileno())

        _check_unmodified(path, expected_mtime, "late")

        # On POSIX systems, this is atomic even if target exists
        temp_path.replace(path)

        logger.debug(
            "atomic_write_success",
            path=str(path),
            size=len(content)
        )
        return path.stat().st_mtime

    except FileModifiedError:
        if temp_path.exists():
            temp_path.unlink()
        raise

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        logger.error(
            "atomic_write_failed",
            path=str(path),
            error=str(e)
        )
        raise
