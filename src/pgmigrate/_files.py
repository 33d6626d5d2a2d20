"""
Durable file helpers shared by the file-backed stores.

Writes go to a temporary file in the target directory, are fsync'ed and
then renamed over the final name, so readers observe either the previous
state or the complete new file, never a partial one.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from urllib.parse import quote


def safe_name(unit: str) -> str:
    """
    Encode a unit name for use as a file name component.

    Plain database names (letters, digits, "_", "-", ".") are kept as-is;
    anything else, including path separators, is percent-encoded. Names
    made only of dots ("." and "..") have every dot encoded so they never
    refer to the containing directory or its parent.
    """
    encoded = quote(unit, safe="")
    if not encoded.strip("."):
        return encoded.replace(".", "%2E")
    return encoded


def is_strictly_inside(path: Path, directory: Path) -> bool:
    """Whether path resolves to an entry below directory, not directory itself."""
    resolved = path.resolve()
    root = directory.resolve()
    return resolved != root and resolved.is_relative_to(root)


def write_atomic(path: Path, data: bytes) -> None:
    """
    Atomically and durably write a file.

    Args:
        path: Final file path; its parent directory is created if needed.
        data: File contents.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    _fsync_directory(path.parent)


def _fsync_directory(directory: Path) -> None:
    """Persist a rename by syncing the containing directory (POSIX only)."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
