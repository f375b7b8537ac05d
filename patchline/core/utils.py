"""Shared utilities for patchline."""

from __future__ import annotations

import hashlib
import os
import shutil
from pathlib import Path

KIB = 1024.0
MIB = KIB * 1024.0


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string with appropriate unit (e.g., "1.5 MB")

    Example:
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(1536)
        '1.5 KB'
        >>> format_size(1048576)
        '1.0 MB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"


def format_speed(bytes_per_sec: float) -> str:
    """Render a transfer rate.

    Example:
        >>> format_speed(512)
        '512 B/s'
        >>> format_speed(2048)
        '2.0 KB/s'
    """
    if bytes_per_sec < KIB:
        return f"{bytes_per_sec:.0f} B/s"
    if bytes_per_sec < MIB:
        return f"{bytes_per_sec / KIB:.1f} KB/s"
    return f"{bytes_per_sec / MIB:.1f} MB/s"


def progress_percent(downloaded: int, total: int | None) -> float:
    """Download progress in percent, 0 when the total is unknown."""
    if total is None or total <= 0:
        return 0.0
    return downloaded / total * 100.0


def sha256_file(path: Path, chunk_size: int = 8192) -> str:
    """Hex SHA-256 digest of a file, read in chunks."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def copy_tree(src: Path, dst: Path) -> int:
    """Recursively copy ``src`` over ``dst``, overwriting existing files.

    Returns:
        Number of files copied
    """
    copied = 0
    dst.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        target = dst / entry.name
        if entry.is_dir():
            copied += copy_tree(entry, target)
        else:
            shutil.copy2(entry, target)
            copied += 1
    return copied


def remove_path(path: Path) -> bool:
    """Delete a file or directory tree if present.

    Returns:
        True if something was removed
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to a temp file next to ``path`` and swap it in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    tmp_path.write_text(text, encoding="utf-8")
    os.replace(tmp_path, path)
