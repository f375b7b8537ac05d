"""Patch download cache."""

from __future__ import annotations

from pathlib import Path

import structlog

from patchline.core.errors import FilesystemError
from patchline.core.versions import PATCH_EXTENSION

logger = structlog.get_logger()


class PatchCache:
    """Disk cache of downloaded patch files.

    Cache layout:
    <cache_dir>/
    ├── {to_version}.pwr          # Patch targeting that version
    ├── jre.tar.gz | jre.zip      # Runtime archive
    └── butler.zip                # Patch tool archive (removed after install)

    Patch files are keyed by destination version only. Validity is judged by
    size: an exact match with the remote size, or above a large-file floor
    when the remote size is unknown. A correctly sized but corrupted file
    is accepted.
    """

    def __init__(self, cache_dir: Path, size_floor: int = 1024 * 1024 * 1024):
        """Initialize patch cache.

        Args:
            cache_dir: Cache directory
            size_floor: Minimum size for reuse when the remote size is unknown
        """
        self.cache_dir = cache_dir
        self.size_floor = size_floor

    def path_for(self, to_version: int) -> Path:
        """Deterministic cache path for a destination version."""
        return self.cache_dir / f"{to_version}{PATCH_EXTENSION}"

    def ensure_dir(self) -> None:
        """Create the cache directory."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to create cache directory: {e}") from e

    def is_valid(self, path: Path, expected_size: int | None) -> bool:
        """Check whether a cached file may be reused.

        Args:
            path: Cached file
            expected_size: Remote size, None when unknown

        Returns:
            True if the file exists and passes the size rule
        """
        try:
            size = path.stat().st_size
        except OSError:
            return False

        if expected_size:
            return size == expected_size
        return size > self.size_floor

    def lookup(self, to_version: int, expected_size: int | None) -> Path | None:
        """Return a reusable cached patch, discarding an invalid one.

        Args:
            to_version: Destination version
            expected_size: Remote size, None when unknown

        Returns:
            Path of the cached patch, or None if it must be downloaded
        """
        path = self.path_for(to_version)
        if not path.exists():
            return None

        if self.is_valid(path, expected_size):
            logger.info(
                "patch_cache_hit",
                version=to_version,
                size_rule="exact" if expected_size else "floor",
            )
            return path

        logger.info("patch_cache_discard", version=to_version, path=str(path))
        try:
            path.unlink()
        except OSError as e:
            logger.warning("patch_cache_discard_failed", path=str(path), error=str(e))
        return None
