"""Installed-version record and full uninstall.

The record is a single plain-text file holding the version string. It is
written only after a patch was applied or a cached install was confirmed,
so its presence means a complete install of that version exists.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from patchline.core.config import AppConfig
from patchline.core.errors import FilesystemError
from patchline.core.utils import atomic_write_text, remove_path

logger = structlog.get_logger()


class LocalInstallStore:
    """Read and write the installed-version record.

    Args:
        config: Application configuration providing the layout
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    @property
    def path(self) -> Path:
        return self.config.version_file

    def read(self) -> str | None:
        """Installed version string, None when not installed."""
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("install_state_unreadable", path=str(self.path), error=str(e))
            return None
        return value or None

    def read_ordinal(self) -> int | None:
        """Installed version as an ordinal, None if absent or not numeric."""
        value = self.read()
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("install_state_not_numeric", value=value)
            return None

    def write(self, version: str | int) -> None:
        """Persist the installed version."""
        try:
            atomic_write_text(self.path, str(version))
        except OSError as e:
            raise FilesystemError(f"failed to save installed version: {e}") from e
        logger.info("install_state_saved", version=str(version))

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to remove version record: {e}") from e

    def uninstall_targets(self) -> list[Path]:
        config = self.config
        return [
            config.release_dir,
            config.runtime_dir,
            config.tool_dir,
            config.cache_dir,
            config.user_data_dir,
        ]

    def _uninstall(self) -> list[str]:
        removed = []
        for target in self.uninstall_targets():
            try:
                if remove_path(target):
                    removed.append(str(target))
            except OSError as e:
                raise FilesystemError(f"failed to remove {target}: {e}") from e
        self.clear()
        return removed

    async def uninstall(self) -> list[str]:
        """Remove the install tree, runtime, patch tool, cache, user data and record.

        Returns:
            Paths that were removed
        """
        removed = await asyncio.to_thread(self._uninstall)
        logger.info("uninstall_complete", removed=removed)
        return removed
