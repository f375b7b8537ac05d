"""Patch acquisition: incremental-or-full resolution, cache reuse, download."""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog

from patchline.core.cache import PatchCache
from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import HttpConfig, PatchConfig
from patchline.core.download import stream_download
from patchline.core.errors import UnsupportedPlatformError
from patchline.core.http import HttpComponent, head_content_length, head_ok
from patchline.core.platform import Platform, patch_keys
from patchline.core.types import PatchTarget, ProgressCallback, ProgressUpdate, emit_progress
from patchline.core.versions import patch_url

logger = structlog.get_logger()


class PatchFetcher(HttpComponent):
    """Resolve and download the patch moving an install to a target version."""

    def __init__(
        self,
        patch_config: PatchConfig,
        http_config: HttpConfig,
        cache: PatchCache,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(http_config, client)
        self.patch_config = patch_config
        self.cache = cache
        self.platform = platform or Platform.current()

    async def resolve(self, channel: str, from_version: int, to_version: int) -> PatchTarget:
        """Pick the incremental patch if it exists, otherwise the full package.

        Args:
            channel: Release channel
            from_version: Installed version, 0 for a fresh install
            to_version: Target version

        Returns:
            Resolved PatchTarget with the remote size when declared
        """
        host = self.patch_config.host
        url = patch_url(host, self.platform, channel, from_version, to_version)
        effective_from = from_version

        if from_version == 0 or not await head_ok(self.async_client, url):
            if from_version != 0:
                logger.info(
                    "incremental_patch_unavailable",
                    from_version=from_version,
                    to_version=to_version,
                )
            url = patch_url(host, self.platform, channel, 0, to_version)
            effective_from = 0

        expected_size = await head_content_length(self.async_client, url)
        return PatchTarget(
            from_version=effective_from,
            to_version=to_version,
            url=url,
            expected_size=expected_size,
        )

    async def acquire(
        self,
        channel: str,
        from_version: int,
        to_version: int,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """Return a local patch file for ``to_version``, downloading if needed.

        Args:
            channel: Release channel
            from_version: Installed version, 0 for a fresh install
            to_version: Target version
            cancel: Cancellation token
            on_progress: Progress observer

        Returns:
            Path of the patch file in the cache directory

        Raises:
            OperationCancelledError: Cancelled by the user
            UnsupportedPlatformError: No builds for this OS
            StatusError, NetworkError, IntegrityError, FilesystemError
        """
        check_cancel(cancel, "before_patch_resolve")
        if patch_keys(self.platform)[0] == "unknown":
            raise UnsupportedPlatformError("unsupported operating system")

        target = await self.resolve(channel, from_version, to_version)
        self.cache.ensure_dir()

        dest = self.cache.path_for(to_version)
        logger.debug(
            "patch_target",
            url=target.url,
            dest=str(dest),
            expected_size=target.expected_size,
        )
        cached = self.cache.lookup(to_version, target.expected_size)
        if cached is not None:
            return cached

        check_cancel(cancel, "before_patch_download")
        emit_progress(
            on_progress,
            ProgressUpdate(
                stage="download",
                progress=0.0,
                message="Downloading game patch...",
                current_file=dest.name,
                total=target.expected_size,
            ),
        )
        await stream_download(
            self.async_client,
            target.url,
            dest,
            http_config=self.http_config,
            cancel=cancel,
            on_progress=on_progress,
            expected_size=target.expected_size,
            stage="download",
            message="Downloading game patch...",
        )
        logger.info("patch_acquired", version=to_version, full=target.is_full)
        return dest
