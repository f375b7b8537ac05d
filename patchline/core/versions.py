"""Remote build discovery by probing candidate ordinals on the patch host."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from patchline.core.config import HttpConfig, PatchConfig
from patchline.core.http import HttpComponent
from patchline.core.platform import Platform, patch_keys
from patchline.core.types import Channel, ResolveFailure, VersionCheckResult, normalize_channel

logger = structlog.get_logger()

PATCH_EXTENSION = ".pwr"


def patch_url(host: str, plat: Platform, channel: str, from_version: int, to_version: int) -> str:
    """Deterministic patch URL; ``from_version`` 0 is the full package."""
    os_key, arch = patch_keys(plat)
    return (
        f"{host}/patches/{os_key}/{arch}/{normalize_channel(channel)}/"
        f"{from_version}/{to_version}{PATCH_EXTENSION}"
    )


def sort_versions(versions: list[int]) -> list[int]:
    """Deduplicate and order newest first."""
    return sorted(set(versions), reverse=True)


class VersionResolver(HttpComponent):
    """Discover which build ordinals exist for a platform and channel.

    All ordinals in the probe range are checked at once with HEAD requests;
    one failing probe never aborts the batch.
    """

    def __init__(
        self,
        patch_config: PatchConfig,
        http_config: HttpConfig,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(http_config, client)
        self.patch_config = patch_config
        self.platform = platform or Platform.current()

    def probe_count(self, channel: str) -> int:
        """Size of the ordinal range probed for a channel."""
        if normalize_channel(channel) == Channel.PRE_RELEASE:
            return self.patch_config.prerelease_probe_count
        return self.patch_config.release_probe_count

    async def _probe(self, version: int, url: str) -> tuple[int, str, bool, str | None]:
        try:
            response = await self.async_client.head(url)
        except httpx.HTTPError as e:
            logger.warning("version_probe_failed", url=url, error=str(e))
            return version, url, False, str(e) or type(e).__name__
        return version, url, response.is_success, None

    async def find_latest(
        self, channel: str | None = None, platform: Platform | None = None
    ) -> VersionCheckResult:
        """Probe the patch host for available ordinals.

        Args:
            channel: Release channel, defaults to the configured channel
            platform: Platform override, defaults to the resolver's platform

        Returns:
            VersionCheckResult with latest ordinal, available ordinals
            and a failure category when nothing was found
        """
        plat = platform or self.platform
        channel = normalize_channel(channel or self.patch_config.channel)

        if patch_keys(plat)[0] == "unknown":
            logger.warning("version_probe_unsupported_platform", os=plat.os)
            return VersionCheckResult(
                error="unsupported operating system",
                failure=ResolveFailure.UNSUPPORTED_PLATFORM,
            )

        probes = [
            self._probe(version, patch_url(self.patch_config.host, plat, channel, 0, version))
            for version in range(1, self.probe_count(channel) + 1)
        ]
        outcomes = await asyncio.gather(*probes)

        result = VersionCheckResult()
        had_request_errors = False
        found: list[int] = []
        for version, url, exists, request_error in outcomes:
            result.checked_urls.append(url)
            if request_error is not None:
                had_request_errors = True
            if exists:
                found.append(version)
                if version > result.latest:
                    result.latest = version
                    result.success_url = url

        result.available = sort_versions(found)

        if result.latest == 0:
            if had_request_errors:
                result.error = "unable to reach update server"
                result.failure = ResolveFailure.UNREACHABLE
            else:
                result.error = "no game versions found for this platform"
                result.failure = ResolveFailure.NO_VERSIONS

        logger.debug(
            "version_probe_complete",
            channel=channel,
            latest=result.latest,
            available=result.available,
            error=result.error,
        )
        return result
