"""Launcher self-update check against the latest published release."""

from __future__ import annotations

from enum import StrEnum

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from patchline import __version__
from patchline.core.config import AppConfig, HttpConfig, UpdateCheckConfig
from patchline.core.http import HttpComponent

logger = structlog.get_logger()


class UpdateStatus(StrEnum):
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    CHECK_FAILED = "check_failed"


class ReleaseInfo(BaseModel):
    """Subset of the release document the check needs."""

    tag_name: str
    html_url: str = ""


class SelfUpdateCheck(BaseModel):
    """Outcome of a self-update check."""

    status: UpdateStatus
    current_version: str
    latest_version: str | None = None
    url: str | None = None
    error: str | None = None


def normalize_version(version: str) -> str:
    """Strip surrounding whitespace and any leading ``v``."""
    return version.strip().lstrip("v")


def parse_version_parts(version: str) -> list[int]:
    """Numeric dot-separated components; non-numeric parts are dropped."""
    parts = []
    for part in version.split("."):
        try:
            parts.append(int(part))
        except ValueError:
            continue
    return parts


def compare_versions(a: str, b: str) -> int:
    """Return 1, 0 or -1 as ``a`` is newer than, equal to or older than ``b``.

    Missing trailing components count as zero, so ``0.1`` equals ``0.1.0``.
    """
    parts_a = parse_version_parts(a)
    parts_b = parse_version_parts(b)
    width = max(len(parts_a), len(parts_b))
    parts_a += [0] * (width - len(parts_a))
    parts_b += [0] * (width - len(parts_b))
    if parts_a > parts_b:
        return 1
    if parts_a < parts_b:
        return -1
    return 0


class SelfUpdateChecker(HttpComponent):
    """Compare the running launcher with the latest published release."""

    def __init__(
        self,
        update_config: UpdateCheckConfig,
        http_config: HttpConfig,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_config, client)
        self.update_config = update_config

    async def fetch_latest_release(self) -> ReleaseInfo:
        response = await self.async_client.get(
            self.update_config.releases_url,
            headers={"Accept": "application/vnd.github+json"},
        )
        response.raise_for_status()
        return ReleaseInfo.model_validate_json(response.content)

    async def check(self, current_version: str = __version__) -> SelfUpdateCheck:
        """Never raises; failures are reported as ``CHECK_FAILED``."""
        try:
            release = await self.fetch_latest_release()
        except httpx.HTTPStatusError as e:
            error = f"release endpoint returned status {e.response.status_code}"
        except httpx.HTTPError as e:
            error = f"failed to check for updates: {e}"
        except ValidationError as e:
            error = f"failed to parse release info: {e.error_count()} invalid field(s)"
        else:
            latest = normalize_version(release.tag_name)
            if compare_versions(latest, normalize_version(current_version)) > 0:
                logger.info(
                    "launcher_update_available", current=current_version, latest=release.tag_name
                )
                return SelfUpdateCheck(
                    status=UpdateStatus.UPDATE_AVAILABLE,
                    current_version=current_version,
                    latest_version=release.tag_name,
                    url=release.html_url,
                )
            logger.debug("launcher_up_to_date", current=current_version, latest=release.tag_name)
            return SelfUpdateCheck(
                status=UpdateStatus.UP_TO_DATE,
                current_version=current_version,
                latest_version=release.tag_name,
            )

        logger.warning("launcher_update_check_failed", error=error)
        return SelfUpdateCheck(
            status=UpdateStatus.CHECK_FAILED, current_version=current_version, error=error
        )


async def check_for_updates(config: AppConfig) -> SelfUpdateCheck:
    async with SelfUpdateChecker(config.updates, config.http) as checker:
        return await checker.check()
