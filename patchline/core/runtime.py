"""Language runtime provisioning."""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from patchline.core.artifacts import ArtifactProvisioner
from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import AppConfig
from patchline.core.platform import (
    Platform,
    guess_archive_kind,
    runtime_binary_relative_path,
    runtime_fallback_keys,
    runtime_keys,
)
from patchline.core.types import DownloadTarget

logger = structlog.get_logger()

ADOPTIUM_URL = (
    "https://api.adoptium.net/v3/binary/latest/{major}/ga/{os}/{arch}"
    "/jre/hotspot/normal/eclipse?project=jdk"
)

EMBEDDED_RUNTIME_CONFIG: dict = {
    "download_url": {
        "windows": {
            "x64": {
                "url": "https://api.adoptium.net/v3/binary/latest/25/ga/windows/x64/jre/hotspot/normal/eclipse?project=jdk&archive=.zip",
            },
        },
        "macos": {
            "x64": {
                "url": "https://api.adoptium.net/v3/binary/latest/25/ga/mac/x64/jre/hotspot/normal/eclipse?project=jdk&archive=.tar.gz",
            },
            "arm64": {
                "url": "https://api.adoptium.net/v3/binary/latest/25/ga/mac/aarch64/jre/hotspot/normal/eclipse?project=jdk&archive=.tar.gz",
            },
        },
        "linux": {
            "x64": {
                "url": "https://api.adoptium.net/v3/binary/latest/25/ga/linux/x64/jre/hotspot/normal/eclipse?project=jdk&archive=.tar.gz",
            },
            "arm64": {
                "url": "https://api.adoptium.net/v3/binary/latest/25/ga/linux/aarch64/jre/hotspot/normal/eclipse?project=jdk&archive=.tar.gz",
            },
        },
    }
}


class RuntimePlatformEntry(BaseModel):
    """Archive location for one OS/architecture pair."""
    url: str = Field(..., description="Archive download URL")
    sha256: str = Field(default="", description="Expected SHA-256, empty when unknown")


class RuntimeConfigDocument(BaseModel):
    """Runtime configuration: OS -> architecture -> archive."""
    download_url: dict[str, dict[str, RuntimePlatformEntry]] = Field(default_factory=dict)


class RuntimeProvisioner(ArtifactProvisioner):
    """Ensure the language runtime the product launches with is on disk."""

    name = "jre"
    keep_archive = True

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(
            root=config.runtime_dir,
            cache_dir=config.cache_dir,
            http_config=config.http,
            client=client,
            platform=platform,
        )
        self.runtime_config = config.runtime
        self.override_file = config.runtime_override_file

    @property
    def binary_path(self) -> Path:
        return self.root / runtime_binary_relative_path(self.platform)

    async def fetch_remote_config(self) -> RuntimeConfigDocument | None:
        """Fetch the remote configuration document, None on any failure."""
        url = self.runtime_config.config_url
        try:
            response = await self.async_client.get(url)
            response.raise_for_status()
            return RuntimeConfigDocument.model_validate_json(response.text)
        except (httpx.HTTPError, ValidationError) as e:
            logger.warning("runtime_config_remote_failed", url=url, error=str(e))
            return None

    def load_local_config(self) -> RuntimeConfigDocument | None:
        """Read the local override document, None if absent or invalid."""
        path = self.override_file
        try:
            return RuntimeConfigDocument.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug("runtime_config_override_missing", path=str(path))
            return None
        except (OSError, ValidationError) as e:
            logger.warning("runtime_config_override_failed", path=str(path), error=str(e))
            return None

    @staticmethod
    def embedded_config() -> RuntimeConfigDocument | None:
        """Configuration document shipped with the launcher."""
        try:
            return RuntimeConfigDocument.model_validate(EMBEDDED_RUNTIME_CONFIG)
        except ValidationError as e:
            logger.error("runtime_config_embedded_invalid", error=str(e))
            return None

    async def load_config(self) -> RuntimeConfigDocument | None:
        """Resolve the configuration: remote, then local override, then embedded."""
        config = await self.fetch_remote_config()
        if config is not None:
            return config
        logger.warning("runtime_config_fallback", source="local_override")
        config = self.load_local_config()
        if config is not None:
            return config
        logger.warning("runtime_config_fallback", source="embedded")
        return self.embedded_config()

    def pick_platform_target(self, config: RuntimeConfigDocument | None) -> DownloadTarget | None:
        """Select the archive for the current platform from a config document."""
        if config is None:
            return None
        os_key, arch_key, default_archive = runtime_keys(self.platform)
        entry = config.download_url.get(os_key, {}).get(arch_key)
        if entry is None:
            return None
        checksum = entry.sha256.strip() or None
        return DownloadTarget(
            url=entry.url,
            archive=guess_archive_kind(entry.url) or default_archive,
            checksum=checksum,
        )

    def fallback_target(self) -> DownloadTarget:
        """Well-known runtime distribution URL for the current platform."""
        os_key, arch_key, archive = runtime_fallback_keys(self.platform)
        url = ADOPTIUM_URL.format(major=self.runtime_config.major_version, os=os_key, arch=arch_key)
        logger.warning("runtime_fallback_target", os=os_key, arch=arch_key)
        return DownloadTarget(url=url, archive=archive)

    async def resolve_target(self, cancel: CancellationToken | None) -> DownloadTarget:
        config = await self.load_config()
        check_cancel(cancel, "runtime_after_config")
        return self.pick_platform_target(config) or self.fallback_target()
