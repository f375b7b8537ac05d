"""Configuration management for patchline."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from patchline.core.types import normalize_channel

logger = structlog.get_logger()

APP_NAME = "patchline"


def default_app_dir() -> Path:
    """Per-user data directory for the launcher."""
    if sys.platform.startswith("win"):
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        root = Path(base) if base else Path(".")
    elif sys.platform == "darwin":
        root = Path.home() / "Library" / "Application Support"
    else:
        root = Path.home() / ".local" / "share"
    return root / APP_NAME


class HttpConfig(BaseModel):
    """HTTP client configuration."""

    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(
        default=f"{APP_NAME}/0.1.0",
        description="User-Agent header sent with every request"
    )
    chunk_size: int = Field(
        default=64 * 1024,
        description="Streaming read size in bytes"
    )
    progress_interval: float = Field(
        default=0.2,
        description="Minimum seconds between download progress events"
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size value."""
        if v <= 0:
            raise ValueError("Chunk size must be positive")
        return v

    @field_validator("progress_interval")
    @classmethod
    def validate_progress_interval(cls, v: float) -> float:
        """Validate progress interval value."""
        if v < 0:
            raise ValueError("Progress interval must be non-negative")
        return v


class PatchConfig(BaseModel):
    """Patch host configuration."""

    host: str = Field(
        default="https://game-patches.hytale.com",
        description="Patch host base URL"
    )
    channel: str = Field(default="release", description="Release channel")
    release_probe_count: int = Field(default=20, description="Ordinals probed on release")
    prerelease_probe_count: int = Field(default=30, description="Ordinals probed on pre-release")
    cache_size_floor: int = Field(
        default=1024 * 1024 * 1024,  # 1 GiB
        description="Cached patches larger than this are reused when the remote size is unknown"
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Strip trailing slash from host."""
        if not v:
            raise ValueError("Patch host cannot be empty")
        return v.rstrip("/")

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        """Normalize channel spelling."""
        if not v:
            raise ValueError("Channel cannot be empty")
        return normalize_channel(v)

    @field_validator("release_probe_count", "prerelease_probe_count")
    @classmethod
    def validate_probe_count(cls, v: int) -> int:
        """Validate probe count value."""
        if v < 1:
            raise ValueError("Probe count must be at least 1")
        return v


class RuntimeConfig(BaseModel):
    """Language runtime provisioning configuration."""

    config_url: str = Field(
        default="https://raw.githubusercontent.com/RustedBytes/hrs-launcher/main/jre.json",
        description="Remote runtime configuration document"
    )
    override_file: str = Field(
        default="runtime.json",
        description="Local override document, relative to the app directory"
    )
    major_version: str = Field(default="25", description="Runtime feature release")


class ToolConfig(BaseModel):
    """External patch tool configuration."""

    url_template: str = Field(
        default="https://broth.itch.zone/butler/{os}-{arch}/LATEST/archive/default",
        description="Patch tool archive URL with {os} and {arch} placeholders"
    )


class ContentConfig(BaseModel):
    """Add-on content registry configuration."""

    registry_url: str = Field(
        default="https://api.curseforge.com/v1",
        description="Registry API base URL"
    )
    game_id: int = Field(default=70216, description="Registry game id")
    api_key: str | None = Field(None, description="Registry API key")
    page_size: int = Field(default=20, description="Search page size")
    overlay_subtree: str = Field(
        default="Client/Data",
        description="Two-level subtree copied from add-on archives onto the install"
    )

    @field_validator("overlay_subtree")
    @classmethod
    def validate_overlay_subtree(cls, v: str) -> str:
        """Overlay subtree must be exactly two path components."""
        parts = [p for p in v.replace("\\", "/").split("/") if p]
        if len(parts) != 2 or any(p in {".", ".."} for p in parts):
            raise ValueError(f"Overlay subtree must have two components: {v}")
        return "/".join(parts)


class UpdateCheckConfig(BaseModel):
    """Launcher self-update check configuration."""

    releases_url: str = Field(
        default="https://api.github.com/repos/RustedBytes/hrs-launcher/releases/latest",
        description="Latest-release endpoint of the launcher repository"
    )


class LaunchConfig(BaseModel):
    """Product launch configuration."""

    player_name: str = Field(default="Player", description="Display name passed to the client")
    auth_mode: str = Field(default="offline", description="Authentication mode")
    player_uuid: str = Field(
        default="00000000-1337-1337-1337-000000000000",
        description="Player UUID passed to the client"
    )

    @field_validator("auth_mode")
    @classmethod
    def validate_auth_mode(cls, v: str) -> str:
        """Validate auth mode."""
        valid_modes = {"offline", "online"}
        if v not in valid_modes:
            raise ValueError(f"Invalid auth mode: {v}. Valid modes: {valid_modes}")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    app_dir: Path = Field(default_factory=default_app_dir, description="Launcher data directory")
    config_dir: Path = Field(
        default=Path.home() / ".config" / APP_NAME,
        description="Configuration directory"
    )

    http: HttpConfig = Field(default_factory=HttpConfig)
    patch: PatchConfig = Field(default_factory=PatchConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    launch: LaunchConfig = Field(default_factory=LaunchConfig)
    updates: UpdateCheckConfig = Field(default_factory=UpdateCheckConfig)

    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @property
    def cache_dir(self) -> Path:
        return self.app_dir / "cache"

    @property
    def logs_dir(self) -> Path:
        return self.app_dir / "logs"

    @property
    def crashes_dir(self) -> Path:
        return self.app_dir / "crashes"

    @property
    def runtime_dir(self) -> Path:
        return self.app_dir / "jre"

    @property
    def tool_dir(self) -> Path:
        return self.app_dir / "butler"

    @property
    def release_dir(self) -> Path:
        return self.app_dir / "release"

    @property
    def game_dir(self) -> Path:
        """Live install tree the patch tool writes into."""
        return self.release_dir / "package" / "game" / "latest"

    @property
    def user_data_dir(self) -> Path:
        return self.app_dir / "UserData"

    @property
    def content_dir(self) -> Path:
        return self.user_data_dir / "Mods"

    @property
    def version_file(self) -> Path:
        return self.app_dir / "version.txt"

    @property
    def runtime_override_file(self) -> Path:
        return self.app_dir / self.runtime.override_file

    def ensure_base_dirs(self) -> None:
        """Create the on-disk folder layout."""
        for directory in (
            self.app_dir,
            self.runtime_dir,
            self.tool_dir,
            self.cache_dir,
            self.logs_dir,
            self.crashes_dir,
            self.game_dir,
            self.user_data_dir,
            self.content_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / APP_NAME / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.config_dir / "config.json"

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
