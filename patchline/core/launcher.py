"""Product process launch."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import structlog

from patchline.core.config import AppConfig
from patchline.core.errors import ExternalToolError, FilesystemError
from patchline.core.platform import (
    Platform,
    client_bundle_path,
    client_relative_path,
    runtime_binary_relative_path,
)

logger = structlog.get_logger()

JAVA_OPTIONS_ENV = "JDK_JAVA_OPTIONS"

# Windows CREATE_NO_WINDOW | DETACHED_PROCESS
_WINDOWS_DETACHED = 0x08000000 | 0x00000008


def _memory_bytes() -> tuple[int, int] | None:
    """Total and available physical memory, None when not discoverable."""
    try:
        page_size = os.sysconf("SC_PAGE_SIZE")
        total = os.sysconf("SC_PHYS_PAGES") * page_size
        available = os.sysconf("SC_AVPHYS_PAGES") * page_size
    except (AttributeError, ValueError, OSError):
        return None
    if total <= 0 or available <= 0:
        return None
    return total, available


def compute_java_options(memory: tuple[int, int] | None = None, cpu_count: int | None = None) -> str | None:
    """Runtime tuning flags derived from system memory and CPU count.

    Args:
        memory: (total, available) bytes, detected when None
        cpu_count: Processor count, detected when None

    Returns:
        Option string, or None if memory could not be determined
    """
    memory = memory or _memory_bytes()
    if memory is None:
        return None
    total, available = memory
    if total <= 0 or available <= 0:
        return None

    max_ram = min(max(available / total * 100.0 - 10.0, 40.0), 80.0)
    initial_ram = min(max(max_ram * 0.6, 25.0), 60.0)
    cpus = cpu_count or os.cpu_count() or 1
    return (
        f"-XX:+UseStringDeduplication -XX:ActiveProcessorCount={cpus} "
        f"-XX:MaxRAMPercentage={max_ram:.1f} -XX:InitialRAMPercentage={initial_ram:.1f}"
    )


def merge_java_options(existing: str | None, computed: str) -> str:
    """Append computed flags to user options, the user's own flags win."""
    merged = (existing or "").strip()
    skip_gc = "Use" in merged and "GC" in merged
    tokens = [merged] if merged else []

    for token in computed.split():
        if "Use" in token and "GC" in token:
            include = not skip_gc
        else:
            key = next(
                (
                    k
                    for k in (
                        "MaxRAMPercentage",
                        "InitialRAMPercentage",
                        "ActiveProcessorCount",
                        "UseStringDeduplication",
                    )
                    if k in token
                ),
                None,
            )
            include = key is None or key not in merged
        if include:
            tokens.append(token)
    return " ".join(tokens)


class ProductLauncher:
    """Spawn the game client detached from the launcher."""

    def __init__(self, config: AppConfig, platform: Platform | None = None) -> None:
        self.config = config
        self.platform = platform or Platform.current()

    @property
    def executable_path(self) -> Path:
        return self.config.game_dir / client_relative_path(self.platform)

    @property
    def runtime_path(self) -> Path:
        return self.config.runtime_dir / runtime_binary_relative_path(self.platform)

    def build_command(self, player_name: str, auth_mode: str) -> list[str]:
        """Full command line for the current platform."""
        game_dir = self.config.game_dir
        args = [
            "--app-dir", str(game_dir),
            "--user-dir", str(self.config.user_data_dir),
            "--java-exec", str(self.runtime_path),
            "--auth-mode", auth_mode,
            "--uuid", self.config.launch.player_uuid,
            "--name", player_name,
        ]
        if self.platform.is_macos:
            return ["open", str(game_dir / client_bundle_path(self.platform)), "--args", *args]
        return [str(self.executable_path), *args]

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.platform.os == "linux":
            client_dir = self.config.game_dir / "Client"
            env["LD_LIBRARY_PATH"] = f"{client_dir}:{env.get('LD_LIBRARY_PATH', '')}"

        computed = compute_java_options()
        if computed is not None:
            env[JAVA_OPTIONS_ENV] = merge_java_options(env.get(JAVA_OPTIONS_ENV), computed)
            logger.debug("java_options", value=env[JAVA_OPTIONS_ENV])
        else:
            logger.debug("java_options_skipped", reason="system resources unknown")
        return env

    def launch(self, version: str, player_name: str, auth_mode: str) -> subprocess.Popen:
        """Start the client and return without waiting for it.

        Raises:
            FilesystemError: Client executable or runtime missing
            ExternalToolError: The process could not be started
        """
        executable = self.executable_path
        if not executable.exists():
            raise FilesystemError(f"game client not found at {executable}")
        if not self.runtime_path.exists():
            raise FilesystemError(f"runtime not found at {self.runtime_path}")

        try:
            self.config.user_data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to ensure user data dir: {e}") from e

        command = self.build_command(player_name, auth_mode)
        logger.info("launch_start", version=version, player=player_name, auth_mode=auth_mode)

        kwargs: dict = {
            "cwd": str(self.config.app_dir),
            "env": self.build_env(),
            "stdin": subprocess.DEVNULL,
        }
        if sys.platform.startswith("win"):
            kwargs["creationflags"] = _WINDOWS_DETACHED
        else:
            kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(command, **kwargs)
        except OSError as e:
            raise ExternalToolError(f"failed to start game process: {e}") from e
        logger.info("launch_started", pid=process.pid)
        return process
