"""Platform descriptors and the lookup tables keyed on them.

Every remote endpoint uses its own spelling for operating systems and CPU
architectures. These helpers are pure so URL construction can be tested
without touching the network or the real host.
"""

from __future__ import annotations

import platform as _platform
import sys
from dataclasses import dataclass
from pathlib import Path

from patchline.core.types import ArchiveKind

CLIENT_NAME = "GameClient"


@dataclass(frozen=True)
class Platform:
    """Operating system family and machine architecture.

    Attributes:
        os: One of "windows", "macos", "linux" or "unknown"
        arch: Normalized machine name ("x86_64", "aarch64" or raw value)
    """

    os: str
    arch: str

    @classmethod
    def current(cls) -> Platform:
        """Detect the running platform."""
        if sys.platform.startswith("win"):
            os_name = "windows"
        elif sys.platform == "darwin":
            os_name = "macos"
        elif sys.platform.startswith("linux"):
            os_name = "linux"
        else:
            os_name = "unknown"
        return cls(os=os_name, arch=normalize_arch(_platform.machine()))

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def is_macos(self) -> bool:
        return self.os == "macos"

    @property
    def is_posix(self) -> bool:
        return self.os != "windows"


def normalize_arch(machine: str) -> str:
    """Map machine strings reported by different OSes onto one spelling."""
    value = machine.lower()
    if value in {"x86_64", "amd64", "x64"}:
        return "x86_64"
    if value in {"aarch64", "arm64"}:
        return "aarch64"
    return value


def patch_keys(plat: Platform) -> tuple[str, str]:
    """OS and arch keys used by the patch host."""
    os_key = {"windows": "windows", "macos": "darwin", "linux": "linux"}.get(plat.os, "unknown")
    return os_key, _go_arch(plat.arch)


def tool_keys(plat: Platform) -> tuple[str, str]:
    """OS and arch keys for the patch tool download.

    The tool has no darwin-arm64 build, macOS always gets amd64.
    """
    os_key = {"windows": "windows", "macos": "darwin"}.get(plat.os, "linux")
    arch = "amd64" if plat.is_macos else _go_arch(plat.arch)
    return os_key, arch


def runtime_keys(plat: Platform) -> tuple[str, str, ArchiveKind]:
    """OS/arch keys into the runtime config document and the default archive kind."""
    os_key = {"windows": "windows", "macos": "macos"}.get(plat.os, "linux")
    arch = {"x86_64": "x64", "aarch64": "arm64"}.get(plat.arch, plat.arch)
    return os_key, arch, default_archive_kind(plat)


def runtime_fallback_keys(plat: Platform) -> tuple[str, str, ArchiveKind]:
    """OS/arch keys for the public runtime distribution API."""
    os_key = {"windows": "windows", "macos": "mac"}.get(plat.os, "linux")
    arch = {"x86_64": "x64", "aarch64": "aarch64"}.get(plat.arch, plat.arch)
    return os_key, arch, default_archive_kind(plat)


def default_archive_kind(plat: Platform) -> ArchiveKind:
    """Zip on Windows, gzipped tarball everywhere else."""
    return ArchiveKind.ZIP if plat.is_windows else ArchiveKind.TAR_GZ


def guess_archive_kind(url: str) -> ArchiveKind | None:
    """Infer archive format from a URL or file name suffix."""
    lowered = url.lower().split("?", 1)[0]
    if lowered.endswith(".zip"):
        return ArchiveKind.ZIP
    if lowered.endswith(".tar.gz") or lowered.endswith(".tgz"):
        return ArchiveKind.TAR_GZ
    return None


def client_relative_path(plat: Platform) -> Path:
    """Location of the product executable inside the install tree."""
    if plat.is_windows:
        return Path("Client") / f"{CLIENT_NAME}.exe"
    if plat.is_macos:
        return Path("Client") / f"{CLIENT_NAME}.app" / "Contents" / "MacOS" / CLIENT_NAME
    return Path("Client") / CLIENT_NAME


def client_bundle_path(plat: Platform) -> Path:
    """macOS application bundle relative to the install tree."""
    return Path("Client") / f"{CLIENT_NAME}.app"


def runtime_binary_relative_path(plat: Platform) -> Path:
    """Location of the runtime launcher inside the runtime root."""
    return Path("bin") / ("java.exe" if plat.is_windows else "java")


def tool_binary_name(plat: Platform) -> str:
    """File name of the patch tool executable."""
    return "butler.exe" if plat.is_windows else "butler"


def _go_arch(arch: str) -> str:
    return {"x86_64": "amd64", "aarch64": "arm64"}.get(arch, arch)
