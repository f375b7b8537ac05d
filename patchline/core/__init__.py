"""Core functionality for patchline.

This module provides the update and installation pipeline:
- Configuration management and on-disk layout
- Type definitions and the error taxonomy
- Version discovery, patch download and application
- Runtime provisioning and add-on content overlay
- The installation state machine
"""

from patchline.core.errors import ErrorKind, LauncherError
from patchline.core.types import (
    ArchiveKind,
    Channel,
    PatchTarget,
    ProgressUpdate,
    VersionCheckResult,
)
from patchline.core.utils import (
    format_size,
    format_speed,
    sha256_file,
)

__all__ = [
    # Errors
    "ErrorKind",
    "LauncherError",
    # Types
    "ArchiveKind",
    "Channel",
    "PatchTarget",
    "ProgressUpdate",
    "VersionCheckResult",
    # Utils
    "format_size",
    "format_speed",
    "sha256_file",
]
