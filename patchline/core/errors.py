"""Error taxonomy for the update and installation pipeline.

Every failure that crosses a component boundary is a ``LauncherError``
subclass carrying a ``kind``. The orchestrator relies on the kind to tell a
user cancellation apart from a real failure.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Categories of pipeline failures."""
    NETWORK = "network"
    STATUS = "status"
    INTEGRITY = "integrity"
    CANCELLED = "cancelled"
    EXTERNAL_TOOL = "external_tool"
    FILESYSTEM = "filesystem"
    PLATFORM = "platform"


class LauncherError(Exception):
    """Base class for pipeline errors.

    Attributes:
        kind: Error category
        message: Human readable description
    """

    kind: ErrorKind = ErrorKind.FILESYSTEM

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NetworkError(LauncherError):
    """Remote host unreachable, timed out, or the stream broke."""

    kind = ErrorKind.NETWORK


class StatusError(LauncherError):
    """Remote answered with a non-success status or unusable payload."""

    kind = ErrorKind.STATUS

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class IntegrityError(LauncherError):
    """Raised when downloaded content fails verification.

    Attributes:
        expected: Expected checksum or size
        actual: Actual checksum or size
    """

    kind = ErrorKind.INTEGRITY

    def __init__(
        self,
        message: str,
        *,
        expected: str | int | None = None,
        actual: str | int | None = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class OperationCancelledError(LauncherError):
    """The user asked for the running operation to stop."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


class ExternalToolError(LauncherError):
    """An external process exited unsuccessfully."""

    kind = ErrorKind.EXTERNAL_TOOL

    def __init__(self, message: str, *, output: str = "", returncode: int | None = None):
        self.output = output
        self.returncode = returncode
        super().__init__(message)


class FilesystemError(LauncherError):
    """Local disk operation failed (permissions, space, missing files)."""

    kind = ErrorKind.FILESYSTEM


class UnsupportedPlatformError(LauncherError):
    """The running operating system has no published builds."""

    kind = ErrorKind.PLATFORM
