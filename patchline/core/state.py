"""Orchestrator states and caller intents.

States are immutable snapshots pushed to observers; intents are requests
sent by the caller. Both are plain frozen dataclasses so they compare by
value and can be matched with ``isinstance``.
"""

from __future__ import annotations

from dataclasses import dataclass

from patchline.core.errors import ErrorKind


class State:
    """Base class for orchestrator states."""

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Idle(State):
    pass


@dataclass(frozen=True)
class Initialising(State):
    pass


@dataclass(frozen=True)
class CheckingForUpdates(State):
    pass


@dataclass(frozen=True)
class Downloading(State):
    """A download or install step is running.

    Attributes:
        label: What is being fetched (file name, "runtime", "mod-<id>")
        progress: Percent complete, 0-100
        rate: Human readable transfer rate or status text
    """

    label: str
    progress: float = 0.0
    rate: str = ""


@dataclass(frozen=True)
class Uninstalling(State):
    pass


@dataclass(frozen=True)
class ReadyToPlay(State):
    version: str


@dataclass(frozen=True)
class DiagnosticsRunning(State):
    pass


@dataclass(frozen=True)
class DiagnosticsReady(State):
    report: str


@dataclass(frozen=True)
class Playing(State):
    pass


@dataclass(frozen=True)
class Error(State):
    """Terminal state of a failed attempt.

    ``kind`` is None for failures outside the pipeline error taxonomy.
    """

    message: str
    kind: ErrorKind | None = None

    @property
    def cancelled(self) -> bool:
        return self.kind is ErrorKind.CANCELLED


class Intent:
    """Base class for caller intents."""


@dataclass(frozen=True)
class CheckForUpdates(Intent):
    target_version: int | None = None


@dataclass(frozen=True)
class DownloadGame(Intent):
    target_version: int | None = None


@dataclass(frozen=True)
class ClickPlay(Intent):
    player_name: str = "Player"
    auth_mode: str = "offline"


@dataclass(frozen=True)
class CancelDownload(Intent):
    pass


@dataclass(frozen=True)
class DownloadMod(Intent):
    mod_id: int


@dataclass(frozen=True)
class UninstallGame(Intent):
    pass


@dataclass(frozen=True)
class RunDiagnostics(Intent):
    pass


@dataclass(frozen=True)
class OpenGameFolder(Intent):
    pass
