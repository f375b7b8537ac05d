"""Core type definitions for patchline."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Channel(StrEnum):
    """Release tracks with independent version numbering."""
    RELEASE = "release"
    PRE_RELEASE = "pre-release"


def normalize_channel(value: str) -> str:
    """Map user spellings of the pre-release channel onto the API name."""
    if value.lower() in {"prerelease", "pre-release"}:
        return Channel.PRE_RELEASE.value
    return value


class ArchiveKind(StrEnum):
    """Supported archive formats."""
    TAR_GZ = "tar.gz"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        return f".{self.value}"


class ResolveFailure(Enum):
    """Why a version probe batch produced no versions."""
    UNREACHABLE = "unreachable"
    NO_VERSIONS = "no_versions"
    UNSUPPORTED_PLATFORM = "unsupported_platform"


@dataclass
class VersionCheckResult:
    """Outcome of probing the patch host for available ordinals.

    Attributes:
        latest: Highest ordinal that exists, 0 when none
        available: Existing ordinals, newest first, no duplicates
        checked_urls: Every URL probed
        success_url: URL of the latest ordinal
        error: Human readable failure description
        failure: Machine readable failure category
    """

    latest: int = 0
    available: list[int] = field(default_factory=list)
    checked_urls: list[str] = field(default_factory=list)
    success_url: str | None = None
    error: str | None = None
    failure: ResolveFailure | None = None


@dataclass(frozen=True)
class PatchTarget:
    """A resolved patch download.

    ``from_version`` 0 denotes the full package.
    """

    from_version: int
    to_version: int
    url: str
    expected_size: int | None = None

    @property
    def is_full(self) -> bool:
        return self.from_version == 0


@dataclass(frozen=True)
class DownloadTarget:
    """Archive location for an on-disk artifact."""

    url: str
    archive: ArchiveKind
    checksum: str | None = None


@dataclass
class ProgressUpdate:
    """Progress event emitted by long-running steps."""

    stage: str
    progress: float
    message: str
    current_file: str | None = None
    speed: str | None = None
    rate: float | None = None
    downloaded: int | None = None
    total: int | None = None


ProgressCallback = Callable[[ProgressUpdate], None]


def emit_progress(callback: ProgressCallback | None, update: ProgressUpdate) -> None:
    """Invoke an optional progress observer."""
    if callback is not None:
        callback(update)


class ContentManifestEntry(BaseModel):
    """An installed add-on recorded in the content manifest."""
    id: str = Field(..., description="Namespaced id, e.g. cf-1234")
    name: str = Field(default="", description="Display name")
    slug: str = Field(default="", description="Registry slug")
    version: str = Field(default="", description="Installed file display name")
    author: str = Field(default="Unknown", description="Primary author")
    description: str = Field(default="", description="Short summary")
    download_url: str = Field(default="", description="Source URL of the file")
    registry_id: int = Field(default=0, description="Registry project id")
    file_id: int = Field(default=0, description="Registry file id")
    enabled: bool = Field(default=True, description="Overlay on launch")
    installed_at: str = Field(default="", description="RFC 3339 install time")
    updated_at: str = Field(default="", description="RFC 3339 update time")
    file_path: str = Field(..., description="Downloaded archive on disk")
    icon_url: str | None = Field(None, description="Thumbnail URL")
    downloads: int = Field(default=0, description="Registry download count")
    category: str | None = Field(None, description="Primary category")

    model_config = ConfigDict(extra="allow")


class ContentManifest(BaseModel):
    """Whole-document content manifest."""
    version: str = Field(default="1.0", description="Manifest format version")
    items: list[ContentManifestEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def find(self, entry_id: str) -> ContentManifestEntry | None:
        """Look up an entry by id."""
        for item in self.items:
            if item.id == entry_id:
                return item
        return None

    def upsert(self, entry: ContentManifestEntry) -> None:
        """Replace the entry with the same id, or append."""
        for index, item in enumerate(self.items):
            if item.id == entry.id:
                self.items[index] = entry
                return
        self.items.append(entry)
