"""Add-on content: registry client, installed manifest and overlay onto the install.

The registry is a CurseForge-style REST API. Downloaded archives live in the
content directory next to ``manifest.json``; enabling an entry only marks
it in the manifest, the actual overlay happens right before launch.
"""

from __future__ import annotations

import asyncio
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from patchline.core.artifacts import extract_archive
from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import AppConfig
from patchline.core.download import stream_download
from patchline.core.errors import FilesystemError, LauncherError, NetworkError, StatusError
from patchline.core.http import HttpComponent
from patchline.core.platform import guess_archive_kind
from patchline.core.types import (
    ArchiveKind,
    ContentManifest,
    ContentManifestEntry,
    ProgressCallback,
    ProgressUpdate,
    emit_progress,
)
from patchline.core.utils import atomic_write_text, copy_tree

logger = structlog.get_logger()

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = "1.0"
ENTRY_PREFIX = "cf-"


class RegistryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegistryFile(RegistryModel):
    """A downloadable file of a registry project."""
    id: int
    display_name: str = Field(default="", alias="displayName")
    file_name: str = Field(default="", alias="fileName")
    file_length: int = Field(default=0, alias="fileLength")
    download_url: str | None = Field(default="", alias="downloadUrl")
    file_date: str = Field(default="", alias="fileDate")


class RegistryLogo(RegistryModel):
    thumbnail_url: str = Field(default="", alias="thumbnailUrl")
    url: str = ""


class RegistryCategory(RegistryModel):
    id: int
    name: str


class RegistryAuthor(RegistryModel):
    name: str


class RegistryProject(RegistryModel):
    """A registry project (one add-on)."""
    id: int
    name: str
    slug: str = ""
    summary: str = ""
    download_count: int = Field(default=0, alias="downloadCount")
    date_modified: str = Field(default="", alias="dateModified")
    logo: RegistryLogo | None = None
    categories: list[RegistryCategory] = Field(default_factory=list)
    authors: list[RegistryAuthor] = Field(default_factory=list)
    latest_files: list[RegistryFile] = Field(default_factory=list, alias="latestFiles")

    @property
    def icon_url(self) -> str | None:
        if self.logo is None:
            return None
        return self.logo.thumbnail_url or self.logo.url or None


class RegistryPagination(RegistryModel):
    index: int = 0
    page_size: int = Field(default=0, alias="pageSize")
    result_count: int = Field(default=0, alias="resultCount")
    total_count: int = Field(default=0, alias="totalCount")


class RegistrySearchResponse(RegistryModel):
    data: list[RegistryProject] = Field(default_factory=list)
    pagination: RegistryPagination | None = None


class RegistryProjectResponse(RegistryModel):
    data: RegistryProject


def pick_latest_file(project: RegistryProject) -> RegistryFile | None:
    """File with the greatest publish date."""
    if not project.latest_files:
        return None
    return max(project.latest_files, key=lambda f: f.file_date)


def entry_id_for(registry_id: int) -> str:
    return f"{ENTRY_PREFIX}{registry_id}"


@dataclass
class OverlayReport:
    """Result of overlaying enabled content onto the install."""

    applied: list[str] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)


class ContentOverlay(HttpComponent):
    """Registry browsing, installed-content bookkeeping and launch-time overlay."""

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(config.http, client)
        self.content_config = config.content
        self.content_dir = config.content_dir
        self.game_dir = config.game_dir
        self.scratch_root = config.cache_dir

    @property
    def manifest_path(self) -> Path:
        return self.content_dir / MANIFEST_NAME

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.content_config.api_key:
            headers["x-api-key"] = self.content_config.api_key
        return headers

    async def _get_json(self, url: str, params: dict | None = None) -> str:
        try:
            response = await self.async_client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise NetworkError(f"registry request failed: {e}") from e
        if not response.is_success:
            raise StatusError(
                f"registry returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.text

    async def search(self, query: str, page: int = 0) -> RegistrySearchResponse:
        """Search the registry for projects of the configured game.

        Args:
            query: Free-text search filter
            page: Zero-based page index

        Returns:
            Parsed search response
        """
        page_size = self.content_config.page_size
        params = {
            "gameId": self.content_config.game_id,
            "searchFilter": query,
            "pageSize": page_size,
            "index": page * page_size,
        }
        url = f"{self.content_config.registry_url}/mods/search"
        logger.debug("registry_search", query=query, page=page)
        body = await self._get_json(url, params)
        try:
            return RegistrySearchResponse.model_validate_json(body)
        except ValidationError as e:
            raise StatusError(f"registry search response invalid: {e}") from e

    async def details(self, registry_id: int) -> RegistryProject:
        """Fetch one project from the registry."""
        url = f"{self.content_config.registry_url}/mods/{registry_id}"
        body = await self._get_json(url)
        try:
            return RegistryProjectResponse.model_validate_json(body).data
        except ValidationError as e:
            raise StatusError(f"registry details response invalid: {e}") from e

    def load_manifest(self) -> ContentManifest:
        """Read the manifest, empty when absent."""
        try:
            text = self.manifest_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ContentManifest()
        except OSError as e:
            raise FilesystemError(f"failed to read content manifest: {e}") from e
        try:
            return ContentManifest.model_validate_json(text)
        except ValidationError as e:
            raise FilesystemError(f"failed to parse content manifest: {e}") from e

    def save_manifest(self, manifest: ContentManifest) -> None:
        """Write the whole manifest atomically."""
        manifest.version = MANIFEST_VERSION
        try:
            atomic_write_text(self.manifest_path, manifest.model_dump_json(indent=2))
        except OSError as e:
            raise FilesystemError(f"failed to write content manifest: {e}") from e

    async def fetch_latest(
        self,
        registry_id: int,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ContentManifestEntry:
        """Download the newest file of a project and record it as installed.

        Args:
            registry_id: Registry project id
            cancel: Cancellation token
            on_progress: Progress observer

        Returns:
            The upserted manifest entry

        Raises:
            StatusError: No downloadable file, or the registry refused
            OperationCancelledError, NetworkError, IntegrityError, FilesystemError
        """
        check_cancel(cancel, "before_content_details")
        project = await self.details(registry_id)
        latest = pick_latest_file(project)
        if latest is None:
            raise StatusError(f"no downloadable files for {project.name}")
        if not latest.download_url:
            raise StatusError(f"downloads are disabled for {project.name}")
        if not latest.file_name or Path(latest.file_name).name != latest.file_name:
            raise StatusError(f"invalid file name for {project.name}: {latest.file_name!r}")

        dest = self.content_dir / latest.file_name
        message = f"Downloading {project.name}..."
        emit_progress(
            on_progress,
            ProgressUpdate(stage="content", progress=0.0, message=message, current_file=dest.name),
        )
        await stream_download(
            self.async_client,
            latest.download_url,
            dest,
            http_config=self.http_config,
            cancel=cancel,
            on_progress=on_progress,
            expected_size=latest.file_length or None,
            stage="content",
            message=message,
        )

        timestamp = datetime.now(UTC).isoformat()
        manifest = self.load_manifest()
        entry_id = entry_id_for(project.id)
        previous = manifest.find(entry_id)
        entry = ContentManifestEntry(
            id=entry_id,
            name=project.name,
            slug=project.slug,
            version=latest.display_name,
            author=project.authors[0].name if project.authors else "Unknown",
            description=project.summary,
            download_url=latest.download_url,
            registry_id=project.id,
            file_id=latest.id,
            enabled=True,
            installed_at=previous.installed_at if previous else timestamp,
            updated_at=timestamp,
            file_path=str(dest),
            icon_url=project.icon_url,
            downloads=project.download_count,
            category=project.categories[0].name if project.categories else None,
        )
        manifest.upsert(entry)
        self.save_manifest(manifest)

        logger.info("content_installed", id=entry_id, file=dest.name)
        emit_progress(
            on_progress,
            ProgressUpdate(
                stage="content",
                progress=100.0,
                message=f"Installed {project.name} successfully",
                current_file=dest.name,
            ),
        )
        return entry

    def installed(self) -> list[ContentManifestEntry]:
        """All entries in the manifest."""
        return list(self.load_manifest().items)

    def remove(self, entry_id: str) -> None:
        """Delete an entry's archive and drop it from the manifest.

        Raises:
            FilesystemError: Unknown id or the archive could not be removed
        """
        manifest = self.load_manifest()
        entry = manifest.find(entry_id)
        if entry is None:
            raise FilesystemError(f"content not found in manifest: {entry_id}")
        path = Path(entry.file_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to delete content file: {e}") from e
        manifest.items = [item for item in manifest.items if item.id != entry_id]
        self.save_manifest(manifest)
        logger.info("content_removed", id=entry_id)

    def set_enabled(self, entry_id: str, enabled: bool) -> ContentManifestEntry:
        """Toggle whether an entry is overlaid on launch."""
        manifest = self.load_manifest()
        entry = manifest.find(entry_id)
        if entry is None:
            raise FilesystemError(f"content not found in manifest: {entry_id}")
        entry.enabled = enabled
        entry.updated_at = datetime.now(UTC).isoformat()
        self.save_manifest(manifest)
        logger.info("content_toggled", id=entry_id, enabled=enabled)
        return entry

    def _overlay_entry(self, entry: ContentManifestEntry) -> int:
        archive = Path(entry.file_path)
        if not archive.is_file():
            raise FilesystemError(f"content file missing: {archive}")

        subtree = Path(*self.content_config.overlay_subtree.split("/"))
        kind = guess_archive_kind(archive.name) or ArchiveKind.ZIP
        scratch = self.scratch_root / f"overlay-{uuid.uuid4().hex}"
        try:
            extract_archive(archive, scratch, kind)
            source = scratch / subtree
            if not source.is_dir():
                logger.debug("content_overlay_no_subtree", id=entry.id, subtree=str(subtree))
                return 0
            try:
                return copy_tree(source, self.game_dir / subtree)
            except OSError as e:
                raise FilesystemError(f"failed to copy content: {e}") from e
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    async def apply_enabled(self) -> OverlayReport:
        """Overlay every enabled entry onto the install tree.

        Best effort: an entry that fails is logged and skipped. The report
        lists what was applied and why anything was skipped.
        """
        report = OverlayReport()
        try:
            entries = self.installed()
        except LauncherError as e:
            logger.warning("content_manifest_unreadable", error=e.message)
            report.skipped.append(("manifest", e.message))
            return report

        for entry in entries:
            if not entry.enabled:
                continue
            try:
                copied = await asyncio.to_thread(self._overlay_entry, entry)
            except LauncherError as e:
                logger.warning("content_overlay_failed", id=entry.id, error=e.message)
                report.skipped.append((entry.id, e.message))
                continue
            logger.info("content_overlay_applied", id=entry.id, files=copied)
            report.applied.append(entry.id)
        return report
