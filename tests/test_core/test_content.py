"""Tests for patchline.core.content module."""

import asyncio
import json

import httpx
import pytest

from patchline.core.content import ContentOverlay, RegistryProject, pick_latest_file
from patchline.core.errors import FilesystemError, NetworkError, StatusError
from patchline.core.types import ContentManifest, ContentManifestEntry

REGISTRY = "https://api.curseforge.com/v1"
ARCHIVE_BYTES = b"mod-archive"


def _project(files: list[dict] | None = None) -> dict:
    return {
        "id": 42,
        "name": "Better Trees",
        "slug": "better-trees",
        "summary": "Taller trees",
        "downloadCount": 900,
        "logo": {"thumbnailUrl": "https://img.example/42.png"},
        "categories": [{"id": 1, "name": "World"}],
        "authors": [{"name": "arbor"}],
        "latestFiles": files if files is not None else [
            {
                "id": 1,
                "displayName": "1.0",
                "fileName": "trees-1.0.zip",
                "fileLength": len(ARCHIVE_BYTES),
                "downloadUrl": "https://files.example/trees-1.0.zip",
                "fileDate": "2025-01-01T00:00:00Z",
            },
            {
                "id": 2,
                "displayName": "1.1",
                "fileName": "trees-1.1.zip",
                "fileLength": len(ARCHIVE_BYTES),
                "downloadUrl": "https://files.example/trees-1.1.zip",
                "fileDate": "2025-03-01T00:00:00Z",
            },
        ],
    }


class Registry:
    """Registry and file host stub."""

    def __init__(self, project: dict):
        self.project = project
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "files.example":
            return httpx.Response(200, content=ARCHIVE_BYTES)
        if request.url.path == "/v1/mods/search":
            return httpx.Response(200, json={
                "data": [self.project],
                "pagination": {"index": 0, "pageSize": 20, "resultCount": 1, "totalCount": 1},
            })
        if request.url.path == f"/v1/mods/{self.project['id']}":
            return httpx.Response(200, json={"data": self.project})
        return httpx.Response(404)


def _overlay(app_config, mock_client, handler):
    client = mock_client(handler)
    return ContentOverlay(app_config, client=client), client


def _entry(app_config, entry_id: str, file_name: str, enabled: bool = True) -> ContentManifestEntry:
    return ContentManifestEntry(
        id=entry_id,
        name=entry_id,
        file_path=str(app_config.content_dir / file_name),
        enabled=enabled,
    )


class TestRegistry:
    """Test registry queries."""

    def test_search_params_and_api_key(self, app_config, mock_client):
        app_config.content.api_key = "secret"
        stub = Registry(_project())

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.search("trees", page=2)

        result = asyncio.run(_run())
        request = stub.requests[0]
        assert request.headers["x-api-key"] == "secret"
        assert request.url.params["gameId"] == str(app_config.content.game_id)
        assert request.url.params["searchFilter"] == "trees"
        assert request.url.params["index"] == "40"
        assert result.data[0].name == "Better Trees"
        assert result.pagination.total_count == 1

    def test_no_api_key_header_by_default(self, app_config, mock_client):
        stub = Registry(_project())

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.details(42)

        project = asyncio.run(_run())
        assert "x-api-key" not in stub.requests[0].headers
        assert project.icon_url == "https://img.example/42.png"

    def test_status_and_transport_errors(self, app_config, mock_client):
        def refused(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403)

        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async def _run(handler):
            overlay, client = _overlay(app_config, mock_client, handler)
            async with client:
                return await overlay.details(42)

        with pytest.raises(StatusError) as exc_info:
            asyncio.run(_run(refused))
        assert exc_info.value.status_code == 403
        with pytest.raises(NetworkError):
            asyncio.run(_run(unreachable))

    def test_pick_latest_file(self):
        project = RegistryProject.model_validate(_project())
        assert pick_latest_file(project).display_name == "1.1"
        assert pick_latest_file(RegistryProject.model_validate(_project([]))) is None


class TestFetchLatest:
    """Test ContentOverlay.fetch_latest."""

    def test_installs_newest_file(self, app_config, mock_client):
        stub = Registry(_project())
        updates = []

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.fetch_latest(42, on_progress=updates.append)

        entry = asyncio.run(_run())

        assert entry.id == "cf-42"
        assert entry.version == "1.1"
        assert entry.author == "arbor"
        assert entry.category == "World"
        assert (app_config.content_dir / "trees-1.1.zip").read_bytes() == ARCHIVE_BYTES
        manifest = json.loads((app_config.content_dir / "manifest.json").read_text())
        assert [item["id"] for item in manifest["items"]] == ["cf-42"]
        assert updates[-1].progress == 100.0

    def test_reinstall_keeps_install_time(self, app_config, mock_client):
        stub = Registry(_project())

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                first = await overlay.fetch_latest(42)
                second = await overlay.fetch_latest(42)
                return first, second, overlay.installed()

        first, second, installed = asyncio.run(_run())
        assert second.installed_at == first.installed_at
        assert len(installed) == 1

    def test_downloads_disabled(self, app_config, mock_client):
        files = [{"id": 1, "fileName": "x.zip", "downloadUrl": None, "fileDate": "2025"}]
        stub = Registry(_project(files))

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.fetch_latest(42)

        with pytest.raises(StatusError, match="disabled"):
            asyncio.run(_run())
        assert not (app_config.content_dir / "manifest.json").exists()

    def test_no_files(self, app_config, mock_client):
        stub = Registry(_project([]))

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.fetch_latest(42)

        with pytest.raises(StatusError, match="no downloadable files"):
            asyncio.run(_run())

    def test_rejects_path_in_file_name(self, app_config, mock_client):
        files = [{
            "id": 1,
            "fileName": "../evil.zip",
            "downloadUrl": "https://files.example/evil.zip",
            "fileDate": "2025",
        }]
        stub = Registry(_project(files))

        async def _run():
            overlay, client = _overlay(app_config, mock_client, stub)
            async with client:
                return await overlay.fetch_latest(42)

        with pytest.raises(StatusError):
            asyncio.run(_run())
        assert not any(r.url.host == "files.example" for r in stub.requests)


class TestManifest:
    """Test installed-content bookkeeping."""

    def test_empty_when_absent(self, app_config):
        assert ContentOverlay(app_config).installed() == []

    def test_set_enabled_and_remove(self, app_config):
        overlay = ContentOverlay(app_config)
        app_config.content_dir.mkdir(parents=True)
        (app_config.content_dir / "a.zip").write_bytes(b"a")
        overlay.save_manifest(ContentManifest(items=[_entry(app_config, "cf-1", "a.zip")]))

        assert overlay.set_enabled("cf-1", False).enabled is False
        assert overlay.installed()[0].enabled is False

        overlay.remove("cf-1")
        assert overlay.installed() == []
        assert not (app_config.content_dir / "a.zip").exists()

    def test_unknown_id(self, app_config):
        overlay = ContentOverlay(app_config)
        with pytest.raises(FilesystemError):
            overlay.remove("cf-404")
        with pytest.raises(FilesystemError):
            overlay.set_enabled("cf-404", True)

    def test_corrupt_manifest(self, app_config):
        app_config.content_dir.mkdir(parents=True)
        (app_config.content_dir / "manifest.json").write_text("{not json")
        with pytest.raises(FilesystemError):
            ContentOverlay(app_config).installed()


class TestApplyEnabled:
    """Test launch-time overlay."""

    def test_applies_enabled_and_skips_broken(self, app_config, make_zip):
        app_config.content_dir.mkdir(parents=True)
        (app_config.content_dir / "good.zip").write_bytes(
            make_zip({"Client/Data/Textures/tree.png": b"png", "README.txt": b"readme"})
        )
        (app_config.content_dir / "off.zip").write_bytes(
            make_zip({"Client/Data/Textures/off.png": b"off"})
        )
        overlay = ContentOverlay(app_config)
        overlay.save_manifest(ContentManifest(items=[
            _entry(app_config, "cf-1", "good.zip"),
            _entry(app_config, "cf-2", "missing.zip"),
            _entry(app_config, "cf-3", "off.zip", enabled=False),
        ]))

        report = asyncio.run(overlay.apply_enabled())

        assert report.applied == ["cf-1"]
        assert [entry_id for entry_id, _ in report.skipped] == ["cf-2"]
        data = app_config.game_dir / "Client" / "Data"
        assert (data / "Textures" / "tree.png").read_bytes() == b"png"
        assert not (data / "Textures" / "off.png").exists()
        assert not (app_config.game_dir / "README.txt").exists()
        assert not list(app_config.cache_dir.glob("overlay-*"))

    def test_archive_without_subtree(self, app_config, make_zip):
        app_config.content_dir.mkdir(parents=True)
        (app_config.content_dir / "plain.zip").write_bytes(make_zip({"other/file": b"x"}))
        overlay = ContentOverlay(app_config)
        overlay.save_manifest(ContentManifest(items=[_entry(app_config, "cf-1", "plain.zip")]))

        report = asyncio.run(overlay.apply_enabled())

        assert report.applied == ["cf-1"]
        assert not (app_config.game_dir / "Client").exists()

    def test_unreadable_manifest_is_reported(self, app_config):
        app_config.content_dir.mkdir(parents=True)
        (app_config.content_dir / "manifest.json").write_text("[]")

        report = asyncio.run(ContentOverlay(app_config).apply_enabled())

        assert report.applied == []
        assert report.skipped[0][0] == "manifest"
