"""Tests for patchline.core.types module."""

import pytest
from pydantic import ValidationError

from patchline.core.types import (
    ArchiveKind,
    Channel,
    ContentManifest,
    ContentManifestEntry,
    PatchTarget,
    ProgressUpdate,
    emit_progress,
    normalize_channel,
)


class TestChannel:
    """Tests for Channel enum."""

    def test_values(self) -> None:
        assert Channel.RELEASE == "release"
        assert Channel.PRE_RELEASE == "pre-release"

    @pytest.mark.parametrize("value", ["prerelease", "Pre-Release", "pre-release"])
    def test_normalize_pre_release(self, value: str) -> None:
        assert normalize_channel(value) == "pre-release"

    def test_normalize_passthrough(self) -> None:
        assert normalize_channel("release") == "release"
        assert normalize_channel("beta") == "beta"


def test_archive_extension() -> None:
    assert ArchiveKind.ZIP.extension == ".zip"
    assert ArchiveKind.TAR_GZ.extension == ".tar.gz"


def test_patch_target_is_full() -> None:
    assert PatchTarget(0, 6, "u").is_full
    assert not PatchTarget(5, 6, "u").is_full


def test_emit_progress_optional_callback() -> None:
    update = ProgressUpdate(stage="download", progress=10.0, message="m")
    emit_progress(None, update)
    seen = []
    emit_progress(seen.append, update)
    assert seen == [update]


class TestContentManifest:
    """Tests for the content manifest model."""

    def test_entry_requires_id_and_path(self) -> None:
        with pytest.raises(ValidationError):
            ContentManifestEntry(name="x")

    def test_entry_defaults(self) -> None:
        entry = ContentManifestEntry(id="cf-1", file_path="/m/a.zip")
        assert entry.enabled is True
        assert entry.author == "Unknown"

    def test_upsert_and_find(self) -> None:
        manifest = ContentManifest()
        manifest.upsert(ContentManifestEntry(id="cf-1", file_path="a", version="1"))
        manifest.upsert(ContentManifestEntry(id="cf-2", file_path="b"))
        manifest.upsert(ContentManifestEntry(id="cf-1", file_path="a", version="2"))

        assert [item.id for item in manifest.items] == ["cf-1", "cf-2"]
        assert manifest.find("cf-1").version == "2"
        assert manifest.find("cf-9") is None

    def test_unknown_fields_preserved(self) -> None:
        manifest = ContentManifest.model_validate_json(
            '{"version": "1.0", "items": [{"id": "cf-1", "file_path": "a", "pinned": true}]}'
        )
        dumped = manifest.model_dump()
        assert dumped["items"][0]["pinned"] is True
