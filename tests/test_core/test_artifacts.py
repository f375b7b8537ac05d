"""Tests for patchline.core.artifacts module."""

import hashlib
import os
import sys

import pytest

from patchline.core.artifacts import (
    extract_archive,
    make_executable,
    normalize_layout,
    verify_sha256,
)
from patchline.core.errors import IntegrityError
from patchline.core.platform import Platform
from patchline.core.types import ArchiveKind

LINUX = Platform(os="linux", arch="x86_64")
MACOS = Platform(os="macos", arch="aarch64")


class TestVerifySha256:
    """Test checksum verification."""

    def test_match_any_case(self, tmp_path):
        path = tmp_path / "file"
        path.write_bytes(b"payload")
        digest = hashlib.sha256(b"payload").hexdigest()
        assert verify_sha256(path, digest.upper())

    def test_mismatch(self, tmp_path):
        path = tmp_path / "file"
        path.write_bytes(b"payload")
        with pytest.raises(IntegrityError) as exc_info:
            verify_sha256(path, "00" * 32)
        assert exc_info.value.expected == "00" * 32


class TestExtractArchive:
    """Test archive extraction."""

    def test_zip_creates_parents(self, tmp_path, make_zip):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"top/bin/tool": b"#!", "top/lib/x.so": b"so"}))

        extract_archive(archive, tmp_path / "out", ArchiveKind.ZIP)

        assert (tmp_path / "out/top/bin/tool").read_bytes() == b"#!"
        assert (tmp_path / "out/top/lib/x.so").exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_zip_preserves_mode(self, tmp_path, make_zip):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"tool": b"#!"}))

        extract_archive(archive, tmp_path / "out", ArchiveKind.ZIP)

        assert os.access(tmp_path / "out/tool", os.X_OK)

    def test_zip_rejects_traversal(self, tmp_path, make_zip):
        archive = tmp_path / "evil.zip"
        archive.write_bytes(make_zip({"../escape.txt": b"x"}))

        with pytest.raises(IntegrityError):
            extract_archive(archive, tmp_path / "out", ArchiveKind.ZIP)
        assert not (tmp_path / "escape.txt").exists()

    def test_tar_gz(self, tmp_path, make_tar_gz):
        archive = tmp_path / "a.tar.gz"
        archive.write_bytes(make_tar_gz({"jdk/bin/java": b"java"}))

        extract_archive(archive, tmp_path / "out", ArchiveKind.TAR_GZ)

        assert (tmp_path / "out/jdk/bin/java").read_bytes() == b"java"

    def test_corrupt_archive_is_integrity_error(self, tmp_path):
        archive = tmp_path / "bad.zip"
        archive.write_bytes(b"not a zip")
        with pytest.raises(IntegrityError):
            extract_archive(archive, tmp_path / "out", ArchiveKind.ZIP)

        tarball = tmp_path / "bad.tar.gz"
        tarball.write_bytes(b"not a tarball")
        with pytest.raises(IntegrityError):
            extract_archive(tarball, tmp_path / "out2", ArchiveKind.TAR_GZ)


class TestNormalizeLayout:
    """Test single-directory hoisting."""

    def test_hoists_single_directory(self, tmp_path):
        root = tmp_path / "jre"
        (root / "jdk-25/bin").mkdir(parents=True)
        (root / "jdk-25/bin/java").write_text("java")
        (root / "jdk-25/release").write_text("25")

        assert normalize_layout(root, LINUX)

        assert (root / "bin/java").exists()
        assert (root / "release").exists()
        assert sorted(p.name for p in root.iterdir()) == ["bin", "release"]

    def test_child_named_like_wrapper(self, tmp_path):
        root = tmp_path / "jre"
        (root / "bin/bin").mkdir(parents=True)
        (root / "bin/bin/java").write_text("java")

        assert normalize_layout(root, LINUX)
        assert (root / "bin/java").exists()

    def test_macos_bundle_home(self, tmp_path):
        root = tmp_path / "jre"
        home = root / "jdk-25.jdk/Contents/Home"
        (home / "bin").mkdir(parents=True)
        (home / "bin/java").write_text("java")

        assert normalize_layout(root, MACOS)
        assert (root / "bin/java").exists()
        assert not (root / "jdk-25.jdk").exists()

    def test_multiple_entries_untouched(self, tmp_path):
        root = tmp_path / "jre"
        (root / "bin").mkdir(parents=True)
        (root / "lib").mkdir()

        assert not normalize_layout(root, LINUX)
        assert (root / "bin").is_dir() and (root / "lib").is_dir()

    def test_missing_root(self, tmp_path):
        assert not normalize_layout(tmp_path / "nope", LINUX)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_make_executable(tmp_path):
    path = tmp_path / "tool"
    path.write_text("#!/bin/sh\n")
    path.chmod(0o644)
    make_executable(path)
    assert os.access(path, os.X_OK)
