"""Tests for patchline.core.utils module."""

import hashlib

import pytest

from patchline.core.utils import (
    atomic_write_text,
    copy_tree,
    format_size,
    format_speed,
    progress_percent,
    remove_path,
    sha256_file,
)


class TestFormatSize:
    """Test format_size function."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [
            (0, "0 B"),
            (1023, "1023 B"),
            (1024, "1.0 KB"),
            (1536, "1.5 KB"),
            (1024 ** 2, "1.0 MB"),
            (5 * 1024 ** 3, "5.0 GB"),
            (-5, "0 B"),
        ],
    )
    def test_values(self, size, expected):
        assert format_size(size) == expected


class TestFormatSpeed:
    """Test format_speed function."""

    def test_units(self):
        assert format_speed(512) == "512 B/s"
        assert format_speed(2048) == "2.0 KB/s"
        assert format_speed(3 * 1024 * 1024) == "3.0 MB/s"


def test_progress_percent():
    assert progress_percent(50, 200) == 25.0
    assert progress_percent(50, None) == 0.0
    assert progress_percent(50, 0) == 0.0


def test_sha256_file(tmp_path):
    path = tmp_path / "data"
    path.write_bytes(b"x" * 20000)
    assert sha256_file(path, chunk_size=1000) == hashlib.sha256(b"x" * 20000).hexdigest()


class TestFileHelpers:
    """Test filesystem helpers."""

    def test_copy_tree_overwrites(self, tmp_path):
        src = tmp_path / "src"
        (src / "a" / "b").mkdir(parents=True)
        (src / "a" / "b" / "f.txt").write_text("new")
        (src / "top.txt").write_text("top")
        dst = tmp_path / "dst"
        (dst / "a" / "b").mkdir(parents=True)
        (dst / "a" / "b" / "f.txt").write_text("old")
        (dst / "keep.txt").write_text("keep")

        assert copy_tree(src, dst) == 2
        assert (dst / "a" / "b" / "f.txt").read_text() == "new"
        assert (dst / "keep.txt").exists()

    def test_remove_path(self, tmp_path):
        directory = tmp_path / "d"
        (directory / "sub").mkdir(parents=True)
        file = tmp_path / "f"
        file.write_text("x")

        assert remove_path(directory)
        assert remove_path(file)
        assert not remove_path(tmp_path / "missing")
        assert not directory.exists() and not file.exists()

    def test_atomic_write_text(self, tmp_path):
        path = tmp_path / "nested" / "out.txt"
        atomic_write_text(path, "one")
        atomic_write_text(path, "two")
        assert path.read_text() == "two"
        assert [p.name for p in path.parent.iterdir()] == ["out.txt"]
