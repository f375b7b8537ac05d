"""Tests for cache.py module."""

from patchline.core.cache import PatchCache


class TestPatchCache:
    """Test PatchCache class."""

    def test_path_for(self, tmp_path):
        cache = PatchCache(tmp_path)
        assert cache.path_for(12) == tmp_path / "12.pwr"

    def test_ensure_dir(self, tmp_path):
        cache = PatchCache(tmp_path / "nested" / "cache")
        cache.ensure_dir()
        assert cache.cache_dir.is_dir()

    def test_lookup_missing(self, tmp_path):
        assert PatchCache(tmp_path).lookup(3, 100) is None

    def test_exact_size_hit(self, tmp_path):
        cache = PatchCache(tmp_path)
        cache.path_for(3).write_bytes(b"x" * 100)
        assert cache.lookup(3, 100) == cache.path_for(3)

    def test_size_mismatch_discards(self, tmp_path):
        cache = PatchCache(tmp_path)
        path = cache.path_for(3)
        path.write_bytes(b"x" * 99)

        assert cache.lookup(3, 100) is None
        assert not path.exists()

    def test_unknown_size_uses_floor(self, tmp_path):
        """With no remote size, only files above the floor are reused."""
        cache = PatchCache(tmp_path, size_floor=10)
        big = cache.path_for(4)
        big.write_bytes(b"x" * 11)
        small = cache.path_for(5)
        small.write_bytes(b"x" * 10)

        assert cache.lookup(4, None) == big
        assert cache.lookup(5, None) is None
        assert not small.exists()

    def test_is_valid_missing_file(self, tmp_path):
        cache = PatchCache(tmp_path)
        assert not cache.is_valid(tmp_path / "nope.pwr", 10)
