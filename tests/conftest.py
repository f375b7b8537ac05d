"""Pytest configuration and shared fixtures for patchline tests."""

from __future__ import annotations

import io
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from patchline.core.config import AppConfig, HttpConfig
from patchline.core.platform import Platform


@pytest.fixture
def linux_platform() -> Platform:
    """x86_64 Linux descriptor, independent of the host running the tests."""
    return Platform(os="linux", arch="x86_64")


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration rooted in a temporary directory."""
    return AppConfig(
        app_dir=tmp_path / "app",
        config_dir=tmp_path / "config",
        http=HttpConfig(progress_interval=0.0, chunk_size=4),
    )


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for async clients answered by a request handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Build an in-memory zip archive from a name -> content mapping."""

    def factory(files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name, data in files.items():
                info = zipfile.ZipInfo(name)
                info.external_attr = 0o755 << 16
                archive.writestr(info, data)
        return buffer.getvalue()

    return factory


@pytest.fixture
def make_tar_gz() -> Callable[[dict[str, bytes]], bytes]:
    """Build an in-memory gzipped tarball from a name -> content mapping."""

    def factory(files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            for name, data in files.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                archive.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    return factory
