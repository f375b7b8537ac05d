"""Ensure-on-disk artifacts: check, resolve, download, verify, extract, normalize.

The runtime provisioner and the patch tool bootstrap share this flow. A
subclass supplies where the artifact lives and how to resolve its archive;
the base class handles everything else.
"""

from __future__ import annotations

import asyncio
import gzip
import os
import shutil
import stat
import tarfile
import uuid
import zipfile
from pathlib import Path, PurePosixPath

import httpx
import structlog

from patchline.core.cancel import CancellationToken, check_cancel
from patchline.core.config import HttpConfig
from patchline.core.download import stream_download
from patchline.core.errors import FilesystemError, IntegrityError
from patchline.core.http import HttpComponent
from patchline.core.platform import Platform
from patchline.core.types import ArchiveKind, DownloadTarget, ProgressCallback
from patchline.core.utils import sha256_file

logger = structlog.get_logger()


def verify_sha256(path: Path, expected: str) -> bool:
    """Verify a file against an expected SHA-256 digest.

    Args:
        path: File to hash
        expected: Expected hex digest, any case

    Returns:
        True if the digest matches

    Raises:
        IntegrityError: If the digest does not match
    """
    actual = sha256_file(path)
    if actual != expected.strip().lower():
        raise IntegrityError(
            f"checksum mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )
    return True


def _safe_member_path(dest: Path, name: str) -> Path:
    """Resolve an archive member under ``dest``, rejecting traversal."""
    parts = [p for p in PurePosixPath(name.replace("\\", "/")).parts if p not in {"", "."}]
    if not parts or any(p == ".." for p in parts) or PurePosixPath(name).is_absolute():
        raise IntegrityError(f"unsafe archive entry: {name}")
    return dest.joinpath(*parts)


def extract_zip(archive_path: Path, dest: Path) -> int:
    """Extract a zip archive entry by entry.

    Parent directories are created for every entry and POSIX permission
    bits stored in the archive are restored.

    Returns:
        Number of files written
    """
    written = 0
    with zipfile.ZipFile(archive_path) as archive:
        for info in archive.infolist():
            out_path = _safe_member_path(dest, info.filename)
            if info.is_dir():
                out_path.mkdir(parents=True, exist_ok=True)
                continue
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(out_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(out_path, mode)
            written += 1
    return written


def extract_tar_gz(archive_path: Path, dest: Path) -> None:
    """Extract a gzipped tarball."""
    with tarfile.open(archive_path, mode="r:gz") as archive:
        archive.extractall(dest, filter="data")


def extract_archive(archive_path: Path, dest: Path, kind: ArchiveKind) -> None:
    """Extract ``archive_path`` into ``dest``.

    Raises:
        IntegrityError: The archive is unreadable or contains unsafe entries
        FilesystemError: Extraction could not write to disk
    """
    logger.info("archive_extract", archive=str(archive_path), kind=kind.value, dest=str(dest))
    try:
        dest.mkdir(parents=True, exist_ok=True)
        if kind is ArchiveKind.ZIP:
            extract_zip(archive_path, dest)
        else:
            extract_tar_gz(archive_path, dest)
    except (zipfile.BadZipFile, tarfile.TarError, gzip.BadGzipFile, EOFError) as e:
        raise IntegrityError(f"{kind.value} archive unreadable: {e}") from e
    except OSError as e:
        raise FilesystemError(f"{kind.value} extract error: {e}") from e


def normalize_layout(root: Path, plat: Platform) -> bool:
    """Hoist a single nested top-level directory up into ``root``.

    Archives usually wrap their payload in one directory (``jdk-25+7/``).
    On macOS the payload of a bundle lives under ``Contents/Home`` inside
    that directory. Roots with more than one entry are left untouched.

    Returns:
        True if the layout was changed
    """
    if not root.is_dir():
        return False

    entries = list(root.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        return False

    top = entries[0]
    # Move aside first so children named like the wrapper do not collide.
    holding = root / f".normalize-{uuid.uuid4().hex}"
    top.rename(holding)

    payload = holding
    if plat.is_macos:
        bundle_home = holding / "Contents" / "Home"
        if bundle_home.is_dir():
            payload = bundle_home

    for child in list(payload.iterdir()):
        shutil.move(str(child), str(root / child.name))

    shutil.rmtree(holding, ignore_errors=True)
    logger.debug("layout_normalized", root=str(root), wrapper=top.name)
    return True


def make_executable(path: Path) -> None:
    """Add execute bits for user, group and others."""
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class ArtifactProvisioner(HttpComponent):
    """Make sure a downloadable executable exists on disk.

    Subclasses set ``name`` and implement ``binary_path``, ``archive_path``
    and ``resolve_target``.
    """

    name = "artifact"
    keep_archive = True

    def __init__(
        self,
        root: Path,
        cache_dir: Path,
        http_config: HttpConfig,
        client: httpx.AsyncClient | None = None,
        platform: Platform | None = None,
    ):
        super().__init__(http_config, client)
        self.root = root
        self.cache_dir = cache_dir
        self.platform = platform or Platform.current()

    @property
    def binary_path(self) -> Path:
        raise NotImplementedError

    def archive_path(self, target: DownloadTarget) -> Path:
        return self.cache_dir / f"{self.name}{target.archive.extension}"

    async def resolve_target(self, cancel: CancellationToken | None) -> DownloadTarget:
        raise NotImplementedError

    def after_install(self, binary: Path) -> None:
        """Hook run once the binary is in place."""

    def _normalize(self) -> None:
        try:
            normalize_layout(self.root, self.platform)
        except OSError as e:
            raise FilesystemError(f"failed to normalize {self.name} layout: {e}") from e

    async def ensure(
        self,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """Return the artifact binary, provisioning it on demand.

        Args:
            cancel: Cancellation token
            on_progress: Progress observer for the archive download

        Returns:
            Path of the executable

        Raises:
            OperationCancelledError, IntegrityError, FilesystemError,
            NetworkError, StatusError
        """
        check_cancel(cancel, f"{self.name}_start")
        binary = self.binary_path
        if binary.exists():
            logger.debug("artifact_present", name=self.name, path=str(binary))
            return binary

        if self.root.exists():
            self._normalize()
            if binary.exists():
                logger.debug("artifact_found_after_normalize", name=self.name)
                return binary

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"unable to create {self.name} directories: {e}") from e

        target = await self.resolve_target(cancel)
        check_cancel(cancel, f"{self.name}_before_download")
        logger.info("artifact_target", name=self.name, url=target.url, archive=target.archive.value)

        archive = self.archive_path(target)
        expected = (target.checksum or "").strip() or None

        # One forced redownload when the archive fails verification or extraction.
        for attempt in (1, 2):
            if not archive.exists():
                logger.info("artifact_download", name=self.name, attempt=attempt, dest=str(archive))
                await stream_download(
                    self.async_client,
                    target.url,
                    archive,
                    http_config=self.http_config,
                    cancel=cancel,
                    on_progress=on_progress,
                    stage=self.name,
                    message=f"Downloading {self.name}...",
                )
            check_cancel(cancel, f"{self.name}_before_verify")
            try:
                if expected is not None:
                    await asyncio.to_thread(verify_sha256, archive, expected)
                check_cancel(cancel, f"{self.name}_before_extract")
                await asyncio.to_thread(extract_archive, archive, self.root, target.archive)
                break
            except IntegrityError as e:
                archive.unlink(missing_ok=True)
                if attempt == 2:
                    logger.error("artifact_verify_failed", name=self.name, error=e.message)
                    raise
                logger.warning("artifact_redownload", name=self.name, reason=e.message)
                shutil.rmtree(self.root, ignore_errors=True)
                self.root.mkdir(parents=True, exist_ok=True)

        check_cancel(cancel, f"{self.name}_after_extract")
        self._normalize()

        if not binary.exists():
            raise FilesystemError(f"{self.name} binary missing after extraction: {binary}")

        try:
            self.after_install(binary)
        except OSError as e:
            raise FilesystemError(f"failed to finalize {self.name}: {e}") from e

        if not self.keep_archive:
            archive.unlink(missing_ok=True)

        logger.info("artifact_ready", name=self.name, path=str(binary))
        return binary
