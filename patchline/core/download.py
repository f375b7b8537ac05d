"""Streaming download primitive with progress reporting and cancellation.

All network downloads in the pipeline (patches, runtime archives, the
patch tool, add-on content) go through ``stream_download``. The contract:

- cancellation is checked before the request, after the response headers,
  and before and after every chunk write
- the destination file is removed on any failure or cancellation
- a cancellation observed at a checkpoint wins over an error raised there
- a transfer shorter than the declared total is an integrity failure,
  whether the stream ends early or the connection drops mid-body
- completeness is measured in bytes received on the wire, so a
  content-encoded body is compared against its encoded length
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import httpx
import structlog

from patchline.core.cancel import CancellationToken, check_cancel, is_cancelled
from patchline.core.config import HttpConfig
from patchline.core.errors import (
    FilesystemError,
    IntegrityError,
    LauncherError,
    NetworkError,
    OperationCancelledError,
    StatusError,
)
from patchline.core.types import ProgressCallback, ProgressUpdate, emit_progress
from patchline.core.utils import format_speed, progress_percent

logger = structlog.get_logger()


def _discard(dest: Path) -> None:
    try:
        dest.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("partial_file_cleanup_failed", path=str(dest), error=str(e))


def _declared_length(response: httpx.Response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _incomplete(total: int, received: int) -> IntegrityError:
    return IntegrityError(
        f"incomplete transfer: got {received} of {total} bytes",
        expected=total,
        actual=received,
    )


async def stream_download(
    client: httpx.AsyncClient,
    url: str,
    dest: Path,
    *,
    http_config: HttpConfig,
    cancel: CancellationToken | None = None,
    on_progress: ProgressCallback | None = None,
    expected_size: int | None = None,
    stage: str = "download",
    message: str = "Downloading...",
) -> int:
    """Stream ``url`` into ``dest``.

    Args:
        client: HTTP client to use
        url: Source URL
        dest: Destination file, parent directories are created
        http_config: Chunk size and progress interval
        cancel: Optional cancellation token
        on_progress: Optional progress observer
        expected_size: Fallback total when the response has no Content-Length
        stage: Stage name carried on progress events
        message: Message carried on progress events

    Returns:
        Number of bytes written

    Raises:
        OperationCancelledError: Cancellation observed at a checkpoint
        StatusError: Non-success HTTP status
        NetworkError: Transport failure before the body started
        IntegrityError: Fewer bytes than the declared total
        FilesystemError: Destination could not be written
    """
    check_cancel(cancel, "before_request")

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"failed to create download directory: {e}") from e

    file_name = dest.name
    written = 0
    received = 0
    total: int | None = None
    response: httpx.Response | None = None

    try:
        async with client.stream("GET", url) as response:
            check_cancel(cancel, "after_headers")
            if not response.is_success:
                raise StatusError(
                    f"download not available: HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                )

            total = _declared_length(response) or expected_size or None
            logger.debug("download_started", url=url, dest=str(dest), total=total)

            last_tick = time.monotonic()
            last_bytes = 0
            with open(dest, "wb") as fh:
                async for chunk in response.aiter_bytes(http_config.chunk_size):
                    check_cancel(cancel, "before_chunk")
                    await asyncio.to_thread(fh.write, chunk)
                    written += len(chunk)
                    received = response.num_bytes_downloaded
                    check_cancel(cancel, "after_chunk")

                    elapsed = time.monotonic() - last_tick
                    if elapsed >= http_config.progress_interval and elapsed > 0:
                        rate = (received - last_bytes) / elapsed
                        emit_progress(
                            on_progress,
                            ProgressUpdate(
                                stage=stage,
                                progress=progress_percent(received, total),
                                message=message,
                                current_file=file_name,
                                speed=format_speed(rate),
                                rate=rate,
                                downloaded=received,
                                total=total,
                            ),
                        )
                        last_tick = time.monotonic()
                        last_bytes = received
            received = response.num_bytes_downloaded
    except OperationCancelledError:
        _discard(dest)
        raise
    except LauncherError:
        _discard(dest)
        if is_cancelled(cancel):
            raise OperationCancelledError() from None
        raise
    except httpx.HTTPError as e:
        _discard(dest)
        if is_cancelled(cancel):
            raise OperationCancelledError() from e
        if response is not None and total is not None:
            received = response.num_bytes_downloaded
            if received < total:
                logger.warning(
                    "download_truncated", url=url, received=received, total=total, error=str(e)
                )
                raise _incomplete(total, received) from e
        raise NetworkError(f"download failed for {url}: {e}") from e
    except OSError as e:
        _discard(dest)
        if is_cancelled(cancel):
            raise OperationCancelledError() from e
        raise FilesystemError(f"failed to write {dest}: {e}") from e

    if total is not None and received < total:
        _discard(dest)
        raise _incomplete(total, received)

    emit_progress(
        on_progress,
        ProgressUpdate(
            stage=stage,
            progress=100.0,
            message="Download complete",
            current_file=file_name,
            speed="0 B/s",
            rate=0.0,
            downloaded=received,
            total=total,
        ),
    )

    logger.info("download_completed", dest=str(dest), size=written)
    return written
