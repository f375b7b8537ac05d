"""Cooperative cancellation token shared between the orchestrator and its steps."""

from __future__ import annotations

import threading

import structlog

from patchline.core.errors import OperationCancelledError

logger = structlog.get_logger()


class CancellationToken:
    """Resettable stop signal.

    The orchestrator owns one token, resets it at the start of every attempt
    and hands it to each long-running step. Steps only observe it; a set
    token is never consumed, so every later checkpoint sees it too.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()
        logger.debug("cancel_requested")

    def reset(self) -> None:
        """Clear the flag before a new attempt."""
        self._event.clear()
        logger.debug("cancel_reset")

    def raise_if_cancelled(self, where: str = "") -> None:
        """Raise OperationCancelledError if cancellation was requested.

        Args:
            where: Checkpoint name used for logging
        """
        if self._event.is_set():
            logger.warning("cancel_observed", checkpoint=where or None)
            raise OperationCancelledError()


def is_cancelled(token: CancellationToken | None) -> bool:
    """Check an optional token."""
    return token is not None and token.is_cancelled


def check_cancel(token: CancellationToken | None, where: str = "") -> None:
    """Raise if an optional token has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(where)
