"""
Cooperative cancellation for dispatched operations.

One token is handed unchanged to every provider invoked by a dispatch.
Providers observe it cooperatively (poll ``is_cancellation_requested`` or
await ``wait()``); the core only stops waiting when it fires.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .exceptions import CancelledOperationError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read-only view of a cancellation signal."""

    def __init__(self, source: CancellationTokenSource | None = None):
        self._source = source

    @classmethod
    def none(cls) -> CancellationToken:
        """A token that never fires."""
        return cls(None)

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    @property
    def is_cancellation_requested(self) -> bool:
        return self._source is not None and self._source.is_cancelled

    def raise_if_cancelled(self, operation: str | None = None) -> None:
        if self.is_cancellation_requested:
            raise CancelledOperationError(operation)

    async def wait(self) -> None:
        """Suspend until cancellation is requested (forever for none())."""
        if self._source is None:
            await asyncio.Event().wait()
            return
        await self._source._event.wait()

    def on_cancelled(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Invoke ``callback`` once when cancellation is requested.

        Runs immediately if already cancelled. Returns a function that
        removes the callback.
        """
        if self._source is None:
            return lambda: None
        return self._source._add_callback(callback)


class CancellationTokenSource:
    """
    Owner side of a cancellation signal.

    Example:
        >>> source = CancellationTokenSource()
        >>> task = asyncio.create_task(service.get_chat_response("hi", token=source.token))
        >>> source.cancel()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []
        self.token = CancellationToken(self)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Safe to call multiple times."""
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"[CANCEL] Cancellation callback failed: {e}")

    def _add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        if self._event.is_set():
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove
