"""
Context manager for the orchestration core.

Maintains the mutable "current AI context" plus a bounded history of
pre-update snapshots. The history is kept for inspection/undo only and is
never consulted by dispatch.

Concurrency:
    set() and clear() run under one lock and publish new immutable objects
    (context instance, history tuple) with single assignments. A reader sees
    either the full previous state or the full new one.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from ._constants import DEFAULT_CONTEXT_HISTORY_LIMIT
from .events import ContextChangeEvent
from .models import AiContext

logger = logging.getLogger(__name__)


class ContextManager:
    """
    Current AI context with bounded FIFO history.

    Example:
        >>> manager = ContextManager()
        >>> manager.set(language="ts")
        >>> manager.set({"framework": "react"})
        >>> manager.get().language, manager.get().framework
        ('ts', 'react')
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_CONTEXT_HISTORY_LIMIT,
        on_change: Callable[[ContextChangeEvent], None] | None = None,
    ):
        if history_limit < 1:
            raise ValueError(f"history_limit must be >= 1, got {history_limit}")
        self._history_limit = history_limit
        self._on_change = on_change
        self._lock = threading.Lock()
        self._current = AiContext()
        self._history: tuple[AiContext, ...] = ()

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def get(self) -> AiContext:
        """Shallow copy of the current context."""
        return self._current.copy()

    def history(self) -> tuple[AiContext, ...]:
        """Pre-update snapshots, oldest first."""
        return tuple(snapshot.copy() for snapshot in self._history)

    def set(self, changes: Mapping[str, Any] | AiContext | None = None, **fields: Any) -> AiContext:
        """
        Overlay ``changes`` onto the current context.

        Accepts a mapping of field names, an AiContext (its non-None facets are
        applied), keyword fields, or a combination (keywords win). The
        pre-update snapshot is pushed onto history, evicting the oldest past
        capacity, and a ContextChangeEvent carrying the new context and the
        applied delta is emitted.

        Returns:
            The new current context.

        Raises:
            InvalidContextUpdateError: If an unknown field is named.
        """
        delta: dict[str, Any] = {}
        if isinstance(changes, AiContext):
            delta.update(changes.to_dict())
        elif changes:
            delta.update(changes)
        delta.update(fields)

        with self._lock:
            previous = self._current
            # Own copy: the caller keeps its user_preferences dict
            updated = previous.overlay(delta).copy()
            history = deque(self._history, maxlen=self._history_limit)
            history.append(previous)
            self._current = updated
            self._history = tuple(history)

        logger.debug(f"[CONTEXT] Context updated: fields={sorted(delta)}")
        self._notify(ContextChangeEvent(context=updated.copy(), changes=dict(delta)))
        return updated.copy()

    def clear(self) -> None:
        """Reset to an empty context and discard all history."""
        with self._lock:
            self._current = AiContext()
            self._history = ()
        logger.debug("[CONTEXT] Context and history cleared")

    def _notify(self, event: ContextChangeEvent) -> None:
        if self._on_change is not None:
            self._on_change(event)
