"""
Event bus for the orchestration core.

A small typed publish/subscribe surface with three streams: responses,
errors, and context changes. Delivery is synchronous: fire() returns after
every listener ran, so an event is always emitted no later than the
dispatch result is returned to its caller.

A listener that raises is logged and skipped; it never prevents delivery to
other listeners nor changes the outcome of the operation that fired.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .models import AiContext, CapabilityKind

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class AiResponseEvent:
    """A dispatched operation succeeded.

    kind is a CapabilityKind for core dispatches and the operation name for
    assistant operations.
    """

    request_id: str
    kind: CapabilityKind | str
    result: Any
    duration_ms: float


@dataclass(frozen=True)
class AiErrorEvent:
    """A dispatched operation failed; operation names the originating call."""

    request_id: str
    error: BaseException
    operation: str
    duration_ms: float = 0.0


@dataclass(frozen=True)
class ContextChangeEvent:
    context: AiContext
    changes: dict[str, Any] = field(default_factory=dict)


class Emitter(Generic[E]):
    """Listener list for one event type."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Callable[[E], None]] = []

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Add ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fire(self, event: E) -> None:
        # Iterate over a copy: listeners may unsubscribe while handling
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Listener for '{self.name}' failed: {e}")

    def __len__(self) -> int:
        return len(self._listeners)


class EventBus:
    """Response, error and context-change streams."""

    def __init__(self) -> None:
        self.response: Emitter[AiResponseEvent] = Emitter("response")
        self.error: Emitter[AiErrorEvent] = Emitter("error")
        self.context_changed: Emitter[ContextChangeEvent] = Emitter("context_changed")

    def on_response(self, listener: Callable[[AiResponseEvent], None]) -> Callable[[], None]:
        return self.response.subscribe(listener)

    def on_error(self, listener: Callable[[AiErrorEvent], None]) -> Callable[[], None]:
        return self.error.subscribe(listener)

    def on_context_changed(
        self, listener: Callable[[ContextChangeEvent], None]
    ) -> Callable[[], None]:
        return self.context_changed.subscribe(listener)
