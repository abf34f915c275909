"""
AI Core Service for Amplifier.

This module implements the orchestration core: the single object collaborators
use to reach AI capability providers.

Request flow:
    caller -> AiCoreService.dispatch()
        -> DispatchEngine (reads ProviderRegistry snapshot, ambient context
           from ContextManager)
        -> concurrent provider calls
        -> merger
        -> EventBus (response or error) + coordinator hook events
        -> merged result returned to the caller

The service is constructed once per session and handed to collaborators by
reference (mount() registers it as a coordinator capability). It holds no
module-level state.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from amplifier_core.utils import truncate_values

from ._constants import (
    DEFAULT_CONTEXT_HISTORY_LIMIT,
    DEFAULT_DEBUG_TRUNCATE_LENGTH,
    DEFAULT_DISPATCH_POLICY,
    EVENT_CONTEXT_CHANGED,
    EVENT_ERROR,
    EVENT_RESPONSE,
    DispatchPolicy,
)
from .cancellation import CancellationToken
from .context import ContextManager
from .correlator import RequestIdGenerator, RequestRecord
from .dispatch import DispatchEngine
from .events import AiErrorEvent, AiResponseEvent, ContextChangeEvent, EventBus
from .models import (
    AiChatResponse,
    AiContext,
    CapabilityKind,
    CodeEditRequest,
    CodeEditResult,
    CompletionResult,
)
from .protocols import AiProvider
from .registry import ProviderRegistry, Registration

logger = logging.getLogger(__name__)


class AiCoreService:
    """
    Orchestration core for pluggable AI capability providers.

    Owns the provider registry, dispatch engine, context manager and event
    bus. Every dispatch gets a request id and a duration measured from start
    to merge completion (or failure); the outcome is published on the event
    bus before the caller sees it.

    Attributes:
        registry: Provider registry (per-kind, registration-ordered)
        events: Event bus with response/error/context-change streams

    Example:
        >>> service = AiCoreService(config={"dispatch_policy": "strict"})
        >>> service.register_provider(my_chat_provider)
        >>> response = await service.get_chat_response("Explain this function")
        >>> response.message
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        coordinator: Any | None = None,  # ModuleCoordinator
    ):
        """
        Initialize the orchestration core.

        Args:
            config: Configuration dict with optional keys:
                - dispatch_policy: "strict" (default) or "best_effort"
                - context_history_limit: Context snapshots kept (default: 10)
                - debug: Emit truncated result payloads on debug hooks (default: False)
                - debug_truncate_length: Max string length in debug payloads (default: 180)
                - forward_hook_events: Mirror bus events to coordinator hooks (default: True)
            coordinator: Amplifier's ModuleCoordinator, used for hook events.

        Raises:
            ValueError: If a config value is invalid.
        """
        config = dict(config or {})
        self._config = config
        self._coordinator = coordinator

        self._debug = bool(config.get("debug", False))
        self._debug_truncate_length = int(
            config.get("debug_truncate_length", DEFAULT_DEBUG_TRUNCATE_LENGTH)
        )
        self._forward_hook_events = bool(config.get("forward_hook_events", True))
        policy = DispatchPolicy(config.get("dispatch_policy", DEFAULT_DISPATCH_POLICY.value))
        history_limit = int(config.get("context_history_limit", DEFAULT_CONTEXT_HISTORY_LIMIT))

        self.events = EventBus()
        self.registry = ProviderRegistry()
        self._engine = DispatchEngine(self.registry, policy)
        self._context = ContextManager(history_limit, on_change=self._on_context_changed)
        self._request_ids = RequestIdGenerator()
        self._registrations: list[Registration] = []

        # Track pending hook-forwarding tasks for cleanup on close
        self._pending_emit_tasks: set[asyncio.Task] = set()

        # Metrics: avg_duration_ms covers successful requests only
        self._request_count: int = 0
        self._error_count: int = 0
        self._success_count: int = 0
        self._total_duration_ms: float = 0.0

        logger.info(
            f"[SERVICE] AiCoreService initialized - policy: {policy.value}, "
            f"context_history_limit: {history_limit}"
        )

    @property
    def dispatch_policy(self) -> DispatchPolicy:
        return self._engine.policy

    # ═══════════════════════════════════════════════════════════════════════════
    # Provider Management
    # ═══════════════════════════════════════════════════════════════════════════

    def is_enabled(self) -> bool:
        """Fast-path gate: at least one provider of any kind is registered."""
        return self.registry.is_enabled()

    def register_provider(
        self,
        provider: AiProvider,
        kinds: Iterable[CapabilityKind] | None = None,
    ) -> Registration:
        """
        Register an already-initialized provider.

        Returns:
            Registration whose dispose() unregisters the provider and calls
            its dispose().
        """
        registration = self.registry.register(provider, kinds)
        self._registrations.append(registration)
        registration.on_dispose(self._forget_registration)
        logger.info(
            f"[SERVICE] Provider '{provider.name}' registered for "
            f"{[k.value for k in registration.kinds]}"
        )
        return registration

    async def add_provider(
        self,
        provider: AiProvider,
        kinds: Iterable[CapabilityKind] | None = None,
    ) -> Registration:
        """Await the provider's initialize(), then register it."""
        await provider.initialize()
        return self.register_provider(provider, kinds)

    def _forget_registration(self, registration: Registration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)

    # ═══════════════════════════════════════════════════════════════════════════
    # Dispatch [CORE METHOD]
    # ═══════════════════════════════════════════════════════════════════════════

    async def dispatch(
        self,
        kind: CapabilityKind,
        payload: Any,
        context: AiContext | None = None,
        token: CancellationToken | None = None,
        *,
        operation: str = "dispatch",
    ) -> Any:
        """
        Fan ``payload`` out to every provider of ``kind`` and merge.

        Args:
            kind: CODE_COMPLETION, CHAT or CODE_EDIT.
            payload: Query, message or CodeEditRequest matching ``kind``.
            context: Context for providers; defaults to the current context.
            token: Cancellation token forwarded to every provider.
            operation: Name reported on error events.

        Returns:
            Merged result (CompletionResult, AiChatResponse or CodeEditResult).

        Raises:
            NoProvidersRegisteredError, ProviderFailureError,
            CancelledOperationError, UnsupportedCapabilityError
        """
        record = RequestRecord(self._request_ids.generate(), operation, kind)
        self._request_count += 1
        effective_context = context if context is not None else self._context.get()

        logger.debug(f"[SERVICE] {operation} started - request_id: {record.request_id}")
        try:
            result = await self._engine.dispatch(kind, payload, effective_context, token)
        except asyncio.CancelledError as e:
            # Caller's task was cancelled: publish without awaiting further
            self._error_count += 1
            self._publish_error(record, e, forward=self._schedule_emit)
            raise
        except Exception as e:
            self._error_count += 1
            logger.info(f"[SERVICE] {operation} failed - request_id: {record.request_id}: {e}")
            self._publish_error(record, e)
            await self._emit_event(EVENT_ERROR, self._error_payload(record, e))
            raise

        duration_ms = record.elapsed_ms()
        self._success_count += 1
        self._total_duration_ms += duration_ms
        self.events.response.fire(
            AiResponseEvent(
                request_id=record.request_id,
                kind=kind,
                result=result,
                duration_ms=duration_ms,
            )
        )
        await self._emit_event(EVENT_RESPONSE, self._response_payload(record, result, duration_ms))
        if self._debug:
            await self._emit_event(
                f"{EVENT_RESPONSE}:debug",
                {
                    "lvl": "DEBUG",
                    "request_id": record.request_id,
                    "result": self._truncate_values(_as_payload(result)),
                },
            )
        return result

    async def get_completion(
        self,
        query: str,
        context: AiContext | None = None,
        token: CancellationToken | None = None,
    ) -> CompletionResult:
        """Completions from every completion provider, deduplicated and ranked."""
        return await self.dispatch(
            CapabilityKind.CODE_COMPLETION, query, context, token, operation="get_completion"
        )

    async def get_chat_response(
        self,
        message: str,
        context: AiContext | None = None,
        token: CancellationToken | None = None,
    ) -> AiChatResponse:
        """Chat responses from every chat provider, merged."""
        return await self.dispatch(
            CapabilityKind.CHAT, message, context, token, operation="get_chat_response"
        )

    async def get_code_edit(
        self,
        request: CodeEditRequest,
        token: CancellationToken | None = None,
    ) -> CodeEditResult:
        """Code edits from every code-edit provider, concatenated."""
        return await self.dispatch(
            CapabilityKind.CODE_EDIT, request, request.context, token, operation="get_code_edit"
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Context Management
    # ═══════════════════════════════════════════════════════════════════════════

    def get_context(self) -> AiContext:
        return self._context.get()

    def set_context(
        self, changes: Mapping[str, Any] | AiContext | None = None, **fields: Any
    ) -> AiContext:
        """Overlay fields onto the current context (absent fields untouched)."""
        return self._context.set(changes, **fields)

    def clear_context(self) -> None:
        self._context.clear()

    def context_history(self) -> tuple[AiContext, ...]:
        return self._context.history()

    def _on_context_changed(self, event: ContextChangeEvent) -> None:
        self.events.context_changed.fire(event)
        self._schedule_emit(
            EVENT_CONTEXT_CHANGED,
            {"changed_fields": sorted(event.changes), "empty": event.context.is_empty()},
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Metrics & Lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    def get_metrics(self) -> dict[str, Any]:
        """
        Aggregate request statistics.

        avg_duration_ms is the mean duration of successful requests.
        """
        return {
            "total_requests": self._request_count,
            "error_count": self._error_count,
            "avg_duration_ms": self._total_duration_ms / max(self._success_count, 1),
            "registered_providers": len(self.registry),
        }

    async def close(self) -> None:
        """
        Dispose every registration made through this service.

        Cancels pending hook-forwarding tasks. Safe to call multiple times.
        """
        logger.info("[SERVICE] Closing AiCoreService")
        for registration in list(self._registrations):
            try:
                registration.dispose()
            except Exception as e:
                logger.warning(
                    f"[SERVICE] Disposing provider '{registration.provider.id}' failed: {e}"
                )
        self._registrations.clear()

        for task in self._pending_emit_tasks:
            task.cancel()
        self._pending_emit_tasks.clear()

    # ═══════════════════════════════════════════════════════════════════════════
    # Event Helpers
    # ═══════════════════════════════════════════════════════════════════════════

    def _publish_error(
        self,
        record: RequestRecord,
        error: BaseException,
        forward: Callable[[str, dict[str, Any]], None] | None = None,
    ) -> None:
        self.events.error.fire(
            AiErrorEvent(
                request_id=record.request_id,
                error=error,
                operation=record.operation,
                duration_ms=record.elapsed_ms(),
            )
        )
        if forward is not None:
            forward(EVENT_ERROR, self._error_payload(record, error))

    def _response_payload(
        self, record: RequestRecord, result: Any, duration_ms: float
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "request_id": record.request_id,
            "kind": record.kind.value if record.kind else None,
            "operation": record.operation,
            "status": "ok",
            "duration_ms": int(duration_ms),
        }
        if isinstance(result, CompletionResult):
            payload["completions"] = len(result.completions)
        elif isinstance(result, AiChatResponse):
            payload["code_blocks"] = len(result.code_blocks)
            payload["suggestions"] = len(result.suggestions)
        elif isinstance(result, CodeEditResult):
            payload["edits"] = len(result.edits)
        return payload

    def _error_payload(self, record: RequestRecord, error: BaseException) -> dict[str, Any]:
        return {
            "request_id": record.request_id,
            "kind": record.kind.value if record.kind else None,
            "operation": record.operation,
            "status": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "duration_ms": int(record.elapsed_ms()),
        }

    async def _emit_event(self, event_name: str, data: dict[str, Any]) -> None:
        """
        Emit observability event if coordinator supports hooks.

        Args:
            event_name: Event type (e.g., "ai_core:response")
            data: Event data dict
        """
        if not self._forward_hook_events:
            return
        if self._coordinator and hasattr(self._coordinator, "hooks"):
            try:
                await self._coordinator.hooks.emit(event_name, data)
            except Exception as e:
                logger.warning(f"[SERVICE] Failed to emit event '{event_name}': {e}")

    def _schedule_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Fire-and-forget hook emission from synchronous code paths."""
        if not self._forward_hook_events:
            return
        if not self._coordinator or not hasattr(self._coordinator, "hooks"):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop - skip emission
            return
        task = loop.create_task(self._emit_event(event_name, data), name=f"emit_{event_name}")
        self._pending_emit_tasks.add(task)
        task.add_done_callback(self._pending_emit_tasks.discard)

    def _truncate_values(self, obj: Any, max_length: int | None = None) -> Any:
        """Recursively truncate string values; delegates to amplifier_core.utils."""
        if max_length is None:
            max_length = self._debug_truncate_length
        return truncate_values(obj, max_length)


def _as_payload(result: Any) -> Any:
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        return dataclasses.asdict(result)
    return result
