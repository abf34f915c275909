"""
Dispatch engine: concurrent fan-out of one request to every provider of a kind.

Failure policy:

STRICT (default)
    Dispatch succeeds only if every invoked provider succeeds. The first
    failure observed wins and is raised as ProviderFailureError chained to
    the original error. If several providers fail in the same scheduling
    step, the one earliest in registration order is reported. Providers that
    already succeeded are irrelevant to the error value.

BEST_EFFORT (opt-in via ``dispatch_policy: best_effort``)
    Failures are logged and skipped; the successes are merged. If every
    provider fails, the first failure in registration order is raised.

Cancellation:
    The same token is forwarded to every provider. When it fires, dispatch
    stops waiting and raises CancelledOperationError. Provider tasks are not
    force-cancelled; their late outcomes are retrieved and logged.

No retries, no timeouts: callers wanting bounded latency wrap dispatch in
their own deadline (e.g. ``asyncio.timeout``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Sequence
from typing import Any

from ._constants import DEFAULT_DISPATCH_POLICY, DispatchPolicy
from .cancellation import CancellationToken
from .exceptions import (
    AiCoreError,
    CancelledOperationError,
    NoProvidersRegisteredError,
    ProviderFailureError,
    UnsupportedCapabilityError,
)
from .merger import merge_results
from .models import FANOUT_KINDS, AiContext, CapabilityKind
from .protocols import AiProvider
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


def invoke_provider(
    kind: CapabilityKind,
    provider: Any,
    payload: Any,
    context: AiContext,
    token: CancellationToken,
) -> Awaitable[Any]:
    """Call the capability method of ``provider`` that matches ``kind``."""
    if kind is CapabilityKind.CODE_COMPLETION:
        return provider.provide_completion(payload, context, token)
    if kind is CapabilityKind.CHAT:
        return provider.provide_chat_response(payload, context, token)
    if kind is CapabilityKind.CODE_EDIT:
        return provider.provide_code_edit(payload, token)
    raise UnsupportedCapabilityError(kind)


class DispatchEngine:
    """
    Fans a request out to the registered providers of one kind and merges.

    Attributes:
        policy: How individual provider failures are treated.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        policy: DispatchPolicy = DEFAULT_DISPATCH_POLICY,
    ):
        self._registry = registry
        self.policy = policy

    async def dispatch(
        self,
        kind: CapabilityKind,
        payload: Any,
        context: AiContext,
        token: CancellationToken | None = None,
    ) -> Any:
        """
        Invoke every provider registered for ``kind`` and merge their results.

        Args:
            kind: A fan-out capability kind.
            payload: Query string (completion), message (chat) or
                CodeEditRequest (code edit).
            context: Ambient context passed to every provider.
            token: Cancellation token forwarded unchanged to every provider.

        Returns:
            The merged result for ``kind``.

        Raises:
            UnsupportedCapabilityError: ``kind`` has no fan-out/merge.
            NoProvidersRegisteredError: No provider is registered for ``kind``.
            CancelledOperationError: The token fired before completion.
            ProviderFailureError: A provider call failed (see module docstring).
        """
        if kind not in FANOUT_KINDS:
            raise UnsupportedCapabilityError(kind)

        # Snapshot: providers unregistered from here on still run to completion
        providers = self._registry.providers_for(kind)
        if not providers:
            raise NoProvidersRegisteredError(kind)

        token = token or CancellationToken.none()
        token.raise_if_cancelled(kind.value)

        logger.debug(
            f"[DISPATCH] {kind.value} -> {len(providers)} provider(s) "
            f"{[p.id for p in providers]}, policy={self.policy.value}"
        )
        results = await self._fan_out(kind, providers, payload, context, token)
        return merge_results(kind, results)

    async def _fan_out(
        self,
        kind: CapabilityKind,
        providers: Sequence[AiProvider],
        payload: Any,
        context: AiContext,
        token: CancellationToken,
    ) -> list[Any]:
        loop = asyncio.get_running_loop()
        tasks: list[asyncio.Task[Any]] = []
        for provider in providers:
            task = loop.create_task(
                self._call_provider(kind, provider, payload, context, token),
                name=f"ai_core:{kind.value}:{provider.id}",
            )
            task.add_done_callback(self._handle_task_exception)
            tasks.append(task)

        cancel_waiter: asyncio.Task[None] | None = None
        if token.can_be_cancelled:
            cancel_waiter = loop.create_task(token.wait(), name=f"ai_core:{kind.value}:cancel")

        failures: dict[int, AiCoreError] = {}
        pending: set[asyncio.Task[Any]] = set(tasks)
        try:
            while pending:
                waiting = pending | {cancel_waiter} if cancel_waiter is not None else pending
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if cancel_waiter is not None and cancel_waiter in done:
                    logger.info(f"[DISPATCH] {kind.value} cancelled with {len(pending)} pending")
                    raise CancelledOperationError(kind.value)

                pending -= done
                # Registration order decides between failures seen together
                for index, task in enumerate(tasks):
                    if task not in done:
                        continue
                    error = self._task_error(kind, providers[index], task)
                    if error is None:
                        continue
                    if self.policy is DispatchPolicy.STRICT:
                        raise error from error.__cause__
                    failures[index] = error
                    logger.warning(f"[DISPATCH] Skipping failed provider (best effort): {error}")
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        results = [task.result() for index, task in enumerate(tasks) if index not in failures]
        if not results:
            first = failures[min(failures)]
            raise first from first.__cause__
        return results

    async def _call_provider(
        self,
        kind: CapabilityKind,
        provider: AiProvider,
        payload: Any,
        context: AiContext,
        token: CancellationToken,
    ) -> Any:
        start_time = time.monotonic()
        try:
            return await invoke_provider(kind, provider, payload, context, token)
        finally:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.debug(f"[DISPATCH] Provider '{provider.id}' {kind.value} took {elapsed_ms}ms")

    def _task_error(
        self,
        kind: CapabilityKind,
        provider: AiProvider,
        task: asyncio.Task[Any],
    ) -> AiCoreError | None:
        """Translate a finished provider task into the error dispatch reports."""
        if task.cancelled():
            return CancelledOperationError(kind.value)
        exc = task.exception()
        if exc is None:
            return None
        if isinstance(exc, CancelledOperationError):
            # Provider observed the token cooperatively
            return exc
        logger.warning(f"[DISPATCH] Provider '{provider.name}' failed: {type(exc).__name__}: {exc}")
        failure = ProviderFailureError(provider.id, kind, exc)
        failure.__cause__ = exc
        return failure

    def _handle_task_exception(self, task: asyncio.Task[Any]) -> None:
        """
        Retrieve outcomes of provider tasks dispatch stopped waiting for.

        Prevents 'Task exception was never retrieved' warnings after a strict
        failure or a cancellation abandoned the remaining tasks.
        """
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"[DISPATCH] Task {task.get_name()} finished with {type(exc).__name__}: {exc}")
