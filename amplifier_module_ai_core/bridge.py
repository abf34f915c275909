"""
Adapter exposing Amplifier LLM providers as chat capability providers.

Any provider mounted on the coordinator (``complete(ChatRequest) ->
ChatResponse``) can take part in chat fan-out through AmplifierChatProvider.
The wrapped provider's lifecycle belongs to the coordinator: dispose() only
marks the adapter unusable, it never closes the underlying provider.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from .cancellation import CancellationToken
from .converters import DEFAULT_SYSTEM_PROMPT, build_chat_request, convert_chat_response
from .models import AiChatResponse, AiContext, CapabilityKind

logger = logging.getLogger(__name__)


class AmplifierChatProvider:
    """
    Chat provider backed by an Amplifier LLM provider.

    Kernel LLMErrors raised by ``complete()`` propagate unchanged; dispatch
    wraps them in ProviderFailureError, preserving their ``retryable`` flag.

    Example:
        >>> provider = AmplifierChatProvider(copilot_provider, "github-copilot")
        >>> service.register_provider(provider)
    """

    capabilities = frozenset({CapabilityKind.CHAT})

    def __init__(
        self,
        provider: Any,
        name: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        complete_kwargs: dict[str, Any] | None = None,
    ):
        self._provider = provider
        self._name = name
        self._system_prompt = system_prompt
        self._complete_kwargs = dict(complete_kwargs or {})
        self._disposed = False

    @property
    def id(self) -> str:
        return f"amplifier:{self._name}"

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        logger.debug(f"[BRIDGE] Chat bridge ready for provider '{self._name}'")

    def dispose(self) -> None:
        self._disposed = True
        logger.debug(f"[BRIDGE] Chat bridge for provider '{self._name}' disposed")

    async def provide_chat_response(
        self,
        message: str,
        context: AiContext,
        token: CancellationToken,
    ) -> AiChatResponse:
        token.raise_if_cancelled(f"{self.id}:chat")
        if self._disposed:
            raise RuntimeError(f"Chat bridge for '{self._name}' has been disposed")

        request = build_chat_request(message, context, self._system_prompt)
        start_time = time.monotonic()
        response = await self._provider.complete(request, **self._complete_kwargs)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"[BRIDGE] '{self._name}' completed in {elapsed_ms}ms")

        token.raise_if_cancelled(f"{self.id}:chat")
        result = convert_chat_response(response, self._name)
        result.metadata["duration_ms"] = elapsed_ms
        return result
