"""
Amplifier Module: AI Capability Orchestration Core

This module lets any number of pluggable AI capability providers (code
completion, chat, code edit) serve a single request together: the request is
fanned out concurrently to every provider registered for the capability and
their results are merged deterministically.

Pattern: Shared Service
- mount() builds one AiCoreService per coordinator
- The service is registered as the "ai_core" coordinator capability
- Providers already mounted on the coordinator can join chat fan-out
  through AmplifierChatProvider

Usage:
    The module is loaded via Amplifier's module system:

    ```yaml
    # In amplifier.yaml
    hooks:
      ai-core:
        dispatch_policy: strict      # or best_effort
        context_history_limit: 10
        bridge_providers: true
        debug: false
    ```

    Collaborators reach the service through the coordinator:
    ```python
    service = coordinator.get_capability("ai_core")
    response = await service.get_chat_response("Explain this function")
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ._constants import COORDINATOR_CAPABILITY_NAME, DispatchPolicy
from .assistant import AiAssistant
from .bridge import AmplifierChatProvider
from .cancellation import CancellationToken, CancellationTokenSource
from .events import AiErrorEvent, AiResponseEvent, ContextChangeEvent, EventBus
from .exceptions import (
    AiCoreError,
    CancelledOperationError,
    DuplicateProviderError,
    InvalidContextUpdateError,
    NoProvidersRegisteredError,
    ProviderFailureError,
    UnsupportedCapabilityError,
)
from .models import (
    AiChatResponse,
    AiContext,
    CapabilityKind,
    CodeBlock,
    CodeEdit,
    CodeEditRequest,
    CodeEditResult,
    Completion,
    CompletionResult,
    Position,
    Range,
)
from .protocols import AiProvider, ChatProvider, CodeEditProvider, CompletionProvider
from .registry import ProviderRegistry, Registration
from .service import AiCoreService

# Module exports
__all__ = [
    # Main exports
    "mount",
    "AiCoreService",
    "AiAssistant",
    "AmplifierChatProvider",
    "DispatchPolicy",
    # Provider contract
    "AiProvider",
    "CompletionProvider",
    "ChatProvider",
    "CodeEditProvider",
    "ProviderRegistry",
    "Registration",
    # Cancellation
    "CancellationToken",
    "CancellationTokenSource",
    # Events
    "EventBus",
    "AiResponseEvent",
    "AiErrorEvent",
    "ContextChangeEvent",
    # Data model
    "CapabilityKind",
    "AiContext",
    "Position",
    "Range",
    "Completion",
    "CompletionResult",
    "CodeBlock",
    "AiChatResponse",
    "CodeEdit",
    "CodeEditRequest",
    "CodeEditResult",
    # Exceptions
    "AiCoreError",
    "NoProvidersRegisteredError",
    "ProviderFailureError",
    "CancelledOperationError",
    "UnsupportedCapabilityError",
    "DuplicateProviderError",
    "InvalidContextUpdateError",
]

# Amplifier module metadata
__amplifier_module_type__ = "hook"

logger = logging.getLogger(__name__)


async def mount(
    coordinator: Any,  # ModuleCoordinator
    config: dict[str, Any] | None = None,
) -> Callable[[], Awaitable[None]] | None:
    """
    Mount the AI orchestration core.

    This is the entry point called by Amplifier's module loading system.
    It creates the service, registers it as a coordinator capability and,
    unless disabled, bridges every mounted LLM provider into chat fan-out.

    Args:
        coordinator: Amplifier's ModuleCoordinator for registration
        config: Configuration dict with optional keys:
            - dispatch_policy: "strict" (default) or "best_effort"
            - context_history_limit: Context snapshots kept (default: 10)
            - bridge_providers: Wrap mounted providers as chat providers (default: True)
            - forward_hook_events: Mirror bus events to hooks (default: True)
            - debug: Enable debug payload events (default: False)
            - debug_truncate_length: Max string length in debug payloads (default: 180)

    Returns:
        Cleanup function to unmount the service, or None if the
        configuration is invalid (graceful degradation)
    """
    config = config or {}
    logger.info("[MOUNT] Mounting AiCoreService...")

    try:
        service = AiCoreService(config, coordinator)
        coordinator.register_capability(COORDINATOR_CAPABILITY_NAME, service)

        if config.get("bridge_providers", True):
            await _bridge_mounted_providers(coordinator, service)

        logger.info("[MOUNT] AiCoreService mounted successfully")

        async def cleanup() -> None:
            """Cleanup function called when unmounting."""
            logger.info("[MOUNT] Unmounting AiCoreService...")
            await service.close()
            logger.info("[MOUNT] AiCoreService unmounted")

        return cleanup

    except Exception as e:
        logger.error(f"[MOUNT] Failed to mount AiCoreService: {e}")
        return None


async def _bridge_mounted_providers(coordinator: Any, service: AiCoreService) -> None:
    """
    Register every provider mounted on the coordinator as a chat provider.

    A provider that fails to bridge is logged and skipped; the others are
    still registered.
    """
    providers = coordinator.get("providers")
    if not isinstance(providers, dict):
        logger.debug("[MOUNT] No mounted providers to bridge")
        return

    for name, provider in providers.items():
        try:
            await service.add_provider(AmplifierChatProvider(provider, name))
        except AiCoreError as e:
            logger.warning(f"[MOUNT] Skipping provider '{name}': {e}")
