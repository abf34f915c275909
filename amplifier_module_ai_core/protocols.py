"""
Provider contract for the orchestration core.

A provider is an opaque AI capability the core calls through a fixed
contract: an identity descriptor, an async initialize(), a dispose(), and one
method per capability kind it declares. The core never inspects how a
provider produces its result.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .models import (
        AiChatResponse,
        AiContext,
        CapabilityKind,
        CodeEditRequest,
        CodeEditResult,
        CompletionResult,
    )


@runtime_checkable
class AiProvider(Protocol):
    """Identity and lifecycle shared by every capability provider."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def capabilities(self) -> Collection[CapabilityKind]: ...

    async def initialize(self) -> None: ...

    def dispose(self) -> None: ...


@runtime_checkable
class CompletionProvider(AiProvider, Protocol):
    async def provide_completion(
        self, query: str, context: AiContext, token: CancellationToken
    ) -> CompletionResult: ...


@runtime_checkable
class ChatProvider(AiProvider, Protocol):
    async def provide_chat_response(
        self, message: str, context: AiContext, token: CancellationToken
    ) -> AiChatResponse: ...


@runtime_checkable
class CodeEditProvider(AiProvider, Protocol):
    async def provide_code_edit(
        self, request: CodeEditRequest, token: CancellationToken
    ) -> CodeEditResult: ...
