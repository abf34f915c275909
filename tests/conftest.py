"""
Shared test fixtures for the AI orchestration core tests.

This module provides the mock coordinator plus a set of in-memory capability
providers whose behavior (result, delay, failure, blocking) is scripted per
test.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from amplifier_module_ai_core.models import (
    AiChatResponse,
    CapabilityKind,
    CodeEditResult,
    Completion,
    CompletionResult,
)
from amplifier_module_ai_core.service import AiCoreService

# Fix for Windows asyncio cleanup issues causing KeyboardInterrupt
# See: https://github.com/pytest-dev/pytest-asyncio/issues/671
if sys.platform == "win32":

    @pytest.fixture(scope="session")
    def event_loop_policy():
        """Use WindowsSelectorEventLoopPolicy to avoid ProactorEventLoop cleanup issues."""
        return asyncio.WindowsSelectorEventLoopPolicy()


class FakeProvider:
    """Provider identity/lifecycle with call recording."""

    def __init__(
        self,
        provider_id: str,
        capabilities: Iterable[CapabilityKind] = (CapabilityKind.CHAT,),
        delay: float = 0.0,
    ):
        self._id = provider_id
        self._capabilities = frozenset(capabilities)
        self.delay = delay
        self.initialized = False
        self.disposed = False
        self.calls: list[tuple[Any, ...]] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return f"Fake {self._id}"

    @property
    def capabilities(self) -> frozenset[CapabilityKind]:
        return self._capabilities

    async def initialize(self) -> None:
        self.initialized = True

    def dispose(self) -> None:
        self.disposed = True

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)


class FakeCompletionProvider(FakeProvider):
    def __init__(
        self,
        provider_id: str,
        completions: Iterable[Completion] = (),
        delay: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(provider_id, (CapabilityKind.CODE_COMPLETION,), delay)
        self.completions = list(completions)
        self.metadata = metadata or {}

    async def provide_completion(self, query, context, token) -> CompletionResult:
        self.calls.append((query, context, token))
        await self._pause()
        return CompletionResult(completions=list(self.completions), metadata=dict(self.metadata))


class FakeChatProvider(FakeProvider):
    def __init__(
        self,
        provider_id: str,
        response: AiChatResponse | None = None,
        delay: float = 0.0,
    ):
        super().__init__(provider_id, (CapabilityKind.CHAT,), delay)
        self.response = response or AiChatResponse(message=f"reply from {provider_id}")

    async def provide_chat_response(self, message, context, token) -> AiChatResponse:
        self.calls.append((message, context, token))
        await self._pause()
        return self.response


class FakeEditProvider(FakeProvider):
    def __init__(
        self,
        provider_id: str,
        result: CodeEditResult | None = None,
        delay: float = 0.0,
    ):
        super().__init__(provider_id, (CapabilityKind.CODE_EDIT,), delay)
        self.result = result or CodeEditResult()

    async def provide_code_edit(self, request, token) -> CodeEditResult:
        self.calls.append((request, token))
        await self._pause()
        return self.result


class FailingProvider(FakeProvider):
    """Raises ``error`` from every capability method after ``delay``."""

    def __init__(
        self,
        provider_id: str,
        error: BaseException,
        capabilities: Iterable[CapabilityKind] = (CapabilityKind.CHAT,),
        delay: float = 0.0,
    ):
        super().__init__(provider_id, capabilities, delay)
        self.error = error

    async def _fail(self, *args: Any) -> Any:
        self.calls.append(args)
        await self._pause()
        raise self.error

    async def provide_completion(self, query, context, token):
        return await self._fail(query, context, token)

    async def provide_chat_response(self, message, context, token):
        return await self._fail(message, context, token)

    async def provide_code_edit(self, request, token):
        return await self._fail(request, token)


class BlockingChatProvider(FakeProvider):
    """Chat provider that holds until ``release`` is set; ``started`` marks entry."""

    def __init__(self, provider_id: str, response: AiChatResponse | None = None):
        super().__init__(provider_id, (CapabilityKind.CHAT,))
        self.response = response or AiChatResponse(message=f"reply from {provider_id}")
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.finished = False

    async def provide_chat_response(self, message, context, token) -> AiChatResponse:
        self.calls.append((message, context, token))
        self.started.set()
        await self.release.wait()
        self.finished = True
        return self.response


@pytest.fixture
def mock_coordinator():
    """
    Mock ModuleCoordinator for testing.

    Captures capability registrations and hook events; ``get("providers")``
    returns the ``mounted_providers`` dict.
    """
    coordinator = Mock()
    coordinator.mounted_providers = {}
    coordinator.capabilities = {}

    def register_capability(name: str, value: Any) -> None:
        coordinator.capabilities[name] = value

    def get(category: str) -> Any:
        if category == "providers":
            return coordinator.mounted_providers
        return None

    coordinator.register_capability = Mock(side_effect=register_capability)
    coordinator.get = Mock(side_effect=get)

    # Mock hooks for event emission
    coordinator.hooks = Mock()
    coordinator.hooks.emit = AsyncMock()

    return coordinator


@pytest.fixture
def service(mock_coordinator):
    """Strict-policy service wired to the mock coordinator."""
    return AiCoreService(config={}, coordinator=mock_coordinator)


@pytest.fixture
def best_effort_service(mock_coordinator):
    return AiCoreService(config={"dispatch_policy": "best_effort"}, coordinator=mock_coordinator)
