"""
Tests for AmplifierChatProvider, the bridge from Amplifier LLM providers
into chat fan-out.
"""

from unittest.mock import AsyncMock, Mock

import pytest
from amplifier_core import ChatResponse, TextBlock
from amplifier_core.llm_errors import RateLimitError

from amplifier_module_ai_core.bridge import AmplifierChatProvider
from amplifier_module_ai_core.cancellation import CancellationToken, CancellationTokenSource
from amplifier_module_ai_core.exceptions import CancelledOperationError, ProviderFailureError
from amplifier_module_ai_core.models import AiContext, CapabilityKind
from amplifier_module_ai_core.protocols import ChatProvider


def _llm_provider(text: str = "Hello from the model") -> Mock:
    provider = Mock()
    provider.complete = AsyncMock(
        return_value=ChatResponse(content=[TextBlock(type="text", text=text)])
    )
    return provider


class TestAmplifierChatProvider:
    def test_identity(self):
        bridge = AmplifierChatProvider(_llm_provider(), "github-copilot")

        assert bridge.id == "amplifier:github-copilot"
        assert bridge.name == "github-copilot"
        assert bridge.capabilities == {CapabilityKind.CHAT}
        assert isinstance(bridge, ChatProvider)

    @pytest.mark.asyncio
    async def test_chat_round_trip(self):
        llm = _llm_provider()
        bridge = AmplifierChatProvider(llm, "p", complete_kwargs={"model": "x"})

        result = await bridge.provide_chat_response(
            "Hi", AiContext(language="python"), CancellationToken.none()
        )

        assert result.message == "Hello from the model"
        assert result.metadata["provider"] == "p"
        assert "duration_ms" in result.metadata

        request = llm.complete.await_args.args[0]
        assert request.messages[-1].content == "Hi"
        assert "Language: python" in request.messages[0].content
        assert llm.complete.await_args.kwargs == {"model": "x"}

    @pytest.mark.asyncio
    async def test_cancelled_before_call(self):
        llm = _llm_provider()
        bridge = AmplifierChatProvider(llm, "p")
        source = CancellationTokenSource()
        source.cancel()

        with pytest.raises(CancelledOperationError):
            await bridge.provide_chat_response("Hi", AiContext(), source.token)

        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_disposed_bridge_refuses(self):
        """dispose() marks the bridge unusable without touching the wrapped provider."""
        llm = _llm_provider()
        bridge = AmplifierChatProvider(llm, "p")
        bridge.dispose()

        with pytest.raises(RuntimeError):
            await bridge.provide_chat_response("Hi", AiContext(), CancellationToken.none())

        llm.close.assert_not_called()


class TestBridgeInService:
    @pytest.mark.asyncio
    async def test_fan_out_through_service(self, service):
        await service.add_provider(AmplifierChatProvider(_llm_provider("A"), "first"))
        await service.add_provider(AmplifierChatProvider(_llm_provider("B"), "second"))

        response = await service.get_chat_response("Hi")

        assert response.message == "A"

    @pytest.mark.asyncio
    async def test_retryable_flag_preserved(self, service):
        """Kernel rate-limit errors surface as retryable provider failures."""
        llm = Mock()
        llm.complete = AsyncMock(
            side_effect=RateLimitError("429", provider="github-copilot", retryable=True)
        )
        service.register_provider(AmplifierChatProvider(llm, "github-copilot"))

        with pytest.raises(ProviderFailureError) as exc_info:
            await service.get_chat_response("Hi")

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, RateLimitError)
