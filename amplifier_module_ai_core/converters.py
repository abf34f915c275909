"""
Conversion utilities between the core's types and Amplifier's.

This module handles:
- Rendering an AiContext into a system message for LLM-backed providers
- Extracting text and fenced code blocks from an Amplifier ChatResponse
- Building the Amplifier ChatRequest for a chat capability call
"""

from __future__ import annotations

import logging
import re
from typing import Any

from amplifier_core.message_models import ChatRequest, Message

from .models import AiChatResponse, AiContext, CodeBlock

logger = logging.getLogger(__name__)

# ```lang\n...\n``` (language tag optional)
_FENCED_BLOCK_RE = re.compile(r"```([\w+#.-]*)[ \t]*\n(.*?)```", re.DOTALL)

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI programming assistant embedded in a code editor. "
    "Answer concisely and put code in fenced code blocks."
)


def format_context_prompt(context: AiContext) -> str:
    """
    Render the set facets of ``context`` as plain text.

    Args:
        context: Ambient context for the request

    Returns:
        Multi-line description, empty string for an empty context

    Example:
        >>> format_context_prompt(AiContext(language="python", framework="django"))
        'Language: python\\nFramework: django'
    """
    lines: list[str] = []
    if context.language:
        lines.append(f"Language: {context.language}")
    if context.framework:
        lines.append(f"Framework: {context.framework}")
    if context.project_type:
        lines.append(f"Project type: {context.project_type}")
    if context.workspace:
        lines.append(f"Workspace root: {context.workspace.root_path}")
        if context.workspace.dependencies:
            lines.append(f"Dependencies: {', '.join(context.workspace.dependencies)}")
        if context.workspace.git:
            lines.append(f"Git branch: {context.workspace.git.branch}")
    if context.file:
        lines.append(f"Current file: {context.file.path} ({context.file.language})")
    if context.selection:
        start = context.selection.range.start
        lines.append(
            f"Selection in {context.selection.path} at line {start.line}, column {start.column}:"
        )
        lines.append(f"```{context.selection.language}\n{context.selection.content}\n```")
    if context.user_preferences:
        prefs = ", ".join(f"{k}={v}" for k, v in sorted(context.user_preferences.items()))
        lines.append(f"User preferences: {prefs}")
    return "\n".join(lines)


def build_chat_request(message: str, context: AiContext, system_prompt: str) -> ChatRequest:
    """Build the Amplifier ChatRequest for one chat capability call."""
    system_parts = [system_prompt]
    context_text = format_context_prompt(context)
    if context_text:
        system_parts.append(f"Context:\n{context_text}")
    return ChatRequest(
        messages=[
            Message(role="system", content="\n\n".join(system_parts)),
            Message(role="user", content=message),
        ]
    )


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Fenced code blocks of ``text`` in order of appearance."""
    return [
        CodeBlock(code=match.group(2).rstrip("\n"), language=match.group(1))
        for match in _FENCED_BLOCK_RE.finditer(text)
    ]


def extract_response_text(response: Any) -> str:
    """
    Join the text of every text-bearing content block.

    Handles both object-style blocks (TextBlock) and dict-style blocks.
    Thinking and tool-call blocks are skipped.
    """
    parts: list[str] = []
    for block in getattr(response, "content", None) or []:
        block_type = block.get("type") if isinstance(block, dict) else getattr(block, "type", None)
        if block_type not in (None, "text"):
            continue
        text = block.get("text") if isinstance(block, dict) else getattr(block, "text", None)
        if text:
            parts.append(str(text))
    return "\n".join(parts)


def convert_chat_response(response: Any, provider_name: str) -> AiChatResponse:
    """
    Convert an Amplifier ChatResponse to the core's AiChatResponse.

    Args:
        response: ChatResponse returned by an Amplifier provider's complete()
        provider_name: Name recorded in the result metadata

    Returns:
        AiChatResponse with message text, extracted code blocks and metadata
    """
    if response is None:
        logger.warning(f"[CONVERTER] Received None response from '{provider_name}'")
        return AiChatResponse(metadata={"provider": provider_name})

    text = extract_response_text(response)
    metadata: dict[str, Any] = {"provider": provider_name}
    usage = getattr(response, "usage", None)
    if usage is not None:
        metadata["usage"] = {
            "input": getattr(usage, "input_tokens", 0),
            "output": getattr(usage, "output_tokens", 0),
        }
    finish_reason = getattr(response, "finish_reason", None)
    if finish_reason:
        metadata["finish_reason"] = finish_reason

    return AiChatResponse(
        message=text,
        code_blocks=extract_code_blocks(text),
        suggestions=[],
        metadata=metadata,
    )
