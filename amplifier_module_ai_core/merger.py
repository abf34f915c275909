"""
Result merging for fanned-out calls.

Pure functions of the capability kind and the per-provider results, which
are always supplied in provider registration order. No I/O, no side effects:
identical inputs in identical order give identical output.

Merge rules:
- Completions: concatenate, dedup on (text, range.start) keeping the first
  seen, then stable sort by descending score (ties keep arrival order).
- Chat: message from the first provider with a non-empty message; code
  blocks concatenated; suggestions unioned in first-occurrence order.
- Code edit: edits concatenated (overlap resolution is the caller's job);
  explanation from the first provider with a non-empty one.
- Metadata: dicts overlaid in provider order (later keys win).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .exceptions import UnsupportedCapabilityError
from .models import (
    AiChatResponse,
    CapabilityKind,
    CodeEditResult,
    Completion,
    CompletionResult,
)


def _merge_metadata(items: Sequence[Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for item in items:
        if item.metadata:
            metadata.update(item.metadata)
    return metadata


def _first_non_empty(values: Sequence[str | None]) -> str:
    for value in values:
        if value:
            return value
    return ""


def deduplicate_completions(completions: Sequence[Completion]) -> list[Completion]:
    """Drop completions whose (text, range.start) was already seen."""
    seen: set[Any] = set()
    unique: list[Completion] = []
    for completion in completions:
        key = completion.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(completion)
    return unique


def merge_completion_results(results: Sequence[CompletionResult]) -> CompletionResult:
    all_completions = [c for result in results for c in result.completions]
    unique = deduplicate_completions(all_completions)
    # sorted() is stable, so equal scores keep arrival order
    ranked = sorted(unique, key=lambda c: -c.score)
    return CompletionResult(completions=ranked, metadata=_merge_metadata(results))


def merge_chat_responses(results: Sequence[AiChatResponse]) -> AiChatResponse:
    return AiChatResponse(
        message=_first_non_empty([r.message for r in results]),
        code_blocks=[block for r in results for block in r.code_blocks],
        suggestions=list(dict.fromkeys(s for r in results for s in r.suggestions)),
        metadata=_merge_metadata(results),
    )


def merge_code_edit_results(results: Sequence[CodeEditResult]) -> CodeEditResult:
    return CodeEditResult(
        edits=[edit for r in results for edit in r.edits],
        explanation=_first_non_empty([r.explanation for r in results]),
        metadata=_merge_metadata(results),
    )


_MERGERS = {
    CapabilityKind.CODE_COMPLETION: merge_completion_results,
    CapabilityKind.CHAT: merge_chat_responses,
    CapabilityKind.CODE_EDIT: merge_code_edit_results,
}


def merge_results(kind: CapabilityKind, results: Sequence[Any]) -> Any:
    """
    Merge per-provider results for ``kind``.

    Args:
        kind: A fan-out capability kind.
        results: Successful results in provider registration order.

    Raises:
        UnsupportedCapabilityError: If ``kind`` has no merge rule.
    """
    merger = _MERGERS.get(kind)
    if merger is None:
        raise UnsupportedCapabilityError(kind)
    return merger(results)
