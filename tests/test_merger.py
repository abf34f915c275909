"""
Tests for result merging.

Each merge rule is a pure function of the inputs in provider order.
"""

import pytest

from amplifier_module_ai_core.exceptions import UnsupportedCapabilityError
from amplifier_module_ai_core.merger import (
    deduplicate_completions,
    merge_chat_responses,
    merge_code_edit_results,
    merge_completion_results,
    merge_results,
)
from amplifier_module_ai_core.models import (
    AiChatResponse,
    CapabilityKind,
    CodeBlock,
    CodeEdit,
    CodeEditResult,
    Completion,
    CompletionResult,
    Range,
)


def _completion(text: str, score: float, line: int = 1) -> Completion:
    return Completion(text, Range.at(line, 1), score=score)


class TestMergeCompletions:
    """Tests for merge_completion_results()."""

    def test_dedup_and_rank(self):
        """Duplicates are dropped (first kept) and survivors ranked by score."""
        p1 = CompletionResult([_completion("foo", 0.9), _completion("bar", 0.5)])
        p2 = CompletionResult([_completion("foo", 0.7), _completion("baz", 0.8)])

        merged = merge_completion_results([p1, p2])

        assert [(c.text, c.score) for c in merged.completions] == [
            ("foo", 0.9),
            ("baz", 0.8),
            ("bar", 0.5),
        ]

    def test_same_text_different_position_kept(self):
        merged = merge_completion_results(
            [CompletionResult([_completion("foo", 0.5, line=1), _completion("foo", 0.5, line=2)])]
        )
        assert len(merged.completions) == 2

    def test_ties_keep_arrival_order(self):
        """Equal scores keep their order of arrival."""
        p1 = CompletionResult([_completion("a", 0.5)])
        p2 = CompletionResult([_completion("b", 0.5)])

        merged = merge_completion_results([p1, p2])

        assert [c.text for c in merged.completions] == ["a", "b"]

    def test_no_completions(self):
        merged = merge_completion_results([CompletionResult(), CompletionResult()])
        assert merged.completions == []

    def test_deterministic(self):
        """Identical inputs in identical order give identical output."""
        results = [
            CompletionResult([_completion("x", 0.3), _completion("y", 0.6)]),
            CompletionResult([_completion("z", 0.6)]),
        ]
        assert merge_completion_results(results) == merge_completion_results(results)

    def test_deduplicate_keeps_first(self):
        first = _completion("foo", 0.1)
        unique = deduplicate_completions([first, _completion("foo", 0.9)])
        assert unique == [first]


class TestMergeChat:
    """Tests for merge_chat_responses()."""

    def test_first_non_empty_message(self):
        """An empty first message is skipped."""
        merged = merge_chat_responses(
            [AiChatResponse(message=""), AiChatResponse(message="Hi"), AiChatResponse(message="Yo")]
        )
        assert merged.message == "Hi"

    def test_all_empty_messages(self):
        merged = merge_chat_responses([AiChatResponse(), AiChatResponse()])
        assert merged.message == ""

    def test_code_blocks_concatenated(self):
        a = CodeBlock(code="a()", language="python")
        b = CodeBlock(code="b()", language="python")
        merged = merge_chat_responses(
            [AiChatResponse(message="x", code_blocks=[a]), AiChatResponse(code_blocks=[b])]
        )
        assert merged.code_blocks == [a, b]

    def test_suggestions_union_first_occurrence(self):
        """Suggestions are unioned, keeping first-occurrence order."""
        merged = merge_chat_responses(
            [
                AiChatResponse(message="Hi", suggestions=["a", "b"]),
                AiChatResponse(suggestions=["b", "c"]),
            ]
        )
        assert merged.suggestions == ["a", "b", "c"]

    def test_metadata_later_wins(self):
        merged = merge_chat_responses(
            [
                AiChatResponse(metadata={"provider": "p1", "a": 1}),
                AiChatResponse(metadata={"provider": "p2"}),
            ]
        )
        assert merged.metadata == {"provider": "p2", "a": 1}


class TestMergeCodeEdit:
    """Tests for merge_code_edit_results()."""

    def test_edits_concatenated_in_order(self):
        """Overlapping edits are not resolved; order follows providers."""
        e1 = CodeEdit(Range.of(1, 1, 1, 5), "one")
        e2 = CodeEdit(Range.of(1, 1, 1, 5), "two")
        merged = merge_code_edit_results(
            [CodeEditResult(edits=[e1]), CodeEditResult(edits=[e2], explanation="why")]
        )
        assert merged.edits == [e1, e2]
        assert merged.explanation == "why"

    def test_first_non_empty_explanation(self):
        merged = merge_code_edit_results(
            [CodeEditResult(explanation="first"), CodeEditResult(explanation="second")]
        )
        assert merged.explanation == "first"


class TestMergeResults:
    def test_dispatches_by_kind(self):
        merged = merge_results(CapabilityKind.CHAT, [AiChatResponse(message="hi")])
        assert isinstance(merged, AiChatResponse)

    def test_unsupported_kind(self):
        """Kinds without a merge rule are rejected."""
        with pytest.raises(UnsupportedCapabilityError):
            merge_results(CapabilityKind.EXPLANATION, [])
