"""
Data model for the AI orchestration core.

This module holds the value types exchanged between the core, its providers,
and its observers:
- Capability kinds and the subset that supports multi-provider fan-out
- Ranges/positions used to anchor completions and edits
- The ambient AiContext aggregate and its facets
- Per-capability result types (completion, chat, code edit)
- Structured results produced by the assistant's post-parsing
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from .exceptions import InvalidContextUpdateError


class CapabilityKind(Enum):
    """A category of AI operation a provider may support."""

    CODE_COMPLETION = "codeCompletion"
    CHAT = "chat"
    CODE_EDIT = "codeEdit"
    EXPLANATION = "explanation"
    REFACTORING = "refactoring"
    BUG_FIX = "bugFix"
    TEST_GENERATION = "testGeneration"
    DOCUMENTATION = "documentation"
    CODE_REVIEW = "codeReview"
    PERFORMANCE_OPTIMIZATION = "performanceOptimization"
    SECURITY_ANALYSIS = "securityAnalysis"


# Only these kinds have concrete multi-provider fan-out and merge rules.
# The rest are assistant operations built on a single chat round-trip.
FANOUT_KINDS: frozenset[CapabilityKind] = frozenset(
    {
        CapabilityKind.CODE_COMPLETION,
        CapabilityKind.CHAT,
        CapabilityKind.CODE_EDIT,
    }
)


class CompletionKind(Enum):
    FUNCTION = "function"
    VARIABLE = "variable"
    CLASS = "class"
    INTERFACE = "interface"
    IMPORT = "import"
    METHOD = "method"
    PROPERTY = "property"
    PARAMETER = "parameter"
    TYPE = "type"
    KEYWORD = "keyword"
    SNIPPET = "snippet"


class EditKind(Enum):
    INSERT = "insert"
    REPLACE = "replace"
    DELETE = "delete"
    REFACTOR = "refactor"


@dataclass(frozen=True, order=True)
class Position:
    """1-based line/column position in a document."""

    line: int
    column: int


@dataclass(frozen=True)
class Range:
    """Half-open document range between two positions."""

    start: Position
    end: Position

    @classmethod
    def at(cls, line: int, column: int) -> Range:
        """Empty range at a single position."""
        pos = Position(line, column)
        return cls(pos, pos)

    @classmethod
    def of(cls, start_line: int, start_column: int, end_line: int, end_column: int) -> Range:
        return cls(Position(start_line, start_column), Position(end_line, end_column))

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


# ═══════════════════════════════════════════════════════════════════════════════
# Context Facets
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FileInfo:
    path: str
    language: str
    size: int = 0
    last_modified: float = 0.0


@dataclass(frozen=True)
class GitChange:
    file: str
    status: Literal["modified", "added", "deleted"]
    diff: str | None = None


@dataclass(frozen=True)
class GitInfo:
    branch: str
    commit: str
    remote: str | None = None
    changes: tuple[GitChange, ...] = ()


@dataclass(frozen=True)
class WorkspaceInfo:
    root_path: str
    files: tuple[FileInfo, ...] = ()
    dependencies: tuple[str, ...] = ()
    config_files: tuple[str, ...] = ()
    git: GitInfo | None = None


@dataclass(frozen=True)
class FileContext:
    path: str
    content: str
    language: str
    imports: tuple[str, ...] = ()
    exports: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class SelectionContext:
    path: str
    range: Range
    content: str
    surrounding_lines: tuple[str, ...] = ()
    indentation: str = ""
    language: str = ""


@dataclass(frozen=True)
class AiContext:
    """
    Ambient facts supplied to providers alongside a request.

    Every facet is optional. Instances are immutable; updates go through
    overlay(), which builds a new context. user_preferences is the only
    mutable member, so copy() duplicates it to keep readers isolated.
    """

    workspace: WorkspaceInfo | None = None
    file: FileContext | None = None
    selection: SelectionContext | None = None
    language: str | None = None
    framework: str | None = None
    project_type: str | None = None
    user_preferences: dict[str, Any] | None = None

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in dataclasses.fields(cls))

    def overlay(self, changes: Mapping[str, Any]) -> AiContext:
        """
        Return a new context with ``changes`` applied field-wise.

        Keys absent from ``changes`` keep their prior values. A key present
        with value None clears that facet.

        Raises:
            InvalidContextUpdateError: If a key is not an AiContext field.
        """
        unknown = set(changes) - self.field_names()
        if unknown:
            raise InvalidContextUpdateError(unknown)
        return dataclasses.replace(self, **changes)

    def copy(self) -> AiContext:
        prefs = dict(self.user_preferences) if self.user_preferences is not None else None
        return dataclasses.replace(self, user_preferences=prefs)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.field_names())

    def to_dict(self) -> dict[str, Any]:
        """Set facets only, as a plain dict (facet objects are not expanded)."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is not None
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Capability Results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Completion:
    """A single completion suggestion; score is in [0, 1]."""

    text: str
    range: Range
    kind: CompletionKind = CompletionKind.SNIPPET
    score: float = 0.0
    metadata: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Completion score must be within [0, 1], got {self.score}")

    @property
    def dedup_key(self) -> tuple[str, Position]:
        return (self.text, self.range.start)


@dataclass
class CompletionResult:
    completions: list[Completion] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CodeBlock:
    code: str
    language: str = ""
    range: Range | None = None
    explanation: str | None = None


@dataclass
class AiChatResponse:
    message: str = ""
    code_blocks: list[CodeBlock] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CodeEditOptions:
    preserve_formatting: bool = True
    include_comments: bool = True
    style: Literal["conservative", "aggressive", "creative"] = "conservative"


@dataclass(frozen=True)
class CodeEditRequest:
    path: str
    range: Range
    instruction: str
    context: AiContext = field(default_factory=AiContext)
    options: CodeEditOptions | None = None


@dataclass(frozen=True)
class CodeEdit:
    range: Range
    text: str
    kind: EditKind = EditKind.REPLACE


@dataclass
class CodeEditResult:
    edits: list[CodeEdit] = field(default_factory=list)
    explanation: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# Assistant Analysis Results
# ═══════════════════════════════════════════════════════════════════════════════

Priority = Literal["high", "medium", "low"]
Severity = Literal["critical", "high", "medium", "low"]


@dataclass(frozen=True)
class ReviewIssue:
    severity: Literal["error", "warning", "info"]
    message: str
    line: int | None = None
    suggestion: str | None = None


@dataclass(frozen=True)
class ReviewSuggestion:
    message: str
    priority: Priority = "medium"
    impact: str = ""


@dataclass
class CodeReviewResult:
    score: int
    issues: list[ReviewIssue] = field(default_factory=list)
    suggestions: list[ReviewSuggestion] = field(default_factory=list)
    summary: str = ""


@dataclass(frozen=True)
class PerformanceIssue:
    severity: Severity
    message: str
    impact: str
    suggestion: str
    line: int | None = None


@dataclass(frozen=True)
class PerformanceOptimization:
    description: str
    implementation: str
    expected_improvement: str


@dataclass
class PerformanceResult:
    score: int
    issues: list[PerformanceIssue] = field(default_factory=list)
    optimizations: list[PerformanceOptimization] = field(default_factory=list)
    summary: str = ""


@dataclass(frozen=True)
class SecurityVulnerability:
    severity: Severity
    type: str
    description: str
    mitigation: str
    line: int | None = None
    cve: str | None = None


@dataclass(frozen=True)
class SecurityRecommendation:
    description: str
    implementation: str
    priority: Priority = "medium"


@dataclass
class SecurityResult:
    score: int
    vulnerabilities: list[SecurityVulnerability] = field(default_factory=list)
    recommendations: list[SecurityRecommendation] = field(default_factory=list)
    summary: str = ""
