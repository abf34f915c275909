"""
Higher-level assistant operations built on the orchestration core.

Explanation, refactoring, bug fixing, test/documentation generation, code
review, performance and security analysis have no multi-provider merge of
their own. Each is one chat round-trip through AiCoreService (so it still
fans out to every chat provider and merges), followed for the analysis
operations by line-level keyword classification of the reply.

Classification sorts lines by keywords and reads a ``score: N`` marker;
it does not interpret the text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ._constants import ASSISTANT_REQUEST_ID_PREFIX, DEFAULT_ANALYSIS_SCORE
from .cancellation import CancellationToken
from .correlator import RequestIdGenerator, RequestRecord
from .events import AiErrorEvent, AiResponseEvent
from .models import (
    AiChatResponse,
    AiContext,
    CodeEditOptions,
    CodeEditRequest,
    CodeEditResult,
    CodeReviewResult,
    FileContext,
    PerformanceIssue,
    PerformanceOptimization,
    PerformanceResult,
    Range,
    ReviewIssue,
    ReviewSuggestion,
    SecurityRecommendation,
    SecurityResult,
    SecurityVulnerability,
    SelectionContext,
    WorkspaceInfo,
)
from .service import AiCoreService

logger = logging.getLogger(__name__)

ContextExtras = Mapping[str, Any] | AiContext | None
WorkspaceResolver = Callable[[], Awaitable[WorkspaceInfo]]

_SCORE_RE = re.compile(r"score[:\s]*(\d+)", re.IGNORECASE)

UNTITLED_PATH = "untitled://"


class AiAssistant:
    """
    Task-oriented front end over AiCoreService.

    Every operation gets its own request id and publishes a response or error
    event, named after the operation, on the service's event bus. Failures
    are re-raised unchanged.

    Args:
        service: The orchestration core.
        workspace_resolver: Optional coroutine function supplying workspace
            info when the context has none. Its failures are logged and the
            request proceeds without a workspace facet.
    """

    def __init__(
        self,
        service: AiCoreService,
        workspace_resolver: WorkspaceResolver | None = None,
    ):
        self._service = service
        self._workspace_resolver = workspace_resolver
        self._request_ids = RequestIdGenerator(ASSISTANT_REQUEST_ID_PREFIX)

    # ═══════════════════════════════════════════════════════════════════════════
    # Text-returning operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def explain_code(
        self, code: str, context: ContextExtras = None, token: CancellationToken | None = None
    ) -> str:
        return await self._ask("explain_code", f"Please explain this code:\n\n{code}", context, token)

    async def refactor_code(
        self, code: str, instruction: str, token: CancellationToken | None = None
    ) -> str:
        prompt = (
            f"Please refactor this code according to the following instruction: "
            f"{instruction}\n\nCode:\n{code}"
        )
        return await self._ask("refactor_code", prompt, None, token)

    async def fix_bug(
        self, code: str, error: str | None = None, token: CancellationToken | None = None
    ) -> str:
        if error:
            prompt = f"Please fix this bug in the code. Error: {error}\n\nCode:\n{code}"
        else:
            prompt = f"Please identify and fix any bugs in this code:\n\n{code}"
        return await self._ask("fix_bug", prompt, None, token)

    async def generate_tests(
        self, code: str, framework: str | None = None, token: CancellationToken | None = None
    ) -> str:
        if framework:
            prompt = f"Please generate tests for this code using {framework}:\n\n{code}"
        else:
            prompt = f"Please generate tests for this code:\n\n{code}"
        return await self._ask("generate_tests", prompt, None, token)

    async def generate_documentation(
        self, code: str, doc_type: str | None = None, token: CancellationToken | None = None
    ) -> str:
        if doc_type:
            prompt = f"Please generate {doc_type} documentation for this code:\n\n{code}"
        else:
            prompt = f"Please generate documentation for this code:\n\n{code}"
        return await self._ask("generate_documentation", prompt, None, token)

    async def insert_code(
        self,
        code: str,
        position: str,
        context: ContextExtras = None,
        token: CancellationToken | None = None,
    ) -> str:
        prompt = (
            f"Please insert this code at the specified position: {position}\n\n"
            f"Code to insert:\n{code}"
        )
        return await self._ask("insert_code", prompt, context, token)

    async def replace_code(
        self,
        old_code: str,
        new_code: str,
        context: ContextExtras = None,
        token: CancellationToken | None = None,
    ) -> str:
        prompt = f"Please replace this code:\n{old_code}\n\nWith this code:\n{new_code}"
        return await self._ask("replace_code", prompt, context, token)

    # ═══════════════════════════════════════════════════════════════════════════
    # Analysis operations (post-parsed)
    # ═══════════════════════════════════════════════════════════════════════════

    async def review_code(
        self, code: str, token: CancellationToken | None = None
    ) -> CodeReviewResult:
        prompt = (
            "Please review this code and provide a detailed analysis including issues, "
            f"suggestions, and a score from 1-10:\n\n{code}"
        )
        return await self._run(
            "review_code",
            lambda: self._chat_message(prompt, None, token),
            parse_code_review_response,
        )

    async def optimize_performance(
        self, code: str, token: CancellationToken | None = None
    ) -> PerformanceResult:
        prompt = (
            "Please analyze this code for performance issues and provide optimization "
            f"suggestions:\n\n{code}"
        )
        return await self._run(
            "optimize_performance",
            lambda: self._chat_message(prompt, None, token),
            parse_performance_response,
        )

    async def analyze_security(
        self, code: str, token: CancellationToken | None = None
    ) -> SecurityResult:
        prompt = (
            "Please analyze this code for security vulnerabilities and provide "
            f"recommendations:\n\n{code}"
        )
        return await self._run(
            "analyze_security",
            lambda: self._chat_message(prompt, None, token),
            parse_security_response,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Chat & Edit
    # ═══════════════════════════════════════════════════════════════════════════

    async def chat(
        self, message: str, context: ContextExtras = None, token: CancellationToken | None = None
    ) -> AiChatResponse:
        return await self._run("chat", lambda: self._chat(message, context, token))

    async def chat_with_file(
        self, message: str, file: FileContext, token: CancellationToken | None = None
    ) -> AiChatResponse:
        return await self._run("chat_with_file", lambda: self._chat(message, {"file": file}, token))

    async def chat_with_selection(
        self, message: str, selection: SelectionContext, token: CancellationToken | None = None
    ) -> AiChatResponse:
        return await self._run(
            "chat_with_selection", lambda: self._chat(message, {"selection": selection}, token)
        )

    async def edit_code(
        self,
        instruction: str,
        path: str | None = None,
        range: Range | None = None,
        options: CodeEditOptions | None = None,
        context: ContextExtras = None,
        token: CancellationToken | None = None,
    ) -> CodeEditResult:
        async def call() -> CodeEditResult:
            request = CodeEditRequest(
                path=path or UNTITLED_PATH,
                range=range or Range.at(1, 1),
                instruction=instruction,
                context=await self.build_context(context),
                options=options,
            )
            return await self._service.get_code_edit(request, token)

        return await self._run("edit_code", call)

    # ═══════════════════════════════════════════════════════════════════════════
    # Helpers
    # ═══════════════════════════════════════════════════════════════════════════

    async def build_context(self, extras: ContextExtras = None) -> AiContext:
        """
        Current service context overlaid with ``extras``.

        Fills the workspace facet from the resolver when missing.
        """
        context = self._service.get_context()
        if isinstance(extras, AiContext):
            context = context.overlay(extras.to_dict())
        elif extras:
            context = context.overlay(extras)

        if context.workspace is None and self._workspace_resolver is not None:
            try:
                workspace = await self._workspace_resolver()
                context = context.overlay({"workspace": workspace})
            except Exception as e:
                logger.warning(f"[ASSISTANT] Failed to get workspace context: {e}")
        return context

    async def _chat(
        self, message: str, extras: ContextExtras, token: CancellationToken | None
    ) -> AiChatResponse:
        context = await self.build_context(extras)
        return await self._service.get_chat_response(message, context, token)

    async def _chat_message(
        self, message: str, extras: ContextExtras, token: CancellationToken | None
    ) -> str:
        response = await self._chat(message, extras, token)
        return response.message

    async def _ask(
        self,
        operation: str,
        prompt: str,
        extras: ContextExtras,
        token: CancellationToken | None,
    ) -> str:
        return await self._run(operation, lambda: self._chat_message(prompt, extras, token))

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        parse: Callable[[Any], Any] | None = None,
    ) -> Any:
        record = RequestRecord(self._request_ids.generate(), operation)
        events = self._service.events
        try:
            result = await call()
            if parse is not None:
                result = parse(result)
        except Exception as e:
            events.error.fire(
                AiErrorEvent(
                    request_id=record.request_id,
                    error=e,
                    operation=operation,
                    duration_ms=record.elapsed_ms(),
                )
            )
            raise

        events.response.fire(
            AiResponseEvent(
                request_id=record.request_id,
                kind=operation,
                result=result,
                duration_ms=record.elapsed_ms(),
            )
        )
        logger.debug(f"[ASSISTANT] {operation} done - request_id: {record.request_id}")
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# Response post-parsing
# ═══════════════════════════════════════════════════════════════════════════════


def _extract_score(response: str) -> int:
    match = _SCORE_RE.search(response)
    return int(match.group(1)) if match else DEFAULT_ANALYSIS_SCORE


def _lines(response: str) -> list[tuple[str, str]]:
    """Non-blank stripped lines paired with their lowercase form."""
    return [(line.strip(), line.lower()) for line in response.splitlines() if line.strip()]


def parse_code_review_response(response: str) -> CodeReviewResult:
    issues: list[ReviewIssue] = []
    suggestions: list[ReviewSuggestion] = []
    for text, lowered in _lines(response):
        if "error" in lowered or "warning" in lowered or "issue" in lowered:
            severity = "error" if "error" in lowered else "warning"
            issues.append(ReviewIssue(severity=severity, message=text))
        elif "suggestion" in lowered or "recommendation" in lowered:
            suggestions.append(
                ReviewSuggestion(message=text, priority="medium", impact="Improves code quality")
            )
    return CodeReviewResult(
        score=_extract_score(response),
        issues=issues,
        suggestions=suggestions,
        summary=response,
    )


def parse_performance_response(response: str) -> PerformanceResult:
    issues: list[PerformanceIssue] = []
    optimizations: list[PerformanceOptimization] = []
    for text, lowered in _lines(response):
        if "performance" in lowered or "slow" in lowered or "inefficient" in lowered:
            issues.append(
                PerformanceIssue(
                    severity="medium",
                    message=text,
                    impact="Reduces performance",
                    suggestion="Consider optimization",
                )
            )
        elif "optimize" in lowered or "improve" in lowered:
            optimizations.append(
                PerformanceOptimization(
                    description=text,
                    implementation="Manual implementation required",
                    expected_improvement="Performance improvement",
                )
            )
    return PerformanceResult(
        score=_extract_score(response),
        issues=issues,
        optimizations=optimizations,
        summary=response,
    )


def parse_security_response(response: str) -> SecurityResult:
    vulnerabilities: list[SecurityVulnerability] = []
    recommendations: list[SecurityRecommendation] = []
    for text, lowered in _lines(response):
        if "vulnerability" in lowered or "security" in lowered or "risk" in lowered:
            vulnerabilities.append(
                SecurityVulnerability(
                    severity="medium",
                    type="General security issue",
                    description=text,
                    mitigation="Review and fix",
                )
            )
        elif "secure" in lowered or "protect" in lowered:
            recommendations.append(
                SecurityRecommendation(
                    description=text,
                    implementation="Manual implementation required",
                    priority="medium",
                )
            )
    return SecurityResult(
        score=_extract_score(response),
        vulnerabilities=vulnerabilities,
        recommendations=recommendations,
        summary=response,
    )
