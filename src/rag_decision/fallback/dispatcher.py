"""Maps the detected issues to exactly one recovery strategy."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import assert_never

from rag_decision.models.domain import FallbackContext, FallbackResponse, Issue
from rag_decision.models.enums import IssueType
from rag_decision.observability.logger import get_logger

logger = get_logger("fallback")


@dataclass(frozen=True)
class FallbackCopy:
    """User-facing wording. ``{domain}`` is substituted by the configured domain name."""

    domain: str = "fund management"
    no_source_suggestions: tuple[str, ...] = (
        "Ask about fund creation processes",
        "Ask about compliance requirements",
        "Ask about NAV calculations",
        "Ask about portfolio management",
    )
    rephrase_suggestions: tuple[str, ...] = (
        "Try using more specific {domain} terminology",
        "Break down complex questions into simpler parts",
        "Ask about specific processes like fund creation or NAV calculation",
    )
    continuation_suggestions: tuple[str, ...] = (
        "Ask for more details on specific steps",
        "Request examples or clarifications",
        "Ask follow-up questions",
    )
    clarification_options: tuple[str, ...] = (
        "Fund creation and setup",
        "Portfolio management",
        "Compliance and audit",
        "NAV calculation",
        "Risk management",
    )


def select_issue(issues: Sequence[Issue]) -> Issue | None:
    """Highest severity wins; equal severities fall back to the fixed issue priority."""
    if not issues:
        return None
    return min(issues, key=lambda i: (-i.severity.rank, i.type.priority))


def _low_retrieval(ctx: FallbackContext, copy: FallbackCopy) -> FallbackResponse:
    message = (
        f'I found limited relevant information for your query "{ctx.query}". '
        "The available sources may not fully address your question. Would you like to:\n\n"
        "1. Rephrase your question with more specific terms\n"
        "2. Ask about a related topic that I can better assist with\n"
        "3. Provide additional context about what you're looking for\n\n"
        f"I'm here to help with {copy.domain} questions based on our documentation."
    )
    return FallbackResponse(
        strategy=IssueType.LOW_RETRIEVAL_CONFIDENCE,
        message=message,
        confidence=0.3,
        use_knowledge_base=False,
        suggestions=tuple(s.format(domain=copy.domain) for s in copy.rephrase_suggestions),
    )


def _no_sources(ctx: FallbackContext, copy: FallbackCopy) -> FallbackResponse:
    suggestions = "\n".join(f"- {s}" for s in copy.no_source_suggestions)
    message = (
        f'I couldn\'t find specific information about "{ctx.query}" in our '
        f"{copy.domain} documentation. This might be because:\n\n"
        "1. The topic isn't covered in our current knowledge base\n"
        "2. Different terminology might be used in our documentation\n"
        f"3. The question might be outside the scope of {copy.domain}\n\n"
        f"You could try one of these instead:\n{suggestions}"
    )
    return FallbackResponse(
        strategy=IssueType.NO_RELEVANT_SOURCES,
        message=message,
        confidence=0.2,
        use_knowledge_base=False,
        suggestions=copy.no_source_suggestions,
    )


def _poor_citations(ctx: FallbackContext, copy: FallbackCopy) -> FallbackResponse:
    message = (
        (ctx.original_response or "")
        + "\n\n**Note:** Some citations in this response may not be fully accurate. "
        "Please verify important information by consulting the original source documents directly."
    )
    return FallbackResponse(
        strategy=IssueType.POOR_CITATION_QUALITY,
        message=message,
        confidence=max(ctx.original_confidence - 0.2, 0.1),
        use_knowledge_base=True,
        warnings=("Citation accuracy is below optimal levels",),
    )


def _incomplete(ctx: FallbackContext, copy: FallbackCopy) -> FallbackResponse:
    message = (
        (ctx.original_response or "")
        + "\n\n**Note:** This response may be incomplete. Would you like me to:\n"
        "1. Continue with more details on this topic\n"
        "2. Focus on a specific aspect of your question\n"
        "3. Provide additional related information"
    )
    return FallbackResponse(
        strategy=IssueType.INCOMPLETE_RESPONSE,
        message=message,
        confidence=max(ctx.original_confidence - 0.1, 0.2),
        use_knowledge_base=True,
        suggestions=copy.continuation_suggestions,
    )


def _ambiguity(ctx: FallbackContext, copy: FallbackCopy) -> FallbackResponse:
    options = "\n".join(f"{n}. {o}" for n, o in enumerate(copy.clarification_options, start=1))
    message = (
        f'Your question "{ctx.query}" could be interpreted in several ways. '
        "To provide the most accurate answer, could you tell me which of these topics you mean?\n\n"
        f"{options}"
    )
    return FallbackResponse(
        strategy=IssueType.QUERY_AMBIGUITY,
        message=message,
        confidence=0.4,
        use_knowledge_base=False,
        clarification_options=copy.clarification_options,
    )


def system_error_response(query: str, copy: FallbackCopy | None = None) -> FallbackResponse:
    copy = copy or FallbackCopy()
    message = (
        "I apologize, but I'm experiencing difficulties processing your request"
        + (f' about "{query}"' if query else "")
        + ". Please try again in a moment, or contact support if the issue persists. "
        f"For urgent {copy.domain} questions, please consult the user guide directly."
    )
    return FallbackResponse(
        strategy=IssueType.SYSTEM_ERROR,
        message=message,
        confidence=0.1,
        use_knowledge_base=False,
        is_error=True,
    )


def apply_strategy(
    issue_type: IssueType, ctx: FallbackContext, copy: FallbackCopy
) -> FallbackResponse:
    match issue_type:
        case IssueType.LOW_RETRIEVAL_CONFIDENCE:
            return _low_retrieval(ctx, copy)
        case IssueType.NO_RELEVANT_SOURCES:
            return _no_sources(ctx, copy)
        case IssueType.POOR_CITATION_QUALITY:
            return _poor_citations(ctx, copy)
        case IssueType.INCOMPLETE_RESPONSE:
            return _incomplete(ctx, copy)
        case IssueType.QUERY_AMBIGUITY:
            return _ambiguity(ctx, copy)
        case IssueType.SYSTEM_ERROR:
            return system_error_response(ctx.query, copy)
        case _:
            assert_never(issue_type)


class FallbackDispatcher:
    """Stateless: every call is an independent lookup."""

    def __init__(self, copy: FallbackCopy | None = None) -> None:
        self.copy = copy or FallbackCopy()

    def dispatch(self, issues: Sequence[Issue], ctx: FallbackContext) -> FallbackResponse | None:
        """Return the single fallback for ``issues``, or None when there is nothing to handle."""
        try:
            issue = select_issue(issues)
            if issue is None:
                return None
            response = apply_strategy(issue.type, ctx, self.copy)
        except Exception as e:
            logger.error("fallback_strategy_failed", error=str(e), exc_info=True)
            return system_error_response(ctx.query if isinstance(ctx.query, str) else "")
        logger.info(
            "fallback_applied",
            strategy=response.strategy,
            severity=issue.severity,
            confidence=response.confidence,
        )
        return response
