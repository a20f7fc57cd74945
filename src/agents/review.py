"""
Review Agent - Opinion Quality Review.

Reviews drafted opinions and individual sections before client delivery:
scored review, citation check, targeted improvement suggestions and a
final go/no-go quality check.

Advisory calls (citations, improvements) degrade to empty results;
review and final check raise ReviewError.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from src.agents.generation import (
    GenerationError,
    GenerationService,
    Parsed,
    ParseFailure,
    parse_structured,
)
from src.agents.schemas import (
    CitationCheck,
    ImprovementFocus,
    QualityCheck,
    ReviewFeedback,
    SectionReview,
)
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)


class ReviewError(Exception):
    """Raised when a review cannot be produced."""
    pass


class ReviewableSection(Protocol):
    """Anything with a title and content, e.g. OpinionSection or DraftedSection."""

    title: str
    content: str


# ============================================================================
# Prompts
# ============================================================================

OPINION_REVIEW_SYSTEM_PROMPT = """You are an expert senior tax reviewer evaluating opinion quality before client delivery.

<review_criteria>
1. COMPLETENESS (0-100): all sections present, facts detailed, law explained, conclusion clear
2. COHERENCE (0-100): logical flow, consistent terminology, clear structure
3. CITATIONS (0-100): statutes and cases cited correctly, sources acknowledged
4. LOGIC (0-100): analysis follows from law and facts, counter-arguments addressed
5. OVERALL READINESS (0-100): professional tone, qualifications and risk disclosures
</review_criteria>

Respond ONLY with JSON:
{
  "overallScore": <0-100>,
  "completeness": {"score": <0-100>, "missingElements": ["..."]},
  "coherence": {"score": <0-100>, "issues": ["..."]},
  "citations": {"score": <0-100>, "issues": ["..."]},
  "logic": {"score": <0-100>, "gaps": ["..."]},
  "recommendations": ["Specific recommendation"],
  "readyForClient": <true/false>
}

Set readyForClient to true only if overallScore >= 80 and there are no critical issues."""

SECTION_REVIEW_SYSTEM_PROMPT = """You are an expert reviewer evaluating individual sections of tax opinions.

<section_standards>
FACTS: all material facts, objective, logically organised
ISSUE: precise framing that flows from the facts
LAW: relevant provisions cited and explained
APPLICATION: systematic, facts applied to law, counter-arguments addressed
CONCLUSION: answers the issue, qualified, practical
</section_standards>

Respond ONLY with JSON:
{
  "score": <0-100>,
  "strengths": ["..."],
  "improvements": ["..."],
  "suggestions": ["..."]
}"""

CITATION_SYSTEM_PROMPT = """You are an expert at reviewing legal citations in tax opinions.

<citation_standards>
- Statutes: full reference on first use, short form thereafter
- Cases: proper court and year
- Revenue authority publications: full title and number
- Internal cross-references: correct paragraph numbers
</citation_standards>

Respond ONLY with JSON:
{
  "citationsFound": ["..."],
  "issues": ["..."],
  "suggestions": ["..."]
}"""

IMPROVEMENT_SYSTEM_PROMPT = """You are an expert editor improving tax opinion quality.

Give specific, actionable suggestions.

Respond ONLY with a JSON array of strings:
["Suggestion 1", "Suggestion 2"]"""

IMPROVEMENT_INSTRUCTIONS = {
    ImprovementFocus.CLARITY: "Suggest ways to make this content clearer and more understandable.",
    ImprovementFocus.COMPLETENESS: "Identify what information is missing or should be added.",
    ImprovementFocus.LOGIC: "Identify logical gaps or weaknesses in the reasoning.",
    ImprovementFocus.TONE: "Suggest improvements to make the tone more professional and appropriate.",
}

FINAL_CHECK_SYSTEM_PROMPT = """You are performing a final quality check on a tax opinion before client delivery.

<critical_checks>
Critical issues prevent delivery: missing essential sections, logical contradictions,
unsupported conclusions, improper legal citations, unprofessional language, material errors.
Warnings do not: minor formatting, optional improvements, helpful extra context.
</critical_checks>

Respond ONLY with JSON:
{
  "passesCheck": <true/false>,
  "criticalIssues": ["..."],
  "warnings": ["..."],
  "recommendations": ["..."]
}

Set passesCheck to false only if critical issues exist."""


def join_sections(sections: Sequence[ReviewableSection]) -> str:
    """Render sections as one document, separated by horizontal rules."""
    return "\n\n---\n\n".join(f"{s.title}\n\n{s.content}" for s in sections)


class ReviewAgent:
    """
    Agent that reviews opinion drafts.

    Usage:
        agent = ReviewAgent(generation)
        feedback = await agent.review_opinion(sections)
        check = await agent.final_quality_check(join_sections(sections))
    """

    def __init__(self, generation: GenerationService) -> None:
        self.generation = generation

    async def review_opinion(self, sections: Sequence[ReviewableSection]) -> ReviewFeedback:
        """
        Review a complete draft.

        Raises:
            ReviewError: If the review cannot be produced
        """
        prompt = f"""<opinion_draft>
{join_sections(sections)}
</opinion_draft>

<task>
Review this tax opinion draft. Evaluate completeness, coherence, citations and logic, and give actionable feedback.
</task>"""
        feedback = await self._structured("opinion review", OPINION_REVIEW_SYSTEM_PROMPT, prompt, 0.3, ReviewFeedback)
        logger.info(
            f"Opinion review: score {feedback.overall_score}, "
            f"ready for client: {feedback.ready_for_client}"
        )
        return feedback

    async def review_section(self, section_type: str, content: str, context: str) -> SectionReview:
        """
        Review a single section in context.

        Raises:
            ReviewError: If the review cannot be produced
        """
        prompt = f"""<section_type>
{section_type}
</section_type>

<content>
{content}
</content>

<context>
{context}
</context>

<task>
Review this {section_type} section and give specific feedback.
</task>"""
        return await self._structured("section review", SECTION_REVIEW_SYSTEM_PROMPT, prompt, 0.4, SectionReview)

    async def check_citations(self, content: str) -> CitationCheck:
        """Check citations in the content; returns an empty check on failure."""
        prompt = f"""<content>
{content}
</content>

Review all citations in this content for accuracy and completeness."""
        try:
            return await self._structured("citation check", CITATION_SYSTEM_PROMPT, prompt, 0.3, CitationCheck)
        except ReviewError as e:
            logger.warning(f"Citation check unavailable: {e}")
            return CitationCheck()

    async def suggest_improvements(self, content: str, issue_type: ImprovementFocus | str) -> list[str]:
        """Suggest improvements focused on one aspect; returns [] on failure."""
        try:
            focus = ImprovementFocus(issue_type)
        except ValueError:
            logger.warning(f"Unknown improvement focus: {issue_type!r}")
            return []

        prompt = f"""<content>
{content}
</content>

{IMPROVEMENT_INSTRUCTIONS[focus]}"""
        try:
            return await self._structured("improvement suggestions", IMPROVEMENT_SYSTEM_PROMPT, prompt, 0.4, list[str])
        except ReviewError as e:
            logger.warning(f"Improvement suggestions unavailable: {e}")
            return []

    async def final_quality_check(self, opinion_text: str) -> QualityCheck:
        """
        Final go/no-go check before export.

        Raises:
            ReviewError: If the check cannot be produced
        """
        prompt = f"""<opinion>
{opinion_text}
</opinion>

Perform a final quality check. Identify critical issues that prevent delivery, and any warnings or recommendations."""
        check = await self._structured("final quality check", FINAL_CHECK_SYSTEM_PROMPT, prompt, 0.3, QualityCheck)
        logger.info(
            f"Final check {'passed' if check.passes_check else 'failed'} "
            f"with {len(check.critical_issues)} critical issues"
        )
        return check

    async def _structured(
        self,
        what: str,
        system_prompt: str,
        prompt: str,
        temperature: float,
        shape: Any,
    ) -> Any:
        try:
            text = await self.generation.invoke(system_prompt, prompt, temperature=temperature)
        except GenerationError as e:
            raise ReviewError(f"Failed to perform {what}: {e}") from e

        match parse_structured(text, shape):
            case Parsed(value):
                return value
            case ParseFailure(error, raw):
                logger.error(f"Malformed {what} output: {truncate(raw)}")
                raise ReviewError(f"Failed to parse {what}: {error}")
