"""
Interview Agent - Fact Finding.

Drives the opening phase of an opinion: asks the next most useful question,
summarises what has been established and judges whether the facts are
complete enough to move on to research.
"""

from src.agents.generation import GenerationError, GenerationService, Parsed, ParseFailure, parse_structured
from src.agents.schemas import CompletenessAssessment
from src.knowledge.schemas import ConversationMessage, format_transcript
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Prompts
# ============================================================================

QUESTION_SYSTEM_PROMPT = """You are an experienced tax consultant conducting a fact-finding interview for a formal tax opinion.

<approach>
- Ask ONE clear, specific question at a time
- Build on what the client has already told you; never repeat a question
- Prioritise facts that change the tax outcome: parties, dates, amounts, residence, the nature of the transaction
- Use plain professional language
</approach>

Respond with the question only."""

QUESTION_PROMPT = """<conversation>
{transcript}
</conversation>
{context_block}
<task>
Ask the single most important next question needed to establish the facts for this tax opinion.
</task>"""

SUMMARY_SYSTEM_PROMPT = """You are summarising the facts of a tax matter for the opinion file.

Organise the summary under these headings:
1. Taxpayer Information
2. Tax Issue
3. Key Facts
4. Transaction Details
5. Relevant Considerations
6. Information Gaps

State facts as given by the client. Do not draw legal conclusions. Where something is unknown, list it under Information Gaps."""

SUMMARY_PROMPT = """<conversation>
{transcript}
</conversation>
{context_block}
<task>
Summarise the established facts under the required headings.
</task>"""

COMPLETENESS_SYSTEM_PROMPT = """You assess whether enough factual information has been gathered to research and draft a tax opinion.

Respond ONLY with JSON:
{
  "completeness": <0-100>,
  "missingCritical": ["Facts without which no opinion can be given"],
  "missingDesirable": ["Facts that would strengthen the opinion"],
  "readyToProceed": <true/false>
}

Set readyToProceed to true only when no critical facts are missing."""

COMPLETENESS_PROMPT = """<conversation>
{transcript}
</conversation>

Assess the completeness of the facts gathered so far."""


def _context_block(context: str | None, tag: str) -> str:
    if not context:
        return ""
    return f"\n<{tag}>\n{context}\n</{tag}>\n"


class InterviewAgent:
    """
    Agent that gathers the facts of a tax matter through conversation.

    Usage:
        agent = InterviewAgent(generation)
        question = await agent.generate_question(history)
        assessment = await agent.assess_completeness(history)
    """

    def __init__(self, generation: GenerationService) -> None:
        self.generation = generation

    async def generate_question(
        self,
        history: list[ConversationMessage],
        context: str | None = None,
    ) -> str:
        """
        Produce the next interview question.

        Args:
            history: Conversation so far
            context: Optional earlier question/answer pairs to build on

        Returns:
            The question text, as generated
        """
        prompt = QUESTION_PROMPT.format(
            transcript=format_transcript(history) or "(no messages yet)",
            context_block=_context_block(context, "previous_questions_and_answers"),
        )
        return await self.generation.invoke(QUESTION_SYSTEM_PROMPT, prompt, temperature=0.7)

    async def summarize_facts(
        self,
        history: list[ConversationMessage],
        context: str | None = None,
    ) -> str:
        """Summarise the established facts under fixed headings."""
        prompt = SUMMARY_PROMPT.format(
            transcript=format_transcript(history) or "(no messages yet)",
            context_block=_context_block(context, "additional_context"),
        )
        return await self.generation.invoke(SUMMARY_SYSTEM_PROMPT, prompt, temperature=0.3)

    async def assess_completeness(
        self,
        history: list[ConversationMessage],
    ) -> CompletenessAssessment:
        """
        Judge whether fact-finding can stop.

        Never raises: a failed call or an unusable reply yields the
        conservative fallback assessment.
        """
        prompt = COMPLETENESS_PROMPT.format(transcript=format_transcript(history))

        try:
            text = await self.generation.invoke(COMPLETENESS_SYSTEM_PROMPT, prompt, temperature=0.2)
        except GenerationError as e:
            logger.warning(f"Completeness assessment failed, using fallback: {e}")
            return CompletenessAssessment.fallback()

        match parse_structured(text, CompletenessAssessment):
            case Parsed(value):
                return value
            case ParseFailure(error):
                logger.warning(f"Could not parse completeness assessment: {error}")
                return CompletenessAssessment.fallback()
