"""
Section Generator - Interactive Section-by-Section Drafting.

Each section is drafted through a short Q&A thread:

    start_section -> answer_question (repeated) -> generate_content

Every answer triggers a fresh document search whose findings accumulate
on the thread, and a length/count heuristic decides when enough has been
asked. The generated text is then produced by the agent that owns that
kind of section.

State is passed in and returned as an immutable SectionGenerationState.
"""

import time
from collections.abc import Iterable
from uuid import uuid4

from src.agents.analysis import AnalysisAgent
from src.agents.drafting import DraftingAgent
from src.agents.interview import InterviewAgent
from src.agents.research import ResearchAgent, ResearchError
from src.agents.schemas import (
    DocumentFinding,
    DocumentSource,
    QAPair,
    SectionAnswer,
    SectionGenerationState,
    SectionStart,
    SectionType,
)
from src.knowledge.opinion_store import OpinionStore
from src.knowledge.schemas import ConversationMessage, MessageRole, OpinionSection
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)

FINDING_SCORE = 0.8
FOLLOW_UP_CHAT_LIMIT = 10
MIN_ANSWERS = 2
SUBSTANTIAL_ANSWER_CHARS = 200
DEFAULT_MAX_QUESTIONS = 3

MAX_QUESTIONS: dict[str, int] = {
    "facts": 3,
    "issue": 2,
    "law": 3,
    "analysis": 4,
    "application": 4,
    "conclusion": 2,
    "custom": 3,
}


class SectionStateError(Exception):
    """Raised when an operation is not valid for the thread's current state."""
    pass


# ============================================================================
# Pure helpers
# ============================================================================

def new_generation_id() -> str:
    """Unique id for a section thread: section_<epoch-ms>_<uuid4>."""
    return f"section_{int(time.time() * 1000)}_{uuid4()}"


def section_title(state: SectionGenerationState) -> str:
    """Title to store the finished section under."""
    return state.custom_title or state.section_type


def needs_more_questions(state: SectionGenerationState) -> bool:
    """
    Decide whether to ask another question.

    At least two answers are always collected and never more than the
    per-type maximum. In between, stop once the answers together reach
    200 characters.
    """
    max_questions = MAX_QUESTIONS.get(state.normalized_type, DEFAULT_MAX_QUESTIONS)
    answered = state.answered

    if len(answered) < MIN_ANSWERS:
        return True
    if len(answered) >= max_questions:
        return False

    all_answers = " ".join(qa.answer for qa in answered if qa.answer)
    return len(all_answers) < SUBSTANTIAL_ANSWER_CHARS


def merge_findings(
    existing: Iterable[DocumentFinding],
    new: Iterable[DocumentFinding],
) -> tuple[DocumentFinding, ...]:
    """Append new findings whose file is not already represented."""
    merged = list(existing)
    seen = {finding.file_name for finding in merged}
    for finding in new:
        if finding.file_name not in seen:
            seen.add(finding.file_name)
            merged.append(finding)
    return tuple(merged)


def build_search_query(
    section_type: str,
    previous_sections: list[OpinionSection],
    qa_history: str,
) -> str:
    """Search query tailored to the kind of section being drafted."""
    match section_type.lower():
        case SectionType.FACTS:
            return f"factual circumstances background taxpayer details {qa_history}"
        case SectionType.ISSUE:
            return f"tax issue question dispute assessment {qa_history}"
        case SectionType.LAW:
            return f"legislation sections regulations case law precedent {qa_history}"
        case SectionType.CONCLUSION:
            return f"conclusion position recommendation {qa_history}"
        case SectionType.ANALYSIS | SectionType.APPLICATION:
            issue = previous_section_content(previous_sections, SectionType.ISSUE)
            facts = previous_section_content(previous_sections, SectionType.FACTS)
            return f"{issue} {facts} {qa_history}"
        case _:
            return f"{section_type} {qa_history}"


def previous_section_content(sections: list[OpinionSection], section_type: str) -> str:
    """Content of the first earlier section of a type, or ''."""
    for section in sections:
        if section.section_type.lower() == section_type:
            return section.content
    return ""


def build_full_context(state: SectionGenerationState, previous_sections: list[OpinionSection]) -> str:
    """Previous sections, the answered Q&A and all document findings as one text."""
    parts: list[str] = []

    if previous_sections:
        parts.append("## Previous Sections:")
        parts.append("\n\n".join(f"### {s.title}\n{s.content}" for s in previous_sections))
        parts.append("")

    if state.questions:
        parts.append("## Q&A History:")
        parts.append("\n\n".join(
            f"Q{i}: {qa.question}\nA{i}: {qa.answer}"
            for i, qa in enumerate(state.answered, start=1)
        ))
        parts.append("")

    if state.document_findings:
        parts.append("## Referenced Documents:")
        parts.append("\n\n".join(
            f"**{d.file_name}** ({d.category}):\n{d.content}"
            for d in state.document_findings
        ))

    return "\n".join(parts)


def referenced_documents_footer(findings: Iterable[DocumentFinding]) -> str:
    """Markdown list of the distinct documents a section drew on."""
    lines: list[str] = []
    seen: set[str] = set()
    for finding in findings:
        if finding.file_name in seen:
            continue
        seen.add(finding.file_name)
        lines.append(f"- {finding.file_name} ({finding.category})")
    return "\n\n**Referenced Documents:**\n" + "\n".join(lines)


def _to_findings(sources: list[DocumentSource]) -> list[DocumentFinding]:
    return [
        DocumentFinding(
            content=source.excerpt,
            file_name=source.file_name,
            category=source.category,
            score=FINDING_SCORE,
        )
        for source in sources
    ]


def _context_summary(chat_history: list[ConversationMessage], sections: list[OpinionSection]) -> str:
    parts: list[str] = []
    if chat_history:
        parts.append("our chat")
    if sections:
        parts.append(f"the {len(sections)} existing section(s)")
    return " and ".join(parts)


def _document_context(findings: Iterable[DocumentFinding]) -> str:
    names = list(dict.fromkeys(f.file_name for f in findings))
    if not names:
        return (
            " To assist you better, consider uploading relevant documents such as "
            "assessments, correspondence, or financial statements."
        )
    plural = "s" if len(names) > 1 else ""
    more = "..." if len(names) > 3 else ""
    return f" I found {len(names)} relevant document{plural} ({', '.join(names[:3])}{more})."


def opening_question(
    section_type: str,
    chat_history: list[ConversationMessage],
    existing_sections: list[OpinionSection],
    custom_title: str | None,
    findings: Iterable[DocumentFinding],
) -> str:
    """First question of a thread; mentions what documents were found."""
    docs = _document_context(findings)
    summary = _context_summary(chat_history, existing_sections)
    based_on = f" and {summary}" if summary else ""
    considering = f"Considering {summary}, " if summary else ""

    match section_type.lower():
        case SectionType.FACTS:
            return (
                f"I'll help you document the relevant facts for this tax opinion.{docs} "
                f"Based on our conversation{based_on}, what are the key factual "
                "circumstances that give rise to this tax matter?"
            )
        case SectionType.ISSUE:
            return (
                f"I'll help you articulate the tax issue.{docs} {considering}"
                "What specific tax question or questions need to be addressed in this opinion?"
            )
        case SectionType.LAW:
            return (
                f"I'll help you identify the relevant legal framework.{docs} "
                "What specific sections of the Income Tax Act, regulations, or case law "
                "are most relevant to this matter?"
            )
        case SectionType.ANALYSIS:
            return (
                f"I'll help you analyze how the law applies to the facts.{docs} "
                "What is your preliminary view on how the relevant tax provisions apply to this situation?"
            )
        case SectionType.APPLICATION:
            return (
                f"I'll help you apply the law to the facts.{docs} "
                "What is your preliminary view on how the relevant tax provisions apply to this situation?"
            )
        case SectionType.CONCLUSION:
            return (
                f"I'll help you formulate the conclusion.{docs} "
                "Based on the analysis, what is your conclusion on the tax treatment or position?"
            )
        case _:
            return (
                f'I\'ll help you create the "{custom_title or section_type}" section.{docs} '
                "What information or analysis should this section contain?"
            )


# ============================================================================
# Section Generator
# ============================================================================

class SectionGenerator:
    """
    Runs the Q&A thread for one section and generates its content.

    Usage:
        generator = SectionGenerator(store, interview, research, analysis, drafting)
        start = await generator.start_section("facts", draft_id)
        step = await generator.answer_question(start.state, "The company sold...", draft_id)
        ...
        content = await generator.generate_content(step.state, draft_id, store.list_sections(draft_id))
    """

    def __init__(
        self,
        store: OpinionStore,
        interview: InterviewAgent,
        research: ResearchAgent,
        analysis: AnalysisAgent,
        drafting: DraftingAgent,
    ) -> None:
        self.store = store
        self.interview = interview
        self.research = research
        self.analysis = analysis
        self.drafting = drafting

    async def start_section(
        self,
        section_type: str,
        draft_id: int,
        custom_title: str | None = None,
    ) -> SectionStart:
        """Open a new thread and ask its first question."""
        logger.info(f"Starting section generation: {section_type} for draft {draft_id}")

        generation_id = new_generation_id()
        chat_history = self.store.list_messages(draft_id)
        existing_sections = self.store.list_sections(draft_id)

        findings = await self._search_for_context(draft_id, section_type, existing_sections, "")
        question = opening_question(section_type, chat_history, existing_sections, custom_title, findings)

        state = SectionGenerationState(
            section_type=section_type,
            custom_title=custom_title,
            questions=(QAPair(question=question),),
            current_question_index=0,
            generation_id=generation_id,
            document_findings=tuple(findings),
        )

        self._save(draft_id, state, MessageRole.ASSISTANT, question)
        return SectionStart(question=question, state=state)

    async def answer_question(
        self,
        state: SectionGenerationState,
        answer: str,
        draft_id: int,
    ) -> SectionAnswer:
        """
        Record an answer, refresh document findings and ask the next question if needed.

        Raises:
            SectionStateError: If the thread is already complete
        """
        if state.is_complete:
            raise SectionStateError(
                f"Section thread {state.generation_id} is complete; generate its content instead"
            )

        logger.info(
            f"Processing answer for section {state.section_type}, "
            f"question {state.current_question_index}"
        )

        self._save(draft_id, state, MessageRole.USER, answer)

        questions = list(state.questions)
        index = state.current_question_index
        if index < len(questions):
            questions[index] = questions[index].model_copy(update={"answer": answer})
        state = state.model_copy(update={
            "questions": tuple(questions),
            "current_question_index": index + 1,
        })

        previous_sections = self.store.list_sections(draft_id)
        qa_history = " ".join(f"{qa.question} {qa.answer}" for qa in state.answered)
        new_findings = await self._search_for_context(
            draft_id, state.section_type, previous_sections, qa_history
        )
        state = state.model_copy(update={
            "document_findings": merge_findings(state.document_findings, new_findings),
        })

        if needs_more_questions(state):
            question = await self._follow_up_question(state, draft_id)
            state = state.model_copy(update={"questions": (*state.questions, QAPair(question=question))})
            self._save(draft_id, state, MessageRole.ASSISTANT, question)
            return SectionAnswer(question=question, complete=False, state=state)

        state = state.model_copy(update={"is_complete": True})
        return SectionAnswer(complete=True, state=state)

    async def generate_content(
        self,
        state: SectionGenerationState,
        draft_id: int,
        previous_sections: list[OpinionSection],
    ) -> str:
        """
        Produce the section text from the completed thread.

        The caller is responsible for storing the result as a section.

        Raises:
            SectionStateError: If questions are still outstanding
        """
        if not state.is_complete:
            raise SectionStateError("Cannot generate content - questions not complete")

        logger.info(f"Generating content for {state.section_type} section")

        chat_history = self.store.list_messages(draft_id)
        section_qa = self.store.list_messages(draft_id, generation_id=state.generation_id)
        full_context = build_full_context(state, previous_sections)
        logger.info(
            f"Full context for section generation: {len(full_context)} chars, "
            f"{len(state.document_findings)} documents"
        )

        match state.normalized_type:
            case SectionType.FACTS:
                content = await self.interview.summarize_facts(section_qa, context=full_context)
            case SectionType.ISSUE:
                content = await self.interview.summarize_facts(chat_history + section_qa, context=full_context)
            case SectionType.LAW:
                content = await self._law_section(draft_id, previous_sections, full_context)
            case SectionType.ANALYSIS | SectionType.APPLICATION:
                content = await self._analysis_section(previous_sections, full_context)
            case SectionType.CONCLUSION:
                content = await self._conclusion_section(previous_sections, full_context)
            case _:
                content = await self._custom_section(section_qa, previous_sections, full_context)

        if state.document_findings:
            content += referenced_documents_footer(state.document_findings)

        return content

    async def regenerate_content(self, section: OpinionSection) -> str:
        """Redraft a stored section using only the sections placed before it."""
        state = SectionGenerationState(
            section_type=section.section_type,
            custom_title=section.title,
            questions=(QAPair(question="Regenerate section", answer="Yes"),),
            is_complete=True,
            generation_id=f"regen_{int(time.time() * 1000)}",
        )
        previous_sections = self.store.list_sections(section.draft_id, before_order=section.order)
        logger.info(f"Regenerating section {section.id} with {len(previous_sections)} earlier sections")

        return await self.generate_content(state, section.draft_id, previous_sections)

    # ------------------------------------------------------------------
    # Section builders
    # ------------------------------------------------------------------

    async def _law_section(
        self,
        draft_id: int,
        previous_sections: list[OpinionSection],
        full_context: str,
    ) -> str:
        facts = previous_section_content(previous_sections, SectionType.FACTS)
        issue = previous_section_content(previous_sections, SectionType.ISSUE)

        research = await self.research.conduct_research(
            draft_id,
            f"{issue}\n\nContext:\n{full_context}",
            facts or "facts from conversation",
        )

        law = "\n".join(f"- {item}" for item in research.relevant_law)
        precedents = "\n".join(f"- {item}" for item in research.precedents)
        return (
            f"**Relevant Legislation:**\n{law}\n\n"
            f"**Legal Framework:**\n{research.document_findings}\n\n"
            f"**Precedents:**\n{precedents}"
        )

    async def _analysis_section(self, previous_sections: list[OpinionSection], full_context: str) -> str:
        facts = previous_section_content(previous_sections, SectionType.FACTS)
        issue = previous_section_content(previous_sections, SectionType.ISSUE)
        law = previous_section_content(previous_sections, SectionType.LAW)

        analysis = await self.analysis.analyze_tax_position(
            f"{facts}\n\nAdditional Context:\n{full_context}",
            law or "relevant law",
            issue or "tax issue",
        )

        issues = "\n".join(f"- {item}" for item in analysis.main_issues)
        return (
            f"**Main Issues:**\n{issues}\n\n"
            f"**Analysis:**\n{analysis.legal_analysis}\n\n"
            f"**Conclusion:**\n{analysis.conclusion}"
        )

    async def _conclusion_section(self, previous_sections: list[OpinionSection], full_context: str) -> str:
        issue = previous_section_content(previous_sections, SectionType.ISSUE)
        analysis = (
            previous_section_content(previous_sections, SectionType.ANALYSIS)
            or previous_section_content(previous_sections, SectionType.APPLICATION)
            or "Analysis based on facts and law"
        )

        conclusion = await self.drafting.draft_conclusion_section(
            issue or "Tax issue from discussion",
            f"{analysis}\n\nFull Context:\n{full_context}",
            "Risks assessed from conversation",
        )
        return conclusion.content

    async def _custom_section(
        self,
        section_qa: list[ConversationMessage],
        previous_sections: list[OpinionSection],
        full_context: str,
    ) -> str:
        previous = "\n\n".join(f"{s.title}:\n{s.content}" for s in previous_sections)
        answers = "\n\n".join(m.content for m in section_qa if m.role is MessageRole.USER)
        combined = f"{previous}\n\n{full_context}".strip()

        section = await self.drafting.draft_application_section(
            answers or "Custom section content from user input",
            combined or "No previous context",
            "User-defined custom section",
        )
        return section.content

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _search_for_context(
        self,
        draft_id: int,
        section_type: str,
        previous_sections: list[OpinionSection],
        qa_history: str,
    ) -> list[DocumentFinding]:
        """Search the draft's documents; failures yield no findings."""
        query = build_search_query(section_type, previous_sections, qa_history)
        logger.info(f"Searching documents for {section_type} section: '{truncate(query)}'")

        try:
            result = await self.research.search_documents(draft_id, query)
        except ResearchError as e:
            logger.error(f"Error searching documents for context: {e}")
            return []

        findings = _to_findings(result.sources)
        logger.info(f"Found {len(findings)} relevant document excerpts for {section_type}")
        return findings

    async def _follow_up_question(self, state: SectionGenerationState, draft_id: int) -> str:
        previous_qa = "\n\n".join(f"Q: {qa.question}\nA: {qa.answer}" for qa in state.answered)
        chat_history = self.store.list_messages(draft_id, limit=FOLLOW_UP_CHAT_LIMIT)
        return await self.interview.generate_question(chat_history, context=previous_qa)

    def _save(self, draft_id: int, state: SectionGenerationState, role: MessageRole, content: str) -> None:
        self.store.add_message(
            draft_id,
            role,
            content,
            generation_id=state.generation_id,
            section_type=state.section_type,
        )
