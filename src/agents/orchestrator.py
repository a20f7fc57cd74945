"""
Agent Orchestrator - Opinion Workflow State Machine.

Routes each conversation turn to the right agent. The workflow phase is
derived from the conversation itself:

    interview -> research -> analysis -> drafting -> review

Fact-finding is complete once the interview agent says so; the later
phases are recognised by the stage markers ("research", "analysis",
"draft") that handlers leave in the metadata of recent assistant
messages.

Explicit requests ("search for...", "draft...", "review...") jump
straight to the matching handler regardless of phase.
"""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from src.agents.analysis import AnalysisAgent
from src.agents.drafting import DraftingAgent
from src.agents.interview import InterviewAgent
from src.agents.research import ResearchAgent
from src.agents.schemas import (
    ChatResponse,
    DraftedSection,
    Source,
    WorkflowPhase,
    WorkflowState,
)
from src.knowledge.schemas import ConversationMessage, MessageRole, format_transcript
from src.utils.logger import LogContext, get_logger, truncate

logger = get_logger(__name__)

MARKER_WINDOW = 5
MAX_QUERY_INPUT = 1000
MAX_ISSUE_TRANSCRIPT = 4000

# Phase reached when the marker is missing, checked in this order.
STAGE_MARKERS: list[tuple[str, WorkflowPhase]] = [
    ("research", WorkflowPhase.RESEARCH),
    ("analysis", WorkflowPhase.ANALYSIS),
    ("draft", WorkflowPhase.DRAFTING),
]

DOCUMENT_KEYWORDS = [
    "document",
    "assessment",
    "uploaded",
    "file",
    "pdf",
    "in the",
    "from the",
    "according to",
    "what does the",
    "what is in",
    "show me",
    "tell me about the",
    "explain the",
    "summarize",
]

RESEARCH_KEYWORDS = ["research", "search", "find", "look for", "document"]
DRAFT_KEYWORDS = ["draft", "write", "generate", "create opinion"]
REVIEW_KEYWORDS = ["review", "check", "evaluate", "assess quality"]

SEARCH_PATTERNS = [
    re.compile(r"search for (.{1,500})", re.IGNORECASE),
    re.compile(r"find (.{1,500})", re.IGNORECASE),
    re.compile(r"look for (.{1,500})", re.IGNORECASE),
    re.compile(r"information about (.{1,500})", re.IGNORECASE),
]


class OrchestrationError(Exception):
    """Raised when a conversation turn cannot be processed."""
    pass


def contains_any(message: str, keywords: list[str]) -> bool:
    lower = message.lower()
    return any(keyword in lower for keyword in keywords)


def extract_search_query(message: str) -> str:
    """Pull the search subject out of a request, or use the whole (capped) message."""
    safe_message = message[:MAX_QUERY_INPUT]
    for pattern in SEARCH_PATTERNS:
        match = pattern.search(safe_message)
        if match and match.group(1):
            return match.group(1)
    return safe_message


def completed_stages(history: list[ConversationMessage]) -> list[str]:
    """Stage markers present in the recent window, in workflow order."""
    recent = history[-MARKER_WINDOW:]
    return [
        marker
        for marker, _ in STAGE_MARKERS
        if any(m.metadata and marker in m.metadata for m in recent)
    ]


def carry_stages(response: ChatResponse, history: list[ConversationMessage]) -> ChatResponse:
    """
    Copy the stages already reached into the reply's metadata.

    Markers only count inside the recent window, so every reply restates
    them; otherwise a few plain turns would push them out and the phase
    would fall back to research.
    """
    completed = completed_stages(history)
    if not completed:
        return response
    return response.model_copy(update={"metadata": {**(response.metadata or {}), "completed": completed}})


def extract_tax_issue(history: list[ConversationMessage]) -> str:
    return f"Tax issue based on conversation: {format_transcript(history, limit=MAX_ISSUE_TRANSCRIPT)}"


@dataclass
class Turn:
    """Everything a handler needs to answer one user message."""

    message: str
    history: list[ConversationMessage]
    draft_id: int
    phase: WorkflowPhase


Handler = Callable[[Turn], Awaitable[ChatResponse]]


class AgentOrchestrator:
    """
    Coordinates the agents across the opinion workflow.

    Usage:
        orchestrator = AgentOrchestrator(interview, research, analysis, drafting)
        response = await orchestrator.handle_message("We sold shares...", history, draft_id=42)
    """

    def __init__(
        self,
        interview: InterviewAgent,
        research: ResearchAgent,
        analysis: AnalysisAgent,
        drafting: DraftingAgent,
    ) -> None:
        self.interview = interview
        self.research = research
        self.analysis = analysis
        self.drafting = drafting

        # First matching rule handles the turn.
        self.rules: list[tuple[Callable[[Turn], bool], Handler]] = [
            (lambda t: contains_any(t.message, DOCUMENT_KEYWORDS), self._handle_research_request),
            (lambda t: contains_any(t.message, RESEARCH_KEYWORDS), self._handle_research_request),
            (lambda t: contains_any(t.message, DRAFT_KEYWORDS), self._handle_draft_request),
            (lambda t: contains_any(t.message, REVIEW_KEYWORDS), self._handle_review_request),
            (lambda t: True, self._dispatch_by_phase),
        ]

        self.phase_handlers: dict[WorkflowPhase, Handler] = {
            WorkflowPhase.INTERVIEW: self._handle_interview_phase,
            WorkflowPhase.RESEARCH: self._handle_research_phase,
            WorkflowPhase.ANALYSIS: self._handle_analysis_phase,
            WorkflowPhase.DRAFTING: self._handle_drafting_phase,
            WorkflowPhase.REVIEW: self._handle_review_phase,
        }

    # ------------------------------------------------------------------
    # Phase
    # ------------------------------------------------------------------

    async def determine_phase(self, history: list[ConversationMessage]) -> WorkflowPhase:
        """Infer the current phase from the conversation."""
        if not history:
            return WorkflowPhase.INTERVIEW

        assessment = await self.interview.assess_completeness(history)
        if not assessment.ready_to_proceed:
            return WorkflowPhase.INTERVIEW

        completed = completed_stages(history)
        for marker, phase in STAGE_MARKERS:
            if marker not in completed:
                return phase

        return WorkflowPhase.REVIEW

    async def get_workflow_state(
        self,
        history: list[ConversationMessage],
        phase: WorkflowPhase,
    ) -> WorkflowState:
        if history:
            assessment = await self.interview.assess_completeness(history)
            completeness, facts_established = assessment.completeness, assessment.ready_to_proceed
        else:
            completeness, facts_established = 0, False

        return WorkflowState.for_phase(phase, completeness, facts_established)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        user_message: str,
        history: list[ConversationMessage],
        draft_id: int,
        current_phase: WorkflowPhase | None = None,
    ) -> ChatResponse:
        """
        Answer one user message.

        Args:
            user_message: The new message (not yet part of history)
            history: Top-level conversation so far
            draft_id: Draft the conversation belongs to
            current_phase: Phase to use instead of inferring it

        Raises:
            OrchestrationError: If any step of the turn fails
        """
        with LogContext(logger, draft_id=draft_id):
            try:
                phase = current_phase or await self.determine_phase(history)
                logger.info(f"Processing message in phase: {phase.value}, draft {draft_id}")
                logger.info(f"User message: '{truncate(user_message)}'")

                turn = Turn(message=user_message, history=history, draft_id=draft_id, phase=phase)
                handler = next(handler for predicate, handler in self.rules if predicate(turn))
                response = await handler(turn)
                return carry_stages(response, history)

            except Exception as e:
                logger.error(
                    f"Error in agent orchestration for draft {draft_id} "
                    f"('{truncate(user_message)}'): {e}"
                )
                raise OrchestrationError("Failed to process message") from e

    async def draft_complete_opinion(
        self,
        history: list[ConversationMessage],
        draft_id: int,
    ) -> list[DraftedSection]:
        """
        Draft all five standard sections in one pass from the conversation.

        Raises:
            OrchestrationError: If any step fails
        """
        with LogContext(logger, draft_id=draft_id):
            try:
                facts = await self.interview.summarize_facts(history)
                issue = extract_tax_issue(history)
                research = await self.research.conduct_research(draft_id, issue, facts)
                analysis = await self.analysis.analyze_tax_position(facts, research.as_text(), issue)

                return await self.drafting.draft_complete_opinion(
                    facts=facts,
                    issue=issue,
                    law=research.relevant_law,
                    precedents=research.precedents,
                    analysis=f"{analysis.legal_analysis}\n\n{analysis.conclusion}",
                    risks=analysis.risks_text(),
                )
            except Exception as e:
                logger.error(f"Failed to draft complete opinion for draft {draft_id}: {e}")
                raise OrchestrationError("Failed to draft complete opinion") from e

    # ------------------------------------------------------------------
    # Phase handlers
    # ------------------------------------------------------------------

    async def _dispatch_by_phase(self, turn: Turn) -> ChatResponse:
        handler = self.phase_handlers.get(turn.phase, self._handle_general_query)
        return await handler(turn)

    async def _handle_interview_phase(self, turn: Turn) -> ChatResponse:
        question = await self.interview.generate_question(turn.history)

        pending = ConversationMessage(draft_id=turn.draft_id, role=MessageRole.USER, content=turn.message)
        assessment = await self.interview.assess_completeness([*turn.history, pending])

        ready = assessment.ready_to_proceed
        phase = WorkflowPhase.RESEARCH if ready else WorkflowPhase.INTERVIEW
        workflow_state = WorkflowState(
            phase=phase,
            completeness=assessment.completeness,
            facts_established=ready,
        )

        message = question
        suggestions: list[str] = []
        if ready:
            message = (
                "Thank you for providing that information. I now have enough details to proceed."
                f"\n\n{question}\n\n"
                "Would you like me to:\n"
                "1. Search the uploaded documents for relevant information\n"
                "2. Continue gathering more details\n"
                "3. Proceed to analyze the tax position"
            )
            suggestions = ["Search uploaded documents", "Continue interview", "Proceed to analysis"]

        return ChatResponse(
            message=message,
            phase=phase,
            suggestions=suggestions,
            workflow_state=workflow_state,
            metadata={"completeness": assessment.completeness},
        )

    async def _handle_research_phase(self, turn: Turn) -> ChatResponse:
        facts = await self.interview.summarize_facts(turn.history)
        issue = extract_tax_issue(turn.history)
        research = await self.research.conduct_research(turn.draft_id, issue, facts)

        law = "\n".join(f"- {item}" for item in research.relevant_law)
        precedents = "\n".join(f"- {item}" for item in research.precedents)
        additional = ""
        if research.additional_research_needed:
            needed = "\n".join(f"- {item}" for item in research.additional_research_needed)
            additional = f"\n**Additional Research Needed:**\n{needed}\n"

        message = (
            "I've conducted research on your tax issue. Here's what I found:\n\n"
            f"**Relevant Law Sections:**\n{law}\n\n"
            f"**Document Findings:**\n{research.document_findings}\n\n"
            f"**Precedents:**\n{precedents}\n"
            f"{additional}\n"
            "Would you like me to:\n"
            "1. Analyze the tax position based on this research\n"
            "2. Search for more specific information in the documents\n"
            "3. Explore alternative positions"
        )

        return ChatResponse(
            message=message,
            phase=WorkflowPhase.ANALYSIS,
            suggestions=["Analyze tax position", "Search for more details", "Explore alternatives"],
            sources=[
                Source(document_id=c.document_id, file_name=c.file_name, category=c.category)
                for c in research.citations
            ],
            workflow_state=WorkflowState(
                phase=WorkflowPhase.ANALYSIS,
                completeness=75,
                facts_established=True,
                research_complete=True,
            ),
            metadata={"research": research},
        )

    async def _handle_analysis_phase(self, turn: Turn) -> ChatResponse:
        facts = await self.interview.summarize_facts(turn.history)
        issue = extract_tax_issue(turn.history)
        research = await self.research.conduct_research(turn.draft_id, issue, facts)
        analysis = await self.analysis.analyze_tax_position(facts, research.as_text(), issue)

        issues = "\n".join(f"{i}. {item}" for i, item in enumerate(analysis.main_issues, start=1))
        positions = "\n".join(
            f"\n{i}. {p.position} ({p.likelihood} likelihood)\n"
            f"   Strengths: {', '.join(p.strengths)}\n"
            f"   Weaknesses: {', '.join(p.weaknesses)}"
            for i, p in enumerate(analysis.alternative_positions, start=1)
        )
        risks = "\n\n".join(
            f"{i}. [{r.severity.upper()}] {r.risk}\n   Mitigation: {r.mitigation}"
            for i, r in enumerate(analysis.risks, start=1)
        )

        message = (
            "I've completed my analysis of the tax position:\n\n"
            f"**Main Issues:**\n{issues}\n\n"
            f"**Analysis:**\n{analysis.legal_analysis}\n\n"
            f"**Alternative Positions:**\n{positions}\n\n"
            f"**Risks:**\n{risks}\n\n"
            f"**Conclusion:**\n{analysis.conclusion}\n\n"
            "Would you like me to:\n"
            "1. Draft the formal tax opinion\n"
            "2. Explore a specific issue in more detail\n"
            "3. Evaluate alternative positions"
        )

        return ChatResponse(
            message=message,
            phase=WorkflowPhase.DRAFTING,
            suggestions=["Draft opinion", "Explore specific issue", "Evaluate alternatives"],
            workflow_state=WorkflowState(
                phase=WorkflowPhase.DRAFTING,
                completeness=85,
                facts_established=True,
                research_complete=True,
                analysis_complete=True,
            ),
            metadata={"analysis": analysis},
        )

    async def _handle_drafting_phase(self, turn: Turn) -> ChatResponse:
        message = (
            "I'm ready to draft the formal tax opinion. This will create structured sections:\n\n"
            "1. **Facts** - Organized presentation of relevant facts\n"
            "2. **Issue** - Clear statement of the tax question\n"
            "3. **Law** - Applicable statutory provisions and case law\n"
            "4. **Application** - Analysis applying law to facts\n"
            "5. **Conclusion** - Final position with qualifications\n\n"
            "Would you like me to:\n"
            "1. Draft all sections now\n"
            "2. Draft one section at a time for your review\n"
            "3. Customize the structure"
        )

        return ChatResponse(
            message=message,
            phase=WorkflowPhase.DRAFTING,
            suggestions=["Draft all sections", "Draft section by section", "Customize structure"],
            workflow_state=WorkflowState(
                phase=WorkflowPhase.DRAFTING,
                completeness=90,
                facts_established=True,
                research_complete=True,
                analysis_complete=True,
            ),
        )

    async def _handle_review_phase(self, turn: Turn) -> ChatResponse:
        message = (
            "The opinion draft is complete and ready for review. I can:\n\n"
            "1. **Perform Quality Review** - Comprehensive check of completeness, coherence, and logic\n"
            "2. **Check Citations** - Verify all legal citations are proper\n"
            "3. **Suggest Improvements** - Identify areas for enhancement\n"
            "4. **Final Quality Check** - Confirm readiness for export\n\n"
            "What would you like me to do?"
        )

        return ChatResponse(
            message=message,
            phase=WorkflowPhase.REVIEW,
            suggestions=["Quality review", "Check citations", "Suggest improvements", "Final check"],
            workflow_state=WorkflowState(
                phase=WorkflowPhase.REVIEW,
                completeness=95,
                facts_established=True,
                research_complete=True,
                analysis_complete=True,
                draft_complete=True,
            ),
        )

    # ------------------------------------------------------------------
    # Intent handlers
    # ------------------------------------------------------------------

    async def _handle_research_request(self, turn: Turn) -> ChatResponse:
        query = extract_search_query(turn.message)
        logger.info(f"Executing document search for draft {turn.draft_id}: '{truncate(query)}'")

        result = await self.research.search_documents(turn.draft_id, query)

        if result.sources:
            excerpts = "\n".join(f"- {s.file_name} ({s.category}): {s.excerpt}" for s in result.sources)
            message = f"**Search Results:**\n\n{result.results}\n\n**Sources:**\n{excerpts}"
        else:
            logger.warning(f"No documents found for draft {turn.draft_id}")
            message = (
                "I couldn't find any relevant information in the uploaded documents. Please ensure:\n\n"
                "1. Documents are uploaded to this draft\n"
                "2. Documents have finished indexing\n"
                "3. You're asking about content that exists in the documents\n\n"
                f"Current draft ID: {turn.draft_id}"
            )

        phase = await self.determine_phase(turn.history)
        workflow_state = await self.get_workflow_state(turn.history, phase)

        return ChatResponse(
            message=message,
            phase=phase,
            sources=[
                Source(document_id=index, file_name=s.file_name, category=s.category)
                for index, s in enumerate(result.sources)
            ],
            workflow_state=workflow_state,
        )

    async def _handle_draft_request(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=(
                "I'll begin drafting the opinion sections. They will be available as individual "
                "sections that you can review and edit."
            ),
            phase=WorkflowPhase.DRAFTING,
            workflow_state=WorkflowState(
                phase=WorkflowPhase.DRAFTING,
                completeness=90,
                facts_established=True,
                research_complete=True,
                analysis_complete=True,
            ),
            metadata={"action": "start_drafting"},
        )

    async def _handle_review_request(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=(
                "I'll review the opinion draft for quality and completeness. The review results "
                "will help identify any areas that need improvement before finalizing."
            ),
            phase=WorkflowPhase.REVIEW,
            workflow_state=WorkflowState(
                phase=WorkflowPhase.REVIEW,
                completeness=95,
                facts_established=True,
                research_complete=True,
                analysis_complete=True,
                draft_complete=True,
            ),
            metadata={"action": "start_review"},
        )

    async def _handle_general_query(self, turn: Turn) -> ChatResponse:
        phase = await self.determine_phase(turn.history)
        workflow_state = await self.get_workflow_state(turn.history, phase)

        return ChatResponse(
            message=(
                "I'm here to help you develop a comprehensive tax opinion. "
                f"We're currently in the {phase.value} phase. How can I assist you?"
            ),
            phase=phase,
            suggestions=["Continue with current phase", "Ask a specific question", "Get workflow status"],
            workflow_state=workflow_state,
        )
