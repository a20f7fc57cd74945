"""
Pydantic Schemas for the Agent Layer.

Models for workflow state, agent outputs and the section drafting flow.
Models parsed from LLM output accept camelCase keys and expose snake_case
attributes.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


_METADATA_ADAPTER = TypeAdapter(dict[str, Any])


class LLMOutput(BaseModel):
    """Base for models validated from JSON produced by the LLM."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Workflow
# ============================================================================

class WorkflowPhase(str, Enum):
    """Stages of opinion development, in order."""

    INTERVIEW = "interview"
    RESEARCH = "research"
    ANALYSIS = "analysis"
    DRAFTING = "drafting"
    REVIEW = "review"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        """Position of the phase in the workflow (interview = 0)."""
        return list(WorkflowPhase).index(self)


class WorkflowState(BaseModel):
    """Progress snapshot reported with every chat response."""

    phase: WorkflowPhase
    completeness: int = Field(..., ge=0, le=100)
    facts_established: bool = False
    research_complete: bool = False
    analysis_complete: bool = False
    draft_complete: bool = False
    review_complete: bool = False
    ready_for_export: bool = False

    @classmethod
    def for_phase(
        cls,
        phase: WorkflowPhase,
        completeness: int,
        facts_established: bool,
    ) -> "WorkflowState":
        """Build a state whose stage flags follow from the phase."""
        return cls(
            phase=phase,
            completeness=completeness,
            facts_established=facts_established,
            research_complete=phase.rank >= WorkflowPhase.ANALYSIS.rank,
            analysis_complete=phase.rank >= WorkflowPhase.DRAFTING.rank,
            draft_complete=phase.rank >= WorkflowPhase.REVIEW.rank,
            review_complete=phase is WorkflowPhase.COMPLETE,
            ready_for_export=phase is WorkflowPhase.COMPLETE,
        )


class Source(BaseModel):
    """A document cited in a chat response."""

    document_id: int
    file_name: str
    category: str


class ChatResponse(BaseModel):
    """Envelope returned for every conversation turn."""

    message: str
    phase: WorkflowPhase
    suggestions: list[str] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    workflow_state: WorkflowState
    metadata: dict[str, Any] | None = None

    def metadata_json(self) -> str | None:
        """Serialize metadata for storage on the assistant message."""
        if self.metadata is None:
            return None
        return _METADATA_ADAPTER.dump_json(self.metadata).decode()


# ============================================================================
# Interview
# ============================================================================

class CompletenessAssessment(LLMOutput):
    """How far fact-finding has progressed."""

    completeness: int = Field(..., ge=0, le=100)
    missing_critical: list[str] = Field(default_factory=list)
    missing_desirable: list[str] = Field(default_factory=list)
    ready_to_proceed: bool = False

    @classmethod
    def fallback(cls) -> "CompletenessAssessment":
        """Assessment used when the model output cannot be trusted."""
        return cls(
            completeness=50,
            missing_critical=["manual review needed"],
            missing_desirable=[],
            ready_to_proceed=False,
        )


# ============================================================================
# Research
# ============================================================================

class Citation(LLMOutput):
    """A document relied on by research findings."""

    document_id: int = 0
    file_name: str
    category: str = "general"


class ResearchFindings(LLMOutput):
    """Output of a research pass over the law and the draft's documents."""

    relevant_law: list[str] = Field(default_factory=list)
    document_findings: str = ""
    precedents: list[str] = Field(default_factory=list)
    additional_research_needed: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)

    def as_text(self) -> str:
        """Compact rendering used as input to the analysis step."""
        return (
            f"Law: {'; '.join(self.relevant_law)}\n"
            f"Documents: {self.document_findings}\n"
            f"Precedents: {'; '.join(self.precedents)}"
        )


class DocumentSource(BaseModel):
    """One matching excerpt from a document search."""

    file_name: str
    category: str
    excerpt: str


class DocumentSearchResult(BaseModel):
    """Result of searching a draft's uploaded documents."""

    results: str
    sources: list[DocumentSource] = Field(default_factory=list)


# ============================================================================
# Analysis
# ============================================================================

class AlternativePosition(LLMOutput):
    """A position the taxpayer could take, with its merits."""

    position: str
    likelihood: str = Field(..., description="e.g. high, medium, low")
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class Risk(LLMOutput):
    """A risk identified in the analysis."""

    severity: str = Field(..., description="e.g. high, medium, low")
    risk: str
    mitigation: str = ""


class TaxAnalysis(LLMOutput):
    """Structured analysis of the tax position."""

    main_issues: list[str] = Field(default_factory=list)
    legal_analysis: str
    alternative_positions: list[AlternativePosition] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    conclusion: str

    def risks_text(self) -> str:
        """Risks as plain lines, for drafting the conclusion."""
        return "\n".join(
            f"[{risk.severity.upper()}] {risk.risk} (mitigation: {risk.mitigation})"
            for risk in self.risks
        )


# ============================================================================
# Drafting
# ============================================================================

class SectionType(str, Enum):
    """Section types with dedicated handling."""

    FACTS = "facts"
    ISSUE = "issue"
    LAW = "law"
    ANALYSIS = "analysis"
    APPLICATION = "application"
    CONCLUSION = "conclusion"
    CUSTOM = "custom"


class SectionContent(LLMOutput):
    """A drafted section as returned by the model."""

    title: str
    content: str
    citations: list[str] = Field(default_factory=list)


class DraftedSection(BaseModel):
    """A section of a complete opinion draft, with its position."""

    section_type: SectionType
    title: str
    content: str
    order: int = Field(..., ge=1)


# ============================================================================
# Review
# ============================================================================

class ScoredIssues(LLMOutput):
    score: int = Field(..., ge=0, le=100)
    issues: list[str] = Field(default_factory=list)


class CompletenessScore(LLMOutput):
    score: int = Field(..., ge=0, le=100)
    missing_elements: list[str] = Field(default_factory=list)


class LogicScore(LLMOutput):
    score: int = Field(..., ge=0, le=100)
    gaps: list[str] = Field(default_factory=list)


class ReviewFeedback(LLMOutput):
    """Quality review of a full opinion draft."""

    overall_score: int = Field(..., ge=0, le=100)
    completeness: CompletenessScore
    coherence: ScoredIssues
    citations: ScoredIssues
    logic: LogicScore
    recommendations: list[str] = Field(default_factory=list)
    ready_for_client: bool = False


class SectionReview(LLMOutput):
    """Review of a single section."""

    score: int = Field(..., ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class CitationCheck(LLMOutput):
    """Citations found in a text and problems with them."""

    citations_found: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class QualityCheck(LLMOutput):
    """Final go/no-go check before an opinion is exported."""

    passes_check: bool
    critical_issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ImprovementFocus(str, Enum):
    """Aspect to target when suggesting improvements."""

    CLARITY = "clarity"
    COMPLETENESS = "completeness"
    LOGIC = "logic"
    TONE = "tone"


# ============================================================================
# Section generation flow
# ============================================================================

class QAPair(BaseModel):
    """A question asked during section drafting and its answer, if given."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str | None = None


class DocumentFinding(BaseModel):
    """A document excerpt gathered while drafting a section."""

    model_config = ConfigDict(frozen=True)

    content: str
    file_name: str
    category: str
    score: float = Field(default=0.8, ge=0.0, le=1.0)


class SectionGenerationState(BaseModel):
    """
    State of one interactive section thread.

    Treated as a value: operations return an updated copy rather than
    modifying the instance they were given.
    """

    model_config = ConfigDict(frozen=True)

    section_type: str
    custom_title: str | None = None
    questions: tuple[QAPair, ...] = ()
    current_question_index: int = Field(default=0, ge=0)
    is_complete: bool = False
    generation_id: str
    document_findings: tuple[DocumentFinding, ...] = ()

    @property
    def normalized_type(self) -> str:
        return self.section_type.lower()

    @property
    def answered(self) -> list[QAPair]:
        """Questions that have been answered, in order."""
        return [qa for qa in self.questions if qa.answer]


class SectionStart(BaseModel):
    """Opening question of a section thread and the new state."""

    question: str
    state: SectionGenerationState


class SectionAnswer(BaseModel):
    """Outcome of answering a section question."""

    question: str | None = None
    complete: bool
    state: SectionGenerationState
