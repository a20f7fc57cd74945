"""
Agents Layer - Opinion Drafting Workflow.

Specialised agents for each stage of a tax opinion:
1. Interview Agent - gathers the facts
2. Research Agent - finds the law and searches the draft's documents
3. Analysis Agent - assesses the tax position
4. Drafting Agent - writes the opinion sections
5. Review Agent - checks quality before delivery

The Orchestrator routes conversation turns between them; the Section
Generator drafts one section at a time through a short Q&A.
"""

from src.agents.analysis import AnalysisAgent, AnalysisError
from src.agents.drafting import DraftingAgent, DraftingError
from src.agents.generation import (
    GenerationError,
    GenerationService,
    Parsed,
    ParseFailure,
    parse_structured,
)
from src.agents.interview import InterviewAgent
from src.agents.orchestrator import AgentOrchestrator, OrchestrationError
from src.agents.research import ResearchAgent, ResearchError
from src.agents.review import ReviewAgent, ReviewError, join_sections
from src.agents.schemas import (
    ChatResponse,
    CompletenessAssessment,
    DocumentFinding,
    DraftedSection,
    ImprovementFocus,
    ResearchFindings,
    ReviewFeedback,
    SectionAnswer,
    SectionGenerationState,
    SectionStart,
    SectionType,
    TaxAnalysis,
    WorkflowPhase,
    WorkflowState,
)
from src.agents.section_generator import SectionGenerator, SectionStateError, section_title

__all__ = [
    # Agents
    "InterviewAgent",
    "ResearchAgent",
    "AnalysisAgent",
    "DraftingAgent",
    "ReviewAgent",
    "SectionGenerator",
    "AgentOrchestrator",
    # Generation
    "GenerationService",
    "Parsed",
    "ParseFailure",
    "parse_structured",
    # Errors
    "GenerationError",
    "ResearchError",
    "AnalysisError",
    "DraftingError",
    "ReviewError",
    "SectionStateError",
    "OrchestrationError",
    # Helpers
    "join_sections",
    "section_title",
    # Schemas
    "ChatResponse",
    "CompletenessAssessment",
    "DocumentFinding",
    "DraftedSection",
    "ImprovementFocus",
    "ResearchFindings",
    "ReviewFeedback",
    "SectionAnswer",
    "SectionGenerationState",
    "SectionStart",
    "SectionType",
    "TaxAnalysis",
    "WorkflowPhase",
    "WorkflowState",
]
