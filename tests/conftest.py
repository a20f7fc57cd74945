"""
Pytest Configuration and Fixtures.

Stores, retrieval and agents are the real components. Only the chat model
is replaced, by ScriptedLLM, which answers according to the system prompt
it receives so tests can script each agent's reply. Embeddings come from
LlamaIndex's MockEmbedding so ChromaDB runs without downloading a model.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
from llama_index.core.embeddings import MockEmbedding
from llama_index.core.llms import ChatMessage, ChatResponse, MessageRole

from src.agents import (
    AgentOrchestrator,
    AnalysisAgent,
    DraftingAgent,
    GenerationService,
    InterviewAgent,
    ResearchAgent,
    ReviewAgent,
    SectionGenerator,
)
from src.ingestion.schemas import ChunkMetadata, DocumentChunk
from src.knowledge import OpinionStore, VectorStore, VectorStoreConfig


# ============================================================================
# System prompt markers (substring of each agent's system instruction)
# ============================================================================

QUESTION = "fact-finding interview"
SUMMARY = "summarising the facts"
COMPLETENESS = "You assess whether enough factual information"
RESEARCH = "tax research specialist"
ANALYSIS = "senior tax analyst"
DRAFT_FACTS = "drafting the Facts section"
DRAFT_ISSUE = "drafting the Issue section"
DRAFT_LAW = "drafting the Law section"
DRAFT_APPLICATION = "drafting the Application section"
DRAFT_CONCLUSION = "drafting the Conclusion section"
OPINION_REVIEW = "senior tax reviewer"
SECTION_REVIEW = "evaluating individual sections"
CITATIONS = "reviewing legal citations"
IMPROVEMENTS = "expert editor"
FINAL_CHECK = "final quality check"


# ============================================================================
# Canned replies
# ============================================================================

def completeness_json(completeness: int, ready: bool) -> str:
    return json.dumps({
        "completeness": completeness,
        "missingCritical": [] if ready else ["Date of disposal"],
        "missingDesirable": [],
        "readyToProceed": ready,
    })


READY = completeness_json(90, True)
NOT_READY = completeness_json(40, False)

RESEARCH_JSON = json.dumps({
    "relevantLaw": ["Section 38 - capital gains", "Section 40 - base cost"],
    "documentFindings": "The assessment treats the disposal as revenue in nature.",
    "precedents": ["CIR v Stott - intention at acquisition"],
    "additionalResearchNeeded": [],
})

ANALYSIS_JSON = json.dumps({
    "mainIssues": ["Capital or revenue nature of the share disposal"],
    "legalAnalysis": "The shares were held for eight years as a long-term investment.",
    "alternativePositions": [
        {
            "position": "Disposal is capital",
            "likelihood": "high",
            "strengths": ["Long holding period"],
            "weaknesses": ["Some dealing activity"],
        }
    ],
    "risks": [
        {"severity": "medium", "risk": "Revenue may argue a scheme of profit-making", "mitigation": "Board minutes"}
    ],
    "conclusion": "The gain is more likely than not capital in nature.",
})


def section_json(title: str, content: str) -> str:
    return json.dumps({"title": title, "content": content, "citations": []})


REVIEW_JSON = json.dumps({
    "overallScore": 82,
    "completeness": {"score": 85, "missingElements": []},
    "coherence": {"score": 80, "issues": []},
    "citations": {"score": 78, "issues": ["Cite the Act in full on first use"]},
    "logic": {"score": 84, "gaps": []},
    "recommendations": ["Add the date of acquisition"],
    "readyForClient": True,
})

QUALITY_JSON = json.dumps({
    "passesCheck": True,
    "criticalIssues": [],
    "warnings": ["Minor formatting"],
    "recommendations": [],
})


# ============================================================================
# Scripted chat model
# ============================================================================

@dataclass
class LLMCall:
    """One recorded chat call."""

    system: str
    prompt: str
    temperature: float | None


class ScriptedLLM:
    """
    Chat model double answering by system prompt.

    Replies registered for a marker are consumed in order; the last one
    repeats. A reply that is an exception is raised instead of returned.
    """

    def __init__(self, default: str = "OK") -> None:
        self.default = default
        self.rules: list[tuple[str, list[Any]]] = []
        self.calls: list[LLMCall] = []

    def on(self, marker: str, *replies: Any) -> "ScriptedLLM":
        self.rules.insert(0, (marker, list(replies)))
        return self

    def calls_for(self, marker: str) -> list[LLMCall]:
        return [call for call in self.calls if marker in call.system]

    async def achat(self, messages: list[ChatMessage], **kwargs: Any) -> ChatResponse:
        system = messages[0].content or ""
        prompt = messages[-1].content or ""
        self.calls.append(LLMCall(system=system, prompt=prompt, temperature=kwargs.get("temperature")))

        reply: Any = self.default
        for marker, replies in self.rules:
            if marker in system:
                reply = replies.pop(0) if len(replies) > 1 else replies[0]
                break

        if isinstance(reply, Exception):
            raise reply
        return ChatResponse(message=ChatMessage(role=MessageRole.ASSISTANT, content=reply))


# ============================================================================
# Chunk helper
# ============================================================================

def make_chunk(
    content: str,
    draft_id: int,
    document_id: int,
    file_name: str,
    category: str = "general",
    index: int = 0,
) -> DocumentChunk:
    return DocumentChunk(
        content=content,
        metadata=ChunkMetadata(
            chunk_id=f"{document_id}_{index}",
            document_id=document_id,
            draft_id=draft_id,
            file_name=file_name,
            category=category,
            chunk_index=index,
            char_start=0,
            char_end=len(content),
        ),
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def generation(llm: ScriptedLLM) -> GenerationService:
    return GenerationService(llm=llm)


@pytest.fixture
def store() -> OpinionStore:
    """In-memory opinion store."""
    return OpinionStore()


@pytest.fixture
def embed_model() -> MockEmbedding:
    return MockEmbedding(embed_dim=8)


@pytest.fixture
def temp_chroma_dir(tmp_path: Path) -> Path:
    """Temporary directory for ChromaDB."""
    chroma_dir = tmp_path / "chroma"
    chroma_dir.mkdir()
    return chroma_dir


@pytest.fixture
def vector_store(embed_model: MockEmbedding, temp_chroma_dir: Path) -> VectorStore:
    """Create a real VectorStore for testing."""
    config = VectorStoreConfig(
        persist_directory=temp_chroma_dir,
        collection_name=f"test_{uuid4().hex[:8]}",
    )
    return VectorStore(embed_model, config)


@pytest.fixture
def sample_chunks() -> list[DocumentChunk]:
    """Chunks from two documents on draft 1 and one on draft 2."""
    return [
        make_chunk(
            "The revenue authority assessed the share disposal as ordinary income.",
            draft_id=1, document_id=100, file_name="assessment.pdf", category="assessment",
        ),
        make_chunk(
            "The shares were acquired in 2015 and held as a long-term investment.",
            draft_id=1, document_id=101, file_name="board_minutes.txt", category="correspondence",
        ),
        make_chunk(
            "Unrelated lease agreement for office premises.",
            draft_id=2, document_id=200, file_name="lease.txt",
        ),
    ]


@pytest.fixture
def populated_vector_store(vector_store: VectorStore, sample_chunks: list[DocumentChunk]) -> VectorStore:
    vector_store.add_chunks(sample_chunks)
    return vector_store


@pytest.fixture
def interview(generation: GenerationService) -> InterviewAgent:
    return InterviewAgent(generation)


@pytest.fixture
def research(generation: GenerationService, vector_store: VectorStore) -> ResearchAgent:
    return ResearchAgent(generation, vector_store)


@pytest.fixture
def analysis(generation: GenerationService) -> AnalysisAgent:
    return AnalysisAgent(generation)


@pytest.fixture
def drafting(generation: GenerationService) -> DraftingAgent:
    return DraftingAgent(generation)


@pytest.fixture
def review(generation: GenerationService) -> ReviewAgent:
    return ReviewAgent(generation)


@pytest.fixture
def orchestrator(interview, research, analysis, drafting) -> AgentOrchestrator:
    return AgentOrchestrator(interview, research, analysis, drafting)


@pytest.fixture
def section_generator(store, interview, research, analysis, drafting) -> SectionGenerator:
    return SectionGenerator(store, interview, research, analysis, drafting)
