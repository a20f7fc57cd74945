"""
Service Wiring.

Builds the store, retrieval and agent objects once and hands them to the
API through a FastAPI dependency (overridable in tests) and to the CLI
scripts directly.
"""

from dataclasses import dataclass
from functools import lru_cache
from uuid import uuid4

from llama_index.core.embeddings import BaseEmbedding

from app.config import Settings, get_settings
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
from src.ingestion import DocumentChunker, DocumentLoader
from src.knowledge import OpinionStore, VectorStore, VectorStoreConfig


@dataclass
class Services:
    """Everything the API and scripts need for one deployment."""

    settings: Settings
    store: OpinionStore
    vector_store: VectorStore
    loader: DocumentLoader
    orchestrator: AgentOrchestrator
    section_generator: SectionGenerator
    review: ReviewAgent


def new_document_id() -> int:
    """Random 31-bit id for an uploaded document."""
    return uuid4().int >> 97


def build_services(
    settings: Settings,
    generation: GenerationService | None = None,
    embed_model: BaseEmbedding | None = None,
    store: OpinionStore | None = None,
) -> Services:
    """
    Wire up all collaborators.

    Args:
        settings: Application settings
        generation: LLM access (defaults to the configured backend)
        embed_model: Embedding model (defaults to the configured backend)
        store: Opinion store (defaults to the JSON file in settings)
    """
    if embed_model is None:
        from src.utils.llm_factory import get_embedding_model
        embed_model = get_embedding_model()

    generation = generation or GenerationService()
    store = store or OpinionStore(persist_path=settings.opinion_store_path)
    vector_store = VectorStore(
        embed_model,
        VectorStoreConfig(
            persist_directory=settings.chroma_persist_dir,
            collection_name=settings.chroma_collection,
        ),
    )

    interview = InterviewAgent(generation)
    research = ResearchAgent(generation, vector_store, top_k=settings.search_top_k)
    analysis = AnalysisAgent(generation)
    drafting = DraftingAgent(generation)

    return Services(
        settings=settings,
        store=store,
        vector_store=vector_store,
        loader=DocumentLoader(DocumentChunker(settings.chunk_size, settings.chunk_overlap)),
        orchestrator=AgentOrchestrator(interview, research, analysis, drafting),
        section_generator=SectionGenerator(store, interview, research, analysis, drafting),
        review=ReviewAgent(generation),
    )


@lru_cache
def get_services() -> Services:
    """FastAPI dependency returning the process-wide services."""
    return build_services(get_settings())
