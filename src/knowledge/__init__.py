"""
Knowledge Layer.

Draft-scoped vector store for retrieval and the opinion store for the
conversation log and finished sections.
"""

from src.knowledge.opinion_store import OpinionStore, OpinionStoreError, SectionNotFoundError
from src.knowledge.schemas import (
    ConversationMessage,
    MessageRole,
    OpinionSection,
    format_transcript,
)
from src.knowledge.vector_store import (
    SearchResult,
    VectorStore,
    VectorStoreConfig,
    VectorStoreError,
)

__all__ = [
    # Stores
    "OpinionStore",
    "OpinionStoreError",
    "SectionNotFoundError",
    "VectorStore",
    "VectorStoreConfig",
    "VectorStoreError",
    "SearchResult",
    # Schemas
    "ConversationMessage",
    "MessageRole",
    "OpinionSection",
    "format_transcript",
]
