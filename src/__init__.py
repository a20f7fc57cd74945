"""
Opinion Drafting Assistant - Source Package.

This package contains the core functionality for:
- Document ingestion and chunking
- Vector store and opinion store management
- Agent-based opinion drafting
- Utility functions
"""

from src.agents import (
    AgentOrchestrator,
    ReviewAgent,
    SectionGenerator,
)
from src.ingestion import DocumentChunker, DocumentLoader
from src.knowledge import OpinionStore, VectorStore

__all__ = [
    # Ingestion
    "DocumentLoader",
    "DocumentChunker",
    # Knowledge
    "VectorStore",
    "OpinionStore",
    # Agents
    "AgentOrchestrator",
    "SectionGenerator",
    "ReviewAgent",
]
