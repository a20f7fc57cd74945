"""
Ingestion Layer.

Text extraction and sentence-aware chunking of documents uploaded to a draft.
"""

from src.ingestion.chunker import DocumentChunker
from src.ingestion.document_loader import DocumentLoader, DocumentLoaderError
from src.ingestion.schemas import (
    ChunkMetadata,
    DocumentChunk,
    DocumentMetadata,
    DocumentType,
    LoadedDocument,
)

__all__ = [
    "DocumentLoader",
    "DocumentLoaderError",
    "DocumentChunker",
    "DocumentMetadata",
    "DocumentType",
    "DocumentChunk",
    "ChunkMetadata",
    "LoadedDocument",
]
