"""
Pydantic Schemas for Ingestion Layer.

Type-safe models for loading and chunking documents attached to a draft.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class DocumentType(str, Enum):
    """Supported document types."""

    TEXT = "txt"
    MARKDOWN = "md"
    PDF = "pdf"

    @classmethod
    def from_path(cls, path: Path) -> "DocumentType":
        """Resolve the type from a file extension."""
        return cls(path.suffix.lower().lstrip("."))


class DocumentMetadata(BaseModel):
    """Metadata about a document uploaded to a draft."""

    document_id: int = Field(..., ge=0, description="Document identifier")
    draft_id: int = Field(..., description="Draft the document belongs to")
    file_name: str = Field(..., description="Original filename")
    category: str = Field(default="general", description="Category, e.g. assessment, correspondence")
    document_type: DocumentType = Field(...)
    num_chars: int = Field(default=0, ge=0, description="Length of extracted text")
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChunkMetadata(BaseModel):
    """Metadata for a document chunk."""

    chunk_id: str = Field(..., description="Stable id: <document_id>_<chunk_index>")
    document_id: int = Field(..., ge=0)
    draft_id: int = Field(...)
    file_name: str = Field(...)
    category: str = Field(default="general")
    chunk_index: int = Field(..., ge=0, description="Index of chunk in document")
    char_start: int = Field(..., ge=0, description="Character start position in full text")
    char_end: int = Field(..., ge=0, description="Character end position in full text")


class DocumentChunk(BaseModel):
    """A chunk of document text ready for embedding."""

    content: str = Field(..., min_length=1, description="Chunk text content")
    metadata: ChunkMetadata = Field(..., description="Chunk metadata")


class LoadedDocument(BaseModel):
    """Result of loading a document: text plus the chunks cut from it."""

    metadata: DocumentMetadata
    full_text: str = Field(..., description="Full extracted text")
    chunks: list[DocumentChunk] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether any text was extracted."""
        return len(self.full_text.strip()) > 0
