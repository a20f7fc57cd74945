"""
Document Loader - Text Extraction for Uploaded Documents.

Plain text and markdown are read directly. PDFs go through Unstructured,
which is an optional extra (pip install unstructured[pdf]).
"""

from pathlib import Path

from src.ingestion.chunker import DocumentChunker
from src.ingestion.schemas import DocumentMetadata, DocumentType, LoadedDocument
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DocumentLoaderError(Exception):
    """Raised when a document cannot be loaded."""

    pass


class DocumentLoader:
    """
    Extracts text from uploaded files and chunks it for indexing.

    Usage:
        loader = DocumentLoader(DocumentChunker())
        loaded = loader.load(Path("assessment.pdf"), draft_id=42, document_id=7)
        vector_store.add_chunks(loaded.chunks)
    """

    def __init__(self, chunker: DocumentChunker | None = None) -> None:
        self.chunker = chunker or DocumentChunker()

    def load(
        self,
        file_path: Path,
        draft_id: int,
        document_id: int,
        category: str = "general",
    ) -> LoadedDocument:
        """
        Load and chunk a file from disk.

        Raises:
            DocumentLoaderError: If the file is missing, unsupported or unreadable
        """
        if not file_path.exists():
            raise DocumentLoaderError(f"File not found: {file_path}")

        try:
            document_type = DocumentType.from_path(file_path)
        except ValueError as e:
            raise DocumentLoaderError(f"Unsupported file type: {file_path.suffix}") from e

        match document_type:
            case DocumentType.PDF:
                text = self._extract_pdf(file_path)
            case _:
                text = file_path.read_text(encoding="utf-8", errors="replace")

        return self.load_text(
            text,
            file_name=file_path.name,
            draft_id=draft_id,
            document_id=document_id,
            category=category,
            document_type=document_type,
        )

    def load_text(
        self,
        text: str,
        file_name: str,
        draft_id: int,
        document_id: int,
        category: str = "general",
        document_type: DocumentType = DocumentType.TEXT,
    ) -> LoadedDocument:
        """Chunk text that has already been extracted (e.g. an upload body)."""
        metadata = DocumentMetadata(
            document_id=document_id,
            draft_id=draft_id,
            file_name=file_name,
            category=category,
            document_type=document_type,
            num_chars=len(text),
        )

        errors: list[str] = []
        if not text.strip():
            errors.append("No text could be extracted")

        chunks = self.chunker.chunk(text, metadata)

        logger.info(
            f"Loaded {file_name} for draft {draft_id}: "
            f"{len(text)} chars, {len(chunks)} chunks"
        )

        return LoadedDocument(metadata=metadata, full_text=text, chunks=chunks, errors=errors)

    def _extract_pdf(self, file_path: Path) -> str:
        """Extract PDF text with Unstructured."""
        try:
            from unstructured.partition.pdf import partition_pdf
        except ImportError as e:
            raise DocumentLoaderError(
                "Unstructured not installed. Run: pip install unstructured[pdf]"
            ) from e

        logger.info(f"Parsing with Unstructured: {file_path.name}")

        try:
            elements = partition_pdf(filename=str(file_path), strategy="fast")
        except Exception as e:
            logger.error(f"Unstructured failed for {file_path.name}: {e}")
            raise DocumentLoaderError(f"Failed to parse {file_path.name}: {e}") from e

        return "\n\n".join(str(element) for element in elements)
