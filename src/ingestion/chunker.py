"""
Document Chunker - Sentence-Aware Splitting.

Splits extracted document text on sentence and paragraph boundaries so a
retrieved excerpt never ends halfway through a sentence.
"""

from llama_index.core.node_parser import SentenceSplitter

from src.ingestion.schemas import ChunkMetadata, DocumentChunk, DocumentMetadata
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DocumentChunker:
    """
    Sentence-aware document chunker.

    Usage:
        chunker = DocumentChunker(chunk_size=1000, chunk_overlap=200)
        chunks = chunker.chunk(text, metadata)
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        paragraph_separator: str = "\n\n",
    ) -> None:
        """
        Initialize chunker.

        Args:
            chunk_size: Target chunk size
            chunk_overlap: Overlap between chunks for context
            paragraph_separator: Separator between paragraphs
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.paragraph_separator = paragraph_separator

        self._splitter = SentenceSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            paragraph_separator=paragraph_separator,
            secondary_chunking_regex="[.!?]",
        )

    def chunk(self, text: str, doc_metadata: DocumentMetadata) -> list[DocumentChunk]:
        """
        Chunk document text into retrievable units.

        Args:
            text: Full extracted text
            doc_metadata: Metadata of the source document

        Returns:
            List of DocumentChunk with metadata
        """
        if not text.strip():
            logger.warning(f"Empty document: {doc_metadata.file_name}")
            return []

        try:
            text_splits = self._splitter.split_text(text)
        except Exception as e:
            logger.error(f"Splitter failed: {e}, falling back to paragraph split")
            text_splits = self._fallback_split(text)

        chunks: list[DocumentChunk] = []
        char_position = 0

        for chunk_text in text_splits:
            if not chunk_text.strip():
                continue

            try:
                char_start = text.index(chunk_text[:50], char_position)
            except ValueError:
                char_start = char_position

            char_end = char_start + len(chunk_text)
            char_position = char_start + 1

            index = len(chunks)
            chunks.append(DocumentChunk(
                content=chunk_text,
                metadata=ChunkMetadata(
                    chunk_id=f"{doc_metadata.document_id}_{index}",
                    document_id=doc_metadata.document_id,
                    draft_id=doc_metadata.draft_id,
                    file_name=doc_metadata.file_name,
                    category=doc_metadata.category,
                    chunk_index=index,
                    char_start=char_start,
                    char_end=char_end,
                ),
            ))

        logger.info(f"Created {len(chunks)} chunks from {doc_metadata.file_name}")
        return chunks

    def _fallback_split(self, text: str) -> list[str]:
        """Simple paragraph-based fallback splitter."""
        paragraphs = text.split(self.paragraph_separator)

        chunks: list[str] = []
        current_chunk: list[str] = []
        current_size = 0

        for para in paragraphs:
            if current_size + len(para) > self.chunk_size and current_chunk:
                chunks.append(self.paragraph_separator.join(current_chunk))
                # Keep last paragraph for overlap
                current_chunk = [current_chunk[-1]]
                current_size = len(current_chunk[0])

            current_chunk.append(para)
            current_size += len(para)

        if current_chunk:
            chunks.append(self.paragraph_separator.join(current_chunk))

        return chunks
