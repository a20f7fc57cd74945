"""
Vector Store - ChromaDB Integration.

Semantic search over document chunks, scoped per draft.
This is the "retrieval" part of RAG.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings
from llama_index.core.embeddings import BaseEmbedding
from tenacity import retry, stop_after_attempt, wait_exponential

from src.ingestion.schemas import DocumentChunk
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)


class VectorStoreError(Exception):
    """Raised when vector store operations fail."""
    pass


@dataclass
class VectorStoreConfig:
    """Configuration for the vector store."""

    persist_directory: Path = Path("./data/chroma")
    collection_name: str = "opinion_documents"
    distance_metric: str = "cosine"  # cosine, l2, ip


@dataclass
class SearchResult:
    """A single search result from the vector store."""

    chunk_id: str
    document_id: int
    content: str
    metadata: dict[str, Any]
    distance: float

    @property
    def similarity(self) -> float:
        """Convert distance to similarity score (0-1)."""
        return max(0.0, 1.0 - self.distance)

    @property
    def file_name(self) -> str:
        return str(self.metadata.get("file_name", "unknown"))

    @property
    def category(self) -> str:
        return str(self.metadata.get("category", "general"))


class VectorStore:
    """
    ChromaDB-based vector store for draft-scoped semantic search.

    Embeddings are computed with a LlamaIndex embedding model so the same
    model backs ingestion and querying.

    Usage:
        store = VectorStore(embed_model, config)
        store.add_chunks(chunks)
        results = store.search("capital gains on share disposal", draft_id=42)
    """

    def __init__(
        self,
        embed_model: BaseEmbedding,
        config: VectorStoreConfig | None = None,
    ) -> None:
        """
        Initialize the vector store.

        Args:
            embed_model: LlamaIndex embedding model
            config: Vector store configuration
        """
        self.embed_model = embed_model
        self.config = config or VectorStoreConfig()
        self._client: chromadb.ClientAPI | None = None
        self._collection: chromadb.Collection | None = None

    def _ensure_initialized(self) -> None:
        """Lazy initialization of ChromaDB client and collection."""
        if self._client is None:
            logger.info(f"Initializing ChromaDB at {self.config.persist_directory}")

            self.config.persist_directory.mkdir(parents=True, exist_ok=True)

            self._client = chromadb.PersistentClient(
                path=str(self.config.persist_directory),
                settings=ChromaSettings(
                    anonymized_telemetry=False,
                    allow_reset=True,
                ),
            )

            self._collection = self._client.get_or_create_collection(
                name=self.config.collection_name,
                metadata={"hnsw:space": self.config.distance_metric},
            )

            logger.info(
                f"ChromaDB initialized. Collection '{self.config.collection_name}' "
                f"has {self._collection.count()} chunks"
            )

    @property
    def collection(self) -> chromadb.Collection:
        """Get the ChromaDB collection."""
        self._ensure_initialized()
        assert self._collection is not None
        return self._collection

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
    def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        return self.embed_model.get_text_embedding_batch(texts)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
    def _embed_query(self, query: str) -> list[float]:
        return self.embed_model.get_query_embedding(query)

    def add_chunks(self, chunks: list[DocumentChunk]) -> int:
        """
        Embed and add document chunks to the vector store.

        Args:
            chunks: List of document chunks to add

        Returns:
            Number of chunks added
        """
        if not chunks:
            return 0

        logger.info(f"Adding {len(chunks)} chunks to vector store")

        ids = [chunk.metadata.chunk_id for chunk in chunks]
        documents = [chunk.content for chunk in chunks]
        metadatas = [
            {
                "draft_id": chunk.metadata.draft_id,
                "document_id": chunk.metadata.document_id,
                "file_name": chunk.metadata.file_name,
                "category": chunk.metadata.category,
                "chunk_index": chunk.metadata.chunk_index,
                "char_start": chunk.metadata.char_start,
                "char_end": chunk.metadata.char_end,
            }
            for chunk in chunks
        ]

        try:
            embeddings = self._embed_texts(documents)
            self.collection.add(
                ids=ids,
                documents=documents,
                metadatas=metadatas,
                embeddings=embeddings,
            )
        except Exception as e:
            logger.error(f"Failed to add chunks: {e}")
            raise VectorStoreError(f"Failed to add chunks: {e}") from e

        logger.info(f"Successfully added {len(chunks)} chunks")
        return len(chunks)

    def search(
        self,
        query: str,
        draft_id: int,
        top_k: int = 5,
        category: str | None = None,
    ) -> list[SearchResult]:
        """
        Search a draft's chunks for passages similar to the query.

        Args:
            query: Search query text
            draft_id: Only chunks uploaded to this draft are considered
            top_k: Number of results to return
            category: Optional document category filter

        Returns:
            List of SearchResult objects, most similar first
        """
        logger.debug(f"Searching draft {draft_id} for: '{truncate(query, 50)}' (top_k={top_k})")

        if self.count() == 0:
            return []

        where: dict[str, Any] = {"draft_id": {"$eq": draft_id}}
        if category:
            where = {"$and": [where, {"category": {"$eq": category}}]}

        try:
            results = self.collection.query(
                query_embeddings=[self._embed_query(query)],
                n_results=top_k,
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise VectorStoreError(f"Search failed: {e}") from e

        search_results: list[SearchResult] = []

        if results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                search_results.append(SearchResult(
                    chunk_id=chunk_id,
                    document_id=int(metadata.get("document_id", 0)),
                    content=results["documents"][0][i] if results["documents"] else "",
                    metadata=dict(metadata),
                    distance=results["distances"][0][i] if results["distances"] else 0.0,
                ))

        logger.debug(f"Found {len(search_results)} results")
        return search_results

    def delete_document(self, document_id: int, draft_id: int | None = None) -> int:
        """
        Delete all chunks for a document, optionally only within one draft.

        Returns:
            Number of chunks deleted
        """
        where: dict[str, Any] = {"document_id": {"$eq": document_id}}
        if draft_id is not None:
            where = {"$and": [where, {"draft_id": {"$eq": draft_id}}]}

        try:
            results = self.collection.get(where=where, include=[])

            if results["ids"]:
                self.collection.delete(ids=results["ids"])
                logger.info(f"Deleted {len(results['ids'])} chunks for document {document_id}")
                return len(results["ids"])

            return 0

        except Exception as e:
            logger.error(f"Failed to delete document {document_id}: {e}")
            raise VectorStoreError(f"Delete failed: {e}") from e

    def count(self) -> int:
        """Get total number of chunks in the store."""
        return self.collection.count()
