"""
Research Agent - Law and Document Research.

Retrieves excerpts from the documents uploaded to a draft and asks the
model to identify the applicable law, precedents and open questions.
"""

from src.agents.generation import GenerationService, Parsed, ParseFailure, parse_structured
from src.agents.schemas import Citation, DocumentSearchResult, DocumentSource, ResearchFindings
from src.knowledge.vector_store import SearchResult, VectorStore, VectorStoreError
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)

NO_DOCUMENTS_FOUND = "No relevant documents found."
EXCERPT_LENGTH = 300
MAX_QUERY_LENGTH = 1000


class ResearchError(Exception):
    """Raised when research cannot be completed."""
    pass


RESEARCH_SYSTEM_PROMPT = """You are a tax research specialist preparing the research file for a formal tax opinion.

<research_scope>
- Identify the statutory provisions that govern the issue
- Identify relevant case law, rulings and interpretation notes
- Summarise what the client's documents establish
- Flag anything that still needs to be researched
</research_scope>

Respond ONLY with JSON:
{
  "relevantLaw": ["Section reference and short description"],
  "documentFindings": "What the uploaded documents show, with file names",
  "precedents": ["Case or ruling and why it matters"],
  "additionalResearchNeeded": ["Open research question"]
}"""

RESEARCH_PROMPT = """<tax_issue>
{issue}
</tax_issue>

<facts>
{facts}
</facts>

{documents}

<task>
Research the tax issue. Base document findings only on the documents provided.
</task>"""


def build_context(results: list[SearchResult]) -> str:
    """Render search results as a tagged block for a prompt."""
    if not results:
        return NO_DOCUMENTS_FOUND

    parts = ["<relevant_documents>"]
    for index, result in enumerate(results, start=1):
        parts.append(
            f'\n<document index="{index}" source="{result.file_name}" '
            f'category="{result.category}" relevance_score="{result.similarity:.3f}">\n'
            f"{result.content}\n</document>"
        )
    parts.append("\n</relevant_documents>")
    return "\n".join(parts)


class ResearchAgent:
    """
    Agent that researches a tax issue against the law and the draft's documents.

    Usage:
        agent = ResearchAgent(generation, vector_store)
        findings = await agent.conduct_research(draft_id, issue, facts)
    """

    def __init__(
        self,
        generation: GenerationService,
        vector_store: VectorStore,
        top_k: int = 5,
    ) -> None:
        self.generation = generation
        self.vector_store = vector_store
        self.top_k = top_k

    def _retrieve(self, draft_id: int, query: str) -> list[SearchResult]:
        try:
            return self.vector_store.search(query[:MAX_QUERY_LENGTH], draft_id=draft_id, top_k=self.top_k)
        except VectorStoreError as e:
            raise ResearchError(f"Document search failed for draft {draft_id}: {e}") from e

    async def search_documents(self, draft_id: int, query: str) -> DocumentSearchResult:
        """
        Search the documents uploaded to one draft.

        Zero matches is not an error: the result carries no sources and a
        "No relevant documents found." text.

        Raises:
            ResearchError: If retrieval itself fails
        """
        logger.info(f"Searching documents for draft {draft_id}: '{truncate(query)}'")
        results = self._retrieve(draft_id, query)

        if not results:
            logger.warning(f"No documents found for draft {draft_id}")
            return DocumentSearchResult(results=NO_DOCUMENTS_FOUND)

        sources = [
            DocumentSource(
                file_name=result.file_name,
                category=result.category,
                excerpt=result.content[:EXCERPT_LENGTH],
            )
            for result in results
        ]
        logger.info(f"Search returned {len(sources)} sources: {', '.join(s.file_name for s in sources)}")

        return DocumentSearchResult(results=build_context(results), sources=sources)

    async def conduct_research(self, draft_id: int, issue: str, facts: str) -> ResearchFindings:
        """
        Research the issue using the draft's documents as evidence.

        Raises:
            ResearchError: If retrieval fails or the reply is malformed
        """
        results = self._retrieve(draft_id, f"{issue} {facts}")
        logger.info(f"Researching draft {draft_id} with {len(results)} document excerpts")

        prompt = RESEARCH_PROMPT.format(
            issue=issue,
            facts=facts,
            documents=build_context(results),
        )
        text = await self.generation.invoke(RESEARCH_SYSTEM_PROMPT, prompt, temperature=0.3)

        match parse_structured(text, ResearchFindings):
            case Parsed(findings):
                return findings.model_copy(update={"citations": self._citations(results)})
            case ParseFailure(error, raw):
                logger.error(f"Malformed research output: {truncate(raw)}")
                raise ResearchError(f"Failed to parse research findings: {error}")

    def _citations(self, results: list[SearchResult]) -> list[Citation]:
        """One citation per retrieved document, first occurrence wins."""
        seen: set[str] = set()
        citations: list[Citation] = []
        for result in results:
            if result.file_name in seen:
                continue
            seen.add(result.file_name)
            citations.append(Citation(
                document_id=result.document_id,
                file_name=result.file_name,
                category=result.category,
            ))
        return citations
