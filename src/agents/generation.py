"""
Generation Service - LLM Calls and Structured Output Parsing.

Every agent talks to the model through GenerationService.invoke, which
sends one system instruction and one user prompt and returns the raw
text. JSON replies are parsed into tagged results so each caller decides
explicitly what a malformed reply means for it.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from llama_index.core.llms import ChatMessage, MessageRole
from pydantic import TypeAdapter, ValidationError

from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)

T = TypeVar("T")


class GenerationError(Exception):
    """Raised when the language model call itself fails."""
    pass


class GenerationService:
    """
    Thin async wrapper around a LlamaIndex LLM.

    Usage:
        service = GenerationService()
        text = await service.invoke("You are ...", "Summarise ...", temperature=0.3)
    """

    def __init__(self, llm: Any = None) -> None:
        """
        Initialize the service.

        Args:
            llm: Optional LLM instance (defaults to the configured backend)
        """
        self._llm = llm

    @property
    def llm(self) -> Any:
        """Get LLM instance."""
        if self._llm is None:
            from src.utils.llm_factory import get_llm
            self._llm = get_llm()
        return self._llm

    async def invoke(
        self,
        system_instruction: str,
        prompt: str,
        temperature: float = 0.7,
    ) -> str:
        """
        Run one generation call.

        Raises:
            GenerationError: If the backend call fails
        """
        messages = [
            ChatMessage(role=MessageRole.SYSTEM, content=system_instruction),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]

        try:
            response = await self.llm.achat(messages, temperature=temperature)
        except Exception as e:
            logger.error(f"Generation failed: {e}")
            raise GenerationError(f"Generation failed: {e}") from e

        text = (response.message.content or "").strip()
        logger.debug(f"Generated {len(text)} chars: {truncate(text)}")
        return text


# ============================================================================
# Structured output
# ============================================================================

@dataclass(frozen=True)
class Parsed(Generic[T]):
    """A reply that validated against the expected shape."""

    value: T


@dataclass(frozen=True)
class ParseFailure:
    """A reply that could not be parsed; keeps the raw text for logging."""

    error: str
    raw: str


def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = text.strip()
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text


def parse_structured(text: str, shape: Any) -> Parsed[Any] | ParseFailure:
    """
    Parse model output as JSON of the given shape.

    Args:
        text: Raw model reply
        shape: A pydantic model or any type TypeAdapter accepts (e.g. list[str])

    Returns:
        Parsed with the validated value, or ParseFailure
    """
    try:
        value = TypeAdapter(shape).validate_json(strip_code_fences(text))
    except ValidationError as e:
        return ParseFailure(error=str(e), raw=text)
    return Parsed(value)
