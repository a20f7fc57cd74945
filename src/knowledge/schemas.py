"""
Pydantic Schemas for the Knowledge Layer.

Record shapes for the persisted conversation log and section table.
These are the only persistence shapes the agents rely on.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """
    One entry of a draft's append-only message log.

    Top-level chat messages have no generation_id. Messages that belong to
    an interactive section Q&A thread carry the thread's generation_id and
    the section type being drafted.
    """

    id: int = Field(default=0, ge=0, description="Store-assigned identifier")
    draft_id: int = Field(..., description="Draft (thread) the message belongs to")
    role: MessageRole = Field(..., description="user or assistant")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: str | None = Field(
        default=None,
        description="Opaque metadata text, usually serialized JSON",
    )
    generation_id: str | None = Field(default=None, description="Section Q&A thread id")
    section_type: str | None = Field(default=None, description="Section being drafted")

    def transcript_line(self) -> str:
        """Role-prefixed line used when a history is flattened into a prompt."""
        return f"{self.role.value}: {self.content}"


class OpinionSection(BaseModel):
    """A finished section of the opinion document."""

    id: int = Field(default=0, ge=0)
    draft_id: int = Field(...)
    section_type: str = Field(..., description="facts, issue, law, application, conclusion, ...")
    title: str = Field(...)
    content: str = Field(...)
    order: int = Field(..., ge=1, description="1-based position in the document")
    ai_generated: bool = Field(default=True)
    reviewed: bool = Field(default=False)
    reviewed_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


def format_transcript(messages: list[ConversationMessage], limit: int | None = None) -> str:
    """Flatten messages into a role-prefixed transcript, optionally truncated."""
    text = "\n".join(message.transcript_line() for message in messages)
    return text[:limit] if limit is not None else text
