"""
Opinion Store - Message Log and Section Table.

Append-only conversation log keyed by (draft, generation thread) and an
ordered section table per draft. Everything lives in memory and is
optionally mirrored to a JSON file after each write.
"""

import json
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Any

from src.knowledge.schemas import ConversationMessage, MessageRole, OpinionSection
from src.utils.logger import get_logger

logger = get_logger(__name__)


class OpinionStoreError(Exception):
    """Raised when the store cannot be read or written."""
    pass


class SectionNotFoundError(OpinionStoreError):
    """Raised when a section id does not belong to the draft."""
    pass


class OpinionStore:
    """
    Persisted-state store used by the orchestrator and section generator.

    Usage:
        store = OpinionStore(persist_path=Path("data/opinions/store.json"))
        store.add_message(42, MessageRole.USER, "We sold shares in 2023")
        history = store.list_messages(42)
    """

    def __init__(self, persist_path: Path | None = None) -> None:
        """
        Initialize the store.

        Args:
            persist_path: Optional JSON file to load from and save to
        """
        self.persist_path = persist_path
        self._messages: list[ConversationMessage] = []
        self._sections: list[OpinionSection] = []
        self._message_ids = count(1)
        self._section_ids = count(1)

        if persist_path and persist_path.exists():
            self._load()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        draft_id: int,
        role: MessageRole | str,
        content: str,
        *,
        generation_id: str | None = None,
        section_type: str | None = None,
        metadata: str | None = None,
    ) -> ConversationMessage:
        """Append a message to a draft's log."""
        message = ConversationMessage(
            id=next(self._message_ids),
            draft_id=draft_id,
            role=MessageRole(role),
            content=content,
            generation_id=generation_id,
            section_type=section_type,
            metadata=metadata,
        )
        self._messages.append(message)
        self._persist()
        return message

    def list_messages(
        self,
        draft_id: int,
        generation_id: str | None = None,
        limit: int | None = None,
    ) -> list[ConversationMessage]:
        """
        List a draft's messages in creation order.

        Args:
            draft_id: Draft to read
            generation_id: Section thread to read; None selects top-level chat only
            limit: Return at most this many messages (oldest first)
        """
        messages = [
            m for m in self._messages
            if m.draft_id == draft_id and m.generation_id == generation_id
        ]
        messages.sort(key=lambda m: (m.created_at, m.id))
        return messages[:limit] if limit is not None else messages

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def add_section(
        self,
        draft_id: int,
        section_type: str,
        title: str,
        content: str,
        order: int | None = None,
        ai_generated: bool = True,
    ) -> OpinionSection:
        """Insert a finished section; appended after the last one unless order is given."""
        if order is None:
            existing = self.list_sections(draft_id)
            order = existing[-1].order + 1 if existing else 1

        section = OpinionSection(
            id=next(self._section_ids),
            draft_id=draft_id,
            section_type=section_type,
            title=title,
            content=content,
            order=order,
            ai_generated=ai_generated,
        )
        self._sections.append(section)
        self._persist()
        logger.debug(f"Stored section '{title}' at position {order} for draft {draft_id}")
        return section

    def list_sections(
        self,
        draft_id: int,
        before_order: int | None = None,
    ) -> list[OpinionSection]:
        """List a draft's sections by order, optionally only those before a position."""
        sections = [s for s in self._sections if s.draft_id == draft_id]
        if before_order is not None:
            sections = [s for s in sections if s.order < before_order]
        return sorted(sections, key=lambda s: (s.order, s.id))

    def get_section(self, section_id: int) -> OpinionSection | None:
        """Get a section by id."""
        return next((s for s in self._sections if s.id == section_id), None)

    def update_section(
        self,
        draft_id: int,
        section_id: int,
        *,
        title: str | None = None,
        content: str | None = None,
        reviewed: bool | None = None,
        ai_generated: bool | None = None,
    ) -> OpinionSection:
        """
        Change a section's text or review flag; fields left as None are kept.

        Raises:
            SectionNotFoundError: If the draft has no such section
        """
        section = self._owned_section(draft_id, section_id)

        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        if ai_generated is not None:
            changes["ai_generated"] = ai_generated
        if reviewed is not None:
            changes["reviewed"] = reviewed
            changes["reviewed_at"] = datetime.now(timezone.utc) if reviewed else None

        updated = section.model_copy(update=changes)
        self._replace_section(updated)
        self._persist()
        logger.debug(f"Updated section {section_id} of draft {draft_id}: {sorted(changes)}")
        return updated

    def reorder_sections(self, draft_id: int, orders: dict[int, int]) -> list[OpinionSection]:
        """
        Move sections to new positions in one batch.

        Args:
            draft_id: Draft the sections belong to
            orders: Section id -> new 1-based position

        Raises:
            SectionNotFoundError: If any id is not a section of the draft
            OpinionStoreError: If a position is below 1
        """
        sections = [self._owned_section(draft_id, section_id) for section_id in orders]
        if any(order < 1 for order in orders.values()):
            raise OpinionStoreError("Section positions start at 1")

        for section in sections:
            self._replace_section(section.model_copy(update={"order": orders[section.id]}))
        self._persist()

        logger.info(f"Reordered {len(sections)} sections for draft {draft_id}")
        return self.list_sections(draft_id)

    def delete_section(self, draft_id: int, section_id: int) -> None:
        """
        Remove a section.

        Raises:
            SectionNotFoundError: If the draft has no such section
        """
        self._owned_section(draft_id, section_id)
        self._sections = [s for s in self._sections if s.id != section_id]
        self._persist()
        logger.info(f"Deleted section {section_id} from draft {draft_id}")

    def _owned_section(self, draft_id: int, section_id: int) -> OpinionSection:
        section = self.get_section(section_id)
        if section is None or section.draft_id != draft_id:
            raise SectionNotFoundError(f"Section {section_id} not found in draft {draft_id}")
        return section

    def _replace_section(self, section: OpinionSection) -> None:
        self._sections = [section if s.id == section.id else s for s in self._sections]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> None:
        """Write the full store to JSON."""
        save_path = path or self.persist_path
        if not save_path:
            raise OpinionStoreError("No persist path specified")

        data: dict[str, Any] = {
            "messages": [m.model_dump(mode="json") for m in self._messages],
            "sections": [s.model_dump(mode="json") for s in self._sections],
        }

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _persist(self) -> None:
        if self.persist_path:
            self.save()

    def _load(self) -> None:
        """Load the store from JSON."""
        assert self.persist_path is not None

        try:
            with open(self.persist_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise OpinionStoreError(f"Failed to load store from {self.persist_path}: {e}") from e

        self._messages = [ConversationMessage.model_validate(m) for m in data.get("messages", [])]
        self._sections = [OpinionSection.model_validate(s) for s in data.get("sections", [])]
        self._message_ids = count(max((m.id for m in self._messages), default=0) + 1)
        self._section_ids = count(max((s.id for s in self._sections), default=0) + 1)

        logger.info(
            f"Loaded opinion store: {len(self._messages)} messages, "
            f"{len(self._sections)} sections"
        )
