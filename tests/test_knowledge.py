"""
Tests for Knowledge Layer.
"""

from pathlib import Path

import pytest

from src.knowledge import (
    ConversationMessage,
    MessageRole,
    OpinionStore,
    OpinionStoreError,
    SearchResult,
    SectionNotFoundError,
    VectorStore,
    format_transcript,
)
from tests.conftest import make_chunk


class TestOpinionStore:
    """Tests for the message log and section table."""

    def test_messages_in_creation_order(self, store: OpinionStore) -> None:
        store.add_message(1, MessageRole.USER, "first")
        store.add_message(1, MessageRole.ASSISTANT, "second")
        store.add_message(2, MessageRole.USER, "other draft")

        messages = store.list_messages(1)

        assert [m.content for m in messages] == ["first", "second"]
        assert messages[0].id < messages[1].id

    def test_role_accepts_string(self, store: OpinionStore) -> None:
        message = store.add_message(1, "assistant", "hello")

        assert message.role is MessageRole.ASSISTANT

    def test_threads_kept_apart(self, store: OpinionStore) -> None:
        store.add_message(1, MessageRole.USER, "chat")
        store.add_message(1, MessageRole.USER, "thread a", generation_id="a", section_type="facts")
        store.add_message(1, MessageRole.USER, "thread b", generation_id="b", section_type="law")

        assert [m.content for m in store.list_messages(1)] == ["chat"]
        assert [m.content for m in store.list_messages(1, generation_id="a")] == ["thread a"]
        assert store.list_messages(1, generation_id="b")[0].section_type == "law"

    def test_limit_keeps_oldest(self, store: OpinionStore) -> None:
        for i in range(5):
            store.add_message(1, MessageRole.USER, f"m{i}")

        assert [m.content for m in store.list_messages(1, limit=2)] == ["m0", "m1"]

    def test_metadata_stored(self, store: OpinionStore) -> None:
        store.add_message(1, MessageRole.ASSISTANT, "done", metadata='{"research": {}}')

        assert store.list_messages(1)[0].metadata == '{"research": {}}'

    def test_sections_appended_in_order(self, store: OpinionStore) -> None:
        store.add_section(1, "facts", "Facts", "f")
        store.add_section(1, "issue", "Issue", "i")
        store.add_section(2, "facts", "Facts", "other")

        sections = store.list_sections(1)

        assert [(s.title, s.order) for s in sections] == [("Facts", 1), ("Issue", 2)]
        assert all(s.ai_generated for s in sections)

    def test_explicit_order_and_before_order(self, store: OpinionStore) -> None:
        store.add_section(1, "conclusion", "Conclusion", "c", order=5)
        store.add_section(1, "facts", "Facts", "f", order=1)
        store.add_section(1, "custom", "Notes", "n", order=3, ai_generated=False)

        assert [s.order for s in store.list_sections(1)] == [1, 3, 5]
        assert [s.title for s in store.list_sections(1, before_order=5)] == ["Facts", "Notes"]
        assert store.list_sections(1)[1].ai_generated is False

    def test_get_section(self, store: OpinionStore) -> None:
        section = store.add_section(1, "facts", "Facts", "f")

        assert store.get_section(section.id) == section
        assert store.get_section(999) is None

    def test_update_section(self, store: OpinionStore) -> None:
        section = store.add_section(1, "facts", "Facts", "f")

        updated = store.update_section(1, section.id, content="Revised facts", reviewed=True)

        assert updated.title == "Facts"
        assert updated.content == "Revised facts"
        assert updated.reviewed is True
        assert updated.reviewed_at is not None
        assert store.get_section(section.id) == updated

    def test_unmarking_review_clears_timestamp(self, store: OpinionStore) -> None:
        section = store.add_section(1, "facts", "Facts", "f")
        store.update_section(1, section.id, reviewed=True)

        updated = store.update_section(1, section.id, reviewed=False)

        assert updated.reviewed is False
        assert updated.reviewed_at is None

    def test_update_section_of_other_draft(self, store: OpinionStore) -> None:
        section = store.add_section(2, "facts", "Facts", "f")

        with pytest.raises(SectionNotFoundError):
            store.update_section(1, section.id, title="Mine now")
        assert store.get_section(section.id).title == "Facts"

    def test_reorder_sections(self, store: OpinionStore) -> None:
        facts = store.add_section(1, "facts", "Facts", "f")
        issue = store.add_section(1, "issue", "Issue", "i")
        law = store.add_section(1, "law", "Law", "l")

        sections = store.reorder_sections(1, {law.id: 1, facts.id: 2, issue.id: 3})

        assert [s.title for s in sections] == ["Law", "Facts", "Issue"]
        assert [s.order for s in sections] == [1, 2, 3]

    def test_reorder_is_all_or_nothing(self, store: OpinionStore) -> None:
        facts = store.add_section(1, "facts", "Facts", "f")
        other = store.add_section(2, "facts", "Facts", "other")

        with pytest.raises(SectionNotFoundError):
            store.reorder_sections(1, {facts.id: 4, other.id: 1})
        with pytest.raises(OpinionStoreError):
            store.reorder_sections(1, {facts.id: 0})
        assert store.get_section(facts.id).order == 1

    def test_delete_section(self, store: OpinionStore) -> None:
        facts = store.add_section(1, "facts", "Facts", "f")
        store.add_section(1, "issue", "Issue", "i")

        store.delete_section(1, facts.id)

        assert [s.title for s in store.list_sections(1)] == ["Issue"]
        with pytest.raises(SectionNotFoundError):
            store.delete_section(1, facts.id)

    def test_section_changes_persisted(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        store = OpinionStore(persist_path=path)
        facts = store.add_section(1, "facts", "Facts", "f")
        issue = store.add_section(1, "issue", "Issue", "i")
        store.update_section(1, facts.id, reviewed=True)
        store.delete_section(1, issue.id)

        reloaded = OpinionStore(persist_path=path)

        assert [(s.title, s.reviewed) for s in reloaded.list_sections(1)] == [("Facts", True)]

    def test_persistence_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "opinions" / "store.json"
        store = OpinionStore(persist_path=path)
        store.add_message(1, MessageRole.USER, "hello", generation_id="g1", section_type="facts")
        store.add_section(1, "facts", "Facts", "f")

        reloaded = OpinionStore(persist_path=path)

        assert reloaded.list_messages(1, generation_id="g1")[0].content == "hello"
        assert reloaded.list_sections(1)[0].title == "Facts"
        assert reloaded.add_message(1, MessageRole.USER, "next").id == 2

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json")

        with pytest.raises(OpinionStoreError):
            OpinionStore(persist_path=path)

    def test_save_without_path_raises(self, store: OpinionStore) -> None:
        with pytest.raises(OpinionStoreError):
            store.save()


class TestFormatTranscript:
    def test_role_prefixed_lines(self) -> None:
        messages = [
            ConversationMessage(draft_id=1, role=MessageRole.USER, content="Hi"),
            ConversationMessage(draft_id=1, role=MessageRole.ASSISTANT, content="Hello"),
        ]

        assert format_transcript(messages) == "user: Hi\nassistant: Hello"
        assert format_transcript(messages, limit=4) == "user"


class TestSearchResult:
    def test_properties(self) -> None:
        result = SearchResult(
            chunk_id="1_0",
            document_id=1,
            content="text",
            metadata={"file_name": "a.pdf"},
            distance=1.4,
        )

        assert result.similarity == 0.0
        assert result.file_name == "a.pdf"
        assert result.category == "general"


class TestVectorStore:
    """Tests for VectorStore."""

    def test_count_empty_store(self, vector_store: VectorStore) -> None:
        assert vector_store.count() == 0

    def test_search_empty_store(self, vector_store: VectorStore) -> None:
        assert vector_store.search("test query", draft_id=1) == []

    def test_add_chunks(self, vector_store: VectorStore, sample_chunks) -> None:
        assert vector_store.add_chunks(sample_chunks) == 3
        assert vector_store.count() == 3

    def test_add_no_chunks(self, vector_store: VectorStore) -> None:
        assert vector_store.add_chunks([]) == 0

    def test_search_scoped_to_draft(self, populated_vector_store: VectorStore) -> None:
        results = populated_vector_store.search("share disposal", draft_id=1)

        assert {r.file_name for r in results} == {"assessment.pdf", "board_minutes.txt"}
        assert {r.document_id for r in results} == {100, 101}

    def test_search_other_draft(self, populated_vector_store: VectorStore) -> None:
        results = populated_vector_store.search("lease", draft_id=2)

        assert [r.file_name for r in results] == ["lease.txt"]

    def test_search_unknown_draft(self, populated_vector_store: VectorStore) -> None:
        assert populated_vector_store.search("anything", draft_id=99) == []

    def test_search_by_category(self, populated_vector_store: VectorStore) -> None:
        results = populated_vector_store.search("share disposal", draft_id=1, category="assessment")

        assert [r.file_name for r in results] == ["assessment.pdf"]
        assert results[0].category == "assessment"

    def test_top_k(self, populated_vector_store: VectorStore) -> None:
        assert len(populated_vector_store.search("shares", draft_id=1, top_k=1)) == 1

    def test_delete_document(self, populated_vector_store: VectorStore) -> None:
        populated_vector_store.add_chunks([
            make_chunk("second chunk", draft_id=1, document_id=100, file_name="assessment.pdf", index=1),
        ])

        assert populated_vector_store.delete_document(100) == 2
        assert populated_vector_store.count() == 2
        assert populated_vector_store.delete_document(100) == 0

    def test_delete_document_scoped_to_draft(self, populated_vector_store: VectorStore) -> None:
        populated_vector_store.add_chunks([
            make_chunk("copied assessment", draft_id=2, document_id=100, file_name="assessment.pdf", index=9),
        ])

        assert populated_vector_store.delete_document(100, draft_id=2) == 1
        assert populated_vector_store.delete_document(100, draft_id=1) == 1
        assert populated_vector_store.delete_document(100, draft_id=2) == 0
