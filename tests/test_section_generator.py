"""
Tests for the Section Generator.

The Q&A flow runs against a real OpinionStore and ChromaDB collection;
only the chat model is scripted.
"""

import pytest

from src.agents import ResearchError, SectionGenerator, SectionStateError
from src.agents.schemas import DocumentFinding, QAPair, SectionGenerationState
from src.agents.section_generator import (
    build_full_context,
    build_search_query,
    merge_findings,
    needs_more_questions,
    new_generation_id,
    opening_question,
    referenced_documents_footer,
    section_title,
)
from src.knowledge import MessageRole, OpinionSection, OpinionStore, VectorStore
from tests.conftest import (
    ANALYSIS,
    ANALYSIS_JSON,
    DRAFT_APPLICATION,
    DRAFT_CONCLUSION,
    QUESTION,
    RESEARCH,
    RESEARCH_JSON,
    SUMMARY,
    ScriptedLLM,
    section_json,
)

NO_DOCUMENTS_PHRASE = "consider uploading relevant documents"
LONG_ANSWER = "The shares were acquired in 2015 as a long-term investment and held continuously. " * 3


def make_state(section_type: str, answers: list[str], **kwargs) -> SectionGenerationState:
    return SectionGenerationState(
        section_type=section_type,
        questions=tuple(QAPair(question=f"Q{i}?", answer=a) for i, a in enumerate(answers)),
        current_question_index=len(answers),
        generation_id="section_1_test",
        **kwargs,
    )


def finding(file_name: str, category: str = "general") -> DocumentFinding:
    return DocumentFinding(content=f"excerpt from {file_name}", file_name=file_name, category=category)


def section(section_type: str, content: str, order: int) -> OpinionSection:
    return OpinionSection(
        draft_id=42,
        section_type=section_type,
        title=section_type.title(),
        content=content,
        order=order,
    )


# ============================================================================
# Pure helpers
# ============================================================================

class TestNeedsMoreQuestions:
    """Tests for the stop heuristic."""

    def test_fewer_than_two_answers(self) -> None:
        assert needs_more_questions(make_state("facts", [LONG_ANSWER])) is True

    def test_substantial_answers_stop(self) -> None:
        assert needs_more_questions(make_state("facts", [LONG_ANSWER, "Yes."])) is False

    def test_short_answers_continue(self) -> None:
        assert needs_more_questions(make_state("facts", ["Yes.", "No."])) is True

    def test_max_reached(self) -> None:
        assert needs_more_questions(make_state("facts", ["a", "b", "c"])) is False

    def test_two_question_types(self) -> None:
        assert needs_more_questions(make_state("issue", ["a", "b"])) is False
        assert needs_more_questions(make_state("Conclusion", ["a", "b"])) is False

    def test_analysis_allows_four(self) -> None:
        assert needs_more_questions(make_state("analysis", ["a", "b", "c"])) is True
        assert needs_more_questions(make_state("analysis", ["a", "b", "c", "d"])) is False

    def test_unknown_type_defaults_to_three(self) -> None:
        assert needs_more_questions(make_state("residency", ["a", "b"])) is True
        assert needs_more_questions(make_state("residency", ["a", "b", "c"])) is False


class TestFindings:
    """Tests for document finding helpers."""

    def test_merge_deduplicates_by_file(self) -> None:
        merged = merge_findings(
            [finding("a.pdf")],
            [finding("a.pdf"), finding("b.txt"), finding("b.txt")],
        )

        assert [f.file_name for f in merged] == ["a.pdf", "b.txt"]

    def test_merge_keeps_existing_first(self) -> None:
        existing = DocumentFinding(content="original", file_name="a.pdf", category="assessment")

        merged = merge_findings([existing], [finding("a.pdf")])

        assert merged == (existing,)

    def test_footer_lists_each_file_once(self) -> None:
        footer = referenced_documents_footer([finding("a.pdf", "assessment"), finding("a.pdf"), finding("b.txt")])

        assert footer == "\n\n**Referenced Documents:**\n- a.pdf (assessment)\n- b.txt (general)"


class TestOpeningQuestion:
    """Tests for the first question of a thread."""

    def test_facts_without_documents(self) -> None:
        question = opening_question("facts", [], [], None, [])

        assert question.startswith("I'll help you document the relevant facts")
        assert NO_DOCUMENTS_PHRASE in question
        assert "Based on our conversation, what are the key factual circumstances" in question

    def test_document_names_listed(self) -> None:
        findings = [finding(name) for name in ["a.pdf", "b.pdf", "c.pdf", "d.pdf"]]

        question = opening_question("law", [], [], None, findings)

        assert "I found 4 relevant documents (a.pdf, b.pdf, c.pdf...)." in question

    def test_single_document(self) -> None:
        question = opening_question("conclusion", [], [], None, [finding("a.pdf")])

        assert "I found 1 relevant document (a.pdf)." in question

    def test_issue_mentions_existing_context(self, store: OpinionStore) -> None:
        store.add_message(42, MessageRole.USER, "We sold shares")
        chat = store.list_messages(42)

        question = opening_question("issue", chat, [section("facts", "x", 1)], None, [])

        assert "Considering our chat and the 1 existing section(s), What specific tax question" in question

    def test_custom_title(self) -> None:
        question = opening_question("custom", [], [], "Tax Residency", [])

        assert 'create the "Tax Residency" section' in question

    def test_unknown_type_uses_type_name(self) -> None:
        question = opening_question("Residency", [], [], None, [])

        assert 'create the "Residency" section' in question


class TestSearchQuery:
    def test_analysis_uses_earlier_sections(self) -> None:
        sections = [section("facts", "FACTS TEXT", 1), section("issue", "ISSUE TEXT", 2)]

        query = build_search_query("application", sections, "qa")

        assert query == "ISSUE TEXT FACTS TEXT qa"

    def test_custom_type(self) -> None:
        assert build_search_query("Residency", [], "qa") == "Residency qa"


class TestFullContext:
    def test_all_parts(self) -> None:
        state = make_state("law", ["Section 38"], document_findings=(finding("a.pdf"),))

        context = build_full_context(state, [section("facts", "The facts.", 1)])

        assert "## Previous Sections:\n### Facts\nThe facts." in context
        assert "## Q&A History:\nQ1: Q0?\nA1: Section 38" in context
        assert "## Referenced Documents:\n**a.pdf** (general):\nexcerpt from a.pdf" in context

    def test_empty(self) -> None:
        state = SectionGenerationState(section_type="facts", generation_id="g")

        assert build_full_context(state, []) == ""


def test_generation_id_format() -> None:
    first, second = new_generation_id(), new_generation_id()

    assert first.startswith("section_")
    assert first != second


def test_section_title_prefers_custom_title() -> None:
    assert section_title(make_state("custom", [], custom_title="Residency")) == "Residency"
    assert section_title(make_state("facts", [])) == "facts"


# ============================================================================
# Q&A flow
# ============================================================================

class TestStartSection:
    """Tests for opening a thread."""

    @pytest.mark.asyncio
    async def test_start_without_documents(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        start = await section_generator.start_section("facts", draft_id=42)

        assert NO_DOCUMENTS_PHRASE in start.question
        assert "I found" not in start.question
        assert start.state.questions == (QAPair(question=start.question),)
        assert start.state.current_question_index == 0
        assert start.state.is_complete is False
        assert start.state.document_findings == ()
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_question_stored_on_thread(self, store: OpinionStore, section_generator: SectionGenerator) -> None:
        start = await section_generator.start_section("facts", draft_id=42)

        thread = store.list_messages(42, generation_id=start.state.generation_id)
        assert [(m.role, m.content) for m in thread] == [(MessageRole.ASSISTANT, start.question)]
        assert thread[0].section_type == "facts"
        assert store.list_messages(42) == []

    @pytest.mark.asyncio
    async def test_start_with_documents(
        self, section_generator: SectionGenerator, populated_vector_store: VectorStore
    ) -> None:
        start = await section_generator.start_section("facts", draft_id=1)

        assert "I found 2 relevant documents" in start.question
        assert {f.file_name for f in start.state.document_findings} == {"assessment.pdf", "board_minutes.txt"}
        assert all(f.score == 0.8 for f in start.state.document_findings)

    @pytest.mark.asyncio
    async def test_search_failure_yields_no_findings(
        self, section_generator: SectionGenerator, monkeypatch
    ) -> None:
        async def broken_search(draft_id, query):
            raise ResearchError("index offline")

        monkeypatch.setattr(section_generator.research, "search_documents", broken_search)

        start = await section_generator.start_section("facts", draft_id=42)

        assert NO_DOCUMENTS_PHRASE in start.question


class TestAnswerQuestion:
    """Tests for answering and the follow-up loop."""

    @pytest.mark.asyncio
    async def test_conclusion_completes_after_two_answers(
        self, llm: ScriptedLLM, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "Are there any caveats to note?")

        start = await section_generator.start_section("conclusion", draft_id=42)
        first = await section_generator.answer_question(start.state, "Capital.", 42)
        second = await section_generator.answer_question(first.state, "None.", 42)

        assert first.complete is False
        assert first.question == "Are there any caveats to note?"
        assert second.complete is True
        assert second.question is None
        assert second.state.is_complete is True
        assert [qa.answer for qa in second.state.questions] == ["Capital.", "None."]

    @pytest.mark.asyncio
    async def test_issue_never_asks_third_question(
        self, llm: ScriptedLLM, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "Which tax year?")

        start = await section_generator.start_section("issue", draft_id=42)
        first = await section_generator.answer_question(start.state, "a", 42)
        second = await section_generator.answer_question(first.state, "b", 42)

        assert second.complete is True
        assert len(llm.calls_for(QUESTION)) == 1

    @pytest.mark.asyncio
    async def test_short_facts_answers_get_third_question(
        self, llm: ScriptedLLM, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "What was the price?")

        start = await section_generator.start_section("facts", draft_id=42)
        step = await section_generator.answer_question(start.state, "Shares.", 42)
        step = await section_generator.answer_question(step.state, "2023.", 42)

        assert step.complete is False
        step = await section_generator.answer_question(step.state, "R1m.", 42)
        assert step.complete is True

    @pytest.mark.asyncio
    async def test_substantial_facts_answers_stop_at_two(
        self, llm: ScriptedLLM, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "Anything else?")

        start = await section_generator.start_section("facts", draft_id=42)
        step = await section_generator.answer_question(start.state, LONG_ANSWER, 42)
        step = await section_generator.answer_question(step.state, "That is all.", 42)

        assert step.complete is True

    @pytest.mark.asyncio
    async def test_thread_messages_persisted(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "Follow-up?")

        start = await section_generator.start_section("conclusion", draft_id=42)
        first = await section_generator.answer_question(start.state, "Capital.", 42)
        await section_generator.answer_question(first.state, "None.", 42)

        thread = store.list_messages(42, generation_id=start.state.generation_id)
        assert [(m.role, m.content) for m in thread] == [
            (MessageRole.ASSISTANT, start.question),
            (MessageRole.USER, "Capital."),
            (MessageRole.ASSISTANT, "Follow-up?"),
            (MessageRole.USER, "None."),
        ]

    @pytest.mark.asyncio
    async def test_follow_up_sees_previous_answers(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(QUESTION, "Follow-up?")
        store.add_message(42, MessageRole.USER, "Top-level chat about the disposal")

        start = await section_generator.start_section("facts", draft_id=42)
        await section_generator.answer_question(start.state, "Shares in Acme.", 42)

        prompt = llm.calls_for(QUESTION)[0].prompt
        assert f"Q: {start.question}\nA: Shares in Acme." in prompt
        assert "user: Top-level chat about the disposal" in prompt

    @pytest.mark.asyncio
    async def test_input_state_not_modified(self, llm: ScriptedLLM, section_generator: SectionGenerator) -> None:
        llm.on(QUESTION, "Next?")

        start = await section_generator.start_section("facts", draft_id=42)
        await section_generator.answer_question(start.state, "Answer", 42)

        assert start.state.questions[0].answer is None
        assert start.state.current_question_index == 0

    @pytest.mark.asyncio
    async def test_findings_accumulate(
        self, llm: ScriptedLLM, section_generator: SectionGenerator, populated_vector_store: VectorStore
    ) -> None:
        llm.on(QUESTION, "Next?")

        start = await section_generator.start_section("facts", draft_id=1)
        step = await section_generator.answer_question(start.state, "Answer", 1)

        assert len(step.state.document_findings) == 2

    @pytest.mark.asyncio
    async def test_complete_thread_rejects_answers(self, section_generator: SectionGenerator) -> None:
        state = make_state("issue", ["a", "b"]).model_copy(update={"is_complete": True})

        with pytest.raises(SectionStateError):
            await section_generator.answer_question(state, "c", 42)


class TestGenerateContent:
    """Tests for content generation per section type."""

    @pytest.mark.asyncio
    async def test_incomplete_thread_rejected(self, llm: ScriptedLLM, section_generator: SectionGenerator) -> None:
        with pytest.raises(SectionStateError, match="questions not complete"):
            await section_generator.generate_content(make_state("facts", ["a"]), 42, [])

        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_facts_summarises_thread(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(SUMMARY, "1. Taxpayer Information: Acme shareholder")
        state = make_state("facts", ["Shares in Acme", "Sold 2023"], is_complete=True)
        store.add_message(42, MessageRole.USER, "Shares in Acme", generation_id=state.generation_id)
        store.add_message(42, MessageRole.USER, "Top-level only")

        content = await section_generator.generate_content(state, 42, [])

        assert content == "1. Taxpayer Information: Acme shareholder"
        prompt = llm.calls_for(SUMMARY)[0].prompt
        assert "user: Shares in Acme" in prompt
        assert "Top-level only" not in prompt
        assert "## Q&A History:" in prompt

    @pytest.mark.asyncio
    async def test_issue_includes_top_level_chat(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(SUMMARY, "The issue is whether the gain is capital.")
        state = make_state("issue", ["a", "b"], is_complete=True)
        store.add_message(42, MessageRole.USER, "Top-level chat")

        await section_generator.generate_content(state, 42, [])

        assert "user: Top-level chat" in llm.calls_for(SUMMARY)[0].prompt

    @pytest.mark.asyncio
    async def test_law_section_from_research(self, llm: ScriptedLLM, section_generator: SectionGenerator) -> None:
        llm.on(RESEARCH, RESEARCH_JSON)
        state = make_state("law", ["s38", "Stott"], is_complete=True)
        previous = [section("facts", "FACTS TEXT", 1), section("issue", "ISSUE TEXT", 2)]

        content = await section_generator.generate_content(state, 42, previous)

        assert content.startswith("**Relevant Legislation:**\n- Section 38 - capital gains\n- Section 40 - base cost")
        assert "**Precedents:**\n- CIR v Stott" in content
        prompt = llm.calls_for(RESEARCH)[0].prompt
        assert "ISSUE TEXT" in prompt
        assert "FACTS TEXT" in prompt

    @pytest.mark.asyncio
    async def test_application_from_analysis(self, llm: ScriptedLLM, section_generator: SectionGenerator) -> None:
        llm.on(ANALYSIS, ANALYSIS_JSON)
        state = make_state("application", ["a", "b", "c", "d"], is_complete=True)

        content = await section_generator.generate_content(state, 42, [section("law", "LAW TEXT", 1)])

        assert content.startswith("**Main Issues:**\n- Capital or revenue nature of the share disposal")
        assert "**Conclusion:**\nThe gain is more likely than not capital in nature." in content
        assert "LAW TEXT" in llm.calls_for(ANALYSIS)[0].prompt

    @pytest.mark.asyncio
    async def test_conclusion_from_drafting(self, llm: ScriptedLLM, section_generator: SectionGenerator) -> None:
        llm.on(DRAFT_CONCLUSION, section_json("CONCLUSION", "We conclude the gain is capital."))
        state = make_state("conclusion", ["a", "b"], is_complete=True)

        content = await section_generator.generate_content(state, 42, [section("analysis", "ANALYSIS TEXT", 1)])

        assert content == "We conclude the gain is capital."
        assert "ANALYSIS TEXT" in llm.calls_for(DRAFT_CONCLUSION)[0].prompt

    @pytest.mark.asyncio
    async def test_custom_section_uses_thread_answers(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(DRAFT_APPLICATION, section_json("RESIDENCY", "The taxpayer is resident."))
        state = make_state("custom", ["a", "b", "c"], custom_title="Residency", is_complete=True)
        store.add_message(42, MessageRole.USER, "Lives in Cape Town", generation_id=state.generation_id)

        content = await section_generator.generate_content(state, 42, [])

        assert content == "The taxpayer is resident."
        assert "Lives in Cape Town" in llm.calls_for(DRAFT_APPLICATION)[0].prompt

    @pytest.mark.asyncio
    async def test_footer_appended_when_documents_found(
        self, llm: ScriptedLLM, section_generator: SectionGenerator
    ) -> None:
        llm.on(SUMMARY, "Summary")
        state = make_state(
            "facts",
            ["a", "b"],
            is_complete=True,
            document_findings=(finding("assessment.pdf", "assessment"),),
        )

        content = await section_generator.generate_content(state, 42, [])

        assert content == "Summary\n\n**Referenced Documents:**\n- assessment.pdf (assessment)"


class TestRegenerateContent:
    """Tests for redrafting a stored section."""

    @pytest.mark.asyncio
    async def test_uses_only_earlier_sections(
        self, llm: ScriptedLLM, store: OpinionStore, section_generator: SectionGenerator
    ) -> None:
        llm.on(DRAFT_CONCLUSION, section_json("CONCLUSION", "Revised conclusion."))
        store.add_section(42, "issue", "Issue", "ISSUE TEXT")
        conclusion = store.add_section(42, "conclusion", "Conclusion", "Old conclusion.")
        store.add_section(42, "custom", "Appendix", "LATER TEXT")

        content = await section_generator.regenerate_content(conclusion)

        assert content == "Revised conclusion."
        prompt = llm.calls_for(DRAFT_CONCLUSION)[0].prompt
        assert "ISSUE TEXT" in prompt
        assert "LATER TEXT" not in prompt
        assert "Old conclusion." not in prompt
