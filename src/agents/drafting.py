"""
Drafting Agent - Opinion Section Drafting.

Drafts each standard section of a tax opinion (facts, issue, law,
application, conclusion) from the material gathered earlier, and can
assemble all five in order.
"""

from src.agents.generation import GenerationService, Parsed, ParseFailure, parse_structured
from src.agents.schemas import DraftedSection, SectionContent, SectionType
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)


class DraftingError(Exception):
    """Raised when a section cannot be drafted."""
    pass


OUTPUT_FORMAT = """<output_format>
Respond ONLY with JSON:
{{
  "title": "{title}",
  "content": "The drafted section text",
  "citations": ["References relied on, if any"]
}}
</output_format>"""

# ============================================================================
# Section prompts
# ============================================================================

FACTS_SYSTEM_PROMPT = """You are an expert at drafting the Facts section of professional tax opinions.

<drafting_guidelines>
- Present the material facts clearly and objectively
- Use numbered paragraphs for easy reference
- Include dates, amounts and parties
- Distinguish established facts from assumptions
- Draw no legal conclusions
</drafting_guidelines>

""" + OUTPUT_FORMAT.format(title="FACTS")

ISSUE_SYSTEM_PROMPT = """You are an expert at drafting the Issue section of professional tax opinions.

<drafting_guidelines>
- State the precise tax question to be answered, e.g. "The issue is whether..."
- Use numbered sub-issues if there is more than one
- Refer to the relevant periods and transactions
- Do not assume the answer
- Keep it to one to three paragraphs
</drafting_guidelines>

""" + OUTPUT_FORMAT.format(title="ISSUE")

LAW_SYSTEM_PROMPT = """You are an expert at drafting the Law section of professional tax opinions.

<drafting_guidelines>
- Set out the applicable statutory provisions, quoting key language
- Cite sections and cases precisely
- Explain the legal tests that will be applied
- Present the law objectively before it is applied to the facts
</drafting_guidelines>

""" + OUTPUT_FORMAT.format(title="LAW")

APPLICATION_SYSTEM_PROMPT = """You are an expert at drafting the Application section of professional tax opinions.

<drafting_guidelines>
For each legal requirement in turn:
1. State the requirement
2. Identify the relevant facts
3. Apply the law to those facts
4. Address counter-arguments
5. Reach an intermediate conclusion
Then draw the threads together.
</drafting_guidelines>

""" + OUTPUT_FORMAT.format(title="APPLICATION")

CONCLUSION_SYSTEM_PROMPT = """You are an expert at drafting the Conclusion section of professional tax opinions.

<drafting_guidelines>
- Answer the issue directly: "Based on the foregoing analysis, we conclude that..."
- Summarise the two or three key reasons
- Match the strength of language to the strength of the position
- Include caveats, assumptions and recommended actions
</drafting_guidelines>

""" + OUTPUT_FORMAT.format(title="CONCLUSION")


class DraftingAgent:
    """
    Agent that drafts the sections of a tax opinion.

    Usage:
        agent = DraftingAgent(generation)
        facts = await agent.draft_facts_section(facts_summary)
        sections = await agent.draft_complete_opinion(facts, issue, law, precedents, analysis, risks)
    """

    def __init__(self, generation: GenerationService) -> None:
        self.generation = generation

    async def _draft(
        self,
        section: str,
        system_prompt: str,
        prompt: str,
        temperature: float,
    ) -> SectionContent:
        text = await self.generation.invoke(system_prompt, prompt, temperature=temperature)

        match parse_structured(text, SectionContent):
            case Parsed(content):
                logger.info(f"Drafted {section} section ({len(content.content)} chars)")
                return content
            case ParseFailure(error, raw):
                logger.error(f"Malformed {section} section output: {truncate(raw)}")
                raise DraftingError(f"Failed to draft {section} section: {error}")

    async def draft_facts_section(self, facts: str) -> SectionContent:
        prompt = f"""<established_facts>
{facts}
</established_facts>

<task>
Draft the Facts section of the opinion from these established facts.
</task>"""
        return await self._draft("facts", FACTS_SYSTEM_PROMPT, prompt, temperature=0.6)

    async def draft_issue_section(self, tax_issue: str, facts: str) -> SectionContent:
        prompt = f"""<tax_question>
{tax_issue}
</tax_question>

<facts>
{facts}
</facts>

<task>
Draft the Issue section, framing the tax question precisely.
</task>"""
        return await self._draft("issue", ISSUE_SYSTEM_PROMPT, prompt, temperature=0.5)

    async def draft_law_section(self, relevant_law: list[str], precedents: list[str]) -> SectionContent:
        prompt = f"""<relevant_law_sections>
{chr(10).join(relevant_law)}
</relevant_law_sections>

<precedents>
{chr(10).join(precedents)}
</precedents>

<task>
Draft the Law section explaining the applicable statutes and case law.
</task>"""
        return await self._draft("law", LAW_SYSTEM_PROMPT, prompt, temperature=0.5)

    async def draft_application_section(self, facts: str, law: str, analysis: str) -> SectionContent:
        prompt = f"""<facts>
{facts}
</facts>

<applicable_law>
{law}
</applicable_law>

<analysis>
{analysis}
</analysis>

<task>
Draft the Application section, applying the law to the facts requirement by requirement.
</task>"""
        return await self._draft("application", APPLICATION_SYSTEM_PROMPT, prompt, temperature=0.6)

    async def draft_conclusion_section(self, issue: str, analysis: str, risks: str) -> SectionContent:
        prompt = f"""<issue>
{issue}
</issue>

<analysis>
{analysis}
</analysis>

<risks>
{risks}
</risks>

<task>
Draft the Conclusion section, answering the issue with appropriate qualifications.
</task>"""
        return await self._draft("conclusion", CONCLUSION_SYSTEM_PROMPT, prompt, temperature=0.5)

    async def draft_complete_opinion(
        self,
        facts: str,
        issue: str,
        law: list[str],
        precedents: list[str],
        analysis: str,
        risks: str,
    ) -> list[DraftedSection]:
        """
        Draft all five standard sections in order.

        The application section builds on the drafted law section.

        Raises:
            DraftingError: If any section cannot be drafted
        """
        facts_section = await self.draft_facts_section(facts)
        issue_section = await self.draft_issue_section(issue, facts)
        law_section = await self.draft_law_section(law, precedents)
        application_section = await self.draft_application_section(facts, law_section.content, analysis)
        conclusion_section = await self.draft_conclusion_section(issue, analysis, risks)

        drafted = [
            (SectionType.FACTS, facts_section),
            (SectionType.ISSUE, issue_section),
            (SectionType.LAW, law_section),
            (SectionType.APPLICATION, application_section),
            (SectionType.CONCLUSION, conclusion_section),
        ]

        return [
            DraftedSection(
                section_type=section_type,
                title=section.title,
                content=section.content,
                order=order,
            )
            for order, (section_type, section) in enumerate(drafted, start=1)
        ]
