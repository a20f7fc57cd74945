"""
Analysis Agent - Tax Position Analysis.

Applies the researched law to the established facts and produces a
structured view of the issues, alternative positions and risks.
"""

from src.agents.generation import GenerationError, GenerationService, Parsed, ParseFailure, parse_structured
from src.agents.schemas import TaxAnalysis
from src.utils.logger import get_logger, truncate

logger = get_logger(__name__)


class AnalysisError(Exception):
    """Raised when analysis fails."""
    pass


ANALYSIS_SYSTEM_PROMPT = """You are a senior tax analyst assessing a client's tax position for a formal opinion.

<analysis_method>
1. Identify each distinct tax issue raised by the facts
2. Apply the relevant law to the facts for each issue
3. Consider the positions the taxpayer and the revenue authority could take
4. Weigh the strengths and weaknesses of each position
5. Identify risks and how they could be mitigated
6. Reach a reasoned overall conclusion
</analysis_method>

Respond ONLY with JSON:
{
  "mainIssues": ["Issue 1", "..."],
  "legalAnalysis": "Detailed application of law to facts",
  "alternativePositions": [
    {
      "position": "Description of the position",
      "likelihood": "high/medium/low",
      "strengths": ["..."],
      "weaknesses": ["..."]
    }
  ],
  "risks": [
    {"severity": "high/medium/low", "risk": "Description", "mitigation": "How to mitigate"}
  ],
  "conclusion": "Overall conclusion on the tax position"
}"""

ANALYSIS_PROMPT = """<tax_issue>
{issue}
</tax_issue>

<facts>
{facts}
</facts>

<research>
{research}
</research>

<task>
Analyse the tax position. Address alternative positions and risks explicitly.
</task>"""


class AnalysisAgent:
    """
    Agent that analyses the tax position from facts and research.

    Usage:
        agent = AnalysisAgent(generation)
        analysis = await agent.analyze_tax_position(facts, research_text, issue)
    """

    def __init__(self, generation: GenerationService) -> None:
        self.generation = generation

    async def analyze_tax_position(self, facts: str, research: str, issue: str) -> TaxAnalysis:
        """
        Analyse the tax position.

        Raises:
            AnalysisError: If the model call fails or its reply is malformed
        """
        prompt = ANALYSIS_PROMPT.format(issue=issue, facts=facts, research=research)

        try:
            text = await self.generation.invoke(ANALYSIS_SYSTEM_PROMPT, prompt, temperature=0.4)
        except GenerationError as e:
            raise AnalysisError(f"Failed to analyze tax position: {e}") from e

        match parse_structured(text, TaxAnalysis):
            case Parsed(analysis):
                logger.info(
                    f"Analysis identified {len(analysis.main_issues)} issues, "
                    f"{len(analysis.risks)} risks"
                )
                return analysis
            case ParseFailure(error, raw):
                logger.error(f"Malformed analysis output: {truncate(raw)}")
                raise AnalysisError(f"Failed to parse tax analysis: {error}")
