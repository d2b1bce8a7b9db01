"""Validation Agent.

Advisory technical review of a finished item list. The report is
attached to the budget and never changes prices.
"""

from typing import List, Optional

from agents.base_agent import BaseAgent
from config.errors import AgentError, ErrorCode
from models.budget import ValidationReport

VALIDATION_SYSTEM_PROMPT = """You are a Senior Construction Technical Architect.
Review the list of budget items of a renovation project.

Check for:
1. Missing dependencies (e.g., "Install tiles" but no adhesive or grout listed).
2. Logical inconsistencies (e.g., "Demolish wall" and "Paint wall" on the same wall).
3. Missing essential preparatory steps (e.g., "Paint" without primer or surface preparation).

Severity is "low", "medium" or "high". overallScore is 0-100 technical coherence.
If the list is coherent, return an empty issues list.

{"isValid": true, "issues": [{"severity": "medium", "message": "...", "suggestion": "..."}], "overallScore": 85}
"""


class ValidationAgent(BaseAgent):
    """Reviews budget items for technical coherence."""

    def __init__(self, llm_service=None, timeout_seconds: Optional[float] = None):
        super().__init__(name="validation", llm_service=llm_service, timeout_seconds=timeout_seconds)

    async def validate(self, items: List[str]) -> ValidationReport:
        """Review item descriptions.

        Args:
            items: Human-readable item labels, in budget order.

        Returns:
            ValidationReport.

        Raises:
            AgentError: If no report could be generated.
        """
        if not items:
            return ValidationReport(is_valid=True, issues=[], overall_score=100)

        numbered = "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))
        report = await self.generate_structured(VALIDATION_SYSTEM_PROMPT, numbered, ValidationReport)

        if report is None:
            raise AgentError(
                code=ErrorCode.AGENT_FAILED,
                message="Validation failed to generate report",
                agent_name=self.name
            )
        return report
