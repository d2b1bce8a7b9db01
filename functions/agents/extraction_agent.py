"""Extraction Agent.

Splits a free-text renovation request into atomic, measurable subtasks.
"""

from typing import List, Optional

import structlog

from agents.base_agent import BaseAgent
from config.errors import ExtractionError
from models.agent_output import Subtask, SubtaskExtraction

logger = structlog.get_logger()

EXTRACTION_SYSTEM_PROMPT = """You are an expert Spanish quantity surveyor (aparejador).
Break the user's renovation request into a list of atomic construction tasks that can each
be priced as one price book item (partida).

## Rules

1. One task per unit of work: demolition, removal of debris, installation, finishing...
   Include the implicit preparatory and disposal steps a professional would budget.
2. Write each searchQuery in Spanish, self-contained and technical, as a price book
   would describe it (e.g., "Demolición de alicatado de paredes con medios manuales").
3. Estimate a realistic quantity and unit (m2, m, m3, ud, kg...) from the measurements
   given. If no measurement is given, use your best professional estimate.
4. Keep brand names and product references exactly as written by the user.
5. Do not invent work the request does not imply.

## Output

{"subtasks": [{"searchQuery": "...", "quantity": 12.5, "unit": "m2", "reasoning": "..."}]}
"""


class ExtractionAgent(BaseAgent):
    """Turns a narrative into subtasks."""

    def __init__(self, llm_service=None, timeout_seconds: Optional[float] = None):
        super().__init__(name="extraction", llm_service=llm_service, timeout_seconds=timeout_seconds)

    async def extract(self, narrative: str, context: Optional[str] = None) -> List[Subtask]:
        """Extract subtasks from a narrative.

        Args:
            narrative: User request.
            context: Optional project context.

        Returns:
            Non-empty list of subtasks, in narrative order.

        Raises:
            ExtractionError: If the narrative is empty or nothing can be extracted.
        """
        if not narrative or not narrative.strip():
            raise ExtractionError(details={"reason": "empty_request"})

        result = await self.generate_structured(
            self.build_system_prompt(EXTRACTION_SYSTEM_PROMPT, context),
            narrative.strip(),
            SubtaskExtraction
        )

        subtasks = [s for s in (result.subtasks if result else []) if s.search_query.strip()]
        if not subtasks:
            logger.warning("extraction_empty", narrative_length=len(narrative))
            raise ExtractionError(details={"reason": "no_subtasks"})

        logger.info("subtasks_extracted", count=len(subtasks))
        return subtasks
