"""Triage Agent.

Decides how a single construction task should be priced:
- budgetSearchAgent: search the price book and/or material catalog
- estimationAgent: artisanal or one-off work no catalog can price
- askUser: the task is too ambiguous to price at all

Triage never raises. A failed or invalid generation falls back to askUser,
unless the task names a known construction brand, in which case it is
routed to the material catalog.
"""

import re
from typing import Optional

import structlog

from agents.base_agent import BaseAgent
from models.agent_output import SearchIntent, TriageDecision, TriageParameters, TriageTool
from utils.agent_logger import log_triage_decision
from utils.text import collapse_whitespace, normalize_text

logger = structlog.get_logger()

FALLBACK_REASONING = "AI generation failed to produce valid output."

# Brands stocked by the material catalog. A task naming one of these is
# always catalog work, never an artisanal estimate.
KNOWN_BRANDS = (
    "Keraben",
    "Porcelanosa",
    "Rockwool",
    "Knauf",
    "Pladur",
    "Isover",
    "Weber",
    "Grohe",
    "Hansgrohe",
    "Velux",
    "Schlüter",
    "Saint-Gobain",
    "Tau Cerámica",
    "Cosentino",
    "Silestone",
    "Dekton",
    "Jung",
    "Simon",
    "Niessen",
    "Daikin",
    "Mitsubishi Electric",
    "Junkers",
    "Baxi",
    "Vaillant",
)

TRIAGE_SYSTEM_PROMPT = """You are the Lead Budget Architect for a Spanish construction and renovation company.
Your goal is to decide which specialist should price a single construction task.

## Specialists

- budgetSearchAgent: For MOST construction tasks, including specific materials and brands
  (e.g., "Keraben tiles", "PVC windows", "Rockwool insulation"). It searches the internal
  Price Book AND the Material Catalog. Use it even if a brand is mentioned.
- estimationAgent: ONLY for custom, artistic or artisanal work with no standard price
  (e.g., "Hand-painted mural", "Antique gold leaf restoration", "Custom sculpture").
  Never use it for branded construction materials.
- askUser: ONLY when the request is extremely ambiguous (e.g., "Change it" with no context).

## Parameters for budgetSearchAgent

- query: the search query, in Spanish, as a price book would describe the work.
- intent:
  - PARTIDA when the task is a unit of work (installation, demolition, painting...).
  - MATERIAL when the task is the supply of a specific product or brand.
  - BOTH when a specific product must also be installed.
- genericQuery: when a specific brand or product is named, the same work described
  WITHOUT the brand (e.g., "Alicatado con Keraben Bottega" -> "Alicatado con azulejo cerámico").

## Output

{"tool": "...", "reasoning": "...", "parameters": {"query": "...", "genericQuery": "...", "intent": "...", "context": "..."}}
"""


def find_known_brand(text: str) -> Optional[str]:
    """Return the first known brand named in text, if any."""
    folded = normalize_text(text)
    for brand in KNOWN_BRANDS:
        if re.search(rf"\b{re.escape(normalize_text(brand))}\b", folded):
            return brand
    return None


def strip_brand(text: str, brand: str) -> str:
    """Remove a brand name from text (case-insensitive)."""
    return collapse_whitespace(re.sub(re.escape(brand), "", text, flags=re.IGNORECASE))


class TriageAgent(BaseAgent):
    """Routes a task to budget search, estimation or clarification."""

    def __init__(self, llm_service=None, timeout_seconds: Optional[float] = None):
        super().__init__(name="triage", llm_service=llm_service, timeout_seconds=timeout_seconds)

    async def classify(self, task_description: str) -> TriageDecision:
        """Classify a task.

        Args:
            task_description: Self-contained task text.

        Returns:
            TriageDecision (never raises).
        """
        try:
            decision = await self.generate_structured(
                TRIAGE_SYSTEM_PROMPT,
                f'Request: "{task_description}"',
                TriageDecision
            )
        except Exception as e:
            logger.error("triage_generation_error", task=task_description[:80], error=str(e))
            decision = None

        brand = find_known_brand(task_description)

        if decision is None:
            if brand:
                decision = self._brand_decision(task_description, brand, FALLBACK_REASONING)
            else:
                decision = TriageDecision(
                    tool=TriageTool.ASK_USER,
                    reasoning=FALLBACK_REASONING,
                    parameters=TriageParameters(query=task_description)
                )
        elif brand and decision.tool == TriageTool.ESTIMATION:
            logger.info("triage_brand_override", brand=brand, original_tool=decision.tool.value)
            decision = self._brand_decision(
                task_description,
                brand,
                f"Brand '{brand}' is stocked in the material catalog. {decision.reasoning}".strip()
            )
        elif not decision.parameters.query.strip():
            decision = decision.model_copy(update={
                "parameters": decision.parameters.model_copy(update={"query": task_description})
            })

        log_triage_decision(
            task_description,
            decision.tool.value,
            decision.parameters.intent.value if decision.tool == TriageTool.BUDGET_SEARCH else None,
            decision.reasoning
        )
        return decision

    def _brand_decision(self, task_description: str, brand: str, reasoning: str) -> TriageDecision:
        generic_query = strip_brand(task_description, brand)
        return TriageDecision(
            tool=TriageTool.BUDGET_SEARCH,
            reasoning=reasoning,
            parameters=TriageParameters(
                query=task_description,
                generic_query=generic_query or None,
                intent=SearchIntent.MATERIAL
            )
        )
