"""Estimation Agent.

Estimates a market unit price (PEM, Spain) for work that no catalog
covers. Returns None when no estimate can be produced.
"""

from typing import Optional

import structlog

from agents.base_agent import BaseAgent
from models.agent_output import MarketEstimate

logger = structlog.get_logger()

ESTIMATION_SYSTEM_PROMPT = """You are an expert Construction Cost Estimator for Spain (2024-2025).
The item below was NOT found in the company price book, so estimate it from market knowledge.

Return a JSON object with:
- description: a technical description of the item, in Spanish.
- price: the estimated Material Execution Price (PEM) per unit, in EUR, excluding VAT.
- unit: the standard unit (m2, m, ud, kg...).
- source: "Estimación de Mercado (IA)" or the reference database you relied on.
- confidence: 0.0 to 1.0.
- reasoning: one sentence on how the price was obtained.

Example:
Input: "Ventana PVC"
Output: {"description": "Ventana PVC oscilobatiente 1x1 m con doble acristalamiento", "price": 350.0, "unit": "ud", "source": "Estimación de Mercado (IA)", "confidence": 0.9, "reasoning": "Precio medio de carpintería PVC estándar."}
"""


class EstimationAgent(BaseAgent):
    """Market price estimator."""

    def __init__(self, llm_service=None, timeout_seconds: Optional[float] = None):
        super().__init__(name="estimation", llm_service=llm_service, timeout_seconds=timeout_seconds)

    async def estimate(self, query: str, context: Optional[str] = None) -> Optional[MarketEstimate]:
        """Estimate the unit price of a task.

        Args:
            query: Task description.
            context: Optional project context appended to the query.

        Returns:
            MarketEstimate, or None if generation failed.
        """
        request = f"{query} {context}".strip() if context else query
        estimate = await self.generate_structured(ESTIMATION_SYSTEM_PROMPT, request, MarketEstimate)

        if estimate is None:
            logger.warning("market_estimate_unavailable", query=query[:80])
        else:
            logger.info(
                "market_estimate_generated",
                query=query[:80],
                price=estimate.price,
                unit=estimate.unit,
                confidence=estimate.confidence
            )
        return estimate
