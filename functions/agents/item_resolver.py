"""Item Resolver.

Turns one task (description, quantity, unit) into exactly one priced
line item. Resolution order:

1. Triage picks a path.
2. budgetSearchAgent: price book and/or material catalog.
   - partida + material: reconcile through the analyst (hybrid)
   - partida only: generic price book item
   - material only: material supply line
   - nothing found: continue to step 3
   askUser: zero-priced clarification placeholder.
3. Decomposition into an assembly of verified partidas.
4. Market estimate; if that fails too, a zero-priced placeholder.
"""

from typing import List, Optional, Union

import structlog

from agents.budget_search_agent import BudgetSearchAgent
from agents.construction_analyst_agent import ConstructionAnalystAgent, PENDING_CODE
from agents.estimation_agent import EstimationAgent
from agents.triage_agent import TriageAgent
from models.agent_output import SearchIntent, SearchResult, TriageDecision, TriageTool
from models.budget import Material, Partida, new_item_id
from services.generation_events import GenerationEventSink, GenerationEventType, safe_emit
from utils.pricing import round_money

logger = structlog.get_logger()

ASSEMBLY_CODE = "ASM-001"
USER_INPUT_CODE = "USER-INPUT"
ESTIMATE_CODE = "EST-IA"
UNRESOLVED_CODE = "SIN-PRECIO"
MATERIAL_CATALOG_MERCHANT = "Material Catalog"

ResolvedItem = Union[Partida, Material]


def unresolved_placeholder(task: str, quantity: float, unit: str, reason: str) -> Partida:
    """Zero-priced estimate line for a task that could not be priced."""
    return Partida(
        id=new_item_id("PENDING"),
        code=UNRESOLVED_CODE,
        description=f"[A Estimar] {task}",
        unit=unit or "ud",
        quantity=quantity,
        unit_price=0.0,
        original_task=task,
        is_estimate=True,
        note=f"Pendiente de valorar. {reason}".strip(),
    )


class ItemResolver:
    """Resolves a single task into a line item."""

    def __init__(
        self,
        triage_agent: TriageAgent,
        budget_search_agent: BudgetSearchAgent,
        analyst_agent: ConstructionAnalystAgent,
        estimation_agent: EstimationAgent,
        event_sink: Optional[GenerationEventSink] = None
    ):
        self.triage = triage_agent
        self.search = budget_search_agent
        self.analyst = analyst_agent
        self.estimation = estimation_agent
        self.event_sink = event_sink

    async def resolve_item(
        self,
        task: str,
        quantity: float = 1.0,
        unit: str = "ud",
        context: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> ResolvedItem:
        """Resolve a task into exactly one line item.

        Args:
            task: Self-contained task description.
            quantity: Measured quantity.
            unit: Measurement unit.
            context: Optional project context.
            session_id: Optional lead/session ID for progress events.

        Returns:
            Partida or Material with totalPrice = unitPrice x quantity.
        """
        decision = await self.triage.classify(task)

        if decision.tool == TriageTool.ASK_USER:
            return self._clarification_placeholder(task, quantity, unit, decision)

        if decision.tool == TriageTool.BUDGET_SEARCH:
            params = decision.parameters
            result = await self.search.resolve(
                query=params.query or task,
                generic_query=params.generic_query,
                intent=params.intent or SearchIntent.BOTH,
                context=context or params.context
            )
            item = await self._from_search_result(task, quantity, result)
            if item is not None:
                return item
            logger.info("budget_search_empty_falling_back", task=task[:80])

        assembly = await self._decompose(task, context, session_id)
        if assembly is not None:
            return assembly

        return await self._estimate(task, quantity, unit, context)

    async def _from_search_result(
        self,
        task: str,
        quantity: float,
        result: SearchResult
    ) -> Optional[ResolvedItem]:
        if result.partida is not None and result.material is not None:
            return await self._hybrid(task, quantity, result)

        if result.partida is not None:
            return result.partida.model_copy(update={
                "id": new_item_id(),
                "quantity": quantity,
                "original_task": task,
                "note": f"Generic Price Book Item. Source: {result.source}",
            })

        if result.material is not None:
            material = result.material
            return Material(
                sku=material.sku,
                name=material.name,
                description=material.description,
                merchant=material.merchant or MATERIAL_CATALOG_MERCHANT,
                unit=material.unit,
                quantity=quantity,
                unit_price=material.price,
                original_task=task,
                note=f"Material Supply Only. Source: {result.source}",
            )

        return None

    async def _hybrid(self, task: str, quantity: float, result: SearchResult) -> Partida:
        try:
            analysis = await self.analyst.reconcile(result.partida, result.material)
            merged = analysis.items[0] if analysis.items else None
        except Exception as e:
            logger.warning("hybrid_reconciliation_failed", task=task[:80], error=str(e))
            merged = None

        if merged is None:
            merged = result.partida

        return merged.model_copy(update={
            "id": new_item_id(),
            "quantity": quantity,
            "original_task": task,
            "note": merged.note or "Hybrid Partida (Analyst Optimized)",
        })

    async def _decompose(self, task: str, context: Optional[str], session_id: Optional[str]) -> Optional[Partida]:
        await safe_emit(self.event_sink, session_id, GenerationEventType.DECOMPOSITION_START, {"description": task})
        try:
            analysis = await self.analyst.decompose(task, context)
        except Exception as e:
            logger.warning("decomposition_failed", task=task[:80], error=str(e))
            return None

        if not analysis.items:
            return None
        return self._assembly(task, analysis.items)

    def _assembly(self, task: str, children: List[Partida]) -> Partida:
        """Collapse sub-items into one assembly line priced by their sum."""
        total = round_money(sum(child.total_price for child in children))
        codes = ", ".join(child.code for child in children)
        return Partida(
            id=new_item_id(),
            code=ASSEMBLY_CODE,
            description=f"[ASSEMBLY] {task} (Desglosado en {len(children)} partidas)",
            unit="ud",
            quantity=1.0,
            unit_price=total,
            original_task=task,
            is_estimate=any(child.code == PENDING_CODE for child in children),
            note=f"Generated via Recursive Decomposition. Items: {codes}",
            children=children,
        )

    async def _estimate(
        self,
        task: str,
        quantity: float,
        unit: str,
        context: Optional[str]
    ) -> Partida:
        estimate = await self.estimation.estimate(task, context)
        if estimate is None:
            return unresolved_placeholder(task, quantity, unit, "No se pudo estimar un precio de mercado.")

        return Partida(
            id=new_item_id("EST"),
            code=ESTIMATE_CODE,
            description=estimate.description,
            unit=estimate.unit,
            quantity=quantity,
            unit_price=estimate.price,
            original_task=task,
            is_estimate=True,
            note=f"Estimado por IA ({estimate.source}). {estimate.reasoning or ''}".strip(),
        )

    def _clarification_placeholder(
        self,
        task: str,
        quantity: float,
        unit: str,
        decision: TriageDecision
    ) -> Partida:
        return Partida(
            id=new_item_id("NEEDS-INPUT"),
            code=USER_INPUT_CODE,
            description=f"⚠️ CLARIFICATION NEEDED: {task}",
            unit=unit or "ud",
            quantity=quantity,
            unit_price=0.0,
            original_task=task,
            is_estimate=True,
            note=f"AI could not decide. Reasoning: {decision.reasoning}",
        )
