"""Construction Analyst Agent.

Two modes:

1. Reconciliation: re-price a generic price book partida with a specific
   catalog material (e.g. a generic tiling partida with a Keraben tile).
   Deterministic, no LLM call.
2. Decomposition: break a composite task into sub-tasks, find price book
   candidates for each, and let an LLM judge accept or reject them.
"""

import re
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

import structlog

from agents.base_agent import BaseAgent
from agents.budget_search_agent import partida_from_candidate
from agents.extraction_agent import ExtractionAgent
from config.errors import ExtractionError
from config.settings import settings
from models.agent_output import AnalystResult, CandidateSelection, Subtask
from models.budget import BreakdownComponent, ComponentType, Partida, RelatedMaterial
from models.catalog import MaterialCandidate, PriceBookCandidate
from services.catalog_retriever import PriceBookRetriever
from utils.pricing import ASSUMED_LABOR_SHARE, round_money, waste_factor_for_material
from utils.text import normalize_text

logger = structlog.get_logger()

LABOR_BASE_CONCEPT = "Mano de Obra y Medios Auxiliares (Base)"
VERIFIED_MATCH_CONFIDENCE = 95
MIN_CANDIDATE_SCORE = 0.60
CANDIDATES_PER_QUERY = 3
PENDING_CODE = "PENDIENTE"

# Price book wording for common colloquial verbs
QUERY_SYNONYMS = (
    ("picar", "demolición de"),
    ("retirada", "carga manual de"),
    ("desmontaje", "demolición de"),
)

# Work that exists once per dwelling; larger quantities are extraction errors.
SINGULAR_KEYWORDS = (
    "ascensor",
    "caldera",
    "cuadro eléctrico",
    "puerta de entrada",
    "bomba de calor",
    "maquina de aire",
)

CANDIDATE_JUDGE_PROMPT = """You match construction tasks to Spanish price book items.

Instructions:
1. Analyze semantic equivalence. "Picar" ≈ "Demolición". "Retirada" ≈ "Carga".
2. Check whether the candidate covers the scope of the task.
3. Select the BEST match by its number (1-N).
4. If NONE is a good match (different trade, or a wildly different price level such as
   10€ vs 2000€ for the same work), return 0.

{"selectedIndex": 1, "reason": "..."}
"""


def query_variations(description: str) -> List[str]:
    """The description plus price-book-style rewrites, de-duplicated."""
    variations = [description]
    lowered = description.lower()
    for colloquial, formal in QUERY_SYNONYMS:
        if colloquial in lowered:
            variations.append(re.sub(colloquial, formal, description, count=1, flags=re.IGNORECASE))
    return list(dict.fromkeys(variations))


def is_singular_work(description: str) -> bool:
    folded = normalize_text(description)
    return any(normalize_text(keyword) in folded for keyword in SINGULAR_KEYWORDS)


def reconcile_partida(partida: Partida, material: MaterialCandidate) -> Partida:
    """Re-price a partida with a specific material.

    The most expensive MATERIAL component of the breakdown is replaced by
    the catalog product (its yield is kept). Without a material component
    the partida is rebuilt as labor (a fixed share of its price) plus the
    product with waste folded into the yield.

    Args:
        partida: Generic price book partida.
        material: Specific catalog product.

    Returns:
        New partida whose unit price is the breakdown sum.
    """
    waste = waste_factor_for_material(material.name)
    concept = f"Material: {material.name} ({material.sku})" if material.sku else f"Material: {material.name}"

    components = list(partida.breakdown)
    material_indexes = [i for i, c in enumerate(components) if c.type == ComponentType.MATERIAL]

    if material_indexes:
        target = max(material_indexes, key=lambda i: components[i].total)
        replaced = components[target]
        components[target] = BreakdownComponent(
            code=material.sku or None,
            concept=concept,
            type=ComponentType.MATERIAL,
            price=material.price,
            yield_factor=replaced.yield_factor,
            waste=replaced.waste,
            is_substituted=True,
        )
        note = (
            f"Precio recalculado con material específico: {material.name}. "
            f"Sustituye a '{replaced.concept}' manteniendo su rendimiento."
        )
    else:
        components = [
            BreakdownComponent(
                concept=LABOR_BASE_CONCEPT,
                type=ComponentType.LABOR,
                price=partida.unit_price * ASSUMED_LABOR_SHARE,
                yield_factor=1.0,
            ),
            BreakdownComponent(
                code=material.sku or None,
                concept=concept,
                type=ComponentType.MATERIAL,
                price=material.price,
                yield_factor=1.0 + waste,
                waste=waste,
                is_substituted=True,
            ),
        ]
        note = (
            f"Precio recalculado con material específico: {material.name}. "
            f"Incluye {waste * 100:.0f}% de merma."
        )

    return partida.model_copy(update={
        "unit_price": round_money(sum(c.total for c in components)),
        "breakdown": components,
        "is_real_cost": True,
        "related_material": RelatedMaterial(
            sku=material.sku,
            name=material.name,
            merchant=material.merchant,
            price=material.price,
            unit=material.unit,
        ),
        "note": note,
    })


class ConstructionAnalystAgent(BaseAgent):
    """Reconciles partidas with materials and decomposes composite tasks."""

    def __init__(
        self,
        price_book_retriever: PriceBookRetriever,
        llm_service=None,
        extraction_agent: Optional[ExtractionAgent] = None,
        timeout_seconds: Optional[float] = None,
        price_book_year: Optional[int] = None
    ):
        super().__init__(name="construction_analyst", llm_service=llm_service, timeout_seconds=timeout_seconds)
        self.price_book = price_book_retriever
        self.extraction = extraction_agent or ExtractionAgent(llm_service=self.llm, timeout_seconds=timeout_seconds)
        self.price_book_year = price_book_year if price_book_year is not None else settings.price_book_year

    async def run(
        self,
        description: Optional[str] = None,
        partida: Optional[Partida] = None,
        material: Optional[MaterialCandidate] = None,
        context: Optional[str] = None
    ) -> AnalystResult:
        """Dispatch to reconciliation or decomposition.

        Reconciliation wins when both a partida and a material are given.
        """
        if partida is not None and material is not None:
            return await self.reconcile(partida, material)
        if description:
            return await self.decompose(description, context)
        logger.warning("analyst_called_without_input")
        return AnalystResult(items=[])

    async def reconcile(self, partida: Partida, material: MaterialCandidate) -> AnalystResult:
        """Re-price a partida with a specific material."""
        merged = reconcile_partida(partida, material)
        logger.info(
            "analyst_reconciled",
            code=partida.code,
            material=material.name,
            original_price=partida.unit_price,
            new_price=merged.unit_price
        )
        return AnalystResult(items=[merged])

    async def decompose(self, description: str, context: Optional[str] = None) -> AnalystResult:
        """Decompose a composite task into verified price book partidas.

        Args:
            description: Composite task, e.g. "Reforma integral de baño de 6 m2".
            context: Optional project context for the judge.

        Returns:
            AnalystResult; empty when decomposition produced nothing.
        """
        try:
            subtasks = await self.extraction.extract(description, context)
        except ExtractionError:
            logger.info("analyst_decomposition_empty", description=description[:80])
            return AnalystResult(items=[])

        aggregated: "OrderedDict[str, Partida]" = OrderedDict()

        for index, subtask in enumerate(subtasks):
            candidates = await self._gather_candidates(subtask.search_query)
            selected, reason = await self._select_candidate(subtask, candidates, context)

            if selected is not None:
                existing = aggregated.get(selected.code)
                if existing is not None:
                    aggregated[selected.code] = existing.model_copy(update={
                        "quantity": existing.quantity + subtask.quantity
                    })
                else:
                    partida = partida_from_candidate(selected, quantity=subtask.quantity)
                    aggregated[selected.code] = partida.model_copy(update={
                        "unit": selected.unit or subtask.unit,
                        "original_task": subtask.search_query,
                        "is_real_cost": True,
                        "match_confidence": VERIFIED_MATCH_CONFIDENCE,
                        "note": f"✅ AI Verified Match: {reason}".strip(),
                    })
            else:
                note = "⚠ Sin coincidencia verificada."
                if reason:
                    note += f" (AI: {reason})"
                aggregated[f"REVIEW:{subtask.search_query}:{index}"] = Partida(
                    code=PENDING_CODE,
                    description=subtask.search_query,
                    unit=subtask.unit,
                    quantity=subtask.quantity,
                    unit_price=0.0,
                    original_task=subtask.search_query,
                    is_estimate=True,
                    match_confidence=0,
                    note=note,
                )

        items = []
        for order, item in enumerate(aggregated.values(), start=1):
            update = {"order": order}
            if item.quantity > 1 and is_singular_work(item.description):
                logger.warning("analyst_quantity_capped", description=item.description[:80], quantity=item.quantity)
                update["quantity"] = 1.0
            items.append(item.model_copy(update=update))

        logger.info(
            "analyst_decomposed",
            description=description[:80],
            subtasks=len(subtasks),
            items=len(items),
            pending=sum(1 for i in items if i.code == PENDING_CODE)
        )
        return AnalystResult(items=items)

    async def _gather_candidates(self, description: str) -> List[PriceBookCandidate]:
        """Search every query variation and keep viable, distinct candidates."""
        seen: Dict[str, PriceBookCandidate] = {}
        for query in query_variations(description):
            results = await self.price_book.search(
                query, limit=CANDIDATES_PER_QUERY, year=self.price_book_year, context=query
            )
            for candidate in results:
                key = candidate.id or candidate.code
                if key not in seen:
                    seen[key] = candidate
        return [c for c in seen.values() if c.match_score > MIN_CANDIDATE_SCORE]

    async def _select_candidate(
        self,
        subtask: Subtask,
        candidates: List[PriceBookCandidate],
        context: Optional[str]
    ) -> Tuple[Optional[PriceBookCandidate], str]:
        """Ask the judge to pick one candidate. Returns (candidate or None, reason)."""
        if not candidates:
            return None, ""

        listing = "\n".join(
            f"{i}. [{c.code}] {c.description} (Price: {c.effective_unit_price:.2f}€/{c.unit})"
            for i, c in enumerate(candidates, start=1)
        )
        message = (
            f'Task: "{subtask.search_query}"\n'
            f'Context: "{context or ""}"\n\n'
            f"Candidates:\n{listing}"
        )

        selection = await self.generate_structured(CANDIDATE_JUDGE_PROMPT, message, CandidateSelection)
        if selection is None:
            return None, ""
        if 1 <= selection.selected_index <= len(candidates):
            return candidates[selection.selected_index - 1], selection.reason
        return None, selection.reason
