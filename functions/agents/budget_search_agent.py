"""Budget Search Agent.

Deterministic lookup over the price book and the material catalog,
driven by the triage intent:

- PARTIDA: price book only
- MATERIAL: material catalog, plus the price book with the generic
  (brand-free) query when triage produced one
- BOTH: both catalogs with the specific query, falling back to the
  generic query for the price book
"""

from typing import List, Optional

import structlog

from config.settings import settings
from models.agent_output import SearchIntent, SearchResult
from models.budget import BreakdownComponent, ComponentType, Partida
from models.catalog import PriceBookCandidate
from services.catalog_retriever import MaterialRetriever, PriceBookRetriever
from utils.pricing import is_labor_code

logger = structlog.get_logger()

SEARCH_SOURCE = "vector-search"
PARTIDA_CONFIDENCE = 0.9
MATERIAL_CONFIDENCE = 0.8


def breakdown_from_candidate(candidate: PriceBookCandidate) -> List[BreakdownComponent]:
    """Map a price book breakdown to typed components."""
    return [
        BreakdownComponent(
            code=entry.code or None,
            concept=entry.description or entry.code or "Componente",
            type=ComponentType.LABOR if is_labor_code(entry.code) else ComponentType.MATERIAL,
            price=max(entry.price, 0.0),
            yield_factor=max(entry.quantity, 0.0),
        )
        for entry in candidate.breakdown
    ]


def partida_from_candidate(candidate: PriceBookCandidate, quantity: float = 1.0) -> Partida:
    """Build a partida from a price book candidate.

    The unit price is the stored price, or the breakdown sum when the
    stored price is missing or zero.
    """
    return Partida(
        code=candidate.code,
        description=candidate.description,
        unit=candidate.unit,
        quantity=quantity,
        unit_price=max(candidate.effective_unit_price, 0.0),
        breakdown=breakdown_from_candidate(candidate),
        match_confidence=round(min(max(candidate.match_score, 0.0), 1.0) * 100, 1),
    )


class BudgetSearchAgent:
    """Looks a task up in the price book and the material catalog."""

    name = "budget_search"

    def __init__(
        self,
        price_book_retriever: PriceBookRetriever,
        material_retriever: MaterialRetriever,
        price_book_year: Optional[int] = None
    ):
        self.price_book = price_book_retriever
        self.materials = material_retriever
        self.price_book_year = price_book_year if price_book_year is not None else settings.price_book_year

    async def resolve(
        self,
        query: str,
        generic_query: Optional[str] = None,
        intent: SearchIntent = SearchIntent.BOTH,
        context: Optional[str] = None
    ) -> SearchResult:
        """Search the catalogs selected by intent.

        Args:
            query: Specific search query.
            generic_query: Brand-free query for the price book fallback.
            intent: Catalogs to consult.
            context: Optional context used to re-rank price book candidates.

        Returns:
            SearchResult; empty (confidence 0) when nothing matched.
        """
        generic_query = (generic_query or "").strip() or None

        partida = None
        if intent in (SearchIntent.PARTIDA, SearchIntent.BOTH) or (
            intent == SearchIntent.MATERIAL and generic_query
        ):
            partida = await self._search_price_book(query, generic_query, intent, context)

        material = None
        if intent in (SearchIntent.MATERIAL, SearchIntent.BOTH):
            candidates = await self.materials.search(query, limit=1)
            material = candidates[0] if candidates else None

        if partida is not None:
            confidence = PARTIDA_CONFIDENCE
        elif material is not None:
            confidence = MATERIAL_CONFIDENCE
        else:
            confidence = 0.0

        logger.info(
            "budget_search_completed",
            intent=intent.value,
            found_partida=partida is not None,
            found_material=material is not None,
            confidence=confidence
        )

        return SearchResult(
            partida=partida,
            material=material,
            confidence=confidence,
            source=SEARCH_SOURCE
        )

    async def _search_price_book(
        self,
        query: str,
        generic_query: Optional[str],
        intent: SearchIntent,
        context: Optional[str]
    ) -> Optional[Partida]:
        candidates = []
        # A MATERIAL intent names a product; only its generic form fits the price book.
        if intent != SearchIntent.MATERIAL:
            candidates = await self.price_book.search(
                query, limit=1, year=self.price_book_year, context=context
            )

        if not candidates and generic_query:
            logger.info("price_book_generic_fallback", generic_query=generic_query)
            candidates = await self.price_book.search(
                generic_query, limit=1, year=self.price_book_year, context=context
            )

        if not candidates:
            return None
        return partida_from_candidate(candidates[0])
