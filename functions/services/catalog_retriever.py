"""Catalog retrievers.

Semantic search over the price book and the material catalog. Retrieval
never raises: an empty query, an embedding or vector search failure, or
a timeout all yield an empty candidate list.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import structlog

from config.settings import settings
from models.catalog import MaterialCandidate, PriceBookCandidate
from utils.text import extract_keywords, normalize_text

logger = structlog.get_logger()

# Candidates fetched per requested result when post-filtering or re-ranking
OVERFETCH_FACTOR = 3
CONTEXT_BOOST_WEIGHT = 0.05


def apply_context_boost(
    candidates: List[PriceBookCandidate],
    context: str
) -> List[PriceBookCandidate]:
    """Re-weight candidates by keyword overlap with a context string.

    Each context keyword found anywhere in the candidate text (description,
    chapter, section) counts once, and again when found in its chapter or
    section. The score is scaled by ``1 + 0.05 * overlap``.

    Args:
        candidates: Candidates with similarity scores.
        context: Free-text context, e.g. the project description.

    Returns:
        New candidates with boosted ``match_score`` (order unchanged).
    """
    keywords = extract_keywords(context)
    if not keywords:
        return list(candidates)

    boosted = []
    for candidate in candidates:
        taxonomy = normalize_text(f"{candidate.chapter or ''} {candidate.section or ''}")
        full_text = f"{normalize_text(candidate.description)} {taxonomy}"

        text_hits = sum(1 for keyword in keywords if keyword in full_text)
        taxonomy_hits = sum(1 for keyword in keywords if keyword in taxonomy)
        overlap = text_hits / len(keywords) + taxonomy_hits / len(keywords)

        boosted.append(candidate.model_copy(update={
            "match_score": candidate.match_score * (1 + CONTEXT_BOOST_WEIGHT * overlap)
        }))
    return boosted


class CatalogRetriever(ABC):
    """Base class for vector search over one catalog collection."""

    name = "catalog"

    def __init__(
        self,
        embedding_service,
        firestore_service,
        collection: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.embeddings = embedding_service
        self.firestore = firestore_service
        self.collection = collection or self.default_collection()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.retrieval_timeout_seconds
        )

    @abstractmethod
    def default_collection(self) -> str:
        ...

    @abstractmethod
    async def _search(self, query: str, limit: int, **filters) -> List[Any]:
        ...

    async def search(self, query: str, limit: int = 5, **filters) -> List[Any]:
        """Return up to ``limit`` candidates, best first.

        Args:
            query: Free-text search query.
            limit: Maximum number of candidates.
            **filters: Retriever-specific filters.

        Returns:
            Candidate list, empty on any failure.
        """
        if not query or not query.strip() or limit <= 0:
            return []

        try:
            results = await asyncio.wait_for(
                self._search(query.strip(), limit, **filters),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("catalog_search_timeout", catalog=self.name, query=query[:80])
            return []
        except Exception as e:
            logger.warning("catalog_search_failed", catalog=self.name, query=query[:80], error=str(e))
            return []

        logger.info("catalog_search_completed", catalog=self.name, query=query[:80], results=len(results))
        return results

    async def _vector_search(self, query: str, limit: int) -> List[Dict[str, Any]]:
        vector = await self.embeddings.embed(query)
        return await self.firestore.find_nearest(self.collection, vector, limit)


class PriceBookRetriever(CatalogRetriever):
    """Semantic search over the price book."""

    name = "price_book"

    def default_collection(self) -> str:
        return settings.price_book_collection

    async def search(
        self,
        query: str,
        limit: int = 5,
        year: Optional[int] = None,
        context: Optional[str] = None
    ) -> List[PriceBookCandidate]:
        """Search the price book.

        Args:
            query: Free-text search query.
            limit: Maximum number of candidates.
            year: Keep only items of this edition (items without a year are kept).
            context: Optional text whose keywords boost matching candidates.
        """
        return await super().search(query, limit, year=year, context=context)

    async def _search(
        self,
        query: str,
        limit: int,
        year: Optional[int] = None,
        context: Optional[str] = None
    ) -> List[PriceBookCandidate]:
        fetch_limit = limit * OVERFETCH_FACTOR if (year or context) else limit
        documents = await self._vector_search(query, fetch_limit)
        candidates = [PriceBookCandidate.from_document(doc) for doc in documents]

        if year:
            candidates = [c for c in candidates if c.year is None or c.year == year]

        if context and context.strip():
            candidates = apply_context_boost(candidates, context)

        candidates.sort(key=lambda c: c.match_score, reverse=True)
        return candidates[:limit]


class MaterialRetriever(CatalogRetriever):
    """Semantic search over the material catalog."""

    name = "material_catalog"

    def default_collection(self) -> str:
        return settings.material_catalog_collection

    async def _search(self, query: str, limit: int) -> List[MaterialCandidate]:
        documents = await self._vector_search(query, limit)
        candidates = [MaterialCandidate.from_document(doc) for doc in documents]
        candidates.sort(key=lambda c: c.match_score, reverse=True)
        return candidates[:limit]
