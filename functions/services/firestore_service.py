"""Firestore service for the budget engine.

Provides budget persistence, budget configuration, generation event
writes and vector search over the catalog collections.
"""

from typing import Dict, Any, Optional, List
import asyncio
import inspect
import structlog

from firebase_admin import firestore
from google.cloud.firestore_v1.base_vector_query import DistanceMeasure
from google.cloud.firestore_v1.vector import Vector

from config.errors import BudgetEngineError, ErrorCode
from models.budget import Budget
from models.budget_config import BudgetConfig, DEFAULT_BUDGET_CONFIG

logger = structlog.get_logger()


class FirestoreService:
    """Service for Firestore operations.

    Note: Firebase Admin SDK for Python is synchronous. Persistence calls
    run inline; vector search runs in a worker thread because it sits on
    the timed retrieval path.
    """

    COLLECTION_BUDGETS = "budgets"
    COLLECTION_BUDGET_CONFIGS = "budget_configs"
    COLLECTION_LEADS = "leads"
    SUBCOLLECTION_GENERATION_EVENTS = "generation_events"

    DEFAULT_CONFIG_ID = "default"
    EMBEDDING_FIELD = "embedding"
    DISTANCE_FIELD = "vector_distance"

    def __init__(self, db=None):
        """Initialize FirestoreService.

        Args:
            db: Optional Firestore client. If not provided, uses default.
        """
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    # -------------------------------------------------------------------------
    # Budget configuration
    # -------------------------------------------------------------------------

    async def get_budget_config(self, config_id: str = DEFAULT_CONFIG_ID) -> BudgetConfig:
        """Load the budget configuration, merged over the defaults.

        A missing document or a read failure yields the defaults.

        Args:
            config_id: Config document ID.

        Returns:
            BudgetConfig.
        """
        try:
            doc_ref = self.db.collection(self.COLLECTION_BUDGET_CONFIGS).document(config_id)
            doc = await self._maybe_await(doc_ref.get())

            if doc.exists:
                return BudgetConfig.from_document({"id": doc.id, **doc.to_dict()})

            logger.info("budget_config_missing_using_defaults", config_id=config_id)
            return DEFAULT_BUDGET_CONFIG

        except Exception as e:
            logger.warning("budget_config_read_failed", config_id=config_id, error=str(e))
            return DEFAULT_BUDGET_CONFIG

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def save_budget(self, budget: Budget) -> None:
        """Persist a generated budget at /budgets/{id}.

        Raises:
            BudgetEngineError: If Firestore operation fails.
        """
        try:
            data = budget.to_firestore()
            data["updatedAt"] = firestore.SERVER_TIMESTAMP

            doc_ref = self.db.collection(self.COLLECTION_BUDGETS).document(budget.id)
            await self._maybe_await(doc_ref.set(data))
            logger.info("budget_saved", budget_id=budget.id, lead_id=budget.lead_id)

        except Exception as e:
            logger.error("firestore_save_budget_failed", budget_id=budget.id, error=str(e))
            raise BudgetEngineError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to save budget: {str(e)}",
                details={"budget_id": budget.id}
            )

    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        """Fetch a budget by ID.

        Returns:
            Budget or None if not found.

        Raises:
            BudgetEngineError: If Firestore operation fails.
        """
        try:
            doc_ref = self.db.collection(self.COLLECTION_BUDGETS).document(budget_id)
            doc = await self._maybe_await(doc_ref.get())

            if not doc.exists:
                return None

            data = doc.to_dict()
            data.pop("updatedAt", None)
            return Budget.model_validate({"id": doc.id, **data})

        except Exception as e:
            logger.error("firestore_get_budget_failed", budget_id=budget_id, error=str(e))
            raise BudgetEngineError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get budget: {str(e)}",
                details={"budget_id": budget_id}
            )

    # -------------------------------------------------------------------------
    # Generation events
    # -------------------------------------------------------------------------

    async def add_generation_event(self, lead_id: str, event: Dict[str, Any]) -> None:
        """Append a progress event to /leads/{leadId}/generation_events.

        Raises:
            BudgetEngineError: If Firestore operation fails.
        """
        try:
            collection = (
                self.db.collection(self.COLLECTION_LEADS)
                .document(lead_id)
                .collection(self.SUBCOLLECTION_GENERATION_EVENTS)
            )
            await self._maybe_await(collection.add(event))

        except Exception as e:
            raise BudgetEngineError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to write generation event: {str(e)}",
                details={"lead_id": lead_id, "type": event.get("type")}
            )

    # -------------------------------------------------------------------------
    # Vector search
    # -------------------------------------------------------------------------

    async def find_nearest(
        self,
        collection: str,
        vector: List[float],
        limit: int
    ) -> List[Dict[str, Any]]:
        """Cosine nearest-neighbour search over a catalog collection.

        Args:
            collection: Collection name.
            vector: Query embedding.
            limit: Maximum number of documents.

        Returns:
            Document dicts (without the embedding) with ``id`` and
            ``matchScore`` (1 - cosine distance, higher is better).

        Raises:
            BudgetEngineError: If the query fails.
        """
        try:
            query = self.db.collection(collection).find_nearest(
                vector_field=self.EMBEDDING_FIELD,
                query_vector=Vector(vector),
                distance_measure=DistanceMeasure.COSINE,
                limit=limit,
                distance_result_field=self.DISTANCE_FIELD,
            )
            # Sync client: run off the event loop
            docs = await self._maybe_await(await asyncio.to_thread(query.get))

        except Exception as e:
            logger.error("vector_search_failed", collection=collection, error=str(e))
            raise BudgetEngineError(
                code=ErrorCode.VECTOR_SEARCH_FAILED,
                message=f"Vector search failed: {str(e)}",
                details={"collection": collection}
            )

        results = []
        for doc in docs:
            data = doc.to_dict() or {}
            data.pop(self.EMBEDDING_FIELD, None)
            distance = data.pop(self.DISTANCE_FIELD, None)
            results.append({
                **data,
                "id": doc.id,
                "matchScore": 1 - distance if distance is not None else 0.0,
            })

        logger.debug("vector_search_completed", collection=collection, results=len(results))
        return results
