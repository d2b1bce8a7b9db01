"""Composition root for the budget pipeline.

Wires services, retrievers and agents into a BudgetOrchestrator. Every
dependency can be injected, which is how the tests swap in mocks.
"""

from typing import Optional

from agents.architect_agent import ConstructionArchitectAgent
from agents.budget_search_agent import BudgetSearchAgent
from agents.construction_analyst_agent import ConstructionAnalystAgent
from agents.estimation_agent import EstimationAgent
from agents.extraction_agent import ExtractionAgent
from agents.item_resolver import ItemResolver
from agents.orchestrator import BudgetOrchestrator
from agents.triage_agent import TriageAgent
from agents.validation_agent import ValidationAgent
from config.settings import Settings, settings as default_settings
from services.catalog_retriever import MaterialRetriever, PriceBookRetriever
from services.embedding_service import EmbeddingService
from services.firestore_service import FirestoreService
from services.generation_events import GenerationEventSink
from services.llm_service import LLMService


def create_item_resolver(
    llm_service: LLMService,
    price_book_retriever: PriceBookRetriever,
    material_retriever: MaterialRetriever,
    config: Settings,
    event_sink: Optional[GenerationEventSink] = None
) -> ItemResolver:
    """Build the item resolver and its agents."""
    timeout = config.agent_timeout_seconds
    extraction = ExtractionAgent(llm_service=llm_service, timeout_seconds=timeout)

    return ItemResolver(
        triage_agent=TriageAgent(llm_service=llm_service, timeout_seconds=timeout),
        budget_search_agent=BudgetSearchAgent(
            price_book_retriever,
            material_retriever,
            price_book_year=config.price_book_year
        ),
        analyst_agent=ConstructionAnalystAgent(
            price_book_retriever,
            llm_service=llm_service,
            extraction_agent=extraction,
            timeout_seconds=timeout,
            price_book_year=config.price_book_year
        ),
        estimation_agent=EstimationAgent(llm_service=llm_service, timeout_seconds=timeout),
        event_sink=event_sink,
    )


def create_budget_orchestrator(
    config: Optional[Settings] = None,
    llm_service: Optional[LLMService] = None,
    embedding_service: Optional[EmbeddingService] = None,
    firestore_service: Optional[FirestoreService] = None,
    event_sink: Optional[GenerationEventSink] = None
) -> BudgetOrchestrator:
    """Build a fully wired BudgetOrchestrator.

    Args:
        config: Settings (default: module settings).
        llm_service: Shared LLM service.
        embedding_service: Embedding service for both retrievers.
        firestore_service: Firestore access (vector search, budget config).
        event_sink: Optional progress event sink.

    Returns:
        BudgetOrchestrator; its ``resolver`` resolves single items.
    """
    config = config or default_settings
    llm = llm_service or LLMService(model=config.llm_model, temperature=config.llm_temperature)
    embeddings = embedding_service or EmbeddingService(
        model=config.embedding_model,
        dimensions=config.embedding_dimensions
    )
    firestore = firestore_service or FirestoreService()

    price_book = PriceBookRetriever(
        embeddings,
        firestore,
        collection=config.price_book_collection,
        timeout_seconds=config.retrieval_timeout_seconds
    )
    materials = MaterialRetriever(
        embeddings,
        firestore,
        collection=config.material_catalog_collection,
        timeout_seconds=config.retrieval_timeout_seconds
    )

    resolver = create_item_resolver(llm, price_book, materials, config, event_sink)
    timeout = config.agent_timeout_seconds

    return BudgetOrchestrator(
        extraction_agent=ExtractionAgent(llm_service=llm, timeout_seconds=timeout),
        item_resolver=resolver,
        validation_agent=ValidationAgent(llm_service=llm, timeout_seconds=timeout),
        analyst_agent=resolver.analyst,
        architect_agent=ConstructionArchitectAgent(llm_service=llm, timeout_seconds=timeout),
        config_provider=firestore,
        event_sink=event_sink,
        max_concurrent_items=config.max_concurrent_items,
        item_timeout_seconds=config.item_timeout_seconds
    )
