"""Pytest configuration and shared fixtures for budget engine tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock, patch


# ============================================================================
# Ensure local imports work (agents/, models/, services/, config/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from agents...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock

    document_mock.get = AsyncMock(return_value=MagicMock(
        exists=False,
        id="missing",
        to_dict=lambda: {}
    ))
    document_mock.set = AsyncMock()
    document_mock.update = AsyncMock()

    # Subcollection: client.collection().document().collection()
    subcollection_mock = MagicMock()
    subcollection_mock.add = AsyncMock()
    document_mock.collection.return_value = subcollection_mock

    return client


@pytest.fixture
def mock_firestore_service(mock_firestore_client):
    """FirestoreService with mocked client."""
    from services.firestore_service import FirestoreService

    return FirestoreService(db=mock_firestore_client)


# ============================================================================
# LLM Mocks
# ============================================================================

@pytest.fixture
def mock_chat_openai():
    """Mock ChatOpenAI client."""
    mock = AsyncMock()
    mock.ainvoke.return_value = MagicMock(
        content="Mock response content",
        response_metadata={"token_usage": {"total_tokens": 100}}
    )
    return mock


@pytest.fixture
def mock_llm_service(mock_chat_openai):
    """LLMService backed by a mocked ChatOpenAI."""
    from services.llm_service import LLMService

    with patch('services.llm_service.ChatOpenAI', return_value=mock_chat_openai):
        service = LLMService(model="gpt-4o", api_key="test-api-key")
        service._client = mock_chat_openai
        return service


@pytest.fixture
def structured_llm():
    """LLM stand-in whose structured output is set per test.

    Set ``structured_llm.generate_structured.return_value`` (or
    ``side_effect``) to the pydantic model the agent should receive.
    """
    llm = MagicMock()
    llm.generate_structured = AsyncMock(return_value=None)
    llm.total_tokens_used = 0
    return llm


# ============================================================================
# Catalog Mocks
# ============================================================================

@pytest.fixture
def mock_price_book_retriever():
    """Price book retriever returning nothing unless configured."""
    retriever = MagicMock()
    retriever.search = AsyncMock(return_value=[])
    return retriever


@pytest.fixture
def mock_material_retriever():
    """Material retriever returning nothing unless configured."""
    retriever = MagicMock()
    retriever.search = AsyncMock(return_value=[])
    return retriever


@pytest.fixture
def mock_embedding_service():
    """Embedding service returning a constant 768-d vector."""
    service = MagicMock()
    service.embed = AsyncMock(return_value=[0.1] * 768)
    return service


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def test_settings():
    """Explicit settings, independent of the environment."""
    from config.settings import Settings

    return Settings(
        llm_model="gpt-4o",
        llm_temperature=0.1,
        embedding_model="text-embedding-3-small",
        embedding_dimensions=768,
        price_book_collection="price_book_items",
        material_catalog_collection="material_catalog",
        price_book_year=2024,
        use_firebase_emulators=True,
        agent_timeout_seconds=5,
        retrieval_timeout_seconds=5,
        item_timeout_seconds=5,
        max_concurrent_items=1,
        _openai_api_key="test-api-key",
    )
