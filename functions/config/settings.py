"""Runtime settings of the budget engine.

Values come from environment variables (optionally a local .env file).
The OpenAI key is the only secret and is resolved through config.secrets.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Non-secret local overrides: emulator hosts, model names, timeouts
load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


@dataclass
class Settings:
    """Budget engine settings.

    Every field reads its environment variable when the instance is
    created, so tests can build a Settings with explicit values instead.
    """

    # Chat model
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o"))
    llm_temperature: float = field(default_factory=lambda: _env_float("LLM_TEMPERATURE", "0.1"))

    # Embeddings (the catalogs are indexed with 768-dimension vectors)
    embedding_model: str = field(default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"))
    embedding_dimensions: int = field(default_factory=lambda: _env_int("EMBEDDING_DIMENSIONS", "768"))

    # Catalogs
    price_book_collection: str = field(default_factory=lambda: os.getenv("PRICE_BOOK_COLLECTION", "price_book_items"))
    material_catalog_collection: str = field(default_factory=lambda: os.getenv("MATERIAL_CATALOG_COLLECTION", "material_catalog"))
    price_book_year: int = field(default_factory=lambda: _env_int("PRICE_BOOK_YEAR", "2024"))

    # Firebase
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    use_firebase_emulators: bool = field(
        default_factory=lambda: os.getenv("USE_FIREBASE_EMULATORS", "false").lower() == "true"
    )
    firestore_emulator_host: str = field(default_factory=lambda: os.getenv("FIRESTORE_EMULATOR_HOST", "localhost:8080"))

    # Pipeline timeouts and concurrency
    agent_timeout_seconds: float = field(default_factory=lambda: _env_float("AGENT_TIMEOUT_SECONDS", "60"))
    retrieval_timeout_seconds: float = field(default_factory=lambda: _env_float("RETRIEVAL_TIMEOUT_SECONDS", "15"))
    item_timeout_seconds: float = field(default_factory=lambda: _env_float("ITEM_TIMEOUT_SECONDS", "180"))
    max_concurrent_items: int = field(default_factory=lambda: _env_int("MAX_CONCURRENT_ITEMS", "1"))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Resolved lazily by the openai_api_key property
    _openai_api_key: Optional[str] = field(default=None, repr=False)

    @property
    def openai_api_key(self) -> Optional[str]:
        """OpenAI API key, read once from Secret Manager or the environment."""
        if self._openai_api_key is None:
            from config.secrets import get_openai_api_key
            self._openai_api_key = get_openai_api_key()
        return self._openai_api_key

    @property
    def is_emulator_mode(self) -> bool:
        return self.use_firebase_emulators

    def validate(self) -> None:
        """Check the settings a deployed function cannot run without.

        Raises:
            ValueError: If a required value is missing or out of range.
        """
        if not self.openai_api_key and not self.use_firebase_emulators:
            raise ValueError("OPENAI_API_KEY is required outside the emulator")
        if self.max_concurrent_items < 1:
            raise ValueError("MAX_CONCURRENT_ITEMS must be >= 1")
        if self.embedding_dimensions <= 0:
            raise ValueError("EMBEDDING_DIMENSIONS must be positive")


settings = Settings()
