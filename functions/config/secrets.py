"""Secret access for the budget engine.

Production reads Firebase secrets from Google Cloud Secret Manager. Under
the emulator (or when no project is configured) secrets come from the
environment, which is also the fallback when Secret Manager is unreachable.

Usage:
    from config.secrets import get_openai_api_key

    api_key = get_openai_api_key()
"""

import os
from functools import lru_cache
from typing import Optional

import structlog

logger = structlog.get_logger()

OPENAI_API_KEY_SECRET = "OPENAI_API_KEY"
PROJECT_ENV_VARS = ("GCLOUD_PROJECT", "GOOGLE_CLOUD_PROJECT", "FIREBASE_PROJECT_ID")


def is_emulator_mode() -> bool:
    """Check if running under the Firebase emulators."""
    return (
        os.environ.get("FUNCTIONS_EMULATOR") == "true" or
        os.environ.get("FIRESTORE_EMULATOR_HOST") is not None
    )


def _project_id() -> Optional[str]:
    for name in PROJECT_ENV_VARS:
        if os.environ.get(name):
            return os.environ[name]
    return None


def secret_version_name(project_id: str, secret_id: str, version: str = "latest") -> str:
    """Full Secret Manager resource name of a secret version."""
    return f"projects/{project_id}/secrets/{secret_id}/versions/{version}"


def get_secret(secret_id: str, version: str = "latest") -> Optional[str]:
    """Read a secret.

    Args:
        secret_id: Secret name, e.g. "OPENAI_API_KEY".
        version: Secret Manager version.

    Returns:
        The secret value, or None if it is not configured anywhere.
    """
    project_id = _project_id()
    if is_emulator_mode() or not project_id:
        value = os.environ.get(secret_id)
        if not value:
            logger.warning("secret_missing_from_environment", secret_id=secret_id)
        return value

    from google.cloud import secretmanager

    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(
            request={"name": secret_version_name(project_id, secret_id, version)}
        )
        return response.payload.data.decode("UTF-8")
    except Exception as e:
        logger.warning("secret_manager_read_failed", secret_id=secret_id, error=str(e))
        return os.environ.get(secret_id)


@lru_cache(maxsize=1)
def get_openai_api_key() -> Optional[str]:
    """OpenAI API key, shared by chat completions and embeddings."""
    return get_secret(OPENAI_API_KEY_SECRET)


def clear_secret_cache() -> None:
    """Forget cached secrets (after a rotation, or between tests)."""
    get_openai_api_key.cache_clear()
