"""Errors raised by the budget engine.

Every error carries a stable code so HTTP handlers and progress events
can report it without parsing messages.
"""

from typing import Any, Dict, Optional


class ErrorCode:
    """Stable error codes."""

    # Request
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Agents and pipeline
    AGENT_FAILED = "AGENT_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    GENERATION_FAILED = "GENERATION_FAILED"

    # Catalog search
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    VECTOR_SEARCH_FAILED = "VECTOR_SEARCH_FAILED"

    # Firestore
    FIRESTORE_ERROR = "FIRESTORE_ERROR"
    FIRESTORE_WRITE_FAILED = "FIRESTORE_WRITE_FAILED"
    BUDGET_NOT_FOUND = "BUDGET_NOT_FOUND"

    # LLM provider
    LLM_ERROR = "LLM_ERROR"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_CONTEXT_TOO_LONG = "LLM_CONTEXT_TOO_LONG"


class BudgetEngineError(Exception):
    """Base error of the budget engine.

    Attributes:
        code: One of the ErrorCode constants.
        message: Message safe to return to API clients.
        details: Extra context (IDs, provider error text...).
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Error body used in API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(BudgetEngineError):
    """Malformed request or input value."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        if field:
            details = {**(details or {}), "field": field}
        super().__init__(code=ErrorCode.VALIDATION_ERROR, message=message, details=details)


class AgentError(BudgetEngineError):
    """An agent could not produce its output."""

    def __init__(
        self,
        code: str,
        message: str,
        agent_name: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(code=code, message=message, details={**(details or {}), "agent_name": agent_name})
        self.agent_name = agent_name


class ExtractionError(BudgetEngineError):
    """No tasks could be extracted from a request.

    The only failure that aborts a whole budget generation.
    """

    def __init__(self, message: str = "Could not extract tasks from request", details: Optional[Dict[str, Any]] = None):
        super().__init__(code=ErrorCode.EXTRACTION_FAILED, message=message, details=details)
