"""LLM access for the budget agents.

Wraps LangChain's ChatOpenAI with token accounting, JSON parsing and
schema-validated output. Rate limits are retried with backoff; every
other provider failure surfaces as a BudgetEngineError.
"""

import json
from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.errors import BudgetEngineError, ErrorCode
from config.settings import settings

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

RATE_LIMIT_MAX_ATTEMPTS = 3
RAW_CONTENT_PREVIEW = 500
JSON_ONLY_INSTRUCTION = (
    "Answer with a single JSON object and nothing else: "
    "no markdown fences, no commentary."
)

_RATE_LIMIT_MARKERS = ("rate_limit", "rate limit", "too many requests")
_CONTEXT_MARKERS = ("context_length", "maximum context")


def _is_rate_limit_error(error: BaseException) -> bool:
    return isinstance(error, BudgetEngineError) and error.code == ErrorCode.LLM_RATE_LIMIT


def to_engine_error(error: Exception) -> BudgetEngineError:
    """Map a provider exception to an engine error with a stable code."""
    text = str(error)
    lowered = text.lower()
    details = {"original_error": text}

    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return BudgetEngineError(ErrorCode.LLM_RATE_LIMIT, "LLM provider rate limit reached", details)
    if any(marker in lowered for marker in _CONTEXT_MARKERS):
        return BudgetEngineError(ErrorCode.LLM_CONTEXT_TOO_LONG, "Prompt exceeds the model context window", details)
    return BudgetEngineError(ErrorCode.LLM_ERROR, f"LLM call failed: {text}", details)


def parse_json_content(content: str) -> Any:
    """Parse a JSON answer, tolerating a surrounding markdown fence.

    Raises:
        json.JSONDecodeError: If the content is not JSON.
    """
    text = content.strip()
    if text.startswith("```"):
        text = text[3:]
        if text.lower().startswith("json"):
            text = text[4:]
    if text.endswith("```"):
        text = text[:-3]
    return json.loads(text.strip())


class LLMService:
    """Chat model client shared by the budget agents."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None
    ):
        """Initialize LLMService.

        Args:
            model: Chat model name (default from settings).
            temperature: Sampling temperature (default from settings).
            api_key: OpenAI API key (default from settings).
        """
        self.model = model or settings.llm_model
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.api_key = api_key or settings.openai_api_key

        self._client: Optional[ChatOpenAI] = None
        self._tokens = 0

    @property
    def client(self) -> ChatOpenAI:
        """ChatOpenAI client, created on first use."""
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=self.api_key
            )
        return self._client

    @property
    def total_tokens_used(self) -> int:
        return self._tokens

    def _record_usage(self, response: Any) -> int:
        metadata = getattr(response, "response_metadata", None) or {}
        tokens = metadata.get("token_usage", {}).get("total_tokens", 0)
        self._tokens += tokens
        return tokens

    @retry(
        stop=stop_after_attempt(RATE_LIMIT_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(_is_rate_limit_error),
        reraise=True,
    )
    async def generate(
        self,
        messages: List[BaseMessage],
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Send messages to the chat model.

        Args:
            messages: LangChain messages.
            max_tokens: Optional completion limit.

        Returns:
            {"content": str, "tokens_used": int}

        Raises:
            BudgetEngineError: LLM_RATE_LIMIT (after retries),
                LLM_CONTEXT_TOO_LONG or LLM_ERROR.
        """
        call_options = {"max_tokens": max_tokens} if max_tokens else {}

        try:
            response = await self.client.ainvoke(messages, **call_options)
        except Exception as e:
            error = to_engine_error(e)
            logger.warning("llm_call_failed", model=self.model, code=error.code)
            raise error from e

        tokens = self._record_usage(response)
        logger.info(
            "llm_generated",
            model=self.model,
            tokens_used=tokens,
            content_length=len(response.content)
        )
        return {"content": response.content, "tokens_used": tokens}

    async def generate_with_system_prompt(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Single-turn call: one system message and one user message."""
        return await self.generate(
            [SystemMessage(content=system_prompt), HumanMessage(content=user_message)],
            max_tokens
        )

    async def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Single-turn call whose answer must be JSON.

        Returns:
            {"content": parsed JSON, "tokens_used": int}

        Raises:
            BudgetEngineError: If the call fails or the answer is not JSON.
        """
        result = await self.generate_with_system_prompt(
            f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}",
            user_message,
            max_tokens
        )

        try:
            parsed = parse_json_content(result["content"])
        except json.JSONDecodeError as e:
            raise BudgetEngineError(
                code=ErrorCode.LLM_ERROR,
                message="LLM did not return valid JSON",
                details={
                    "parse_error": str(e),
                    "raw_content": result["content"][:RAW_CONTENT_PREVIEW]
                }
            )

        return {"content": parsed, "tokens_used": result["tokens_used"]}

    async def generate_structured(
        self,
        system_prompt: str,
        user_message: str,
        schema: Type[T],
        max_tokens: Optional[int] = None
    ) -> Optional[T]:
        """Single-turn call validated against a pydantic model.

        The model's JSON schema is appended to the system prompt. Any
        failure (provider error, invalid JSON, schema mismatch) is logged
        and reported as None so agents can fall back.

        Args:
            system_prompt: Agent instructions.
            user_message: Task input.
            schema: Pydantic model the answer must satisfy.
            max_tokens: Optional completion limit.

        Returns:
            Validated model instance, or None.
        """
        schema_prompt = (
            f"{system_prompt}\n\n"
            f"The JSON object must match this JSON schema:\n"
            f"{json.dumps(schema.model_json_schema(), ensure_ascii=False)}"
        )

        try:
            result = await self.generate_json(schema_prompt, user_message, max_tokens)
        except BudgetEngineError as e:
            logger.warning(
                "structured_generation_failed",
                schema=schema.__name__,
                error_code=e.code,
                error=e.message
            )
            return None

        try:
            return schema.model_validate(result["content"])
        except PydanticValidationError as e:
            logger.warning(
                "structured_output_invalid",
                schema=schema.__name__,
                errors=e.error_count()
            )
            return None
