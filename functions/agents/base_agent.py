"""Base agent for the budget pipeline.

Shared plumbing for the LLM-backed agents: a bounded structured
generation call, timing, token tracking and prompt assembly.
"""

import asyncio
import time
from typing import Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from services.llm_service import LLMService
from config.settings import settings

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class BaseAgent:
    """Base class for LLM-backed budget agents.

    Provides:
    - LLM service integration
    - Per-call timeout (timeouts degrade to "no output")
    - Token and duration tracking
    - System prompt assembly with project context
    """

    def __init__(
        self,
        name: str,
        llm_service: Optional[LLMService] = None,
        timeout_seconds: Optional[float] = None
    ):
        """Initialize BaseAgent.

        Args:
            name: Agent name (e.g., "triage", "extraction").
            llm_service: Optional LLM service instance.
            timeout_seconds: Per-call timeout (default from settings).
        """
        self.name = name
        self.llm = llm_service or LLMService()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.agent_timeout_seconds
        )

        self._start_time: Optional[float] = None

    @property
    def tokens_used(self) -> int:
        """Get tokens used by the underlying LLM service."""
        return getattr(self.llm, "total_tokens_used", 0)

    @property
    def duration_ms(self) -> int:
        """Get duration of the last call in milliseconds."""
        if self._start_time is None:
            return 0
        return int((time.time() - self._start_time) * 1000)

    async def generate_structured(
        self,
        system_prompt: str,
        user_message: str,
        schema: Type[T]
    ) -> Optional[T]:
        """Run one structured LLM call bounded by the agent timeout.

        Args:
            system_prompt: System prompt for the call.
            user_message: User message.
            schema: Pydantic model the output must satisfy.

        Returns:
            Validated output, or None on failure or timeout.
        """
        self._start_time = time.time()

        try:
            output = await asyncio.wait_for(
                self.llm.generate_structured(system_prompt, user_message, schema),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "agent_generation_timeout",
                agent=self.name,
                timeout_seconds=self.timeout_seconds
            )
            return None

        logger.info(
            "agent_generation_completed",
            agent=self.name,
            schema=schema.__name__,
            has_output=output is not None,
            duration_ms=self.duration_ms
        )
        return output

    def build_system_prompt(
        self,
        base_prompt: str,
        context: Optional[str] = None
    ) -> str:
        """Build system prompt with optional project context.

        Args:
            base_prompt: Base system prompt for the agent.
            context: Optional project description or chapter context.

        Returns:
            Complete system prompt.
        """
        if not context or not context.strip():
            return base_prompt

        return base_prompt + f"""

## Project Context

{context.strip()}

Use this context to interpret ambiguous tasks, but do not invent work it does not mention.
"""
