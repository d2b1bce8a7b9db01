"""Generation progress events.

The orchestrator reports progress through a sink. Emission is
best-effort: a failing sink is logged and never aborts a generation.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger()

EMIT_TIMEOUT_SECONDS = 5.0


class GenerationEventType(str, Enum):
    """Progress event types, in the order a generation emits them."""

    SUBTASKS_EXTRACTED = "subtasks_extracted"
    CHAPTER_START = "chapter_start"
    ITEM_RESOLVING = "item_resolving"
    DECOMPOSITION_START = "decomposition_start"
    ITEM_RESOLVED = "item_resolved"
    VALIDATION_START = "validation_start"
    COMPLETE = "complete"
    ERROR = "error"


def build_event(
    session_id: str,
    event_type: GenerationEventType,
    payload: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Build the event document ({type, leadId, data, timestamp})."""
    return {
        "type": event_type.value,
        "leadId": session_id,
        "data": payload or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class GenerationEventSink(ABC):
    """Destination for progress events."""

    @abstractmethod
    async def emit(
        self,
        session_id: str,
        event_type: GenerationEventType,
        payload: Dict[str, Any]
    ) -> None:
        ...


class NullEventSink(GenerationEventSink):
    """Discards every event."""

    async def emit(self, session_id, event_type, payload) -> None:
        return None


class CallbackEventSink(GenerationEventSink):
    """Fans events out to in-process listeners (sync or async callables)."""

    def __init__(self, listeners: Optional[List[Callable[[Dict[str, Any]], Any]]] = None):
        self.listeners = list(listeners or [])

    def subscribe(self, listener: Callable[[Dict[str, Any]], Any]) -> None:
        self.listeners.append(listener)

    async def emit(self, session_id, event_type, payload) -> None:
        event = build_event(session_id, event_type, payload)
        for listener in self.listeners:
            result = listener(event)
            if inspect.isawaitable(result):
                await result


class FirestoreEventSink(GenerationEventSink):
    """Writes events to /leads/{leadId}/generation_events."""

    def __init__(self, firestore_service):
        self.firestore = firestore_service

    async def emit(self, session_id, event_type, payload) -> None:
        await self.firestore.add_generation_event(
            session_id,
            build_event(session_id, event_type, payload)
        )


async def safe_emit(
    sink: Optional[GenerationEventSink],
    session_id: Optional[str],
    event_type: GenerationEventType,
    payload: Optional[Dict[str, Any]] = None
) -> None:
    """Emit an event, logging instead of raising on failure.

    Events are only emitted for generations that carry a session ID.
    """
    if sink is None or not session_id:
        return

    try:
        await asyncio.wait_for(
            sink.emit(session_id, event_type, payload or {}),
            timeout=EMIT_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError:
        logger.warning("generation_event_emit_timeout", session_id=session_id, type=event_type.value)
    except Exception as e:
        logger.warning(
            "generation_event_emit_failed",
            session_id=session_id,
            type=event_type.value,
            error=str(e)
        )
