"""Budget Orchestrator.

Coordinates budget generation:

    narrative -> extraction -> per-subtask item resolution
              -> advisory validation -> financial roll-up -> Budget

and the chapter-based variant for large projects:

    project -> architect chapters -> per-chapter decomposition
            -> advisory validation -> financial roll-up -> Budget

Only a failed extraction (or chapter planning) aborts a generation.
Every other failure degrades to a zero-priced estimate line, a missing
validation report, or a dropped progress event.
"""

import asyncio
import time
from typing import List, Optional, Union

import structlog

from agents.architect_agent import ConstructionArchitectAgent
from agents.construction_analyst_agent import ConstructionAnalystAgent
from agents.extraction_agent import ExtractionAgent
from agents.item_resolver import ItemResolver, unresolved_placeholder
from agents.validation_agent import ValidationAgent
from config.errors import ExtractionError
from config.settings import settings
from models.agent_output import Subtask
from models.budget import Budget, Chapter, CostBreakdown, Material, Partida, ValidationReport, line_item_label
from models.budget_config import BudgetConfig, DEFAULT_BUDGET_CONFIG
from services.generation_events import GenerationEventSink, GenerationEventType, safe_emit
from utils.agent_logger import (
    log_generation_start,
    log_generation_complete,
    log_generation_failed,
    log_item_resolved,
    log_validation_report,
)

logger = structlog.get_logger()

DEFAULT_CHAPTER_NAME = "Presupuesto General"
CHAPTER_FALLBACK_UNIT = "ud"
TITLE_MAX_LENGTH = 120

LineItemModel = Union[Partida, Material]


class BudgetOrchestrator:
    """Orchestrates budget generation for a narrative or a chaptered project."""

    def __init__(
        self,
        extraction_agent: ExtractionAgent,
        item_resolver: ItemResolver,
        validation_agent: ValidationAgent,
        analyst_agent: ConstructionAnalystAgent,
        architect_agent: ConstructionArchitectAgent,
        config_provider=None,
        event_sink: Optional[GenerationEventSink] = None,
        max_concurrent_items: Optional[int] = None,
        item_timeout_seconds: Optional[float] = None
    ):
        """Initialize BudgetOrchestrator.

        Args:
            extraction_agent: Narrative -> subtasks.
            item_resolver: Subtask -> line item.
            validation_agent: Advisory reviewer.
            analyst_agent: Decomposition for chapters.
            architect_agent: Project -> chapters.
            config_provider: Object with ``async get_budget_config()``;
                defaults are used when omitted.
            event_sink: Optional progress event sink.
            max_concurrent_items: 1 resolves strictly in order; more
                resolves concurrently (default from settings).
            item_timeout_seconds: Per-item time budget (default from settings).
        """
        self.extraction = extraction_agent
        self.resolver = item_resolver
        self.validation = validation_agent
        self.analyst = analyst_agent
        self.architect = architect_agent
        self.config_provider = config_provider
        self.event_sink = event_sink
        self.max_concurrent_items = max(
            1, max_concurrent_items if max_concurrent_items is not None else settings.max_concurrent_items
        )
        self.item_timeout_seconds = (
            item_timeout_seconds if item_timeout_seconds is not None else settings.item_timeout_seconds
        )

    async def generate(
        self,
        narrative: str,
        session_id: Optional[str] = None,
        budget_config: Optional[BudgetConfig] = None
    ) -> Budget:
        """Generate a single-chapter budget from a narrative.

        Args:
            narrative: Free-text renovation request.
            session_id: Optional lead/session ID; enables progress events.
            budget_config: Optional rates overriding the stored config.

        Returns:
            Budget with one chapter holding one line item per subtask.

        Raises:
            ExtractionError: If no subtasks could be extracted.
        """
        start_time = time.time()
        log_generation_start(session_id, narrative, mode="flat")

        try:
            subtasks = await self.extraction.extract(narrative)
        except ExtractionError as e:
            await self._fail(session_id, e)
            raise

        await self._emit(session_id, GenerationEventType.SUBTASKS_EXTRACTED, {"count": len(subtasks)})
        await self._emit(session_id, GenerationEventType.CHAPTER_START, {"name": DEFAULT_CHAPTER_NAME})

        items = await self.resolve_subtasks(subtasks, session_id)
        chapter = Chapter.build(DEFAULT_CHAPTER_NAME, order=1, items=items)

        return await self._finalize(
            [chapter],
            session_id=session_id,
            title=narrative,
            budget_config=budget_config,
            start_time=start_time
        )

    async def generate_by_chapters(
        self,
        project_description: str,
        session_id: Optional[str] = None,
        total_area: Optional[float] = None,
        project_context: Optional[str] = None,
        budget_config: Optional[BudgetConfig] = None
    ) -> Budget:
        """Generate a multi-chapter budget for a large project.

        Each architect chapter is decomposed into verified partidas; a
        chapter that yields nothing is priced as a single resolved item.

        Raises:
            ExtractionError: If no chapters could be planned.
        """
        start_time = time.time()
        log_generation_start(session_id, project_description, mode="chapters")

        planned = await self.architect.plan(project_description, total_area)
        if not planned:
            error = ExtractionError(
                "Could not extract chapters from request",
                details={"reason": "no_chapters"}
            )
            await self._fail(session_id, error)
            raise error

        await self._emit(session_id, GenerationEventType.SUBTASKS_EXTRACTED, {
            "count": len(planned),
            "chapters": [c.name for c in planned],
        })

        context = project_context or project_description
        chapters = []
        for order, chapter_plan in enumerate(planned, start=1):
            await self._emit(session_id, GenerationEventType.CHAPTER_START, {"name": chapter_plan.name})
            task = chapter_plan.as_task()

            await self._emit(session_id, GenerationEventType.DECOMPOSITION_START, {"description": task})
            try:
                analysis = await self.analyst.decompose(task, context)
                items = list(analysis.items)
            except Exception as e:
                logger.warning("chapter_decomposition_failed", chapter=chapter_plan.name, error=str(e))
                items = []

            if not items:
                fallback = Subtask(search_query=task, quantity=1.0, unit=CHAPTER_FALLBACK_UNIT)
                items = [await self._resolve_one(0, fallback, context, session_id)]

            items = [item.model_copy(update={"order": i}) for i, item in enumerate(items, start=1)]
            for item in items:
                await self._emit_item_resolved(session_id, item, len(items))

            chapters.append(Chapter.build(chapter_plan.name, order=order, items=items))

        return await self._finalize(
            chapters,
            session_id=session_id,
            title=project_description,
            budget_config=budget_config,
            start_time=start_time
        )

    async def resolve_subtasks(
        self,
        subtasks: List[Subtask],
        session_id: Optional[str] = None,
        context: Optional[str] = None
    ) -> List[LineItemModel]:
        """Resolve subtasks into line items, preserving subtask order.

        Progress events are emitted in subtask order in both the
        sequential and the concurrent mode.
        """
        total = len(subtasks)
        items: List[LineItemModel] = []

        if self.max_concurrent_items <= 1:
            for index, subtask in enumerate(subtasks):
                await self._emit_item_resolving(session_id, subtask, index, total)
                item = await self._resolve_one(index, subtask, context, session_id)
                await self._emit_item_resolved(session_id, item, total)
                items.append(item)
            return items

        semaphore = asyncio.Semaphore(self.max_concurrent_items)

        async def bounded(index: int, subtask: Subtask) -> LineItemModel:
            async with semaphore:
                return await self._resolve_one(index, subtask, context, session_id)

        tasks = [asyncio.create_task(bounded(i, s)) for i, s in enumerate(subtasks)]
        for index, (subtask, task) in enumerate(zip(subtasks, tasks)):
            await self._emit_item_resolving(session_id, subtask, index, total)
            item = await task
            await self._emit_item_resolved(session_id, item, total)
            items.append(item)
        return items

    async def _resolve_one(
        self,
        index: int,
        subtask: Subtask,
        context: Optional[str],
        session_id: Optional[str] = None
    ) -> LineItemModel:
        """Resolve one subtask; any failure becomes a zero-priced estimate."""
        try:
            item = await asyncio.wait_for(
                self.resolver.resolve_item(
                    subtask.search_query, subtask.quantity, subtask.unit, context, session_id=session_id
                ),
                timeout=self.item_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error("item_resolution_timeout", task=subtask.search_query[:80], timeout_seconds=self.item_timeout_seconds)
            item = unresolved_placeholder(
                subtask.search_query, subtask.quantity, subtask.unit, "Tiempo de resolución agotado."
            )
        except Exception as e:
            logger.exception("item_resolution_failed", task=subtask.search_query[:80], error=str(e))
            item = unresolved_placeholder(
                subtask.search_query, subtask.quantity, subtask.unit, f"Error: {str(e)}"
            )

        return item.model_copy(update={"order": index + 1})

    async def _finalize(
        self,
        chapters: List[Chapter],
        session_id: Optional[str],
        title: str,
        budget_config: Optional[BudgetConfig],
        start_time: float
    ) -> Budget:
        items = [item for chapter in chapters for item in chapter.items]

        report = await self._validate(items, session_id)

        config = budget_config or await self._load_config()
        material_execution_price = sum(item.total_price for item in items)
        cost_breakdown = CostBreakdown.from_execution_price(material_execution_price, config)

        budget = Budget(
            lead_id=session_id,
            title=title[:TITLE_MAX_LENGTH] if title else None,
            chapters=chapters,
            cost_breakdown=cost_breakdown,
            total_estimated=cost_breakdown.total,
            validation_report=report,
        )

        await self._emit(session_id, GenerationEventType.COMPLETE, {
            "budgetId": budget.id,
            "summary": {
                "items": len(items),
                "chapters": len(chapters),
                "materialExecutionPrice": round(material_execution_price, 2),
                "total": round(cost_breakdown.total, 2),
            },
        })

        log_generation_complete(
            session_id,
            item_count=len(items),
            chapter_count=len(chapters),
            total=cost_breakdown.total,
            duration_ms=int((time.time() - start_time) * 1000)
        )
        return budget

    async def _validate(self, items: List[LineItemModel], session_id: Optional[str]) -> Optional[ValidationReport]:
        """Advisory validation; failures yield no report."""
        await self._emit(session_id, GenerationEventType.VALIDATION_START, {"items": len(items)})
        try:
            report = await self.validation.validate([line_item_label(item) for item in items])
        except Exception as e:
            logger.warning("validation_skipped", session_id=session_id, error=str(e))
            return None

        log_validation_report(session_id, report.model_dump(by_alias=True, mode="json"))
        return report

    async def _load_config(self) -> BudgetConfig:
        if self.config_provider is None:
            return DEFAULT_BUDGET_CONFIG
        try:
            return await self.config_provider.get_budget_config()
        except Exception as e:
            logger.warning("budget_config_unavailable_using_defaults", error=str(e))
            return DEFAULT_BUDGET_CONFIG

    async def _fail(self, session_id: Optional[str], error: ExtractionError) -> None:
        log_generation_failed(session_id, error.message)
        await self._emit(session_id, GenerationEventType.ERROR, {
            "code": error.code,
            "message": error.message,
        })

    async def _emit(self, session_id: Optional[str], event_type: GenerationEventType, payload: dict) -> None:
        await safe_emit(self.event_sink, session_id, event_type, payload)

    async def _emit_item_resolving(
        self,
        session_id: Optional[str],
        subtask: Subtask,
        index: int,
        total: int
    ) -> None:
        await self._emit(session_id, GenerationEventType.ITEM_RESOLVING, {
            "description": subtask.search_query,
            "current": index + 1,
            "total": total,
        })

    async def _emit_item_resolved(self, session_id: Optional[str], item: LineItemModel, total: int) -> None:
        log_item_resolved(
            item.order,
            total,
            line_item_label(item),
            item.quantity,
            item.unit_price,
            item.total_price,
            item.is_estimate
        )
        await self._emit(session_id, GenerationEventType.ITEM_RESOLVED, {
            "item": item.model_dump(by_alias=True, exclude_none=True, mode="json"),
            "status": "warning" if item.is_estimate else "success",
        })
