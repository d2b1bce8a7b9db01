"""Unit tests for BudgetOrchestrator."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from agents.item_resolver import UNRESOLVED_CODE
from agents.orchestrator import BudgetOrchestrator, DEFAULT_CHAPTER_NAME
from config.errors import AgentError, ErrorCode, ExtractionError
from models.agent_output import AnalystResult, ArchitectChapter, Subtask
from models.budget import CostBreakdown, Partida, ValidationIssue, ValidationReport
from models.budget_config import BudgetConfig, DEFAULT_BUDGET_CONFIG
from services.generation_events import CallbackEventSink


SUBTASKS = [
    Subtask(search_query="Demolición de alicatado", quantity=20, unit="m2"),
    Subtask(search_query="Alicatado cerámico", quantity=20, unit="m2"),
    Subtask(search_query="Carga de escombros", quantity=2, unit="m3"),
]

PRICES = {
    "Demolición de alicatado": 12.5,
    "Alicatado cerámico": 30.0,
    "Carga de escombros": 8.0,
}


async def _priced_item(task, quantity, unit, context=None, session_id=None):
    return Partida(code="TEST", description=task, unit=unit, quantity=quantity, unit_price=PRICES.get(task, 1.0))


@pytest.fixture
def extraction():
    agent = MagicMock()
    agent.extract = AsyncMock(return_value=list(SUBTASKS))
    return agent


@pytest.fixture
def resolver():
    item_resolver = MagicMock()
    item_resolver.resolve_item = AsyncMock(side_effect=_priced_item)
    return item_resolver


@pytest.fixture
def validation():
    agent = MagicMock()
    agent.validate = AsyncMock(return_value=ValidationReport(
        is_valid=True,
        issues=[ValidationIssue(severity="low", message="Falta imprimación")],
        overall_score=90
    ))
    return agent


@pytest.fixture
def analyst():
    agent = MagicMock()
    agent.decompose = AsyncMock(return_value=AnalystResult(items=[]))
    return agent


@pytest.fixture
def architect():
    agent = MagicMock()
    agent.plan = AsyncMock(return_value=[])
    return agent


@pytest.fixture
def events():
    return []


@pytest.fixture
def orchestrator(extraction, resolver, validation, analyst, architect, events):
    return BudgetOrchestrator(
        extraction_agent=extraction,
        item_resolver=resolver,
        validation_agent=validation,
        analyst_agent=analyst,
        architect_agent=architect,
        event_sink=CallbackEventSink([events.append]),
        max_concurrent_items=1,
        item_timeout_seconds=5
    )


def _types(events):
    return [event["type"] for event in events]


class TestGenerate:
    """Tests for single-chapter generation."""

    @pytest.mark.asyncio
    async def test_builds_budget_from_subtasks(self, orchestrator, validation):
        budget = await orchestrator.generate("Reforma de baño de 6 m2", session_id="lead-1")

        assert len(budget.chapters) == 1
        chapter = budget.chapters[0]
        assert chapter.name == DEFAULT_CHAPTER_NAME
        assert [item.description for item in chapter.items] == [s.search_query for s in SUBTASKS]
        assert [item.order for item in chapter.items] == [1, 2, 3]
        # 250 + 600 + 16
        assert chapter.total_price == 866.0

        expected = CostBreakdown.from_execution_price(866.0, DEFAULT_BUDGET_CONFIG)
        assert budget.cost_breakdown.total == pytest.approx(expected.total)
        assert budget.total_estimated == budget.cost_breakdown.total
        assert budget.lead_id == "lead-1"
        assert budget.title == "Reforma de baño de 6 m2"
        assert budget.validation_report.overall_score == 90
        validation.validate.assert_awaited_once_with([
            "Demolición de alicatado (20 m2)",
            "Alicatado cerámico (20 m2)",
            "Carga de escombros (2 m3)",
        ])

    @pytest.mark.asyncio
    async def test_resolver_receives_subtask_fields(self, orchestrator, resolver):
        await orchestrator.generate("Reforma de baño")

        resolver.resolve_item.assert_any_await("Carga de escombros", 2, "m3", None, session_id=None)

    @pytest.mark.asyncio
    async def test_resolver_receives_session_id(self, orchestrator, resolver):
        await orchestrator.generate("Reforma de baño", session_id="lead-1")

        for call in resolver.resolve_item.await_args_list:
            assert call.kwargs["session_id"] == "lead-1"

    @pytest.mark.asyncio
    async def test_emits_progress_events_in_order(self, orchestrator, events):
        budget = await orchestrator.generate("Reforma de baño", session_id="lead-1")

        assert _types(events) == [
            "subtasks_extracted",
            "chapter_start",
            "item_resolving", "item_resolved",
            "item_resolving", "item_resolved",
            "item_resolving", "item_resolved",
            "validation_start",
            "complete",
        ]
        assert events[0]["data"] == {"count": 3}
        assert events[0]["leadId"] == "lead-1"
        assert events[2]["data"] == {"description": "Demolición de alicatado", "current": 1, "total": 3}
        assert events[3]["data"]["status"] == "success"
        assert events[3]["data"]["item"]["totalPrice"] == 250.0
        assert events[-1]["data"]["budgetId"] == budget.id

    @pytest.mark.asyncio
    async def test_no_events_without_session(self, orchestrator, events):
        await orchestrator.generate("Reforma de baño")

        assert events == []

    @pytest.mark.asyncio
    async def test_failing_event_sink_does_not_abort(self, extraction, resolver, validation, analyst, architect):
        sink = MagicMock()
        sink.emit = AsyncMock(side_effect=RuntimeError("firestore down"))
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            event_sink=sink, max_concurrent_items=1, item_timeout_seconds=5
        )

        budget = await orchestrator.generate("Reforma de baño", session_id="lead-1")

        assert len(budget.items) == 3

    @pytest.mark.asyncio
    async def test_extraction_failure_raises_and_emits_error(self, orchestrator, extraction, resolver, events):
        extraction.extract.side_effect = ExtractionError()

        with pytest.raises(ExtractionError):
            await orchestrator.generate("???", session_id="lead-1")

        assert _types(events) == ["error"]
        assert events[0]["data"]["code"] == ErrorCode.EXTRACTION_FAILED
        resolver.resolve_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_item_becomes_placeholder(self, orchestrator, resolver, events):
        async def flaky(task, quantity, unit, context=None, session_id=None):
            if task == "Alicatado cerámico":
                raise RuntimeError("LLM unavailable")
            return await _priced_item(task, quantity, unit)

        resolver.resolve_item.side_effect = flaky

        budget = await orchestrator.generate("Reforma de baño", session_id="lead-1")

        items = budget.items
        assert [item.order for item in items] == [1, 2, 3]
        assert items[1].code == UNRESOLVED_CODE
        assert items[1].total_price == 0.0
        assert items[1].is_estimate is True
        assert items[1].quantity == 20
        assert budget.chapters[0].total_price == 266.0
        resolved = [e for e in events if e["type"] == "item_resolved"]
        assert resolved[1]["data"]["status"] == "warning"

    @pytest.mark.asyncio
    async def test_timed_out_item_becomes_placeholder(self, extraction, resolver, validation, analyst, architect):
        async def slow(task, quantity, unit, context=None, session_id=None):
            await asyncio.sleep(1)
            return await _priced_item(task, quantity, unit)

        resolver.resolve_item.side_effect = slow
        extraction.extract.return_value = [SUBTASKS[0]]
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            max_concurrent_items=1, item_timeout_seconds=0.01
        )

        budget = await orchestrator.generate("Demoler alicatado")

        assert budget.items[0].code == UNRESOLVED_CODE
        assert "Tiempo de resolución agotado." in budget.items[0].note

    @pytest.mark.asyncio
    async def test_validation_failure_yields_no_report(self, orchestrator, validation):
        validation.validate.side_effect = AgentError(
            code=ErrorCode.AGENT_FAILED,
            message="Validation failed to generate report",
            agent_name="validation"
        )

        budget = await orchestrator.generate("Reforma de baño")

        assert budget.validation_report is None
        assert budget.total_estimated > 0

    @pytest.mark.asyncio
    async def test_concurrent_mode_preserves_order(self, extraction, resolver, validation, analyst, architect, events):
        delays = {"Demolición de alicatado": 0.05, "Alicatado cerámico": 0.02, "Carga de escombros": 0.0}

        async def delayed(task, quantity, unit, context=None, session_id=None):
            await asyncio.sleep(delays[task])
            return await _priced_item(task, quantity, unit)

        resolver.resolve_item.side_effect = delayed
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            event_sink=CallbackEventSink([events.append]),
            max_concurrent_items=3,
            item_timeout_seconds=5
        )

        budget = await orchestrator.generate("Reforma de baño", session_id="lead-1")

        assert [item.description for item in budget.items] == [s.search_query for s in SUBTASKS]
        resolving = [e["data"]["current"] for e in events if e["type"] == "item_resolving"]
        assert resolving == [1, 2, 3]


class TestBudgetConfig:
    """Tests for rate selection."""

    @pytest.mark.asyncio
    async def test_uses_stored_config(self, extraction, resolver, validation, analyst, architect):
        provider = MagicMock()
        provider.get_budget_config = AsyncMock(return_value=BudgetConfig(iva=0.21))
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            config_provider=provider, max_concurrent_items=1, item_timeout_seconds=5
        )

        budget = await orchestrator.generate("Reforma de baño")

        assert budget.cost_breakdown.tax == pytest.approx(866.0 * 1.19 * 0.21)

    @pytest.mark.asyncio
    async def test_config_failure_uses_defaults(self, extraction, resolver, validation, analyst, architect):
        provider = MagicMock()
        provider.get_budget_config = AsyncMock(side_effect=RuntimeError("permission denied"))
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            config_provider=provider, max_concurrent_items=1, item_timeout_seconds=5
        )

        budget = await orchestrator.generate("Reforma de baño")

        assert budget.cost_breakdown.tax == pytest.approx(866.0 * 1.19 * 0.10)

    @pytest.mark.asyncio
    async def test_explicit_config_wins(self, extraction, resolver, validation, analyst, architect):
        provider = MagicMock()
        provider.get_budget_config = AsyncMock(return_value=BudgetConfig(iva=0.21))
        orchestrator = BudgetOrchestrator(
            extraction, resolver, validation, analyst, architect,
            config_provider=provider, max_concurrent_items=1, item_timeout_seconds=5
        )

        budget = await orchestrator.generate(
            "Reforma de baño",
            budget_config=BudgetConfig(global_adjustment_factor=1.1)
        )

        provider.get_budget_config.assert_not_called()
        assert budget.cost_breakdown.global_adjustment > 0


class TestGenerateByChapters:
    """Tests for chapter-based generation."""

    @pytest.mark.asyncio
    async def test_decomposes_each_chapter(self, orchestrator, architect, analyst, resolver, events):
        demolition = ArchitectChapter(name="Demoliciones", description="Demolición de tabiques", approx_quantity=15, unit="m2")
        painting = ArchitectChapter(name="Pintura", description="Pintura plástica", approx_quantity=240, unit="m2")
        architect.plan.return_value = [demolition, painting]
        analyst.decompose.side_effect = [
            AnalystResult(items=[
                Partida(code="DRT010", description="Demolición de tabique", unit="m2", quantity=15, unit_price=10.0),
                Partida(code="GRA010", description="Carga de escombros", unit="m3", quantity=2, unit_price=8.0),
            ]),
            AnalystResult(items=[]),
        ]

        budget = await orchestrator.generate_by_chapters(
            "Reforma integral de piso de 80 m2",
            session_id="lead-1",
            total_area=80
        )

        architect.plan.assert_awaited_once_with("Reforma integral de piso de 80 m2", 80)
        assert [c.name for c in budget.chapters] == ["Demoliciones", "Pintura"]
        assert [c.order for c in budget.chapters] == [1, 2]
        assert [i.order for i in budget.chapters[0].items] == [1, 2]
        assert budget.chapters[0].total_price == 166.0

        # Empty decomposition falls back to resolving the chapter as one item
        resolver.resolve_item.assert_awaited_once_with(
            painting.as_task(), 1.0, "ud", "Reforma integral de piso de 80 m2", session_id="lead-1"
        )
        assert len(budget.chapters[1].items) == 1
        assert budget.chapters[1].items[0].order == 1

        assert _types(events)[:3] == ["subtasks_extracted", "chapter_start", "decomposition_start"]
        assert events[2]["data"] == {"description": demolition.as_task()}
        assert _types(events).count("decomposition_start") == 2
        assert events[0]["data"]["chapters"] == ["Demoliciones", "Pintura"]
        assert _types(events)[-1] == "complete"

    @pytest.mark.asyncio
    async def test_decomposition_error_falls_back_to_single_item(self, orchestrator, architect, analyst, resolver):
        architect.plan.return_value = [ArchitectChapter(name="Fontanería", description="Red de agua")]
        analyst.decompose.side_effect = RuntimeError("boom")

        budget = await orchestrator.generate_by_chapters("Reforma de baño", project_context="Piso de 1970")

        assert len(budget.items) == 1
        assert resolver.resolve_item.await_args.args[3] == "Piso de 1970"

    @pytest.mark.asyncio
    async def test_no_chapters_raises(self, orchestrator, events):
        with pytest.raises(ExtractionError) as exc_info:
            await orchestrator.generate_by_chapters("???", session_id="lead-1")

        assert exc_info.value.message == "Could not extract chapters from request"
        assert _types(events) == ["error"]
