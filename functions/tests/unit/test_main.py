"""Unit tests for the HTTP handlers in main.py."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from config.errors import BudgetEngineError, ExtractionError, ValidationError
from models.budget import Budget, Chapter, CostBreakdown, Partida
from models.budget_config import DEFAULT_BUDGET_CONFIG


@pytest.fixture(scope="module")
def main_module():
    """Import main without initializing a real Firebase app."""
    with patch("firebase_admin.initialize_app"):
        import main
    return main


@pytest.fixture
def budget():
    chapter = Chapter.build("Presupuesto General", 1, [
        Partida(code="RIP030", description="Pintura plástica", unit="m2", quantity=40, unit_price=7.5)
    ])
    cost = CostBreakdown.from_execution_price(chapter.total_price, DEFAULT_BUDGET_CONFIG)
    return Budget(id="budget-1", lead_id="lead-1", chapters=[chapter], cost_breakdown=cost, total_estimated=cost.total)


@pytest.fixture
def orchestrator(budget):
    mock = MagicMock()
    mock.generate = AsyncMock(return_value=budget)
    mock.generate_by_chapters = AsyncMock(return_value=budget)
    mock.resolver.resolve_item = AsyncMock(return_value=Partida(
        code="RIP030", description="Pintura plástica", unit="m2", quantity=40, unit_price=7.5
    ))
    return mock


@pytest.fixture
def firestore_service():
    service = MagicMock()
    service.save_budget = AsyncMock()
    service.get_budget = AsyncMock(return_value=None)
    return service


class TestGenerateBudgetHandler:
    """Tests for handle_generate_budget."""

    @pytest.mark.asyncio
    async def test_generates_and_saves(self, main_module, orchestrator, firestore_service, budget):
        body, status = await main_module.handle_generate_budget(
            {"narrative": "Pintar el salón", "leadId": "lead-1"},
            orchestrator=orchestrator,
            firestore_service=firestore_service
        )

        assert status == 200
        assert body["success"] is True
        assert body["data"]["totalEstimated"] == pytest.approx(budget.total_estimated)
        orchestrator.generate.assert_awaited_once_with("Pintar el salón", session_id="lead-1")
        firestore_service.save_budget.assert_awaited_once_with(budget)

    @pytest.mark.asyncio
    async def test_chapters_mode(self, main_module, orchestrator, firestore_service):
        await main_module.handle_generate_budget(
            {"userRequest": "Reforma integral", "mode": "chapters", "totalArea": "90"},
            orchestrator=orchestrator,
            firestore_service=firestore_service
        )

        orchestrator.generate_by_chapters.assert_awaited_once_with(
            "Reforma integral",
            session_id=None,
            total_area=90.0,
            project_context=None
        )

    @pytest.mark.asyncio
    async def test_missing_narrative(self, main_module, orchestrator, firestore_service):
        with pytest.raises(ValidationError):
            await main_module.handle_generate_budget({}, orchestrator=orchestrator, firestore_service=firestore_service)

    @pytest.mark.asyncio
    async def test_invalid_mode(self, main_module, orchestrator, firestore_service):
        with pytest.raises(ValidationError):
            await main_module.handle_generate_budget(
                {"narrative": "x", "mode": "tree"},
                orchestrator=orchestrator,
                firestore_service=firestore_service
            )

    @pytest.mark.asyncio
    async def test_extraction_failure_is_unprocessable(self, main_module, orchestrator, firestore_service):
        orchestrator.generate.side_effect = ExtractionError()

        body, status = await main_module.handle_generate_budget(
            {"narrative": "???"},
            orchestrator=orchestrator,
            firestore_service=firestore_service
        )

        assert status == 422
        assert body["error"]["code"] == "EXTRACTION_FAILED"
        firestore_service.save_budget.assert_not_called()


class TestResolveItemHandler:
    """Tests for handle_resolve_item."""

    @pytest.mark.asyncio
    async def test_resolves_item(self, main_module, orchestrator):
        body, status = await main_module.handle_resolve_item(
            {"task": "Pintar salón", "quantity": 40, "unit": "m2"},
            orchestrator=orchestrator
        )

        assert status == 200
        assert body["data"]["totalPrice"] == 300.0
        orchestrator.resolver.resolve_item.assert_awaited_once_with("Pintar salón", 40.0, "m2", None)

    @pytest.mark.asyncio
    async def test_defaults(self, main_module, orchestrator):
        await main_module.handle_resolve_item({"task": "Pintar salón"}, orchestrator=orchestrator)

        orchestrator.resolver.resolve_item.assert_awaited_once_with("Pintar salón", 1.0, "ud", None)

    @pytest.mark.asyncio
    async def test_negative_quantity(self, main_module, orchestrator):
        with pytest.raises(ValidationError):
            await main_module.handle_resolve_item({"task": "x", "quantity": -2}, orchestrator=orchestrator)

    @pytest.mark.asyncio
    async def test_non_numeric_quantity(self, main_module, orchestrator):
        with pytest.raises(ValidationError):
            await main_module.handle_resolve_item({"task": "x", "quantity": "mucho"}, orchestrator=orchestrator)


class TestGetBudgetHandler:
    """Tests for handle_get_budget."""

    @pytest.mark.asyncio
    async def test_not_found(self, main_module, firestore_service):
        body, status = await main_module.handle_get_budget({"budgetId": "nope"}, firestore_service=firestore_service)

        assert status == 404
        assert body["error"]["code"] == "BUDGET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_found(self, main_module, firestore_service, budget):
        firestore_service.get_budget.return_value = budget

        body, status = await main_module.handle_get_budget({"budgetId": "budget-1"}, firestore_service=firestore_service)

        assert status == 200
        assert body["data"]["id"] == "budget-1"


class TestDispatch:
    """Tests for error to status mapping."""

    def _request(self, payload, method="POST"):
        req = MagicMock()
        req.method = method
        req.get_json.return_value = payload
        return req

    def test_options_preflight(self, main_module):
        response = main_module._dispatch(self._request({}, method="OPTIONS"), AsyncMock(), "test")

        assert response.status_code == 204

    def test_success(self, main_module):
        handler = AsyncMock(return_value=({"success": True, "data": {}}, 200))

        response = main_module._dispatch(self._request({"a": 1}), handler, "test")

        assert response.status_code == 200
        handler.assert_awaited_once_with({"a": 1})

    def test_validation_error_is_bad_request(self, main_module):
        handler = AsyncMock(side_effect=ValidationError("Missing task in request", field="task"))

        response = main_module._dispatch(self._request({}), handler, "test")

        assert response.status_code == 400
        assert json.loads(response.get_data(as_text=True))["error"]["code"] == "VALIDATION_ERROR"

    def test_engine_error_is_server_error(self, main_module):
        handler = AsyncMock(side_effect=BudgetEngineError(code="FIRESTORE_WRITE_FAILED", message="down"))

        response = main_module._dispatch(self._request({}), handler, "test")

        assert response.status_code == 500

    def test_unexpected_error(self, main_module):
        handler = AsyncMock(side_effect=RuntimeError("boom"))

        response = main_module._dispatch(self._request({}), handler, "test")

        assert response.status_code == 500
        assert json.loads(response.get_data(as_text=True))["error"]["code"] == "GENERATION_FAILED"
