"""Unit tests for budget, catalog and agent output models."""

from datetime import timedelta

import pytest
from pydantic import TypeAdapter

from models.agent_output import (
    ArchitectChapter,
    SearchIntent,
    Subtask,
    TriageParameters,
)
from models.budget import (
    BreakdownComponent,
    Budget,
    Chapter,
    ComponentType,
    CostBreakdown,
    LineItem,
    Material,
    Partida,
    ValidationIssue,
    line_item_label,
)
from models.budget_config import BudgetConfig, DEFAULT_BUDGET_CONFIG
from models.catalog import MaterialCandidate, PriceBookCandidate


class TestLineItems:
    """Tests for Partida and Material."""

    def test_partida_total_is_unit_price_times_quantity(self):
        partida = Partida(code="RAG011", description="Alicatado", unit="m2", quantity=12, unit_price=30.0)

        assert partida.total_price == 360.0

    def test_total_is_rounded_to_cents(self):
        partida = Partida(code="X", description="Y", quantity=3, unit_price=10.333)

        assert partida.total_price == 31.0

    def test_total_follows_quantity_change(self):
        partida = Partida(code="X", description="Y", quantity=2, unit_price=15.0)

        updated = partida.model_copy(update={"quantity": 5})

        assert updated.total_price == 75.0
        assert partida.total_price == 30.0

    def test_material_total(self):
        material = Material(name="Ventana PVC", quantity=3, unit_price=320.0)

        assert material.total_price == 960.0

    def test_negative_price_rejected(self):
        with pytest.raises(Exception):
            Partida(code="X", description="Y", unit_price=-1)

    def test_serializes_camel_case_with_total(self):
        partida = Partida(code="X", description="Y", quantity=2, unit_price=10.0, is_estimate=True)

        data = partida.model_dump(by_alias=True)

        assert data["unitPrice"] == 10.0
        assert data["totalPrice"] == 20.0
        assert data["isEstimate"] is True
        assert data["type"] == "PARTIDA"

    def test_line_item_discriminated_by_type(self):
        adapter = TypeAdapter(LineItem)

        partida = adapter.validate_python({"type": "PARTIDA", "code": "A", "description": "B", "unitPrice": 1})
        material = adapter.validate_python({"type": "MATERIAL", "name": "Tile", "unitPrice": 2})

        assert isinstance(partida, Partida)
        assert isinstance(material, Material)

    def test_incoming_total_price_is_ignored(self):
        partida = Partida.model_validate({
            "code": "A", "description": "B", "quantity": 2, "unitPrice": 5, "totalPrice": 999
        })

        assert partida.total_price == 10.0

    def test_line_item_label(self):
        assert line_item_label(Partida(code="A", description="Pintura", unit="m2", quantity=20, unit_price=1)) == "Pintura (20 m2)"
        assert line_item_label(Material(name="Saco de yeso", quantity=3, unit_price=1)) == "Saco de yeso (3 ud)"

    def test_line_item_label_rejects_unknown(self):
        with pytest.raises(TypeError):
            line_item_label("not an item")


class TestBreakdownComponent:
    """Tests for BreakdownComponent."""

    def test_total_is_price_times_yield(self):
        component = BreakdownComponent(concept="Oficial", type=ComponentType.LABOR, price=20.0, yield_factor=0.5)

        assert component.total == 10.0

    def test_yield_alias(self):
        component = BreakdownComponent.model_validate({"concept": "Baldosa", "price": 15.0, "yield": 1.05})

        assert component.yield_factor == 1.05
        assert component.model_dump(by_alias=True)["yield"] == 1.05


class TestChapter:
    """Tests for Chapter."""

    def test_total_is_sum_of_items(self):
        chapter = Chapter.build("General", 1, [
            Partida(code="A", description="A", quantity=2, unit_price=10.0),
            Material(name="B", quantity=1, unit_price=5.5),
        ])

        assert chapter.total_price == 25.5

    def test_empty_chapter_total_is_zero(self):
        assert Chapter.build("Empty", 1, []).total_price == 0.0


class TestCostBreakdown:
    """Tests for the financial roll-up."""

    def test_default_rates(self):
        cost = CostBreakdown.from_execution_price(1000.0, DEFAULT_BUDGET_CONFIG)

        assert cost.material_execution_price == 1000.0
        assert cost.overhead_expenses == pytest.approx(130.0)
        assert cost.industrial_benefit == pytest.approx(60.0)
        assert cost.subtotal == pytest.approx(1190.0)
        assert cost.tax == pytest.approx(119.0)
        assert cost.global_adjustment == 0.0
        assert cost.total == pytest.approx(1309.0)

    def test_global_adjustment_is_a_delta_on_total(self):
        config = BudgetConfig(global_adjustment_factor=1.1)

        cost = CostBreakdown.from_execution_price(1000.0, config)

        assert cost.global_adjustment == pytest.approx(130.9)
        assert cost.total == pytest.approx(1439.9)

    def test_zero_execution_price(self):
        cost = CostBreakdown.from_execution_price(0.0, DEFAULT_BUDGET_CONFIG)

        assert cost.total == 0.0
        assert cost.tax == 0.0


class TestBudgetConfig:
    """Tests for BudgetConfig."""

    def test_defaults(self):
        assert DEFAULT_BUDGET_CONFIG.overhead_expenses == 0.13
        assert DEFAULT_BUDGET_CONFIG.industrial_benefit == 0.06
        assert DEFAULT_BUDGET_CONFIG.iva == 0.10
        assert DEFAULT_BUDGET_CONFIG.global_adjustment_factor == 1.0
        assert DEFAULT_BUDGET_CONFIG.base_integral_reform_rate_m2 == 650

    def test_from_document_merges_over_defaults(self):
        config = BudgetConfig.from_document({"iva": 0.21, "overheadExpenses": None})

        assert config.iva == 0.21
        assert config.overhead_expenses == 0.13

    def test_from_document_none(self):
        assert BudgetConfig.from_document(None) == DEFAULT_BUDGET_CONFIG

    def test_margins_do_not_change_roll_up(self):
        config = BudgetConfig(material_margin=0.5, labor_margin=0.3, base_integral_reform_rate_m2=900)

        assert CostBreakdown.from_execution_price(1000.0, config) == CostBreakdown.from_execution_price(
            1000.0, DEFAULT_BUDGET_CONFIG
        )


class TestBudget:
    """Tests for the Budget document."""

    def test_items_and_serialization(self):
        chapter = Chapter.build("General", 1, [Partida(code="A", description="A", quantity=2, unit_price=10.0)])
        cost = CostBreakdown.from_execution_price(chapter.total_price, DEFAULT_BUDGET_CONFIG)
        budget = Budget(lead_id="lead-1", chapters=[chapter], cost_breakdown=cost, total_estimated=cost.total)

        data = budget.to_firestore()

        assert len(budget.items) == 1
        assert data["leadId"] == "lead-1"
        assert data["totalEstimated"] == pytest.approx(26.18)
        assert data["chapters"][0]["totalPrice"] == 20.0
        assert data["chapters"][0]["items"][0]["totalPrice"] == 20.0
        assert "validationReport" not in data

    def test_created_at_is_timezone_aware(self):
        cost = CostBreakdown.from_execution_price(0.0, DEFAULT_BUDGET_CONFIG)
        budget = Budget(chapters=[], cost_breakdown=cost, total_estimated=cost.total)

        assert budget.created_at.utcoffset() == timedelta(0)

    def test_round_trip_from_stored_document(self):
        chapter = Chapter.build("General", 1, [Material(name="Tile", quantity=4, unit_price=2.5)])
        cost = CostBreakdown.from_execution_price(10.0, DEFAULT_BUDGET_CONFIG)
        budget = Budget(chapters=[chapter], cost_breakdown=cost, total_estimated=cost.total)

        restored = Budget.model_validate(budget.to_firestore())

        assert isinstance(restored.items[0], Material)
        assert restored.items[0].total_price == 10.0


class TestCatalogCandidates:
    """Tests for catalog candidate mapping."""

    def test_price_book_defaults_for_missing_fields(self):
        candidate = PriceBookCandidate.from_document({"code": None, "name": "Pintura plástica", "unit": None})

        assert candidate.code == "UNKNOWN"
        assert candidate.description == "Pintura plástica"
        assert candidate.unit == "ud"
        assert candidate.price_total == 0.0

    def test_effective_price_falls_back_to_breakdown(self):
        candidate = PriceBookCandidate.from_document({
            "code": "A",
            "description": "B",
            "priceTotal": 0,
            "breakdown": [{"code": "mo1", "price": 20, "quantity": 0.5}, {"code": "mt1", "price": 4, "quantity": 2}],
        })

        assert candidate.effective_unit_price == 18.0

    def test_material_name_fallback(self):
        candidate = MaterialCandidate.from_document({"sku": "SKU-1", "name": None, "price": None})

        assert candidate.name == "SKU-1"
        assert candidate.price == 0.0


class TestAgentOutputs:
    """Tests for agent output models."""

    def test_subtask_non_positive_quantity_becomes_one(self):
        assert Subtask(search_query="Pintar", quantity=0).quantity == 1.0
        assert Subtask.model_validate({"searchQuery": "Pintar", "quantity": "abc"}).quantity == 1.0

    def test_triage_parameters_intent(self):
        assert TriageParameters().intent == SearchIntent.BOTH
        assert TriageParameters.model_validate({"intent": "material"}).intent == SearchIntent.MATERIAL
        assert TriageParameters.model_validate({"generic_query": "azulejo"}).generic_query == "azulejo"

    def test_validation_issue_severity_case_insensitive(self):
        assert ValidationIssue.model_validate({"severity": "HIGH", "message": "x"}).severity.value == "high"

    def test_architect_chapter_as_task(self):
        chapter = ArchitectChapter(name="Pavimentos", description="Solado de gres", approx_quantity=80, unit="m2")

        assert chapter.as_task() == "Pavimentos: Solado de gres (Total Estimates: 80 m2)"
