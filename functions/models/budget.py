"""Budget document models.

Pydantic models for the generated budget: line items (partidas and
materials), chapters, the financial roll-up and the budget document
stored in Firestore at /budgets/{id}.

Line item totals are derived fields, so a line total always equals
unit price times quantity and a chapter total always equals the sum of
its line totals.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from models.budget_config import BudgetConfig
from utils.pricing import round_money


# =============================================================================
# ENUMS
# =============================================================================


class ComponentType(str, Enum):
    """Kind of cost inside a partida breakdown."""

    LABOR = "LABOR"
    MATERIAL = "MATERIAL"
    MACHINERY = "MACHINERY"
    OTHER = "OTHER"


class BudgetStatus(str, Enum):
    """Status of a budget document."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def new_item_id(prefix: Optional[str] = None) -> str:
    """Generate a line item ID, optionally with a readable prefix."""
    if prefix:
        return f"{prefix}-{uuid4().hex[:6].upper()}"
    return str(uuid4())


# =============================================================================
# LINE ITEMS
# =============================================================================


class BreakdownComponent(BaseModel):
    """One cost component of a partida, e.g. labor hours or a material."""

    code: Optional[str] = Field(default=None, description="Component code")
    concept: str = Field(..., description="Human-readable concept")
    type: ComponentType = Field(default=ComponentType.MATERIAL, description="Cost kind")
    price: float = Field(..., ge=0, description="Price per unit of the component")
    yield_factor: float = Field(
        ...,
        ge=0,
        alias="yield",
        description="Quantity of the component per unit of the partida"
    )
    waste: float = Field(default=0.0, ge=0, description="Waste fraction already included in yield")
    is_substituted: bool = Field(
        default=False,
        alias="isSubstituted",
        description="True when a specific catalog material replaced the generic one"
    )

    class Config:
        populate_by_name = True

    @computed_field
    @property
    def total(self) -> float:
        """Price times yield."""
        return self.price * self.yield_factor


class RelatedMaterial(BaseModel):
    """Specific material a partida was re-priced with."""

    sku: str = Field(default="", description="Merchant SKU")
    name: str = Field(..., description="Product name")
    merchant: Optional[str] = Field(default=None, description="Merchant name")
    price: float = Field(..., ge=0, description="Unit price of the product")
    unit: str = Field(default="ud", description="Sales unit")


class Partida(BaseModel):
    """A priced unit of construction work."""

    type: Literal["PARTIDA"] = "PARTIDA"
    id: str = Field(default_factory=new_item_id, description="Line item ID")
    order: int = Field(default=0, ge=0, description="Display order inside its chapter")
    code: str = Field(..., description="Price book or synthetic code")
    description: str = Field(..., description="Work description")
    unit: str = Field(default="ud", description="Measurement unit")
    quantity: float = Field(default=1.0, ge=0, description="Measured quantity")
    unit_price: float = Field(..., ge=0, alias="unitPrice", description="Price per unit")
    original_task: Optional[str] = Field(default=None, alias="originalTask", description="Task text this line came from")
    note: Optional[str] = Field(default=None, description="Provenance note")
    is_estimate: bool = Field(default=False, alias="isEstimate", description="Price was not taken from a catalog")
    is_real_cost: bool = Field(default=False, alias="isRealCost", description="Price comes from a verified catalog match")
    match_confidence: Optional[float] = Field(default=None, ge=0, le=100, alias="matchConfidence")
    breakdown: List[BreakdownComponent] = Field(default_factory=list)
    related_material: Optional[RelatedMaterial] = Field(default=None, alias="relatedMaterial")
    children: List["Partida"] = Field(
        default_factory=list,
        description="Sub-items of an assembly, informational only"
    )

    class Config:
        populate_by_name = True

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> float:
        return round_money(self.unit_price * self.quantity)

    @property
    def breakdown_total(self) -> float:
        return sum(component.total for component in self.breakdown)


class Material(BaseModel):
    """A commercial product supplied without installation."""

    type: Literal["MATERIAL"] = "MATERIAL"
    id: str = Field(default_factory=new_item_id, description="Line item ID")
    order: int = Field(default=0, ge=0, description="Display order inside its chapter")
    sku: str = Field(default="", description="Merchant SKU")
    name: str = Field(..., description="Product name")
    description: str = Field(default="", description="Product description")
    merchant: Optional[str] = Field(default=None, description="Merchant name")
    unit: str = Field(default="ud", description="Sales unit")
    quantity: float = Field(default=1.0, ge=0, description="Quantity")
    unit_price: float = Field(..., ge=0, alias="unitPrice", description="Price per unit")
    original_task: Optional[str] = Field(default=None, alias="originalTask")
    note: Optional[str] = Field(default=None, description="Provenance note")
    is_estimate: bool = Field(default=False, alias="isEstimate")

    class Config:
        populate_by_name = True

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> float:
        return round_money(self.unit_price * self.quantity)


LineItem = Annotated[Union[Partida, Material], Field(discriminator="type")]


def line_item_label(item: Union[Partida, Material]) -> str:
    """Short human-readable label of a line item.

    Raises:
        TypeError: If item is not a known line item variant.
    """
    if isinstance(item, Partida):
        return f"{item.description} ({item.quantity:g} {item.unit})"
    if isinstance(item, Material):
        return f"{item.name} ({item.quantity:g} {item.unit})"
    raise TypeError(f"Unknown line item type: {type(item).__name__}")


# =============================================================================
# CHAPTERS AND ROLL-UP
# =============================================================================


class Chapter(BaseModel):
    """Named group of line items."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Chapter ID")
    name: str = Field(..., description="Chapter name")
    order: int = Field(default=1, ge=0, description="Display order")
    items: List[LineItem] = Field(default_factory=list)

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> float:
        return round_money(sum(item.total_price for item in self.items))

    @classmethod
    def build(cls, name: str, order: int, items: List[Union[Partida, Material]]) -> "Chapter":
        return cls(name=name, order=order, items=list(items))


class CostBreakdown(BaseModel):
    """Financial roll-up of a budget.

    PEM (material execution price) -> overhead and industrial benefit on PEM
    -> subtotal -> IVA on subtotal -> total -> global adjustment on total.
    """

    material_execution_price: float = Field(..., ge=0, alias="materialExecutionPrice")
    overhead_expenses: float = Field(..., alias="overheadExpenses")
    industrial_benefit: float = Field(..., alias="industrialBenefit")
    tax: float = Field(..., description="IVA amount")
    global_adjustment: float = Field(
        default=0.0,
        alias="globalAdjustment",
        description="Delta applied by the global adjustment factor"
    )
    total: float = Field(..., description="Final amount including tax and adjustment")

    class Config:
        populate_by_name = True

    @property
    def subtotal(self) -> float:
        return self.material_execution_price + self.overhead_expenses + self.industrial_benefit

    @classmethod
    def from_execution_price(cls, material_execution_price: float, config: BudgetConfig) -> "CostBreakdown":
        """Apply the configured rates to an execution price.

        Args:
            material_execution_price: Sum of all line totals.
            config: Rates to apply.

        Returns:
            CostBreakdown with every derived amount filled in.
        """
        pem = material_execution_price
        overhead = pem * config.overhead_expenses
        benefit = pem * config.industrial_benefit
        subtotal = pem + overhead + benefit
        tax = subtotal * config.iva
        total = subtotal + tax

        adjustment = 0.0
        if config.global_adjustment_factor != 1.0:
            adjusted = total * config.global_adjustment_factor
            adjustment = adjusted - total
            total = adjusted

        return cls(
            material_execution_price=pem,
            overhead_expenses=overhead,
            industrial_benefit=benefit,
            tax=tax,
            global_adjustment=adjustment,
            total=total,
        )


# =============================================================================
# VALIDATION REPORT
# =============================================================================


class ValidationIssue(BaseModel):
    """A single advisory finding about a budget."""

    severity: IssueSeverity = Field(default=IssueSeverity.LOW)
    message: str = Field(..., description="What looks wrong")
    suggestion: Optional[str] = Field(default=None, description="How to fix it")

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class ValidationReport(BaseModel):
    """Advisory review of a budget's item list. Never alters prices."""

    is_valid: bool = Field(default=True, alias="isValid")
    issues: List[ValidationIssue] = Field(default_factory=list)
    overall_score: int = Field(default=100, ge=0, le=100, alias="overallScore")

    class Config:
        populate_by_name = True


# =============================================================================
# BUDGET DOCUMENT
# =============================================================================


class Budget(BaseModel):
    """Generated budget document stored in /budgets/{id}."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Budget ID")
    lead_id: Optional[str] = Field(default=None, alias="leadId", description="Lead / session the budget belongs to")
    status: BudgetStatus = Field(default=BudgetStatus.DRAFT)
    title: Optional[str] = Field(default=None, description="Project title or request summary")
    chapters: List[Chapter] = Field(default_factory=list)
    cost_breakdown: CostBreakdown = Field(..., alias="costBreakdown")
    total_estimated: float = Field(..., alias="totalEstimated", description="Equals costBreakdown.total")
    validation_report: Optional[ValidationReport] = Field(default=None, alias="validationReport")
    source: str = Field(default="ai-pipeline", description="Generator of the budget")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")

    class Config:
        populate_by_name = True

    @property
    def items(self) -> List[Union[Partida, Material]]:
        """All line items across chapters, in chapter order."""
        return [item for chapter in self.chapters for item in chapter.items]

    def to_firestore(self) -> Dict[str, Any]:
        """Serialize with camelCase keys for Firestore and the API."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
