"""Structured outputs of the budget agents.

Every LLM-backed agent validates its raw JSON against one of these
models. Field aliases are the camelCase keys the prompts ask for.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from models.budget import Partida
from models.catalog import MaterialCandidate


class TriageTool(str, Enum):
    """Resolution path chosen by the triage agent."""

    BUDGET_SEARCH = "budgetSearchAgent"
    ESTIMATION = "estimationAgent"
    ASK_USER = "askUser"


class SearchIntent(str, Enum):
    """Which catalogs the budget search should consult."""

    PARTIDA = "PARTIDA"
    MATERIAL = "MATERIAL"
    BOTH = "BOTH"


class Complexity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# =============================================================================
# TRIAGE
# =============================================================================


class TriageParameters(BaseModel):
    """Search parameters produced by the triage agent."""

    query: str = Field(default="", description="Specific search query")
    generic_query: Optional[str] = Field(
        default=None,
        alias="genericQuery",
        description="Brand-free query used as price book fallback"
    )
    intent: SearchIntent = Field(default=SearchIntent.BOTH, description="Catalogs to search")
    context: Optional[str] = Field(default=None, description="Extra context for the search")

    class Config:
        populate_by_name = True

    @field_validator("intent", mode="before")
    @classmethod
    def normalize_intent(cls, v: Any) -> Any:
        if v is None or v == "":
            return SearchIntent.BOTH
        if isinstance(v, str):
            return v.strip().upper()
        return v


class TriageDecision(BaseModel):
    """Triage routing decision for one task."""

    tool: TriageTool = Field(..., description="Resolution path")
    reasoning: str = Field(default="", description="Why this path was chosen")
    parameters: TriageParameters = Field(default_factory=TriageParameters)


# =============================================================================
# EXTRACTION
# =============================================================================


class Subtask(BaseModel):
    """One atomic task extracted from a narrative."""

    search_query: str = Field(..., alias="searchQuery", description="Self-contained task description")
    quantity: float = Field(default=1.0, description="Measured quantity")
    unit: str = Field(default="ud", description="Measurement unit")
    reasoning: Optional[str] = Field(default=None)

    class Config:
        populate_by_name = True

    @field_validator("quantity", mode="before")
    @classmethod
    def positive_quantity(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 1.0
        return value if value > 0 else 1.0

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> str:
        return v or "ud"


class SubtaskExtraction(BaseModel):
    subtasks: List[Subtask] = Field(default_factory=list)


# =============================================================================
# SEARCH / ANALYST / ESTIMATION
# =============================================================================


class SearchResult(BaseModel):
    """Outcome of a budget search over both catalogs."""

    partida: Optional[Partida] = None
    material: Optional[MaterialCandidate] = None
    confidence: float = Field(default=0.0, ge=0, le=1)
    source: str = Field(default="vector-search")

    @property
    def is_empty(self) -> bool:
        return self.partida is None and self.material is None


class AnalystResult(BaseModel):
    """Partidas produced by the construction analyst."""

    items: List[Partida] = Field(default_factory=list)


class CandidateSelection(BaseModel):
    """Judge verdict over a numbered candidate list. 0 means no match."""

    selected_index: int = Field(default=0, ge=0, alias="selectedIndex")
    reason: str = Field(default="")

    class Config:
        populate_by_name = True


class MarketEstimate(BaseModel):
    """Market price estimate for work no catalog covers."""

    description: str = Field(..., description="Professional description of the work")
    price: float = Field(..., ge=0, description="Unit price in euros")
    unit: str = Field(default="ud", description="Measurement unit")
    source: str = Field(default="market-estimate", description="Basis of the estimate")
    confidence: float = Field(default=0.5, ge=0, le=1)
    reasoning: Optional[str] = Field(default=None)

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> str:
        return v or "ud"


# =============================================================================
# ARCHITECT
# =============================================================================


class ArchitectChapter(BaseModel):
    """A chapter planned by the architect for a large project."""

    name: str = Field(..., description="Chapter name, e.g. 'Demoliciones'")
    description: str = Field(default="", description="Scope of the chapter")
    estimated_complexity: Complexity = Field(default=Complexity.MEDIUM, alias="estimatedComplexity")
    approx_quantity: Optional[float] = Field(default=None, alias="approxQuantity")
    unit: Optional[str] = Field(default=None)

    class Config:
        populate_by_name = True

    @field_validator("estimated_complexity", mode="before")
    @classmethod
    def normalize_complexity(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) and v.strip() else (v or Complexity.MEDIUM)

    def as_task(self) -> str:
        """Task text handed to decomposition."""
        text = f"{self.name}: {self.description}".strip().rstrip(":")
        if self.approx_quantity:
            text += f" (Total Estimates: {self.approx_quantity:g} {self.unit or 'ud'})"
        return text


class ArchitectPlan(BaseModel):
    chapters: List[ArchitectChapter] = Field(default_factory=list)
