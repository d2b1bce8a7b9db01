"""Budget configuration model.

Financial percentages applied on top of the material execution price.
Stored in Firestore at budget_configs/default and merged over the defaults.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class BudgetConfig(BaseModel):
    """Rates used by the financial roll-up.

    All percentages are fractions (0.13 = 13%). Only overhead, industrial
    benefit, IVA and the adjustment factor feed the roll-up; the integral
    reform rate and the material/labor margins are stored company settings
    carried with the config, not applied by CostBreakdown.
    """

    id: str = Field(default="default", description="Config document ID")
    overhead_expenses: float = Field(
        default=0.13,
        ge=0,
        alias="overheadExpenses",
        description="Gastos generales, applied to the execution price"
    )
    industrial_benefit: float = Field(
        default=0.06,
        ge=0,
        alias="industrialBenefit",
        description="Beneficio industrial, applied to the execution price"
    )
    iva: float = Field(
        default=0.10,
        ge=0,
        description="IVA applied to the subtotal"
    )
    global_adjustment_factor: float = Field(
        default=1.0,
        gt=0,
        alias="globalAdjustmentFactor",
        description="Multiplier on the taxed total (1.0 = no adjustment)"
    )
    base_integral_reform_rate_m2: float = Field(
        default=650.0,
        ge=0,
        alias="baseIntegralReformRateM2",
        description="Reference rate per m2 for integral reforms"
    )
    material_margin: float = Field(default=0.10, ge=0, alias="materialMargin")
    labor_margin: float = Field(default=0.0, ge=0, alias="laborMargin")

    class Config:
        populate_by_name = True

    @classmethod
    def from_document(cls, data: Optional[Dict[str, Any]]) -> "BudgetConfig":
        """Merge a stored config document over the defaults.

        Args:
            data: Firestore document data (may be None or partial).

        Returns:
            BudgetConfig with stored values taking precedence.
        """
        merged = DEFAULT_BUDGET_CONFIG.model_dump(by_alias=True)
        merged.update({k: v for k, v in (data or {}).items() if v is not None})
        return cls.model_validate(merged)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


DEFAULT_BUDGET_CONFIG = BudgetConfig()
