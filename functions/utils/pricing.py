"""Pricing heuristics shared by the search and analyst agents.

All monetary values are euros. Amounts are kept as floats and rounded to
cents only where a line total is produced.
"""

from typing import Iterable

from utils.text import contains_any

# Price book breakdown codes: "mo..." is labor (mano de obra), "mq..." machinery
# charged as labor. Everything else is material.
LABOR_CODE_PREFIXES = ("mo", "mq")

# Waste (merma) applied when a specific material replaces a generic one
CERAMIC_KEYWORDS = ("cerámica", "ceramica", "porcelánico", "porcelanico", "azulejo", "gres")
WOOD_FLOOR_KEYWORDS = ("parquet", "laminado", "tarima")

CERAMIC_WASTE = 0.10
WOOD_FLOOR_WASTE = 0.08
DEFAULT_WASTE = 0.05

# Share of a partida price assumed to be labor when it has no usable breakdown
ASSUMED_LABOR_SHARE = 0.60


def round_money(amount: float) -> float:
    """Round a euro amount to cents."""
    return round(float(amount), 2)


def is_labor_code(code: str) -> bool:
    """Whether a price book breakdown code denotes labor."""
    return (code or "").strip().lower().startswith(LABOR_CODE_PREFIXES)


def waste_factor_for_material(material_name: str) -> float:
    """Pick the waste factor for a material from its name.

    Args:
        material_name: Catalog name, e.g. "Keraben Porcelánico Bottega 60x60".

    Returns:
        Fraction of extra material to budget (0.10 = 10%).
    """
    if contains_any(material_name, CERAMIC_KEYWORDS):
        return CERAMIC_WASTE
    if contains_any(material_name, WOOD_FLOOR_KEYWORDS):
        return WOOD_FLOOR_WASTE
    return DEFAULT_WASTE


def sum_totals(totals: Iterable[float]) -> float:
    return round_money(sum(totals))
