"""Catalog candidate models.

Records returned by vector search over the two catalogs:
- price book items (partidas with unit price and cost breakdown)
- material catalog (commercial products with SKU and merchant)
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class PriceBookBreakdownEntry(BaseModel):
    """One component line of a price book item as stored in the catalog."""

    code: str = Field(default="", description="Component code, e.g. 'mo020' or 'mt18bde'")
    description: str = Field(default="", description="Component description")
    price: float = Field(default=0.0, description="Price per unit of the component")
    quantity: float = Field(default=0.0, description="Yield of the component per unit of the item")

    @field_validator("code", "description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""

    @field_validator("price", "quantity", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> float:
        return v or 0.0


class PriceBookCandidate(BaseModel):
    """A price book item returned by the price book retriever."""

    id: Optional[str] = Field(default=None, description="Catalog document ID")
    code: str = Field(default="UNKNOWN", description="Price book code")
    description: str = Field(default="", description="Item description")
    unit: str = Field(default="ud", description="Measurement unit")
    price_total: float = Field(default=0.0, alias="priceTotal", description="Unit price")
    price_labor: Optional[float] = Field(default=None, alias="priceLabor")
    price_material: Optional[float] = Field(default=None, alias="priceMaterial")
    breakdown: List[PriceBookBreakdownEntry] = Field(default_factory=list)
    chapter: Optional[str] = Field(default=None, description="Price book chapter")
    section: Optional[str] = Field(default=None, description="Price book section")
    year: Optional[int] = Field(default=None, description="Price book edition year")
    match_score: float = Field(default=0.0, alias="matchScore", description="Similarity score, higher is better")

    class Config:
        populate_by_name = True

    @field_validator("code", mode="before")
    @classmethod
    def default_code(cls, v: Any) -> str:
        return v or "UNKNOWN"

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> str:
        return v or "ud"

    @field_validator("price_total", mode="before")
    @classmethod
    def default_price(cls, v: Any) -> float:
        return v or 0.0

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PriceBookCandidate":
        """Build a candidate from a vector search result document."""
        data = dict(doc)
        if not data.get("description"):
            data["description"] = data.get("name") or ""
        return cls.model_validate(data)

    @property
    def breakdown_total(self) -> float:
        """Sum of component price times yield."""
        return sum(entry.price * entry.quantity for entry in self.breakdown)

    @property
    def effective_unit_price(self) -> float:
        """Stored unit price, or the breakdown sum when it is missing."""
        if self.price_total > 0:
            return self.price_total
        return self.breakdown_total


class MaterialCandidate(BaseModel):
    """A commercial product returned by the material retriever."""

    id: Optional[str] = Field(default=None, description="Catalog document ID")
    sku: str = Field(default="", description="Merchant SKU")
    name: str = Field(..., description="Product name")
    description: str = Field(default="", description="Product description")
    price: float = Field(default=0.0, ge=0, description="Unit price")
    unit: str = Field(default="ud", description="Sales unit")
    category: str = Field(default="", description="Catalog category")
    merchant: Optional[str] = Field(default=None, description="Merchant name")
    url: Optional[str] = Field(default=None, description="Product page")
    match_score: float = Field(default=0.0, alias="matchScore", description="Similarity score, higher is better")

    class Config:
        populate_by_name = True

    @field_validator("sku", "description", "category", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: Any) -> str:
        return v or "ud"

    @field_validator("price", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> float:
        return v or 0.0

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MaterialCandidate":
        data = dict(doc)
        if not data.get("name"):
            data["name"] = data.get("description") or data.get("sku") or "Material"
        return cls.model_validate(data)
