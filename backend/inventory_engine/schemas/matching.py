"""Ingredient matching schemas."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MatchTier(str, Enum):
    """How an ingredient was resolved to an inventory item, strongest first."""

    EXACT = "exact"
    STANDARDIZED_ALIAS = "standardized_alias"
    FUZZY = "fuzzy"
    NONE = "none"


class IngredientMatch(BaseModel):
    """Resolution of one recipe ingredient against a store's inventory."""

    ingredient_name: str
    ingredient_unit: str
    tier: MatchTier
    confidence: float = Field(ge=0.0, le=1.0)
    inventory_item_id: Optional[int] = None
    inventory_item_name: Optional[str] = None
    inventory_unit: Optional[str] = None
    conversion_factor: Decimal = Decimal("1")
    conversion_verified: bool = True
    category: Optional[str] = None
    expected_categories: List[str] = Field(default_factory=list)
    best_rejected_similarity: Optional[float] = None

    @property
    def is_match(self) -> bool:
        return self.tier != MatchTier.NONE and self.inventory_item_id is not None


class MatchIngredientRequest(BaseModel):
    ingredient_name: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="pieces", max_length=20)
    store_id: str = Field(min_length=1, max_length=64)
