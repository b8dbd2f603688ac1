"""Deduction engine schemas: per-ingredient outcomes and per-sale results."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from inventory_engine.schemas.matching import MatchTier


class FailureKind(str, Enum):
    """Why an ingredient could not be deducted."""

    RESOLUTION = "resolution"  # No inventory item matched
    AVAILABILITY = "availability"  # Matched, but not enough on hand
    PERSISTENCE = "persistence"  # Record store rejected a read or write
    SYSTEM = "system"  # Unexpected error, caught at sale level


class SoldItem(BaseModel):
    """One line of a completed sale."""

    product_name: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0)
    recipe_id: Optional[int] = None


class DeductionOutcome(BaseModel):
    """Result of one attempted ingredient deduction.

    Successful outcomes carry the deducted quantity and the before/after
    stock; failures carry ``failure_kind`` and ``reason`` and, for
    availability failures, the required and available quantities.
    """

    ingredient_name: str
    product_name: Optional[str] = None
    inventory_item_id: Optional[int] = None
    inventory_item_name: Optional[str] = None
    match_tier: Optional[MatchTier] = None
    unit: Optional[str] = None
    quantity_deducted: Optional[Decimal] = None
    previous_quantity: Optional[Decimal] = None
    new_quantity: Optional[Decimal] = None
    failure_kind: Optional[FailureKind] = None
    reason: Optional[str] = None
    required_quantity: Optional[Decimal] = None
    available_quantity: Optional[Decimal] = None

    @property
    def succeeded(self) -> bool:
        return self.failure_kind is None


class DeductionResult(BaseModel):
    """Aggregated result of processing one sale. ``success`` is false if any ingredient failed."""

    sale_id: str
    store_id: str
    success: bool
    outcomes: List[DeductionOutcome] = Field(default_factory=list)
    failures: List[DeductionOutcome] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    items_processed: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DeductForSaleRequest(BaseModel):
    sale_id: str = Field(min_length=1, max_length=100)
    store_id: str = Field(min_length=1, max_length=64)
    items: List[SoldItem]


class ValidateSaleRequest(BaseModel):
    store_id: str = Field(min_length=1, max_length=64)
    items: List[SoldItem]


class IngredientShortage(BaseModel):
    ingredient_name: str
    inventory_item_id: Optional[int] = None
    inventory_item_name: Optional[str] = None
    unit: Optional[str] = None
    required_quantity: Optional[Decimal] = None
    available_quantity: Optional[Decimal] = None
    failure_kind: FailureKind
    reason: Optional[str] = None


class SaleValidation(BaseModel):
    """Dry-run of a sale: nothing is written."""

    store_id: str
    valid: bool
    shortages: List[IngredientShortage] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class RecipeAvailability(BaseModel):
    recipe_id: int
    store_id: str
    requested_quantity: Decimal
    can_make: bool
    max_quantity: int
    missing_ingredients: List[str] = Field(default_factory=list)


class ReversalLine(BaseModel):
    inventory_item_id: int
    inventory_item_name: str
    quantity_restored: Decimal
    new_quantity: Decimal


class ReversalResult(BaseModel):
    sale_id: str
    store_id: str
    success: bool
    restored: List[ReversalLine] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    already_reversed: bool = False
