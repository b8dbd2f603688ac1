"""Inventory item and movement response schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class InventoryItemResponse(BaseModel):
    id: int
    store_id: str
    name: str
    unit: str
    category: str
    quantity: Decimal
    cost_per_unit: Optional[Decimal] = None
    minimum_threshold: Decimal
    is_active: bool
    version: int

    model_config = {"from_attributes": True}


class InventoryMovementResponse(BaseModel):
    id: int
    created_at: datetime
    inventory_item_id: int
    store_id: str
    movement_type: str
    quantity_delta: Decimal
    resulting_quantity: Decimal
    reference: Optional[str] = None
    match_tier: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}
