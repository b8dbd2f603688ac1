"""Consumption analytics, reorder and stock alert schemas."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class UrgencyTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class StockAlertType(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    REORDER_POINT = "reorder_point"
    CONSUMPTION_SPIKE = "consumption_spike"


# Most urgent first, for sorting
URGENCY_ORDER = {
    UrgencyTier.CRITICAL: 0,
    UrgencyTier.HIGH: 1,
    UrgencyTier.MEDIUM: 2,
    UrgencyTier.LOW: 3,
}
SEVERITY_ORDER = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 3,
}


class ConsumptionPattern(BaseModel):
    """Raw daily average consumption of one item over a trailing window."""

    inventory_item_id: int
    item_name: str
    unit: str
    total_consumed: Decimal
    window_days: int
    daily_average: Decimal
    movement_count: int


class ReorderRecommendation(BaseModel):
    inventory_item_id: int
    item_name: str
    unit: str
    current_stock: Decimal
    minimum_threshold: Decimal
    daily_rate: Decimal
    recommended_quantity: Decimal
    days_until_stockout: int
    urgency: UrgencyTier
    cost_impact: Decimal


class StockAlert(BaseModel):
    inventory_item_id: int
    item_name: str
    alert_type: StockAlertType
    severity: AlertSeverity
    current_stock: Decimal
    minimum_threshold: Decimal
    message: str


class ConsumptionSpike(BaseModel):
    inventory_item_id: int
    item_name: str
    day: date
    consumed: Decimal
    daily_average: Decimal
    ratio: Optional[Decimal] = None
