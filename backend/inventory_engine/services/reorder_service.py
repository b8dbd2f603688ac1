"""Reorder service: urgency-tiered reorder recommendations from consumption rates."""

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.schemas.analytics import URGENCY_ORDER, ReorderRecommendation, UrgencyTier
from inventory_engine.services.consumption_analytics_service import ConsumptionAnalyticsService
from inventory_engine.services.record_store import RecordStore

logger = logging.getLogger(__name__)


def days_until_stockout(current_stock: Decimal, daily_rate: Decimal, sentinel: int = 999) -> int:
    """Whole days the stock lasts at *daily_rate*; *sentinel* when nothing is consumed."""
    if daily_rate <= 0:
        return sentinel
    return max(0, math.floor(current_stock / daily_rate))


def classify_urgency(days: int, critical: int = 3, high: int = 7, medium: int = 14) -> UrgencyTier:
    if days <= critical:
        return UrgencyTier.CRITICAL
    if days <= high:
        return UrgencyTier.HIGH
    if days <= medium:
        return UrgencyTier.MEDIUM
    return UrgencyTier.LOW


class ReorderService:
    """Service for generating reorder recommendations."""

    def __init__(
        self,
        store: RecordStore,
        analytics: Optional[ConsumptionAnalyticsService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.analytics = analytics or ConsumptionAnalyticsService(store, self.settings)

    def recommended_quantity(self, daily_rate: Decimal, minimum_threshold: Decimal) -> Decimal:
        """Cover the next coverage window, and never less than twice the minimum."""
        coverage = Decimal(math.ceil(daily_rate * self.settings.reorder_coverage_days))
        return max(coverage, minimum_threshold * 2)

    def generate_reorder_recommendations(
        self,
        store_id: str,
        now: Optional[datetime] = None,
    ) -> List[ReorderRecommendation]:
        """
        Recommend orders for items at or below their minimum threshold, or
        projected to run out within the medium urgency horizon.

        Returns:
            Recommendations, most urgent first.
        """
        rates: Dict[int, Decimal] = {
            p.inventory_item_id: p.daily_average
            for p in self.analytics.compute_consumption_patterns(store_id, now=now)
        }

        recommendations: List[ReorderRecommendation] = []
        for item in self.store.list_active_items(store_id):
            daily_rate = rates.get(item.id, Decimal("0"))
            days = days_until_stockout(item.quantity, daily_rate, self.settings.stockout_sentinel_days)
            urgency = classify_urgency(
                days,
                critical=self.settings.urgency_critical_days,
                high=self.settings.urgency_high_days,
                medium=self.settings.urgency_medium_days,
            )

            if item.quantity > item.minimum_threshold and urgency == UrgencyTier.LOW:
                continue

            qty = self.recommended_quantity(daily_rate, item.minimum_threshold)
            cost_impact = (qty * (item.cost_per_unit or Decimal("0"))).quantize(Decimal("0.01"))

            recommendations.append(ReorderRecommendation(
                inventory_item_id=item.id,
                item_name=item.name,
                unit=item.unit,
                current_stock=item.quantity,
                minimum_threshold=item.minimum_threshold,
                daily_rate=daily_rate,
                recommended_quantity=qty,
                days_until_stockout=days,
                urgency=urgency,
                cost_impact=cost_impact,
            ))

        recommendations.sort(key=lambda r: (URGENCY_ORDER[r.urgency], r.days_until_stockout))

        critical = len([r for r in recommendations if r.urgency == UrgencyTier.CRITICAL])
        if critical:
            logger.warning(f"Store {store_id}: {critical} item(s) at critical reorder urgency")
        return recommendations
