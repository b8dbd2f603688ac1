"""Consumption analytics over the deduction ledger.

Daily averages are raw arithmetic means: total consumed in the trailing
window divided by the window length. No smoothing, seasonality or outlier
rejection.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.models.stock import MovementType
from inventory_engine.schemas.analytics import ConsumptionPattern
from inventory_engine.services.record_store import MovementRecord, RecordStore

logger = logging.getLogger(__name__)

RATE_PLACES = Decimal("0.0001")


class ConsumptionAnalyticsService:
    """Per-item consumption rates for a store."""

    def __init__(self, store: RecordStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or default_settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compute_consumption_patterns(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[ConsumptionPattern]:
        """Daily average consumption per item over the last *window_days*."""
        window_days = window_days or self.settings.consumption_window_days
        if window_days < 1:
            raise ValueError(f"window_days must be at least 1, got {window_days}")

        movements = self._deductions(store_id, window_days, now)

        totals: Dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
        counts: Dict[int, int] = defaultdict(int)
        for movement in movements:
            totals[movement.inventory_item_id] += abs(movement.quantity_delta)
            counts[movement.inventory_item_id] += 1

        # Retired items drop out of the averages
        items = {item.id: item for item in self.store.list_active_items(store_id)}
        patterns: List[ConsumptionPattern] = []
        for item_id, total in totals.items():
            item = items.get(item_id)
            if item is None:
                continue
            patterns.append(ConsumptionPattern(
                inventory_item_id=item_id,
                item_name=item.name,
                unit=item.unit,
                total_consumed=total,
                window_days=window_days,
                daily_average=(total / Decimal(window_days)).quantize(RATE_PLACES),
                movement_count=counts[item_id],
            ))

        patterns.sort(key=lambda p: p.daily_average, reverse=True)
        logger.debug(f"Computed {len(patterns)} consumption patterns for store {store_id}")
        return patterns

    def daily_consumption(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[int, Dict[date, Decimal]]:
        """Consumed quantity per item per UTC day over the window."""
        window_days = window_days or self.settings.consumption_window_days
        result: Dict[int, Dict[date, Decimal]] = defaultdict(lambda: defaultdict(lambda: Decimal("0")))
        for movement in self._deductions(store_id, window_days, now):
            day = movement.created_at.astimezone(timezone.utc).date()
            result[movement.inventory_item_id][day] += abs(movement.quantity_delta)
        return {item_id: dict(days) for item_id, days in result.items()}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deductions(
        self,
        store_id: str,
        window_days: int,
        now: Optional[datetime],
    ) -> List[MovementRecord]:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=window_days)
        return [
            m for m in self.store.list_movements(
                store_id, since=since, movement_type=MovementType.DEDUCTION
            )
            if m.created_at <= now
        ]
