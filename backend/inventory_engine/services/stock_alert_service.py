"""Stock Alert Service - threshold alerts and consumption spike detection.

Threshold alerts look only at current stock against each item's minimum:

- stock <= 0                      -> critical, out of stock
- stock <= 50% of minimum         -> high, low stock
- stock <= minimum                -> medium, low stock
- stock <= 1.5 x minimum          -> low, reorder point

Spike detection is separate: an item is flagged for every day in the
window on which it consumed more than twice its trailing daily average.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.schemas.analytics import (
    SEVERITY_ORDER,
    AlertSeverity,
    ConsumptionSpike,
    StockAlert,
    StockAlertType,
)
from inventory_engine.services.consumption_analytics_service import ConsumptionAnalyticsService
from inventory_engine.services.record_store import InventoryItemRecord, RecordStore

logger = logging.getLogger(__name__)

HALF = Decimal("0.5")
REORDER_POINT_FACTOR = Decimal("1.5")


def threshold_alert(item: InventoryItemRecord) -> Optional[StockAlert]:
    """The single most severe threshold alert for *item*, if any."""
    stock = item.quantity
    minimum = item.minimum_threshold

    if stock <= 0:
        alert_type, severity = StockAlertType.OUT_OF_STOCK, AlertSeverity.CRITICAL
        message = f"{item.name} is out of stock"
    elif stock <= minimum:
        alert_type = StockAlertType.LOW_STOCK
        severity = AlertSeverity.HIGH if stock <= minimum * HALF else AlertSeverity.MEDIUM
        message = f"{item.name} is below minimum ({stock}/{minimum} {item.unit})"
    elif stock <= minimum * REORDER_POINT_FACTOR:
        alert_type, severity = StockAlertType.REORDER_POINT, AlertSeverity.LOW
        message = f"{item.name} reached its reorder point ({stock}/{minimum} {item.unit})"
    else:
        return None

    return StockAlert(
        inventory_item_id=item.id,
        item_name=item.name,
        alert_type=alert_type,
        severity=severity,
        current_stock=stock,
        minimum_threshold=minimum,
        message=message,
    )


class StockAlertService:
    """Generates stock alerts: out of stock, low stock, reorder point, consumption spikes."""

    def __init__(
        self,
        store: RecordStore,
        analytics: Optional[ConsumptionAnalyticsService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.analytics = analytics or ConsumptionAnalyticsService(store, self.settings)

    def monitor_stock_alerts(self, store_id: str) -> List[StockAlert]:
        """Threshold alerts for every active item of the store, most severe first."""
        alerts = [
            alert
            for alert in (threshold_alert(item) for item in self.store.list_active_items(store_id))
            if alert is not None
        ]
        alerts.sort(key=lambda a: SEVERITY_ORDER[a.severity])

        critical = len([a for a in alerts if a.severity == AlertSeverity.CRITICAL])
        if critical:
            logger.warning(f"Store {store_id}: {critical} item(s) out of stock")
        return alerts

    def detect_consumption_spikes(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[ConsumptionSpike]:
        window_days = window_days or self.settings.consumption_window_days
        multiplier = Decimal(str(self.settings.spike_multiplier))

        averages = {
            p.inventory_item_id: p
            for p in self.analytics.compute_consumption_patterns(store_id, window_days, now=now)
        }
        daily = self.analytics.daily_consumption(store_id, window_days, now=now)

        spikes: List[ConsumptionSpike] = []
        for item_id, days in daily.items():
            pattern = averages.get(item_id)
            if pattern is None or pattern.daily_average <= 0:
                continue
            for day, consumed in sorted(days.items()):
                if consumed > pattern.daily_average * multiplier:
                    spikes.append(ConsumptionSpike(
                        inventory_item_id=item_id,
                        item_name=pattern.item_name,
                        day=day,
                        consumed=consumed,
                        daily_average=pattern.daily_average,
                        ratio=(consumed / pattern.daily_average).quantize(Decimal("0.01")),
                    ))

        if spikes:
            logger.info(f"Store {store_id}: {len(spikes)} consumption spike(s) in last {window_days} days")
        return spikes

    def spike_alerts(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[StockAlert]:
        """Consumption spikes expressed as medium-severity stock alerts."""
        spikes = self.detect_consumption_spikes(store_id, window_days, now=now)
        if not spikes:
            return []
        items = {item.id: item for item in self.store.list_active_items(store_id)}
        alerts: List[StockAlert] = []
        for spike in spikes:
            item = items.get(spike.inventory_item_id)
            if item is None:
                continue
            alerts.append(StockAlert(
                inventory_item_id=item.id,
                item_name=item.name,
                alert_type=StockAlertType.CONSUMPTION_SPIKE,
                severity=AlertSeverity.MEDIUM,
                current_stock=item.quantity,
                minimum_threshold=item.minimum_threshold,
                message=(
                    f"{item.name} consumption on {spike.day.isoformat()} was {spike.consumed} {item.unit}, "
                    f"{spike.ratio}x the daily average of {spike.daily_average}"
                ),
            ))
        return alerts
