"""Entry point used by the transaction-processing glue and the API routes.

Usage:
    from inventory_engine.services.engine import InventoryEngine

    engine = InventoryEngine.from_session(db)
    result = engine.deduct_for_sale("S-1001", "store-1", [SoldItem(...)])
"""

from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from sqlalchemy.orm import Session

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.core.lookup_tables import LookupTables, load_lookup_tables
from inventory_engine.schemas.analytics import (
    ConsumptionPattern,
    ConsumptionSpike,
    ReorderRecommendation,
    StockAlert,
)
from inventory_engine.schemas.deduction import (
    DeductionResult,
    RecipeAvailability,
    ReversalResult,
    SaleValidation,
    SoldItem,
)
from inventory_engine.schemas.matching import IngredientMatch
from inventory_engine.services.consumption_analytics_service import ConsumptionAnalyticsService
from inventory_engine.services.ingredient_matcher import IngredientMatcher
from inventory_engine.services.record_store import RecordStore, SqlAlchemyRecordStore
from inventory_engine.services.reorder_service import ReorderService
from inventory_engine.services.stock_alert_service import StockAlertService
from inventory_engine.services.stock_deduction_service import StockDeductionService


@lru_cache
def default_lookup_tables(path: Optional[str] = None) -> LookupTables:
    """Lookup tables for *path*, loaded once per process."""
    return load_lookup_tables(path)


class InventoryEngine:
    """Wires matcher, deduction, analytics, reorder and alert services to one record store."""

    def __init__(
        self,
        store: RecordStore,
        tables: Optional[LookupTables] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.tables = tables or default_lookup_tables(self.settings.lookup_tables_path)
        self.store = store

        self.matcher = IngredientMatcher(store, tables=self.tables, settings=self.settings)
        self.deduction = StockDeductionService(store, matcher=self.matcher, settings=self.settings)
        self.analytics = ConsumptionAnalyticsService(store, settings=self.settings)
        self.reorder = ReorderService(store, analytics=self.analytics, settings=self.settings)
        self.alerts = StockAlertService(store, analytics=self.analytics, settings=self.settings)

    @classmethod
    def from_session(
        cls,
        db: Session,
        tables: Optional[LookupTables] = None,
        settings: Optional[Settings] = None,
    ) -> "InventoryEngine":
        return cls(SqlAlchemyRecordStore(db), tables=tables, settings=settings)

    def match_ingredient(self, ingredient_name: str, unit: str, store_id: str) -> IngredientMatch:
        return self.matcher.match(ingredient_name, unit, store_id)

    def deduct_for_sale(self, sale_id: str, store_id: str, sold_items: List[SoldItem]) -> DeductionResult:
        return self.deduction.deduct_for_sale(sale_id, store_id, sold_items)

    def validate_sale(self, store_id: str, sold_items: List[SoldItem]) -> SaleValidation:
        return self.deduction.validate_sale(store_id, sold_items)

    def check_recipe_availability(self, recipe_id: int, quantity: Decimal, store_id: str) -> RecipeAvailability:
        return self.deduction.check_recipe_availability(recipe_id, quantity, store_id)

    def reverse_sale(self, sale_id: str, store_id: str) -> ReversalResult:
        return self.deduction.reverse_sale(sale_id, store_id)

    def compute_consumption_patterns(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[ConsumptionPattern]:
        return self.analytics.compute_consumption_patterns(store_id, window_days, now=now)

    def generate_reorder_recommendations(
        self,
        store_id: str,
        now: Optional[datetime] = None,
    ) -> List[ReorderRecommendation]:
        return self.reorder.generate_reorder_recommendations(store_id, now=now)

    def monitor_stock_alerts(self, store_id: str) -> List[StockAlert]:
        return self.alerts.monitor_stock_alerts(store_id)

    def detect_consumption_spikes(
        self,
        store_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[ConsumptionSpike]:
        return self.alerts.detect_consumption_spikes(store_id, window_days, now=now)
