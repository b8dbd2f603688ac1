"""Inventory engine API routes - /inventory-engine/* endpoints.

Thin HTTP layer over InventoryEngine: ingredient matching, sale deduction,
dry-run validation, reversal, consumption analytics, reorder
recommendations and stock alerts.
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from inventory_engine.core.rate_limit import DEFAULT_RATE, limiter
from inventory_engine.db.session import DbSession
from inventory_engine.models.inventory import InventoryItem
from inventory_engine.models.stock import InventoryMovement
from inventory_engine.schemas.analytics import (
    ConsumptionPattern,
    ConsumptionSpike,
    ReorderRecommendation,
    StockAlert,
)
from inventory_engine.schemas.deduction import (
    DeductForSaleRequest,
    DeductionResult,
    RecipeAvailability,
    ReversalResult,
    SaleValidation,
    ValidateSaleRequest,
)
from inventory_engine.schemas.inventory import InventoryItemResponse, InventoryMovementResponse
from inventory_engine.schemas.matching import IngredientMatch, MatchIngredientRequest
from inventory_engine.services.engine import InventoryEngine
from inventory_engine.services.exceptions import RecipeNotFoundError

router = APIRouter()


# ==================== MATCHING ====================

@router.post("/match", response_model=IngredientMatch)
@limiter.limit(DEFAULT_RATE)
def match_ingredient(request: Request, db: DbSession, data: MatchIngredientRequest):
    """Resolve a recipe ingredient to an inventory item without touching stock."""
    engine = InventoryEngine.from_session(db)
    return engine.match_ingredient(data.ingredient_name, data.unit, data.store_id)


# ==================== DEDUCTION ====================

@router.post("/deduct", response_model=DeductionResult)
@limiter.limit("30/minute")
def deduct_for_sale(request: Request, db: DbSession, data: DeductForSaleRequest):
    """Deduct recipe ingredients for a completed sale.

    Always 200: per-ingredient failures are reported in the body.
    """
    engine = InventoryEngine.from_session(db)
    return engine.deduct_for_sale(data.sale_id, data.store_id, data.items)


@router.post("/validate", response_model=SaleValidation)
@limiter.limit(DEFAULT_RATE)
def validate_sale(request: Request, db: DbSession, data: ValidateSaleRequest):
    """Check whether a sale could be fully deducted. Writes nothing."""
    engine = InventoryEngine.from_session(db)
    return engine.validate_sale(data.store_id, data.items)


@router.get("/recipes/{recipe_id}/availability", response_model=RecipeAvailability)
@limiter.limit(DEFAULT_RATE)
def check_recipe_availability(
    request: Request,
    db: DbSession,
    recipe_id: int,
    store_id: str = Query(..., min_length=1, max_length=64),
    quantity: Decimal = Query(Decimal("1"), gt=0),
):
    engine = InventoryEngine.from_session(db)
    try:
        return engine.check_recipe_availability(recipe_id, quantity, store_id)
    except RecipeNotFoundError:
        raise HTTPException(status_code=404, detail="Recipe not found")


@router.post("/sales/{sale_id}/reverse", response_model=ReversalResult)
@limiter.limit("30/minute")
def reverse_sale(
    request: Request,
    db: DbSession,
    sale_id: str,
    store_id: str = Query(..., min_length=1, max_length=64),
):
    """Give back the stock a sale deducted. Safe to call more than once."""
    engine = InventoryEngine.from_session(db)
    result = engine.reverse_sale(sale_id, store_id)
    if not result.restored and not result.already_reversed and result.success:
        raise HTTPException(status_code=404, detail="No deductions recorded for this sale")
    return result


# ==================== ANALYTICS ====================

@router.get("/consumption", response_model=List[ConsumptionPattern])
@limiter.limit("60/minute")
def get_consumption_patterns(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
    window_days: Optional[int] = Query(None, ge=1, le=365),
):
    engine = InventoryEngine.from_session(db)
    return engine.compute_consumption_patterns(store_id, window_days)


@router.get("/reorder-recommendations", response_model=List[ReorderRecommendation])
@limiter.limit("60/minute")
def get_reorder_recommendations(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
):
    """Items to reorder, most urgent first."""
    engine = InventoryEngine.from_session(db)
    return engine.generate_reorder_recommendations(store_id)


@router.get("/alerts", response_model=List[StockAlert])
@limiter.limit("60/minute")
def get_stock_alerts(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
    include_spikes: bool = Query(False),
):
    """Threshold alerts, optionally followed by consumption spike alerts."""
    engine = InventoryEngine.from_session(db)
    alerts = engine.monitor_stock_alerts(store_id)
    if include_spikes:
        alerts.extend(engine.alerts.spike_alerts(store_id))
    return alerts


@router.get("/spikes", response_model=List[ConsumptionSpike])
@limiter.limit("60/minute")
def get_consumption_spikes(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
    window_days: Optional[int] = Query(None, ge=1, le=365),
):
    engine = InventoryEngine.from_session(db)
    return engine.detect_consumption_spikes(store_id, window_days)


# ==================== ITEMS / LEDGER ====================

@router.get("/items", response_model=List[InventoryItemResponse])
@limiter.limit("60/minute")
def list_items(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
    include_inactive: bool = Query(False),
):
    query = db.query(InventoryItem).filter(InventoryItem.store_id == store_id)
    if not include_inactive:
        query = query.filter(InventoryItem.is_active.is_(True))
    return query.order_by(InventoryItem.name).all()


@router.get("/movements", response_model=List[InventoryMovementResponse])
@limiter.limit("60/minute")
def list_movements(
    request: Request,
    db: DbSession,
    store_id: str = Query(..., min_length=1, max_length=64),
    item_id: Optional[int] = Query(None),
    reference: Optional[str] = Query(None, max_length=100),
    limit: int = Query(100, ge=1, le=1000),
):
    """Most recent ledger entries first."""
    query = db.query(InventoryMovement).filter(InventoryMovement.store_id == store_id)
    if item_id is not None:
        query = query.filter(InventoryMovement.inventory_item_id == item_id)
    if reference:
        query = query.filter(InventoryMovement.reference == reference)
    return query.order_by(InventoryMovement.id.desc()).limit(limit).all()
