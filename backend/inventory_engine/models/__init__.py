"""Database models."""

from inventory_engine.models.audit import DeductionAudit
from inventory_engine.models.inventory import InventoryCategory, InventoryItem
from inventory_engine.models.recipe import Product, Recipe, RecipeIngredient
from inventory_engine.models.stock import InventoryMovement, MovementType

__all__ = [
    "DeductionAudit",
    "InventoryCategory",
    "InventoryItem",
    "InventoryMovement",
    "MovementType",
    "Product",
    "Recipe",
    "RecipeIngredient",
]
