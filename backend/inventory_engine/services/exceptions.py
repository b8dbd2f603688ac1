"""Exceptions raised by the engine's services and record store.

Per-ingredient problems (no match, not enough stock) are never raised;
they are reported inside result objects. These exceptions are for missing
entities and infrastructure faults.
"""

from decimal import Decimal


class InventoryEngineError(Exception):
    """Base class for engine errors."""


class RecordStoreError(InventoryEngineError):
    """The record store rejected a read or write."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Record store operation '{operation}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StockConflictError(InventoryEngineError):
    """A conditional stock update kept losing to concurrent writers."""

    def __init__(self, item_id: int, attempts: int):
        self.item_id = item_id
        self.attempts = attempts
        super().__init__(
            f"Stock for inventory item {item_id} changed concurrently; gave up after {attempts} attempts"
        )


class InsufficientStockError(InventoryEngineError):
    """Raised when there's not enough stock for a deduction."""

    def __init__(self, item_name: str, item_id: int, available: Decimal, needed: Decimal, unit: str):
        self.item_name = item_name
        self.item_id = item_id
        self.available = available
        self.needed = needed
        self.unit = unit
        super().__init__(
            f"Insufficient stock for '{item_name}': need {needed} {unit}, have {available} {unit}"
        )


class RecipeNotFoundError(InventoryEngineError):
    def __init__(self, recipe_id: int):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe {recipe_id} not found")

