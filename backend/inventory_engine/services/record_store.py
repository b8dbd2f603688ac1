"""Record store: the engine's only door to persistence.

``RecordStore`` is the abstract interface the matcher, deduction engine and
analytics depend on. ``SqlAlchemyRecordStore`` implements it over a
SQLAlchemy ``Session``. Every write commits on its own; the store makes no
promise of transactions spanning several calls.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_engine.models.audit import DeductionAudit
from inventory_engine.models.inventory import InventoryCategory, InventoryItem
from inventory_engine.models.recipe import Product, Recipe, RecipeIngredient
from inventory_engine.models.stock import InventoryMovement, MovementType
from inventory_engine.schemas.deduction import DeductionResult
from inventory_engine.services.exceptions import RecipeNotFoundError, RecordStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryItemRecord:
    """Read-only snapshot of an inventory item."""

    id: int
    store_id: str
    name: str
    unit: str
    category: str
    quantity: Decimal
    cost_per_unit: Optional[Decimal]
    minimum_threshold: Decimal
    is_active: bool
    version: int

    @classmethod
    def from_model(cls, item: InventoryItem) -> "InventoryItemRecord":
        return cls(
            id=item.id,
            store_id=item.store_id,
            name=item.name,
            unit=item.unit,
            category=item.category,
            quantity=Decimal(str(item.quantity)),
            cost_per_unit=Decimal(str(item.cost_per_unit)) if item.cost_per_unit is not None else None,
            minimum_threshold=Decimal(str(item.minimum_threshold or 0)),
            is_active=item.is_active,
            version=item.version,
        )


@dataclass(frozen=True)
class RecipeIngredientRequirement:
    """One recipe line as read for a single deduction run."""

    ingredient_name: str
    unit: str
    quantity: Decimal


@dataclass(frozen=True)
class MovementEntry:
    """A ledger entry to append."""

    inventory_item_id: int
    store_id: str
    movement_type: MovementType
    quantity_delta: Decimal
    resulting_quantity: Decimal
    reference: Optional[str] = None
    match_tier: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MovementRecord:
    id: int
    inventory_item_id: int
    store_id: str
    movement_type: str
    quantity_delta: Decimal
    resulting_quantity: Decimal
    created_at: datetime
    reference: Optional[str]
    match_tier: Optional[str]

    @classmethod
    def from_model(cls, movement: InventoryMovement) -> "MovementRecord":
        created_at = movement.created_at
        # SQLite hands back naive datetimes; everything is stored in UTC
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=movement.id,
            inventory_item_id=movement.inventory_item_id,
            store_id=movement.store_id,
            movement_type=movement.movement_type,
            quantity_delta=Decimal(str(movement.quantity_delta)),
            resulting_quantity=Decimal(str(movement.resulting_quantity)),
            created_at=created_at,
            reference=movement.reference,
            match_tier=movement.match_tier,
        )


class RecordStore(ABC):
    """Generic inventory/record-store interface."""

    @abstractmethod
    def list_active_items(
        self,
        store_id: str,
        categories: Optional[Iterable[InventoryCategory]] = None,
    ) -> List[InventoryItemRecord]:
        ...

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[InventoryItemRecord]:
        ...

    @abstractmethod
    def update_stock(self, item_id: int, new_quantity: Decimal, expected_version: int) -> bool:
        """Write *new_quantity* only if the item is still at *expected_version*.

        Returns False when another writer got there first.
        """

    @abstractmethod
    def append_movement(self, entry: MovementEntry) -> MovementRecord:
        ...

    @abstractmethod
    def list_movements(
        self,
        store_id: str,
        since: Optional[datetime] = None,
        item_id: Optional[int] = None,
        movement_type: Optional[MovementType] = None,
        reference: Optional[str] = None,
    ) -> List[MovementRecord]:
        ...

    @abstractmethod
    def get_recipe_ingredients(self, recipe_id: int) -> List[RecipeIngredientRequirement]:
        ...

    @abstractmethod
    def find_product_recipe_id(self, store_id: str, product_name: str) -> Optional[int]:
        """Recipe linked to the store's active product called *product_name*, if any."""

    @abstractmethod
    def record_deduction_audit(self, result: DeductionResult) -> None:
        ...


class SqlAlchemyRecordStore(RecordStore):
    """RecordStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_active_items(
        self,
        store_id: str,
        categories: Optional[Iterable[InventoryCategory]] = None,
    ) -> List[InventoryItemRecord]:
        query = self.db.query(InventoryItem).filter(
            InventoryItem.store_id == store_id,
            InventoryItem.is_active.is_(True),
        )
        if categories:
            values = [c.value if isinstance(c, InventoryCategory) else str(c) for c in categories]
            query = query.filter(InventoryItem.category.in_(values))

        try:
            items = query.order_by(InventoryItem.id).populate_existing().all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("list_active_items", str(e)) from e
        return [InventoryItemRecord.from_model(item) for item in items]

    def get_item(self, item_id: int) -> Optional[InventoryItemRecord]:
        try:
            item = self.db.get(InventoryItem, item_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("get_item", str(e)) from e
        return InventoryItemRecord.from_model(item) if item else None

    def update_stock(self, item_id: int, new_quantity: Decimal, expected_version: int) -> bool:
        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == item_id,
                InventoryItem.version == expected_version,
            )
            .values(
                quantity=new_quantity,
                version=InventoryItem.version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("update_stock", str(e)) from e
        return result.rowcount == 1

    def append_movement(self, entry: MovementEntry) -> MovementRecord:
        movement = InventoryMovement(
            inventory_item_id=entry.inventory_item_id,
            store_id=entry.store_id,
            movement_type=entry.movement_type.value,
            quantity_delta=entry.quantity_delta,
            resulting_quantity=entry.resulting_quantity,
            reference=entry.reference,
            match_tier=entry.match_tier,
            notes=entry.notes[:500] if entry.notes else None,
            created_at=entry.created_at or datetime.now(timezone.utc),
        )
        try:
            self.db.add(movement)
            self.db.commit()
            self.db.refresh(movement)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("append_movement", str(e)) from e
        return MovementRecord.from_model(movement)

    def list_movements(
        self,
        store_id: str,
        since: Optional[datetime] = None,
        item_id: Optional[int] = None,
        movement_type: Optional[MovementType] = None,
        reference: Optional[str] = None,
    ) -> List[MovementRecord]:
        stmt = select(InventoryMovement).where(InventoryMovement.store_id == store_id)
        if since is not None:
            stmt = stmt.where(InventoryMovement.created_at >= since)
        if item_id is not None:
            stmt = stmt.where(InventoryMovement.inventory_item_id == item_id)
        if movement_type is not None:
            stmt = stmt.where(InventoryMovement.movement_type == movement_type.value)
        if reference is not None:
            stmt = stmt.where(InventoryMovement.reference == reference)
        stmt = stmt.order_by(InventoryMovement.created_at, InventoryMovement.id)

        try:
            movements = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("list_movements", str(e)) from e
        return [MovementRecord.from_model(m) for m in movements]

    def get_recipe_ingredients(self, recipe_id: int) -> List[RecipeIngredientRequirement]:
        try:
            recipe = self.db.get(Recipe, recipe_id)
            if recipe is None:
                raise RecipeNotFoundError(recipe_id)
            lines = (
                self.db.query(RecipeIngredient)
                .filter(RecipeIngredient.recipe_id == recipe_id)
                .order_by(RecipeIngredient.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("get_recipe_ingredients", str(e)) from e

        return [
            RecipeIngredientRequirement(
                ingredient_name=line.ingredient_name,
                unit=line.unit,
                quantity=Decimal(str(line.quantity)),
            )
            for line in lines
        ]

    def find_product_recipe_id(self, store_id: str, product_name: str) -> Optional[int]:
        stmt = (
            select(Product.recipe_id)
            .where(
                Product.store_id == store_id,
                Product.is_active.is_(True),
                Product.recipe_id.is_not(None),
                func.lower(Product.name) == " ".join(product_name.split()).lower(),
            )
            .order_by(Product.id)
            .limit(1)
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("find_product_recipe_id", str(e)) from e

    def record_deduction_audit(self, result: DeductionResult) -> None:
        audit = DeductionAudit(
            sale_id=result.sale_id,
            store_id=result.store_id,
            success=result.success,
            items_processed=result.items_processed,
            failures=[f.model_dump(mode="json") for f in result.failures],
            warnings=list(result.warnings),
            created_at=result.created_at,
        )
        try:
            self.db.add(audit)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RecordStoreError("record_deduction_audit", str(e)) from e
