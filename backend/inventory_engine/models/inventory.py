"""Inventory item model: one stock-keeping unit at one store."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_engine.db.base import Base, TimestampMixin, VersionMixin


class InventoryCategory(str, Enum):
    """Category an inventory item is shelved under."""

    BASE_INGREDIENT = "base_ingredient"
    CLASSIC_SAUCE = "classic_sauce"
    PREMIUM_SAUCE = "premium_sauce"
    CLASSIC_TOPPING = "classic_topping"
    PREMIUM_TOPPING = "premium_topping"
    BISCUIT = "biscuit"
    PACKAGING = "packaging"
    BEVERAGE = "beverage"
    SUPPLIES = "supplies"


class InventoryItem(Base, TimestampMixin, VersionMixin):
    """Stock tracked per store. ``quantity`` is only lowered by the deduction engine."""

    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_store_active", "store_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(20), default="pieces", nullable=False)
    category: Mapped[str] = mapped_column(
        String(50), default=InventoryCategory.BASE_INGREDIENT.value, nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    cost_per_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)
    minimum_threshold: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    movements: Mapped[list["InventoryMovement"]] = relationship(
        "InventoryMovement", back_populates="inventory_item"
    )

    def __repr__(self) -> str:
        return f"<InventoryItem {self.id} {self.name!r} {self.quantity} {self.unit} @ {self.store_id}>"


# Forward references
from inventory_engine.models.stock import InventoryMovement  # noqa: E402
