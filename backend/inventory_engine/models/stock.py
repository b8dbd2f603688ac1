"""Stock ledger: InventoryMovement."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_engine.db.base import Base


class MovementType(str, Enum):
    """Why a stock quantity changed."""

    DEDUCTION = "deduction"  # Recipe consumption from a sale
    REVERSAL = "reversal"  # Sale voided, deduction given back
    RECEIPT = "receipt"  # Goods received
    ADJUSTMENT = "adjustment"  # Manual count correction


class InventoryMovement(Base):
    """Append-only ledger of stock changes (single source of truth for analytics)."""

    __tablename__ = "inventory_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    inventory_item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    quantity_delta: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    resulting_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)  # sale id
    match_tier: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    inventory_item: Mapped["InventoryItem"] = relationship("InventoryItem", back_populates="movements")


# Forward references
from inventory_engine.models.inventory import InventoryItem  # noqa: E402
