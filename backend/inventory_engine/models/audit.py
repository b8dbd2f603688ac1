"""Deduction audit trail: one summary row per processed sale."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_engine.db.base import Base


class DeductionAudit(Base):
    __tablename__ = "deduction_audits"

    id: Mapped[int] = mapped_column(primary_key=True)
    sale_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    items_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failures: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    warnings: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
