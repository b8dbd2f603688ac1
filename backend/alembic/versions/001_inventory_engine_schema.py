"""Inventory engine schema

Revision ID: 001
Revises:
Create Date: 2026-03-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Inventory items (one row per SKU per store)
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("unit", sa.String(20), nullable=False, server_default="pieces"),
        sa.Column("category", sa.String(50), nullable=False, server_default="base_ingredient"),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False, server_default="0"),
        sa.Column("cost_per_unit", sa.Numeric(10, 4), nullable=True),
        sa.Column("minimum_threshold", sa.Numeric(12, 4), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_inventory_items_store_active", "inventory_items", ["store_id", "is_active"])

    # Stock ledger
    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column(
            "inventory_item_id", sa.Integer(),
            sa.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("store_id", sa.String(64), nullable=False, index=True),
        sa.Column("movement_type", sa.String(30), nullable=False, index=True),
        sa.Column("quantity_delta", sa.Numeric(12, 4), nullable=False),
        sa.Column("resulting_quantity", sa.Numeric(12, 4), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True, index=True),
        sa.Column("match_tier", sa.String(30), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
    )

    # Recipes
    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "recipe_id", sa.Integer(),
            sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("ingredient_name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False, server_default="pieces"),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False),
    )

    # Products sold at the till
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column(
            "recipe_id", sa.Integer(),
            sa.ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True, index=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Per-sale deduction audit
    op.create_table(
        "deduction_audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.String(100), nullable=False, index=True),
        sa.Column("store_id", sa.String(64), nullable=False, index=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("items_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failures", sa.JSON(), nullable=True),
        sa.Column("warnings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("deduction_audits")
    op.drop_table("products")
    op.drop_table("recipe_ingredients")
    op.drop_table("recipes")
    op.drop_index("ix_inventory_items_store_active", table_name="inventory_items")
    op.drop_table("inventory_movements")
    op.drop_table("inventory_items")
