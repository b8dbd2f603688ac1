"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

# Keep the app's own engine off the working directory during tests
os.environ.setdefault("INVENTORY_DATABASE_URL", "sqlite:///:memory:")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_engine.core.config import Settings
from inventory_engine.db.base import Base
from inventory_engine.db.session import get_db
from inventory_engine.main import app
# Import all models to ensure they're registered with Base.metadata
from inventory_engine.models import *
from inventory_engine.services.record_store import MovementEntry, SqlAlchemyRecordStore

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

STORE_ID = "store-1"

# Fixed clock for ledger-based analytics
NOW = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session: Session) -> SqlAlchemyRecordStore:
    return SqlAlchemyRecordStore(db_session)


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only, independent of the environment's .env."""
    return Settings(_env_file=None)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from inventory_engine.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


def make_item(db: Session, name: str, **kwargs) -> InventoryItem:
    """Add an active inventory item to STORE_ID."""
    values = {
        "store_id": STORE_ID,
        "name": name,
        "unit": "pieces",
        "category": InventoryCategory.BASE_INGREDIENT.value,
        "quantity": Decimal("100"),
        "minimum_threshold": Decimal("10"),
        "cost_per_unit": Decimal("0.50"),
    }
    values.update(kwargs)
    item = InventoryItem(**values)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def make_recipe(db: Session, name: str, lines) -> Recipe:
    """Add a recipe; *lines* is a list of (ingredient_name, unit, quantity)."""
    recipe = Recipe(name=name)
    db.add(recipe)
    db.flush()
    for ingredient_name, unit, qty in lines:
        db.add(RecipeIngredient(
            recipe_id=recipe.id,
            ingredient_name=ingredient_name,
            unit=unit,
            quantity=Decimal(str(qty)),
        ))
    db.commit()
    db.refresh(recipe)
    return recipe


@pytest.fixture
def stock_setup(db_session):
    """A dessert store: sauces, toppings, packaging and two recipes."""
    chocolate = make_item(
        db_session, "Chocolate Sauce for Coffee",
        unit="ml", category=InventoryCategory.CLASSIC_SAUCE.value,
        quantity=Decimal("500"), minimum_threshold=Decimal("100"), cost_per_unit=Decimal("0.02"),
    )
    marshmallow = make_item(
        db_session, "Marshmallow",
        unit="g", category=InventoryCategory.CLASSIC_TOPPING.value,
        quantity=Decimal("1000"), minimum_threshold=Decimal("200"), cost_per_unit=Decimal("0.01"),
    )
    box = make_item(
        db_session, "Dessert Box",
        unit="pieces", category=InventoryCategory.PACKAGING.value,
        quantity=Decimal("50"), minimum_threshold=Decimal("20"), cost_per_unit=Decimal("0.30"),
    )

    mocha = make_recipe(db_session, "Mocha", [("Chocolate Sauce", "ml", 30)])
    sundae = make_recipe(db_session, "Sundae", [
        ("Chocolate Sauce", "ml", 20),
        ("Marshmallow Toppings", "g", 15),
        ("Dessert Box", "pcs", 1),
    ])

    return {
        "chocolate": chocolate,
        "marshmallow": marshmallow,
        "box": box,
        "mocha": mocha,
        "sundae": sundae,
        "db": db_session,
    }


def add_movement(store, item, qty, days_ago, movement_type=MovementType.DEDUCTION, store_id=STORE_ID):
    """Append a ledger entry *days_ago* days (and an hour) before NOW."""
    sign = -1 if movement_type == MovementType.DEDUCTION else 1
    store.append_movement(MovementEntry(
        inventory_item_id=item.id,
        store_id=store_id,
        movement_type=movement_type,
        quantity_delta=Decimal(str(qty)) * sign,
        resulting_quantity=Decimal("0"),
        reference=f"S-{days_ago}",
        created_at=NOW - timedelta(days=days_ago, hours=1),
    ))
