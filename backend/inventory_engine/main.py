"""FastAPI application for the inventory engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from inventory_engine import __version__
from inventory_engine.api.routes import api_router
from inventory_engine.core.config import settings
from inventory_engine.core.logging import configure_logging
from inventory_engine.core.rate_limit import limiter
from inventory_engine.db.base import Base
from inventory_engine.db.session import SessionLocal, engine
from inventory_engine import models  # noqa: F401  (register tables)

configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting inventory engine")

    # Create tables if they don't exist (for SQLite dev)
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    yield

    logger.info("Shutting down inventory engine")


app = FastAPI(
    title="Inventory Engine",
    description="Recipe-driven stock deduction, consumption analytics and reorder alerts",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic health check."""
    return {"status": "healthy", "version": __version__}


@app.get("/health/ready")
def readiness_check():
    """Readiness check: the database answers a trivial query."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"
    finally:
        db.close()

    return {
        "status": "ready" if database == "healthy" else "degraded",
        "checks": {"database": database},
    }
