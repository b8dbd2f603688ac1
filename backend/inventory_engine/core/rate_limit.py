"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from inventory_engine.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# e.g. "100/60 seconds"
DEFAULT_RATE = f"{settings.rate_limit_requests}/{settings.rate_limit_window} seconds"
