"""Category classifier: ingredient name → expected inventory categories."""

import logging
from typing import List, Optional, Tuple

from inventory_engine.core.lookup_tables import LookupTables
from inventory_engine.models.inventory import InventoryCategory

logger = logging.getLogger(__name__)


class CategoryClassifier:
    """First matching substring pattern decides the categories.

    An empty result means "search every category".
    """

    def __init__(self, tables: Optional[LookupTables] = None):
        tables = tables or LookupTables()
        self.patterns: List[Tuple[str, Tuple[InventoryCategory, ...]]] = [
            (pattern.lower(), categories) for pattern, categories in tables.category_patterns
        ]

    def classify(self, ingredient_name: str) -> Tuple[InventoryCategory, ...]:
        name = (ingredient_name or "").lower()
        for pattern, categories in self.patterns:
            if pattern in name:
                # ordered, de-duplicated
                return tuple(dict.fromkeys(categories))
        logger.debug(f"No category pattern for {ingredient_name!r}, searching all categories")
        return ()
