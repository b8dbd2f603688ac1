"""Unit converter for recipe → inventory quantities.

Units are normalized through the alias table first (``pcs`` → ``pieces``,
``L`` → ``liters``), then looked up in a small directed factor table:

1. identical units → 1
2. direct ``(from, to)`` entry
3. reverse ``(to, from)`` entry, inverted
4. nothing found → 1, reported as unverified

Unknown units never raise. The 1:1 fallback is reported through
``ConversionResult.verified`` so callers can flag it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from inventory_engine.core.lookup_tables import LookupTables

logger = logging.getLogger(__name__)

ONE = Decimal("1")


@dataclass(frozen=True)
class ConversionResult:
    """Factor to multiply a quantity in ``from_unit`` by to get ``to_unit``."""

    factor: Decimal
    verified: bool
    from_unit: str
    to_unit: str


class UnitConverter:
    """Stateless lookup/arithmetic over a :class:`LookupTables` instance."""

    def __init__(self, tables: Optional[LookupTables] = None):
        self.tables = tables or LookupTables()
        self._alias_index: Dict[str, str] = {}
        for canonical, spellings in self.tables.unit_aliases.items():
            self._alias_index[canonical.lower()] = canonical.lower()
            for spelling in spellings:
                self._alias_index[spelling.lower()] = canonical.lower()

    def normalize_unit(self, unit: Optional[str]) -> str:
        """Canonical spelling of *unit*; unknown units are returned lower-cased."""
        if not unit:
            return ""
        cleaned = " ".join(unit.lower().strip().split())
        return self._alias_index.get(cleaned, cleaned)

    def conversion_factor(self, from_unit: Optional[str], to_unit: Optional[str]) -> ConversionResult:
        source = self.normalize_unit(from_unit)
        target = self.normalize_unit(to_unit)

        if source == target:
            return ConversionResult(ONE, True, source, target)

        direct = self.tables.unit_conversions.get((source, target))
        if direct is not None:
            return ConversionResult(direct, True, source, target)

        reverse = self.tables.unit_conversions.get((target, source))
        if reverse is not None and reverse != 0:
            return ConversionResult(ONE / reverse, True, source, target)

        logger.warning(
            f"No conversion from '{from_unit}' to '{to_unit}' - assuming 1:1"
        )
        return ConversionResult(ONE, False, source, target)

    def convert(self, quantity: Decimal, from_unit: Optional[str], to_unit: Optional[str]) -> Decimal:
        """Convert *quantity* from *from_unit* to *to_unit*."""
        result = self.conversion_factor(from_unit, to_unit)
        if result.factor == ONE:
            return quantity
        return quantity * result.factor
