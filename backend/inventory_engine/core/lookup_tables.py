"""Hand-maintained lookup tables used by the matcher, classifier and converter.

The built-in defaults cover the current menu. Deployments extend them with
a JSON file (``INVENTORY_LOOKUP_TABLES_PATH``) of the form::

    {
        "unit_aliases": {"pieces": ["pcs", "pc"]},
        "unit_conversions": [["kg", "g", "1000"]],
        "ingredient_aliases": {"marshmallow toppings": "Marshmallow"},
        "category_patterns": [["sauce", ["classic_sauce", "premium_sauce"]]]
    }

Entries from the file are merged over the defaults; file category patterns
are checked before the built-in ones.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from inventory_engine.models.inventory import InventoryCategory

logger = logging.getLogger(__name__)

C = InventoryCategory

# canonical unit -> spellings seen in recipes and stock sheets
DEFAULT_UNIT_ALIASES: Dict[str, List[str]] = {
    "pieces": ["pcs", "pc", "piece", "units", "unit", "ea", "each"],
    "g": ["gram", "grams", "gms", "gm"],
    "kg": ["kilogram", "kilograms", "kilo", "kilos", "kgs"],
    "mg": ["milligram", "milligrams"],
    "ml": ["milliliter", "milliliters", "millilitre", "millilitres"],
    "liters": ["l", "liter", "litre", "litres"],
    "oz": ["ounce", "ounces"],
    "fl_oz": ["fl oz", "fluid ounce", "fluid ounces"],
    "lb": ["lbs", "pound", "pounds"],
    "cups": ["cup"],
    "tbsp": ["tablespoon", "tablespoons", "tbs"],
    "tsp": ["teaspoon", "teaspoons"],
    "serving": ["servings"],
    "portion": ["portions"],
    "scoop": ["scoops"],
    "box": ["boxes"],
    "pack": ["packs"],
    "dozen": ["dozens", "doz"],
}

# (from, to) -> factor, so that qty_in_to = qty_in_from * factor.
# Reverse directions are derived by inversion at lookup time.
DEFAULT_UNIT_CONVERSIONS: Dict[Tuple[str, str], Decimal] = {
    ("kg", "g"): Decimal("1000"),
    ("g", "mg"): Decimal("1000"),
    ("lb", "g"): Decimal("453.592"),
    ("lb", "kg"): Decimal("0.453592"),
    ("oz", "g"): Decimal("28.3495"),
    ("liters", "ml"): Decimal("1000"),
    ("fl_oz", "ml"): Decimal("29.5735"),
    ("cups", "ml"): Decimal("236.588"),
    ("tbsp", "ml"): Decimal("14.7868"),
    ("tsp", "ml"): Decimal("4.92892"),
    ("tbsp", "tsp"): Decimal("3"),
    ("dozen", "pieces"): Decimal("12"),
}

# normalized recipe ingredient name -> inventory display name
DEFAULT_INGREDIENT_ALIASES: Dict[str, str] = {
    "marshmallow toppings": "Marshmallow",
    "marshmallow topping": "Marshmallow",
    "chocolate sauce": "Chocolate Sauce for Coffee",
    "choco sauce": "Chocolate Sauce for Coffee",
    "caramel sauce": "Caramel Sauce for Coffee",
    "caramel syrup": "Caramel Sauce for Coffee",
    "crushed oreo": "Oreo Crushed",
    "crushed biscoff": "Biscoff Crushed",
    "crushed grahams": "Graham Crushed",
    "strawberry toppings": "Strawberry Jam",
    "strawberry topping": "Strawberry Jam",
    "nutella topping": "Nutella",
    "nutella sauce": "Nutella",
    "whip cream": "Whipped Cream",
    "kit kat": "KitKat",
    "regular croissant": "Croissant",
    "plain croissant": "Croissant",
    "chopsticks": "Chopstick",
    "parchment paper": "Wax Paper",
}

# Checked in order, first substring hit wins.
DEFAULT_CATEGORY_PATTERNS: List[Tuple[str, Tuple[InventoryCategory, ...]]] = [
    ("packaging", (C.PACKAGING, C.SUPPLIES)),
    ("chopstick", (C.PACKAGING, C.SUPPLIES)),
    ("wax paper", (C.PACKAGING, C.SUPPLIES)),
    ("container", (C.PACKAGING,)),
    ("box", (C.PACKAGING,)),
    ("lid", (C.PACKAGING,)),
    ("bag", (C.PACKAGING,)),
    ("strawberry", (C.CLASSIC_TOPPING,)),
    ("straw", (C.PACKAGING, C.SUPPLIES)),
    ("nutella", (C.PREMIUM_TOPPING, C.CLASSIC_TOPPING)),
    ("premium", (C.PREMIUM_SAUCE, C.PREMIUM_TOPPING)),
    ("sauce", (C.CLASSIC_SAUCE, C.PREMIUM_SAUCE)),
    ("syrup", (C.CLASSIC_SAUCE, C.PREMIUM_SAUCE)),
    ("crushed", (C.CLASSIC_TOPPING, C.PREMIUM_TOPPING)),
    ("topping", (C.CLASSIC_TOPPING, C.PREMIUM_TOPPING)),
    ("jam", (C.CLASSIC_TOPPING,)),
    ("sprinkle", (C.CLASSIC_TOPPING,)),
    ("marshmallow", (C.CLASSIC_TOPPING,)),
    ("biscoff", (C.PREMIUM_TOPPING, C.BISCUIT)),
    ("kitkat", (C.PREMIUM_TOPPING,)),
    ("oreo", (C.CLASSIC_TOPPING, C.BISCUIT)),
    ("croissant", (C.BASE_INGREDIENT, C.BISCUIT)),
    ("biscuit", (C.BISCUIT,)),
    ("graham", (C.BISCUIT, C.CLASSIC_TOPPING)),
    ("wafer", (C.BISCUIT,)),
    ("espresso", (C.BEVERAGE, C.BASE_INGREDIENT)),
    ("coffee", (C.BEVERAGE, C.BASE_INGREDIENT)),
    ("milk", (C.BEVERAGE, C.BASE_INGREDIENT)),
    ("tea", (C.BEVERAGE,)),
    ("whipped cream", (C.BASE_INGREDIENT, C.CLASSIC_TOPPING)),
    ("cream", (C.BASE_INGREDIENT,)),
    ("butter", (C.BASE_INGREDIENT,)),
    ("sugar", (C.BASE_INGREDIENT,)),
    ("flour", (C.BASE_INGREDIENT,)),
]


@dataclass
class LookupTables:
    """Injectable matching/conversion data."""

    unit_aliases: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_UNIT_ALIASES.items()}
    )
    unit_conversions: Dict[Tuple[str, str], Decimal] = field(
        default_factory=lambda: dict(DEFAULT_UNIT_CONVERSIONS)
    )
    ingredient_aliases: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_INGREDIENT_ALIASES)
    )
    category_patterns: List[Tuple[str, Tuple[InventoryCategory, ...]]] = field(
        default_factory=lambda: list(DEFAULT_CATEGORY_PATTERNS)
    )

    def merge(self, data: dict) -> "LookupTables":
        """Return a copy with *data* (parsed JSON) merged over these tables."""
        unit_aliases = {k: list(v) for k, v in self.unit_aliases.items()}
        for canonical, spellings in (data.get("unit_aliases") or {}).items():
            merged = unit_aliases.setdefault(canonical.lower(), [])
            merged.extend(s.lower() for s in spellings if s.lower() not in merged)

        unit_conversions = dict(self.unit_conversions)
        for entry in data.get("unit_conversions") or []:
            from_unit, to_unit, factor = entry
            unit_conversions[(from_unit.lower(), to_unit.lower())] = Decimal(str(factor))

        ingredient_aliases = dict(self.ingredient_aliases)
        for name, canonical in (data.get("ingredient_aliases") or {}).items():
            ingredient_aliases[" ".join(name.lower().split())] = canonical

        extra_patterns = [
            (pattern.lower(), tuple(InventoryCategory(c) for c in categories))
            for pattern, categories in data.get("category_patterns") or []
        ]

        return LookupTables(
            unit_aliases=unit_aliases,
            unit_conversions=unit_conversions,
            ingredient_aliases=ingredient_aliases,
            category_patterns=extra_patterns + list(self.category_patterns),
        )


def load_lookup_tables(path: Optional[str] = None) -> LookupTables:
    """Built-in tables, extended from the JSON file at *path* when given."""
    tables = LookupTables()
    if not path:
        return tables

    file_path = Path(path)
    with file_path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)

    logger.info(f"Loaded lookup table overrides from {file_path}")
    return tables.merge(data)
