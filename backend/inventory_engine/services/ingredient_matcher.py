"""Ingredient Matcher: resolve a free-text recipe ingredient to one inventory item.

Strategies, strongest first, stopping at the first acceptable hit:

1. EXACT              - normalized name equality, confidence 1.0
2. STANDARDIZED_ALIAS - alias table maps the ingredient to a canonical
                        inventory name that exists, confidence 0.95
3. FUZZY              - best Levenshtein similarity above the accept
                        threshold (0.8), confidence = similarity
4. NONE               - nothing usable

Candidates are narrowed to the categories the classifier expects. When the
classifier has no opinion, or the narrowed set is empty, every active item
of the store is searched.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.core.lookup_tables import LookupTables
from inventory_engine.schemas.matching import IngredientMatch, MatchTier
from inventory_engine.services.category_classifier import CategoryClassifier
from inventory_engine.services.record_store import InventoryItemRecord, RecordStore
from inventory_engine.services.unit_converter import UnitConverter

logger = logging.getLogger(__name__)


def normalize_name(name: Optional[str]) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    if not name:
        return ""
    return " ".join(name.lower().split())


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein edit distance between two strings."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    if not s2:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def name_similarity(a: str, b: str) -> float:
    """1 - normalized edit distance between two names, in [0, 1]."""
    a = normalize_name(a)
    b = normalize_name(b)
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


class IngredientMatcher:
    """Resolves recipe ingredients against a store's inventory."""

    def __init__(
        self,
        store: RecordStore,
        tables: Optional[LookupTables] = None,
        converter: Optional[UnitConverter] = None,
        classifier: Optional[CategoryClassifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.tables = tables or LookupTables()
        self.converter = converter or UnitConverter(self.tables)
        self.classifier = classifier or CategoryClassifier(self.tables)
        self.settings = settings or default_settings

        self.fuzzy_threshold = self.settings.fuzzy_match_threshold
        self.review_threshold = self.settings.fuzzy_review_threshold
        self.alias_confidence = self.settings.alias_match_confidence

        self._aliases = {
            normalize_name(name): canonical
            for name, canonical in self.tables.ingredient_aliases.items()
        }

    # ===== PUBLIC =====

    def match(self, ingredient_name: str, ingredient_unit: str, store_id: str) -> IngredientMatch:
        expected = self.classifier.classify(ingredient_name)
        candidates = self._candidates(store_id, expected)
        expected_values = [c.value for c in expected]

        item, tier, confidence, rejected = self._resolve(ingredient_name, candidates)

        if item is None:
            logger.info(
                f"No inventory match for '{ingredient_name}' at store {store_id} "
                f"({len(candidates)} candidates)"
            )
            return IngredientMatch(
                ingredient_name=ingredient_name,
                ingredient_unit=ingredient_unit,
                tier=MatchTier.NONE,
                confidence=0.0,
                category=expected_values[0] if expected_values else None,
                expected_categories=expected_values,
                best_rejected_similarity=rejected,
            )

        conversion = self.converter.conversion_factor(ingredient_unit, item.unit)
        logger.debug(
            f"Matched '{ingredient_name}' -> '{item.name}' ({tier.value}, {confidence:.2f}), "
            f"{ingredient_unit}->{item.unit} x{conversion.factor}"
        )
        return IngredientMatch(
            ingredient_name=ingredient_name,
            ingredient_unit=ingredient_unit,
            tier=tier,
            confidence=confidence,
            inventory_item_id=item.id,
            inventory_item_name=item.name,
            inventory_unit=item.unit,
            conversion_factor=conversion.factor,
            conversion_verified=conversion.verified,
            category=item.category,
            expected_categories=expected_values,
        )

    # ===== INTERNALS =====

    def _candidates(self, store_id: str, expected) -> List[InventoryItemRecord]:
        if expected:
            narrowed = self.store.list_active_items(store_id, categories=expected)
            if narrowed:
                return narrowed
            logger.debug(
                f"No items in categories {[c.value for c in expected]} at store {store_id}, "
                f"searching all categories"
            )
        return self.store.list_active_items(store_id)

    def _resolve(
        self,
        ingredient_name: str,
        candidates: Sequence[InventoryItemRecord],
    ) -> Tuple[Optional[InventoryItemRecord], MatchTier, float, Optional[float]]:
        target = normalize_name(ingredient_name)
        if not target or not candidates:
            return None, MatchTier.NONE, 0.0, None

        # 1. Exact
        for item in candidates:
            if normalize_name(item.name) == target:
                return item, MatchTier.EXACT, 1.0, None

        # 2. Standardized alias
        canonical = self._aliases.get(target)
        if canonical:
            canonical_norm = normalize_name(canonical)
            for item in candidates:
                if normalize_name(item.name) == canonical_norm:
                    return item, MatchTier.STANDARDIZED_ALIAS, self.alias_confidence, None

        # 3. Fuzzy
        best_item: Optional[InventoryItemRecord] = None
        best_score = 0.0
        for item in candidates:
            score = name_similarity(target, item.name)
            if score > best_score:
                best_item, best_score = item, score

        if best_item is not None and best_score > self.fuzzy_threshold:
            return best_item, MatchTier.FUZZY, best_score, None

        rejected = None
        if best_item is not None and best_score > self.review_threshold:
            rejected = round(best_score, 4)
            logger.warning(
                f"Fuzzy candidate '{best_item.name}' for '{ingredient_name}' rejected "
                f"(similarity {best_score:.2f} <= {self.fuzzy_threshold})"
            )

        return None, MatchTier.NONE, 0.0, rejected
