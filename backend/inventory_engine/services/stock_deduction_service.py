"""Stock Deduction Service - Deducts inventory when a sale completes.

Looks up the recipe for each sold product and deducts the ingredients it
consumes from the store's inventory.

Flow, per sale:
1. For each sold item, in order:
   a. No recipe linked, directly or through the product -> warning, skip
   b. For each recipe ingredient, in order:
      - required = recipe qty x qty sold
      - Resolve the ingredient to an inventory item (IngredientMatcher)
      - Convert recipe unit -> inventory unit
      - Check on-hand >= required, else record the shortage
      - Conditional stock write keyed on the item's version
      - Append an InventoryMovement for the ledger
2. success = no ingredient failed
3. Write a DeductionAudit summary, whatever the outcome

Partial failure is deliberate: an ingredient that cannot be resolved or is
short does not undo deductions already applied for the same sale. The
aggregated result tells the operator what needs manual reconciliation.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from inventory_engine.core.config import Settings, settings as default_settings
from inventory_engine.models.stock import MovementType
from inventory_engine.schemas.deduction import (
    DeductionOutcome,
    DeductionResult,
    FailureKind,
    IngredientShortage,
    RecipeAvailability,
    ReversalLine,
    ReversalResult,
    SaleValidation,
    SoldItem,
)
from inventory_engine.schemas.matching import IngredientMatch
from inventory_engine.services.exceptions import (
    InsufficientStockError,
    RecipeNotFoundError,
    RecordStoreError,
    StockConflictError,
)
from inventory_engine.services.ingredient_matcher import IngredientMatcher
from inventory_engine.services.record_store import (
    InventoryItemRecord,
    MovementEntry,
    RecipeIngredientRequirement,
    RecordStore,
)

logger = logging.getLogger(__name__)

QUANTITY_PLACES = Decimal("0.0001")

# Errors that mean "the record store let us down" for one ingredient
PERSISTENCE_ERRORS = (RecordStoreError, SQLAlchemyError, StockConflictError)


def _quantize(qty: Decimal) -> Decimal:
    return qty.quantize(QUANTITY_PLACES)


class StockDeductionService:
    """Service for deducting recipe ingredients from stock when products sell."""

    def __init__(
        self,
        store: RecordStore,
        matcher: Optional[IngredientMatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.matcher = matcher or IngredientMatcher(store, settings=self.settings)

    # ===== CORE: SALE DEDUCTION =====

    def deduct_for_sale(
        self,
        sale_id: str,
        store_id: str,
        sold_items: List[SoldItem],
    ) -> DeductionResult:
        """
        Deduct stock for every ingredient of every sold item.

        Args:
            sale_id: Reference of the completed sale, copied to each movement
            store_id: Store whose inventory is consumed
            sold_items: Sold lines, processed strictly in order

        Returns:
            DeductionResult with successful outcomes, failures and warnings.
            Never raises for per-ingredient or per-item problems.
        """
        outcomes: List[DeductionOutcome] = []
        failures: List[DeductionOutcome] = []
        warnings: List[str] = []
        items_processed = 0

        try:
            for sold in sold_items:
                requirements = self._requirements_for(store_id, sold, warnings, failures)
                if requirements is None:
                    continue

                for requirement in requirements:
                    outcome = self._deduct_ingredient(
                        sale_id=sale_id,
                        store_id=store_id,
                        product_name=sold.product_name,
                        requirement=requirement,
                        quantity_sold=sold.quantity,
                        warnings=warnings,
                    )
                    if outcome.succeeded:
                        outcomes.append(outcome)
                    else:
                        failures.append(outcome)

                items_processed += 1

        except Exception as e:
            logger.error(f"Stock deduction for sale {sale_id} aborted: {e}", exc_info=True)
            failures.append(DeductionOutcome(
                ingredient_name="*",
                failure_kind=FailureKind.SYSTEM,
                reason=f"Unexpected error during processing: {e}",
            ))

        result = DeductionResult(
            sale_id=sale_id,
            store_id=store_id,
            success=len(failures) == 0,
            outcomes=outcomes,
            failures=failures,
            warnings=warnings,
            items_processed=items_processed,
        )

        if result.success:
            logger.info(f"Sale {sale_id}: deducted {len(outcomes)} ingredients from store {store_id}")
        else:
            logger.warning(
                f"Sale {sale_id}: {len(failures)} ingredient(s) failed, "
                f"{len(outcomes)} deducted - needs reconciliation"
            )

        self._write_audit(result)
        return result

    def _requirements_for(
        self,
        store_id: str,
        sold: SoldItem,
        warnings: List[str],
        failures: List[DeductionOutcome],
    ) -> Optional[List[RecipeIngredientRequirement]]:
        """Recipe lines for *sold*, or None when the item is skipped.

        A line without a recipe id falls back to the recipe of the store's
        product with the same name.
        """
        recipe_id = sold.recipe_id
        try:
            if recipe_id is None:
                recipe_id = self.store.find_product_recipe_id(store_id, sold.product_name)
                if recipe_id is None:
                    warnings.append(f"No recipe linked to '{sold.product_name}' - skipped")
                    return None
            requirements = self.store.get_recipe_ingredients(recipe_id)
        except RecipeNotFoundError:
            warnings.append(
                f"Recipe {recipe_id} for '{sold.product_name}' not found - skipped"
            )
            return None
        except PERSISTENCE_ERRORS as e:
            target = f"recipe {recipe_id}" if recipe_id is not None else f"product '{sold.product_name}'"
            logger.error(f"Could not read {target}: {e}")
            failures.append(DeductionOutcome(
                ingredient_name="*",
                product_name=sold.product_name,
                failure_kind=FailureKind.PERSISTENCE,
                reason=f"Could not read {target}: {e}",
            ))
            return None

        if not requirements:
            warnings.append(f"Recipe {recipe_id} for '{sold.product_name}' has no ingredients")
            return None
        return requirements

    def _deduct_ingredient(
        self,
        sale_id: str,
        store_id: str,
        product_name: str,
        requirement: RecipeIngredientRequirement,
        quantity_sold: Decimal,
        warnings: List[str],
    ) -> DeductionOutcome:
        """Deduct a single ingredient from stock."""
        required = requirement.quantity * quantity_sold

        try:
            match = self.matcher.match(requirement.ingredient_name, requirement.unit, store_id)
        except PERSISTENCE_ERRORS as e:
            return self._persistence_failure(requirement, product_name, required, e)

        if not match.is_match:
            reason = "No matching inventory item"
            if match.best_rejected_similarity is not None:
                reason = f"{reason} (closest candidate similarity {match.best_rejected_similarity:.2f})"
            return DeductionOutcome(
                ingredient_name=requirement.ingredient_name,
                product_name=product_name,
                match_tier=match.tier,
                unit=requirement.unit,
                failure_kind=FailureKind.RESOLUTION,
                reason=reason,
                required_quantity=_quantize(required),
            )

        if not match.conversion_verified:
            message = (
                f"Unverified unit conversion '{requirement.unit}' -> '{match.inventory_unit}' "
                f"for '{requirement.ingredient_name}', assumed 1:1"
            )
            if self.settings.strict_unit_conversion:
                return DeductionOutcome(
                    ingredient_name=requirement.ingredient_name,
                    product_name=product_name,
                    inventory_item_id=match.inventory_item_id,
                    inventory_item_name=match.inventory_item_name,
                    match_tier=match.tier,
                    unit=requirement.unit,
                    failure_kind=FailureKind.RESOLUTION,
                    reason=message,
                    required_quantity=_quantize(required),
                )
            warnings.append(message)

        final_qty = _quantize(required * match.conversion_factor)

        try:
            before, after = self._apply_deduction(match.inventory_item_id, final_qty)
        except InsufficientStockError as e:
            logger.info(f"Sale {sale_id}: {e}")
            return DeductionOutcome(
                ingredient_name=requirement.ingredient_name,
                product_name=product_name,
                inventory_item_id=match.inventory_item_id,
                inventory_item_name=match.inventory_item_name,
                match_tier=match.tier,
                unit=match.inventory_unit,
                failure_kind=FailureKind.AVAILABILITY,
                reason="Insufficient stock",
                required_quantity=e.needed,
                available_quantity=e.available,
            )
        except PERSISTENCE_ERRORS as e:
            return self._persistence_failure(requirement, product_name, final_qty, e, match)

        self._record_movement(
            MovementEntry(
                inventory_item_id=before.id,
                store_id=store_id,
                movement_type=MovementType.DEDUCTION,
                quantity_delta=-final_qty,
                resulting_quantity=after,
                reference=sale_id,
                match_tier=match.tier.value,
                notes=f"Sale: {product_name} x{quantity_sold} ({requirement.ingredient_name})",
            ),
            warnings,
        )

        if after <= before.minimum_threshold:
            logger.info(
                f"REORDER ALERT: {before.name} at {after} {before.unit} "
                f"(minimum: {before.minimum_threshold} {before.unit}) at store {store_id}"
            )

        return DeductionOutcome(
            ingredient_name=requirement.ingredient_name,
            product_name=product_name,
            inventory_item_id=before.id,
            inventory_item_name=before.name,
            match_tier=match.tier,
            unit=before.unit,
            quantity_deducted=final_qty,
            previous_quantity=before.quantity,
            new_quantity=after,
        )

    def _apply_deduction(self, item_id: int, qty: Decimal) -> Tuple[InventoryItemRecord, Decimal]:
        """Read, check and conditionally write one item's stock.

        Re-reads and re-checks when a concurrent writer bumped the version
        in between. Raises InsufficientStockError (stock untouched) or
        StockConflictError after the configured number of attempts.
        """
        attempts = self.settings.stock_update_max_attempts
        for attempt in range(1, attempts + 1):
            item = self.store.get_item(item_id)
            if item is None:
                raise RecordStoreError("get_item", f"inventory item {item_id} no longer exists")

            if item.quantity < qty:
                raise InsufficientStockError(item.name, item.id, item.quantity, qty, item.unit)

            new_qty = item.quantity - qty
            if self.store.update_stock(item.id, new_qty, item.version):
                return item, new_qty

            logger.warning(
                f"Concurrent update on '{item.name}' (version {item.version}), "
                f"attempt {attempt}/{attempts}"
            )

        raise StockConflictError(item_id, attempts)

    def _persistence_failure(
        self,
        requirement: RecipeIngredientRequirement,
        product_name: str,
        required: Decimal,
        error: Exception,
        match: Optional[IngredientMatch] = None,
    ) -> DeductionOutcome:
        logger.error(f"Persistence failure deducting '{requirement.ingredient_name}': {error}")
        return DeductionOutcome(
            ingredient_name=requirement.ingredient_name,
            product_name=product_name,
            inventory_item_id=match.inventory_item_id if match else None,
            inventory_item_name=match.inventory_item_name if match else None,
            match_tier=match.tier if match else None,
            failure_kind=FailureKind.PERSISTENCE,
            reason=str(error),
            required_quantity=_quantize(required),
        )

    def _record_movement(self, entry: MovementEntry, warnings: List[str]) -> None:
        """Append to the ledger. Best effort: the stock change stands either way."""
        try:
            self.store.append_movement(entry)
        except PERSISTENCE_ERRORS as e:
            logger.error(
                f"Stock for item {entry.inventory_item_id} changed by {entry.quantity_delta} "
                f"but the movement was not recorded: {e}"
            )
            warnings.append(f"Movement not recorded for inventory item {entry.inventory_item_id}")

    def _write_audit(self, result: DeductionResult) -> None:
        try:
            self.store.record_deduction_audit(result)
        except PERSISTENCE_ERRORS:
            logger.exception(f"Failed to write deduction audit for sale {result.sale_id}")

    # ===== DRY RUN =====

    def validate_sale(self, store_id: str, sold_items: List[SoldItem]) -> SaleValidation:
        """Check a sale against current stock without writing anything.

        Quantities are summed per inventory item across the whole sale, so
        two products drawing on the same item are checked together.
        """
        shortages: List[IngredientShortage] = []
        warnings: List[str] = []
        needed: Dict[int, Tuple[Decimal, IngredientMatch]] = OrderedDict()

        for sold in sold_items:
            unreadable: List[DeductionOutcome] = []
            requirements = self._requirements_for(store_id, sold, warnings, unreadable)
            for failure in unreadable:
                shortages.append(IngredientShortage(
                    ingredient_name=failure.ingredient_name,
                    failure_kind=FailureKind.PERSISTENCE,
                    reason=failure.reason,
                ))
            if requirements is None:
                continue

            for requirement in requirements:
                required = requirement.quantity * sold.quantity
                try:
                    match = self.matcher.match(requirement.ingredient_name, requirement.unit, store_id)
                except PERSISTENCE_ERRORS as e:
                    logger.error(f"Could not resolve '{requirement.ingredient_name}': {e}")
                    shortages.append(IngredientShortage(
                        ingredient_name=requirement.ingredient_name,
                        unit=requirement.unit,
                        required_quantity=_quantize(required),
                        failure_kind=FailureKind.PERSISTENCE,
                        reason=str(e),
                    ))
                    continue

                if not match.is_match:
                    shortages.append(IngredientShortage(
                        ingredient_name=requirement.ingredient_name,
                        unit=requirement.unit,
                        required_quantity=_quantize(required),
                        available_quantity=Decimal("0"),
                        failure_kind=FailureKind.RESOLUTION,
                    ))
                    continue

                qty = _quantize(required * match.conversion_factor)
                previous, _ = needed.get(match.inventory_item_id, (Decimal("0"), match))
                needed[match.inventory_item_id] = (previous + qty, match)

        for item_id, (qty, match) in needed.items():
            try:
                item = self.store.get_item(item_id)
            except PERSISTENCE_ERRORS as e:
                logger.error(f"Could not read inventory item {item_id}: {e}")
                shortages.append(IngredientShortage(
                    ingredient_name=match.ingredient_name,
                    inventory_item_id=item_id,
                    inventory_item_name=match.inventory_item_name,
                    unit=match.inventory_unit,
                    required_quantity=qty,
                    failure_kind=FailureKind.PERSISTENCE,
                    reason=str(e),
                ))
                continue

            available = item.quantity if item else Decimal("0")
            if available < qty:
                shortages.append(IngredientShortage(
                    ingredient_name=match.ingredient_name,
                    inventory_item_id=item_id,
                    inventory_item_name=match.inventory_item_name,
                    unit=match.inventory_unit,
                    required_quantity=qty,
                    available_quantity=available,
                    failure_kind=FailureKind.AVAILABILITY,
                ))

        return SaleValidation(
            store_id=store_id,
            valid=len(shortages) == 0,
            shortages=shortages,
            warnings=warnings,
        )

    def check_recipe_availability(
        self,
        recipe_id: int,
        quantity: Decimal,
        store_id: str,
    ) -> RecipeAvailability:
        """How many units of a recipe the store's stock can cover.

        Raises RecipeNotFoundError for an unknown recipe.
        """
        requirements = self.store.get_recipe_ingredients(recipe_id)
        if not requirements:
            return RecipeAvailability(
                recipe_id=recipe_id,
                store_id=store_id,
                requested_quantity=quantity,
                can_make=False,
                max_quantity=0,
                missing_ingredients=["No ingredients defined"],
            )

        per_unit: Dict[int, Tuple[Decimal, str]] = OrderedDict()
        missing: List[str] = []
        for requirement in requirements:
            match = self.matcher.match(requirement.ingredient_name, requirement.unit, store_id)
            if not match.is_match:
                missing.append(requirement.ingredient_name)
                continue
            need = requirement.quantity * match.conversion_factor
            previous, _ = per_unit.get(match.inventory_item_id, (Decimal("0"), ""))
            per_unit[match.inventory_item_id] = (previous + need, requirement.ingredient_name)

        max_quantity: Optional[int] = 0 if missing else None
        for item_id, (need, ingredient_name) in per_unit.items():
            item = self.store.get_item(item_id)
            available = item.quantity if item else Decimal("0")
            if need <= 0:
                continue
            possible = int(available // need)
            max_quantity = possible if max_quantity is None else min(max_quantity, possible)
            if available < need * quantity and ingredient_name not in missing:
                missing.append(ingredient_name)

        max_quantity = max_quantity or 0
        return RecipeAvailability(
            recipe_id=recipe_id,
            store_id=store_id,
            requested_quantity=quantity,
            can_make=not missing and max_quantity >= quantity,
            max_quantity=max_quantity,
            missing_ingredients=missing,
        )

    # ===== VOID / REVERSAL =====

    def reverse_sale(self, sale_id: str, store_id: str) -> ReversalResult:
        """Give back what a sale deducted, using the ledger as the record.

        Only the net amount not already reversed is restored, so calling
        this twice for the same sale restores stock once. An item whose
        reversal movement cannot be written is left as it was and stays
        outstanding for the next call.
        """
        deductions = self.store.list_movements(
            store_id, movement_type=MovementType.DEDUCTION, reference=sale_id
        )
        reversals = self.store.list_movements(
            store_id, movement_type=MovementType.REVERSAL, reference=sale_id
        )

        outstanding: Dict[int, Decimal] = OrderedDict()
        for movement in deductions:
            outstanding[movement.inventory_item_id] = (
                outstanding.get(movement.inventory_item_id, Decimal("0")) - movement.quantity_delta
            )
        for movement in reversals:
            if movement.inventory_item_id in outstanding:
                outstanding[movement.inventory_item_id] -= movement.quantity_delta

        to_restore = {item_id: qty for item_id, qty in outstanding.items() if qty > 0}
        if deductions and not to_restore:
            logger.info(f"Sale {sale_id} already reversed")
            return ReversalResult(sale_id=sale_id, store_id=store_id, success=True, already_reversed=True)

        restored: List[ReversalLine] = []
        errors: List[str] = []
        for item_id, qty in to_restore.items():
            # The reversal is written to the ledger before stock moves, so a
            # failed write leaves this item outstanding and untouched.
            try:
                current = self.store.get_item(item_id)
                if current is None:
                    raise RecordStoreError("get_item", f"inventory item {item_id} no longer exists")
                self.store.append_movement(MovementEntry(
                    inventory_item_id=item_id,
                    store_id=store_id,
                    movement_type=MovementType.REVERSAL,
                    quantity_delta=qty,
                    resulting_quantity=current.quantity + qty,
                    reference=sale_id,
                    notes=f"Reversal of sale {sale_id}",
                ))
            except PERSISTENCE_ERRORS as e:
                logger.error(f"Could not record reversal of item {item_id} for sale {sale_id}: {e}")
                errors.append(f"Failed to record reversal for inventory item {item_id}: {e}")
                continue

            try:
                item, new_qty = self._apply_restock(item_id, qty)
            except PERSISTENCE_ERRORS as e:
                logger.error(
                    f"Reversal of {qty} recorded for item {item_id} (sale {sale_id}) "
                    f"but stock was not restored: {e}"
                )
                errors.append(
                    f"Reversal recorded but stock not restored for inventory item {item_id}: {e}"
                )
                continue

            restored.append(ReversalLine(
                inventory_item_id=item_id,
                inventory_item_name=item.name,
                quantity_restored=qty,
                new_quantity=new_qty,
            ))

        return ReversalResult(
            sale_id=sale_id,
            store_id=store_id,
            success=len(errors) == 0,
            restored=restored,
            errors=errors,
        )

    def _apply_restock(self, item_id: int, qty: Decimal) -> Tuple[InventoryItemRecord, Decimal]:
        attempts = self.settings.stock_update_max_attempts
        for _ in range(attempts):
            item = self.store.get_item(item_id)
            if item is None:
                raise RecordStoreError("get_item", f"inventory item {item_id} no longer exists")
            new_qty = item.quantity + qty
            if self.store.update_stock(item.id, new_qty, item.version):
                return item, new_qty
        raise StockConflictError(item_id, attempts)
