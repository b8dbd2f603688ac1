"""Tests for recipe-driven stock deduction, dry runs and sale reversal."""

from decimal import Decimal

import pytest

from inventory_engine.core.config import Settings
from inventory_engine.models.audit import DeductionAudit
from inventory_engine.models.inventory import InventoryItem
from inventory_engine.models.recipe import Product
from inventory_engine.models.stock import InventoryMovement, MovementType
from inventory_engine.schemas.deduction import FailureKind, SoldItem
from inventory_engine.schemas.matching import MatchTier
from inventory_engine.services.exceptions import RecipeNotFoundError, RecordStoreError
from inventory_engine.services.record_store import SqlAlchemyRecordStore
from inventory_engine.services.stock_deduction_service import StockDeductionService

from conftest import STORE_ID, make_item, make_recipe


def _stock(db, item_id) -> Decimal:
    db.expire_all()
    return db.get(InventoryItem, item_id).quantity


class ContendedStore(SqlAlchemyRecordStore):
    """Loses the conditional write *conflicts* times before letting it through."""

    def __init__(self, db, conflicts):
        super().__init__(db)
        self.conflicts = conflicts
        self.update_calls = 0

    def update_stock(self, item_id, new_quantity, expected_version):
        self.update_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        return super().update_stock(item_id, new_quantity, expected_version)


class BrokenLedgerStore(SqlAlchemyRecordStore):
    def append_movement(self, entry):
        raise RecordStoreError("append_movement", "disk full")

    def record_deduction_audit(self, result):
        raise RecordStoreError("record_deduction_audit", "disk full")


class FlakyRecipeStore(SqlAlchemyRecordStore):
    """Raises *error* on the *fail_on*-th recipe read."""

    def __init__(self, db, error, fail_on=1):
        super().__init__(db)
        self.error = error
        self.fail_on = fail_on
        self.recipe_reads = 0

    def get_recipe_ingredients(self, recipe_id):
        self.recipe_reads += 1
        if self.recipe_reads == self.fail_on:
            raise self.error
        return super().get_recipe_ingredients(recipe_id)


class ItemListDownStore(SqlAlchemyRecordStore):
    def list_active_items(self, store_id, categories=None):
        raise RecordStoreError("list_active_items", "connection lost")


class ItemReadDownStore(SqlAlchemyRecordStore):
    def get_item(self, item_id):
        raise RecordStoreError("get_item", "connection lost")


class ReversalLedgerDownStore(SqlAlchemyRecordStore):
    """Rejects reversal movements, accepts everything else."""

    def append_movement(self, entry):
        if entry.movement_type == MovementType.REVERSAL:
            raise RecordStoreError("append_movement", "disk full")
        return super().append_movement(entry)


# ============== deduct_for_sale ==============

class TestDeductForSale:
    def test_alias_deduction_end_to_end(self, stock_setup, store, settings):
        db = stock_setup["db"]
        chocolate = stock_setup["chocolate"]
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("2"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is True
        assert result.failures == []
        assert result.items_processed == 1
        assert len(result.outcomes) == 1
        outcome = result.outcomes[0]
        assert outcome.match_tier == MatchTier.STANDARDIZED_ALIAS
        assert outcome.quantity_deducted == Decimal("60")
        assert outcome.previous_quantity == Decimal("500")
        assert outcome.new_quantity == Decimal("440")
        assert _stock(db, chocolate.id) == Decimal("440")

        movements = db.query(InventoryMovement).filter(InventoryMovement.reference == "S-1").all()
        assert len(movements) == 1
        assert movements[0].quantity_delta == Decimal("-60")
        assert movements[0].resulting_quantity == Decimal("440")
        assert movements[0].movement_type == MovementType.DEDUCTION.value
        assert movements[0].match_tier == "standardized_alias"

    def test_two_sequential_deductions(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)
        mocha = SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id)

        svc.deduct_for_sale("S-1", STORE_ID, [mocha])
        svc.deduct_for_sale("S-2", STORE_ID, [mocha])

        assert _stock(db, stock_setup["chocolate"].id) == Decimal("440")

    def test_version_bumped_per_write(self, stock_setup, store, settings):
        db = stock_setup["db"]
        chocolate = stock_setup["chocolate"]
        svc = StockDeductionService(store, settings=settings)

        svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        db.expire_all()
        assert db.get(InventoryItem, chocolate.id).version == 2

    def test_insufficient_stock_leaves_stock_unchanged(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("20"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is False
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.failure_kind == FailureKind.AVAILABILITY
        assert failure.required_quantity == Decimal("600")
        assert failure.available_quantity == Decimal("500")
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")
        assert db.query(InventoryMovement).count() == 0

    def test_stock_never_negative(self, db_session, store, settings):
        item = make_item(db_session, "Butter", unit="g", quantity=Decimal("50"))
        recipe = make_recipe(db_session, "Butter Toast", [("Butter", "g", 30)])
        svc = StockDeductionService(store, settings=settings)
        toast = SoldItem(product_name="Butter Toast", quantity=Decimal("1"), recipe_id=recipe.id)

        first = svc.deduct_for_sale("S-1", STORE_ID, [toast])
        second = svc.deduct_for_sale("S-2", STORE_ID, [toast])

        assert first.success is True
        assert second.success is False
        assert _stock(db_session, item.id) == Decimal("20")

    def test_partial_success(self, stock_setup, store, settings):
        db = stock_setup["db"]
        recipe = make_recipe(db, "Mystery Mocha", [
            ("Chocolate Sauce", "ml", 30),
            ("Unicorn Dust", "g", 5),
        ])
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mystery Mocha", quantity=Decimal("1"), recipe_id=recipe.id),
        ])

        assert result.success is False
        assert [o.ingredient_name for o in result.outcomes] == ["Chocolate Sauce"]
        assert [f.ingredient_name for f in result.failures] == ["Unicorn Dust"]
        assert result.failures[0].failure_kind == FailureKind.RESOLUTION
        assert result.failures[0].match_tier == MatchTier.NONE
        # Applied deduction is not undone
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("470")

    def test_multi_ingredient_recipe(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Sundae", quantity=Decimal("2"), recipe_id=stock_setup["sundae"].id),
        ])

        assert result.success is True
        assert len(result.outcomes) == 3
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("460")
        assert _stock(db, stock_setup["marshmallow"].id) == Decimal("970")
        assert _stock(db, stock_setup["box"].id) == Decimal("48")

    def test_unit_conversion_applied(self, db_session, store, settings):
        flour = make_item(db_session, "Flour", unit="g", quantity=Decimal("5000"))
        recipe = make_recipe(db_session, "Bread", [("Flour", "kg", "0.5")])
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Bread", quantity=Decimal("2"), recipe_id=recipe.id),
        ])

        assert result.success is True
        assert result.outcomes[0].quantity_deducted == Decimal("1000")
        assert _stock(db_session, flour.id) == Decimal("4000")

    def test_item_without_recipe_is_warning(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Bottled Water", quantity=Decimal("1")),
        ])

        assert result.success is True
        assert result.items_processed == 0
        assert any("Bottled Water" in w for w in result.warnings)

    def test_unknown_recipe_is_warning(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Ghost", quantity=Decimal("1"), recipe_id=9999),
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is True
        assert result.items_processed == 1
        assert any("9999" in w for w in result.warnings)

    def test_unverified_conversion_warns(self, db_session, store, settings):
        make_item(db_session, "Sprinkles", unit="g", category="classic_topping", quantity=Decimal("100"))
        recipe = make_recipe(db_session, "Cupcake", [("Sprinkles", "scoop", 2)])
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Cupcake", quantity=Decimal("1"), recipe_id=recipe.id),
        ])

        assert result.success is True
        assert result.outcomes[0].quantity_deducted == Decimal("2")
        assert any("assumed 1:1" in w for w in result.warnings)

    def test_strict_conversion_fails_ingredient(self, db_session, store):
        item = make_item(db_session, "Sprinkles", unit="g", category="classic_topping", quantity=Decimal("100"))
        recipe = make_recipe(db_session, "Cupcake", [("Sprinkles", "scoop", 2)])
        strict = Settings(_env_file=None, strict_unit_conversion=True)
        svc = StockDeductionService(store, settings=strict)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Cupcake", quantity=Decimal("1"), recipe_id=recipe.id),
        ])

        assert result.success is False
        assert result.failures[0].failure_kind == FailureKind.RESOLUTION
        assert _stock(db_session, item.id) == Decimal("100")

    def test_audit_written(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)

        svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("20"), recipe_id=stock_setup["mocha"].id),
        ])

        audit = db.query(DeductionAudit).filter(DeductionAudit.sale_id == "S-1").one()
        assert audit.success is False
        assert audit.items_processed == 1
        assert audit.failures[0]["failure_kind"] == "availability"

    def test_ledger_failure_does_not_revert_stock(self, stock_setup, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(BrokenLedgerStore(db), settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is True
        assert any("Movement not recorded" in w for w in result.warnings)
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("470")

    def test_recipe_read_failure_is_persistence_failure(self, stock_setup, settings):
        db = stock_setup["db"]
        flaky = FlakyRecipeStore(db, RecordStoreError("get_recipe_ingredients", "connection lost"))
        svc = StockDeductionService(flaky, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is False
        assert result.items_processed == 0
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.failure_kind == FailureKind.PERSISTENCE
        assert failure.ingredient_name == "*"
        assert failure.product_name == "Mocha"
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")

    def test_unexpected_error_keeps_earlier_outcomes(self, stock_setup, settings):
        db = stock_setup["db"]
        flaky = FlakyRecipeStore(db, ValueError("corrupt recipe row"), fail_on=2)
        svc = StockDeductionService(flaky, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
            SoldItem(product_name="Sundae", quantity=Decimal("1"), recipe_id=stock_setup["sundae"].id),
        ])

        assert result.success is False
        assert result.items_processed == 1
        assert len(result.outcomes) == 1
        assert result.outcomes[0].new_quantity == Decimal("470")
        assert len(result.failures) == 1
        assert result.failures[0].failure_kind == FailureKind.SYSTEM
        assert result.failures[0].ingredient_name == "*"
        assert "corrupt recipe row" in result.failures[0].reason
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("470")
        assert _stock(db, stock_setup["marshmallow"].id) == Decimal("1000")

    def test_recipe_resolved_through_product(self, stock_setup, store, settings):
        db = stock_setup["db"]
        db.add(Product(store_id=STORE_ID, name="Mocha", recipe_id=stock_setup["mocha"].id))
        db.commit()
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="  mocha ", quantity=Decimal("1")),
        ])

        assert result.success is True
        assert result.items_processed == 1
        assert result.warnings == []
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("470")

    def test_product_lookup_scoped_to_active_store_products(self, stock_setup, store, settings):
        db = stock_setup["db"]
        db.add_all([
            Product(store_id="store-2", name="Mocha", recipe_id=stock_setup["mocha"].id),
            Product(store_id=STORE_ID, name="Sundae", recipe_id=stock_setup["sundae"].id, is_active=False),
            Product(store_id=STORE_ID, name="Gift Card"),
        ])
        db.commit()
        svc = StockDeductionService(store, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1")),
            SoldItem(product_name="Sundae", quantity=Decimal("1")),
            SoldItem(product_name="Gift Card", quantity=Decimal("1")),
        ])

        assert result.success is True
        assert result.items_processed == 0
        assert len(result.warnings) == 3
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")


class TestConcurrentUpdates:
    def test_conflict_is_retried(self, stock_setup, settings):
        db = stock_setup["db"]
        contended = ContendedStore(db, conflicts=2)
        svc = StockDeductionService(contended, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is True
        assert contended.update_calls == 3
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("470")

    def test_exhausted_retries_is_persistence_failure(self, stock_setup, settings):
        db = stock_setup["db"]
        contended = ContendedStore(db, conflicts=10)
        svc = StockDeductionService(contended, settings=settings)

        result = svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert result.success is False
        assert result.failures[0].failure_kind == FailureKind.PERSISTENCE
        assert contended.update_calls == settings.stock_update_max_attempts
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")

    def test_stale_version_rejected(self, stock_setup, store):
        chocolate = stock_setup["chocolate"]
        assert store.update_stock(chocolate.id, Decimal("400"), expected_version=1) is True
        assert store.update_stock(chocolate.id, Decimal("300"), expected_version=1) is False
        assert store.get_item(chocolate.id).quantity == Decimal("400")


# ============== validate_sale / check_recipe_availability ==============

class TestValidateSale:
    def test_valid_sale(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        validation = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("2"), recipe_id=stock_setup["mocha"].id),
        ])

        assert validation.valid is True
        assert validation.shortages == []

    def test_shared_item_summed_across_products(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)

        # 10 x 30 + 10 x 20 = 500 fits, 11 + 10 does not
        ok = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("10"), recipe_id=stock_setup["mocha"].id),
            SoldItem(product_name="Sundae", quantity=Decimal("10"), recipe_id=stock_setup["sundae"].id),
        ])
        short = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("11"), recipe_id=stock_setup["mocha"].id),
            SoldItem(product_name="Sundae", quantity=Decimal("10"), recipe_id=stock_setup["sundae"].id),
        ])

        assert ok.valid is True
        assert short.valid is False
        assert short.shortages[0].required_quantity == Decimal("530")
        assert short.shortages[0].available_quantity == Decimal("500")
        # Dry run writes nothing
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")
        assert db.query(InventoryMovement).count() == 0

    def test_unresolvable_ingredient(self, db_session, store, settings):
        recipe = make_recipe(db_session, "Mystery", [("Unicorn Dust", "g", 5)])
        svc = StockDeductionService(store, settings=settings)

        validation = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mystery", quantity=Decimal("1"), recipe_id=recipe.id),
        ])

        assert validation.valid is False
        assert validation.shortages[0].failure_kind == FailureKind.RESOLUTION

    def test_recipe_read_failure_invalidates(self, stock_setup, settings):
        flaky = FlakyRecipeStore(stock_setup["db"], RecordStoreError("get_recipe_ingredients", "connection lost"))
        svc = StockDeductionService(flaky, settings=settings)

        validation = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert validation.valid is False
        assert len(validation.shortages) == 1
        shortage = validation.shortages[0]
        assert shortage.failure_kind == FailureKind.PERSISTENCE
        assert shortage.ingredient_name == "*"
        assert "connection lost" in shortage.reason

    def test_item_list_failure_invalidates(self, stock_setup, settings):
        svc = StockDeductionService(ItemListDownStore(stock_setup["db"]), settings=settings)

        validation = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert validation.valid is False
        assert validation.shortages[0].failure_kind == FailureKind.PERSISTENCE
        assert validation.shortages[0].ingredient_name == "Chocolate Sauce"

    def test_stock_read_failure_invalidates(self, stock_setup, settings):
        svc = StockDeductionService(ItemReadDownStore(stock_setup["db"]), settings=settings)

        validation = svc.validate_sale(STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        assert validation.valid is False
        shortage = validation.shortages[0]
        assert shortage.failure_kind == FailureKind.PERSISTENCE
        assert shortage.inventory_item_id == stock_setup["chocolate"].id
        assert shortage.available_quantity is None


class TestRecipeAvailability:
    def test_max_quantity(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        availability = svc.check_recipe_availability(stock_setup["mocha"].id, Decimal("5"), STORE_ID)

        assert availability.can_make is True
        assert availability.max_quantity == 16  # 500 // 30

    def test_limited_by_scarcest_ingredient(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        availability = svc.check_recipe_availability(stock_setup["sundae"].id, Decimal("60"), STORE_ID)

        # boxes: 50, chocolate: 500 // 20 = 25, marshmallow: 1000 // 15 = 66
        assert availability.max_quantity == 25
        assert availability.can_make is False
        assert "Chocolate Sauce" in availability.missing_ingredients

    def test_unknown_recipe_raises(self, store, settings):
        svc = StockDeductionService(store, settings=settings)
        with pytest.raises(RecipeNotFoundError):
            svc.check_recipe_availability(424242, Decimal("1"), STORE_ID)


# ============== reverse_sale ==============

class TestReverseSale:
    def test_reverse_restores_stock(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)
        svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Sundae", quantity=Decimal("2"), recipe_id=stock_setup["sundae"].id),
        ])

        result = svc.reverse_sale("S-1", STORE_ID)

        assert result.success is True
        assert len(result.restored) == 3
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")
        assert _stock(db, stock_setup["box"].id) == Decimal("50")
        reversals = db.query(InventoryMovement).filter(
            InventoryMovement.movement_type == MovementType.REVERSAL.value
        ).all()
        assert len(reversals) == 3

    def test_reverse_is_idempotent(self, stock_setup, store, settings):
        db = stock_setup["db"]
        svc = StockDeductionService(store, settings=settings)
        svc.deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("2"), recipe_id=stock_setup["mocha"].id),
        ])

        svc.reverse_sale("S-1", STORE_ID)
        second = svc.reverse_sale("S-1", STORE_ID)

        assert second.already_reversed is True
        assert second.restored == []
        assert _stock(db, stock_setup["chocolate"].id) == Decimal("500")

    def test_reverse_unknown_sale(self, stock_setup, store, settings):
        svc = StockDeductionService(store, settings=settings)

        result = svc.reverse_sale("NOPE", STORE_ID)

        assert result.success is True
        assert result.restored == []
        assert result.already_reversed is False

    def test_failed_reversal_write_leaves_stock_and_allows_retry(self, stock_setup, store, settings):
        db = stock_setup["db"]
        chocolate = stock_setup["chocolate"]
        StockDeductionService(store, settings=settings).deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])
        assert _stock(db, chocolate.id) == Decimal("470")

        broken = StockDeductionService(ReversalLedgerDownStore(db), settings=settings)
        first = broken.reverse_sale("S-1", STORE_ID)
        second = broken.reverse_sale("S-1", STORE_ID)

        for result in (first, second):
            assert result.success is False
            assert result.restored == []
            assert result.errors
        assert _stock(db, chocolate.id) == Decimal("470")

        svc = StockDeductionService(store, settings=settings)
        retried = svc.reverse_sale("S-1", STORE_ID)
        assert retried.success is True
        assert _stock(db, chocolate.id) == Decimal("500")
        assert svc.reverse_sale("S-1", STORE_ID).already_reversed is True
        assert _stock(db, chocolate.id) == Decimal("500")

    def test_failed_restock_is_not_restored_twice(self, stock_setup, store, settings):
        db = stock_setup["db"]
        chocolate = stock_setup["chocolate"]
        StockDeductionService(store, settings=settings).deduct_for_sale("S-1", STORE_ID, [
            SoldItem(product_name="Mocha", quantity=Decimal("1"), recipe_id=stock_setup["mocha"].id),
        ])

        contended = StockDeductionService(ContendedStore(db, conflicts=10), settings=settings)
        result = contended.reverse_sale("S-1", STORE_ID)

        assert result.success is False
        assert "not restored" in result.errors[0]
        assert _stock(db, chocolate.id) == Decimal("470")
        # The ledger holds the reversal, so a retry reports it done
        assert StockDeductionService(store, settings=settings).reverse_sale("S-1", STORE_ID).already_reversed is True
        assert _stock(db, chocolate.id) == Decimal("470")
