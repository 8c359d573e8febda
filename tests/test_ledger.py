import asyncio

import pytest
from sqlalchemy import func, select

from conftest import adjustments_for, stock_quantity
from core import ledger
from core.errors import InvalidStateError, NotFoundError, ValidationFailedError
from core.ids import new_object_id
from db.inventory.adjustment import StockAdjustment
from db.inventory.stock import MAX_QUANTITY, StockLevel
from db.inventory.transfer import StockTransfer


async def _count(db, model):
    return await db.scalar(select(func.count()).select_from(model))


class TestSetInitialStock:
    async def test_creates_stock_level_and_initial_adjustment(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        out = await ledger.set_initial_stock(db, product.id, location.id, 10)

        assert out["created"] is True
        assert out["stock_level"].quantity == 10
        adj = out["adjustment"]
        assert adj.type == "initial"
        assert adj.quantity_change == 10
        assert adj.current_stock == 10
        assert adj.reason == ledger.INITIAL_STOCK_REASON
        assert await stock_quantity(db, product.id, location.id) == 10

    async def test_second_call_overwrites_and_records_delta(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        await ledger.set_initial_stock(db, product.id, location.id, 10)
        out = await ledger.set_initial_stock(db, product.id, location.id, 7)

        assert out["created"] is False
        assert await stock_quantity(db, product.id, location.id) == 7
        changes = [a.quantity_change for a in await adjustments_for(db, product.id, location.id)]
        assert changes == [10, -3]
        assert await _count(db, StockLevel) == 1

    async def test_repeating_same_quantity_still_appends_record(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        await ledger.set_initial_stock(db, product.id, location.id, 5)
        out = await ledger.set_initial_stock(db, product.id, location.id, 5)

        assert out["adjustment"].quantity_change == 0
        assert len(await adjustments_for(db, product.id, location.id)) == 2

    async def test_zero_quantity_is_allowed(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        out = await ledger.set_initial_stock(db, product.id, location.id, 0)

        assert out["stock_level"].quantity == 0
        assert out["adjustment"].quantity_change == 0

    async def test_unknown_product_fails_before_any_write(self, db, make_location):
        location = await make_location()

        with pytest.raises(NotFoundError, match="Product not found"):
            await ledger.set_initial_stock(db, new_object_id(), location.id, 3)

        assert await _count(db, StockLevel) == 0
        assert await _count(db, StockAdjustment) == 0

    async def test_negative_quantity_is_a_validation_failure(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        with pytest.raises(ValidationFailedError):
            await ledger.set_initial_stock(db, product.id, location.id, -1)

    async def test_quantity_above_column_range_is_a_validation_failure(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        with pytest.raises(ValidationFailedError):
            await ledger.set_initial_stock(db, product.id, location.id, MAX_QUANTITY + 1)

        assert await _count(db, StockLevel) == 0

    async def test_storage_fault_rolls_back_overwrite(self, db, make_product, make_location, monkeypatch):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        async def _flush_then_fail():
            await db.flush()
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(db, "commit", _flush_then_fail)

        with pytest.raises(RuntimeError):
            await ledger.set_initial_stock(db, product.id, location.id, 9)

        assert await stock_quantity(db, product.id, location.id) == 5
        assert len(await adjustments_for(db, product.id, location.id)) == 1

    async def test_unknown_location_fails(self, db, make_product):
        product = await make_product()

        with pytest.raises(NotFoundError, match="Location not found"):
            await ledger.set_initial_stock(db, product.id, new_object_id(), 3)

    async def test_accepts_upper_case_ids(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        out = await ledger.set_initial_stock(db, product.id.upper(), location.id.upper(), 4)

        assert out["stock_level"].product_id == product.id
        assert out["stock_level"].location_id == location.id


class TestAdjustStock:
    async def test_applies_signed_delta_and_records_current_stock(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        out = await ledger.adjust_stock(db, product.id, location.id, "add", 4, reason="Delivery", adjusted_by="sam")

        assert out["stock_level"].quantity == 9
        adj = out["adjustment"]
        assert (adj.type, adj.quantity_change, adj.current_stock) == ("add", 4, 9)
        assert adj.reason == "Delivery"
        assert adj.adjusted_by == "sam"

    async def test_type_does_not_change_sign(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        # "remove" with a positive delta still adds.
        out = await ledger.adjust_stock(db, product.id, location.id, "remove", 2)

        assert out["stock_level"].quantity == 7

    async def test_rejects_negative_result_without_writing(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        with pytest.raises(InvalidStateError, match="Current quantity: 5"):
            await ledger.adjust_stock(db, product.id, location.id, "loss", -10)

        assert await stock_quantity(db, product.id, location.id) == 5
        assert len(await adjustments_for(db, product.id, location.id)) == 1

    async def test_can_drain_to_exactly_zero(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        out = await ledger.adjust_stock(db, product.id, location.id, "damage", -5)

        assert out["adjustment"].current_stock == 0
        assert await stock_quantity(db, product.id, location.id) == 0

    async def test_unknown_type_is_rejected(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        with pytest.raises(ValidationFailedError):
            await ledger.adjust_stock(db, product.id, location.id, "stolen", -1)

        assert await stock_quantity(db, product.id, location.id) == 5

    async def test_rejects_result_above_column_range(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, MAX_QUANTITY - 1)

        with pytest.raises(InvalidStateError, match="cannot exceed"):
            await ledger.adjust_stock(db, product.id, location.id, "add", 2)
        with pytest.raises(ValidationFailedError):
            await ledger.adjust_stock(db, product.id, location.id, "remove", -(2**63))

        assert await stock_quantity(db, product.id, location.id) == MAX_QUANTITY - 1
        assert len(await adjustments_for(db, product.id, location.id)) == 1

    async def test_storage_fault_rolls_back_flushed_writes(self, db, make_product, make_location, monkeypatch):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 5)

        # Fails after the quantity update and the adjustment insert have been flushed.
        async def _broken_reload(session, product_id, location_id):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(ledger, "_reload", _broken_reload)

        with pytest.raises(RuntimeError):
            await ledger.adjust_stock(db, product.id, location.id, "add", 3)

        assert await stock_quantity(db, product.id, location.id) == 5
        assert len(await adjustments_for(db, product.id, location.id)) == 1

    async def test_requires_existing_stock_level(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()

        with pytest.raises(NotFoundError, match="Stock level entry not found"):
            await ledger.adjust_stock(db, product.id, location.id, "add", 1)

        assert await _count(db, StockAdjustment) == 0

    async def test_final_quantity_matches_sum_and_latest_record(self, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 20)

        accepted = []
        for change in (5, -8, -30, 3, -20, -2):
            try:
                await ledger.adjust_stock(db, product.id, location.id, "add" if change > 0 else "remove", change)
                accepted.append(change)
            except InvalidStateError:
                pass

        final = await stock_quantity(db, product.id, location.id)
        assert final == 20 + sum(accepted)
        records = await adjustments_for(db, product.id, location.id)
        assert records[-1].current_stock == final
        assert len(records) == 1 + len(accepted)

    async def test_concurrent_adjustments_never_go_negative(self, session_maker, db, make_product, make_location):
        product = await make_product()
        location = await make_location()
        await ledger.set_initial_stock(db, product.id, location.id, 10)

        async def _remove_three():
            async with session_maker() as session:
                return await ledger.adjust_stock(session, product.id, location.id, "remove", -3)

        results = await asyncio.gather(*[_remove_three() for _ in range(8)], return_exceptions=True)
        succeeded = [r for r in results if not isinstance(r, Exception)]

        final = await stock_quantity(db, product.id, location.id)
        assert final >= 0
        assert len(succeeded) <= 3
        assert final == 10 - 3 * len(succeeded)
        records = await adjustments_for(db, product.id, location.id)
        assert len(records) == 1 + len(succeeded)
        assert min(r.current_stock for r in records) == final


class TestTransferStock:
    async def test_moves_quantity_and_creates_destination(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 10)

        out = await ledger.transfer_stock(db, product.id, a.id, b.id, 4, requested_by="ops")

        assert out["source_stock_level"].quantity == 6
        assert out["destination_stock_level"].quantity == 4
        transfer = out["transfer"]
        assert transfer.status == "completed"
        assert transfer.completion_timestamp is not None
        assert transfer.completion_timestamp == transfer.request_timestamp
        assert transfer.requested_by == "ops"

    async def test_conserves_total_quantity(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 10)
        await ledger.set_initial_stock(db, product.id, b.id, 3)

        await ledger.transfer_stock(db, product.id, a.id, b.id, 7)

        qa = await stock_quantity(db, product.id, a.id)
        qb = await stock_quantity(db, product.id, b.id)
        assert (qa, qb) == (3, 10)
        assert qa + qb == 13

    async def test_same_location_fails_before_lookups(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 10)

        with pytest.raises(InvalidStateError, match="cannot be the same"):
            await ledger.transfer_stock(db, product.id, a.id, a.id.upper(), 1)

        assert await stock_quantity(db, product.id, a.id) == 10
        assert await _count(db, StockTransfer) == 0

    async def test_insufficient_source_reports_available(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 2)

        with pytest.raises(InvalidStateError, match="Available: 2"):
            await ledger.transfer_stock(db, product.id, a.id, b.id, 3)

        assert await stock_quantity(db, product.id, a.id) == 2
        assert await stock_quantity(db, product.id, b.id) is None
        assert await _count(db, StockTransfer) == 0

    async def test_missing_source_stock_level(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()

        with pytest.raises(NotFoundError, match="No stock found at source location"):
            await ledger.transfer_stock(db, product.id, a.id, b.id, 1)

    async def test_missing_locations_are_named(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()

        with pytest.raises(NotFoundError, match="From location not found"):
            await ledger.transfer_stock(db, product.id, new_object_id(), a.id, 1)
        with pytest.raises(NotFoundError, match="To location not found"):
            await ledger.transfer_stock(db, product.id, a.id, new_object_id(), 1)

    async def test_non_positive_quantity_rejected(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()

        with pytest.raises(ValidationFailedError) as exc:
            await ledger.transfer_stock(db, product.id, a.id, b.id, 0)
        assert exc.value.errors == ["quantity: must be at least 1"]

    async def test_destination_cannot_exceed_column_range(self, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 5)
        await ledger.set_initial_stock(db, product.id, b.id, MAX_QUANTITY)

        with pytest.raises(InvalidStateError, match="cannot exceed"):
            await ledger.transfer_stock(db, product.id, a.id, b.id, 1)

        assert await stock_quantity(db, product.id, a.id) == 5
        assert await stock_quantity(db, product.id, b.id) == MAX_QUANTITY
        assert await _count(db, StockTransfer) == 0

    async def test_opposite_direction_transfers_all_complete(self, session_maker, db, make_product, make_location):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 20)
        await ledger.set_initial_stock(db, product.id, b.id, 20)

        async def _move(src, dst):
            async with session_maker() as session:
                return await ledger.transfer_stock(session, product.id, src, dst, 3)

        jobs = []
        for _ in range(4):
            jobs.append(_move(a.id, b.id))
            jobs.append(_move(b.id, a.id))
        results = await asyncio.gather(*jobs, return_exceptions=True)

        assert [r for r in results if isinstance(r, Exception)] == []
        assert await stock_quantity(db, product.id, a.id) == 20
        assert await stock_quantity(db, product.id, b.id) == 20
        assert await _count(db, StockTransfer) == 8

    async def test_storage_fault_rolls_back_everything(self, db, make_product, make_location, monkeypatch):
        product = await make_product()
        a = await make_location()
        b = await make_location()
        await ledger.set_initial_stock(db, product.id, a.id, 10)

        original = ledger._ensure_stock_level

        async def _broken(session, product_id, location_id):
            if location_id == b.id:
                raise RuntimeError("disk on fire")
            return await original(session, product_id, location_id)

        monkeypatch.setattr(ledger, "_ensure_stock_level", _broken)

        with pytest.raises(RuntimeError):
            await ledger.transfer_stock(db, product.id, a.id, b.id, 4)

        assert await stock_quantity(db, product.id, a.id) == 10
        assert await stock_quantity(db, product.id, b.id) is None
        assert await _count(db, StockTransfer) == 0


class TestTransferStatus:
    def test_completion_timestamp_set_on_terminal_states(self):
        for status in ("completed", "cancelled"):
            transfer = StockTransfer(quantity=1)
            transfer.set_status(status)
            assert transfer.status == status
            assert transfer.completion_timestamp is not None

    def test_pending_has_no_completion_timestamp(self):
        transfer = StockTransfer(quantity=1)
        transfer.set_status("pending")
        assert transfer.completion_timestamp is None

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            StockTransfer(quantity=1).set_status("lost")
