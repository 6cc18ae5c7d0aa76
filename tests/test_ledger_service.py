"""
Tests for LedgerService add/remove.

Covers:
- Record creation and increments
- Validation of quantity, amount and names
- Insufficient quantity and missing record errors
- Conservation of quantity over random add/remove sequences
- History invariants (one entry per call, new = previous +/- quantity)
- Status transitions (active -> completed -> active)
"""

import random
from decimal import Decimal

import pytest

from core.exceptions import InsufficientQuantityError, NotFoundError, ValidationError
from services.records import HistoryAction, RecordFilter, RecordStatus
from services.stages import Stage


class TestAdd:
    async def test_first_add_creates_record(self, ledger):
        record = await ledger.add(Stage.KACHA, "ownerA", "copper", 100, 1000, action_by="u1", notes="first lot")

        assert record.quantity == Decimal("100")
        assert record.total_amount == Decimal("1000")
        assert record.status == RecordStatus.ACTIVE
        assert len(record.history) == 1
        entry = record.history[0]
        assert entry.action == HistoryAction.CREATED
        assert entry.previous_quantity == 0
        assert entry.new_quantity == 100
        assert entry.action_by == "u1"
        assert entry.notes == "first lot"

    async def test_second_add_increments_same_record(self, ledger):
        first = await ledger.add(Stage.KACHA, "ownerA", "copper", 100, 1000)
        second = await ledger.add(Stage.KACHA, "ownerA", "copper", "25.5", "255")

        assert second.id == first.id
        assert second.quantity == Decimal("125.5")
        assert second.total_amount == Decimal("1255")
        assert [h.action for h in second.history] == [HistoryAction.CREATED, HistoryAction.ADDED]

    async def test_keys_are_separate_per_stage_owner_and_item(self, ledger):
        a = await ledger.add(Stage.KACHA, "ownerA", "copper", 1)
        b = await ledger.add(Stage.DRAW, "ownerA", "copper", 1)
        c = await ledger.add(Stage.KACHA, "ownerB", "copper", 1)
        d = await ledger.add(Stage.KACHA, "ownerA", "brass", 1)

        assert len({a.id, b.id, c.id, d.id}) == 4

    async def test_add_accepts_stage_names(self, ledger):
        record = await ledger.add("ready-copper", "v1", "wire", 3)
        assert record.stage == Stage.READY_COPPER

    async def test_add_strips_names(self, ledger):
        record = await ledger.add(Stage.KACHA, "  ownerA ", " copper ", 1)
        assert (record.owner_id, record.item_ref) == ("ownerA", "copper")

    @pytest.mark.parametrize("quantity", [0, -1, "-0.5", "abc", None, True, float("nan"), float("inf")])
    async def test_add_rejects_bad_quantity(self, ledger, fresh_repository, quantity):
        with pytest.raises(ValidationError):
            await ledger.add(Stage.KACHA, "ownerA", "copper", quantity)
        assert await fresh_repository.count(RecordFilter()) == 0

    async def test_add_rejects_negative_amount(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.add(Stage.KACHA, "ownerA", "copper", 1, -5)

    @pytest.mark.parametrize("owner, item", [("", "copper"), ("ownerA", "   "), (None, "copper")])
    async def test_add_rejects_blank_names(self, ledger, owner, item):
        with pytest.raises(ValidationError):
            await ledger.add(Stage.KACHA, owner, item, 1)

    async def test_add_rejects_unknown_stage(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.add("smelting", "ownerA", "copper", 1)


class TestRemove:
    async def test_add_then_remove(self, ledger):
        """add(ownerA, copper, 100, 1000) -> remove 30 -> quantity 70, 2 entries."""
        await ledger.add(Stage.KACHA, "ownerA", "copper", 100, 1000)
        record = await ledger.remove(Stage.KACHA, "ownerA", "copper", 30)

        assert record.quantity == Decimal("70")
        assert len(record.history) == 2
        removed = record.history[-1]
        assert removed.action == HistoryAction.REMOVED
        assert (removed.previous_quantity, removed.new_quantity) == (100, 70)

    async def test_remove_reduces_amount_pro_rata(self, ledger):
        await ledger.add(Stage.KACHA, "ownerA", "copper", 100, 1000)
        record = await ledger.remove(Stage.KACHA, "ownerA", "copper", 30)

        assert record.history[-1].amount == Decimal("300.00")
        assert record.total_amount == Decimal("700.00")

    async def test_remove_more_than_available_fails_and_keeps_quantity(self, ledger, fresh_repository):
        """add(ownerA, copper, 50, 500) -> remove 60 -> InsufficientQuantityError, quantity 50."""
        await ledger.add(Stage.KACHA, "ownerA", "copper", 50, 500)

        with pytest.raises(InsufficientQuantityError) as exc_info:
            await ledger.remove(Stage.KACHA, "ownerA", "copper", 60)

        assert exc_info.value.available == Decimal("50")
        assert exc_info.value.requested == Decimal("60")
        record = await fresh_repository.find(Stage.KACHA, "ownerA", "copper")
        assert record.quantity == Decimal("50")
        assert len(record.history) == 1

    async def test_remove_missing_record(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.remove(Stage.KACHA, "ghost", "copper", 1)

    async def test_remove_rejects_non_positive(self, ledger):
        await ledger.add(Stage.KACHA, "ownerA", "copper", 5)
        with pytest.raises(ValidationError):
            await ledger.remove(Stage.KACHA, "ownerA", "copper", 0)

    async def test_remove_everything_completes_record(self, ledger):
        await ledger.add(Stage.KACHA, "ownerA", "copper", 5, 50)
        record = await ledger.remove(Stage.KACHA, "ownerA", "copper", 5)

        assert record.quantity == 0
        assert record.total_amount == 0
        assert record.status == RecordStatus.COMPLETED

    async def test_add_reactivates_completed_record(self, ledger):
        await ledger.add(Stage.KACHA, "ownerA", "copper", 5)
        drained = await ledger.remove(Stage.KACHA, "ownerA", "copper", 5)
        again = await ledger.add(Stage.KACHA, "ownerA", "copper", 2)

        assert again.id == drained.id
        assert again.status == RecordStatus.ACTIVE
        assert again.quantity == 2
        assert again.history[-1].action == HistoryAction.ADDED


class TestConservation:
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_random_sequences_conserve_quantity(self, ledger, fresh_repository, seed):
        rng = random.Random(seed)
        added = Decimal("0")
        removed = Decimal("0")
        successes = 0

        for _ in range(60):
            qty = Decimal(rng.randint(1, 40))
            if rng.random() < 0.55 or added == 0:
                await ledger.add(Stage.DRAW, "drawer", "rod", qty, qty * 3)
                added += qty
                successes += 1
            else:
                try:
                    await ledger.remove(Stage.DRAW, "drawer", "rod", qty)
                except InsufficientQuantityError:
                    continue
                removed += qty
                successes += 1

        record = await fresh_repository.find(Stage.DRAW, "drawer", "rod")
        assert record.quantity == added - removed
        assert record.quantity >= 0
        assert len(record.history) == successes

        # every entry chains onto the previous one
        running = Decimal("0")
        for entry in record.history:
            assert entry.previous_quantity == running
            assert entry.new_quantity == entry.previous_quantity + entry.action.sign * entry.quantity
            assert entry.new_quantity >= 0
            running = entry.new_quantity
        assert running == record.quantity

    async def test_history_is_ordered_by_action_date(self, ledger):
        await ledger.add(Stage.KACHA, "ownerA", "copper", 10)
        await ledger.remove(Stage.KACHA, "ownerA", "copper", 3)
        record = await ledger.add(Stage.KACHA, "ownerA", "copper", 1)

        dates = [h.action_date for h in record.history]
        assert dates == sorted(dates)


class TestReads:
    async def test_get_record_and_history(self, ledger):
        record = await ledger.add(Stage.KACHA, "ownerA", "copper", 10)
        await ledger.remove(Stage.KACHA, "ownerA", "copper", 4)

        fetched = await ledger.get_record(record.id)
        history = await ledger.history(record.id)

        assert fetched.quantity == 6
        assert [h.new_quantity for h in history] == [10, 6]

    async def test_get_record_missing(self, ledger):
        import uuid

        with pytest.raises(NotFoundError):
            await ledger.get_record(uuid.uuid4())

    async def test_list_and_count_by_stage(self, ledger):
        await ledger.add(Stage.KACHA, "k1", "copper", 1)
        await ledger.add(Stage.KACHA, "k2", "copper", 1)
        await ledger.add(Stage.DRAW, "d1", "rod", 1)

        kacha = await ledger.list_records(RecordFilter(stage=Stage.KACHA))
        assert [r.owner_id for r in kacha] == ["k1", "k2"]
        assert await ledger.count_records(RecordFilter(stage=Stage.DRAW)) == 1

    async def test_stage_summary(self, ledger):
        await ledger.add(Stage.KACHA, "k1", "copper", 10, 100)
        await ledger.add(Stage.KACHA, "k2", "copper", 5, 50)
        await ledger.remove(Stage.KACHA, "k2", "copper", 5)

        summary = await ledger.stage_summary(Stage.KACHA)

        assert summary.record_count == 2
        assert summary.active_count == 1
        assert summary.total_quantity == Decimal("10")
        assert summary.total_amount == Decimal("100")

    async def test_stock_levels_cover_every_stage(self, ledger):
        await ledger.add(Stage.PVC_PURCHASE, "p1", "pvc", 7)
        levels = await ledger.stock_levels()

        assert [s.stage for s in levels] == list(Stage)
        assert {s.stage: s.total_quantity for s in levels}[Stage.PVC_PURCHASE] == 7

    async def test_recent_activity_newest_first(self, ledger):
        await ledger.add(Stage.KACHA, "k1", "copper", 10)
        await ledger.add(Stage.DRAW, "d1", "rod", 3)
        await ledger.remove(Stage.KACHA, "k1", "copper", 2)

        everything = await ledger.recent_activity()
        kacha_only = await ledger.recent_activity("kacha", limit=1)

        assert [e.action for e in everything] == [
            HistoryAction.REMOVED,
            HistoryAction.CREATED,
            HistoryAction.CREATED,
        ]
        assert len(kacha_only) == 1
        assert kacha_only[0].action == HistoryAction.REMOVED
