"""
Ledger service - per-stage quantity balances for the copper workflow.

The ledger is responsible for:
- Creating/incrementing records on add
- Decrementing records on remove and delete
- Moving quantity into the next stage on return (both sides or neither)
- Appending one history entry per record touched by a mutation

Every mutation runs under the per-key locks of the records it touches and
commits through the repository once, at the end. Any failure before that
rolls the unit of work back, so callers never observe a partial change.
"""

import functools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import AsyncIterator, Callable, List, Optional, Union
from uuid import UUID

from core.exceptions import (
    InsufficientQuantityError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from services.locks import KeyedLock
from services.records import (
    HistoryAction,
    HistoryEntry,
    InventoryRecord,
    RecordFilter,
    RecordStatus,
    record_key,
    utcnow,
)
from services.repository import InventoryRepository
from services.stages import WORKFLOW, Stage, next_stage, parse_stage

logger = logging.getLogger(__name__)

Number = Union[int, float, str, Decimal]

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class TransferResult:
    source: InventoryRecord
    destination: InventoryRecord


@dataclass(frozen=True)
class DeleteResult:
    record: InventoryRecord
    returned_to: Optional[InventoryRecord] = None


@dataclass(frozen=True)
class StageSummary:
    stage: Stage
    record_count: int
    active_count: int
    total_quantity: Decimal
    total_amount: Decimal


def _to_decimal(value: Number, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", {"field": field})
    try:
        out = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", {"field": field})
    if not out.is_finite():
        raise ValidationError(f"{field} must be finite", {"field": field})
    return out


def _positive_quantity(value: Number) -> Decimal:
    qty = _to_decimal(value, "quantity")
    if qty <= 0:
        raise ValidationError("quantity must be > 0", {"field": "quantity", "value": str(qty)})
    return qty


def _non_negative_amount(value: Number) -> Decimal:
    amount = _to_decimal(value, "amount")
    if amount < 0:
        raise ValidationError("amount must be >= 0", {"field": "amount", "value": str(amount)})
    return amount


def _required_name(value: Optional[str], field: str) -> str:
    out = (value or "").strip()
    if not out:
        raise ValidationError(f"{field} is required", {"field": field})
    return out


def _amount_out(record: InventoryRecord, quantity: Decimal) -> Decimal:
    """Share of the record's total_amount that leaves with `quantity`."""
    if quantity >= record.quantity or record.quantity <= 0:
        return record.total_amount
    share = (record.total_amount * quantity / record.quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
    return min(share, record.total_amount)


def _ensure_available(record: InventoryRecord, quantity: Decimal) -> None:
    if quantity > record.quantity:
        raise InsufficientQuantityError(
            available=record.quantity,
            requested=quantity,
            message=(
                f"Cannot take more than available quantity from {record.item_ref} "
                f"({record.stage.value}). Available={record.quantity} requested={quantity}"
            ),
        )


def _returnable_to(record: InventoryRecord, source_id: UUID) -> Decimal:
    """Quantity `record` received from `source_id` and has not sent back yet."""
    net = Decimal("0")
    for entry in record.history:
        if entry.counterpart_record_id != source_id:
            continue
        if entry.action in (HistoryAction.CREATED, HistoryAction.ADDED):
            net += entry.quantity
        elif entry.action == HistoryAction.REMOVED:
            net -= entry.quantity
    return net


def _logged(operation: str) -> Callable:
    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except LedgerError as e:
                logger.warning(
                    "[ledger] %s rejected: %s",
                    operation,
                    e.message,
                    extra={"operation": operation, "error_code": e.code},
                )
                raise

        return wrapper

    return decorator


class LedgerService:
    def __init__(
        self,
        repository: InventoryRepository,
        locks: Optional[KeyedLock] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.locks = locks if locks is not None else KeyedLock()
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # unit of work
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self, *keys: str) -> AsyncIterator[None]:
        async with self.locks.hold(*keys):
            try:
                yield
            except BaseException:
                await self.repository.rollback()
                raise

    async def _save(self, *records: InventoryRecord) -> None:
        for record in records:
            await self.repository.put(record)
        await self.repository.commit()

    async def _require_live(self, stage: Stage, owner_id: str, item_ref: str) -> InventoryRecord:
        record = await self.repository.find(stage, owner_id, item_ref)
        if record is None:
            raise NotFoundError(
                f"No {stage.value} record for owner {owner_id} and item {item_ref}",
                {"stage": stage.value, "owner_id": owner_id, "item_ref": item_ref},
            )
        return record

    async def _require_live_by_id(self, record_id: UUID, lock: bool = True) -> InventoryRecord:
        if lock:
            record = await self.repository.get(record_id)
        else:
            record = await self.repository.peek(record_id)
        if record is None or not record.is_live:
            raise NotFoundError("Inventory record not found", {"record_id": str(record_id)})
        return record

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    @_logged("add")
    async def add(
        self,
        stage: Union[Stage, str],
        owner_id: str,
        item_ref: str,
        quantity: Number,
        amount: Number = 0,
        *,
        action_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InventoryRecord:
        stage = parse_stage(stage)
        owner_id = _required_name(owner_id, "owner_id")
        item_ref = _required_name(item_ref, "item_ref")
        qty = _positive_quantity(quantity)
        amt = _non_negative_amount(amount)

        async with self._unit_of_work(record_key(stage, owner_id, item_ref)):
            now = self._clock()
            record = await self.repository.find(stage, owner_id, item_ref)
            if record is None:
                record = InventoryRecord(
                    stage=stage,
                    owner_id=owner_id,
                    item_ref=item_ref,
                    created_at=now,
                    updated_at=now,
                )
                action = HistoryAction.CREATED
            else:
                action = HistoryAction.ADDED
            record.apply(action, qty, amt, at=now, action_by=action_by, notes=notes)
            record.status = RecordStatus.ACTIVE
            await self._save(record)

        logger.info(
            "[ledger] %s %s %s/%s +%s -> %s",
            stage.value, action.value, owner_id, item_ref, qty, record.quantity,
            extra={"record_id": str(record.id), "operation": "add"},
        )
        return record

    @_logged("remove")
    async def remove(
        self,
        stage: Union[Stage, str],
        owner_id: str,
        item_ref: str,
        quantity: Number,
        *,
        action_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InventoryRecord:
        stage = parse_stage(stage)
        owner_id = _required_name(owner_id, "owner_id")
        item_ref = _required_name(item_ref, "item_ref")
        qty = _positive_quantity(quantity)

        async with self._unit_of_work(record_key(stage, owner_id, item_ref)):
            record = await self._require_live(stage, owner_id, item_ref)
            _ensure_available(record, qty)
            record.apply(
                HistoryAction.REMOVED,
                qty,
                _amount_out(record, qty),
                at=self._clock(),
                action_by=action_by,
                notes=notes,
            )
            if record.quantity == 0:
                record.status = RecordStatus.COMPLETED
            await self._save(record)

        logger.info(
            "[ledger] %s removed %s/%s -%s -> %s",
            stage.value, owner_id, item_ref, qty, record.quantity,
            extra={"record_id": str(record.id), "operation": "remove"},
        )
        return record

    @_logged("return")
    async def return_to_next_stage(
        self,
        stage: Union[Stage, str],
        source_owner_id: str,
        source_item_ref: str,
        dest_owner_id: str,
        new_item_name: str,
        quantity: Number,
        *,
        action_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransferResult:
        """
        Move `quantity` out of the source record at `stage` into the
        (dest_owner_id, new_item_name) record of the following stage.

        The destination is created on first use and remembers the source
        record id; later returns into it just increment it.
        """
        stage = parse_stage(stage)
        dest_stage = next_stage(stage)
        source_owner_id = _required_name(source_owner_id, "source_owner_id")
        source_item_ref = _required_name(source_item_ref, "source_item_ref")
        dest_owner_id = _required_name(dest_owner_id, "dest_owner_id")
        new_item_name = _required_name(new_item_name, "new_item_name")
        qty = _positive_quantity(quantity)

        src_key = record_key(stage, source_owner_id, source_item_ref)
        dst_key = record_key(dest_stage, dest_owner_id, new_item_name)

        async with self._unit_of_work(src_key, dst_key):
            source = await self._require_live(stage, source_owner_id, source_item_ref)
            _ensure_available(source, qty)

            now = self._clock()
            destination = await self.repository.find(dest_stage, dest_owner_id, new_item_name)
            if destination is None:
                destination = InventoryRecord(
                    stage=dest_stage,
                    owner_id=dest_owner_id,
                    item_ref=new_item_name,
                    source_record_id=source.id,
                    created_at=now,
                    updated_at=now,
                )
                dest_action = HistoryAction.CREATED
            else:
                dest_action = HistoryAction.ADDED

            amount = _amount_out(source, qty)
            source.apply(
                HistoryAction.RETURNED,
                qty,
                amount,
                at=now,
                action_by=action_by,
                notes=notes,
                counterpart_record_id=destination.id,
            )
            if source.quantity == 0:
                source.status = RecordStatus.COMPLETED

            destination.apply(
                dest_action,
                qty,
                amount,
                at=now,
                action_by=action_by,
                notes=notes,
                counterpart_record_id=source.id,
            )
            destination.status = RecordStatus.ACTIVE

            await self._save(source, destination)

        logger.info(
            "[ledger] returned %s from %s %s/%s (%s left) into %s %s/%s (%s)",
            qty,
            stage.value, source_owner_id, source_item_ref, source.quantity,
            dest_stage.value, dest_owner_id, new_item_name, destination.quantity,
            extra={
                "operation": "return",
                "source_record_id": str(source.id),
                "destination_record_id": str(destination.id),
            },
        )
        return TransferResult(source=source, destination=destination)

    @_logged("delete")
    async def delete_inventory_item(
        self,
        record_id: UUID,
        quantity: Optional[Number] = None,
        *,
        return_to_source: bool = False,
        action_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DeleteResult:
        """
        Take `quantity` (default: everything left) out of a record.

        Taking everything cancels the record. With return_to_source the
        withdrawn quantity goes back to the record this one was returned from.
        """
        qty_requested = None if quantity is None else _positive_quantity(quantity)

        # unlocked read, only to learn which keys to lock; row locks come after the key locks
        record = await self._require_live_by_id(record_id, lock=False)
        keys = [record.natural_key]
        if return_to_source:
            if record.source_record_id is None:
                raise ValidationError(
                    "Record has no originating stage record to return to",
                    {"record_id": str(record_id)},
                )
            source = await self._require_live_by_id(record.source_record_id, lock=False)
            keys.append(source.natural_key)

        async with self._unit_of_work(*keys):
            record = await self._require_live_by_id(record_id)
            qty = record.quantity if qty_requested is None else qty_requested
            _ensure_available(record, qty)

            source = None
            if return_to_source:
                source = await self._require_live_by_id(record.source_record_id)
                # other feeders may have topped this record up; only send back what came from here
                returnable = _returnable_to(record, source.id)
                if qty > returnable:
                    raise InsufficientQuantityError(
                        available=returnable,
                        requested=qty,
                        message=(
                            f"Only {returnable} of {record.item_ref} came from {source.stage.value} "
                            f"{source.item_ref}; cannot return {qty} there"
                        ),
                    )

            now = self._clock()
            full = qty == record.quantity
            amount = _amount_out(record, qty)
            record.apply(
                HistoryAction.REMOVED,
                qty,
                amount,
                at=now,
                action_by=action_by,
                notes=notes or ("Deleted from inventory" if full else None),
                counterpart_record_id=source.id if source is not None else None,
            )
            if full:
                record.status = RecordStatus.CANCELLED

            touched = [record]
            if source is not None and qty > 0:
                source.apply(
                    HistoryAction.ADDED,
                    qty,
                    amount,
                    at=now,
                    action_by=action_by,
                    notes=notes or f"Returned from {record.stage.value} {record.item_ref}",
                    counterpart_record_id=record.id,
                )
                source.status = RecordStatus.ACTIVE
                touched.append(source)

            await self._save(*touched)

        logger.info(
            "[ledger] %s %s/%s %s %s -> %s%s",
            record.stage.value, record.owner_id, record.item_ref,
            "deleted" if full else "reduced by", qty, record.quantity,
            f" (returned to {source.stage.value} {source.item_ref})" if source is not None else "",
            extra={"record_id": str(record.id), "operation": "delete"},
        )
        return DeleteResult(record=record, returned_to=source)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def get_record(self, record_id: UUID) -> InventoryRecord:
        record = await self.repository.peek(record_id)
        if record is None:
            raise NotFoundError("Inventory record not found", {"record_id": str(record_id)})
        return record

    async def list_records(self, flt: Optional[RecordFilter] = None) -> List[InventoryRecord]:
        return await self.repository.list(flt or RecordFilter())

    async def count_records(self, flt: Optional[RecordFilter] = None) -> int:
        return await self.repository.count(flt or RecordFilter())

    async def history(self, record_id: UUID) -> List[HistoryEntry]:
        record = await self.get_record(record_id)
        return list(record.history)

    async def recent_activity(self, stage: Union[Stage, str, None] = None, limit: int = 50) -> List[HistoryEntry]:
        parsed = parse_stage(stage) if stage is not None else None
        return await self.repository.recent_history(parsed, limit)

    async def stage_summary(self, stage: Union[Stage, str]) -> StageSummary:
        stage = parse_stage(stage)
        records = await self.repository.list(RecordFilter(stage=stage))
        return StageSummary(
            stage=stage,
            record_count=len(records),
            active_count=sum(1 for r in records if r.status == RecordStatus.ACTIVE),
            total_quantity=sum((r.quantity for r in records), Decimal("0")),
            total_amount=sum((r.total_amount for r in records), Decimal("0")),
        )

    async def stock_levels(self) -> List[StageSummary]:
        return [await self.stage_summary(info.stage) for info in WORKFLOW]
