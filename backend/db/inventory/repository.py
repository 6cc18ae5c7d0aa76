from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from services.records import (
    HistoryAction,
    HistoryEntry,
    InventoryRecord,
    RecordFilter,
    RecordStatus,
)
from services.repository import InventoryRepository
from services.stages import Stage

from .history import InventoryHistoryModel
from .record import InventoryRecordModel


def _entry_to_domain(row: InventoryHistoryModel) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        record_id=row.record_id,
        action=HistoryAction(row.action),
        quantity=Decimal(row.quantity),
        amount=Decimal(row.amount or 0),
        previous_quantity=Decimal(row.previous_quantity),
        new_quantity=Decimal(row.new_quantity),
        action_date=row.action_date,
        action_by=row.action_by,
        notes=row.notes,
        counterpart_record_id=row.counterpart_record_id,
    )


def _record_to_domain(model: InventoryRecordModel) -> InventoryRecord:
    return InventoryRecord(
        id=model.id,
        stage=Stage(model.stage),
        owner_id=model.owner_id,
        item_ref=model.item_ref,
        quantity=Decimal(model.quantity or 0),
        total_amount=Decimal(model.total_amount or 0),
        status=RecordStatus(model.status),
        source_record_id=model.source_record_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        history=[_entry_to_domain(h) for h in model.history],
    )


def _conditions(flt: RecordFilter) -> list:
    out = []
    if flt.stage is not None:
        out.append(InventoryRecordModel.stage == flt.stage.value)
    if flt.owner_id is not None:
        out.append(InventoryRecordModel.owner_id == flt.owner_id)
    if flt.item_ref is not None:
        out.append(InventoryRecordModel.item_ref == flt.item_ref)
    if flt.status is not None:
        out.append(InventoryRecordModel.status == flt.status.value)
    elif not flt.include_cancelled:
        out.append(InventoryRecordModel.status != RecordStatus.CANCELLED.value)
    return out


class SqlAlchemyInventoryRepository(InventoryRepository):
    """
    InventoryRepository over an AsyncSession.

    get()/find() lock the row (SELECT ... FOR UPDATE) so concurrent writers in
    other processes queue behind the current transaction. peek() does not.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, stmt, lock: bool = True) -> Optional[InventoryRecordModel]:
        stmt = stmt.options(selectinload(InventoryRecordModel.history)).execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update(of=InventoryRecordModel)
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def get(self, record_id: UUID) -> Optional[InventoryRecord]:
        model = await self._load(select(InventoryRecordModel).where(InventoryRecordModel.id == record_id))
        return _record_to_domain(model) if model else None

    async def peek(self, record_id: UUID) -> Optional[InventoryRecord]:
        model = await self._load(
            select(InventoryRecordModel).where(InventoryRecordModel.id == record_id), lock=False
        )
        return _record_to_domain(model) if model else None

    async def find(self, stage: Stage, owner_id: str, item_ref: str) -> Optional[InventoryRecord]:
        model = await self._load(
            select(InventoryRecordModel).where(
                InventoryRecordModel.stage == stage.value,
                InventoryRecordModel.owner_id == owner_id,
                InventoryRecordModel.item_ref == item_ref,
                InventoryRecordModel.status != RecordStatus.CANCELLED.value,
            )
        )
        return _record_to_domain(model) if model else None

    async def put(self, record: InventoryRecord) -> InventoryRecord:
        res = await self.session.execute(
            select(InventoryRecordModel)
            .where(InventoryRecordModel.id == record.id)
            .options(selectinload(InventoryRecordModel.history))
        )
        model = res.scalar_one_or_none()
        if model is None:
            model = InventoryRecordModel(id=record.id, created_at=record.created_at)
            model.history = []
            self.session.add(model)

        model.stage = record.stage.value
        model.owner_id = record.owner_id
        model.item_ref = record.item_ref
        model.quantity = record.quantity
        model.total_amount = record.total_amount
        model.status = record.status.value
        model.source_record_id = record.source_record_id
        model.updated_at = record.updated_at

        # history is append-only: only rows we have not stored yet
        stored = {h.id for h in model.history}
        for entry in record.history:
            if entry.id in stored:
                continue
            model.history.append(
                InventoryHistoryModel(
                    id=entry.id,
                    action=entry.action.value,
                    quantity=entry.quantity,
                    amount=entry.amount,
                    previous_quantity=entry.previous_quantity,
                    new_quantity=entry.new_quantity,
                    action_date=entry.action_date,
                    action_by=entry.action_by,
                    notes=entry.notes,
                    counterpart_record_id=entry.counterpart_record_id,
                )
            )

        await self.session.flush()
        return record

    async def list(self, flt: RecordFilter) -> List[InventoryRecord]:
        stmt = (
            select(InventoryRecordModel)
            .where(*_conditions(flt))
            .options(selectinload(InventoryRecordModel.history))
            .order_by(InventoryRecordModel.created_at.asc(), InventoryRecordModel.id.asc())
            .offset(flt.offset)
        )
        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)
        res = await self.session.execute(stmt)
        return [_record_to_domain(m) for m in res.scalars().all()]

    async def count(self, flt: RecordFilter) -> int:
        res = await self.session.execute(
            select(func.count()).select_from(InventoryRecordModel).where(*_conditions(flt))
        )
        return int(res.scalar_one() or 0)

    async def delete(self, record_id: UUID) -> bool:
        res = await self.session.execute(select(InventoryRecordModel).where(InventoryRecordModel.id == record_id))
        model = res.scalar_one_or_none()
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def recent_history(self, stage: Optional[Stage] = None, limit: int = 50) -> List[HistoryEntry]:
        stmt = select(InventoryHistoryModel)
        if stage is not None:
            stmt = stmt.join(
                InventoryRecordModel, InventoryHistoryModel.record_id == InventoryRecordModel.id
            ).where(InventoryRecordModel.stage == stage.value)
        stmt = stmt.order_by(InventoryHistoryModel.action_date.desc(), InventoryHistoryModel.seq.desc()).limit(limit)
        res = await self.session.execute(stmt)
        return [_entry_to_domain(row) for row in res.scalars().all()]

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
