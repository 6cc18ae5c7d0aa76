import math
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.converters import history_to_dict, record_to_dict, summary_to_dict
from db.database import get_async_session
from db.inventory.repository import SqlAlchemyInventoryRepository
from db.users import User
from schemas.ledger import (
    InventoryDeleteRequest,
    LedgerAddRequest,
    LedgerRemoveRequest,
    LedgerReturnRequest,
)
from services import ledger_locks
from services.ledger_service import LedgerService
from services.records import RecordFilter, RecordStatus
from services.repository import InventoryRepository
from services.stages import WORKFLOW, has_next_stage, next_stage, parse_stage

router = APIRouter()


async def get_inventory_repository(
    db: AsyncSession = Depends(get_async_session),
) -> InventoryRepository:
    return SqlAlchemyInventoryRepository(db)


async def get_ledger_service(
    repository: InventoryRepository = Depends(get_inventory_repository),
) -> LedgerService:
    return LedgerService(repository, locks=ledger_locks)


def _ok(message: str, data, **extra) -> Dict:
    return {"success": True, "message": message, "data": data, **extra}


@router.get("/stages", response_model=Dict)
async def list_stages(user: User = Depends(current_active_user)):
    data = []
    for position, info in enumerate(WORKFLOW, start=1):
        data.append(
            {
                "position": position,
                "stage": info.stage.value,
                "name": info.name,
                "description": info.description,
                "next_stage": next_stage(info.stage).value if has_next_stage(info.stage) else None,
            }
        )
    return _ok("Workflow stages", data)


@router.get("/stages/{stage}/summary", response_model=Dict)
async def get_stage_summary(
    stage: str,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    summary = await ledger.stage_summary(stage)
    return _ok("Stage summary", summary_to_dict(summary))


@router.get("/stock-levels", response_model=Dict)
async def get_stock_levels(
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    levels = await ledger.stock_levels()
    return _ok("Stock levels", [summary_to_dict(s) for s in levels])


@router.post("/add", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def add_to_stage(
    payload: LedgerAddRequest,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    record = await ledger.add(
        payload.stage,
        payload.owner_id,
        payload.item_ref,
        payload.quantity,
        payload.amount,
        action_by=str(user.id),
        notes=payload.notes or f"Added {payload.quantity} to {payload.stage}",
    )
    return _ok(f"Added {payload.quantity} of {record.item_ref}", record_to_dict(record))


@router.post("/remove", response_model=Dict)
async def remove_from_stage(
    payload: LedgerRemoveRequest,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    record = await ledger.remove(
        payload.stage,
        payload.owner_id,
        payload.item_ref,
        payload.quantity,
        action_by=str(user.id),
        notes=payload.notes or f"Removed {payload.quantity} from {payload.stage}",
    )
    return _ok(f"Removed {payload.quantity} of {record.item_ref}", record_to_dict(record))


@router.post("/return", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def return_to_next_stage(
    payload: LedgerReturnRequest,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Return quantity from a stage record into the next stage.

    - Decrements the source record and creates/increments the destination.
    - Both sides are committed together or not at all.
    """
    result = await ledger.return_to_next_stage(
        payload.stage,
        payload.source_owner_id,
        payload.source_item_ref,
        payload.dest_owner_id,
        payload.new_item_name,
        payload.quantity,
        action_by=str(user.id),
        notes=payload.notes or f'Returned {payload.quantity} as "{payload.new_item_name}"',
    )
    return _ok(
        f"Returned {payload.quantity} as {result.destination.item_ref}",
        {
            "source": record_to_dict(result.source),
            "destination": record_to_dict(result.destination),
        },
    )


@router.delete("/inventory/{record_id}", response_model=Dict)
async def delete_inventory_item(
    record_id: UUID,
    payload: Optional[InventoryDeleteRequest] = Body(None),
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    payload = payload or InventoryDeleteRequest()
    result = await ledger.delete_inventory_item(
        record_id,
        payload.quantity,
        return_to_source=payload.return_to_source,
        action_by=str(user.id),
        notes=payload.notes,
    )
    if result.record.status == RecordStatus.CANCELLED:
        message = "Inventory item deleted"
    else:
        message = f"Inventory item reduced to {result.record.quantity}"
    return _ok(
        message,
        {
            "record": record_to_dict(result.record),
            "returned_to": record_to_dict(result.returned_to) if result.returned_to else None,
        },
    )


@router.get("/records", response_model=Dict)
async def list_records(
    stage: Optional[str] = None,
    owner_id: Optional[str] = None,
    item_ref: Optional[str] = None,
    record_status: Optional[str] = Query(None, alias="status", pattern="^(active|completed|cancelled)$"),
    include_cancelled: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    base = RecordFilter(
        stage=parse_stage(stage) if stage else None,
        owner_id=owner_id,
        item_ref=item_ref,
        status=RecordStatus(record_status) if record_status else None,
        include_cancelled=include_cancelled,
    )
    total = await ledger.count_records(base)
    records = await ledger.list_records(
        RecordFilter(
            stage=base.stage,
            owner_id=base.owner_id,
            item_ref=base.item_ref,
            status=base.status,
            include_cancelled=base.include_cancelled,
            offset=(page - 1) * limit,
            limit=limit,
        )
    )
    return _ok(
        "Inventory records",
        [record_to_dict(r) for r in records],
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    )


@router.get("/records/{record_id}", response_model=Dict)
async def get_record(
    record_id: UUID,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    record = await ledger.get_record(record_id)
    return _ok("Inventory record", record_to_dict(record, include_history=True))


@router.get("/records/{record_id}/history", response_model=Dict)
async def get_record_history(
    record_id: UUID,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    entries = await ledger.history(record_id)
    return _ok("Record history", [history_to_dict(h) for h in entries])


@router.get("/activity", response_model=Dict)
async def recent_activity(
    stage: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    entries = await ledger.recent_activity(stage, limit)
    return _ok("Recent activity", [history_to_dict(h) for h in entries])
