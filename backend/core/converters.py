from decimal import Decimal
from typing import Dict, Optional

from services.ledger_service import StageSummary
from services.records import HistoryEntry, InventoryRecord
from services.stages import stage_info


def _num(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def history_to_dict(entry: HistoryEntry) -> Dict:
    return {
        "id": str(entry.id),
        "record_id": str(entry.record_id),
        "action": entry.action.value,
        "quantity": _num(entry.quantity),
        "amount": _num(entry.amount),
        "previous_quantity": _num(entry.previous_quantity),
        "new_quantity": _num(entry.new_quantity),
        "action_date": entry.action_date.isoformat() if entry.action_date else None,
        "action_by": entry.action_by,
        "notes": entry.notes,
        "counterpart_record_id": str(entry.counterpart_record_id) if entry.counterpart_record_id else None,
    }


def record_to_dict(record: InventoryRecord, include_history: bool = False) -> Dict:
    out = {
        "id": str(record.id),
        "stage": record.stage.value,
        "owner_id": record.owner_id,
        "item_ref": record.item_ref,
        "quantity": _num(record.quantity),
        "total_amount": _num(record.total_amount),
        "unit_price": _num(record.unit_price),
        "status": record.status.value,
        "source_record_id": str(record.source_record_id) if record.source_record_id else None,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }
    if include_history:
        out["history"] = [history_to_dict(h) for h in record.history]
    return out


def summary_to_dict(summary: StageSummary) -> Dict:
    return {
        "stage": summary.stage.value,
        "name": stage_info(summary.stage).name,
        "record_count": summary.record_count,
        "active_count": summary.active_count,
        "total_quantity": _num(summary.total_quantity),
        "total_amount": _num(summary.total_amount),
    }
