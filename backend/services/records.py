"""
Ledger domain objects.

- InventoryRecord: quantity of one (owner, item) pair held at one stage
- HistoryEntry: append-only audit row, one per mutating call on a record
- RecordFilter: query for listing records
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from services.stages import Stage


class RecordStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HistoryAction(str, Enum):
    CREATED = "created"
    ADDED = "added"
    REMOVED = "removed"
    RETURNED = "returned"

    @property
    def sign(self) -> int:
        return 1 if self in (HistoryAction.CREATED, HistoryAction.ADDED) else -1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    record_id: UUID
    action: HistoryAction
    quantity: Decimal
    previous_quantity: Decimal
    new_quantity: Decimal
    amount: Decimal = Decimal("0")
    action_date: datetime = field(default_factory=utcnow)
    action_by: Optional[str] = None
    notes: Optional[str] = None
    counterpart_record_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid.uuid4)


@dataclass
class InventoryRecord:
    stage: Stage
    owner_id: str
    item_ref: str
    quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    status: RecordStatus = RecordStatus.ACTIVE
    source_record_id: Optional[UUID] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    history: List[HistoryEntry] = field(default_factory=list)
    id: UUID = field(default_factory=uuid.uuid4)

    @property
    def natural_key(self) -> str:
        return record_key(self.stage, self.owner_id, self.item_ref)

    @property
    def is_live(self) -> bool:
        return self.status != RecordStatus.CANCELLED

    @property
    def unit_price(self) -> Optional[Decimal]:
        if self.quantity <= 0:
            return None
        return self.total_amount / self.quantity

    def apply(
        self,
        action: HistoryAction,
        quantity: Decimal,
        amount: Decimal,
        *,
        at: datetime,
        action_by: Optional[str] = None,
        notes: Optional[str] = None,
        counterpart_record_id: Optional[UUID] = None,
    ) -> HistoryEntry:
        """Move quantity/amount by `action`'s sign and append the matching history entry."""
        previous = self.quantity
        new = previous + action.sign * quantity
        if new < 0:
            # callers validate first; reaching this is a bug
            raise AssertionError(f"quantity would go negative on record {self.id}")
        self.quantity = new
        self.total_amount = max(Decimal("0"), self.total_amount + action.sign * amount)
        self.updated_at = at
        entry = HistoryEntry(
            record_id=self.id,
            action=action,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new,
            amount=amount,
            action_date=at,
            action_by=action_by,
            notes=notes,
            counterpart_record_id=counterpart_record_id,
        )
        self.history.append(entry)
        return entry

    def clone(self) -> "InventoryRecord":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class RecordFilter:
    stage: Optional[Stage] = None
    owner_id: Optional[str] = None
    item_ref: Optional[str] = None
    status: Optional[RecordStatus] = None
    include_cancelled: bool = False
    offset: int = 0
    limit: Optional[int] = None

    def matches(self, record: InventoryRecord) -> bool:
        if self.stage is not None and record.stage != self.stage:
            return False
        if self.owner_id is not None and record.owner_id != self.owner_id:
            return False
        if self.item_ref is not None and record.item_ref != self.item_ref:
            return False
        if self.status is not None:
            return record.status == self.status
        return self.include_cancelled or record.is_live


def record_key(stage: Stage, owner_id: str, item_ref: str) -> str:
    return f"{stage.value}:{owner_id}:{item_ref}"
