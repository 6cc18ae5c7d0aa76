"""Persistence contract used by the ledger, plus a dict-backed implementation."""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from uuid import UUID

from services.records import HistoryEntry, InventoryRecord, RecordFilter
from services.stages import Stage


class InventoryRepository(ABC):
    """
    Unit-of-work style store for InventoryRecords.

    Writes made through put()/delete() are staged until commit(); rollback()
    discards everything staged since the last commit.
    """

    @abstractmethod
    async def get(self, record_id: UUID) -> Optional[InventoryRecord]:
        """Return the record with this id (any status), or None. Locks it until commit/rollback."""

    @abstractmethod
    async def peek(self, record_id: UUID) -> Optional[InventoryRecord]:
        """Like get(), but takes no lock. For reads and for deciding what to lock."""

    @abstractmethod
    async def find(self, stage: Stage, owner_id: str, item_ref: str) -> Optional[InventoryRecord]:
        """Return the live (non-cancelled) record for this key, or None. Locks it like get()."""

    @abstractmethod
    async def put(self, record: InventoryRecord) -> InventoryRecord:
        """Insert or replace a record together with its history."""

    @abstractmethod
    async def list(self, flt: RecordFilter) -> List[InventoryRecord]:
        """Records matching `flt`, oldest first."""

    @abstractmethod
    async def count(self, flt: RecordFilter) -> int:
        """Number of records matching `flt`, ignoring offset/limit."""

    @abstractmethod
    async def delete(self, record_id: UUID) -> bool:
        """Hard-delete a record and its history. True if something was removed."""

    @abstractmethod
    async def recent_history(self, stage: Optional[Stage] = None, limit: int = 50) -> List[HistoryEntry]:
        """History entries across records, newest first."""

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


_DELETED = object()


class InMemoryStore:
    """Committed state shared by every InMemoryInventoryRepository built on it."""

    def __init__(self) -> None:
        self.records: Dict[UUID, InventoryRecord] = {}
        # insertion order of history entries, like the identity column in SQL
        self.entry_seq: Dict[UUID, int] = {}
        self.sequence = itertools.count(1)


class InMemoryInventoryRepository(InventoryRepository):
    """
    Dict-backed repository, one per unit of work (like a DB session).

    Stores copies, so callers never alias committed state. Repositories that
    share an InMemoryStore see each other's work only after commit().
    """

    def __init__(self, store: Optional[InMemoryStore] = None) -> None:
        self.store = store if store is not None else InMemoryStore()
        self._staged: Dict[UUID, object] = {}
        self._staged_seq: Dict[UUID, int] = {}

    def _current(self) -> Dict[UUID, InventoryRecord]:
        view = dict(self.store.records)
        for record_id, value in self._staged.items():
            if value is _DELETED:
                view.pop(record_id, None)
            else:
                view[record_id] = value  # type: ignore[assignment]
        return view

    async def get(self, record_id: UUID) -> Optional[InventoryRecord]:
        record = self._current().get(record_id)
        return record.clone() if record else None

    async def peek(self, record_id: UUID) -> Optional[InventoryRecord]:
        record = self._current().get(record_id)
        return record.clone() if record else None

    async def find(self, stage: Stage, owner_id: str, item_ref: str) -> Optional[InventoryRecord]:
        for record in self._current().values():
            if (
                record.stage == stage
                and record.owner_id == owner_id
                and record.item_ref == item_ref
                and record.is_live
            ):
                return record.clone()
        return None

    async def put(self, record: InventoryRecord) -> InventoryRecord:
        for entry in record.history:
            if entry.id not in self.store.entry_seq and entry.id not in self._staged_seq:
                self._staged_seq[entry.id] = next(self.store.sequence)
        self._staged[record.id] = record.clone()
        return record

    async def list(self, flt: RecordFilter) -> List[InventoryRecord]:
        rows = [r for r in self._current().values() if flt.matches(r)]
        rows.sort(key=lambda r: r.created_at)
        end = None if flt.limit is None else flt.offset + flt.limit
        return [r.clone() for r in rows[flt.offset:end]]

    async def count(self, flt: RecordFilter) -> int:
        return sum(1 for r in self._current().values() if flt.matches(r))

    async def delete(self, record_id: UUID) -> bool:
        if record_id not in self._current():
            return False
        self._staged[record_id] = _DELETED
        return True

    async def recent_history(self, stage: Optional[Stage] = None, limit: int = 50) -> List[HistoryEntry]:
        entries: List[HistoryEntry] = []
        for record in self._current().values():
            if stage is None or record.stage == stage:
                entries.extend(record.history)
        seq = {**self.store.entry_seq, **self._staged_seq}
        entries.sort(key=lambda e: (e.action_date, seq.get(e.id, 0)), reverse=True)
        return entries[:limit]

    async def commit(self) -> None:
        for record_id, value in self._staged.items():
            if value is _DELETED:
                self.store.records.pop(record_id, None)
            else:
                self.store.records[record_id] = value  # type: ignore[assignment]
        self.store.entry_seq.update(self._staged_seq)
        self._staged.clear()
        self._staged_seq.clear()

    async def rollback(self) -> None:
        self._staged.clear()
        self._staged_seq.clear()
