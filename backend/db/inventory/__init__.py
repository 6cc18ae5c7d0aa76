"""
Stage ledger tables.

Models:
- InventoryRecordModel (quantity per stage/owner/item)
- InventoryHistoryModel (append-only rows, one per mutation of a record)
"""

from .history import InventoryHistoryModel
from .record import InventoryRecordModel

__all__ = ["InventoryRecordModel", "InventoryHistoryModel"]
