from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


# Quantity/amount rules (> 0, >= 0, known stage) live in the ledger service so
# they come back as 400 INVALID_REQUEST like every other ledger rejection.


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class LedgerAddRequest(BaseModel):
    stage: str
    owner_id: str
    item_ref: str
    quantity: Decimal
    amount: Decimal = Decimal("0")
    notes: Optional[str] = None

    @field_validator("stage", "owner_id", "item_ref")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class LedgerRemoveRequest(BaseModel):
    stage: str
    owner_id: str
    item_ref: str
    quantity: Decimal
    notes: Optional[str] = None

    @field_validator("stage", "owner_id", "item_ref")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class LedgerReturnRequest(BaseModel):
    stage: str
    source_owner_id: str
    source_item_ref: str
    dest_owner_id: str
    new_item_name: str
    quantity: Decimal
    notes: Optional[str] = None

    @field_validator("stage", "source_owner_id", "source_item_ref", "dest_owner_id", "new_item_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class InventoryDeleteRequest(BaseModel):
    # None = everything left on the record
    quantity: Optional[Decimal] = None
    return_to_source: bool = False
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)
