"""
Typed errors raised by the ledger.

All of them are recoverable at the API boundary and map to 4xx responses:

    LedgerError (base)
    +-- ValidationError            400  INVALID_REQUEST
    +-- NotFoundError              404  NOT_FOUND
    +-- InsufficientQuantityError  409  INSUFFICIENT_QUANTITY
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    code: str = "LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code}
        for key, value in self.details.items():
            out[key] = float(value) if isinstance(value, Decimal) else value
        return out


class ValidationError(LedgerError):
    code = "INVALID_REQUEST"


class NotFoundError(LedgerError):
    code = "NOT_FOUND"


class InsufficientQuantityError(LedgerError):
    code = "INSUFFICIENT_QUANTITY"

    def __init__(self, available: Decimal, requested: Decimal, message: Optional[str] = None):
        super().__init__(
            message or f"Not enough quantity. Available={available} requested={requested}",
            {"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested
