"""
Error taxonomy shared by the ledger, catalog and API layers.
Each error knows the HTTP status it maps to and the JSON payload to return.
"""
from typing import Any, Dict


class LedgerError(Exception):
    """Base class for expected failures surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(LedgerError):
    """Missing or malformed required input."""

    status_code = 400


class NotFoundError(LedgerError):
    """Referenced bidder, item, auction or bid does not exist."""

    status_code = 404


class InsufficientInventoryError(LedgerError):
    """Requested quantity exceeds what is left of the item."""

    status_code = 400

    def __init__(self, available: int):
        super().__init__(f"Only {available} available in inventory", available=available)
        self.available = available


class DatastoreError(LedgerError):
    """Underlying database failure. The driver message is logged, never returned."""

    status_code = 500
