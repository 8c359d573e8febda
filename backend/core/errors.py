"""Failures raised by the catalog and the stock ledger.

The request layer maps these to response codes; nothing in here knows about HTTP.
"""
from typing import List, Optional


class InventoryError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(InventoryError):
    """A referenced product, location or stock level does not exist."""


class ConflictError(InventoryError):
    """A unique key (SKU, location name, product/location pair) is already taken."""


class InvalidStateError(InventoryError):
    """The mutation would break a ledger invariant (negative stock, same-location transfer)."""


class ValidationFailedError(InventoryError):
    def __init__(self, message: str = "Validation error", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])
