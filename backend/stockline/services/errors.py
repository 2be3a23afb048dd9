# Overview: Exception taxonomy shared by the stock, sales and sync services.


class StocklineError(Exception):
    """Base class for service-layer failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(StocklineError):
    """Referenced product, variant, sale or record does not exist."""


class RecordStoreError(StocklineError):
    """The record store rejected or could not complete a call (transport or constraint failure)."""


class InvalidStateError(StocklineError):
    """Operation not allowed in the entity's current state (e.g., voiding a voided sale)."""


class StockError(StocklineError):
    """A multi-item stock mutation failed and was compensated."""


class ConflictError(StocklineError):
    """A guarded write found the row in a different state than expected."""
