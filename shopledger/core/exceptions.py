from typing import Optional


class ShopLedgerError(Exception):
    """Base exception for all ledger errors."""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message)
        self.message = message or (self.__doc__ or "").strip()
        if code:
            self.code = code

class ValidationError(ShopLedgerError):
    """Raised when data validation fails."""
    status_code = 400
    code = "VALIDATION_ERROR"

class NotFoundError(ShopLedgerError):
    """Raised when a transaction or inventory item is not found."""
    status_code = 404
    code = "NOT_FOUND"

class DuplicateKeyError(ShopLedgerError):
    """Raised when a unique identifier is already taken."""
    status_code = 409
    code = "DUPLICATE_ERROR"

class InsufficientStockError(ShopLedgerError):
    """Raised when a decrease would take stock below zero."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_name: str, available: float, requested: float):
        self.item_name = item_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for '{item_name}'. Available: {available:g}, Requested: {requested:g}"
        )

class StockAdjustmentError(ShopLedgerError):
    """Raised when stock adjustments fail under the strict policy."""
    status_code = 409
    code = "STOCK_ADJUSTMENT_FAILED"

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result

class BackendUnavailableError(ShopLedgerError):
    """Raised when the persistent store cannot be reached."""
    status_code = 503
    code = "BACKEND_UNAVAILABLE"

class InternalError(ShopLedgerError):
    """Raised for unexpected failures."""
    status_code = 500
    code = "INTERNAL_ERROR"

class ReconnectionError(BackendUnavailableError):
    """Failed to reconnect to the database."""
    code = "RECONNECTION_FAILED"
