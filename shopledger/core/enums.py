"""
Shared enums and constants used across the application.
"""

from enum import Enum


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"

    @property
    def prefix(self) -> str:
        # Leading segment of the human readable transaction id
        return "PUR" if self is TransactionType.PURCHASE else "SAL"

    @property
    def direction(self) -> "StockDirection":
        """Direction a forward application of this transaction moves stock in."""
        if self is TransactionType.PURCHASE:
            return StockDirection.INCREASE
        return StockDirection.DECREASE


class StockDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"

    @property
    def opposite(self) -> "StockDirection":
        if self is StockDirection.INCREASE:
            return StockDirection.DECREASE
        return StockDirection.INCREASE


class StoreMode(str, Enum):
    """Which backend the store router sends requests to"""
    PRIMARY = "primary"
    FALLBACK = "fallback"


class StockAdjustmentPolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    STRICT = "strict"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AnalyticsPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ExportFormat(str, Enum):
    EXCEL = "excel"
    CSV = "csv"


class ExportType(str, Enum):
    TRANSACTIONS = "transactions"
    INVENTORY = "inventory"
    ANALYTICS = "analytics"


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


DEFAULT_CATEGORY = "General"
DEFAULT_MIN_STOCK_LEVEL = 5.0

TRANSACTION_SORT_FIELDS = ("date", "totalAmount", "createdAt", "transactionId")
INVENTORY_SORT_FIELDS = ("itemName", "category", "currentStock", "unitPrice", "totalValue", "lastUpdated")
