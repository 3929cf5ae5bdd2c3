from .base import StockLedger, StockChange, compute_stock_change
from .memory import MemoryStockLedger
from .sql import SqlStockLedger

__all__ = [
    "StockLedger",
    "StockChange",
    "compute_stock_change",
    "MemoryStockLedger",
    "SqlStockLedger",
]
