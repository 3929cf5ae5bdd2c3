from .base import TransactionRecordStore, generate_transaction_id
from .memory import MemoryTransactionStore
from .sql import SqlTransactionStore

__all__ = [
    "TransactionRecordStore",
    "MemoryTransactionStore",
    "SqlTransactionStore",
    "generate_transaction_id",
]
