"""
A backend is one complete set of stores: ledger, transaction records and
users. The router hands exactly one backend to each request.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from shopledger.core.enums import StockAdjustmentPolicy, StoreMode
from shopledger.services.ledger import SqlStockLedger, StockLedger
from shopledger.services.reconciler import ConsistencyReconciler
from shopledger.services.transactions import SqlTransactionStore, TransactionRecordStore
from shopledger.services.users import SqlUserStore, UserStore


@dataclass
class Backend:
    mode: StoreMode
    ledger: StockLedger
    transactions: TransactionRecordStore
    users: UserStore

    def reconciler(self, policy: StockAdjustmentPolicy = StockAdjustmentPolicy.BEST_EFFORT) -> ConsistencyReconciler:
        return ConsistencyReconciler(self.transactions, self.ledger, policy)


def build_sql_backend(session_factory: async_sessionmaker, id_attempts: int = 3) -> Backend:
    return Backend(
        mode=StoreMode.PRIMARY,
        ledger=SqlStockLedger(session_factory),
        transactions=SqlTransactionStore(session_factory, id_attempts=id_attempts),
        users=SqlUserStore(session_factory),
    )
