"""
In-memory fallback store.

Mirrors the persistent backend (transactions, stock ledger, users) for as
long as the process lives. It is what the service runs on when no
DATABASE_URL is configured or the persistent store goes away mid-request.
Nothing here survives a restart and nothing is copied back to the
persistent store on recovery.

Stock behaves exactly as on the persistent ledger, including the
insufficient stock rejection; both ledgers run the same conformance tests.
"""

import logging
from typing import Optional

from shopledger.core.enums import StoreMode, UserRole
from shopledger.schemas.inventory import InventoryItemRead
from shopledger.services.backend import Backend
from shopledger.services.ledger import MemoryStockLedger
from shopledger.services.transactions import MemoryTransactionStore
from shopledger.services.users import MemoryUserStore

logger = logging.getLogger(__name__)


class FallbackStore:
    def __init__(
        self,
        admin_email: str,
        admin_password: str,
        admin_name: str = "Admin User",
        id_attempts: int = 3,
    ):
        self.ledger = MemoryStockLedger()
        self.transactions = MemoryTransactionStore(id_attempts=id_attempts)
        self.users = MemoryUserStore()
        self._admin = (admin_email, admin_password, admin_name)
        self._seed()

    def _seed(self) -> None:
        email, password, name = self._admin
        self.users.add_user(email, password, name, role=UserRole.ADMIN)
        logger.debug(f"Fallback store seeded with admin {email}")

    async def update_stock(self, item_name: str, quantity_change: float,
                           unit_price: Optional[float] = None) -> InventoryItemRead:
        """Signed stock change: positive for purchases, negative for sales."""
        return await self.ledger.update_stock(item_name, quantity_change, unit_price)

    def reset(self) -> None:
        """Drop all data and re-seed the admin identity."""
        self.ledger.clear()
        self.transactions.clear()
        self.users.clear()
        self._seed()
        logger.info("Fallback store reset")

    def as_backend(self) -> Backend:
        return Backend(
            mode=StoreMode.FALLBACK,
            ledger=self.ledger,
            transactions=self.transactions,
            users=self.users,
        )
