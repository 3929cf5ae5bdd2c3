"""
Transaction record store contract.

The store is the source of truth for what happened. It validates and
normalises every record it writes (see validation.py), assigns the
human-readable transaction id and never touches stock; stock effects are
the reconciler's job.
"""

import logging
import secrets
import string
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from shopledger.core.enums import TransactionType
from shopledger.core.exceptions import DuplicateKeyError
from shopledger.core.utils import utcnow
from shopledger.schemas.transaction import TransactionQuery, TransactionRead
from shopledger.services.transactions.validation import merge_update, normalize_transaction

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_uppercase + string.digits
ID_RANDOM_LENGTH = 6

# camelCase sort key -> attribute name
SORT_COLUMNS = {
    "date": "date",
    "totalAmount": "total_amount",
    "createdAt": "created_at",
    "transactionId": "transaction_id",
}
DEFAULT_SORT = "date"


def generate_transaction_id(tx_type: TransactionType, now: Optional[datetime] = None) -> str:
    """PUR-20240115-K3J9QZ / SAL-20240115-0ABC12"""
    now = now or utcnow()
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_RANDOM_LENGTH))
    return f"{TransactionType(tx_type).prefix}-{now:%Y%m%d}-{suffix}"


def sort_attribute(sort_by: str) -> str:
    return SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT])


def record_fields(record: TransactionRead) -> Dict[str, Any]:
    """Stored record as the plain dict the validation helpers work on."""
    return {
        "type": record.type,
        "date": record.date,
        "items": [item.model_dump() for item in record.items],
        "total_amount": record.total_amount,
        "notes": record.notes,
        "supplier": record.supplier.model_dump() if record.supplier else None,
        "customer": record.customer.model_dump() if record.customer else None,
    }


class TransactionRecordStore(ABC):
    """Shared create/update flow; backends supply the storage primitives."""

    def __init__(self, id_attempts: int = 3):
        self.id_attempts = max(1, id_attempts)

    async def create(self, data: Dict[str, Any]) -> TransactionRead:
        """
        Validate, normalise and store a new transaction.

        A fresh transaction id is drawn for each attempt; a collision with an
        existing id retries up to `id_attempts` times before giving up.

        Raises:
            ValidationError: If the record breaks a rule
            DuplicateKeyError: If every generated id collided
        """
        record = normalize_transaction(data)
        for attempt in range(1, self.id_attempts + 1):
            transaction_id = generate_transaction_id(record["type"])
            try:
                return await self._insert({**record, "transaction_id": transaction_id})
            except DuplicateKeyError:
                logger.warning(
                    f"Transaction id collision on {transaction_id} (attempt {attempt}/{self.id_attempts})"
                )
        raise DuplicateKeyError(f"Could not generate a unique transaction id after {self.id_attempts} attempts")

    async def update(self, record_id: int, partial: Dict[str, Any]) -> TransactionRead:
        """Merge `partial` over the stored record, re-validate and store it."""
        existing = await self.find_by_id(record_id)
        record = normalize_transaction(merge_update(record_fields(existing), partial))
        return await self._replace(record_id, record)

    @abstractmethod
    async def _insert(self, record: Dict[str, Any]) -> TransactionRead:
        """Store a normalised record. Raises DuplicateKeyError on a taken transaction id."""
        pass

    @abstractmethod
    async def _replace(self, record_id: int, record: Dict[str, Any]) -> TransactionRead:
        pass

    @abstractmethod
    async def delete(self, record_id: int) -> TransactionRead:
        """Remove the record and return what was removed."""
        pass

    @abstractmethod
    async def find_by_id(self, record_id: int) -> TransactionRead:
        """Raises NotFoundError if there is no such record."""
        pass

    @abstractmethod
    async def find_many(self, query: TransactionQuery) -> Tuple[List[TransactionRead], int]:
        """One page of matching records plus the total match count."""
        pass

    @abstractmethod
    async def list_all(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        tx_type: Optional[TransactionType] = None,
    ) -> List[TransactionRead]:
        """Every record in the window, oldest first."""
        pass
