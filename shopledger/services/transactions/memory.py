"""
In-memory transaction record store used by the fallback store.
"""

import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from shopledger.core.enums import SortOrder, TransactionType
from shopledger.core.exceptions import DuplicateKeyError, NotFoundError
from shopledger.core.utils import utcnow
from shopledger.schemas.transaction import TransactionQuery, TransactionRead
from shopledger.services.transactions.base import TransactionRecordStore, sort_attribute


def matches_search(record: TransactionRead, needle: str) -> bool:
    needle = needle.lower()
    haystack = [record.transaction_id, record.notes or ""]
    haystack.extend(item.item_name for item in record.items)
    if record.supplier and record.supplier.name:
        haystack.append(record.supplier.name)
    if record.customer and record.customer.name:
        haystack.append(record.customer.name)
    return any(needle in value.lower() for value in haystack)


def in_window(record: TransactionRead, start_date: Optional[datetime], end_date: Optional[datetime]) -> bool:
    if start_date and record.date < start_date:
        return False
    if end_date and record.date > end_date:
        return False
    return True


class MemoryTransactionStore(TransactionRecordStore):
    def __init__(self, id_attempts: int = 3):
        super().__init__(id_attempts)
        self._records: Dict[int, TransactionRead] = {}
        self._ids = itertools.count(1)

    def clear(self) -> None:
        self._records.clear()
        self._ids = itertools.count(1)

    async def _insert(self, record: Dict[str, Any]) -> TransactionRead:
        if any(r.transaction_id == record["transaction_id"] for r in self._records.values()):
            raise DuplicateKeyError(f"Transaction id {record['transaction_id']} already exists")
        now = utcnow()
        stored = TransactionRead(id=next(self._ids), created_at=now, updated_at=now, **record)
        self._records[stored.id] = stored
        return stored

    async def _replace(self, record_id: int, record: Dict[str, Any]) -> TransactionRead:
        existing = await self.find_by_id(record_id)
        stored = TransactionRead(
            id=existing.id,
            transaction_id=existing.transaction_id,
            created_at=existing.created_at,
            updated_at=utcnow(),
            **record,
        )
        self._records[record_id] = stored
        return stored

    async def delete(self, record_id: int) -> TransactionRead:
        record = await self.find_by_id(record_id)
        del self._records[record_id]
        return record

    async def find_by_id(self, record_id: int) -> TransactionRead:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"Transaction {record_id} not found")
        return record

    async def find_many(self, query: TransactionQuery) -> Tuple[List[TransactionRead], int]:
        matched = [
            r for r in self._records.values()
            if (query.type is None or r.type == query.type)
            and in_window(r, query.start_date, query.end_date)
            and (not query.search or matches_search(r, query.search))
        ]
        attribute = sort_attribute(query.sort_by)
        matched.sort(key=lambda r: (getattr(r, attribute), r.id),
                     reverse=SortOrder(query.sort_order) is SortOrder.DESC)
        start = (query.page - 1) * query.limit
        return matched[start:start + query.limit], len(matched)

    async def list_all(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                       tx_type: Optional[TransactionType] = None) -> List[TransactionRead]:
        records = [
            r for r in self._records.values()
            if (tx_type is None or r.type == tx_type) and in_window(r, start_date, end_date)
        ]
        return sorted(records, key=lambda r: (r.date, r.created_at, r.id))
