"""
Transaction record store backed by the persistent store.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopledger.core.enums import SortOrder, TransactionType
from shopledger.core.exceptions import NotFoundError
from shopledger.core.utils import utcnow
from shopledger.database import session_scope
from shopledger.models.transaction import Transaction
from shopledger.schemas.transaction import TransactionQuery, TransactionRead
from shopledger.services.transactions.base import TransactionRecordStore, sort_attribute

logger = logging.getLogger(__name__)


def to_read(row: Transaction) -> TransactionRead:
    return TransactionRead(
        id=row.id,
        transaction_id=row.transaction_id,
        type=row.type,
        date=row.date,
        items=row.items,
        total_amount=row.total_amount,
        notes=row.notes,
        supplier=row.supplier,
        customer=row.customer,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def row_values(record: Dict[str, Any]) -> Dict[str, Any]:
    """Column values for a normalised record."""
    return {
        "type": TransactionType(record["type"]).value,
        "date": record["date"],
        "items": record["items"],
        "total_amount": record["total_amount"],
        "item_names": "\n".join(item["item_name"] for item in record["items"]),
        "notes": record["notes"],
        "supplier": record["supplier"],
        "customer": record["customer"],
    }


class SqlTransactionStore(TransactionRecordStore):
    def __init__(self, session_factory: async_sessionmaker, id_attempts: int = 3):
        super().__init__(id_attempts)
        self.session_factory = session_factory

    async def _row(self, session: AsyncSession, record_id: int) -> Transaction:
        row = await session.get(Transaction, record_id)
        if row is None:
            raise NotFoundError(f"Transaction {record_id} not found")
        return row

    async def _insert(self, record: Dict[str, Any]) -> TransactionRead:
        async with session_scope(self.session_factory) as session:
            row = Transaction(transaction_id=record["transaction_id"], **row_values(record))
            session.add(row)
            await session.commit()
            logger.info(f"Stored transaction {row.transaction_id} ({row.type}, {row.total_amount})")
            return to_read(row)

    async def _replace(self, record_id: int, record: Dict[str, Any]) -> TransactionRead:
        async with session_scope(self.session_factory) as session:
            row = await self._row(session, record_id)
            for field, value in row_values(record).items():
                setattr(row, field, value)
            row.updated_at = utcnow()
            await session.commit()
            return to_read(row)

    async def delete(self, record_id: int) -> TransactionRead:
        async with session_scope(self.session_factory) as session:
            row = await self._row(session, record_id)
            record = to_read(row)
            await session.delete(row)
            await session.commit()
            logger.info(f"Deleted transaction {record.transaction_id}")
            return record

    async def find_by_id(self, record_id: int) -> TransactionRead:
        async with session_scope(self.session_factory) as session:
            return to_read(await self._row(session, record_id))

    def _filtered(self, tx_type: Optional[TransactionType], start_date: Optional[datetime],
                  end_date: Optional[datetime], search: Optional[str] = None):
        stmt = select(Transaction)
        if tx_type is not None:
            stmt = stmt.where(Transaction.type == TransactionType(tx_type).value)
        if start_date is not None:
            stmt = stmt.where(Transaction.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Transaction.date <= end_date)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(
                Transaction.transaction_id.ilike(pattern),
                Transaction.item_names.ilike(pattern),
                Transaction.supplier["name"].as_string().ilike(pattern),
                Transaction.customer["name"].as_string().ilike(pattern),
                Transaction.notes.ilike(pattern),
            ))
        return stmt

    async def find_many(self, query: TransactionQuery) -> Tuple[List[TransactionRead], int]:
        stmt = self._filtered(query.type, query.start_date, query.end_date, query.search)
        column = getattr(Transaction, sort_attribute(query.sort_by))
        descending = SortOrder(query.sort_order) is SortOrder.DESC
        order = [column.desc(), Transaction.id.desc()] if descending else [column.asc(), Transaction.id.asc()]

        async with session_scope(self.session_factory) as session:
            total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
            result = await session.execute(
                stmt.order_by(*order).offset((query.page - 1) * query.limit).limit(query.limit)
            )
            return [to_read(row) for row in result.scalars().all()], total or 0

    async def list_all(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                       tx_type: Optional[TransactionType] = None) -> List[TransactionRead]:
        stmt = self._filtered(tx_type, start_date, end_date).order_by(
            Transaction.date, Transaction.created_at, Transaction.id
        )
        async with session_scope(self.session_factory) as session:
            result = await session.execute(stmt)
            return [to_read(row) for row in result.scalars().all()]
