"""
Stock ledger backed by the persistent store.

Each call opens its own session and commits one inventory row, so the
reconciler can fan calls out concurrently. Writes read the row with
SELECT ... FOR UPDATE, so two requests moving the same item are applied
one after the other on PostgreSQL (SQLite ignores the clause and
serialises writers on its database lock). A failed commit rolls the
session back and the row keeps its previous figures.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopledger.core.enums import DEFAULT_MIN_STOCK_LEVEL, StockDirection
from shopledger.core.exceptions import DuplicateKeyError, NotFoundError
from shopledger.core.utils import round_money, utcnow
from shopledger.database import session_scope
from shopledger.models.inventory_item import InventoryItem
from shopledger.schemas.inventory import InventoryItemCreate, InventoryItemRead, InventoryQuery
from shopledger.services.ledger.base import StockLedger, compute_stock_change, sort_attribute, validate_item_changes

logger = logging.getLogger(__name__)


def to_read(row: InventoryItem) -> InventoryItemRead:
    return InventoryItemRead(
        id=row.id,
        item_name=row.item_name,
        category=row.category,
        current_stock=row.current_stock,
        min_stock_level=row.min_stock_level,
        unit_price=row.unit_price,
        total_value=row.total_value,
        last_updated=row.last_updated,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlStockLedger(StockLedger):
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _row_by_name(self, session: AsyncSession, item_name: str,
                           for_update: bool = False) -> Optional[InventoryItem]:
        stmt = select(InventoryItem).where(InventoryItem.item_name == item_name)
        if for_update:
            # Row lock held until commit; concurrent writers to the item queue behind it
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _row_by_id(self, session: AsyncSession, item_id: int, for_update: bool = False) -> InventoryItem:
        row = await session.get(InventoryItem, item_id, with_for_update=for_update)
        if row is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        return row

    async def _insert_or_fetch(self, session: AsyncSession, item_name: str,
                               unit_price: float, category: Optional[str]) -> InventoryItem:
        """Create the row, or pick up the one a concurrent request just created."""
        row = InventoryItem(
            item_name=item_name,
            category=self._default_category(category),
            current_stock=0.0,
            min_stock_level=DEFAULT_MIN_STOCK_LEVEL,
            unit_price=unit_price or 0.0,
            total_value=0.0,
            last_updated=utcnow(),
        )
        session.add(row)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            row = await self._row_by_name(session, item_name, for_update=True)
            if row is None:
                raise
        return row

    async def get_by_name(self, item_name: str) -> Optional[InventoryItemRead]:
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_name(session, item_name)
            return to_read(row) if row else None

    async def get_or_create(self, item_name: str, unit_price: float = 0.0,
                            category: Optional[str] = None) -> InventoryItemRead:
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_name(session, item_name)
            if row is None:
                row = await self._insert_or_fetch(session, item_name, unit_price, category)
                await session.commit()
                logger.info(f"Created inventory item '{item_name}'")
            return to_read(row)

    async def apply_delta(self, item_name: str, quantity: float, unit_price: float,
                          direction: StockDirection, category: Optional[str] = None,
                          reprice: bool = True) -> InventoryItemRead:
        direction = StockDirection(direction)
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_name(session, item_name, for_update=True)
            if row is None and direction is StockDirection.INCREASE:
                row = await self._insert_or_fetch(session, item_name, unit_price, category)

            old_stock = row.current_stock if row else 0.0
            change = compute_stock_change(
                item_name,
                old_stock,
                row.unit_price if row else 0.0,
                quantity,
                unit_price,
                direction,
                reprice,
            )

            row.current_stock = change.current_stock
            row.unit_price = change.unit_price
            row.total_value = change.total_value
            row.last_updated = utcnow()
            await session.commit()

            logger.info(f"Stock '{item_name}': {old_stock:g} -> {change.current_stock:g} ({direction.value} {quantity:g})")
            return to_read(row)

    async def create_item(self, data: InventoryItemCreate) -> InventoryItemRead:
        async with session_scope(self.session_factory) as session:
            if await self._row_by_name(session, data.item_name) is not None:
                raise DuplicateKeyError(f"Inventory item '{data.item_name}' already exists")
            row = InventoryItem(
                item_name=data.item_name,
                category=self._default_category(data.category),
                current_stock=data.current_stock,
                min_stock_level=data.min_stock_level,
                unit_price=data.unit_price,
                total_value=round_money(data.current_stock * data.unit_price),
                last_updated=utcnow(),
            )
            session.add(row)
            await session.commit()
            return to_read(row)

    async def get_item(self, item_id: int) -> InventoryItemRead:
        async with session_scope(self.session_factory) as session:
            return to_read(await self._row_by_id(session, item_id))

    async def update_item(self, item_id: int, changes: Dict[str, Any]) -> InventoryItemRead:
        validate_item_changes(changes)
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_id(session, item_id, for_update=True)
            changes = {k: v for k, v in changes.items() if v is not None}

            new_name = changes.get("item_name")
            if new_name and new_name != row.item_name and await self._row_by_name(session, new_name):
                raise DuplicateKeyError(f"Inventory item '{new_name}' already exists")

            for field, value in changes.items():
                setattr(row, field, value)
            if "current_stock" in changes or "unit_price" in changes:
                row.total_value = round_money(row.current_stock * row.unit_price)
                row.last_updated = utcnow()
            await session.commit()
            return to_read(row)

    async def delete_item(self, item_id: int) -> InventoryItemRead:
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_id(session, item_id)
            item = to_read(row)
            await session.delete(row)
            await session.commit()
            return item

    def _filtered(self, query: InventoryQuery):
        stmt = select(InventoryItem)
        if query.search:
            pattern = f"%{query.search}%"
            stmt = stmt.where(or_(InventoryItem.item_name.ilike(pattern), InventoryItem.category.ilike(pattern)))
        if query.category:
            stmt = stmt.where(InventoryItem.category == query.category)
        if query.low_stock:
            stmt = stmt.where(InventoryItem.current_stock <= InventoryItem.min_stock_level)
        return stmt

    async def find_many(self, query: InventoryQuery) -> Tuple[List[InventoryItemRead], int]:
        stmt = self._filtered(query)
        column = getattr(InventoryItem, sort_attribute(query.sort_by))
        order = column.desc() if self._descending(query.sort_order) else column.asc()

        async with session_scope(self.session_factory) as session:
            total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
            result = await session.execute(
                stmt.order_by(order, InventoryItem.id)
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            return [to_read(row) for row in result.scalars().all()], total or 0

    async def list_all(self) -> List[InventoryItemRead]:
        async with session_scope(self.session_factory) as session:
            result = await session.execute(select(InventoryItem).order_by(InventoryItem.item_name))
            return [to_read(row) for row in result.scalars().all()]

    async def low_stock_items(self, threshold: float = 0) -> List[InventoryItemRead]:
        if threshold and threshold > 0:
            condition = InventoryItem.current_stock <= threshold
        else:
            condition = InventoryItem.current_stock <= InventoryItem.min_stock_level
        async with session_scope(self.session_factory) as session:
            result = await session.execute(
                select(InventoryItem)
                .where(condition)
                .order_by(InventoryItem.current_stock, InventoryItem.item_name)
            )
            return [to_read(row) for row in result.scalars().all()]
