"""
In-memory stock ledger used by the fallback store.

Records are immutable pydantic models. A mutation builds the replacement
record first and only swaps it into the index once `_persist` returns, so a
failed write leaves the previous record in place. Stock writes hold an
asyncio.Lock from the read until the new record is persisted.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

from shopledger.core.enums import DEFAULT_MIN_STOCK_LEVEL, StockDirection
from shopledger.core.exceptions import DuplicateKeyError, NotFoundError
from shopledger.core.utils import round_money, utcnow
from shopledger.schemas.inventory import InventoryItemCreate, InventoryItemRead, InventoryQuery
from shopledger.services.ledger.base import (
    StockLedger,
    compute_stock_change,
    matches_query,
    sort_attribute,
    validate_item_changes,
)

logger = logging.getLogger(__name__)


class MemoryStockLedger(StockLedger):
    def __init__(self):
        self._items: Dict[str, InventoryItemRead] = {}
        self._ids = itertools.count(1)
        self._write_lock = asyncio.Lock()

    def clear(self) -> None:
        self._items.clear()
        self._ids = itertools.count(1)

    async def _persist(self, item: InventoryItemRead, previous_name: Optional[str] = None) -> None:
        """Make `item` the visible record. Nothing is visible until this returns."""
        if previous_name is not None and previous_name != item.item_name:
            self._items.pop(previous_name, None)
        self._items[item.item_name] = item

    def _new_item(self, item_name: str, category: Optional[str], unit_price: float,
                  current_stock: float = 0.0, min_stock_level: float = DEFAULT_MIN_STOCK_LEVEL) -> InventoryItemRead:
        now = utcnow()
        return InventoryItemRead(
            id=next(self._ids),
            item_name=item_name,
            category=self._default_category(category),
            current_stock=current_stock,
            min_stock_level=min_stock_level,
            unit_price=unit_price,
            total_value=round_money(current_stock * unit_price),
            last_updated=now,
            created_at=now,
            updated_at=now,
        )

    def _by_id(self, item_id: int) -> InventoryItemRead:
        for item in self._items.values():
            if item.id == item_id:
                return item
        raise NotFoundError(f"Inventory item {item_id} not found")

    async def get_by_name(self, item_name: str) -> Optional[InventoryItemRead]:
        return self._items.get(item_name)

    async def get_or_create(self, item_name: str, unit_price: float = 0.0,
                            category: Optional[str] = None) -> InventoryItemRead:
        existing = self._items.get(item_name)
        if existing is not None:
            return existing
        item = self._new_item(item_name, category, unit_price or 0.0)
        await self._persist(item)
        logger.info(f"Created inventory item '{item_name}' in fallback store")
        return item

    async def apply_delta(self, item_name: str, quantity: float, unit_price: float,
                          direction: StockDirection, category: Optional[str] = None,
                          reprice: bool = True) -> InventoryItemRead:
        direction = StockDirection(direction)
        async with self._write_lock:
            current = self._items.get(item_name)
            if current is None and direction is StockDirection.INCREASE:
                # Not persisted on its own: the new item only appears together with its stock
                current = self._new_item(item_name, category, unit_price or 0.0)

            change = compute_stock_change(
                item_name,
                current.current_stock if current else 0.0,
                current.unit_price if current else 0.0,
                quantity,
                unit_price,
                direction,
                reprice,
            )
            now = utcnow()
            updated = current.model_copy(update={
                "current_stock": change.current_stock,
                "unit_price": change.unit_price,
                "total_value": change.total_value,
                "last_updated": now,
                "updated_at": now,
            })
            await self._persist(updated)
        logger.info(
            f"Stock '{item_name}': {current.current_stock:g} -> {updated.current_stock:g} "
            f"({direction.value} {quantity:g}) [fallback]"
        )
        return updated

    async def update_stock(self, item_name: str, quantity_change: float,
                           unit_price: Optional[float] = None) -> InventoryItemRead:
        """Signed variant of apply_delta: positive adds stock, negative removes it."""
        direction = StockDirection.INCREASE if quantity_change > 0 else StockDirection.DECREASE
        return await self.apply_delta(item_name, abs(quantity_change), unit_price, direction)

    async def create_item(self, data: InventoryItemCreate) -> InventoryItemRead:
        if data.item_name in self._items:
            raise DuplicateKeyError(f"Inventory item '{data.item_name}' already exists")
        item = self._new_item(
            data.item_name,
            data.category,
            data.unit_price,
            current_stock=data.current_stock,
            min_stock_level=data.min_stock_level,
        )
        await self._persist(item)
        return item

    async def get_item(self, item_id: int) -> InventoryItemRead:
        return self._by_id(item_id)

    async def update_item(self, item_id: int, changes: Dict[str, Any]) -> InventoryItemRead:
        validate_item_changes(changes)
        current = self._by_id(item_id)
        changes = {k: v for k, v in changes.items() if v is not None}

        new_name = changes.get("item_name", current.item_name)
        if new_name != current.item_name and new_name in self._items:
            raise DuplicateKeyError(f"Inventory item '{new_name}' already exists")

        now = utcnow()
        updated = current.model_copy(update={**changes, "updated_at": now})
        if "current_stock" in changes or "unit_price" in changes:
            updated = updated.model_copy(update={
                "total_value": round_money(updated.current_stock * updated.unit_price),
                "last_updated": now,
            })
        await self._persist(updated, previous_name=current.item_name)
        return updated

    async def delete_item(self, item_id: int) -> InventoryItemRead:
        item = self._by_id(item_id)
        del self._items[item.item_name]
        return item

    async def find_many(self, query: InventoryQuery) -> Tuple[List[InventoryItemRead], int]:
        matched = [item for item in self._items.values() if matches_query(item, query)]
        attribute = sort_attribute(query.sort_by)
        matched.sort(key=lambda item: getattr(item, attribute), reverse=self._descending(query.sort_order))
        start = (query.page - 1) * query.limit
        return matched[start:start + query.limit], len(matched)

    async def list_all(self) -> List[InventoryItemRead]:
        return sorted(self._items.values(), key=lambda item: item.item_name)

    async def low_stock_items(self, threshold: float = 0) -> List[InventoryItemRead]:
        if threshold and threshold > 0:
            low = [item for item in self._items.values() if item.current_stock <= threshold]
        else:
            low = [item for item in self._items.values() if item.is_low_stock]
        return sorted(low, key=lambda item: (item.current_stock, item.item_name))
