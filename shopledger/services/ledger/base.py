"""
Stock ledger contract.

The ledger owns inventory item records. Every mutation goes through
apply_delta (transaction flow) or update_item (direct edits), and both
recompute total_value and last_updated. Stock never goes below zero: a
decrease that would overdraw is rejected before anything is written.

Implementations:
- SqlStockLedger: persistent store, one session and one commit per call
- MemoryStockLedger: in-process dict used by the fallback store
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from shopledger.core.enums import DEFAULT_CATEGORY, SortOrder, StockDirection
from shopledger.core.exceptions import InsufficientStockError, ValidationError
from shopledger.core.utils import QUANTITY_EPSILON, clean_quantity, round_money
from shopledger.schemas.inventory import InventoryItemCreate, InventoryItemRead, InventoryQuery

# camelCase sort key -> attribute name
SORT_COLUMNS = {
    "itemName": "item_name",
    "category": "category",
    "currentStock": "current_stock",
    "unitPrice": "unit_price",
    "totalValue": "total_value",
    "lastUpdated": "last_updated",
}
DEFAULT_SORT = "itemName"


@dataclass(frozen=True)
class StockChange:
    """New stock figures for one item, computed before anything is written."""
    current_stock: float
    unit_price: float
    total_value: float


def compute_stock_change(
    item_name: str,
    current_stock: float,
    current_price: float,
    quantity: float,
    unit_price: float,
    direction: StockDirection,
    reprice: bool = True,
) -> StockChange:
    """
    Work out the result of applying a delta to an item.

    Increases take the supplied price when reprice is set (latest purchase
    price). Decreases never touch the price.

    Raises:
        ValidationError: quantity not positive or price negative
        InsufficientStockError: decrease larger than current stock
    """
    if quantity is None or quantity <= 0:
        raise ValidationError(f"Quantity for '{item_name}' must be greater than 0")
    if unit_price is not None and unit_price < 0:
        raise ValidationError(f"Unit price for '{item_name}' cannot be negative")

    price = current_price
    if direction is StockDirection.INCREASE:
        new_stock = current_stock + quantity
        if reprice and unit_price is not None:
            price = unit_price
    else:
        if current_stock + QUANTITY_EPSILON < quantity:
            raise InsufficientStockError(item_name, current_stock, quantity)
        new_stock = current_stock - quantity

    new_stock = max(clean_quantity(new_stock), 0.0)
    return StockChange(
        current_stock=new_stock,
        unit_price=price,
        total_value=round_money(new_stock * price),
    )


def validate_item_changes(changes: Dict[str, Any]) -> None:
    for field in ("current_stock", "min_stock_level", "unit_price"):
        value = changes.get(field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} cannot be negative")
    if "item_name" in changes and not (changes["item_name"] or "").strip():
        raise ValidationError("Item name is required")


def matches_query(item: InventoryItemRead, query: InventoryQuery) -> bool:
    if query.search:
        needle = query.search.lower()
        if needle not in item.item_name.lower() and needle not in item.category.lower():
            return False
    if query.category and item.category != query.category:
        return False
    if query.low_stock and not item.is_low_stock:
        return False
    return True


def sort_attribute(sort_by: str) -> str:
    return SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT])


class StockLedger(ABC):
    """Inventory bookkeeping shared by the persistent and fallback backends."""

    @abstractmethod
    async def get_by_name(self, item_name: str) -> Optional[InventoryItemRead]:
        """Exact, case-sensitive lookup by item name."""
        pass

    @abstractmethod
    async def get_or_create(
        self, item_name: str, unit_price: float = 0.0, category: Optional[str] = None
    ) -> InventoryItemRead:
        """
        Return the item, creating it with zero stock if it does not exist.

        New items get category "General" (unless one is supplied) and a
        minimum stock level of 5.
        """
        pass

    @abstractmethod
    async def apply_delta(
        self,
        item_name: str,
        quantity: float,
        unit_price: float,
        direction: StockDirection,
        category: Optional[str] = None,
        reprice: bool = True,
    ) -> InventoryItemRead:
        """
        Move one item's stock up or down.

        An increase on an unknown item creates it first. A decrease on an
        unknown item, or one larger than the current stock, raises
        InsufficientStockError and leaves the item untouched.
        """
        pass

    def is_low_stock(self, item: InventoryItemRead) -> bool:
        return item.current_stock <= item.min_stock_level

    @abstractmethod
    async def create_item(self, data: InventoryItemCreate) -> InventoryItemRead:
        pass

    @abstractmethod
    async def get_item(self, item_id: int) -> InventoryItemRead:
        pass

    @abstractmethod
    async def update_item(self, item_id: int, changes: Dict[str, Any]) -> InventoryItemRead:
        """Direct edit outside the transaction flow."""
        pass

    @abstractmethod
    async def delete_item(self, item_id: int) -> InventoryItemRead:
        pass

    @abstractmethod
    async def find_many(self, query: InventoryQuery) -> Tuple[List[InventoryItemRead], int]:
        pass

    @abstractmethod
    async def list_all(self) -> List[InventoryItemRead]:
        pass

    @abstractmethod
    async def low_stock_items(self, threshold: float = 0) -> List[InventoryItemRead]:
        """
        Items at or below their own minimum, or at or below `threshold`
        when a positive threshold is given. Lowest stock first.
        """
        pass

    @staticmethod
    def _default_category(category: Optional[str]) -> str:
        return (category or "").strip() or DEFAULT_CATEGORY

    @staticmethod
    def _descending(order: SortOrder) -> bool:
        return SortOrder(order) is SortOrder.DESC
