"""
Inventory item schemas.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from shopledger.core.enums import DEFAULT_CATEGORY, DEFAULT_MIN_STOCK_LEVEL, SortOrder
from shopledger.core.utils import ensure_utc
from shopledger.schemas.base import BaseSchema, TimestampedSchema


class InventoryItemBase(BaseSchema):
    item_name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(default=DEFAULT_CATEGORY, max_length=100)
    min_stock_level: float = Field(default=DEFAULT_MIN_STOCK_LEVEL, ge=0)

    @field_validator("item_name", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class InventoryItemCreate(InventoryItemBase):
    current_stock: float = Field(default=0, ge=0)
    unit_price: float = Field(default=0, ge=0)


class InventoryItemUpdate(BaseSchema):
    """Direct edit. Only the fields sent are changed."""
    item_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=100)
    current_stock: Optional[float] = Field(default=None, ge=0)
    min_stock_level: Optional[float] = Field(default=None, ge=0)
    unit_price: Optional[float] = Field(default=None, ge=0)

    @field_validator("item_name", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class InventoryItemRead(TimestampedSchema):
    id: int
    item_name: str
    category: str
    current_stock: float
    min_stock_level: float
    unit_price: float
    total_value: float
    last_updated: datetime

    @field_validator("last_updated", mode="after")
    @classmethod
    def _utc_last_updated(cls, value):
        return ensure_utc(value)

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock_level


@dataclass
class InventoryQuery:
    """Filters, sort and page for listing inventory."""
    search: Optional[str] = None
    category: Optional[str] = None
    low_stock: bool = False
    sort_by: str = "itemName"
    sort_order: SortOrder = SortOrder.ASC
    page: int = 1
    limit: int = 20
