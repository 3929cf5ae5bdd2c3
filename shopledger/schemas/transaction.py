"""
Transaction schemas.

Cross-field rules (supplier required for purchases, totals, future dates)
are enforced by services.transactions.validation so that partial updates
are checked against the merged record, not just the request body.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from shopledger.core.enums import SortOrder, TransactionType
from shopledger.core.utils import ensure_utc
from shopledger.schemas.base import BaseSchema, TimestampedSchema


class PartyInfo(BaseSchema):
    """Supplier or customer block."""
    name: Optional[str] = Field(default=None, max_length=200)
    contact: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name", "contact", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class TransactionItem(BaseSchema):
    item_name: str = Field(..., min_length=1, max_length=200)
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    total_price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=100)

    @field_validator("item_name", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class TransactionCreate(BaseSchema):
    type: TransactionType
    date: Optional[datetime] = None
    items: List[TransactionItem] = Field(..., min_length=1)
    total_amount: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    supplier: Optional[PartyInfo] = None
    customer: Optional[PartyInfo] = None


class TransactionUpdate(BaseSchema):
    """Partial update. Fields left out of the request keep their stored value."""
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    items: Optional[List[TransactionItem]] = Field(default=None, min_length=1)
    total_amount: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    supplier: Optional[PartyInfo] = None
    customer: Optional[PartyInfo] = None


class TransactionRead(TimestampedSchema):
    id: int
    transaction_id: str
    type: TransactionType
    date: datetime
    items: List[TransactionItem]
    total_amount: float
    notes: Optional[str] = None
    supplier: Optional[PartyInfo] = None
    customer: Optional[PartyInfo] = None

    @field_validator("date", mode="after")
    @classmethod
    def _utc_date(cls, value):
        return ensure_utc(value)


@dataclass
class TransactionQuery:
    """Filters, sort and page for listing transactions."""
    type: Optional[TransactionType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None
    sort_by: str = "date"
    sort_order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int = 10
