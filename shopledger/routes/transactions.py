# shopledger/routes/transactions.py
"""
Transaction endpoints. Every write goes through the consistency reconciler
on the backend the store router selects.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from shopledger.core.config import Settings
from shopledger.core.enums import TRANSACTION_SORT_FIELDS, SortOrder, TransactionType
from shopledger.core.exceptions import ValidationError
from shopledger.core.security import require_auth
from shopledger.core.utils import parse_query_date, total_pages, validate_pagination
from shopledger.dependencies import get_app_settings, get_router
from shopledger.schemas.responses import envelope
from shopledger.schemas.transaction import TransactionCreate, TransactionQuery, TransactionUpdate
from shopledger.services.store_router import BackendRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"], dependencies=[require_auth()])


def parse_type(value: Optional[str]) -> Optional[TransactionType]:
    if not value:
        return None
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError("Type must be either 'purchase' or 'sale'", code="INVALID_PARAMETERS")


@router.get("")
async def list_transactions(
    page: int = 1,
    limit: int = 10,
    type: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    sort_by: str = Query("date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    store_router: BackendRouter = Depends(get_router),
):
    """Paginated, filterable transaction list. Unknown sort fields fall back to date, newest first."""
    validate_pagination(page, limit)
    query = TransactionQuery(
        type=parse_type(type),
        start_date=parse_query_date(start_date),
        end_date=parse_query_date(end_date, end_of_day=True),
        search=search.strip() if search and search.strip() else None,
        sort_by=sort_by,
        sort_order=SortOrder.ASC if sort_order == "asc" else SortOrder.DESC,
        page=page,
        limit=limit,
    )
    if query.sort_by not in TRANSACTION_SORT_FIELDS:
        query.sort_by, query.sort_order = "date", SortOrder.DESC

    records, total = await store_router.run(lambda backend: backend.transactions.find_many(query))
    return envelope({
        "transactions": [record.to_api() for record in records],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages(total, limit),
        },
    })


@router.post("", status_code=201)
async def create_transaction(
    payload: TransactionCreate,
    store_router: BackendRouter = Depends(get_router),
    settings: Settings = Depends(get_app_settings),
):
    data = payload.model_dump()
    result = await store_router.run(
        lambda backend: backend.reconciler(settings.STOCK_ADJUSTMENT_POLICY).create_transaction(data)
    )
    return envelope(result.transaction.to_api(), warnings=result.warnings())


@router.get("/{transaction_id}")
async def get_transaction(transaction_id: int, store_router: BackendRouter = Depends(get_router)):
    record = await store_router.run(lambda backend: backend.transactions.find_by_id(transaction_id))
    return envelope(record.to_api())


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    store_router: BackendRouter = Depends(get_router),
    settings: Settings = Depends(get_app_settings),
):
    """Partial update; changing items or type reverses the old stock effect and applies the new one."""
    partial = payload.model_dump(exclude_unset=True)
    if not partial:
        raise ValidationError("No fields to update")
    result = await store_router.run(
        lambda backend: backend.reconciler(settings.STOCK_ADJUSTMENT_POLICY).update_transaction(transaction_id, partial)
    )
    return envelope(result.transaction.to_api(), warnings=result.warnings())


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    store_router: BackendRouter = Depends(get_router),
    settings: Settings = Depends(get_app_settings),
):
    result = await store_router.run(
        lambda backend: backend.reconciler(settings.STOCK_ADJUSTMENT_POLICY).delete_transaction(transaction_id)
    )
    return envelope(result.transaction.to_api(), warnings=result.warnings())
