# shopledger/routes/inventory.py
"""
Direct inventory management. These endpoints edit the stock ledger without
going through the reconciler, so they are not reflected in transaction
history; use the stock replay tooling to spot the resulting drift.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from shopledger.core.enums import INVENTORY_SORT_FIELDS, SortOrder
from shopledger.core.exceptions import ValidationError
from shopledger.core.security import require_auth
from shopledger.core.utils import total_pages, validate_pagination
from shopledger.dependencies import get_router
from shopledger.schemas.inventory import InventoryItemCreate, InventoryItemUpdate, InventoryQuery
from shopledger.schemas.responses import envelope
from shopledger.services.analytics_service import AnalyticsService
from shopledger.services.store_router import BackendRouter

router = APIRouter(prefix="/inventory", tags=["inventory"], dependencies=[require_auth()])


@router.get("")
async def list_inventory(
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    category: Optional[str] = None,
    low_stock: bool = Query(False, alias="lowStock"),
    sort_by: str = Query("itemName", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    store_router: BackendRouter = Depends(get_router),
):
    validate_pagination(page, limit)
    if sort_by not in INVENTORY_SORT_FIELDS:
        sort_by, sort_order = "itemName", "asc"
    query = InventoryQuery(
        search=search.strip() if search and search.strip() else None,
        category=category or None,
        low_stock=low_stock,
        sort_by=sort_by,
        sort_order=SortOrder.DESC if sort_order == "desc" else SortOrder.ASC,
        page=page,
        limit=limit,
    )
    items, total = await store_router.run(lambda backend: backend.ledger.find_many(query))
    return envelope({
        "items": [item.to_api() for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages(total, limit),
        },
    })


@router.post("", status_code=201)
async def create_inventory_item(payload: InventoryItemCreate, store_router: BackendRouter = Depends(get_router)):
    item = await store_router.run(lambda backend: backend.ledger.create_item(payload))
    return envelope(item.to_api())


@router.get("/low-stock")
async def low_stock(threshold: float = 0, store_router: BackendRouter = Depends(get_router)):
    """Items at or below their minimum level, or at or below `threshold` when one is given."""
    report = await store_router.run(
        lambda backend: AnalyticsService(backend.transactions, backend.ledger).low_stock_report(threshold)
    )
    return envelope(report)


@router.get("/summary")
async def inventory_summary(store_router: BackendRouter = Depends(get_router)):
    summary = await store_router.run(
        lambda backend: AnalyticsService(backend.transactions, backend.ledger).inventory_summary()
    )
    return envelope(summary)


@router.get("/{item_id}")
async def get_inventory_item(item_id: int, store_router: BackendRouter = Depends(get_router)):
    item = await store_router.run(lambda backend: backend.ledger.get_item(item_id))
    return envelope(item.to_api())


@router.put("/{item_id}")
async def update_inventory_item(
    item_id: int,
    payload: InventoryItemUpdate,
    store_router: BackendRouter = Depends(get_router),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No fields to update")
    item = await store_router.run(lambda backend: backend.ledger.update_item(item_id, changes))
    return envelope(item.to_api())


@router.delete("/{item_id}")
async def delete_inventory_item(item_id: int, store_router: BackendRouter = Depends(get_router)):
    item = await store_router.run(lambda backend: backend.ledger.delete_item(item_id))
    return envelope(item.to_api())
