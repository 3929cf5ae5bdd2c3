# shopledger/routes/analytics.py
"""
Read-only reporting endpoints and spreadsheet export.
"""

import io
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from shopledger.core.enums import AnalyticsPeriod, ExportFormat, ExportType
from shopledger.core.exceptions import ValidationError
from shopledger.core.security import require_auth
from shopledger.core.utils import parse_query_date
from shopledger.dependencies import get_router
from shopledger.schemas.responses import envelope
from shopledger.services.analytics_service import AnalyticsService
from shopledger.services.export_service import ExportService
from shopledger.services.store_router import BackendRouter

router = APIRouter(prefix="/analytics", tags=["analytics"], dependencies=[require_auth()])


def date_window(start_date: Optional[str], end_date: Optional[str]):
    return parse_query_date(start_date), parse_query_date(end_date, end_of_day=True)


def parse_period(value: str) -> AnalyticsPeriod:
    try:
        return AnalyticsPeriod(value)
    except ValueError:
        raise ValidationError(
            "Period must be one of: daily, weekly, monthly, yearly", code="INVALID_PARAMETER"
        )


def parse_limit(limit: int) -> int:
    if limit < 1 or limit > 100:
        raise ValidationError("Limit must be between 1 and 100", code="INVALID_PARAMETER")
    return limit


def analytics(backend) -> AnalyticsService:
    return AnalyticsService(backend.transactions, backend.ledger)


@router.get("/overview")
async def overview(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    start, end = date_window(start_date, end_date)
    data = await store_router.run(lambda backend: analytics(backend).overview(start, end))
    return envelope(data)


@router.get("/sales-trends")
async def sales_trends(
    period: str = "daily",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    period = parse_period(period)
    start, end = date_window(start_date, end_date)
    data = await store_router.run(lambda backend: analytics(backend).sales_trends(period, start, end))
    return envelope(data)


@router.get("/profit-loss")
async def profit_loss(
    period: str = "monthly",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    period = parse_period(period)
    start, end = date_window(start_date, end_date)
    data = await store_router.run(lambda backend: analytics(backend).profit_loss(period, start, end))
    return envelope(data)


@router.get("/purchase-analytics")
async def purchase_analytics(
    limit: int = 10,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    limit = parse_limit(limit)
    start, end = date_window(start_date, end_date)
    data = await store_router.run(lambda backend: analytics(backend).purchase_analytics(start, end, limit))
    return envelope(data)


@router.get("/inventory-insights")
async def inventory_insights(
    limit: int = 10,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    limit = parse_limit(limit)
    start, end = date_window(start_date, end_date)
    data = await store_router.run(lambda backend: analytics(backend).inventory_insights(start, end, limit))
    return envelope(data)


@router.get("/export")
async def export(
    format: str = "excel",
    type: str = "transactions",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_router: BackendRouter = Depends(get_router),
):
    """Download transactions, inventory or combined analytics as xlsx or csv."""
    try:
        export_format = ExportFormat(format)
    except ValueError:
        raise ValidationError("Format must be either excel or csv", code="INVALID_FORMAT")
    try:
        export_type = ExportType(type)
    except ValueError:
        raise ValidationError("Type must be one of: transactions, inventory, analytics", code="INVALID_TYPE")
    start, end = date_window(start_date, end_date)

    export_file = await store_router.run(
        lambda backend: ExportService(backend.transactions, backend.ledger).export(export_type, export_format, start, end)
    )
    return StreamingResponse(
        io.BytesIO(export_file.content),
        media_type=export_file.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export_file.filename}"'},
    )
