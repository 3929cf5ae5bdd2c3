from fastapi import APIRouter, Depends

from shopledger.core.exceptions import ReconnectionError
from shopledger.core.utils import utcnow
from shopledger.dependencies import get_router
from shopledger.schemas.responses import envelope
from shopledger.services.store_router import BackendRouter

router = APIRouter(tags=["health"])


def database_status(store_router: BackendRouter, connected: bool) -> dict:
    if not store_router.primary_configured:
        database = "not_configured"
    else:
        database = "connected" if connected else "failed"
    mode = store_router.selector.current()
    body = {
        "database": database,
        "mode": mode.value,
        "fallback": store_router.selector.is_fallback,
        "timestamp": utcnow().isoformat(),
    }
    if store_router.last_probe_error:
        body["error"] = store_router.last_probe_error
    return body


@router.get("/health")
async def health_check():
    """Basic health check"""
    return envelope({"status": "healthy", "service": "Shop Ledger", "timestamp": utcnow().isoformat()})


@router.get("/health/database")
async def database_health(store_router: BackendRouter = Depends(get_router)):
    """Probe the persistent store; a successful probe moves the router back to primary."""
    connected = await store_router.probe()
    return envelope(database_status(store_router, connected))


@router.post("/health/database")
async def reconnect_database(store_router: BackendRouter = Depends(get_router)):
    """Drop pooled connections, reset the router and probe again."""
    if not store_router.primary_configured:
        return envelope(database_status(store_router, False))
    connected = await store_router.reconnect()
    if not connected:
        raise ReconnectionError(f"Failed to reconnect to the database: {store_router.last_probe_error}")
    return envelope(database_status(store_router, connected))
