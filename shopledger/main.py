# shopledger/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopledger.core.config import Settings, get_settings
from shopledger.core.exceptions import ShopLedgerError
from shopledger.core.logging_config import configure_logging
from shopledger.database import create_engine_from_settings, create_session_factory
from shopledger.routes import analytics, health, inventory, transactions
from shopledger.schemas.responses import error_body
from shopledger.services.backend import build_sql_backend
from shopledger.services.fallback_store import FallbackStore
from shopledger.services.store_router import BackendRouter
from shopledger.services.store_selector import StoreSelector

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store_router: BackendRouter = app.state.router
    if store_router.primary_configured:
        # Start on the fallback straight away if the database is already down
        if not await store_router.probe():
            logger.warning("Persistent store unreachable at startup; serving from fallback store")
    else:
        logger.info("DATABASE_URL not set; serving from in-memory fallback store")

    yield

    if store_router.engine is not None:
        await store_router.engine.dispose()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShopLedgerError)
    async def ledger_error_handler(request: Request, exc: ShopLedgerError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", "; ".join(messages)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = {401: "UNAUTHORIZED", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", "Internal server error"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with its own selector, fallback store and router.

    Args:
        settings: Settings to use instead of the environment (tests)
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    engine = create_engine_from_settings(settings)
    primary = None
    if engine is not None:
        primary = build_sql_backend(create_session_factory(engine), settings.TRANSACTION_ID_MAX_ATTEMPTS)

    fallback_store = FallbackStore(
        settings.ADMIN_EMAIL,
        settings.ADMIN_PASSWORD,
        settings.ADMIN_NAME,
        id_attempts=settings.TRANSACTION_ID_MAX_ATTEMPTS,
    )
    selector = StoreSelector(primary_configured=primary is not None)

    app = FastAPI(title="Shop Ledger", lifespan=lifespan)
    app.state.settings = settings
    app.state.fallback_store = fallback_store
    app.state.router = BackendRouter(
        selector,
        fallback_store.as_backend(),
        primary=primary,
        engine=engine,
        probe_timeout=settings.DB_PROBE_TIMEOUT,
    )

    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(transactions.router)
    app.include_router(inventory.router)
    app.include_router(analytics.router)
    return app


app = create_app()
