from fastapi import Request

from shopledger.core.config import Settings
from shopledger.services.store_router import BackendRouter


def get_router(request: Request) -> BackendRouter:
    """The application's store router, built once in create_app()."""
    return request.app.state.router


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
