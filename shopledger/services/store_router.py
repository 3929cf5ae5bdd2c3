"""
Store router: runs each request against the backend the selector picks.

A request that starts on the primary and hits BackendUnavailableError is
demoted and retried once, from the beginning, on the fallback. A request
that starts on the fallback stays there. Recovery only happens through
probe() / reconnect(), which the health endpoints call.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from shopledger.core.enums import StoreMode
from shopledger.core.exceptions import BackendUnavailableError
from shopledger.services.backend import Backend
from shopledger.services.store_selector import StoreSelector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendRouter:
    def __init__(
        self,
        selector: StoreSelector,
        fallback: Backend,
        primary: Optional[Backend] = None,
        engine: Optional[AsyncEngine] = None,
        probe_timeout: float = 5.0,
    ):
        self.selector = selector
        self.fallback = fallback
        self.primary = primary
        self.engine = engine
        self.probe_timeout = probe_timeout
        self.last_probe_error: Optional[str] = None

    @property
    def primary_configured(self) -> bool:
        return self.primary is not None

    def current_backend(self) -> Backend:
        if self.primary is not None and self.selector.current() is StoreMode.PRIMARY:
            return self.primary
        return self.fallback

    async def run(self, operation: Callable[[Backend], Awaitable[T]]) -> T:
        """
        Run `operation` against the selected backend.

        Args:
            operation: Coroutine function taking the Backend to use

        Returns:
            Whatever the operation returns

        Raises:
            Anything the operation raises, except BackendUnavailableError on
            the primary, which triggers the fallback retry instead
        """
        backend = self.current_backend()
        if backend is self.fallback:
            return await operation(backend)

        try:
            return await operation(backend)
        except BackendUnavailableError as e:
            logger.warning(f"Primary store failed mid-request ({e.message}); retrying on fallback store")
            self.selector.record_failure()
            return await operation(self.fallback)

    async def _ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def probe(self) -> bool:
        """
        Check the persistent store. Success promotes the selector to PRIMARY,
        failure demotes it to FALLBACK.
        """
        if self.engine is None:
            self.last_probe_error = None
            return False
        try:
            await asyncio.wait_for(self._ping(), timeout=self.probe_timeout)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            self.last_probe_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Database probe failed: {self.last_probe_error}")
            self.selector.record_failure()
            return False

        self.last_probe_error = None
        logger.info("Database probe succeeded")
        self.selector.record_probe_success()
        return True

    async def reconnect(self) -> bool:
        """Drop pooled connections, reset the selector and probe again."""
        if self.engine is not None:
            await self.engine.dispose()
        self.selector.reset()
        return await self.probe()
