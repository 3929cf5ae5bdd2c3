"""
Which backend serves the next request.

Two states, PRIMARY and FALLBACK:

- starts in FALLBACK when no persistent store is configured, else PRIMARY
- PRIMARY -> FALLBACK as soon as a request sees the persistent store fail
- FALLBACK -> PRIMARY only on a successful health probe or an explicit reset

One selector is created per application and handed to the router; it is
not module state. The lock keeps transitions atomic when the app runs
request handlers on worker threads.
"""

import logging
import threading

from shopledger.core.enums import StoreMode

logger = logging.getLogger(__name__)


class StoreSelector:
    def __init__(self, primary_configured: bool):
        self.primary_configured = primary_configured
        self._lock = threading.Lock()
        self._mode = StoreMode.PRIMARY if primary_configured else StoreMode.FALLBACK

    def current(self) -> StoreMode:
        with self._lock:
            return self._mode

    @property
    def is_fallback(self) -> bool:
        return self.current() is StoreMode.FALLBACK

    def record_failure(self) -> bool:
        """Demote to FALLBACK. Returns True if this call changed the state."""
        with self._lock:
            changed = self._mode is StoreMode.PRIMARY
            self._mode = StoreMode.FALLBACK
        if changed:
            logger.warning("Persistent store failure: switching to fallback store")
        return changed

    def record_probe_success(self) -> bool:
        """Promote to PRIMARY after a successful probe. Returns True if the state changed."""
        if not self.primary_configured:
            return False
        with self._lock:
            changed = self._mode is StoreMode.FALLBACK
            self._mode = StoreMode.PRIMARY
        if changed:
            logger.info("Persistent store reachable again: switching back to primary store")
        return changed

    def reset(self) -> StoreMode:
        """Back to the initial state."""
        with self._lock:
            self._mode = StoreMode.PRIMARY if self.primary_configured else StoreMode.FALLBACK
            return self._mode
