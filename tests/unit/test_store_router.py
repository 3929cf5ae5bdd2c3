import asyncio
import threading

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from shopledger.core.enums import StoreMode
from shopledger.core.exceptions import BackendUnavailableError, NotFoundError
from shopledger.services.fallback_store import FallbackStore
from shopledger.services.store_router import BackendRouter
from shopledger.services.store_selector import StoreSelector
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, sqlite_url


class TestStoreSelector:
    def test_initial_state_follows_configuration(self):
        assert StoreSelector(primary_configured=True).current() is StoreMode.PRIMARY
        assert StoreSelector(primary_configured=False).current() is StoreMode.FALLBACK

    def test_failure_demotes_once(self):
        selector = StoreSelector(primary_configured=True)
        assert selector.record_failure() is True
        assert selector.record_failure() is False
        assert selector.is_fallback

    def test_probe_success_promotes(self):
        selector = StoreSelector(primary_configured=True)
        selector.record_failure()
        assert selector.record_probe_success() is True
        assert selector.current() is StoreMode.PRIMARY
        assert selector.record_probe_success() is False

    def test_probe_success_without_primary_stays_on_fallback(self):
        selector = StoreSelector(primary_configured=False)
        assert selector.record_probe_success() is False
        assert selector.current() is StoreMode.FALLBACK

    def test_reset_returns_to_initial_state(self):
        selector = StoreSelector(primary_configured=True)
        selector.record_failure()
        assert selector.reset() is StoreMode.PRIMARY

    def test_concurrent_failures_flip_exactly_once(self):
        selector = StoreSelector(primary_configured=True)
        changes = []

        def fail():
            changes.append(selector.record_failure())

        threads = [threading.Thread(target=fail) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert changes.count(True) == 1
        assert selector.is_fallback


@pytest.fixture
def backends():
    primary = FallbackStore(ADMIN_EMAIL, ADMIN_PASSWORD).as_backend()
    fallback = FallbackStore(ADMIN_EMAIL, ADMIN_PASSWORD).as_backend()
    return primary, fallback


@pytest.mark.asyncio
async def test_run_uses_primary_when_healthy(backends):
    primary, fallback = backends
    router = BackendRouter(StoreSelector(True), fallback, primary=primary)
    seen = []

    async def operation(backend):
        seen.append(backend)
        return "ok"

    assert await router.run(operation) == "ok"
    assert seen == [primary]


@pytest.mark.asyncio
async def test_run_retries_on_fallback_and_stays_there(backends):
    primary, fallback = backends
    router = BackendRouter(StoreSelector(True), fallback, primary=primary)
    seen = []

    async def operation(backend):
        seen.append(backend)
        if backend is primary:
            raise BackendUnavailableError("connection refused")
        return "served"

    assert await router.run(operation) == "served"
    assert seen == [primary, fallback]
    assert router.selector.current() is StoreMode.FALLBACK

    # Later requests go straight to the fallback
    assert await router.run(operation) == "served"
    assert seen == [primary, fallback, fallback]


@pytest.mark.asyncio
async def test_other_errors_do_not_fail_over(backends):
    primary, fallback = backends
    router = BackendRouter(StoreSelector(True), fallback, primary=primary)

    async def operation(backend):
        raise NotFoundError("Transaction 7 not found")

    with pytest.raises(NotFoundError):
        await router.run(operation)
    assert router.selector.current() is StoreMode.PRIMARY


@pytest.mark.asyncio
async def test_fallback_errors_propagate(backends):
    primary, fallback = backends
    router = BackendRouter(StoreSelector(True), fallback, primary=primary)

    async def operation(backend):
        raise BackendUnavailableError("down everywhere")

    with pytest.raises(BackendUnavailableError):
        await router.run(operation)


@pytest.mark.asyncio
async def test_without_primary_everything_runs_on_fallback(backends):
    _, fallback = backends
    router = BackendRouter(StoreSelector(False), fallback)

    async def operation(backend):
        return backend.mode

    assert await router.run(operation) is StoreMode.FALLBACK
    assert await router.probe() is False
    assert router.last_probe_error is None


@pytest.mark.asyncio
async def test_probe_recovers_primary(backends, tmp_path):
    primary, fallback = backends
    engine = create_async_engine(sqlite_url(tmp_path / "probe.db"))
    router = BackendRouter(StoreSelector(True), fallback, primary=primary, engine=engine)
    router.selector.record_failure()

    try:
        assert await router.probe() is True
        assert router.selector.current() is StoreMode.PRIMARY
        assert router.current_backend() is primary
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_failed_probe_demotes_and_records_error(backends, tmp_path, mocker):
    primary, fallback = backends
    engine = create_async_engine(sqlite_url(tmp_path / "probe.db"))
    router = BackendRouter(StoreSelector(True), fallback, primary=primary, engine=engine)
    mocker.patch.object(router, "_ping", side_effect=OSError("connection refused"))

    assert await router.probe() is False
    assert router.selector.current() is StoreMode.FALLBACK
    assert "connection refused" in router.last_probe_error
    await engine.dispose()


@pytest.mark.asyncio
async def test_probe_times_out(backends, tmp_path, mocker):
    primary, fallback = backends
    engine = create_async_engine(sqlite_url(tmp_path / "probe.db"))
    router = BackendRouter(StoreSelector(True), fallback, primary=primary, engine=engine, probe_timeout=0.05)

    async def hang():
        await asyncio.sleep(5)

    mocker.patch.object(router, "_ping", side_effect=hang)

    assert await router.probe() is False
    assert router.selector.is_fallback
    assert router.last_probe_error.startswith("TimeoutError")
    await engine.dispose()


@pytest.mark.asyncio
async def test_unreachable_database_probe(backends, tmp_path):
    primary, fallback = backends
    engine = create_async_engine(sqlite_url(tmp_path / "missing" / "dir" / "db.sqlite"))
    router = BackendRouter(StoreSelector(True), fallback, primary=primary, engine=engine)

    assert await router.probe() is False
    assert router.selector.is_fallback
    await engine.dispose()


@pytest.mark.asyncio
async def test_reconnect_resets_and_probes(backends, tmp_path):
    primary, fallback = backends
    engine = create_async_engine(sqlite_url(tmp_path / "probe.db"))
    router = BackendRouter(StoreSelector(True), fallback, primary=primary, engine=engine)
    router.selector.record_failure()

    assert await router.reconnect() is True
    assert router.selector.current() is StoreMode.PRIMARY
    await engine.dispose()
