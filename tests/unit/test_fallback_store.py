import threading

import pytest

from shopledger.core.enums import StoreMode, UserRole
from shopledger.core.exceptions import DuplicateKeyError, InsufficientStockError
from shopledger.schemas.transaction import TransactionQuery
from shopledger.services.users import SqlUserStore, hash_password, verify_password
from shopledger.services.users import base as users_base
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, purchase


@pytest.mark.asyncio
async def test_admin_is_seeded(fallback_store):
    user = await fallback_store.users.find_by_email(ADMIN_EMAIL)
    assert user.role is UserRole.ADMIN
    assert user.name == "Admin User"

    assert await fallback_store.users.authenticate(ADMIN_EMAIL.upper(), ADMIN_PASSWORD) == user
    assert await fallback_store.users.authenticate(ADMIN_EMAIL, "wrong") is None


@pytest.mark.asyncio
async def test_update_stock_is_signed(fallback_store):
    item = await fallback_store.update_stock("Kurti-A", 10, 100)
    assert item.current_stock == 10
    assert item.total_value == 1000

    item = await fallback_store.update_stock("Kurti-A", -4)
    assert item.current_stock == 6
    assert item.unit_price == 100


@pytest.mark.asyncio
async def test_update_stock_rejects_overdraw(fallback_store):
    await fallback_store.update_stock("Kurti-A", 2, 100)
    with pytest.raises(InsufficientStockError):
        await fallback_store.update_stock("Kurti-A", -5)
    assert (await fallback_store.ledger.get_by_name("Kurti-A")).current_stock == 2


@pytest.mark.asyncio
async def test_reset_clears_data_and_reseeds(fallback_store):
    backend = fallback_store.as_backend()
    await backend.reconciler().create_transaction(purchase())
    await fallback_store.users.create("staff@example.com", "pw", "Staff")

    fallback_store.reset()

    assert await fallback_store.ledger.list_all() == []
    _, total = await fallback_store.transactions.find_many(TransactionQuery())
    assert total == 0
    assert await fallback_store.users.find_by_email("staff@example.com") is None
    assert await fallback_store.users.find_by_email(ADMIN_EMAIL) is not None


def test_as_backend_shares_the_stores(fallback_store):
    backend = fallback_store.as_backend()
    assert backend.mode is StoreMode.FALLBACK
    assert backend.ledger is fallback_store.ledger
    assert backend.transactions is fallback_store.transactions
    assert backend.users is fallback_store.users


def test_password_hashing():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("other", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


@pytest.mark.asyncio
async def test_sql_user_store(session_factory):
    users = SqlUserStore(session_factory)
    created = await users.create(" Staff@Example.com ", "pw", "Staff")

    assert created.email == "staff@example.com"
    assert created.role is UserRole.STAFF
    assert (await users.find_by_id(created.id)).email == "staff@example.com"
    assert await users.authenticate("staff@example.com", "pw") == created
    assert await users.authenticate("staff@example.com", "nope") is None
    assert await users.find_by_email("nobody@example.com") is None

    with pytest.raises(DuplicateKeyError):
        await users.create("staff@example.com", "pw2", "Other")


@pytest.mark.asyncio
async def test_password_checks_run_off_the_event_loop(fallback_store, mocker):
    loop_thread = threading.get_ident()
    threads = []
    real_verify = users_base.verify_password
    real_hash = users_base.hash_password

    def verify_in_thread(password, password_hash):
        threads.append(threading.get_ident())
        return real_verify(password, password_hash)

    def hash_in_thread(password):
        threads.append(threading.get_ident())
        return real_hash(password)

    mocker.patch("shopledger.services.users.base.verify_password", side_effect=verify_in_thread)
    mocker.patch("shopledger.services.users.base.hash_password", side_effect=hash_in_thread)

    assert await fallback_store.users.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD) is not None
    created = await fallback_store.users.create("staff@example.com", "pw", "Staff")
    assert await fallback_store.users.authenticate("staff@example.com", "pw") == created

    assert len(threads) == 3
    assert loop_thread not in threads


@pytest.mark.asyncio
async def test_memory_user_store_rejects_duplicate_email(fallback_store):
    with pytest.raises(DuplicateKeyError):
        await fallback_store.users.create(ADMIN_EMAIL.upper(), "pw", "Again")
