import pytest

from shopledger.schemas.inventory import InventoryItemCreate
from shopledger.services.stock_replay import StockReplayService
from tests.conftest import days_ago, purchase, sale


async def stock_of(ledger, item_name):
    return (await ledger.get_by_name(item_name)).current_stock


@pytest.mark.asyncio
async def test_consistent_history(backend):
    reconciler = backend.reconciler()
    await reconciler.create_transaction(purchase("Kurti-A", 10, 100))
    await reconciler.create_transaction(sale("Kurti-A", 4, 150))
    service = StockReplayService(backend.transactions, backend.ledger)

    expected = await service.expected_stock()
    assert expected["Kurti-A"].quantity == 6
    assert expected["Kurti-A"].unit_price == 100

    report = await service.check()
    assert report.consistent
    assert report.checked == 1


@pytest.mark.asyncio
async def test_drift_is_detected_and_repaired(backend):
    reconciler = backend.reconciler()
    await reconciler.create_transaction(purchase("Kurti-A", 10, 100))
    item = await backend.ledger.get_by_name("Kurti-A")
    # Direct edit outside the transaction flow
    await backend.ledger.update_item(item.id, {"current_stock": 3})
    service = StockReplayService(backend.transactions, backend.ledger)

    report = await service.check()
    assert not report.consistent
    drift = report.drift[0]
    assert (drift.item_name, drift.expected, drift.actual) == ("Kurti-A", 10, 3)
    assert drift.difference == -7
    assert not drift.missing

    report = await service.repair()
    assert report.repaired == ["Kurti-A"]
    assert await stock_of(backend.ledger, "Kurti-A") == 10
    assert (await service.check()).consistent


@pytest.mark.asyncio
async def test_missing_item_is_recreated(backend):
    reconciler = backend.reconciler()
    bought = purchase("Kurti-A", 10, 100)
    bought["items"][0]["category"] = "Kurtis"
    await reconciler.create_transaction(bought)
    item = await backend.ledger.get_by_name("Kurti-A")
    await backend.ledger.delete_item(item.id)
    service = StockReplayService(backend.transactions, backend.ledger)

    report = await service.check()
    assert report.drift[0].missing

    await service.repair()
    recreated = await backend.ledger.get_by_name("Kurti-A")
    assert recreated.current_stock == 10
    assert recreated.unit_price == 100
    assert recreated.category == "Kurtis"
    assert recreated.total_value == 1000


@pytest.mark.asyncio
async def test_oversold_history_and_untracked_items(backend):
    reconciler = backend.reconciler()
    # Best effort keeps the sale even though there was nothing to sell
    await reconciler.create_transaction(sale("Phantom", 2, 50))
    await backend.ledger.create_item(InventoryItemCreate(item_name="Bangles", current_stock=12))
    service = StockReplayService(backend.transactions, backend.ledger)

    report = await service.check()
    assert report.oversold == ["Phantom"]
    assert report.untracked == ["Bangles"]
    assert report.drift[0].expected == 0
    assert report.drift[0].missing

    await service.repair()
    assert await stock_of(backend.ledger, "Phantom") == 0
    assert await stock_of(backend.ledger, "Bangles") == 12


@pytest.mark.asyncio
async def test_rejected_sale_is_skipped_like_the_ledger_does(backend):
    reconciler = backend.reconciler()
    # Kept as a record, but the ledger refused to move stock for it
    short = await reconciler.create_transaction(sale("Kurti-A", 5, 150))
    assert short.warnings()
    await reconciler.create_transaction(purchase("Kurti-A", 10, 100))
    assert await stock_of(backend.ledger, "Kurti-A") == 10
    service = StockReplayService(backend.transactions, backend.ledger)

    expected = await service.expected_stock()
    assert expected["Kurti-A"].quantity == 10
    assert expected["Kurti-A"].skipped_sales == [short.transaction.transaction_id]

    report = await service.check()
    assert report.consistent
    assert report.oversold == ["Kurti-A"]

    await service.repair()
    assert await stock_of(backend.ledger, "Kurti-A") == 10


@pytest.mark.asyncio
async def test_replay_follows_creation_order_not_transaction_date(backend):
    reconciler = backend.reconciler()
    await reconciler.create_transaction(purchase("Kurti-A", 3, 100, date=days_ago(1)))
    # Back-dated purchase recorded after the sale it would have covered
    await reconciler.create_transaction(sale("Kurti-A", 5, 150, date=days_ago(1)))
    await reconciler.create_transaction(purchase("Kurti-A", 10, 100, date=days_ago(5)))
    assert await stock_of(backend.ledger, "Kurti-A") == 13
    service = StockReplayService(backend.transactions, backend.ledger)

    assert (await service.check()).consistent
