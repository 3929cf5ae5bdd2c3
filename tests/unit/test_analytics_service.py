from datetime import datetime, timezone

import pytest

from shopledger.core.enums import AnalyticsPeriod
from shopledger.schemas.inventory import InventoryItemCreate
from shopledger.services.analytics_service import AnalyticsService, calculate_trend, period_bucket
from tests.conftest import days_ago, purchase, sale

JAN_15 = datetime(2024, 1, 15, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize("period,label", [
    (AnalyticsPeriod.DAILY, "2024-01-15"),
    (AnalyticsPeriod.WEEKLY, "Week 2, 2024"),
    (AnalyticsPeriod.MONTHLY, "2024-01"),
    (AnalyticsPeriod.YEARLY, "2024"),
])
def test_period_bucket_labels(period, label):
    _, bucket_label = period_bucket(JAN_15, period)
    assert bucket_label == label


def test_period_bucket_keys_sort_chronologically():
    dec = period_bucket(datetime(2023, 12, 31, tzinfo=timezone.utc), AnalyticsPeriod.MONTHLY)[0]
    jan = period_bucket(JAN_15, AnalyticsPeriod.MONTHLY)[0]
    assert dec < jan


@pytest.mark.parametrize("values,trend", [
    ([], "stable"),
    ([100], "stable"),
    ([100, 100, 200, 200], "up"),
    ([200, 200, 100, 100], "down"),
    ([100, 104], "stable"),
    ([0, 0, 50], "up"),
    ([0, 0], "stable"),
    ([-400, 300], "up"),
    ([-100, -300], "down"),
])
def test_calculate_trend(values, trend):
    assert calculate_trend(values) == trend


def at(month: int, day: int) -> datetime:
    return datetime(2024, month, day, 10, tzinfo=timezone.utc)


async def seed_history(backend):
    reconciler = backend.reconciler()
    kurti = purchase("Kurti-A", 10, 100, supplier="Textile House", date=at(1, 10))
    kurti["items"][0]["category"] = "Kurtis"
    await reconciler.create_transaction(kurti)
    await reconciler.create_transaction(purchase("Silk Scarf", 5, 80, supplier="Silk Route", date=at(1, 12)))
    await reconciler.create_transaction(sale("Kurti-A", 4, 150, date=at(1, 20)))
    await reconciler.create_transaction(sale("Kurti-A", 2, 150, date=at(2, 5)))


@pytest.mark.asyncio
async def test_overview(backend):
    await seed_history(backend)
    service = AnalyticsService(backend.transactions, backend.ledger)

    data = await service.overview()
    assert data == {
        "totalSales": 900.0,
        "totalPurchases": 1400.0,
        "profit": -500.0,
        "transactionCount": 4,
        # Kurti-A: 4 x 100, Silk Scarf: 5 x 80
        "inventoryValue": 800.0,
    }

    january = await service.overview(at(1, 1), at(1, 31))
    assert january["transactionCount"] == 3
    assert january["totalSales"] == 600.0


@pytest.mark.asyncio
async def test_profit_loss_by_month(memory_backend):
    await seed_history(memory_backend)
    service = AnalyticsService(memory_backend.transactions, memory_backend.ledger)

    data = await service.profit_loss(AnalyticsPeriod.MONTHLY, at(1, 1), at(3, 1))

    jan, feb = data["chartData"]
    assert jan["period"] == "2024-01"
    assert (jan["sales"], jan["purchases"], jan["profit"]) == (600.0, 1400.0, -800.0)
    assert jan["profitMargin"] == -133.33
    assert jan["transactionCount"] == {"sales": 1, "purchases": 2}
    assert feb["period"] == "2024-02"
    assert (feb["sales"], feb["profit"], feb["profitMargin"]) == (300.0, 300.0, 100.0)

    assert data["summary"] == {
        "totalSales": 900.0,
        "totalPurchases": 1400.0,
        "totalProfit": -500.0,
        "averageProfitMargin": -55.56,
    }
    assert data["trends"]["salesTrend"] == "down"
    assert data["trends"]["profitTrend"] == "up"


@pytest.mark.asyncio
async def test_profit_loss_defaults_to_recent_months(memory_backend):
    await seed_history(memory_backend)
    await memory_backend.reconciler().create_transaction(sale("Kurti-A", 1, 150, date=days_ago(3)))
    service = AnalyticsService(memory_backend.transactions, memory_backend.ledger)

    data = await service.profit_loss()
    assert data["summary"]["totalSales"] == 150.0
    assert len(data["chartData"]) == 1


@pytest.mark.asyncio
async def test_sales_trends(memory_backend):
    await seed_history(memory_backend)
    service = AnalyticsService(memory_backend.transactions, memory_backend.ledger)

    daily = await service.sales_trends(AnalyticsPeriod.DAILY, at(1, 1), at(3, 1))
    assert daily == [
        {"date": "2024-01-20", "value": 600.0, "label": "1 transactions"},
        {"date": "2024-02-05", "value": 300.0, "label": "1 transactions"},
    ]

    yearly = await service.sales_trends(AnalyticsPeriod.YEARLY, at(1, 1), at(3, 1))
    assert yearly == [{"date": "2024", "value": 900.0, "label": "2 transactions"}]

    # Default window is the last 30 days
    assert await service.sales_trends() == []


@pytest.mark.asyncio
async def test_purchase_analytics(memory_backend):
    await seed_history(memory_backend)
    await memory_backend.reconciler().create_transaction(
        purchase("Kurti-B", 2, 250, supplier="Textile House", date=at(1, 25))
    )
    service = AnalyticsService(memory_backend.transactions, memory_backend.ledger)

    data = await service.purchase_analytics()

    assert data["totalPurchases"] == 1900.0
    assert data["supplierCount"] == 2
    assert data["averageOrderValue"] == 633.33

    textile, silk = data["suppliers"]
    assert textile["supplierName"] == "Textile House"
    assert textile["totalPurchases"] == 1500.0
    assert textile["transactionCount"] == 2
    assert textile["averageOrderValue"] == 750.0
    assert textile["lastPurchaseDate"] == at(1, 25).isoformat()
    assert [i["itemName"] for i in textile["topItems"]] == ["Kurti-A", "Kurti-B"]
    assert silk["supplierName"] == "Silk Route"

    categories = {c["category"]: c for c in data["topCategories"]}
    assert categories["Kurtis"]["totalValue"] == 1000.0
    assert categories["Uncategorized"]["totalValue"] == 900.0
    assert categories["Uncategorized"]["itemCount"] == 2

    limited = await service.purchase_analytics(limit=1)
    assert len(limited["suppliers"]) == 1


@pytest.mark.asyncio
async def test_inventory_insights(memory_backend):
    reconciler = memory_backend.reconciler()
    await reconciler.create_transaction(purchase("Kurti-A", 10, 100, date=days_ago(20)))
    await reconciler.create_transaction(purchase("Silk Scarf", 30, 80, date=days_ago(20)))
    await reconciler.create_transaction(sale("Kurti-A", 8, 150, date=days_ago(2)))
    await reconciler.create_transaction(sale("Silk Scarf", 1, 120, date=days_ago(2)))
    await memory_backend.ledger.create_item(InventoryItemCreate(item_name="Bangles", current_stock=12, unit_price=30))
    service = AnalyticsService(memory_backend.transactions, memory_backend.ledger)

    data = await service.inventory_insights()

    best = data["bestSelling"]
    assert [b["itemName"] for b in best] == ["Kurti-A", "Silk Scarf"]
    assert best[0]["totalSold"] == 8
    assert best[0]["revenue"] == 1200.0
    assert best[0]["averagePrice"] == 150.0

    # Silk Scarf: 29 in stock, only 1 sold; Bangles: never sold
    slow = data["slowMoving"]
    assert [s["itemName"] for s in slow] == ["Silk Scarf", "Bangles"]
    assert slow[1]["lastSaleDate"] is None

    assert [low["itemName"] for low in data["lowStock"]] == ["Kurti-A"]


@pytest.mark.asyncio
async def test_inventory_summary(memory_backend):
    ledger = memory_backend.ledger
    await ledger.create_item(InventoryItemCreate(item_name="Kurti-A", category="Kurtis", current_stock=10, unit_price=100))
    await ledger.create_item(InventoryItemCreate(item_name="Kurti-B", category="Kurtis", current_stock=0, unit_price=250))
    await ledger.create_item(InventoryItemCreate(item_name="Scarf", category="Accessories", current_stock=3, unit_price=50))
    service = AnalyticsService(memory_backend.transactions, ledger)

    summary = await service.inventory_summary()

    assert summary["overall"] == {
        "totalValue": 1150.0,
        "totalItems": 3,
        "totalStock": 13,
        "lowStockItems": 2,
        "outOfStockItems": 1,
    }
    kurtis, accessories = summary["categories"]
    assert kurtis["category"] == "Kurtis"
    assert kurtis["totalItems"] == 2
    assert kurtis["lowStockItems"] == 1
    assert accessories["totalValue"] == 150.0
    assert summary["topValueItems"][0]["itemName"] == "Kurti-A"


@pytest.mark.asyncio
async def test_low_stock_report(memory_backend):
    ledger = memory_backend.ledger
    await ledger.create_item(InventoryItemCreate(item_name="Kurti-A", current_stock=10, unit_price=100))
    await ledger.create_item(InventoryItemCreate(item_name="Kurti-B", current_stock=0, unit_price=250))
    await ledger.create_item(InventoryItemCreate(item_name="Scarf", current_stock=3, unit_price=50))
    service = AnalyticsService(memory_backend.transactions, ledger)

    report = await service.low_stock_report()
    assert [i["itemName"] for i in report["items"]] == ["Kurti-B", "Scarf"]
    assert report["summary"] == {"totalLowStockItems": 2, "totalCriticalItems": 1, "threshold": 0}

    report = await service.low_stock_report(threshold=10)
    assert report["summary"]["totalLowStockItems"] == 3
    assert report["summary"]["threshold"] == 10
