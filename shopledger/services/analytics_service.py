"""
Read-only aggregations over transaction history and the stock ledger.

Everything is computed in Python from list_all() on whichever backend the
router picked, so the figures are identical on the persistent and the
fallback store. Nothing in here writes.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from shopledger.core.enums import AnalyticsPeriod, TransactionType
from shopledger.core.utils import months_ago, round_money, utcnow
from shopledger.schemas.inventory import InventoryItemRead
from shopledger.schemas.transaction import TransactionRead
from shopledger.services.ledger.base import StockLedger
from shopledger.services.transactions.base import TransactionRecordStore

logger = logging.getLogger(__name__)

TREND_THRESHOLD_PERCENT = 5.0
UNCATEGORIZED = "Uncategorized"


def period_bucket(moment: datetime, period: AnalyticsPeriod) -> Tuple[tuple, str]:
    """Sort key and display label of the period containing `moment`."""
    period = AnalyticsPeriod(period)
    if period is AnalyticsPeriod.WEEKLY:
        # Sunday-based week of the year, 0-53
        week = int(moment.strftime("%U"))
        return (moment.year, week), f"Week {week}, {moment.year}"
    if period is AnalyticsPeriod.MONTHLY:
        return (moment.year, moment.month), f"{moment.year}-{moment.month:02d}"
    if period is AnalyticsPeriod.YEARLY:
        return (moment.year,), str(moment.year)
    return (moment.year, moment.month, moment.day), moment.date().isoformat()


def calculate_trend(values: List[float]) -> str:
    """Compare the average of the second half of a series with the first half."""
    if len(values) < 2:
        return "stable"
    mid = len(values) // 2
    first_avg = sum(values[:mid]) / mid
    second_avg = sum(values[mid:]) / (len(values) - mid)
    if first_avg == 0:
        if second_avg > 0:
            return "up"
        if second_avg < 0:
            return "down"
        return "stable"
    change = (second_avg - first_avg) / abs(first_avg) * 100
    if change > TREND_THRESHOLD_PERCENT:
        return "up"
    if change < -TREND_THRESHOLD_PERCENT:
        return "down"
    return "stable"


def summarize_inventory(items: List[InventoryItemRead]) -> Dict[str, Any]:
    categories: Dict[str, Dict[str, Any]] = {}
    for item in items:
        entry = categories.setdefault(item.category, {
            "category": item.category,
            "totalItems": 0,
            "totalStock": 0.0,
            "totalValue": 0.0,
            "lowStockItems": 0,
        })
        entry["totalItems"] += 1
        entry["totalStock"] += item.current_stock
        entry["totalValue"] = round_money(entry["totalValue"] + item.total_value)
        if item.is_low_stock:
            entry["lowStockItems"] += 1

    top_value = sorted(items, key=lambda i: i.total_value, reverse=True)[:10]
    recent = sorted(items, key=lambda i: i.last_updated, reverse=True)[:10]
    return {
        "overall": {
            "totalValue": round_money(sum(i.total_value for i in items)),
            "totalItems": len(items),
            "totalStock": sum(i.current_stock for i in items),
            "lowStockItems": sum(1 for i in items if i.is_low_stock),
            "outOfStockItems": sum(1 for i in items if i.current_stock == 0),
        },
        "categories": sorted(categories.values(), key=lambda c: c["totalValue"], reverse=True),
        "topValueItems": [
            {
                "itemName": i.item_name,
                "category": i.category,
                "currentStock": i.current_stock,
                "unitPrice": i.unit_price,
                "totalValue": i.total_value,
            }
            for i in top_value
        ],
        "recentlyUpdated": [
            {
                "itemName": i.item_name,
                "category": i.category,
                "currentStock": i.current_stock,
                "lastUpdated": i.last_updated.isoformat(),
            }
            for i in recent
        ],
    }


class AnalyticsService:
    def __init__(self, transactions: TransactionRecordStore, ledger: StockLedger):
        self.transactions = transactions
        self.ledger = ledger

    async def overview(self, start_date: Optional[datetime] = None,
                       end_date: Optional[datetime] = None) -> Dict[str, Any]:
        records = await self.transactions.list_all(start_date, end_date)
        items = await self.ledger.list_all()

        total_sales = sum(r.total_amount for r in records if r.type is TransactionType.SALE)
        total_purchases = sum(r.total_amount for r in records if r.type is TransactionType.PURCHASE)
        return {
            "totalSales": round_money(total_sales),
            "totalPurchases": round_money(total_purchases),
            "profit": round_money(total_sales - total_purchases),
            "transactionCount": len(records),
            "inventoryValue": round_money(sum(i.total_value for i in items)),
        }

    async def sales_trends(self, period: AnalyticsPeriod = AnalyticsPeriod.DAILY,
                           start_date: Optional[datetime] = None,
                           end_date: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Sales totals per period. Defaults to the last 30 days."""
        if start_date is None and end_date is None:
            start_date = utcnow() - timedelta(days=30)
        sales = await self.transactions.list_all(start_date, end_date, TransactionType.SALE)

        buckets: Dict[tuple, Dict[str, Any]] = {}
        for record in sales:
            key, label = period_bucket(record.date, period)
            bucket = buckets.setdefault(key, {"date": label, "total": 0.0, "count": 0})
            bucket["total"] += record.total_amount
            bucket["count"] += 1

        return [
            {
                "date": bucket["date"],
                "value": round_money(bucket["total"]),
                "label": f"{bucket['count']} transactions",
            }
            for _, bucket in sorted(buckets.items())
        ]

    async def profit_loss(self, period: AnalyticsPeriod = AnalyticsPeriod.MONTHLY,
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None) -> Dict[str, Any]:
        """Sales against purchases per period. Defaults to the last 6 months."""
        if start_date is None and end_date is None:
            start_date = months_ago(6)
        records = await self.transactions.list_all(start_date, end_date)

        buckets: Dict[tuple, Dict[str, Any]] = {}
        for record in records:
            key, label = period_bucket(record.date, period)
            bucket = buckets.setdefault(key, {
                "period": label, "sales": 0.0, "purchases": 0.0, "salesCount": 0, "purchasesCount": 0,
            })
            if record.type is TransactionType.SALE:
                bucket["sales"] += record.total_amount
                bucket["salesCount"] += 1
            else:
                bucket["purchases"] += record.total_amount
                bucket["purchasesCount"] += 1

        chart_data = []
        for _, bucket in sorted(buckets.items()):
            profit = bucket["sales"] - bucket["purchases"]
            margin = profit / bucket["sales"] * 100 if bucket["sales"] > 0 else 0.0
            chart_data.append({
                "period": bucket["period"],
                "sales": round_money(bucket["sales"]),
                "purchases": round_money(bucket["purchases"]),
                "profit": round_money(profit),
                "profitMargin": round_money(margin),
                "transactionCount": {
                    "sales": bucket["salesCount"],
                    "purchases": bucket["purchasesCount"],
                },
            })

        total_sales = sum(d["sales"] for d in chart_data)
        total_purchases = sum(d["purchases"] for d in chart_data)
        total_profit = sum(d["profit"] for d in chart_data)
        return {
            "summary": {
                "totalSales": round_money(total_sales),
                "totalPurchases": round_money(total_purchases),
                "totalProfit": round_money(total_profit),
                "averageProfitMargin": round_money(total_profit / total_sales * 100) if total_sales > 0 else 0.0,
            },
            "chartData": chart_data,
            "trends": {
                "salesTrend": calculate_trend([d["sales"] for d in chart_data]),
                "profitTrend": calculate_trend([d["profit"] for d in chart_data]),
                "profitMarginTrend": calculate_trend([d["profitMargin"] for d in chart_data]),
            },
        }

    async def purchase_analytics(self, start_date: Optional[datetime] = None,
                                 end_date: Optional[datetime] = None, limit: int = 10) -> Dict[str, Any]:
        purchases = await self.transactions.list_all(start_date, end_date, TransactionType.PURCHASE)

        suppliers: Dict[str, Dict[str, Any]] = {}
        categories: Dict[str, Dict[str, Any]] = {}
        for record in purchases:
            name = record.supplier.name if record.supplier else None
            supplier = suppliers.setdefault(name, {
                "supplierName": name,
                "totalPurchases": 0.0,
                "transactionCount": 0,
                "lastPurchaseDate": record.date,
                "items": defaultdict(lambda: {"totalQuantity": 0.0, "totalValue": 0.0}),
            })
            supplier["totalPurchases"] += record.total_amount
            supplier["transactionCount"] += 1
            supplier["lastPurchaseDate"] = max(supplier["lastPurchaseDate"], record.date)

            for item in record.items:
                stats = supplier["items"][item.item_name]
                stats["totalQuantity"] += item.quantity
                stats["totalValue"] += item.total_price

                category = item.category or UNCATEGORIZED
                cat = categories.setdefault(category, {
                    "category": category, "totalValue": 0.0, "itemCount": 0, "totalQuantity": 0.0,
                })
                cat["totalValue"] += item.total_price
                cat["itemCount"] += 1
                cat["totalQuantity"] += item.quantity

        ranked = sorted(suppliers.values(), key=lambda s: s["totalPurchases"], reverse=True)[:limit]
        supplier_rows = []
        for supplier in ranked:
            top_items = sorted(supplier["items"].items(), key=lambda kv: kv[1]["totalValue"], reverse=True)[:5]
            supplier_rows.append({
                "supplierName": supplier["supplierName"],
                "totalPurchases": round_money(supplier["totalPurchases"]),
                "transactionCount": supplier["transactionCount"],
                "averageOrderValue": round_money(supplier["totalPurchases"] / supplier["transactionCount"]),
                "lastPurchaseDate": supplier["lastPurchaseDate"].isoformat(),
                "topItems": [
                    {
                        "itemName": name,
                        "totalQuantity": stats["totalQuantity"],
                        "totalValue": round_money(stats["totalValue"]),
                    }
                    for name, stats in top_items
                ],
            })

        total = sum(r.total_amount for r in purchases)
        top_categories = sorted(categories.values(), key=lambda c: c["totalValue"], reverse=True)[:10]
        return {
            "totalPurchases": round_money(total),
            "supplierCount": len({name for name in suppliers if name}),
            "averageOrderValue": round_money(total / len(purchases)) if purchases else 0.0,
            "suppliers": supplier_rows,
            "topCategories": [
                {"category": c["category"], "totalValue": round_money(c["totalValue"]), "itemCount": c["itemCount"]}
                for c in top_categories
            ],
        }

    async def inventory_insights(self, start_date: Optional[datetime] = None,
                                 end_date: Optional[datetime] = None, limit: int = 10) -> Dict[str, Any]:
        """
        Best sellers in the window (default last 3 months), slow movers and
        low stock. Slow movers look at all sales history: never sold, not
        sold in the last month, or more than 10 in stock with fewer than 5 sold.
        """
        if start_date is None and end_date is None:
            start_date = months_ago(3)
        window_sales = await self.transactions.list_all(start_date, end_date, TransactionType.SALE)

        best: Dict[str, Dict[str, Any]] = {}
        for record in window_sales:
            for item in record.items:
                entry = best.setdefault(item.item_name, {
                    "itemName": item.item_name, "totalSold": 0.0, "revenue": 0.0,
                    "transactionCount": 0, "priceTotal": 0.0, "lastSaleDate": record.date,
                })
                entry["totalSold"] += item.quantity
                entry["revenue"] += item.total_price
                entry["transactionCount"] += 1
                entry["priceTotal"] += item.unit_price
                entry["lastSaleDate"] = max(entry["lastSaleDate"], record.date)

        best_selling = [
            {
                "itemName": e["itemName"],
                "totalSold": e["totalSold"],
                "revenue": round_money(e["revenue"]),
                "transactionCount": e["transactionCount"],
                "averagePrice": round_money(e["priceTotal"] / e["transactionCount"]),
                "lastSaleDate": e["lastSaleDate"].isoformat(),
            }
            for e in sorted(best.values(), key=lambda e: e["totalSold"], reverse=True)[:limit]
        ]

        all_sales = await self.transactions.list_all(tx_type=TransactionType.SALE)
        history: Dict[str, Dict[str, Any]] = {}
        for record in all_sales:
            for item in record.items:
                entry = history.setdefault(item.item_name, {"lastSaleDate": record.date, "totalSold": 0.0})
                entry["totalSold"] += item.quantity
                entry["lastSaleDate"] = max(entry["lastSaleDate"], record.date)

        threshold = months_ago(1)
        slow = []
        for item in await self.ledger.list_all():
            sold = history.get(item.item_name)
            last_sale = sold["lastSaleDate"] if sold else None
            total_sold = sold["totalSold"] if sold else 0.0
            never_sold = last_sale is None
            stale = last_sale is not None and last_sale < threshold
            overstocked = item.current_stock > 10 and total_sold < 5
            if never_sold or stale or overstocked:
                slow.append((item, last_sale))

        # Highest stock first, then never sold, then oldest sale
        slow.sort(key=lambda pair: (
            -pair[0].current_stock,
            pair[1] is not None,
            pair[1].timestamp() if pair[1] else 0,
        ))

        low_stock = (await self.ledger.low_stock_items())[:limit]
        return {
            "bestSelling": best_selling,
            "slowMoving": [
                {
                    "itemName": item.item_name,
                    "currentStock": item.current_stock,
                    "lastSaleDate": last_sale.isoformat() if last_sale else None,
                }
                for item, last_sale in slow[:limit]
            ],
            "lowStock": [
                {"itemName": i.item_name, "currentStock": i.current_stock, "minStockLevel": i.min_stock_level}
                for i in low_stock
            ],
        }

    async def inventory_summary(self) -> Dict[str, Any]:
        return summarize_inventory(await self.ledger.list_all())

    async def low_stock_report(self, threshold: float = 0) -> Dict[str, Any]:
        items = await self.ledger.low_stock_items(threshold)
        return {
            "items": [item.to_api() for item in items],
            "summary": {
                "totalLowStockItems": len(items),
                "totalCriticalItems": sum(1 for item in items if item.current_stock == 0),
                "threshold": threshold or 0,
            },
        }
