"""
Spreadsheet export of transactions, inventory or combined analytics rows.

Rows are flattened with pandas and written either as CSV or as an xlsx
workbook (openpyxl) with column widths fitted to the content.
"""

import io
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from shopledger.core.enums import ExportFormat, ExportType, TransactionType
from shopledger.core.exceptions import NotFoundError
from shopledger.core.utils import round_money, utcnow
from shopledger.services.ledger.base import StockLedger
from shopledger.services.transactions.base import TransactionRecordStore

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MAX_COLUMN_WIDTH = 50


@dataclass
class ExportFile:
    filename: str
    media_type: str
    content: bytes


class ExportService:
    def __init__(self, transactions: TransactionRecordStore, ledger: StockLedger):
        self.transactions = transactions
        self.ledger = ledger

    async def transaction_rows(self, start_date=None, end_date=None) -> List[Dict[str, Any]]:
        records = await self.transactions.list_all(start_date, end_date)
        rows = []
        # Newest first, one row per line item
        for record in sorted(records, key=lambda r: r.date, reverse=True):
            for item in record.items:
                rows.append({
                    "Transaction ID": record.transaction_id,
                    "Date": record.date.date().isoformat(),
                    "Type": record.type.value,
                    "Item Name": item.item_name,
                    "Category": item.category or "N/A",
                    "Quantity": item.quantity,
                    "Unit Price": item.unit_price,
                    "Total Price": item.total_price,
                    "Supplier": record.supplier.name if record.supplier and record.supplier.name else "N/A",
                    "Customer": record.customer.name if record.customer and record.customer.name else "N/A",
                    "Notes": record.notes or "",
                })
        return rows

    async def inventory_rows(self) -> List[Dict[str, Any]]:
        return [
            {
                "Item Name": item.item_name,
                "Category": item.category,
                "Current Stock": item.current_stock,
                "Min Stock Level": item.min_stock_level,
                "Unit Price": item.unit_price,
                "Total Value": item.total_value,
                "Last Updated": item.last_updated.date().isoformat(),
                "Low Stock": "Yes" if item.is_low_stock else "No",
            }
            for item in await self.ledger.list_all()
        ]

    async def analytics_rows(self, start_date=None, end_date=None) -> List[Dict[str, Any]]:
        records = await self.transactions.list_all(start_date, end_date)

        sales = defaultdict(lambda: {"quantity": 0.0, "amount": 0.0})
        purchases = defaultdict(lambda: {"count": 0, "amount": 0.0})
        for record in records:
            day = record.date.date().isoformat()
            for item in record.items:
                if record.type is TransactionType.SALE:
                    entry = sales[(day, item.item_name)]
                    entry["quantity"] += item.quantity
                    entry["amount"] += item.total_price
                else:
                    supplier = record.supplier.name if record.supplier else None
                    entry = purchases[(day, supplier)]
                    entry["count"] += 1
                    entry["amount"] += item.total_price

        rows = []
        for (day, name), entry in sorted(sales.items(), key=lambda kv: kv[0][0], reverse=True):
            rows.append({
                "Type": "Sale", "Date": day, "Item/Supplier": name,
                "Quantity/Count": entry["quantity"], "Amount": round_money(entry["amount"]),
                "Category": "Sales Data",
            })
        for (day, name), entry in sorted(purchases.items(), key=lambda kv: kv[0][0], reverse=True):
            rows.append({
                "Type": "Purchase", "Date": day, "Item/Supplier": name,
                "Quantity/Count": entry["count"], "Amount": round_money(entry["amount"]),
                "Category": "Purchase Data",
            })
        today = utcnow().date().isoformat()
        for item in await self.ledger.list_all():
            rows.append({
                "Type": "Inventory", "Date": today, "Item/Supplier": item.item_name,
                "Quantity/Count": item.current_stock, "Amount": item.total_value,
                "Category": item.category,
            })
        return rows

    async def export(self, export_type: ExportType, export_format: ExportFormat,
                     start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> ExportFile:
        """
        Build the export file.

        Raises:
            NotFoundError: NO_DATA when there is nothing to export
        """
        export_type = ExportType(export_type)
        export_format = ExportFormat(export_format)

        if export_type is ExportType.TRANSACTIONS:
            rows = await self.transaction_rows(start_date, end_date)
        elif export_type is ExportType.INVENTORY:
            rows = await self.inventory_rows()
        else:
            rows = await self.analytics_rows(start_date, end_date)

        if not rows:
            raise NotFoundError("No data available for export", code="NO_DATA")

        df = pd.DataFrame(rows)
        stem = f"{export_type.value}_{utcnow():%Y-%m-%d}"
        logger.info(f"Exporting {len(df)} {export_type.value} rows as {export_format.value}")

        if export_format is ExportFormat.CSV:
            return ExportFile(f"{stem}.csv", "text/csv", df.to_csv(index=False).encode("utf-8"))
        return ExportFile(f"{stem}.xlsx", XLSX_MEDIA_TYPE, self._to_xlsx(df, export_type.value.capitalize()))

    @staticmethod
    def _to_xlsx(df: pd.DataFrame, sheet_name: str) -> bytes:
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            worksheet = writer.sheets[sheet_name]

            # Adjust column widths
            for col in worksheet.columns:
                max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in col)
                worksheet.column_dimensions[col[0].column_letter].width = min(max_length + 2, MAX_COLUMN_WIDTH)
        return output.getvalue()
