"""
Re-derive stock levels from transaction history.

Best-effort reconciliation can leave the ledger out of step with the
records (a failed adjustment, a crash between the record write and the
stock writes, concurrent edits on the same item). Replaying every stored
transaction gives the stock the ledger should hold; the difference is
drift.

The replay follows the ledger's own rules so that a ledger nobody
tampered with always replays clean:

- records are applied in the order they were created (record id), which
  is the order their stock movements reached the ledger
- a sale line larger than the stock replayed so far is skipped, exactly
  as the ledger rejects it under the best-effort policy, and the item is
  reported as oversold
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shopledger.core.enums import TransactionType
from shopledger.core.exceptions import ShopLedgerError
from shopledger.core.utils import QUANTITY_EPSILON, clean_quantity
from shopledger.services.ledger.base import StockLedger
from shopledger.services.transactions.base import TransactionRecordStore

logger = logging.getLogger(__name__)


@dataclass
class ExpectedStock:
    item_name: str
    quantity: float = 0.0
    # Latest purchase price seen in history
    unit_price: Optional[float] = None
    category: Optional[str] = None
    # Transaction ids of sale lines the ledger would have rejected
    skipped_sales: List[str] = field(default_factory=list)


@dataclass
class StockDrift:
    item_name: str
    expected: float
    actual: Optional[float]

    @property
    def difference(self) -> float:
        return clean_quantity((self.actual or 0.0) - self.expected)

    @property
    def missing(self) -> bool:
        return self.actual is None


@dataclass
class ReplayReport:
    checked: int = 0
    drift: List[StockDrift] = field(default_factory=list)
    # Ledger items no transaction mentions (created directly)
    untracked: List[str] = field(default_factory=list)
    # Items with at least one sale recorded against too little stock
    oversold: List[str] = field(default_factory=list)
    repaired: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.drift


class StockReplayService:
    def __init__(self, transactions: TransactionRecordStore, ledger: StockLedger):
        self.transactions = transactions
        self.ledger = ledger

    async def expected_stock(self) -> Dict[str, ExpectedStock]:
        """Fold the whole history into per-item stock."""
        expected: Dict[str, ExpectedStock] = {}
        records = sorted(await self.transactions.list_all(), key=lambda r: r.id)
        for record in records:
            for item in record.items:
                entry = expected.setdefault(item.item_name, ExpectedStock(item.item_name))
                if record.type is TransactionType.PURCHASE:
                    entry.quantity += item.quantity
                    entry.unit_price = item.unit_price
                    entry.category = entry.category or item.category
                elif entry.quantity + QUANTITY_EPSILON < item.quantity:
                    entry.skipped_sales.append(record.transaction_id)
                else:
                    entry.quantity -= item.quantity
                entry.quantity = clean_quantity(entry.quantity)
        return expected

    async def check(self) -> ReplayReport:
        expected = await self.expected_stock()
        ledger = {item.item_name: item for item in await self.ledger.list_all()}
        report = ReplayReport(checked=len(expected))

        for name, entry in sorted(expected.items()):
            if entry.skipped_sales:
                report.oversold.append(name)
            item = ledger.get(name)
            actual = item.current_stock if item else None
            if actual is None or abs(actual - entry.quantity) > QUANTITY_EPSILON:
                report.drift.append(StockDrift(name, entry.quantity, actual))

        report.untracked = sorted(set(ledger) - set(expected))
        for drift in report.drift:
            logger.warning(f"Stock drift on '{drift.item_name}': expected {drift.expected:g}, actual {drift.actual}")
        return report

    async def repair(self) -> ReplayReport:
        """
        Write the replayed stock back to the ledger.

        Missing items are recreated through get_or_create with their latest
        purchase price.
        """
        report = await self.check()
        expected = await self.expected_stock()

        for drift in report.drift:
            entry = expected[drift.item_name]
            try:
                item = await self.ledger.get_by_name(drift.item_name)
                if item is None:
                    item = await self.ledger.get_or_create(
                        drift.item_name, entry.unit_price or 0.0, entry.category
                    )
                await self.ledger.update_item(item.id, {"current_stock": drift.expected})
                report.repaired.append(drift.item_name)
                logger.info(f"Repaired '{drift.item_name}': {drift.actual} -> {drift.expected:g}")
            except ShopLedgerError as e:
                logger.error(f"Could not repair '{drift.item_name}': {e.message}")
        return report
