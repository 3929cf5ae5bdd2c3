"""
Consistency reconciler.

Turns transaction create/update/delete into stock ledger movements:

- create: forward pass (purchase items increase stock, sale items decrease it)
- update: reversal pass over the stored items, then forward pass over the new ones
- delete: reversal pass, then the record is removed

Each pass fans out one apply_delta per line item (lines for the same
item in order, different items concurrently) and waits for every
outcome; one item failing never stops the others from being attempted.
Outcomes come back as a BatchResult.

What a failed adjustment means depends on the policy:

- BEST_EFFORT: failures are logged and reported; the record write happens
  regardless. The record is the source of truth, stock drift can be
  repaired later with the stock replay service.
- STRICT: passes run before the record write. Any failure undoes the
  adjustments already applied (opposite direction, reverse order) and
  raises StockAdjustmentError, so record and ledger stay as they were.

A BackendUnavailableError from any item is re-raised once its pass has
finished, so the store router can retry the whole request on the fallback.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from shopledger.core.enums import StockAdjustmentPolicy, StockDirection, TransactionType
from shopledger.core.exceptions import BackendUnavailableError, StockAdjustmentError
from shopledger.schemas.transaction import TransactionItem, TransactionRead
from shopledger.services.ledger.base import StockLedger
from shopledger.services.transactions.base import TransactionRecordStore, record_fields
from shopledger.services.transactions.validation import merge_update, normalize_transaction, touches_stock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    """One apply_delta call."""
    item_name: str
    quantity: float
    unit_price: float
    direction: StockDirection
    category: Optional[str] = None
    reprice: bool = True

    def inverse(self) -> "StockAdjustment":
        # Undoing never reprices; the price before the adjustment is not known here
        return StockAdjustment(
            item_name=self.item_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            direction=self.direction.opposite,
            category=self.category,
            reprice=False,
        )


@dataclass
class AdjustmentFailure:
    adjustment: StockAdjustment
    error: Exception

    @property
    def message(self) -> str:
        return getattr(self.error, "message", None) or str(self.error) or type(self.error).__name__

    def describe(self) -> str:
        a = self.adjustment
        return f"{a.direction.value} {a.quantity:g} x '{a.item_name}' failed: {self.message}"


@dataclass
class BatchResult:
    succeeded: List[StockAdjustment] = field(default_factory=list)
    failed: List[AdjustmentFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def unavailable(self) -> Optional[BackendUnavailableError]:
        for failure in self.failed:
            if isinstance(failure.error, BackendUnavailableError):
                return failure.error
        return None


@dataclass
class ReconcileResult:
    transaction: TransactionRead
    reversal: Optional[BatchResult] = None
    forward: Optional[BatchResult] = None

    @property
    def failures(self) -> List[AdjustmentFailure]:
        failed = []
        for batch in (self.reversal, self.forward):
            if batch is not None:
                failed.extend(batch.failed)
        return failed

    def warnings(self) -> List[str]:
        return [failure.describe() for failure in self.failures]


def forward_adjustments(tx_type: TransactionType, items: Iterable[TransactionItem]) -> List[StockAdjustment]:
    direction = TransactionType(tx_type).direction
    return [
        StockAdjustment(
            item_name=item.item_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            direction=direction,
            category=item.category,
            reprice=direction is StockDirection.INCREASE,
        )
        for item in items
    ]


def reversal_adjustments(tx_type: TransactionType, items: Iterable[TransactionItem]) -> List[StockAdjustment]:
    """
    Undo a forward application.

    Reversing a sale puts the units back at the current price, so deleting
    a sale restores the exact pre-sale value.
    """
    return [adjustment.inverse() for adjustment in forward_adjustments(tx_type, items)]


def _items(record: Dict[str, Any]) -> List[TransactionItem]:
    return [TransactionItem(**item) for item in record["items"]]


class ConsistencyReconciler:
    def __init__(
        self,
        transactions: TransactionRecordStore,
        ledger: StockLedger,
        policy: StockAdjustmentPolicy = StockAdjustmentPolicy.BEST_EFFORT,
    ):
        self.transactions = transactions
        self.ledger = ledger
        self.policy = StockAdjustmentPolicy(policy)

    @property
    def strict(self) -> bool:
        return self.policy is StockAdjustmentPolicy.STRICT

    async def apply_batch(self, adjustments: List[StockAdjustment], label: str = "pass") -> BatchResult:
        """
        Issue the adjustments and collect every outcome.

        Different items are adjusted concurrently. Lines naming the same item
        run one after another in their original order, so a repeated line
        sees the stock left by the previous one.
        """
        result = BatchResult()
        if not adjustments:
            return result

        by_item: Dict[str, List[int]] = {}
        for index, adjustment in enumerate(adjustments):
            by_item.setdefault(adjustment.item_name, []).append(index)
        outcomes: List[Any] = [None] * len(adjustments)

        async def apply_in_order(indexes: List[int]) -> None:
            for index in indexes:
                a = adjustments[index]
                try:
                    outcomes[index] = await self.ledger.apply_delta(
                        a.item_name, a.quantity, a.unit_price, a.direction,
                        category=a.category, reprice=a.reprice,
                    )
                except Exception as e:
                    outcomes[index] = e

        await asyncio.gather(*(apply_in_order(indexes) for indexes in by_item.values()))

        for adjustment, outcome in zip(adjustments, outcomes):
            if isinstance(outcome, Exception):
                failure = AdjustmentFailure(adjustment, outcome)
                result.failed.append(failure)
                logger.error(f"Stock {label}: {failure.describe()}")
            else:
                result.succeeded.append(adjustment)
        return result

    async def _run_pass(self, adjustments: List[StockAdjustment], label: str) -> BatchResult:
        result = await self.apply_batch(adjustments, label)
        unavailable = result.unavailable()
        if unavailable is not None:
            raise unavailable
        return result

    async def compensate(self, applied: List[StockAdjustment]) -> BatchResult:
        """Undo applied adjustments, most recent first."""
        result = BatchResult()
        for adjustment in reversed(applied):
            inverse = adjustment.inverse()
            try:
                await self.ledger.apply_delta(
                    inverse.item_name, inverse.quantity, inverse.unit_price, inverse.direction,
                    category=inverse.category, reprice=False,
                )
                result.succeeded.append(inverse)
            except Exception as e:
                failure = AdjustmentFailure(inverse, e)
                result.failed.append(failure)
                logger.error(f"Stock compensation: {failure.describe()}")
        return result

    async def _strict_passes(self, passes: List[tuple]) -> List[BatchResult]:
        """
        Run passes in order. On the first pass with a failure, undo everything
        applied so far and raise StockAdjustmentError.
        """
        applied: List[StockAdjustment] = []
        results = []
        for label, adjustments in passes:
            result = await self._run_pass(adjustments, label)
            applied.extend(result.succeeded)
            results.append(result)
            if not result.ok:
                await self.compensate(applied)
                raise StockAdjustmentError(
                    f"Stock {label} failed for {len(result.failed)} item(s): "
                    + "; ".join(f.message for f in result.failed),
                    result=result,
                )
        return results

    async def _write_or_compensate(self, write, results: List[BatchResult]):
        try:
            return await write
        except Exception:
            applied = [a for r in results for a in r.succeeded]
            logger.error(f"Record write failed after stock adjustments; undoing {len(applied)} adjustment(s)")
            await self.compensate(applied)
            raise

    async def create_transaction(self, data: Dict[str, Any]) -> ReconcileResult:
        """
        Store a new transaction and apply its items to stock.

        Raises:
            ValidationError: Before any stock moves
            StockAdjustmentError: Strict policy only
        """
        if not self.strict:
            record = await self.transactions.create(data)
            forward = await self._run_pass(forward_adjustments(record.type, record.items), "forward")
            return ReconcileResult(record, forward=forward)

        normalized = normalize_transaction(data)
        (forward,) = await self._strict_passes([
            ("forward", forward_adjustments(normalized["type"], _items(normalized))),
        ])
        record = await self._write_or_compensate(self.transactions.create(data), [forward])
        return ReconcileResult(record, forward=forward)

    async def update_transaction(self, record_id: int, partial: Dict[str, Any]) -> ReconcileResult:
        """
        Apply a partial update. Stock passes only run when items or type change.
        """
        existing = await self.transactions.find_by_id(record_id)
        merged = normalize_transaction(merge_update(record_fields(existing), partial))

        if not touches_stock(partial):
            record = await self.transactions.update(record_id, partial)
            return ReconcileResult(record)

        reversal_plan = reversal_adjustments(existing.type, existing.items)
        forward_plan = forward_adjustments(merged["type"], _items(merged))

        if not self.strict:
            record = await self.transactions.update(record_id, partial)
            reversal = await self._run_pass(reversal_plan, "reversal")
            forward = await self._run_pass(forward_plan, "forward")
            return ReconcileResult(record, reversal=reversal, forward=forward)

        reversal, forward = await self._strict_passes([
            ("reversal", reversal_plan),
            ("forward", forward_plan),
        ])
        record = await self._write_or_compensate(
            self.transactions.update(record_id, partial), [reversal, forward]
        )
        return ReconcileResult(record, reversal=reversal, forward=forward)

    async def delete_transaction(self, record_id: int) -> ReconcileResult:
        """Reverse the stored items, then remove the record."""
        existing = await self.transactions.find_by_id(record_id)
        reversal_plan = reversal_adjustments(existing.type, existing.items)

        if not self.strict:
            reversal = await self._run_pass(reversal_plan, "reversal")
            record = await self.transactions.delete(record_id)
            return ReconcileResult(record, reversal=reversal)

        (reversal,) = await self._strict_passes([("reversal", reversal_plan)])
        record = await self._write_or_compensate(self.transactions.delete(record_id), [reversal])
        return ReconcileResult(record, reversal=reversal)
