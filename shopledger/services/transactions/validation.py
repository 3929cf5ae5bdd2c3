"""
Validation and normalisation of transaction records.

Pure functions shared by every TransactionRecordStore implementation, so
both backends persist byte-for-byte the same shape. Records are plain
dicts with snake_case keys:

    type, date, items[{item_name, quantity, unit_price, total_price, category}],
    total_amount, notes, supplier{name, contact}, customer{name, contact}
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from shopledger.core.enums import TransactionType
from shopledger.core.exceptions import ValidationError
from shopledger.core.utils import ensure_utc, money_equal, round_money, utcnow

MAX_FUTURE = timedelta(days=1)
MAX_ITEM_NAME = 200
MAX_CATEGORY = 100
MAX_NOTES = 500

RECORD_FIELDS = ("type", "date", "items", "total_amount", "notes", "supplier", "customer")
# Fields whose change alters the record's stock effect
STOCK_FIELDS = frozenset({"type", "items"})


def normalize_items(items: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    if not items:
        raise ValidationError("At least one item is required")

    normalized = []
    for index, raw in enumerate(items):
        name = (raw.get("item_name") or "").strip()
        if not name:
            raise ValidationError(f"Item {index + 1}: item name is required")
        if len(name) > MAX_ITEM_NAME:
            raise ValidationError(f"Item {index + 1}: item name cannot exceed {MAX_ITEM_NAME} characters")

        quantity = raw.get("quantity")
        unit_price = raw.get("unit_price")
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Item {index + 1}: quantity must be greater than 0")
        if unit_price is None or unit_price < 0:
            raise ValidationError(f"Item {index + 1}: unit price cannot be negative")

        category = raw.get("category")
        category = category.strip() if isinstance(category, str) else None
        if category and len(category) > MAX_CATEGORY:
            raise ValidationError(f"Item {index + 1}: category cannot exceed {MAX_CATEGORY} characters")

        # Supplied totals are advisory; the stored figure is always quantity * price
        normalized.append({
            "item_name": name,
            "quantity": float(quantity),
            "unit_price": float(unit_price),
            "total_price": round_money(quantity * unit_price),
            "category": category or None,
        })
    return normalized


def _normalize_party(party: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not party:
        return None
    name = (party.get("name") or "").strip() or None
    contact = (party.get("contact") or "").strip() or None
    if name is None and contact is None:
        return None
    return {"name": name, "contact": contact}


def normalize_transaction(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Validate a full transaction record and return its normalised form.

    Args:
        data: Record fields (snake_case). Unknown keys are ignored.
        now: Reference time for the future-date check

    Returns:
        A new dict holding only RECORD_FIELDS, with recomputed totals

    Raises:
        ValidationError: On the first rule the record breaks
    """
    now = now or utcnow()

    try:
        tx_type = TransactionType(data.get("type"))
    except ValueError:
        raise ValidationError("Type must be either 'purchase' or 'sale'")

    tx_date = ensure_utc(data.get("date")) or now
    if tx_date > now + MAX_FUTURE:
        raise ValidationError("Transaction date cannot be more than one day in the future")

    items = normalize_items(data.get("items"))
    computed_total = round_money(sum(item["total_price"] for item in items))
    supplied_total = data.get("total_amount")
    if supplied_total is not None and not money_equal(supplied_total, computed_total):
        raise ValidationError(
            f"Total amount {supplied_total} does not match the sum of item totals {computed_total}"
        )

    supplier = _normalize_party(data.get("supplier"))
    customer = _normalize_party(data.get("customer"))
    if tx_type is TransactionType.PURCHASE:
        if not supplier or not supplier.get("name"):
            raise ValidationError("Supplier name is required for purchase transactions")
        customer = None
    else:
        supplier = None

    notes = data.get("notes")
    notes = notes.strip() if isinstance(notes, str) else None
    if notes and len(notes) > MAX_NOTES:
        raise ValidationError(f"Notes cannot exceed {MAX_NOTES} characters")

    return {
        "type": tx_type,
        "date": tx_date,
        "items": items,
        "total_amount": computed_total,
        "notes": notes or None,
        "supplier": supplier,
        "customer": customer,
    }


def merge_update(existing: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay a partial update on a stored record.

    When items change and no total is sent, the total is recomputed from
    the new items rather than checked against the old one.
    """
    merged = {field: existing.get(field) for field in RECORD_FIELDS}
    for field, value in partial.items():
        if field in RECORD_FIELDS:
            merged[field] = value
    if "items" in partial and "total_amount" not in partial:
        merged["total_amount"] = None
    return merged


def touches_stock(partial: Dict[str, Any]) -> bool:
    return bool(STOCK_FIELDS.intersection(partial))
