"""
Utility functions for the application.
"""
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from shopledger.core.exceptions import ValidationError

# Equality tolerance for currency amounts
MONEY_EPSILON = 0.01
# Tolerance for float drift on stock quantities
QUANTITY_EPSILON = 1e-9

MAX_PAGE_SIZE = 100


def round_money(value: float) -> float:
    """Round a currency amount to 2 decimal places, halves away from zero."""
    return float(Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def money_equal(a: float, b: float) -> bool:
    return abs(a - b) <= MONEY_EPSILON + QUANTITY_EPSILON


def clean_quantity(value: float) -> float:
    """Snap float noise (e.g. 0.30000000000000004) back onto the nearest stored value."""
    rounded = round(value, 9)
    return 0.0 if rounded == 0 else rounded


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite hands back naive datetimes even for timezone aware columns, so
    everything leaving a store goes through here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_query_date(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a date query parameter.

    Args:
        value: Raw query string value (ISO date or datetime)
        end_of_day: Extend a date-only value to 23:59:59.999999

    Returns:
        Timezone aware datetime, or None when no value was given

    Raises:
        ValidationError: INVALID_DATE if the value cannot be parsed
    """
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid date format: {value}", code="INVALID_DATE")

    if end_of_day and len(value) <= 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return ensure_utc(parsed)


def validate_pagination(page: int, limit: int) -> None:
    if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(
            f"Invalid pagination parameters. Page must be >= 1, limit must be between 1 and {MAX_PAGE_SIZE}.",
            code="INVALID_PARAMETERS",
        )


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def page_bounds(page: int, limit: int) -> Tuple[int, int]:
    """Slice bounds for a 1-indexed page."""
    start = (page - 1) * limit
    return start, start + limit


def months_ago(months: int, now: Optional[datetime] = None) -> datetime:
    """Same day-of-month `months` back, clamped to the end of shorter months."""
    now = now or utcnow()
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = date(year + (month // 12), (month % 12) + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return now.replace(year=year, month=month, day=min(now.day, last_day))
