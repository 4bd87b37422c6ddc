"""Value normalization between Python values and storage values."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_value(value: Any) -> Any:
    """
    Normalize a filter operand for storage.

    Timestamps become ISO-8601 text, which sorts in time order; naive
    datetimes are taken as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def to_number(value: Any) -> float:
    """Best-effort numeric coercion for sums; unparseable values count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def day_key(value: Any) -> str:
    """Calendar day (YYYY-MM-DD) of a stored timestamp."""
    if value is None:
        return ""
    return str(to_db_value(value))[:10]
