"""Human-readable identifiers: ticket numbers and daily metric keys."""

import secrets
import uuid
from datetime import date, datetime

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_ticket_number(now: datetime, suffix_length: int = 3) -> str:
    """
    Build `TKT-<base36 ms timestamp>-<random suffix>`.

    The timestamp keeps numbers roughly sortable; the suffix avoids collisions
    between tickets created in the same millisecond.
    """
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(suffix_length))
    return f"TKT-{to_base36(millis)}-{suffix}"


def new_id() -> str:
    """Opaque store identifier."""
    return uuid.uuid4().hex


def date_key(day: date) -> str:
    """DailyMetric key in YYYY-MM-DD form."""
    return day.strftime("%Y-%m-%d")
