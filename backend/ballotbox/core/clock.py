"""
Clock helpers. Poll dates are stored as epoch milliseconds.
"""
import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_date(value: int) -> str:
    """Render an epoch-millis timestamp as a calendar date for emails."""
    return ms_to_datetime(value).strftime("%Y-%m-%d")
