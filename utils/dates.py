from datetime import datetime
from typing import Optional


def start_of_month(now: Optional[datetime] = None) -> datetime:
    """First instant of the current calendar month, server-local time."""
    now = now or datetime.now()
    return datetime(now.year, now.month, 1)


def start_of_next_month(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


def is_past(moment: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when ``moment`` is set and strictly earlier than now. Aware values are compared in local time."""
    if moment is None:
        return False
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment < (now or datetime.now())
