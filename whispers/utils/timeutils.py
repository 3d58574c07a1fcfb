import time
from typing import Optional

MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def days_ago_ms(days: float, now: Optional[int] = None) -> int:
    return (now if now is not None else now_ms()) - int(days * MS_PER_DAY)
