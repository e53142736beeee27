"""
Small helpers shared by the cache, the fetchers and the population job.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence, TypeVar

T = TypeVar("T")

MIN_RATING = 0.0
MAX_RATING = 10.0


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_date_key(moment: Optional[datetime] = None) -> str:
    """
    Return the UTC calendar date as YYYY-MM-DD.

    Used as the daily usage counter key and the population job's run date.
    """
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def parse_rating(raw: Any) -> Optional[float]:
    """
    Parse a provider rating into a float in [0, 10].

    Returns None for anything that is not a finite number in range, including
    the provider's "N/A" placeholder.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or not (MIN_RATING <= value <= MAX_RATING):
        return None
    return value


def is_rate_limit_error(error: BaseException) -> bool:
    """True when the error text indicates a provider quota / rate-limit condition."""
    message = str(error).lower()
    return "max requests limit" in message or "rate limit" in message


def catalog_id(item: Any) -> Optional[int]:
    """Return the item's integer catalog id, or None when it is missing or malformed."""
    if not isinstance(item, dict):
        return None
    raw = item.get("id")
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    return raw
