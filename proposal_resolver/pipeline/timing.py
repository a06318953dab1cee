import math
import time
from typing import Optional, Tuple

SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_HOUR = 60 * 60


def calculate_time_remaining(end_timestamp: Optional[float], now: Optional[float] = None) -> Tuple[Optional[int], Optional[int]]:
    """
    Days and hours left until `end_timestamp` (unix seconds).

    Returns (None, None) when the end is unknown. Future ends give floored
    days, with hours only on the final day. Past ends give negative days,
    rounded toward zero.
    """
    if not end_timestamp or end_timestamp <= 0:
        return None, None

    current = time.time() if now is None else now
    diff = end_timestamp - current
    diff_days = diff / SECONDS_PER_DAY

    if diff_days >= 0:
        days_left = math.floor(diff_days)
        hours_left = math.floor(diff / SECONDS_PER_HOUR) if days_left == 0 and diff > 0 else None
        return days_left, hours_left

    return math.ceil(diff_days), None
