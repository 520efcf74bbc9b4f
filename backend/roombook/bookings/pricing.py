from __future__ import annotations

import math
from datetime import datetime
from typing import Any

SECONDS_PER_HOUR = 3600


def duration_hours(start: datetime, end: datetime) -> int:
    """Billable hours, rounded up to whole hours."""
    return math.ceil((end - start).total_seconds() / SECONDS_PER_HOUR)


def compute_total_price(
    room: Any,
    hours: int,
    add_on_count: int = 0,
    discount_amount: int = 0,
) -> int:
    if hours <= 0:
        return 0
    base = int(room.hourly_rate) + (hours - 1) * int(room.additional_hour_rate)
    add_ons = add_on_count * int(room.addon_hourly_rate) * hours
    return max(round(base + add_ons - discount_amount), 0)
