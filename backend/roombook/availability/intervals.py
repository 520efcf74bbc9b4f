"""Busy-interval merging for room availability.

Internal bookings and external calendar events are both projected onto
``BusyInterval`` values; ``IntervalSet`` answers overlap questions against the
union without caring where an interval came from. All spans are half-open
``[start, end)``, so back-to-back bookings never collide.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable

SOURCE_INTERNAL = "internal"
SOURCE_EXTERNAL = "external"


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    source: str
    origin_ref: str | None = None


@dataclass(frozen=True)
class Slot:
    id: str
    room_id: str
    start: datetime
    end: datetime
    available: bool = True

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
        }


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return ensure_aware(start_a) < ensure_aware(end_b) and ensure_aware(end_a) > ensure_aware(start_b)


def ensure_aware(value: datetime) -> datetime:
    """Return ``value`` in UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class IntervalSet:
    def __init__(self, intervals: Iterable[BusyInterval]):
        self._intervals = tuple(
            sorted(
                (item for item in intervals if ensure_aware(item.start) < ensure_aware(item.end)),
                key=lambda item: ensure_aware(item.start),
            )
        )

    def is_busy(self, start: datetime, end: datetime) -> bool:
        return self.first_overlap(start, end) is not None

    def first_overlap(self, start: datetime, end: datetime) -> BusyInterval | None:
        query_end = ensure_aware(end)
        for interval in self._intervals:
            # Sorted by start: nothing further can overlap.
            if ensure_aware(interval.start) >= query_end:
                return None
            if overlaps(start, end, interval.start, interval.end):
                return interval
        return None

    def availability_of(self, slots: Iterable[Slot]) -> list[Slot]:
        return [replace(slot, available=not self.is_busy(slot.start, slot.end)) for slot in slots]


def intervals_from_bookings(bookings: Iterable[Any]) -> list[BusyInterval]:
    return [
        BusyInterval(
            start=ensure_aware(booking.start_time),
            end=ensure_aware(booking.end_time),
            source=SOURCE_INTERNAL,
            origin_ref=str(booking.id) if getattr(booking, "id", None) is not None else None,
        )
        for booking in bookings
    ]
