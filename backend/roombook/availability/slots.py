from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

import dateparser
from sqlalchemy.orm import Session

from roombook import config
from roombook.availability.intervals import (
    IntervalSet,
    Slot,
    ensure_aware,
    intervals_from_bookings,
    overlaps,
)
from roombook.db.models import ACTIVE_BOOKING_STATUSES, Booking
from roombook.integrations import provider

SLOT_MINUTES = 60

logger = logging.getLogger("roombook.availability")


@dataclass(frozen=True)
class RoomAvailability:
    room_id: str
    day: date
    current_day: list[Slot]
    carryover: list[Slot]
    external_error: str | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "room_id": self.room_id,
            "date": self.day.isoformat(),
            "slots": [slot.to_json() for slot in self.current_day],
            "carryover_slots": [slot.to_json() for slot in self.carryover],
        }
        if self.external_error:
            payload["warning"] = "External calendar unavailable; showing internal bookings only."
        return payload


def resolve_requested_day(
    date_text: str,
    room_timezone: str,
    now_dt: datetime | None = None,
) -> date | None:
    text = (date_text or "").strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    tzinfo = ZoneInfo(room_timezone)
    reference = (now_dt or datetime.now(timezone.utc)).astimezone(tzinfo)
    parsed = dateparser.parse(
        text,
        settings={
            "RETURN_AS_TIMEZONE_AWARE": True,
            "TIMEZONE": room_timezone,
            "TO_TIMEZONE": room_timezone,
            "RELATIVE_BASE": reference.replace(tzinfo=None),
        },
    )
    if parsed is None:
        return None
    return parsed.date()


def day_window(day: date, room_timezone: str) -> tuple[datetime, datetime]:
    """Local midnight of ``day`` up to the end of the next morning's carryover."""
    tzinfo = ZoneInfo(room_timezone)
    window_start = datetime.combine(day, dt_time.min, tzinfo=tzinfo)
    carryover_end = _local_midnight_utc(day + timedelta(days=1), tzinfo) + timedelta(
        hours=config.CARRYOVER_HOURS
    )
    return window_start, carryover_end.astimezone(tzinfo)


def build_hour_slots(
    room_id: str,
    day: date,
    room_timezone: str,
    hours: int | None = None,
) -> list[Slot]:
    """Hourly slots from local midnight of ``day``, stepped in UTC.

    Without ``hours`` the grid covers the whole local day, which is 23 or 25
    slots long on DST transition days.
    """
    tzinfo = ZoneInfo(room_timezone)
    start_utc = _local_midnight_utc(day, tzinfo)
    step = timedelta(minutes=SLOT_MINUTES)
    if hours is None:
        hours = (_local_midnight_utc(day + timedelta(days=1), tzinfo) - start_utc) // step

    slots = []
    for index in range(hours):
        slot_start = start_utc + index * step
        slots.append(
            Slot(
                id=slot_id_for(room_id, slot_start),
                room_id=room_id,
                start=slot_start.astimezone(tzinfo),
                end=(slot_start + step).astimezone(tzinfo),
            )
        )
    return slots


def _local_midnight_utc(day: date, tzinfo: ZoneInfo) -> datetime:
    return datetime.combine(day, dt_time.min, tzinfo=tzinfo).astimezone(timezone.utc)


def slot_id_for(room_id: str, start: datetime) -> str:
    return f"{room_id}-{ensure_aware(start).astimezone(timezone.utc).isoformat()}"


def fetch_active_bookings(
    db: Session,
    room_id: str,
    window_start: datetime,
    window_end: datetime,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    rows = (
        db.query(Booking)
        .filter(Booking.room_id == room_id)
        .filter(Booking.status.in_(sorted(ACTIVE_BOOKING_STATUSES)))
        .filter(Booking.start_time < window_end)
        .filter(Booking.end_time > window_start)
        .all()
    )
    return [
        booking
        for booking in rows
        if booking.room_id == room_id
        and str(booking.status) in ACTIVE_BOOKING_STATUSES
        and booking.id != exclude_booking_id
        and overlaps(booking.start_time, booking.end_time, window_start, window_end)
    ]


def generate_room_slots(db: Session, room: Any, day: date) -> RoomAvailability:
    window_start, window_end = day_window(day, room.timezone)

    bookings = fetch_active_bookings(db, room.id, window_start, window_end)
    busy = intervals_from_bookings(bookings)

    external_error = None
    if room.sync_enabled:
        result = provider.fetch_busy(room, window_start, window_end)
        if result.ok:
            busy.extend(result.intervals)
        else:
            external_error = result.error_code
            logger.warning(
                json.dumps(
                    {
                        "event": "external_busy_degraded",
                        "room_id": room.id,
                        "date": day.isoformat(),
                        "error_code": result.error_code,
                    }
                )
            )

    interval_set = IntervalSet(busy)
    current_day = interval_set.availability_of(
        build_hour_slots(room.id, day, room.timezone)
    )
    carryover = interval_set.availability_of(
        build_hour_slots(room.id, day + timedelta(days=1), room.timezone, config.CARRYOVER_HOURS)
    )
    return RoomAvailability(
        room_id=room.id,
        day=day,
        current_day=current_day,
        carryover=carryover,
        external_error=external_error,
    )
