"""Boundary around the external calendar.

Nothing in here raises provider failures to callers: every operation returns a
result value carrying either data or a typed error code. Availability treats a
failed fetch as "no external contribution" and admission treats a failed
mirror as "mirror pending".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time
from typing import Any
from zoneinfo import ZoneInfo

from roombook.availability.intervals import SOURCE_EXTERNAL, BusyInterval
from roombook.config import DEFAULT_TIMEZONE
from roombook.integrations import google_calendar
from roombook.integrations.errors import ProviderError

logger = logging.getLogger("roombook.integrations.provider")


@dataclass(frozen=True)
class BusyFetchResult:
    intervals: list[BusyInterval] = field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


@dataclass(frozen=True)
class MirrorResult:
    event_ref: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def fetch_busy(room: Any, range_start: datetime, range_end: datetime) -> BusyFetchResult:
    try:
        events = google_calendar.list_events(
            room.external_calendar_ref,
            time_min=range_start,
            time_max=range_end,
        )
    except ProviderError as exc:
        logger.warning(
            "External busy fetch failed for room_id=%s code=%s: %s", room.id, exc.code, exc
        )
        return BusyFetchResult(error_code=exc.code, error_message=str(exc))

    tzinfo = _room_zone(room)
    intervals = []
    for event in events:
        interval = event_to_busy_interval(event, tzinfo)
        if interval is not None:
            intervals.append(interval)
    return BusyFetchResult(intervals=intervals)


def create_mirror(room: Any, booking: Any) -> MirrorResult:
    try:
        payload = google_calendar.create_event(
            room.external_calendar_ref,
            build_mirror_event(room, booking),
        )
    except ProviderError as exc:
        return _mirror_failure("create", room, booking, exc)
    return MirrorResult(event_ref=payload["id"].strip())


def update_mirror(room: Any, booking: Any) -> MirrorResult:
    try:
        payload = google_calendar.update_event(
            room.external_calendar_ref,
            external_event_id=booking.external_event_ref,
            event_body=build_mirror_event(room, booking),
        )
    except ProviderError as exc:
        return _mirror_failure("update", room, booking, exc)
    return MirrorResult(event_ref=payload["id"].strip())


def delete_mirror(room: Any, booking: Any) -> MirrorResult:
    try:
        google_calendar.delete_event(
            room.external_calendar_ref,
            external_event_id=booking.external_event_ref,
        )
    except ProviderError as exc:
        return _mirror_failure("delete", room, booking, exc)
    return MirrorResult()


def probe(room: Any) -> MirrorResult:
    """Reachability check used before enabling sync on a room."""
    try:
        google_calendar.get_calendar(room.external_calendar_ref)
    except ProviderError as exc:
        return MirrorResult(error_code=exc.code, error_message=str(exc))
    return MirrorResult(event_ref=room.external_calendar_ref)


def build_mirror_event(room: Any, booking: Any) -> dict[str, Any]:
    contact = booking.client_email
    if booking.client_phone:
        contact = f"{contact} / {booking.client_phone}"
    return {
        "summary": f"Reserva - {booking.client_name}",
        "description": f"Reserva para {booking.client_name}. Contacto: {contact}.",
        "start": {"dateTime": booking.start_time.isoformat(), "timeZone": room.timezone},
        "end": {"dateTime": booking.end_time.isoformat(), "timeZone": room.timezone},
        "extendedProperties": {
            "private": {
                "bookingId": str(booking.id),
                "clientEmail": booking.client_email,
            }
        },
    }


def event_to_busy_interval(event: dict[str, Any], tzinfo: ZoneInfo) -> BusyInterval | None:
    if str(event.get("status", "")).lower() == "cancelled":
        return None
    start = _parse_event_time(event.get("start"), tzinfo)
    end = _parse_event_time(event.get("end"), tzinfo)
    if start is None or end is None or start >= end:
        return None
    origin = event.get("id")
    return BusyInterval(
        start=start,
        end=end,
        source=SOURCE_EXTERNAL,
        origin_ref=origin if isinstance(origin, str) else None,
    )


def _parse_event_time(value: Any, tzinfo: ZoneInfo) -> datetime | None:
    if not isinstance(value, dict):
        return None
    date_time = value.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        text = date_time.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=tzinfo)
        return parsed
    all_day = value.get("date")
    if isinstance(all_day, str) and all_day.strip():
        try:
            day = date.fromisoformat(all_day.strip())
        except ValueError:
            return None
        return datetime.combine(day, dt_time.min, tzinfo=tzinfo)
    return None


def _room_zone(room: Any) -> ZoneInfo:
    return ZoneInfo(getattr(room, "timezone", None) or DEFAULT_TIMEZONE)


def _mirror_failure(action: str, room: Any, booking: Any, exc: ProviderError) -> MirrorResult:
    logger.warning(
        "Mirror %s failed for booking_id=%s room_id=%s code=%s: %s",
        action,
        getattr(booking, "id", None),
        room.id,
        exc.code,
        exc,
    )
    return MirrorResult(error_code=exc.code, error_message=str(exc))
