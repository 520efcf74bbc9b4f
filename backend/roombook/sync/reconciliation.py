"""Backfill of external mirrors for sync-enabled rooms.

Admission and status changes mirror bookings on a best-effort basis, and
availability reads degrade open when the calendar is down. This job closes
those gaps: every active booking in the forward window that still lacks an
``external_event_ref`` gets a mirror. Rooms are processed independently.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from roombook import config
from roombook.admin.rooms import list_sync_enabled_rooms
from roombook.availability.slots import fetch_active_bookings
from roombook.db.models import Room
from roombook.integrations import provider

logger = logging.getLogger("roombook.sync")


@dataclass
class RoomSyncResult:
    room_id: str
    room_name: str
    success: bool
    events_found: int = 0
    bookings_updated: int = 0
    mirror_failures: int = 0
    error: str | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "success": self.success,
            "events_found": self.events_found,
            "bookings_updated": self.bookings_updated,
            "mirror_failures": self.mirror_failures,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class SyncReport:
    started_at: datetime
    window_end: datetime
    results: list[RoomSyncResult] = field(default_factory=list)

    @property
    def synced_rooms(self) -> int:
        return len(self.results)

    def to_json(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "window_end": self.window_end.isoformat(),
            "synced_rooms": self.synced_rooms,
            "failed_rooms": sum(1 for result in self.results if not result.success),
            "results": [result.to_json() for result in self.results],
        }


def run_reconciliation(db: Session, now: datetime | None = None) -> SyncReport:
    started_at = now or datetime.now(timezone.utc)
    window_end = started_at + timedelta(days=config.SYNC_WINDOW_DAYS)
    report = SyncReport(started_at=started_at, window_end=window_end)

    for room in list_sync_enabled_rooms(db):
        try:
            result = sync_room(db, room, started_at, window_end)
        except Exception as exc:
            db.rollback()
            logger.exception("Calendar sync failed for room_id=%s", room.id)
            result = RoomSyncResult(
                room_id=room.id,
                room_name=room.name,
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )
        report.results.append(result)

    logger.info(
        json.dumps(
            {
                "event": "sync_completed",
                "synced_rooms": report.synced_rooms,
                "failed_rooms": sum(1 for r in report.results if not r.success),
            }
        )
    )
    return report


def sync_room(db: Session, room: Room, window_start: datetime, window_end: datetime) -> RoomSyncResult:
    room.last_sync_time = window_start
    db.commit()

    fetched = provider.fetch_busy(room, window_start, window_end)
    if not fetched.ok:
        logger.warning(
            json.dumps(
                {
                    "event": "room_sync_failed",
                    "room_id": room.id,
                    "error_code": fetched.error_code,
                }
            )
        )
        return RoomSyncResult(
            room_id=room.id,
            room_name=room.name,
            success=False,
            error=fetched.error_code,
        )

    result = RoomSyncResult(
        room_id=room.id,
        room_name=room.name,
        success=True,
        events_found=len(fetched.intervals),
    )
    for booking in fetch_active_bookings(db, room.id, window_start, window_end):
        if booking.external_event_ref:
            continue
        mirror = provider.create_mirror(room, booking)
        if not mirror.ok:
            result.mirror_failures += 1
            continue
        booking.external_event_ref = mirror.event_ref
        db.commit()
        result.bookings_updated += 1
    return result
