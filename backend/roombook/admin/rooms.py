from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from roombook.db.models import Room
from roombook.integrations import provider

logger = logging.getLogger("roombook.admin.rooms")


class ToggleRoomSyncArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None


def find_room(db: Session, room_id: str) -> Room | None:
    for room in db.query(Room).all():
        if room.id == room_id:
            return room
    return None


def list_rooms(db: Session, active_only: bool = False) -> list[Room]:
    rooms = sorted(db.query(Room).all(), key=lambda r: r.id)
    if active_only:
        return [room for room in rooms if room.is_active]
    return rooms


def list_sync_enabled_rooms(db: Session) -> list[Room]:
    return [room for room in list_rooms(db) if room.sync_enabled]


def toggle_room_sync(
    db: Session,
    room_id: str,
    args: ToggleRoomSyncArgs,
    now: datetime | None = None,
) -> dict[str, Any]:
    room = find_room(db, room_id)
    if room is None:
        return {
            "ok": False,
            "error_code": "ROOM_NOT_FOUND",
            "human_message": "Room not found.",
        }

    enable = (not room.sync_enabled) if args.enabled is None else args.enabled
    if not enable:
        room.sync_enabled = False
        db.commit()
        return {"ok": True, "data": {"room": serialize_room(room)}}

    probe = provider.probe(room)
    if not probe.ok:
        logger.warning(
            "Refusing to enable sync for room_id=%s: probe failed code=%s",
            room.id,
            probe.error_code,
        )
        return {
            "ok": False,
            "error_code": "SYNC_PROBE_FAILED",
            "human_message": f"External calendar is not reachable ({probe.error_code}).",
            "data": {"provider_error": probe.error_code},
        }

    room.sync_enabled = True
    room.last_sync_time = now or datetime.now(timezone.utc)
    db.commit()
    return {"ok": True, "data": {"room": serialize_room(room)}}


def serialize_room(room: Room, include_admin_fields: bool = True) -> dict[str, Any]:
    payload = {
        "id": room.id,
        "name": room.name,
        "description": room.description,
        "hourly_rate": room.hourly_rate,
        "additional_hour_rate": room.additional_hour_rate,
        "addon_hourly_rate": room.addon_hourly_rate,
        "timezone": room.timezone,
        "is_active": room.is_active,
        "sync_enabled": room.sync_enabled,
    }
    if include_admin_fields:
        payload["external_calendar_ref"] = room.external_calendar_ref
        payload["last_sync_time"] = room.last_sync_time.isoformat() if room.last_sync_time else None
    return payload
