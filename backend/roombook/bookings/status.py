from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roombook.admin.rooms import find_room
from roombook.availability.intervals import ensure_aware
from roombook.bookings.admission import find_conflicting_booking, serialize_booking
from roombook.bookings.locking import room_admission_lock
from roombook.db.models import (
    BOOKING_STATUSES,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_PENDING_REVIEW,
    Booking,
    Room,
)
from roombook.integrations import provider

logger = logging.getLogger("roombook.bookings.status")

ALLOWED_TRANSITIONS = {
    STATUS_PENDING_REVIEW: frozenset({STATUS_APPROVED, STATUS_CANCELLED}),
    STATUS_APPROVED: frozenset({STATUS_CANCELLED}),
    STATUS_CANCELLED: frozenset({STATUS_APPROVED}),
}


class ChangeBookingStatusArgs(BaseModel):
    status: str = Field(min_length=1)


def parse_change_status_args(raw_args: dict[str, Any]) -> ChangeBookingStatusArgs:
    return ChangeBookingStatusArgs.model_validate(raw_args)


def find_booking(db: Session, booking_id: int) -> Booking | None:
    for booking in db.query(Booking).all():
        if booking.id == booking_id:
            return booking
    return None


def change_booking_status(
    db: Session,
    booking_id: int,
    args: ChangeBookingStatusArgs,
    now: datetime | None = None,
) -> dict[str, Any]:
    new_status = args.status.strip().lower()
    if new_status not in BOOKING_STATUSES:
        return _invalid_status("Invalid status value.")

    booking = find_booking(db, booking_id)
    if booking is None:
        return {
            "ok": False,
            "error_code": "BOOKING_NOT_FOUND",
            "human_message": "Booking not found.",
        }

    old_status = booking.status
    if new_status == old_status:
        return {"ok": True, "data": {"booking": serialize_booking(booking)}}

    if new_status not in ALLOWED_TRANSITIONS.get(old_status, frozenset()):
        return _invalid_status(f"Cannot change booking status from {old_status} to {new_status}.")

    room = find_room(db, booking.room_id)

    if old_status == STATUS_CANCELLED:
        now_utc = now or datetime.now(timezone.utc)
        if ensure_aware(booking.start_time) <= now_utc:
            return _invalid_status("Only future bookings can be re-approved.")
        with room_admission_lock(db, booking.room_id):
            conflict = find_conflicting_booking(
                db,
                booking.room_id,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.id,
            )
            if conflict is not None:
                db.rollback()
                return {
                    "ok": False,
                    "error_code": "SLOT_CONFLICT",
                    "human_message": "Another booking now occupies this time.",
                    "data": {"conflicting_booking_id": conflict.id},
                }
            booking.status = new_status
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return {
                    "ok": False,
                    "error_code": "SLOT_CONFLICT",
                    "human_message": "Another booking now occupies this time.",
                }
    else:
        booking.status = new_status
        db.commit()

    logger.info(
        "Booking %s status changed from %s to %s", booking.id, old_status, new_status
    )

    note = None
    if room is not None and room.sync_enabled:
        note = _sync_external_mirror(db, room, booking)

    response: dict[str, Any] = {
        "ok": True,
        "data": {
            "booking": serialize_booking(booking),
            "previous_status": old_status,
        },
    }
    if note:
        response["data"]["external_sync_note"] = note
    return response


def _sync_external_mirror(db: Session, room: Room, booking: Booking) -> str | None:
    if booking.status == STATUS_APPROVED:
        if booking.external_event_ref:
            result = provider.update_mirror(room, booking)
            if not result.ok:
                return "Failed to update external calendar. Please sync manually."
            return "External calendar event updated."

        result = provider.create_mirror(room, booking)
        if not result.ok:
            return "Failed to update external calendar. Please sync manually."
        booking.external_event_ref = result.event_ref
        db.commit()
        return "External calendar event created."

    if booking.status == STATUS_CANCELLED and booking.external_event_ref:
        result = provider.delete_mirror(room, booking)
        if not result.ok:
            return "Failed to update external calendar. Please sync manually."
        booking.external_event_ref = None
        db.commit()
        return "External calendar event deleted."

    return None


def _invalid_status(human_message: str) -> dict[str, Any]:
    return {"ok": False, "error_code": "INVALID_STATUS", "human_message": human_message}
