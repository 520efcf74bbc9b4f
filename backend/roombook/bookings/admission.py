"""Authoritative admission of new bookings.

Internal state is committed first; mirroring to the external calendar runs
afterwards and its outcome is recorded on the booking (``external_event_ref``
present or absent) instead of failing the request.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import AwareDatetime, BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roombook.admin.rooms import find_room
from roombook.availability.intervals import IntervalSet, intervals_from_bookings
from roombook.availability.selection import (
    DISCONTINUOUS,
    END_BEFORE_START,
    REVERSED_DAY_ORDER,
    validate_selection,
)
from roombook.availability.slots import (
    SLOT_MINUTES,
    build_hour_slots,
    day_window,
    fetch_active_bookings,
    slot_id_for,
)
from roombook.bookings.locking import room_admission_lock
from roombook.bookings.pricing import compute_total_price, duration_hours
from roombook.config import CARRYOVER_HOURS
from roombook.db.models import STATUS_PENDING_REVIEW, Booking, Room
from roombook.integrations import provider

logger = logging.getLogger("roombook.bookings.admission")


class ClientInfo(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None


class AddOnSelection(BaseModel):
    id: str = Field(min_length=1)
    name: str | None = None


class PriceInputs(BaseModel):
    add_ons: list[AddOnSelection] = Field(default_factory=list)
    coupon_code: str | None = None
    discount_amount: int = Field(default=0, ge=0)


class SubmitBookingArgs(BaseModel):
    room_id: str = Field(min_length=1)
    start: AwareDatetime
    end: AwareDatetime
    client: ClientInfo
    price_inputs: PriceInputs = Field(default_factory=PriceInputs)


def parse_submit_booking_args(raw_args: dict[str, Any]) -> SubmitBookingArgs:
    return SubmitBookingArgs.model_validate(raw_args)


def submit_booking(db: Session, args: SubmitBookingArgs) -> dict[str, Any]:
    if not args.start < args.end:
        return _reject(args, "INVALID_RANGE", "End time must be after start time.")

    room = find_room(db, args.room_id)
    if room is None or not room.is_active:
        return _reject(args, "ROOM_UNAVAILABLE", "Selected room does not exist or is not available.")

    with room_admission_lock(db, room.id):
        rejection = _check_admissible(db, room, args)
        if rejection is not None:
            db.rollback()
            return rejection

        hours = duration_hours(args.start, args.end)
        booking = Booking(
            room_id=room.id,
            client_name=args.client.name,
            client_email=args.client.email.strip().lower(),
            client_phone=args.client.phone,
            start_time=args.start,
            end_time=args.end,
            duration_hours=hours,
            add_ons_json=[item.model_dump() for item in args.price_inputs.add_ons],
            coupon_code=args.price_inputs.coupon_code,
            discount_amount=args.price_inputs.discount_amount,
            total_price=compute_total_price(
                room,
                hours=hours,
                add_on_count=len(args.price_inputs.add_ons),
                discount_amount=args.price_inputs.discount_amount,
            ),
            status=STATUS_PENDING_REVIEW,
        )
        db.add(booking)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return _reject(args, "SLOT_CONFLICT", "This time slot is already booked.")

    logger.info(
        json.dumps(
            {
                "event": "booking_admitted",
                "booking_id": booking.id,
                "room_id": room.id,
                "start": booking.start_time.isoformat(),
                "end": booking.end_time.isoformat(),
            }
        )
    )

    warning = None
    if room.sync_enabled:
        warning = mirror_new_booking(db, room, booking)

    response = {"ok": True, "data": {"booking_id": booking.id, "booking": serialize_booking(booking)}}
    if warning:
        response["data"]["warning"] = warning
    return response


def mirror_new_booking(db: Session, room: Room, booking: Booking) -> str | None:
    result = provider.create_mirror(room, booking)
    if not result.ok:
        logger.warning(
            json.dumps(
                {
                    "event": "mirror_failed",
                    "booking_id": booking.id,
                    "room_id": room.id,
                    "error_code": result.error_code,
                }
            )
        )
        return "Calendar sync pending"

    booking.external_event_ref = result.event_ref
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Recording external_event_ref failed for booking_id=%s room_id=%s",
            booking.id,
            room.id,
        )
        return "Calendar sync pending"
    return None


def find_conflicting_booking(
    db: Session,
    room_id: str,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
) -> Booking | None:
    candidates = fetch_active_bookings(
        db, room_id, start, end, exclude_booking_id=exclude_booking_id
    )
    interval_set = IntervalSet(intervals_from_bookings(candidates))
    hit = interval_set.first_overlap(start, end)
    if hit is None:
        return None
    for booking in candidates:
        if str(booking.id) == hit.origin_ref:
            return booking
    return candidates[0]


def _check_admissible(db: Session, room: Room, args: SubmitBookingArgs) -> dict[str, Any] | None:
    selection = _recheck_selection(db, room, args.start, args.end)
    if selection in (END_BEFORE_START, REVERSED_DAY_ORDER):
        return _reject(args, "INVALID_RANGE", "Selected hours must run forwards in time.")

    conflict = find_conflicting_booking(db, room.id, args.start, args.end)
    if conflict is not None:
        return _reject(
            args,
            "SLOT_CONFLICT",
            "This time slot is already booked.",
            conflicting_booking_id=conflict.id,
        )
    if selection == DISCONTINUOUS:
        return _reject(args, "SLOT_CONFLICT", "Selected hours are no longer continuous.")
    return None


def _recheck_selection(db: Session, room: Room, start: datetime, end: datetime) -> str | None:
    """Run the slot-grid selection check when the span sits on the hour grid.

    Returns the selection status, or None when the span is off-grid.
    """
    tzinfo = ZoneInfo(room.timezone)
    local_start = start.astimezone(tzinfo)
    day = local_start.date()
    current_day = build_hour_slots(room.id, day, room.timezone)
    carryover = build_hour_slots(room.id, day + timedelta(days=1), room.timezone, CARRYOVER_HOURS)

    start_id = slot_id_for(room.id, start)
    end_id = slot_id_for(
        room.id, end.astimezone(timezone.utc) - timedelta(minutes=SLOT_MINUTES)
    )
    grid_ids = {slot.id for slot in current_day} | {slot.id for slot in carryover}
    if start_id not in grid_ids or end_id not in grid_ids:
        return None

    window_start, window_end = day_window(day, room.timezone)
    interval_set = IntervalSet(
        intervals_from_bookings(fetch_active_bookings(db, room.id, window_start, window_end))
    )
    result = validate_selection(
        interval_set.availability_of(current_day),
        interval_set.availability_of(carryover),
        start_id,
        end_id,
    )
    return result.status


def _reject(
    args: SubmitBookingArgs,
    error_code: str,
    human_message: str,
    **extra: Any,
) -> dict[str, Any]:
    logger.info(
        json.dumps(
            {
                "event": "booking_rejected",
                "room_id": args.room_id,
                "start": args.start.isoformat(),
                "end": args.end.isoformat(),
                "error_code": error_code,
            }
        )
    )
    response: dict[str, Any] = {"ok": False, "error_code": error_code, "human_message": human_message}
    if extra:
        response["data"] = extra
    return response


def serialize_booking(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "room_id": booking.room_id,
        "client_name": booking.client_name,
        "client_email": booking.client_email,
        "client_phone": booking.client_phone,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "duration_hours": booking.duration_hours,
        "add_ons": booking.add_ons_json or [],
        "coupon_code": booking.coupon_code,
        "discount_amount": booking.discount_amount,
        "total_price": booking.total_price,
        "status": booking.status,
        "external_event_ref": booking.external_event_ref,
    }
