import json
import logging
import time
import uuid
from typing import Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from roombook.admin.rooms import (
    ToggleRoomSyncArgs,
    find_room,
    list_rooms,
    serialize_room,
    toggle_room_sync,
)
from roombook.availability.selection import validate_selection
from roombook.availability.slots import generate_room_slots, resolve_requested_day
from roombook.bookings.admission import parse_submit_booking_args, submit_booking
from roombook.bookings.status import change_booking_status, parse_change_status_args
from roombook.db.session import SessionLocal
from roombook.responses import map_validation_error, result_response, system_down
from roombook.security.dependencies import require_admin_api_key
from roombook.sync.reconciliation import run_reconciliation


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return logging.getLogger("roombook.backend")


logger = configure_logging()
app = FastAPI(title="Roombook Backend")


class ValidateSelectionArgs(BaseModel):
    room_id: str = Field(min_length=1)
    date: str = Field(min_length=1)
    start_slot_id: str = Field(min_length=1)
    end_slot_id: str = Field(min_length=1)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start_time = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    response.headers["x-request-id"] = request_id

    logger.info(
        json.dumps(
            {
                "event": "http_request",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        )
    )
    return response


@app.get("/health")
async def health():
    return JSONResponse(content={"ok": True})


@app.get("/v1/rooms")
def public_list_rooms() -> JSONResponse:
    db = SessionLocal()
    try:
        rooms = list_rooms(db=db, active_only=True)
        return JSONResponse(
            content={
                "ok": True,
                "data": {
                    "rooms": [serialize_room(room, include_admin_fields=False) for room in rooms]
                },
            }
        )
    finally:
        db.close()


@app.get("/v1/rooms/{room_id}/availability")
def room_availability(room_id: str, date: str | None = None) -> JSONResponse:
    db = SessionLocal()
    try:
        room = find_room(db=db, room_id=room_id)
        if room is None or not room.is_active:
            return result_response(
                {
                    "ok": False,
                    "error_code": "ROOM_UNAVAILABLE",
                    "human_message": "Room not found or not active.",
                }
            )

        day = resolve_requested_day(date or "", room.timezone)
        if day is None:
            return result_response(
                {
                    "ok": False,
                    "error_code": "INVALID_DATE",
                    "human_message": "A valid date parameter is required.",
                }
            )

        availability = generate_room_slots(db=db, room=room, day=day)
        return JSONResponse(content={"ok": True, "data": availability.to_json()})
    except Exception:
        logger.exception("Availability query failed for room_id=%s", room_id)
        return system_down("Temporary issue loading availability.")
    finally:
        db.close()


@app.post("/v1/selections/validate")
def validate_selection_route(payload: dict[str, Any]) -> JSONResponse:
    try:
        args = ValidateSelectionArgs.model_validate(payload)
    except ValidationError as exc:
        return result_response({"ok": False, **map_validation_error(exc)})

    db = SessionLocal()
    try:
        room = find_room(db=db, room_id=args.room_id)
        if room is None or not room.is_active:
            return result_response(
                {
                    "ok": False,
                    "error_code": "ROOM_UNAVAILABLE",
                    "human_message": "Room not found or not active.",
                }
            )
        day = resolve_requested_day(args.date, room.timezone)
        if day is None:
            return result_response(
                {
                    "ok": False,
                    "error_code": "INVALID_DATE",
                    "human_message": "A valid date is required.",
                }
            )

        availability = generate_room_slots(db=db, room=room, day=day)
        result = validate_selection(
            availability.current_day,
            availability.carryover,
            args.start_slot_id,
            args.end_slot_id,
        )
        return JSONResponse(content={"ok": True, "data": result.to_json()})
    except Exception:
        logger.exception("Selection validation failed for room_id=%s", args.room_id)
        return system_down("Temporary issue validating selection.")
    finally:
        db.close()


@app.post("/v1/bookings")
def create_booking(payload: dict[str, Any]) -> JSONResponse:
    try:
        args = parse_submit_booking_args(payload)
    except ValidationError as exc:
        return result_response({"ok": False, **map_validation_error(exc)})

    db = SessionLocal()
    try:
        return result_response(submit_booking(db=db, args=args), success_status=201)
    except Exception:
        db.rollback()
        logger.exception("Booking submission failed for room_id=%s", args.room_id)
        return system_down("Temporary issue creating booking.")
    finally:
        db.close()


@app.patch("/v1/admin/bookings/{booking_id}/status", dependencies=[Depends(require_admin_api_key)])
def admin_change_booking_status(booking_id: int, payload: dict[str, Any]) -> JSONResponse:
    try:
        args = parse_change_status_args(payload)
    except ValidationError:
        return result_response(
            {
                "ok": False,
                "error_code": "INVALID_STATUS",
                "human_message": "Invalid status value.",
            }
        )

    db = SessionLocal()
    try:
        return result_response(change_booking_status(db=db, booking_id=booking_id, args=args))
    except Exception:
        db.rollback()
        logger.exception("Status change failed for booking_id=%s", booking_id)
        return system_down("Temporary issue changing booking status.")
    finally:
        db.close()


@app.post("/v1/admin/sync", dependencies=[Depends(require_admin_api_key)])
def admin_run_sync() -> JSONResponse:
    db = SessionLocal()
    try:
        report = run_reconciliation(db=db)
        return JSONResponse(content={"ok": True, "data": report.to_json()})
    except Exception:
        db.rollback()
        logger.exception("Calendar sync run failed")
        return system_down("Temporary issue running calendar sync.")
    finally:
        db.close()


@app.get("/v1/admin/rooms", dependencies=[Depends(require_admin_api_key)])
def admin_list_rooms() -> JSONResponse:
    db = SessionLocal()
    try:
        rooms = list_rooms(db=db)
        return JSONResponse(
            content={"ok": True, "data": {"rooms": [serialize_room(room) for room in rooms]}}
        )
    finally:
        db.close()


@app.patch("/v1/admin/rooms/{room_id}/sync", dependencies=[Depends(require_admin_api_key)])
def admin_toggle_room_sync(
    room_id: str,
    payload: dict[str, Any] | None = Body(default=None),
) -> JSONResponse:
    try:
        args = ToggleRoomSyncArgs.model_validate(payload or {})
    except ValidationError as exc:
        return result_response({"ok": False, **map_validation_error(exc)})

    db = SessionLocal()
    try:
        return result_response(toggle_room_sync(db=db, room_id=room_id, args=args))
    except Exception:
        db.rollback()
        logger.exception("Sync toggle failed for room_id=%s", room_id)
        return system_down("Temporary issue updating room sync.")
    finally:
        db.close()
