from typing import Any

from fastapi.responses import JSONResponse
from pydantic import ValidationError

ERROR_STATUS_CODES = {
    "INVALID_ARGS": 400,
    "INVALID_DATE": 400,
    "INVALID_RANGE": 400,
    "INVALID_STATUS": 400,
    "ROOM_UNAVAILABLE": 404,
    "ROOM_NOT_FOUND": 404,
    "BOOKING_NOT_FOUND": 404,
    "SLOT_CONFLICT": 409,
    "SYNC_PROBE_FAILED": 409,
    "SYSTEM_DOWN": 500,
}


def map_validation_error(error: ValidationError) -> dict[str, str]:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first["msg"] if not location else f"{location}: {first['msg']}"
    return {
        "error_code": "INVALID_ARGS",
        "human_message": f"Invalid args: {message}",
    }


def result_response(result: dict[str, Any], success_status: int = 200) -> JSONResponse:
    if result.get("ok"):
        return JSONResponse(content=result, status_code=success_status)
    return JSONResponse(
        content=result,
        status_code=ERROR_STATUS_CODES.get(result.get("error_code", ""), 400),
    )


def system_down(human_message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error_code": "SYSTEM_DOWN",
            "human_message": human_message,
        },
    )
