from __future__ import annotations

import http.client
import json
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib import error, parse, request

from roombook import config
from roombook.integrations.errors import ProviderAuthFailed, ProviderUnavailable, RoomNotMapped

GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_ENDPOINT_TEMPLATE = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}"
GOOGLE_CALENDAR_EVENT_ENDPOINT_TEMPLATE = (
    "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"
)
GOOGLE_CALENDAR_EVENT_UPDATE_ENDPOINT_TEMPLATE = (
    "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events/{event_id}"
)
TOKEN_EXPIRY_MARGIN_SECONDS = 60

logger = logging.getLogger("roombook.integrations.google")

_token_lock = threading.Lock()
_token_cache: dict[str, Any] = {"access_token": None, "expires_at": None}


def get_access_token(now: datetime | None = None) -> str:
    now_utc = now or datetime.now(timezone.utc)
    with _token_lock:
        cached = _token_cache.get("access_token")
        expires_at = _token_cache.get("expires_at")
        if cached and (expires_at is None or expires_at > now_utc):
            return cached

        client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
        client_secret = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
        refresh_token = os.getenv("GOOGLE_REFRESH_TOKEN", "").strip()
        if not client_id or not client_secret or not refresh_token:
            raise ProviderAuthFailed("Google OAuth client configuration is incomplete.")

        form_payload = parse.urlencode(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        ).encode("utf-8")
        req = request.Request(
            GOOGLE_TOKEN_ENDPOINT,
            data=form_payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        payload = _send_json(req, action="token refresh", auth_request=True)

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise ProviderAuthFailed("Google token refresh missing access_token.")

        _token_cache["access_token"] = access_token.strip()
        _token_cache["expires_at"] = _expiry_from_seconds(payload.get("expires_in"), now_utc)
        return _token_cache["access_token"]


def reset_token_cache() -> None:
    with _token_lock:
        _token_cache["access_token"] = None
        _token_cache["expires_at"] = None


def get_calendar(calendar_ref: str | None) -> dict[str, Any]:
    endpoint = GOOGLE_CALENDAR_ENDPOINT_TEMPLATE.format(calendar_id=_calendar_path(calendar_ref))
    req = request.Request(
        endpoint,
        headers={"Authorization": f"Bearer {get_access_token()}"},
        method="GET",
    )
    return _send_json(req, action="calendar lookup")


def list_events(
    calendar_ref: str | None,
    time_min: datetime,
    time_max: datetime,
) -> list[dict[str, Any]]:
    endpoint = GOOGLE_CALENDAR_EVENT_ENDPOINT_TEMPLATE.format(
        calendar_id=_calendar_path(calendar_ref)
    )
    access_token = get_access_token()

    events: list[dict[str, Any]] = []
    page_token: str | None = None
    while True:
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if page_token:
            params["pageToken"] = page_token
        req = request.Request(
            f"{endpoint}?{parse.urlencode(params)}",
            headers={"Authorization": f"Bearer {access_token}"},
            method="GET",
        )
        payload = _send_json(req, action="event listing")
        items = payload.get("items")
        if isinstance(items, list):
            events.extend(item for item in items if isinstance(item, dict))
        page_token = payload.get("nextPageToken")
        if not isinstance(page_token, str) or not page_token:
            return events


def create_event(calendar_ref: str | None, event_body: dict[str, Any]) -> dict[str, Any]:
    endpoint = GOOGLE_CALENDAR_EVENT_ENDPOINT_TEMPLATE.format(
        calendar_id=_calendar_path(calendar_ref)
    )
    req = request.Request(
        endpoint,
        data=json.dumps(event_body, separators=(",", ":"), ensure_ascii=False).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {get_access_token()}",
        },
        method="POST",
    )
    event_payload = _send_json(req, action="event creation")
    _require_event_id(event_payload, action="event creation")
    return event_payload


def update_event(
    calendar_ref: str | None,
    *,
    external_event_id: str,
    event_body: dict[str, Any],
) -> dict[str, Any]:
    endpoint = GOOGLE_CALENDAR_EVENT_UPDATE_ENDPOINT_TEMPLATE.format(
        calendar_id=_calendar_path(calendar_ref),
        event_id=parse.quote(external_event_id.strip(), safe=""),
    )
    req = request.Request(
        endpoint,
        data=json.dumps(event_body, separators=(",", ":"), ensure_ascii=False).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {get_access_token()}",
        },
        method="PATCH",
    )
    event_payload = _send_json(req, action="event update")
    _require_event_id(event_payload, action="event update")
    return event_payload


def delete_event(calendar_ref: str | None, *, external_event_id: str) -> None:
    endpoint = GOOGLE_CALENDAR_EVENT_UPDATE_ENDPOINT_TEMPLATE.format(
        calendar_id=_calendar_path(calendar_ref),
        event_id=parse.quote(external_event_id.strip(), safe=""),
    )
    req = request.Request(
        endpoint,
        headers={"Authorization": f"Bearer {get_access_token()}"},
        method="DELETE",
    )
    try:
        _open(req, action="event delete")
    except RoomNotMapped:
        # Already gone on the provider side.
        logger.info("Google event %s already deleted.", external_event_id)


def _calendar_path(calendar_ref: str | None) -> str:
    calendar_id = (calendar_ref or "").strip()
    if not calendar_id:
        raise RoomNotMapped("Room has no external calendar reference.")
    return parse.quote(calendar_id, safe="")


def _open(req: request.Request, action: str, auth_request: bool = False) -> str:
    try:
        with request.urlopen(req, timeout=config.PROVIDER_TIMEOUT_SECONDS) as resp:
            return resp.read().decode("utf-8")
    except error.HTTPError as exc:
        if exc.code in (401, 403) or (auth_request and exc.code == 400):
            raise ProviderAuthFailed(f"Google {action} was not authorized.") from exc
        if exc.code in (404, 410):
            raise RoomNotMapped(f"Google {action} target was not found.") from exc
        raise ProviderUnavailable(f"Google {action} failed with HTTP {exc.code}.") from exc
    except (error.URLError, http.client.HTTPException, OSError) as exc:
        raise ProviderUnavailable(f"Google {action} failed.") from exc
    except UnicodeDecodeError as exc:
        raise ProviderUnavailable(f"Google {action} returned an undecodable body.") from exc


def _send_json(req: request.Request, action: str, auth_request: bool = False) -> dict[str, Any]:
    body = _open(req, action=action, auth_request=auth_request)
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProviderUnavailable(f"Google {action} returned invalid JSON.") from exc
    if not isinstance(payload, dict):
        raise ProviderUnavailable(f"Google {action} returned an unexpected payload.")
    return payload


def _require_event_id(event_payload: dict[str, Any], action: str) -> None:
    event_id = event_payload.get("id")
    if not isinstance(event_id, str) or not event_id.strip():
        raise ProviderUnavailable(f"Google {action} response missing id.")


def _expiry_from_seconds(expires_in: Any, now_utc: datetime) -> datetime | None:
    try:
        if expires_in is None:
            return None
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    return now_utc + timedelta(seconds=max(seconds - TOKEN_EXPIRY_MARGIN_SECONDS, 0))
