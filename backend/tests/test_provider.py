import http.client
import io
import json
from datetime import datetime
from urllib import error as urllib_error
from urllib import request as urllib_request
from zoneinfo import ZoneInfo

import pytest

from roombook.db.models import Booking, Room
from roombook.integrations import google_calendar, provider
from roombook.integrations.errors import ProviderAuthFailed, ProviderUnavailable, RoomNotMapped


TZ = ZoneInfo("America/Costa_Rica")


class FakeResponse:
    def __init__(self, payload=None, raw_body=None):
        self._body = raw_body if raw_body is not None else json.dumps(payload).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        return False


def _room(**overrides):
    fields = {
        "id": "room1",
        "name": "Sala 1",
        "timezone": "America/Costa_Rica",
        "is_active": True,
        "sync_enabled": True,
        "external_calendar_ref": "room1@group.calendar.google.com",
    }
    fields.update(overrides)
    return Room(**fields)


def _booking():
    return Booking(
        id=12,
        room_id="room1",
        client_name="Ana Mora",
        client_email="ana@example.com",
        client_phone="+50688887777",
        start_time=datetime(2026, 3, 10, 14, tzinfo=TZ),
        end_time=datetime(2026, 3, 10, 16, tzinfo=TZ),
        duration_hours=2,
        total_price=15000,
        status="pending_review",
    )


def _http_error(code):
    return urllib_error.HTTPError(
        "https://www.googleapis.com/calendar/v3", code, "error", {}, io.BytesIO(b"{}")
    )


def test_timed_event_converts_to_external_interval():
    interval = provider.event_to_busy_interval(
        {
            "id": "evt_1",
            "start": {"dateTime": "2026-03-10T15:00:00Z"},
            "end": {"dateTime": "2026-03-10T16:00:00Z"},
        },
        TZ,
    )

    assert interval is not None
    assert interval.source == "external"
    assert interval.origin_ref == "evt_1"
    assert interval.start == datetime(2026, 3, 10, 9, tzinfo=TZ)
    assert interval.end == datetime(2026, 3, 10, 10, tzinfo=TZ)


def test_all_day_event_spans_local_midnights():
    interval = provider.event_to_busy_interval(
        {"id": "holiday", "start": {"date": "2026-03-10"}, "end": {"date": "2026-03-11"}},
        TZ,
    )

    assert interval.start == datetime(2026, 3, 10, 0, tzinfo=TZ)
    assert interval.end == datetime(2026, 3, 11, 0, tzinfo=TZ)


def test_cancelled_and_malformed_events_are_skipped():
    cancelled = {
        "id": "evt_c",
        "status": "cancelled",
        "start": {"dateTime": "2026-03-10T09:00:00-06:00"},
        "end": {"dateTime": "2026-03-10T10:00:00-06:00"},
    }
    inverted = {
        "id": "evt_i",
        "start": {"dateTime": "2026-03-10T10:00:00-06:00"},
        "end": {"dateTime": "2026-03-10T09:00:00-06:00"},
    }

    assert provider.event_to_busy_interval(cancelled, TZ) is None
    assert provider.event_to_busy_interval(inverted, TZ) is None
    assert provider.event_to_busy_interval({"id": "evt_m", "start": "soon"}, TZ) is None


def test_fetch_busy_follows_pagination(monkeypatch):
    monkeypatch.setattr(google_calendar, "get_access_token", lambda *_args, **_kwargs: "token")
    pages = [
        {
            "items": [
                {
                    "id": "a",
                    "start": {"dateTime": "2026-03-10T09:00:00-06:00"},
                    "end": {"dateTime": "2026-03-10T10:00:00-06:00"},
                }
            ],
            "nextPageToken": "page-2",
        },
        {
            "items": [
                {
                    "id": "b",
                    "start": {"dateTime": "2026-03-10T11:00:00-06:00"},
                    "end": {"dateTime": "2026-03-10T12:00:00-06:00"},
                }
            ]
        },
    ]
    seen_urls = []

    def _fake_urlopen(req, timeout=None):
        seen_urls.append(req.full_url)
        return FakeResponse(pages[len(seen_urls) - 1])

    monkeypatch.setattr(urllib_request, "urlopen", _fake_urlopen)

    result = provider.fetch_busy(
        _room(),
        datetime(2026, 3, 10, 0, tzinfo=TZ),
        datetime(2026, 3, 11, 6, tzinfo=TZ),
    )

    assert result.ok is True
    assert [interval.origin_ref for interval in result.intervals] == ["a", "b"]
    assert "pageToken=page-2" in seen_urls[1]
    assert "singleEvents=true" in seen_urls[0]


@pytest.mark.parametrize(
    ("raised", "expected_code"),
    [
        (TimeoutError("timed out"), "PROVIDER_UNAVAILABLE"),
        (urllib_error.URLError("dns failure"), "PROVIDER_UNAVAILABLE"),
        (_http_error(503), "PROVIDER_UNAVAILABLE"),
        (_http_error(401), "PROVIDER_AUTH_FAILED"),
        (_http_error(404), "ROOM_NOT_MAPPED"),
        (http.client.IncompleteRead(b"{\"items\""), "PROVIDER_UNAVAILABLE"),
        (http.client.BadStatusLine(""), "PROVIDER_UNAVAILABLE"),
    ],
)
def test_fetch_busy_returns_error_code_instead_of_raising(monkeypatch, raised, expected_code):
    monkeypatch.setattr(google_calendar, "get_access_token", lambda *_args, **_kwargs: "token")

    def _failing_urlopen(*_args, **_kwargs):
        raise raised

    monkeypatch.setattr(urllib_request, "urlopen", _failing_urlopen)

    result = provider.fetch_busy(
        _room(),
        datetime(2026, 3, 10, 0, tzinfo=TZ),
        datetime(2026, 3, 11, 6, tzinfo=TZ),
    )

    assert result.ok is False
    assert result.error_code == expected_code
    assert result.intervals == []


def test_undecodable_response_body_is_provider_unavailable(monkeypatch):
    monkeypatch.setattr(google_calendar, "get_access_token", lambda *_args, **_kwargs: "token")
    monkeypatch.setattr(
        urllib_request,
        "urlopen",
        lambda *_args, **_kwargs: FakeResponse(raw_body=b"\xff\xfe{"),
    )

    fetched = provider.fetch_busy(
        _room(),
        datetime(2026, 3, 10, 0, tzinfo=TZ),
        datetime(2026, 3, 11, 6, tzinfo=TZ),
    )
    created = provider.create_mirror(_room(), _booking())
    probed = provider.probe(_room())

    assert fetched.error_code == "PROVIDER_UNAVAILABLE"
    assert created.error_code == "PROVIDER_UNAVAILABLE"
    assert probed.error_code == "PROVIDER_UNAVAILABLE"


def test_unmapped_room_reports_room_not_mapped():
    result = provider.fetch_busy(
        _room(external_calendar_ref=None),
        datetime(2026, 3, 10, 0, tzinfo=TZ),
        datetime(2026, 3, 11, 6, tzinfo=TZ),
    )

    assert result.error_code == "ROOM_NOT_MAPPED"


def test_missing_oauth_configuration_is_auth_failure(monkeypatch):
    google_calendar.reset_token_cache()
    monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
    monkeypatch.delenv("GOOGLE_CLIENT_SECRET", raising=False)
    monkeypatch.delenv("GOOGLE_REFRESH_TOKEN", raising=False)

    with pytest.raises(ProviderAuthFailed):
        google_calendar.get_access_token()


def test_access_token_is_cached_until_expiry(monkeypatch):
    google_calendar.reset_token_cache()
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "client-secret")
    monkeypatch.setenv("GOOGLE_REFRESH_TOKEN", "refresh-token")
    calls = []

    def _fake_urlopen(req, timeout=None):
        calls.append(req.full_url)
        return FakeResponse({"access_token": "fresh-token", "expires_in": 3600})

    monkeypatch.setattr(urllib_request, "urlopen", _fake_urlopen)

    assert google_calendar.get_access_token() == "fresh-token"
    assert google_calendar.get_access_token() == "fresh-token"
    assert calls == [google_calendar.GOOGLE_TOKEN_ENDPOINT]
    google_calendar.reset_token_cache()


def test_create_mirror_returns_event_ref_and_sends_booking_details(monkeypatch):
    sent = {}

    def _fake_create(calendar_ref, event_body):
        sent["calendar_ref"] = calendar_ref
        sent["body"] = event_body
        return {"id": "evt_mirror_1"}

    monkeypatch.setattr(google_calendar, "create_event", _fake_create)

    result = provider.create_mirror(_room(), _booking())

    assert result.ok is True
    assert result.event_ref == "evt_mirror_1"
    assert sent["calendar_ref"] == "room1@group.calendar.google.com"
    assert sent["body"]["summary"] == "Reserva - Ana Mora"
    assert sent["body"]["extendedProperties"]["private"]["bookingId"] == "12"
    assert sent["body"]["start"]["dateTime"] == "2026-03-10T14:00:00-06:00"


def test_mirror_failures_are_returned_not_raised(monkeypatch):
    def _raise_unavailable(*_args, **_kwargs):
        raise ProviderUnavailable("Google event creation failed.")

    monkeypatch.setattr(google_calendar, "create_event", _raise_unavailable)
    monkeypatch.setattr(google_calendar, "delete_event", _raise_unavailable)

    booking = _booking()
    booking.external_event_ref = "evt_old"

    created = provider.create_mirror(_room(), booking)
    deleted = provider.delete_mirror(_room(), booking)

    assert created.ok is False
    assert created.error_code == "PROVIDER_UNAVAILABLE"
    assert deleted.error_code == "PROVIDER_UNAVAILABLE"


def test_delete_of_missing_event_counts_as_deleted(monkeypatch):
    monkeypatch.setattr(google_calendar, "get_access_token", lambda *_args, **_kwargs: "token")

    def _gone(*_args, **_kwargs):
        raise _http_error(410)

    monkeypatch.setattr(urllib_request, "urlopen", _gone)

    google_calendar.delete_event("room1@group.calendar.google.com", external_event_id="evt_1")


def test_probe_reports_unreachable_calendar(monkeypatch):
    def _not_found(_calendar_ref):
        raise RoomNotMapped("Google calendar lookup target was not found.")

    monkeypatch.setattr(google_calendar, "get_calendar", _not_found)

    result = provider.probe(_room())

    assert result.ok is False
    assert result.error_code == "ROOM_NOT_MAPPED"
