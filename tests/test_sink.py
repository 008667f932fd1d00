from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import httplib2
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fake_sheets import FakeService, http_error
from sheetlog import sheets_client, sink as sink_module
from sheetlog.events import BookingEvent, ConversationEvent
from sheetlog.settings import SinkConfig
from sheetlog.sink import SheetsLogSink

T = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _conversation() -> ConversationEvent:
    return ConversationEvent(
        session_id="s1",
        user_message="What do you offer?",
        ai_response="Automation services.",
        lead_score={"overall": 5},
        contact_info={},
        timestamp=T,
    )


def _booking() -> BookingEvent:
    return BookingEvent(
        session_id="s1",
        contact_info={"name": "Jane", "email": "j@x.com"},
        booking_info={"date": "2024-05-01", "time": "10:00", "type": "demo"},
        lead_score={"overall": 8},
        timestamp=T,
    )


def _sink(service: FakeService, spreadsheet_id: str = "sheet-123") -> SheetsLogSink:
    return SheetsLogSink(SinkConfig(spreadsheet_id=spreadsheet_id), service=service)


def test_append_without_spreadsheet_id_makes_no_calls(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService(sheets=["Conversations", "Bookings"])
    sink = SheetsLogSink(SinkConfig(), service=service)

    with caplog.at_level(logging.WARNING):
        assert asyncio.run(sink.append(_conversation())) is None

    assert service.calls == []
    assert "Google Sheets ID not configured" in caplog.text


def test_booking_append_issues_single_request(monkeypatch: pytest.MonkeyPatch) -> None:
    service = FakeService(sheets=["Conversations", "Bookings"])
    credentials_seen = []

    def _fake_build_credentials(info):
        credentials_seen.append(info)
        return object()

    monkeypatch.setattr(sink_module, "build_credentials", _fake_build_credentials)
    monkeypatch.setattr(sheets_client, "build", lambda *args, **kwargs: service)
    secret = json.dumps({"type": "service_account", "client_email": "svc@example.com"})
    sink = SheetsLogSink(SinkConfig(spreadsheet_id="sheet-123", service_account_secret=secret))

    asyncio.run(sink.append(_booking()))

    assert credentials_seen == [json.loads(secret)]
    assert [name for name, _ in service.calls] == ["append"]
    params = service.calls[0][1]
    assert params["spreadsheetId"] == "sheet-123"
    assert params["range"] == "Bookings!A:L"
    assert params["valueInputOption"] == "RAW"
    assert params["body"] == {
        "values": [
            [
                "2024-05-01T10:00:00.000Z",
                "s1",
                "Jane",
                "j@x.com",
                "",
                "",
                "",
                "2024-05-01",
                "10:00",
                "demo",
                8,
                "call_booked",
            ]
        ]
    }


def test_conversation_append_targets_conversations_sheet() -> None:
    service = FakeService(sheets=["Conversations", "Bookings"])

    asyncio.run(_sink(service).log_conversation(_conversation()))

    assert service.sheets["Conversations"] == [
        [
            "2024-05-01T10:00:00.000Z",
            "s1",
            "What do you offer?",
            "Automation services.",
            '{"overall":5}',
            "{}",
            5,
            "conversation",
        ]
    ]
    assert service.sheets["Bookings"] == []


@pytest.mark.parametrize(
    "failure",
    [
        httplib2.ServerNotFoundError("Unable to find the server at sheets.googleapis.com"),
        http_error(401, "Request had invalid authentication credentials."),
        http_error(429, "Quota exceeded for quota metric 'Write requests'."),
        ConnectionResetError("connection reset by peer"),
    ],
)
def test_append_swallows_external_failures(failure: BaseException, caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService(sheets=["Conversations", "Bookings"], failures={"*": failure})
    sink = _sink(service)

    with caplog.at_level(logging.ERROR, logger="sheetlog.sink"):
        assert asyncio.run(sink.append(_booking())) is None
        assert asyncio.run(sink.append(_conversation())) is None

    assert len(service.calls_for("append")) == 2
    assert "Failed to log call booking to Google Sheets" in caplog.text
    assert "Failed to log conversation to Google Sheets" in caplog.text


def test_append_to_missing_sheet_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService(sheets=[])

    with caplog.at_level(logging.ERROR, logger="sheetlog.sink"):
        asyncio.run(_sink(service).append(_booking()))

    assert "Unable to parse range" in caplog.text


def test_append_ignores_unknown_event_types() -> None:
    service = FakeService(sheets=["Conversations", "Bookings"])

    asyncio.run(_sink(service).append({"sessionId": "s1"}))  # type: ignore[arg-type]

    assert service.calls == []


def test_missing_credentials_make_sink_a_noop() -> None:
    sink = SheetsLogSink(SinkConfig(spreadsheet_id="sheet-123"))

    assert not sink.is_configured
    assert asyncio.run(sink.append(_booking())) is None
    assert asyncio.run(sink.initialize()) is None


def test_rejected_credentials_make_sink_a_noop(caplog: pytest.LogCaptureFixture) -> None:
    secret = json.dumps({"type": "service_account"})

    with caplog.at_level(logging.WARNING):
        sink = SheetsLogSink(SinkConfig(spreadsheet_id="sheet-123", service_account_secret=secret))

    assert not sink.is_configured
    assert "Google service account key rejected" in caplog.text


def test_initialize_creates_sheets_and_headers() -> None:
    service = FakeService()

    asyncio.run(_sink(service).initialize())

    assert service.sheets["Conversations"] == [
        [
            "Timestamp",
            "Session ID",
            "User Message",
            "AI Response",
            "Lead Score JSON",
            "Contact Info JSON",
            "Lead Score",
            "Type",
        ]
    ]
    assert service.sheets["Bookings"][0][0] == "Timestamp"
    assert service.sheets["Bookings"][0][-1] == "Status"
    assert len(service.sheets["Bookings"][0]) == 12
    ranges = [params["range"] for params in service.calls_for("update")]
    assert ranges == ["Conversations!A1:H1", "Bookings!A1:L1"]


def test_initialize_is_idempotent() -> None:
    service = FakeService()
    sink = _sink(service)

    asyncio.run(sink.initialize())
    first = {title: [list(row) for row in rows] for title, rows in service.sheets.items()}
    asyncio.run(sink.initialize())

    assert service.sheets == first
    assert sorted(service.sheets) == ["Bookings", "Conversations"]
    assert len(service.calls_for("batchUpdate")) == 4


def test_initialize_keeps_existing_rows() -> None:
    service = FakeService(sheets=["Conversations", "Bookings"])
    service.sheets["Bookings"] = [["old header"], ["existing", "row"]]

    asyncio.run(_sink(service).initialize())

    assert service.sheets["Bookings"][1] == ["existing", "row"]
    assert service.sheets["Bookings"][0][1] == "Session ID"


def test_initialize_writes_headers_after_sheet_creation_failure(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService(
        sheets=["Conversations", "Bookings"],
        failures={"batchUpdate": http_error(403, "The caller does not have permission")},
    )

    with caplog.at_level(logging.WARNING, logger="sheetlog.sink"):
        asyncio.run(_sink(service).initialize())

    assert len(service.calls_for("update")) == 2
    assert "Failed to create worksheet Conversations" in caplog.text
    assert service.sheets["Conversations"][0][0] == "Timestamp"


def test_initialize_never_raises_when_everything_fails(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService(failures={"*": http_error(500, "Internal error encountered.")})

    with caplog.at_level(logging.WARNING, logger="sheetlog.sink"):
        assert asyncio.run(_sink(service).initialize()) is None

    assert "Failed to write Bookings headers" in caplog.text
    assert "initialization finished with errors" in caplog.text


def test_initialize_without_spreadsheet_warns_once(caplog: pytest.LogCaptureFixture) -> None:
    service = FakeService()
    sink = SheetsLogSink(SinkConfig(), service=service)

    async def _twice() -> None:
        await sink.initialize()
        await sink.initialize()

    with caplog.at_level(logging.WARNING, logger="sheetlog.sink"):
        asyncio.run(_twice())

    assert service.calls == []
    assert caplog.text.count("Google Sheets ID not configured") == 1


def test_background_tasks_complete_before_close() -> None:
    service = FakeService()
    sink = _sink(service)

    async def _run() -> None:
        await sink.initialize_in_background()
        for _ in range(5):
            sink.submit(_conversation())
        sink.submit(_booking())
        await sink.aclose()

    asyncio.run(_run())

    assert len(service.sheets["Conversations"]) == 6
    assert len(service.sheets["Bookings"]) == 2
