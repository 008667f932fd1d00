"""Framework independent handler for call booking requests.

Validates the booking payload, records it through the sink and maps the
outcome onto an HTTP style response.  The sink never raises, so a booking is
confirmed even when the spreadsheet write fails.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sheetlog.events import BookingEvent

logger = logging.getLogger(__name__)

# Completed bookings are not scored by the pipeline; they are logged as hot leads.
BOOKED_CALL_LEAD_SCORE = 8

CORS_HEADERS: Mapping[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Content-Type": "application/json",
}

MISSING_FIELDS_MESSAGE = "Missing required fields: name, email, date, and time are required"
SUCCESS_MESSAGE = "Call booked successfully! You will receive a calendar invitation shortly."


@dataclass
class BookingResponse:
    status_code: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None


def _json_response(status_code: int, payload: Mapping[str, Any]) -> BookingResponse:
    return BookingResponse(status_code=status_code, body=json.dumps(payload))


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def missing_required_fields(payload: Mapping[str, Any]) -> bool:
    """Return ``True`` unless name, email, date and time are all present."""

    contact = _mapping(payload.get("contactInfo"))
    booking = _mapping(payload.get("bookingInfo"))
    return not (contact.get("name") and contact.get("email") and booking.get("date") and booking.get("time"))


async def handle_book_call(sink, method: str, body: Optional[str]) -> BookingResponse:
    """Process one booking request and log it to the ``Bookings`` sheet."""

    method = (method or "").upper()
    if method == "OPTIONS":
        return BookingResponse(status_code=200)
    if method != "POST":
        return _json_response(405, {"message": "Method not allowed"})

    try:
        payload = json.loads(body or "{}")
        if not isinstance(payload, Mapping):
            raise ValueError("Request body must be a JSON object")

        if missing_required_fields(payload):
            return _json_response(400, {"message": MISSING_FIELDS_MESSAGE})

        event = BookingEvent(
            session_id=payload.get("sessionId") or "",
            contact_info=payload.get("contactInfo"),
            booking_info=payload.get("bookingInfo"),
            lead_score={"overall": BOOKED_CALL_LEAD_SCORE},
            timestamp=datetime.now(timezone.utc),
        )
        await sink.log_call_booking(event)
    except Exception as exc:
        logger.error("Book call API error: %s", exc)
        return _json_response(500, {"message": str(exc) or "Failed to book call"})

    return _json_response(200, {"success": True, "message": SUCCESS_MESSAGE})
