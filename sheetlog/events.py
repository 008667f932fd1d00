"""Log events and their mapping onto fixed-width worksheet rows.

Every mapping here is total: malformed or missing sub-fields degrade to the
column default (``""`` or ``0``) instead of raising, so a bad payload can never
stop a row from being produced.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, List, Mapping, Optional, Tuple

from sheetlog.sheets_client import a1_columns_range, a1_headers_range

__all__ = [
    "BOOKINGS",
    "BookingEvent",
    "CONVERSATIONS",
    "ConversationEvent",
    "SinkTarget",
    "TARGETS",
    "booking_row",
    "conversation_row",
    "format_timestamp",
]


@dataclass(frozen=True)
class SinkTarget:
    """A worksheet the sink writes to, with its fixed header row."""

    title: str
    headers: Tuple[str, ...]

    @property
    def columns(self) -> int:
        return len(self.headers)

    @property
    def append_range(self) -> str:
        return a1_columns_range(self.title, columns=self.columns)

    @property
    def header_range(self) -> str:
        return a1_headers_range(self.title, columns=self.columns)


CONVERSATIONS = SinkTarget(
    title="Conversations",
    headers=(
        "Timestamp",
        "Session ID",
        "User Message",
        "AI Response",
        "Lead Score JSON",
        "Contact Info JSON",
        "Lead Score",
        "Type",
    ),
)

BOOKINGS = SinkTarget(
    title="Bookings",
    headers=(
        "Timestamp",
        "Session ID",
        "Name",
        "Email",
        "Phone",
        "Company",
        "Title",
        "Date",
        "Time",
        "Type",
        "Lead Score",
        "Status",
    ),
)

TARGETS: Tuple[SinkTarget, ...] = (CONVERSATIONS, BOOKINGS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationEvent:
    """One user/assistant exchange produced by the conversation pipeline."""

    kind: ClassVar[str] = "conversation"

    session_id: str
    user_message: str
    ai_response: str
    lead_score: Optional[Mapping[str, Any]] = None
    contact_info: Optional[Mapping[str, Any]] = None
    timestamp: Any = field(default_factory=_utcnow)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ConversationEvent":
        return cls(
            session_id=payload.get("sessionId") or "",
            user_message=payload.get("userMessage") or "",
            ai_response=payload.get("aiResponse") or "",
            lead_score=payload.get("leadScore"),
            contact_info=payload.get("contactInfo"),
            timestamp=payload.get("timestamp") or _utcnow(),
        )


@dataclass(frozen=True)
class BookingEvent:
    """A completed call booking."""

    kind: ClassVar[str] = "call_booked"

    session_id: str
    contact_info: Optional[Mapping[str, Any]] = None
    booking_info: Optional[Mapping[str, Any]] = None
    lead_score: Optional[Mapping[str, Any]] = None
    timestamp: Any = field(default_factory=_utcnow)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BookingEvent":
        return cls(
            session_id=payload.get("sessionId") or "",
            contact_info=payload.get("contactInfo"),
            booking_info=payload.get("bookingInfo"),
            lead_score=payload.get("leadScore"),
            timestamp=payload.get("timestamp") or _utcnow(),
        )


def format_timestamp(value: Any) -> str:
    """Return ``value`` as UTC ISO-8601 with milliseconds and a ``Z`` suffix.

    Datetimes without tzinfo are taken as UTC and numbers as epoch
    milliseconds.  Values that cannot be interpreted are returned as text.
    """

    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return str(value)
    else:
        text = str(value).strip()
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text
    try:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        else:
            dt = dt.astimezone(timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    except (OverflowError, ValueError):
        return str(value)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _primitive(value: Any) -> Any:
    if isinstance(value, (str, int, float)):
        return value
    return _to_json(value)


def _text(mapping: Mapping[str, Any], key: str) -> Any:
    return _primitive(mapping.get(key) or "")


def _overall(lead_score: Any) -> Any:
    return _primitive(_as_mapping(lead_score).get("overall") or 0)


def _to_json(value: Any) -> str:
    if value is None:
        return ""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def conversation_row(event: ConversationEvent) -> List[Any]:
    """Map ``event`` onto the eight ``Conversations`` columns."""

    return [
        format_timestamp(event.timestamp),
        _primitive(event.session_id or ""),
        _primitive(event.user_message or ""),
        _primitive(event.ai_response or ""),
        _to_json(event.lead_score),
        _to_json(event.contact_info),
        _overall(event.lead_score),
        ConversationEvent.kind,
    ]


def booking_row(event: BookingEvent) -> List[Any]:
    """Map ``event`` onto the twelve ``Bookings`` columns."""

    contact = _as_mapping(event.contact_info)
    booking = _as_mapping(event.booking_info)
    return [
        format_timestamp(event.timestamp),
        _primitive(event.session_id or ""),
        _text(contact, "name"),
        _text(contact, "email"),
        _text(contact, "phone"),
        _text(contact, "company"),
        _text(contact, "title"),
        _text(booking, "date"),
        _text(booking, "time"),
        _text(booking, "type"),
        _overall(event.lead_score),
        BookingEvent.kind,
    ]
