"""Best-effort Google Sheets log for conversations and call bookings."""

from sheetlog.events import BookingEvent, ConversationEvent
from sheetlog.settings import SinkConfig
from sheetlog.sink import SheetsLogSink

__version__ = "1.0.0"

__all__ = [
    "BookingEvent",
    "ConversationEvent",
    "SheetsLogSink",
    "SinkConfig",
    "__version__",
]
