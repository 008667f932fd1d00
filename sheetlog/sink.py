"""Best-effort Google Sheets sink for conversation and booking events.

The sink is a side channel: logging a conversation or a booking must never
abort the caller's primary flow.  Every public coroutine therefore returns
normally whatever happens to the underlying Sheets request.  Failures are only
visible in the log.

``SheetsLogSink.initialize``
    Create the ``Conversations`` and ``Bookings`` worksheets when missing and
    overwrite their header rows.  Safe to run repeatedly.

``SheetsLogSink.append``
    Map an event onto its worksheet row and append it with one ``values.append``
    request.  No retries and no batching.

Blocking googleapiclient requests run in worker threads so many appends can be
in flight on one event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Set, Union

from sheetlog.credentials import CredentialsInvalidError, build_credentials, resolve_service_account
from sheetlog.events import (
    BOOKINGS,
    CONVERSATIONS,
    TARGETS,
    BookingEvent,
    ConversationEvent,
    SinkTarget,
    booking_row,
    conversation_row,
)
from sheetlog.settings import SinkConfig
from sheetlog.sheets_client import SheetAlreadyExistsError, SheetsClient, SheetsClientError

logger = logging.getLogger(__name__)

LogEvent = Union[ConversationEvent, BookingEvent]


@dataclass(frozen=True)
class CallResult:
    """Outcome of one external call made through :meth:`SheetsLogSink._safe_call`."""

    ok: bool
    error: Optional[BaseException] = None


class SheetsLogSink:
    """Append conversation and booking rows to a Google spreadsheet."""

    def __init__(
        self,
        config: Optional[SinkConfig] = None,
        *,
        service=None,
        credentials=None,
    ) -> None:
        self._config = config or SinkConfig()
        self._spreadsheet_id = (self._config.spreadsheet_id or "").strip()
        self._pending: Set[asyncio.Task] = set()
        self._warned_unconfigured = False
        if service is not None:
            self._client: Optional[SheetsClient] = SheetsClient(
                self._spreadsheet_id, service=service, credentials=credentials
            )
        else:
            self._client = self._build_client(credentials)

    @property
    def is_configured(self) -> bool:
        return bool(self._spreadsheet_id) and self._client is not None

    def _build_client(self, credentials) -> Optional[SheetsClient]:
        if credentials is None:
            info = resolve_service_account(self._config.service_account_secret)
            if info is None:
                return None
            try:
                credentials = build_credentials(info)
            except CredentialsInvalidError as exc:
                logger.warning("Google service account key rejected: %s", exc)
                return None
        try:
            return SheetsClient(self._spreadsheet_id, credentials=credentials)
        except SheetsClientError as exc:
            logger.error("Failed to build Google Sheets service: %s", exc)
            return None

    async def _safe_call(self, description: str, func: Callable[..., Any], *args, **kwargs) -> CallResult:
        try:
            await asyncio.to_thread(func, *args, **kwargs)
        except Exception as exc:
            logger.debug("Sheets %s failed", description, exc_info=True)
            return CallResult(ok=False, error=exc)
        return CallResult(ok=True)

    def _ready_client(self, action: str) -> Optional[SheetsClient]:
        if not self._spreadsheet_id:
            logger.warning("Google Sheets ID not configured, skipping %s", action)
            return None
        if self._client is None:
            logger.warning("Google Sheets credentials not available, skipping %s", action)
            return None
        return self._client

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """Ensure both worksheets exist and carry the expected header row."""

        if not self._spreadsheet_id:
            if not self._warned_unconfigured:
                logger.warning("Google Sheets ID not configured")
                self._warned_unconfigured = True
            return
        client = self._ready_client("sheet initialisation")
        if client is None:
            return

        headers_ok = True
        for target in TARGETS:
            await self._ensure_sheet(client, target)
            result = await self._safe_call(
                f"header update for {target.title}",
                client.update_header,
                target.header_range,
                target.headers,
            )
            if not result.ok:
                headers_ok = False
                logger.error("Failed to write %s headers: %s", target.title, result.error)

        if headers_ok:
            logger.info("Google Sheets initialized successfully")
        else:
            logger.warning("Google Sheets initialization finished with errors")

    async def _ensure_sheet(self, client: SheetsClient, target: SinkTarget) -> None:
        result = await self._safe_call(
            f"addSheet {target.title}", client.add_sheet, target.title, columns=target.columns
        )
        if result.ok:
            logger.info("Created worksheet %s", target.title)
        elif isinstance(result.error, SheetAlreadyExistsError):
            logger.debug("Worksheet %s already exists", target.title)
        else:
            # The sheet may still exist from an earlier run; headers are written anyway.
            logger.warning("Failed to create worksheet %s: %s", target.title, result.error)

    def initialize_in_background(self) -> asyncio.Task:
        """Schedule :meth:`initialize` on the running loop without awaiting it."""

        return self._spawn(self.initialize())

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------
    async def log_conversation(self, event: ConversationEvent) -> None:
        await self._append(CONVERSATIONS, conversation_row, event, "conversation")

    async def log_call_booking(self, event: BookingEvent) -> None:
        await self._append(BOOKINGS, booking_row, event, "call booking")

    async def append(self, event: LogEvent) -> None:
        """Append ``event`` to the worksheet matching its kind."""

        if isinstance(event, ConversationEvent):
            await self.log_conversation(event)
        elif isinstance(event, BookingEvent):
            await self.log_call_booking(event)
        else:
            logger.warning("Unsupported log event %r, skipping", type(event).__name__)

    async def _append(
        self,
        target: SinkTarget,
        mapper: Callable[[Any], List[Any]],
        event: Any,
        label: str,
    ) -> None:
        client = self._ready_client(f"{label} logging")
        if client is None:
            return
        try:
            row = mapper(event)
        except Exception:
            logger.exception("Failed to build %s row", label)
            return

        result = await self._safe_call(f"append to {target.title}", client.append_row, target.append_range, row)
        if result.ok:
            logger.info("%s logged to Google Sheets", label.capitalize())
        else:
            logger.error("Failed to log %s to Google Sheets: %s", label, result.error)

    def submit(self, event: LogEvent) -> asyncio.Task:
        """Fire-and-forget variant of :meth:`append` for request handlers."""

        return self._spawn(self.append(event))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def aclose(self) -> None:
        """Wait for every background task started by this sink."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
