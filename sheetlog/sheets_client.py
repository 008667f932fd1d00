"""Google Sheets client helpers used by the log sink.

This module centralises all direct interactions with the Google Sheets API.
It exposes the three operations the sink needs and nothing else:

* ``append_row`` adds one row below the existing data of a worksheet.
* ``update_header`` overwrites the first row of a worksheet.
* ``add_sheet`` creates a named worksheet.

All public entry points raise subclasses of :class:`SheetsClientError` so the
sink can contain failures at a single boundary.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, MutableSequence, Optional, Sequence

import httplib2
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

__all__ = [
    "SheetAlreadyExistsError",
    "SheetsApiResponseError",
    "SheetsClient",
    "SheetsClientError",
    "a1_columns_range",
    "a1_headers_range",
    "build_service",
    "column_letter",
    "parse_spreadsheet_id",
]


class SheetsClientError(RuntimeError):
    """Base error raised for Sheets API failures."""


class SheetsApiResponseError(SheetsClientError):
    """Raised when the Google API returns an error response."""

    def __init__(self, message: str, *, status: int = 0) -> None:
        super().__init__(message)
        self.status = status


class SheetAlreadyExistsError(SheetsClientError):
    """Raised when ``addSheet`` targets a title that is already present."""


_SIMPLE_TITLE_RE = re.compile(r"^[A-Za-z0-9_]+$")


def column_letter(index: int) -> str:
    """Return the spreadsheet column letter for a 1-indexed column index."""

    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: MutableSequence[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def _quote_title(title: str) -> str:
    """Return a worksheet title safely formatted for A1 notation."""

    normalised = (title or "").strip()
    if not normalised:
        raise SheetsClientError("Worksheet title must not be empty")
    if _SIMPLE_TITLE_RE.fullmatch(normalised):
        return normalised
    escaped = normalised.replace("'", "''")
    return f"'{escaped}'"


def a1_columns_range(title: str, *, columns: int) -> str:
    """Return an open-ended A1 range such as ``Bookings!A:L``."""

    return f"{_quote_title(title)}!A:{column_letter(max(1, columns))}"


def a1_headers_range(title: str, *, columns: int) -> str:
    """Return an A1 range covering the header row, e.g. ``Bookings!A1:L1``."""

    return f"{_quote_title(title)}!A1:{column_letter(max(1, columns))}1"


def parse_spreadsheet_id(value: Optional[str]) -> str:
    """Normalise a spreadsheet identifier from raw input or URL."""

    if not value:
        return ""
    value = value.strip()
    if "/spreadsheets/d/" in value:
        value = value.split("/spreadsheets/d/", 1)[1]
        value = value.split("/", 1)[0]
    if "?" in value:
        value = value.split("?", 1)[0]
    if "#" in value:
        value = value.split("#", 1)[0]
    return value


def _http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "resp", None), "status", 0)
    try:
        return int(status)
    except (TypeError, ValueError):
        return 0


def _is_already_exists(exc: HttpError) -> bool:
    if _http_status(exc) != 400:
        return False
    content = getattr(exc, "content", b"") or b""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    text = f"{exc} {content}".lower()
    return "already exists" in text


def build_service(credentials):
    """Construct a Sheets v4 service bound to ``credentials``."""

    try:
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)
    except Exception as exc:  # pragma: no cover - discovery / auth guard
        raise SheetsApiResponseError(str(exc)) from exc


class SheetsClient:
    """Thin wrapper over a Sheets service for one spreadsheet.

    The service object may be shared between threads, but ``httplib2.Http`` is
    not thread-safe, so when credentials are known every request is executed
    through a fresh authorised transport.
    """

    def __init__(self, spreadsheet_id: str, *, service=None, credentials=None) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        if service is None:
            service = build_service(credentials)
        self._service = service

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def _execute(self, request) -> Dict[str, Any]:
        try:
            if self._credentials is None:
                return request.execute()
            http = AuthorizedHttp(self._credentials, http=httplib2.Http())
            return request.execute(http=http)
        except HttpError as exc:
            if _is_already_exists(exc):
                raise SheetAlreadyExistsError(str(exc)) from exc
            raise SheetsApiResponseError(str(exc), status=_http_status(exc)) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def append_row(self, range_spec: str, row: Sequence[Any]) -> Dict[str, Any]:
        """Append ``row`` after the last row of data in ``range_spec``."""

        request = (
            self._service.spreadsheets()
            .values()
            .append(
                spreadsheetId=self._spreadsheet_id,
                range=range_spec,
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [list(row)]},
            )
        )
        return self._execute(request)

    def update_header(self, range_spec: str, headers: Sequence[str]) -> Dict[str, Any]:
        """Overwrite the cells of ``range_spec`` with ``headers``."""

        request = (
            self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self._spreadsheet_id,
                range=range_spec,
                valueInputOption="RAW",
                body={"values": [list(headers)]},
            )
        )
        return self._execute(request)

    def add_sheet(self, title: str, *, columns: int) -> Dict[str, Any]:
        """Create a worksheet called ``title``."""

        requests: List[Dict[str, Any]] = [
            {
                "addSheet": {
                    "properties": {
                        "title": title,
                        "gridProperties": {"rowCount": 1000, "columnCount": columns},
                    }
                }
            }
        ]
        request = self._service.spreadsheets().batchUpdate(
            spreadsheetId=self._spreadsheet_id,
            body={"requests": requests},
        )
        return self._execute(request)
