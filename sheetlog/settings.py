"""Configuration for the Google Sheets log sink."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from sheetlog.sheets_client import parse_spreadsheet_id

SPREADSHEET_ID_ENV = "GOOGLE_SHEETS_ID"
SERVICE_ACCOUNT_KEY_ENV = "GOOGLE_SERVICE_ACCOUNT_KEY"
LOG_LEVEL_ENV = "SHEETLOG_LOG_LEVEL"
LOG_PATH_ENV = "SHEETLOG_LOG_PATH"


@dataclass(frozen=True)
class SinkConfig:
    """Explicit sink configuration; either field may be absent."""

    spreadsheet_id: Optional[str] = None
    service_account_secret: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SinkConfig":
        env = os.environ if environ is None else environ
        spreadsheet_id = parse_spreadsheet_id(env.get(SPREADSHEET_ID_ENV)) or None
        secret = env.get(SERVICE_ACCOUNT_KEY_ENV) or None
        return cls(spreadsheet_id=spreadsheet_id, service_account_secret=secret)
