"""Helpers for decoding Google service account credentials from the environment.

Hosting platforms inject secrets as single-line strings, so operators supply
the service account key either as raw JSON or as base64 wrapped JSON.  Both
forms are accepted here.  The decoded material only ever lives in memory.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Dict, Iterable, Mapping, Optional

from google.oauth2 import service_account

__all__ = [
    "CredentialsInvalidError",
    "REQUIRED_FIELDS",
    "SCOPES",
    "build_credentials",
    "decode_service_account",
    "resolve_service_account",
]

logger = logging.getLogger(__name__)

SCOPES: Iterable[str] = ("https://www.googleapis.com/auth/spreadsheets",)

REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "private_key",
    "client_email",
    "token_uri",
)


class CredentialsInvalidError(Exception):
    """Raised when a service account secret cannot be decoded or used."""


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _b64decode(text: str) -> bytes:
    compact = "".join(text.split())
    compact = compact.replace("-", "+").replace("_", "/")
    compact += "=" * (-len(compact) % 4)
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialsInvalidError("base64 decode failed") from exc


def _parse_json(text: str) -> Dict[str, object]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        # Only the position is reported; the message never includes the secret.
        raise CredentialsInvalidError(
            f"JSON parse error at line {exc.lineno} column {exc.colno}"
        ) from exc
    if not isinstance(payload, dict):
        raise CredentialsInvalidError("service account JSON must be an object")
    return payload


def decode_service_account(secret: str) -> Dict[str, object]:
    """Return the service account mapping encoded in ``secret``.

    ``secret`` is either the JSON document itself or its base64 encoding.
    Raises :class:`CredentialsInvalidError` when neither form can be parsed.
    """

    text = (secret or "").strip()
    if not text:
        raise CredentialsInvalidError("service account secret is empty")
    if text.startswith("{"):
        return _parse_json(text)

    raw = _b64decode(text)
    try:
        decoded = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CredentialsInvalidError("decoded secret is not valid UTF-8") from exc
    return _parse_json(decoded.strip())


def resolve_service_account(secret: Optional[str]) -> Optional[Dict[str, object]]:
    """Decode ``secret`` or return ``None`` when it is absent or malformed."""

    if secret is None or not secret.strip():
        logger.warning("Google service account key not configured")
        return None
    try:
        return decode_service_account(secret)
    except CredentialsInvalidError as exc:
        logger.warning("Failed to parse Google service account key: %s", exc)
        return None


def build_credentials(info: Mapping[str, object]) -> service_account.Credentials:
    """Return google-auth credentials for ``info`` scoped to Google Sheets."""

    data: Dict[str, object] = dict(info)
    missing = [
        field
        for field in REQUIRED_FIELDS
        if not isinstance(data.get(field), str) or not str(data.get(field)).strip()
    ]
    if missing:
        raise CredentialsInvalidError(f"service account JSON missing fields: {', '.join(missing)}")

    data["private_key"] = _normalise_private_key(str(data["private_key"]))
    try:
        return service_account.Credentials.from_service_account_info(data, scopes=list(SCOPES))
    except ValueError as exc:
        raise CredentialsInvalidError(str(exc) or "invalid service account key") from exc
