"""
Admission payload codec.

The payload is compact JSON (camelCase keys plus a version tag) wrapped in
unpadded URL-safe base64 so it fits an alphanumeric-friendly QR symbol.

The payload is NOT signed. A fabricated payload that names a real code is
indistinguishable from a genuine one here, so the gate only ever uses the
decoded ``code`` to look the ticket up in the ledger.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from models.payload import TicketSummary
from utils.error_handling import MalformedPayloadError

PAYLOAD_VERSION = 1
MAX_PAYLOAD_LENGTH = 2048
_VERSION_KEY = "v"
_FIELD_ALIASES = {field.alias for field in TicketSummary.model_fields.values()}


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)


def encode(summary: TicketSummary) -> str:
    """Serialise a ticket summary into a scan-friendly ASCII string."""
    record: Dict[str, Any] = {_VERSION_KEY: PAYLOAD_VERSION}
    record.update(summary.model_dump(mode="json", by_alias=True))
    raw = json.dumps(record, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return _b64encode(raw)


def decode(payload: str) -> TicketSummary:
    """Parse a scanned payload back into a summary.

    Raises MalformedPayloadError on any structural mismatch.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise MalformedPayloadError("Admission payload is empty")
    payload = payload.strip()
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise MalformedPayloadError("Admission payload is too long")

    try:
        raw = _b64decode(payload)
    except (binascii.Error, ValueError, UnicodeEncodeError):
        raise MalformedPayloadError("Admission payload is not valid base64") from None

    try:
        record = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise MalformedPayloadError("Admission payload is not valid JSON") from None

    if not isinstance(record, dict):
        raise MalformedPayloadError("Admission payload must be a JSON object")

    version = record.pop(_VERSION_KEY, None)
    if type(version) is not int or version != PAYLOAD_VERSION:
        raise MalformedPayloadError(f"Unsupported admission payload version: {version!r}")

    unexpected = set(record) - _FIELD_ALIASES
    if unexpected:
        raise MalformedPayloadError(
            f"Admission payload has unknown fields: {', '.join(sorted(unexpected))}"
        )

    try:
        return TicketSummary.model_validate(record)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "payload" for err in exc.errors()})
        raise MalformedPayloadError(
            f"Admission payload fields invalid: {', '.join(fields)}"
        ) from exc
