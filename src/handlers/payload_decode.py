"""Handler for POST /payloads/decode.

Decodes what a scanner read off the QR symbol so the gate can show the
holder's details. Nothing here is trusted for admission: the payload is
unsigned and the decision always comes from the ledger by code.
"""

from utils.error_handling import AppError, MalformedPayloadError, to_response
from utils.http import json_response, read_json_body


def _get_scan_service():
    from services.scan_service import get_scan_service

    return get_scan_service()


def lambda_handler(event, context):
    try:
        body = read_json_body(event)
    except ValueError:
        return json_response(400, {"message": "Invalid request"})

    payload = body.get("payload") if isinstance(body, dict) else None
    try:
        if not isinstance(payload, str):
            raise MalformedPayloadError("'payload' must be a string")
        decoded = _get_scan_service().decode_payload(payload)
    except AppError as exc:
        return to_response(exc)
    return json_response(200, decoded.model_dump_json(by_alias=True))
