"""Handlers for GET /tickets/{code} and GET /tickets/{code}/attempts."""

from utils.error_handling import AppError, to_response
from utils.http import json_response, path_parameter, query_parameter
from utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_ATTEMPTS_PAGE = 200


def _get_scan_service():
    from services.scan_service import get_scan_service

    return get_scan_service()


def lambda_handler(event, context):
    """Return ticket state, computed limits and scan history."""
    code = path_parameter(event, "code", 1)
    if not code:
        return json_response(400, {"message": "ticket code is required"})
    try:
        view = _get_scan_service().describe(code)
    except AppError as exc:
        return to_response(exc)

    logger.info("Ticket details served", extra={"ticket_code": code})
    return json_response(200, view.model_dump_json())


def attempts_handler(event, context):
    """Return the scan-attempt audit trail, newest first."""
    code = path_parameter(event, "code", 1)
    if not code:
        return json_response(400, {"message": "ticket code is required"})

    raw_limit = query_parameter(event, "limit") or "50"
    try:
        limit = int(raw_limit)
    except ValueError:
        return json_response(400, {"message": "limit must be an integer"})
    if not 1 <= limit <= MAX_ATTEMPTS_PAGE:
        return json_response(400, {"message": f"limit must be between 1 and {MAX_ATTEMPTS_PAGE}"})

    try:
        log = _get_scan_service().attempts(code, limit=limit)
    except AppError as exc:
        return to_response(exc)
    return json_response(200, log.model_dump_json())
