"""
Scan handler for POST /scans.

A gate device posts either the raw ticket code or the payload read from the
QR symbol. The decision (admit/deny plus reason) is returned for display;
denials are normal 200 responses, while format, lookup and storage problems
come back as distinct error statuses.
"""

from __future__ import annotations

import time
import uuid
from typing import Dict

from models.scan import ScanRequest, ScanResponse
from utils.error_handling import AppError, to_response
from utils.http import json_response, read_json_body
from utils.logging_config import get_logger

logger = get_logger(__name__)


def _get_scan_service():
    """Lazy-load the shared ScanService."""
    from services.scan_service import get_scan_service

    return get_scan_service()


def lambda_handler(event, context) -> Dict:
    """Handle POST /scans."""
    start = time.perf_counter()
    correlation_id = str(uuid.uuid4())

    try:
        request = ScanRequest.model_validate(read_json_body(event))
    except ValueError as exc:
        logger.warning(
            "Invalid scan request", extra={"correlation_id": correlation_id, "error": str(exc)}
        )
        return json_response(
            400,
            {"message": "Invalid request", "error": str(exc), "correlation_id": correlation_id},
        )

    try:
        outcome = _get_scan_service().scan(request)
    except AppError as exc:
        logger.warning(
            "Scan not evaluated",
            extra={
                "correlation_id": correlation_id,
                "error_type": exc.error_type,
                "retryable": exc.retryable,
            },
        )
        return to_response(exc, correlation_id)
    except Exception:
        logger.exception("Scan failed", extra={"correlation_id": correlation_id})
        return json_response(
            500, {"message": "Scan failed", "retryable": True, "correlation_id": correlation_id}
        )

    response = ScanResponse(
        code=outcome.code,
        evaluated_at=outcome.evaluated_at,
        recorded=outcome.recorded,
        result=outcome.result,
        processing_time_ms=int((time.perf_counter() - start) * 1000),
        correlation_id=correlation_id,
    )
    return json_response(200, response.model_dump_json())
