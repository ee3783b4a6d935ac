"""Handler for POST /tickets/validate (dry run, nothing is recorded)."""

import time
import uuid

from models.scan import ScanResponse, ValidateRequest
from utils.error_handling import AppError, to_response
from utils.http import json_response, read_json_body
from utils.logging_config import get_logger

logger = get_logger(__name__)


def _get_scan_service():
    from services.scan_service import get_scan_service

    return get_scan_service()


def lambda_handler(event, context):
    """Report what a scan would decide right now without consuming an entry."""
    start = time.perf_counter()
    correlation_id = str(uuid.uuid4())
    try:
        request = ValidateRequest.model_validate(read_json_body(event))
        outcome = _get_scan_service().preview(request)
    except AppError as exc:
        logger.warning(
            "Validation not evaluated",
            extra={"correlation_id": correlation_id, "error_type": exc.error_type},
        )
        return to_response(exc, correlation_id)
    except ValueError as exc:
        return json_response(
            400,
            {"message": "Invalid request", "error": str(exc), "correlation_id": correlation_id},
        )
    except Exception:
        logger.exception("Validation failed", extra={"correlation_id": correlation_id})
        return json_response(
            500,
            {"message": "Validation failed", "retryable": True, "correlation_id": correlation_id},
        )

    response = ScanResponse(
        code=outcome.code,
        evaluated_at=outcome.evaluated_at,
        recorded=False,
        result=outcome.result,
        processing_time_ms=int((time.perf_counter() - start) * 1000),
        correlation_id=correlation_id,
    )
    return json_response(200, response.model_dump_json())
