"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

One Lambda keeps the policy cache, DB pool and (in dev) the in-memory ledger
warm across routes.
"""

from typing import Callable, Dict, Tuple
import json
import re

from . import health_check, payload_decode, scan_ticket, ticket_details, validate_ticket


def _response(status: int, body: Dict) -> Dict:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _route_table() -> Tuple[Tuple[str, "re.Pattern[str]", Callable], ...]:
    # Looked up per call so tests can monkeypatch handler functions.
    return (
        ("GET", re.compile(r"/health/?"), health_check.lambda_handler),
        ("POST", re.compile(r"/scans/?"), scan_ticket.lambda_handler),
        ("POST", re.compile(r"/tickets/validate/?"), validate_ticket.lambda_handler),
        ("GET", re.compile(r"/tickets/[^/]+/attempts/?"), ticket_details.attempts_handler),
        ("GET", re.compile(r"/tickets/[^/]+/?"), ticket_details.lambda_handler),
        ("POST", re.compile(r"/payloads/decode/?"), payload_decode.lambda_handler),
    )


def lambda_handler(event, context):
    """
    Entry point invoked by API Gateway HTTP API.

    The event contains the HTTP method and path; the first matching route in
    the table handles it.
    """
    method = event.get("requestContext", {}).get("http", {}).get("method", "").upper()
    path = event.get("requestContext", {}).get("http", {}).get("path", "")

    for route_method, pattern, handler in _route_table():
        if method == route_method and pattern.fullmatch(path):
            return handler(event, context)

    return _response(404, {"message": "Route not found", "route": f"{method} {path}"})
