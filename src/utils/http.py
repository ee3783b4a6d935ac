"""API Gateway HTTP API (payload v2) request/response helpers."""

import base64
import json
from typing import Any, Dict, Optional


def json_response(status: int, body: Any) -> Dict[str, Any]:
    """Format a JSON proxy response; ``body`` may already be serialised."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": body if isinstance(body, str) else json.dumps(body),
    }


def read_json_body(event: Dict[str, Any]) -> Any:
    """Decode the request body, undoing API Gateway base64 wrapping."""
    raw = event.get("body") or "{}"
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    return json.loads(raw)


def path_parameter(event: Dict[str, Any], name: str, position: int) -> Optional[str]:
    """Read a path parameter, falling back to the raw path segment at ``position``."""
    params = event.get("pathParameters") or {}
    if params.get(name):
        return params[name]
    path = event.get("requestContext", {}).get("http", {}).get("path") or event.get("rawPath", "")
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) > position:
        return segments[position]
    return None


def query_parameter(event: Dict[str, Any], name: str) -> Optional[str]:
    return (event.get("queryStringParameters") or {}).get(name)
