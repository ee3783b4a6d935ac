"""Lightweight health check handler."""

import os
import json
from datetime import datetime, timezone


def lambda_handler(event, context):
    """Return a simple 200 response to verify the service is alive.

    Deliberately does not touch the ledger: a storage outage should show up
    as 503 on scans, not as a dead health check.
    """
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(
            {
                "status": "ok",
                "service": "ticket-admission",
                "environment": os.environ.get("ENVIRONMENT", "dev"),
                "ledger_backend": os.environ.get("LEDGER_BACKEND", "memory"),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ),
    }
