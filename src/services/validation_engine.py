"""
Ticket admission rules.

``evaluate`` is a pure function of (ticket snapshot, policy, now). It never
reads the clock and never records anything; the scan ledger calls it inside
its per-ticket critical section and appends the scan only when entry is
allowed.

Rules run in a fixed priority order and stop at the first disqualification:

1. administrative status (cancelled/invalid)
2. absolute validity (``valid_until``)
3. admissions used up (``max_scan_count``)
4. re-entry window counted from the first scan (``scan_window_days``)
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from models.policy import ValidationPolicy
from models.ticket import Ticket, TicketStatus, ensure_utc
from models.validation import ReasonCode, ValidationResult

WINDOW_WARNING_THRESHOLD = timedelta(days=3)
_DAY_SECONDS = 86400


def window_end(ticket: Ticket, policy: ValidationPolicy) -> Optional[datetime]:
    """When the re-entry window closes, or None before the first scan."""
    first_scan = ticket.first_scan_at
    if first_scan is None:
        return None
    return first_scan + timedelta(days=policy.scan_window_days)


def _deny(reason: ReasonCode, scan_count: int) -> ValidationResult:
    return ValidationResult(
        allow_entry=False,
        reason_code=reason,
        scan_count_after=scan_count,
        remaining_scans=0,
    )


def _window_warning(closes_at: datetime, now: datetime) -> Optional[str]:
    left = closes_at - now
    if left > WINDOW_WARNING_THRESHOLD:
        return None
    days = math.ceil(left.total_seconds() / _DAY_SECONDS)
    return f"Re-entry window closes in {days} day(s)"


def evaluate(ticket: Ticket, policy: ValidationPolicy, now: datetime) -> ValidationResult:
    """Decide whether ``ticket`` may enter at ``now`` under ``policy``.

    On admission ``scan_count_after`` includes the scan being granted, so
    ``remaining_scans`` is what is left once the ledger records it.
    """
    now = ensure_utc(now)
    scan_count = ticket.scan_count

    if ticket.status in (TicketStatus.CANCELLED, TicketStatus.INVALID):
        return _deny(ReasonCode.STATUS_BLOCKED, scan_count)

    if now > ticket.valid_until:
        return _deny(ReasonCode.EXPIRED, scan_count)

    if scan_count >= policy.max_scan_count:
        return _deny(ReasonCode.MAX_SCANS_EXCEEDED, scan_count)

    warning = None
    closes_at = window_end(ticket, policy)
    if closes_at is not None:
        if now > closes_at:
            return _deny(ReasonCode.WINDOW_EXPIRED, scan_count)
        warning = _window_warning(closes_at, now)

    count_after = scan_count + 1
    return ValidationResult(
        allow_entry=True,
        reason_code=ReasonCode.VALID,
        scan_count_after=count_after,
        remaining_scans=max(0, policy.max_scan_count - count_after),
        warning_message=warning,
    )
