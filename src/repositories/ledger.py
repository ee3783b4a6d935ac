"""
Scan ledger contract and the in-memory implementation.

The ledger is the system of record for ticket state. Its one
correctness-critical operation is ``evaluate_and_record``: read the ticket,
run the admission rules and append the scan iff entry is allowed, all as one
step per ticket code. Two gates scanning the same ticket at the same moment
must never both be admitted into the last remaining slot.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from typing import Deque, Dict, Iterator, List, Optional

from models.policy import ValidationPolicy
from models.ticket import ScanEvent, Ticket, TicketStatus, ensure_utc
from models.validation import ScanAttempt, ValidationResult
from services.validation_engine import evaluate
from utils.error_handling import (
    DuplicateTicketError,
    InvalidStatusTransitionError,
    LedgerUnavailableError,
    TicketNotFoundError,
)
from utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ATTEMPTS_KEPT = 100


def check_status_transition(ticket: Ticket, requested: TicketStatus) -> None:
    """Terminal statuses never go back to ACTIVE."""
    if ticket.status.is_terminal and requested is TicketStatus.ACTIVE:
        raise InvalidStatusTransitionError(ticket.code, ticket.status.value, requested.value)


def build_attempt(
    code: str,
    now: datetime,
    scanned_by: str,
    location: Optional[str],
    result: ValidationResult,
) -> ScanAttempt:
    return ScanAttempt(
        code=code,
        attempted_at=now,
        scanned_by=scanned_by,
        location=location,
        allow_entry=result.allow_entry,
        reason_code=result.reason_code,
    )


def log_decision(code: str, scanned_by: str, result: ValidationResult) -> None:
    details = {
        "ticket_code": code,
        "scanned_by": scanned_by,
        "reason_code": result.reason_code.value,
        "scan_count_after": result.scan_count_after,
        "remaining_scans": result.remaining_scans,
    }
    if result.allow_entry:
        logger.info("Scan admitted", extra=details)
    else:
        logger.warning("Scan denied", extra=details)


class ScanLedger(ABC):
    """Storage boundary for tickets and their append-only scan history."""

    @abstractmethod
    def get_ticket(self, code: str) -> Ticket:
        """Return the current snapshot or raise TicketNotFoundError."""

    @abstractmethod
    def issue(self, ticket: Ticket) -> Ticket:
        """Register a newly issued ticket; duplicates raise DuplicateTicketError."""

    @abstractmethod
    def set_status(self, code: str, status: TicketStatus) -> Ticket:
        """Apply an administrative status change."""

    @abstractmethod
    def evaluate_and_record(
        self,
        code: str,
        policy: ValidationPolicy,
        now: datetime,
        scanned_by: str,
        location: Optional[str] = None,
    ) -> ValidationResult:
        """Atomically evaluate a scan and append it when admitted."""

    @abstractmethod
    def list_attempts(self, code: str, limit: int = 50) -> List[ScanAttempt]:
        """Most recent scan attempts first, admitted or denied."""


class InMemoryScanLedger(ScanLedger):
    """Process-local ledger guarded by one lock per ticket code."""

    def __init__(
        self,
        lock_timeout_seconds: float = 2.0,
        attempts_kept: int = DEFAULT_ATTEMPTS_KEPT,
    ):
        self.lock_timeout_seconds = lock_timeout_seconds
        self.attempts_kept = attempts_kept
        self._tickets: Dict[str, Ticket] = {}
        self._attempts: Dict[str, Deque[ScanAttempt]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, code: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(code, threading.Lock())

    @contextmanager
    def _locked(self, code: str) -> Iterator[None]:
        lock = self._lock_for(code)
        if not lock.acquire(timeout=self.lock_timeout_seconds):
            logger.warning("Ticket lock timeout", extra={"ticket_code": code})
            raise LedgerUnavailableError(f"Ticket {code} is busy, retry the scan")
        try:
            yield
        finally:
            lock.release()

    def _require(self, code: str) -> Ticket:
        ticket = self._tickets.get(code)
        if ticket is None:
            raise TicketNotFoundError(code)
        return ticket

    def get_ticket(self, code: str) -> Ticket:
        return self._require(code)

    def issue(self, ticket: Ticket) -> Ticket:
        with self._locked(ticket.code):
            if ticket.code in self._tickets:
                raise DuplicateTicketError(ticket.code)
            self._tickets[ticket.code] = ticket
            self._attempts[ticket.code] = deque(maxlen=self.attempts_kept)
        logger.info("Ticket issued", extra={"ticket_code": ticket.code})
        return ticket

    def set_status(self, code: str, status: TicketStatus) -> Ticket:
        with self._locked(code):
            ticket = self._require(code)
            check_status_transition(ticket, status)
            updated = ticket.with_status(status)
            self._tickets[code] = updated
        logger.info("Ticket status changed", extra={"ticket_code": code, "status": status.value})
        return updated

    def evaluate_and_record(
        self,
        code: str,
        policy: ValidationPolicy,
        now: datetime,
        scanned_by: str,
        location: Optional[str] = None,
    ) -> ValidationResult:
        now = ensure_utc(now)
        with self._locked(code):
            ticket = self._require(code)
            result = evaluate(ticket, policy, now)
            if result.allow_entry:
                event = ScanEvent(scanned_at=now, scanned_by=scanned_by, location=location)
                self._tickets[code] = ticket.with_scan(event)
            self._attempts[code].append(build_attempt(code, now, scanned_by, location, result))
        log_decision(code, scanned_by, result)
        return result

    def list_attempts(self, code: str, limit: int = 50) -> List[ScanAttempt]:
        with self._locked(code):
            self._require(code)
            attempts = list(self._attempts[code])
        attempts.reverse()
        return attempts[:limit]
