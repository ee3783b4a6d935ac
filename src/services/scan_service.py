"""Scan workflow: format check, ledger evaluation, decision for display."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from models.payload import DecodedPayload
from models.scan import AttemptLog, ScanRequest, TicketReference, TicketView
from models.ticket import ensure_utc
from models.validation import ValidationResult
from repositories.ledger import ScanLedger
from services import payload_codec
from services.policy_service import PolicyProvider
from services.validation_engine import evaluate, window_end
from utils.logging_config import get_logger
from utils.validators import DEFAULT_TICKET_PREFIX, ensure_well_formed

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ScanOutcome:
    """What the gate is told after a scan or a dry run."""

    code: str
    evaluated_at: datetime
    result: ValidationResult
    recorded: bool


class ScanService:
    """Runs scans end to end; the only place the clock is read."""

    def __init__(
        self,
        ledger: ScanLedger,
        policies: PolicyProvider,
        code_prefix: str = DEFAULT_TICKET_PREFIX,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.ledger = ledger
        self.policies = policies
        self.code_prefix = code_prefix
        self.clock = clock

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self.clock())

    def resolve_code(self, reference: TicketReference) -> str:
        """Return a well-formed code from a raw code or an encoded payload.

        Only the code is taken from a payload; its other fields are unsigned
        and never used for the decision.
        """
        code = reference.code
        if reference.payload is not None:
            code = payload_codec.decode(reference.payload).code
        return ensure_well_formed(code, self.code_prefix)

    def scan(self, request: ScanRequest, now: Optional[datetime] = None) -> ScanOutcome:
        """Evaluate the scan and record it when entry is allowed."""
        code = self.resolve_code(request)
        now = self._now(now)
        policy = self.policies.current()
        result = self.ledger.evaluate_and_record(
            code, policy, now, scanned_by=request.scanned_by, location=request.location
        )
        return ScanOutcome(code=code, evaluated_at=now, result=result, recorded=result.allow_entry)

    def preview(self, reference: TicketReference, now: Optional[datetime] = None) -> ScanOutcome:
        """Evaluate without recording anything."""
        code = self.resolve_code(reference)
        now = self._now(now)
        ticket = self.ledger.get_ticket(code)
        result = evaluate(ticket, self.policies.current(), now)
        logger.info(
            "Ticket validated",
            extra={"ticket_code": code, "reason_code": result.reason_code.value},
        )
        return ScanOutcome(code=code, evaluated_at=now, result=result, recorded=False)

    def describe(self, code: str, now: Optional[datetime] = None) -> TicketView:
        code = ensure_well_formed(code, self.code_prefix)
        policy = self.policies.current()
        ticket = self.ledger.get_ticket(code)
        decision = evaluate(ticket, policy, self._now(now))
        return TicketView(
            code=ticket.code,
            status=ticket.status,
            valid_until=ticket.valid_until,
            scan_count=ticket.scan_count,
            remaining_scans=max(0, policy.max_scan_count - ticket.scan_count),
            window_closes_at=window_end(ticket, policy),
            current_decision=decision,
            scan_history=list(ticket.scan_history),
        )

    def attempts(self, code: str, limit: int = 50) -> AttemptLog:
        code = ensure_well_formed(code, self.code_prefix)
        return AttemptLog(code=code, attempts=self.ledger.list_attempts(code, limit=limit))

    def decode_payload(self, payload: str) -> DecodedPayload:
        summary = payload_codec.decode(payload)
        ensure_well_formed(summary.code, self.code_prefix)
        return DecodedPayload(code=summary.code, summary=summary)


_scan_service: Optional[ScanService] = None


def get_scan_service() -> ScanService:
    """Build the process-wide ScanService from the environment once."""
    global _scan_service
    if _scan_service is None:
        from config.settings import Settings
        from repositories.factory import build_ledger

        settings = Settings.from_environment()
        policies = PolicyProvider(reload_seconds=settings.policy_reload_seconds)
        # Fail fast on a bad policy before the first ticket is evaluated.
        policies.current()
        _scan_service = ScanService(
            ledger=build_ledger(settings),
            policies=policies,
            code_prefix=settings.ticket_code_prefix,
        )
    return _scan_service


def reset_scan_service(service: Optional[ScanService] = None) -> None:
    """Replace (or drop) the process-wide service; used by tests and warm reloads."""
    global _scan_service
    _scan_service = service
