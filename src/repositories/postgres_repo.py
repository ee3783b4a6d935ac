"""PostgreSQL scan ledger using SQLAlchemy Core.

Each scan runs in one transaction that locks the ticket row with
``SELECT ... FOR UPDATE``; a concurrent scan of the same code waits for the
first to commit and then sees its appended event. ``lock_timeout`` bounds the
wait so contention surfaces as a retryable LedgerUnavailableError.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from models.policy import ValidationPolicy
from models.ticket import ScanEvent, Ticket, TicketStatus, ensure_utc
from models.validation import ReasonCode, ScanAttempt, ValidationResult
from repositories.ledger import (
    ScanLedger,
    build_attempt,
    check_status_transition,
    log_decision,
)
from services.validation_engine import evaluate
from utils.error_handling import (
    DuplicateTicketError,
    LedgerUnavailableError,
    TicketNotFoundError,
)
from utils.logging_config import get_logger

logger = get_logger(__name__)

metadata = MetaData()

tickets_table = Table(
    "tickets",
    metadata,
    Column("code", String(32), primary_key=True),
    Column("status", String(16), nullable=False),
    Column("valid_until", DateTime(timezone=True), nullable=False),
    Column("order_reference", String(100)),
    Column("holder_name", String(200)),
    Column("session_label", String(100)),
    Column("issued_at", DateTime(timezone=True)),
)

ticket_scans_table = Table(
    "ticket_scans",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(32), ForeignKey("tickets.code"), nullable=False, index=True),
    Column("scanned_at", DateTime(timezone=True), nullable=False),
    Column("scanned_by", String(100), nullable=False),
    Column("location", String(200)),
)

scan_attempts_table = Table(
    "scan_attempts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(32), ForeignKey("tickets.code"), nullable=False, index=True),
    Column("attempted_at", DateTime(timezone=True), nullable=False),
    Column("scanned_by", String(100), nullable=False),
    Column("location", String(200)),
    Column("allow_entry", Boolean, nullable=False),
    Column("reason_code", String(32), nullable=False),
)


class PostgresScanLedger(ScanLedger):
    """Ledger backed by three tables: tickets, ticket_scans, scan_attempts."""

    def __init__(self, engine: Engine, lock_timeout_seconds: float = 2.0):
        self.engine = engine
        self.lock_timeout_ms = max(1, int(lock_timeout_seconds * 1000))

    def create_schema(self) -> None:
        """Create the ledger tables if they do not exist."""
        metadata.create_all(self.engine)

    def _set_lock_timeout(self, conn: Connection) -> None:
        if self.engine.dialect.name == "postgresql":
            # SET LOCAL does not accept bind parameters; the value is an int.
            conn.execute(text(f"SET LOCAL lock_timeout = {self.lock_timeout_ms}"))

    def _load(self, conn: Connection, code: str, for_update: bool = False) -> Ticket:
        stmt = select(tickets_table).where(tickets_table.c.code == code)
        if for_update:
            stmt = stmt.with_for_update()
        row = conn.execute(stmt).fetchone()
        if row is None:
            raise TicketNotFoundError(code)
        scans = conn.execute(
            select(ticket_scans_table)
            .where(ticket_scans_table.c.code == code)
            .order_by(ticket_scans_table.c.id)
        ).fetchall()
        return self._to_ticket(row, scans)

    @staticmethod
    def _to_ticket(row: Row, scans: List[Row]) -> Ticket:
        data = row._mapping
        return Ticket(
            code=data["code"],
            status=TicketStatus(data["status"]),
            valid_until=data["valid_until"],
            order_reference=data["order_reference"],
            holder_name=data["holder_name"],
            session_label=data["session_label"],
            issued_at=data["issued_at"],
            scan_history=tuple(
                ScanEvent(
                    scanned_at=scan._mapping["scanned_at"],
                    scanned_by=scan._mapping["scanned_by"],
                    location=scan._mapping["location"],
                )
                for scan in scans
            ),
        )

    def get_ticket(self, code: str) -> Ticket:
        try:
            with self.engine.connect() as conn:
                return self._load(conn, code)
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.exception("Ticket lookup failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc

    def issue(self, ticket: Ticket) -> Ticket:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(tickets_table).values(
                        code=ticket.code,
                        status=ticket.status.value,
                        valid_until=ticket.valid_until,
                        order_reference=ticket.order_reference,
                        holder_name=ticket.holder_name,
                        session_label=ticket.session_label,
                        issued_at=ticket.issued_at,
                    )
                )
                for event in ticket.scan_history:
                    conn.execute(
                        insert(ticket_scans_table).values(
                            code=ticket.code,
                            scanned_at=event.scanned_at,
                            scanned_by=event.scanned_by,
                            location=event.location,
                        )
                    )
        except IntegrityError as exc:
            raise DuplicateTicketError(ticket.code) from exc
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.exception("Ticket issue failed", extra={"ticket_code": ticket.code})
            raise LedgerUnavailableError() from exc
        logger.info("Ticket issued", extra={"ticket_code": ticket.code})
        return ticket

    def set_status(self, code: str, status: TicketStatus) -> Ticket:
        try:
            with self.engine.begin() as conn:
                self._set_lock_timeout(conn)
                ticket = self._load(conn, code, for_update=True)
                check_status_transition(ticket, status)
                conn.execute(
                    update(tickets_table)
                    .where(tickets_table.c.code == code)
                    .values(status=status.value)
                )
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.exception("Status change failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        logger.info("Ticket status changed", extra={"ticket_code": code, "status": status.value})
        return ticket.with_status(status)

    def evaluate_and_record(
        self,
        code: str,
        policy: ValidationPolicy,
        now: datetime,
        scanned_by: str,
        location: Optional[str] = None,
    ) -> ValidationResult:
        now = ensure_utc(now)
        try:
            with self.engine.begin() as conn:
                self._set_lock_timeout(conn)
                ticket = self._load(conn, code, for_update=True)
                result = evaluate(ticket, policy, now)
                if result.allow_entry:
                    conn.execute(
                        insert(ticket_scans_table).values(
                            code=code, scanned_at=now, scanned_by=scanned_by, location=location
                        )
                    )
                attempt = build_attempt(code, now, scanned_by, location, result)
                conn.execute(
                    insert(scan_attempts_table).values(
                        code=code,
                        attempted_at=attempt.attempted_at,
                        scanned_by=attempt.scanned_by,
                        location=attempt.location,
                        allow_entry=attempt.allow_entry,
                        reason_code=attempt.reason_code.value,
                    )
                )
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.exception("Scan transaction failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        log_decision(code, scanned_by, result)
        return result

    def list_attempts(self, code: str, limit: int = 50) -> List[ScanAttempt]:
        try:
            with self.engine.connect() as conn:
                exists = conn.execute(
                    select(tickets_table.c.code).where(tickets_table.c.code == code)
                ).fetchone()
                if exists is None:
                    raise TicketNotFoundError(code)
                rows = conn.execute(
                    select(scan_attempts_table)
                    .where(scan_attempts_table.c.code == code)
                    .order_by(scan_attempts_table.c.id.desc())
                    .limit(limit)
                ).fetchall()
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.exception("Attempt lookup failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        return [
            ScanAttempt(
                code=row._mapping["code"],
                attempted_at=ensure_utc(row._mapping["attempted_at"]),
                scanned_by=row._mapping["scanned_by"],
                location=row._mapping["location"],
                allow_entry=row._mapping["allow_entry"],
                reason_code=ReasonCode(row._mapping["reason_code"]),
            )
            for row in rows
        ]
