"""DynamoDB scan ledger.

One item per ticket, keyed by ``code``. Every write is a compare-and-swap on
the ``version`` attribute: a scan that loses the race re-reads the item and
is evaluated again against the winner's appended event. After
``max_retries`` lost races the scan is reported as retryable.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from models.policy import ValidationPolicy
from models.ticket import ScanEvent, Ticket, TicketStatus, ensure_utc
from models.validation import ScanAttempt, ValidationResult
from repositories.ledger import (
    DEFAULT_ATTEMPTS_KEPT,
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

CONDITION_FAILED = "ConditionalCheckFailedException"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value is not None else None


class DynamoDbScanLedger(ScanLedger):
    """Ledger stored in a single DynamoDB table."""

    def __init__(
        self,
        table_name: str,
        table: Any = None,
        max_retries: int = 3,
        attempts_kept: int = DEFAULT_ATTEMPTS_KEPT,
    ):
        self.table_name = table_name
        self.table = table if table is not None else boto3.resource("dynamodb").Table(table_name)
        self.max_retries = max_retries
        self.attempts_kept = attempts_kept

    def _get_item(self, code: str) -> Dict[str, Any]:
        try:
            resp = self.table.get_item(Key={"code": code}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Ticket lookup failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        item = resp.get("Item")
        if not item:
            raise TicketNotFoundError(code)
        return item

    @staticmethod
    def _to_ticket(item: Dict[str, Any]) -> Ticket:
        return Ticket(
            code=item["code"],
            status=TicketStatus(item["status"]),
            valid_until=datetime.fromisoformat(item["valid_until"]),
            order_reference=item.get("order_reference"),
            holder_name=item.get("holder_name"),
            session_label=item.get("session_label"),
            issued_at=(
                datetime.fromisoformat(item["issued_at"]) if item.get("issued_at") else None
            ),
            scan_history=tuple(
                ScanEvent(
                    scanned_at=datetime.fromisoformat(scan["scanned_at"]),
                    scanned_by=scan["scanned_by"],
                    location=scan.get("location"),
                )
                for scan in item.get("scan_history", [])
            ),
        )

    @staticmethod
    def _scan_to_item(event: ScanEvent) -> Dict[str, Any]:
        record = {"scanned_at": _isoformat(event.scanned_at), "scanned_by": event.scanned_by}
        if event.location:
            record["location"] = event.location
        return record

    @staticmethod
    def _attempt_to_item(attempt: ScanAttempt) -> Dict[str, Any]:
        return attempt.model_dump(mode="json", exclude={"code"}, exclude_none=True)

    def _compare_and_swap(
        self, code: str, expected_version: int, values: Dict[str, Any]
    ) -> bool:
        """Write ``values`` iff the item is still at ``expected_version``."""
        names = {f"#{key}": key for key in values}
        expression = ", ".join(f"#{key} = :{key}" for key in values)
        attr_values = {f":{key}": value for key, value in values.items()}
        attr_values[":next_version"] = expected_version + 1
        attr_values[":expected_version"] = expected_version
        names["#version"] = "version"
        try:
            self.table.update_item(
                Key={"code": code},
                UpdateExpression=f"SET {expression}, #version = :next_version",
                ConditionExpression="#version = :expected_version",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=attr_values,
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == CONDITION_FAILED:
                return False
            logger.exception("Ticket update failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        except BotoCoreError as exc:
            logger.exception("Ticket update failed", extra={"ticket_code": code})
            raise LedgerUnavailableError() from exc
        return True

    def get_ticket(self, code: str) -> Ticket:
        return self._to_ticket(self._get_item(code))

    def issue(self, ticket: Ticket) -> Ticket:
        item: Dict[str, Any] = {
            "code": ticket.code,
            "status": ticket.status.value,
            "valid_until": _isoformat(ticket.valid_until),
            "scan_history": [self._scan_to_item(event) for event in ticket.scan_history],
            "attempts": [],
            "version": 0,
        }
        for key in ("order_reference", "holder_name", "session_label"):
            value = getattr(ticket, key)
            if value:
                item[key] = value
        if ticket.issued_at is not None:
            item["issued_at"] = _isoformat(ticket.issued_at)
        try:
            self.table.put_item(Item=item, ConditionExpression="attribute_not_exists(code)")
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == CONDITION_FAILED:
                raise DuplicateTicketError(ticket.code) from exc
            logger.exception("Ticket issue failed", extra={"ticket_code": ticket.code})
            raise LedgerUnavailableError() from exc
        except BotoCoreError as exc:
            logger.exception("Ticket issue failed", extra={"ticket_code": ticket.code})
            raise LedgerUnavailableError() from exc
        logger.info("Ticket issued", extra={"ticket_code": ticket.code})
        return ticket

    def set_status(self, code: str, status: TicketStatus) -> Ticket:
        for _ in range(self.max_retries):
            item = self._get_item(code)
            ticket = self._to_ticket(item)
            check_status_transition(ticket, status)
            if self._compare_and_swap(code, int(item.get("version", 0)), {"status": status.value}):
                logger.info(
                    "Ticket status changed", extra={"ticket_code": code, "status": status.value}
                )
                return ticket.with_status(status)
        raise LedgerUnavailableError(f"Ticket {code} is busy, retry the status change")

    def evaluate_and_record(
        self,
        code: str,
        policy: ValidationPolicy,
        now: datetime,
        scanned_by: str,
        location: Optional[str] = None,
    ) -> ValidationResult:
        now = ensure_utc(now)
        for attempt_no in range(self.max_retries):
            item = self._get_item(code)
            ticket = self._to_ticket(item)
            result = evaluate(ticket, policy, now)

            attempts = list(item.get("attempts", []))
            attempts.append(
                self._attempt_to_item(build_attempt(code, now, scanned_by, location, result))
            )
            values: Dict[str, Any] = {"attempts": attempts[-self.attempts_kept:]}
            if result.allow_entry:
                event = ScanEvent(scanned_at=now, scanned_by=scanned_by, location=location)
                values["scan_history"] = list(item.get("scan_history", [])) + [
                    self._scan_to_item(event)
                ]

            if self._compare_and_swap(code, int(item.get("version", 0)), values):
                log_decision(code, scanned_by, result)
                return result
            logger.info(
                "Concurrent scan detected, re-evaluating",
                extra={"ticket_code": code, "attempt": attempt_no + 1},
            )
        raise LedgerUnavailableError(f"Ticket {code} is busy, retry the scan")

    def list_attempts(self, code: str, limit: int = 50) -> List[ScanAttempt]:
        item = self._get_item(code)
        records = list(item.get("attempts", []))
        records.reverse()
        return [ScanAttempt(code=code, **record) for record in records[:limit]]
