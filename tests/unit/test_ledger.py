"""
Scan ledger tests.

The same contract runs against every backend: the in-memory ledger, the SQL
ledger on an in-process SQLite engine, and the DynamoDB ledger over a fake
table that honours conditional writes.

Run with: pytest tests/unit/test_ledger.py -v
"""

import copy
import threading

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from conftest import T0, build_ticket, days
from models.ticket import TicketStatus
from models.validation import ReasonCode
from repositories.dynamodb_repo import DynamoDbScanLedger
from repositories.ledger import InMemoryScanLedger
from repositories.postgres_repo import PostgresScanLedger
from utils.error_handling import (
    DuplicateTicketError,
    InvalidStatusTransitionError,
    LedgerUnavailableError,
    TicketNotFoundError,
)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeTicketsTable:
    """Just enough of a boto3 Table for the ledger's calls.

    update_item is atomic and enforces the version condition the way
    DynamoDB does. ``before_update`` runs inside that critical section to
    simulate a competing writer.
    """

    def __init__(self):
        self.items = {}
        self.update_calls = 0
        self.before_update = None
        self._lock = threading.Lock()

    def get_item(self, Key, ConsistentRead=False):
        with self._lock:
            item = self.items.get(Key["code"])
            return {"Item": copy.deepcopy(item)} if item else {}

    def put_item(self, Item, ConditionExpression=None):
        with self._lock:
            if Item["code"] in self.items:
                raise _client_error("ConditionalCheckFailedException", "PutItem")
            self.items[Item["code"]] = copy.deepcopy(Item)

    def update_item(
        self,
        Key,
        UpdateExpression,
        ConditionExpression,
        ExpressionAttributeNames,
        ExpressionAttributeValues,
    ):
        with self._lock:
            self.update_calls += 1
            item = self.items[Key["code"]]
            if self.before_update is not None:
                self.before_update(item)
            if item["version"] != ExpressionAttributeValues[":expected_version"]:
                raise _client_error("ConditionalCheckFailedException", "UpdateItem")
            for placeholder, value in ExpressionAttributeValues.items():
                if placeholder in (":expected_version", ":next_version"):
                    continue
                item[placeholder[1:]] = copy.deepcopy(value)
            item["version"] = ExpressionAttributeValues[":next_version"]


def _sqlite_ledger() -> PostgresScanLedger:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    ledger = PostgresScanLedger(engine, lock_timeout_seconds=1.0)
    ledger.create_schema()
    return ledger


@pytest.fixture(params=["memory", "sql", "dynamodb"])
def any_ledger(request):
    if request.param == "memory":
        return InMemoryScanLedger(lock_timeout_seconds=1.0)
    if request.param == "sql":
        return _sqlite_ledger()
    return DynamoDbScanLedger("admission-tickets", table=FakeTicketsTable())


class TestLedgerContract:
    """Behaviour every backend must share."""

    def test_issue_and_read_back(self, any_ledger):
        any_ledger.issue(build_ticket(scans=[T0]))

        ticket = any_ledger.get_ticket("JGPNR-2024-001")
        assert ticket.code == "JGPNR-2024-001"
        assert ticket.status == TicketStatus.ACTIVE
        assert ticket.valid_until == T0 + days(30)
        assert ticket.scan_count == 1
        assert ticket.first_scan_at == T0
        assert ticket.holder_name == "Jane Doe"

    def test_unknown_code(self, any_ledger, policy):
        with pytest.raises(TicketNotFoundError):
            any_ledger.get_ticket("JGPNR-2024-999")
        with pytest.raises(TicketNotFoundError):
            any_ledger.evaluate_and_record("JGPNR-2024-999", policy, T0, scanned_by="gate-1")
        with pytest.raises(TicketNotFoundError):
            any_ledger.list_attempts("JGPNR-2024-999")

    def test_duplicate_issue_rejected(self, any_ledger):
        any_ledger.issue(build_ticket())
        with pytest.raises(DuplicateTicketError):
            any_ledger.issue(build_ticket())

    def test_admitted_scan_is_appended(self, any_ledger, policy):
        any_ledger.issue(build_ticket())

        result = any_ledger.evaluate_and_record(
            "JGPNR-2024-001", policy, T0, scanned_by="gate-1", location="North"
        )

        assert result.allow_entry is True
        history = any_ledger.get_ticket("JGPNR-2024-001").scan_history
        assert len(history) == 1
        assert history[0].scanned_at == T0
        assert history[0].scanned_by == "gate-1"
        assert history[0].location == "North"

    def test_denied_scan_leaves_history_untouched(self, any_ledger, policy):
        any_ledger.issue(build_ticket(scans=[T0, T0 + days(1)]))

        result = any_ledger.evaluate_and_record(
            "JGPNR-2024-001", policy, T0 + days(2), scanned_by="gate-1"
        )

        assert result.reason_code == ReasonCode.MAX_SCANS_EXCEEDED
        assert any_ledger.get_ticket("JGPNR-2024-001").scan_count == 2

    def test_full_lifecycle(self, any_ledger, policy):
        any_ledger.issue(build_ticket())
        code = "JGPNR-2024-001"

        first = any_ledger.evaluate_and_record(code, policy, T0, scanned_by="gate-1")
        second = any_ledger.evaluate_and_record(code, policy, T0 + days(10), scanned_by="gate-2")
        third = any_ledger.evaluate_and_record(code, policy, T0 + days(11), scanned_by="gate-1")

        assert (first.allow_entry, first.remaining_scans) == (True, 1)
        assert (second.allow_entry, second.remaining_scans) == (True, 0)
        assert third.reason_code == ReasonCode.MAX_SCANS_EXCEEDED

    def test_attempts_newest_first(self, any_ledger, policy):
        any_ledger.issue(build_ticket())
        code = "JGPNR-2024-001"
        for offset in range(3):
            any_ledger.evaluate_and_record(code, policy, T0 + days(offset), scanned_by="gate-1")

        attempts = any_ledger.list_attempts(code)

        assert [a.attempted_at for a in attempts] == [T0 + days(2), T0 + days(1), T0]
        assert [a.allow_entry for a in attempts] == [False, True, True]
        assert attempts[0].reason_code == ReasonCode.MAX_SCANS_EXCEEDED
        assert len(any_ledger.list_attempts(code, limit=1)) == 1

    def test_cancel_blocks_scans(self, any_ledger, policy):
        any_ledger.issue(build_ticket())

        updated = any_ledger.set_status("JGPNR-2024-001", TicketStatus.CANCELLED)
        result = any_ledger.evaluate_and_record(
            "JGPNR-2024-001", policy, T0, scanned_by="gate-1"
        )

        assert updated.status == TicketStatus.CANCELLED
        assert result.reason_code == ReasonCode.STATUS_BLOCKED

    def test_terminal_status_cannot_be_reactivated(self, any_ledger):
        any_ledger.issue(build_ticket(status=TicketStatus.INVALID))

        with pytest.raises(InvalidStatusTransitionError):
            any_ledger.set_status("JGPNR-2024-001", TicketStatus.ACTIVE)
        assert any_ledger.get_ticket("JGPNR-2024-001").status == TicketStatus.INVALID


class TestConcurrentScans:
    """Simultaneous scans of one ticket never share the last slot."""

    @pytest.mark.parametrize("backend", ["memory", "dynamodb"])
    def test_exactly_one_admitted_for_last_slot(self, backend, policy):
        if backend == "memory":
            ledger = InMemoryScanLedger(lock_timeout_seconds=5.0)
        else:
            ledger = DynamoDbScanLedger("admission-tickets", table=FakeTicketsTable())
        ledger.issue(build_ticket(scans=[T0]))

        gates = 8
        barrier = threading.Barrier(gates)
        results, errors = [], []

        def scan(gate: int) -> None:
            barrier.wait()
            try:
                results.append(
                    ledger.evaluate_and_record(
                        "JGPNR-2024-001", policy, T0 + days(1), scanned_by=f"gate-{gate}"
                    )
                )
            except LedgerUnavailableError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=scan, args=(gate,)) for gate in range(gates)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        admitted = [r for r in results if r.allow_entry]
        assert len(admitted) == 1
        assert len(results) + len(errors) == gates
        denied = [r for r in results if not r.allow_entry]
        assert all(r.reason_code == ReasonCode.MAX_SCANS_EXCEEDED for r in denied)
        assert ledger.get_ticket("JGPNR-2024-001").scan_count == 2


class TestInMemoryLedger:
    """Lock timeouts and attempt retention."""

    def test_lock_timeout_is_retryable(self, policy):
        ledger = InMemoryScanLedger(lock_timeout_seconds=0.05)
        ledger.issue(build_ticket())
        lock = ledger._lock_for("JGPNR-2024-001")

        lock.acquire()
        try:
            with pytest.raises(LedgerUnavailableError) as exc_info:
                ledger.evaluate_and_record("JGPNR-2024-001", policy, T0, scanned_by="gate-1")
        finally:
            lock.release()

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503
        assert ledger.get_ticket("JGPNR-2024-001").scan_count == 0

    def test_attempt_log_is_bounded(self, policy):
        ledger = InMemoryScanLedger(attempts_kept=3)
        ledger.issue(build_ticket())
        for offset in range(5):
            ledger.evaluate_and_record("JGPNR-2024-001", policy, T0 + days(offset), scanned_by="g")

        attempts = ledger.list_attempts("JGPNR-2024-001")
        assert len(attempts) == 3
        assert attempts[-1].attempted_at == T0 + days(2)


class TestSqlLedger:
    """SQL-specific failure mapping."""

    def test_unreachable_database_is_retryable(self):
        engine = create_engine("sqlite:////nonexistent-dir/ledger.db")
        ledger = PostgresScanLedger(engine)

        with pytest.raises(LedgerUnavailableError):
            ledger.get_ticket("JGPNR-2024-001")

    def test_history_survives_reload(self, policy):
        ledger = _sqlite_ledger()
        ledger.issue(build_ticket())
        ledger.evaluate_and_record("JGPNR-2024-001", policy, T0, scanned_by="gate-1")
        ledger.evaluate_and_record("JGPNR-2024-001", policy, T0 + days(3), scanned_by="gate-2")

        reloaded = PostgresScanLedger(ledger.engine).get_ticket("JGPNR-2024-001")
        assert [e.scanned_by for e in reloaded.scan_history] == ["gate-1", "gate-2"]


class TestDynamoDbLedger:
    """Compare-and-swap retries."""

    def test_lost_race_is_reevaluated(self, policy):
        table = FakeTicketsTable()
        ledger = DynamoDbScanLedger("admission-tickets", table=table)
        ledger.issue(build_ticket(scans=[T0]))

        def competing_gate_admits(item):
            table.before_update = None
            item["scan_history"].append(
                {"scanned_at": (T0 + days(1)).isoformat(), "scanned_by": "gate-9"}
            )
            item["version"] += 1

        table.before_update = competing_gate_admits
        result = ledger.evaluate_and_record(
            "JGPNR-2024-001", policy, T0 + days(1), scanned_by="gate-1"
        )

        assert result.reason_code == ReasonCode.MAX_SCANS_EXCEEDED
        assert table.update_calls == 2
        assert ledger.get_ticket("JGPNR-2024-001").scan_count == 2

    def test_persistent_contention_exhausts_retries(self, policy):
        table = FakeTicketsTable()
        ledger = DynamoDbScanLedger("admission-tickets", table=table, max_retries=3)
        ledger.issue(build_ticket())

        def always_ahead(item):
            item["version"] += 1

        table.before_update = always_ahead
        with pytest.raises(LedgerUnavailableError):
            ledger.evaluate_and_record("JGPNR-2024-001", policy, T0, scanned_by="gate-1")
        assert table.update_calls == 3

    def test_throttling_maps_to_unavailable(self):
        class ThrottledTable(FakeTicketsTable):
            def get_item(self, Key, ConsistentRead=False):
                raise _client_error("ProvisionedThroughputExceededException", "GetItem")

        ledger = DynamoDbScanLedger("admission-tickets", table=ThrottledTable())
        with pytest.raises(LedgerUnavailableError):
            ledger.get_ticket("JGPNR-2024-001")

    def test_attempts_stored_without_code(self, policy):
        table = FakeTicketsTable()
        ledger = DynamoDbScanLedger("admission-tickets", table=table)
        ledger.issue(build_ticket())
        ledger.evaluate_and_record("JGPNR-2024-001", policy, T0, scanned_by="gate-1")

        stored = table.items["JGPNR-2024-001"]["attempts"]
        assert len(stored) == 1
        assert set(stored[0]) == {"attempted_at", "scanned_by", "allow_entry", "reason_code"}
        assert stored[0]["reason_code"] == "VALID"
        assert table.items["JGPNR-2024-001"]["version"] == 1
