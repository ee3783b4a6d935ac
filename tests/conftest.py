"""
Pytest configuration and shared fixtures.

Puts the repository root AND src/ on sys.path. The src/ directory is the
root of the Lambda bundle (``Code.from_asset("src")``), so imports such as
``from models.ticket import Ticket`` resolve the same way in tests as in the
deployed function. Offline-friendly defaults keep tests away from AWS and
real databases.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


def _ensure_paths_on_sys_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    # Repo root for infrastructure.*, src/ for Lambda-style imports.
    for path in (str(repo_root), str(repo_root / "src")):
        if path not in sys.path:
            sys.path.insert(0, path)


_ensure_paths_on_sys_path()

os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("LEDGER_BACKEND", "memory")

from models.policy import ValidationPolicy  # noqa: E402
from models.ticket import ScanEvent, Ticket, TicketStatus  # noqa: E402
from repositories.ledger import InMemoryScanLedger  # noqa: E402
from services import scan_service as scan_service_module  # noqa: E402
from services.policy_service import PolicyProvider  # noqa: E402
from services.scan_service import ScanService  # noqa: E402

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def days(n: float) -> timedelta:
    return timedelta(days=n)


def build_ticket(
    code: str = "JGPNR-2024-001",
    *,
    status: TicketStatus = TicketStatus.ACTIVE,
    valid_until: datetime = T0 + timedelta(days=30),
    scans=(),
) -> Ticket:
    """Ticket with scans given as datetimes."""
    return Ticket(
        code=code,
        status=status,
        valid_until=valid_until,
        scan_history=tuple(ScanEvent(scanned_at=at, scanned_by="gate-1") for at in scans),
        order_reference="ORD-1001",
        holder_name="Jane Doe",
        session_label="Morning Session",
        issued_at=T0 - timedelta(days=1),
    )


@pytest.fixture
def policy() -> ValidationPolicy:
    return ValidationPolicy(max_scan_count=2, scan_window_days=14)


@pytest.fixture
def ledger() -> InMemoryScanLedger:
    return InMemoryScanLedger(lock_timeout_seconds=1.0)


@pytest.fixture
def clock():
    """Mutable clock; set ``clock.now`` to move time."""

    class _Clock:
        now = T0

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def service(ledger, policy, clock) -> ScanService:
    return ScanService(
        ledger=ledger,
        policies=PolicyProvider(loader=lambda: policy, reload_seconds=60),
        clock=clock,
    )


@pytest.fixture(autouse=True)
def reset_shared_service():
    """Drop the process-wide ScanService between tests."""
    scan_service_module.reset_scan_service()
    yield
    scan_service_module.reset_scan_service()
