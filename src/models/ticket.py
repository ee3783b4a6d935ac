"""Ticket models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional, Tuple

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from utils.validators import has_code_shape


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _strip_operator(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("scanned_by cannot be blank")
    return value


# Gate operator or device id. Surrounding whitespace is dropped, blanks are rejected.
OperatorId = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(_strip_operator)]


class TicketStatus(str, Enum):
    """Administrative status. Expiry and exhaustion are computed, not stored."""

    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    INVALID = "INVALID"

    @property
    def is_terminal(self) -> bool:
        return self is not TicketStatus.ACTIVE


class ScanEvent(BaseModel):
    """One accepted admission."""

    model_config = ConfigDict(frozen=True)

    scanned_at: datetime
    scanned_by: OperatorId
    location: Optional[str] = Field(default=None, max_length=200)

    @field_validator("scanned_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Ticket(BaseModel):
    """Snapshot of a ticket as held by the scan ledger.

    Snapshots are immutable; recording a scan produces a new snapshot with
    the event appended, history is never reordered or truncated.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    status: TicketStatus = TicketStatus.ACTIVE
    valid_until: datetime
    scan_history: Tuple[ScanEvent, ...] = ()

    # Display-only details carried over from the order
    order_reference: Optional[str] = None
    holder_name: Optional[str] = None
    session_label: Optional[str] = None
    issued_at: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def _code_shape(cls, value: str) -> str:
        # Prefix is configurable; the exact prefix is enforced at the scan boundary.
        if not has_code_shape(value):
            raise ValueError(f"Malformed ticket code: {value!r}")
        return value

    @field_validator("valid_until", "issued_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_validator("scan_history")
    @classmethod
    def _chronological(cls, value: Tuple[ScanEvent, ...]) -> Tuple[ScanEvent, ...]:
        for earlier, later in zip(value, value[1:]):
            if later.scanned_at < earlier.scanned_at:
                raise ValueError("scan_history must be in chronological order")
        return value

    @property
    def scan_count(self) -> int:
        return len(self.scan_history)

    @property
    def first_scan_at(self) -> Optional[datetime]:
        return self.scan_history[0].scanned_at if self.scan_history else None

    def with_scan(self, event: ScanEvent) -> "Ticket":
        """Return a new snapshot with ``event`` appended."""
        return self.model_copy(update={"scan_history": self.scan_history + (event,)})

    def with_status(self, status: TicketStatus) -> "Ticket":
        return self.model_copy(update={"status": status})
