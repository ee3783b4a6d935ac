"""Admission decision models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class ReasonCode(str, Enum):
    """Closed set of admission outcomes."""

    VALID = "VALID"
    STATUS_BLOCKED = "STATUS_BLOCKED"
    EXPIRED = "EXPIRED"
    MAX_SCANS_EXCEEDED = "MAX_SCANS_EXCEEDED"
    WINDOW_EXPIRED = "WINDOW_EXPIRED"

    @property
    def description(self) -> str:
        return REASON_DESCRIPTIONS[self]


REASON_DESCRIPTIONS = {
    ReasonCode.VALID: "Valid ticket",
    ReasonCode.STATUS_BLOCKED: "Ticket has been cancelled or invalidated",
    ReasonCode.EXPIRED: "Ticket validity period has expired",
    ReasonCode.MAX_SCANS_EXCEEDED: "Maximum number of entries already used",
    ReasonCode.WINDOW_EXPIRED: "Re-entry window since first scan has closed",
}


class ValidationResult(BaseModel):
    """Outcome of evaluating one scan against a ticket snapshot."""

    model_config = ConfigDict(frozen=True)

    allow_entry: bool
    reason_code: ReasonCode
    scan_count_after: int = Field(ge=0)
    remaining_scans: int = Field(ge=0)
    warning_message: Optional[str] = None

    @model_validator(mode="after")
    def _consistent(self) -> "ValidationResult":
        if self.allow_entry != (self.reason_code is ReasonCode.VALID):
            raise ValueError("allow_entry must be True exactly when reason_code is VALID")
        if self.warning_message is not None and not self.allow_entry:
            raise ValueError("warning_message is only attached to admitted scans")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reason(self) -> str:
        return self.reason_code.description


class ScanAttempt(BaseModel):
    """Audit record of a scan attempt, admitted or not."""

    model_config = ConfigDict(frozen=True)

    code: str
    attempted_at: datetime
    scanned_by: str
    location: Optional[str] = None
    allow_entry: bool
    reason_code: ReasonCode
