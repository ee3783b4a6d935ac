"""Request/response models for the scan endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from models.ticket import OperatorId, ScanEvent, TicketStatus
from models.validation import ScanAttempt, ValidationResult


class TicketReference(BaseModel):
    """A raw ticket code or an encoded admission payload, exactly one of them.

    The code is not shape-checked here so that malformed codes surface as a
    format error rather than a generic bad request.
    """

    code: Optional[str] = None
    payload: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "TicketReference":
        if (self.code is None) == (self.payload is None):
            raise ValueError("Provide exactly one of 'code' or 'payload'")
        return self


class ScanRequest(TicketReference):
    """Inbound scan from a gate device."""

    scanned_by: OperatorId
    location: Optional[str] = Field(default=None, max_length=200)


class ValidateRequest(TicketReference):
    """Dry-run check; nothing is recorded."""


class ScanResponse(BaseModel):
    """Decision returned to the gate for display."""

    code: str
    evaluated_at: datetime
    recorded: bool
    result: ValidationResult
    processing_time_ms: int
    correlation_id: str


class TicketView(BaseModel):
    """Ticket state with computed admission figures."""

    code: str
    status: TicketStatus
    valid_until: datetime
    scan_count: int
    remaining_scans: int
    window_closes_at: Optional[datetime] = None
    current_decision: ValidationResult
    scan_history: List[ScanEvent] = Field(default_factory=list)


class AttemptLog(BaseModel):
    code: str
    attempts: List[ScanAttempt] = Field(default_factory=list)
