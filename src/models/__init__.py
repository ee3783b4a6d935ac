"""Pydantic models for tickets, policy and admission decisions."""

from models.payload import DecodedPayload, TicketSummary  # noqa: F401
from models.policy import ValidationPolicy  # noqa: F401
from models.scan import (  # noqa: F401
    AttemptLog,
    ScanRequest,
    ScanResponse,
    TicketReference,
    TicketView,
    ValidateRequest,
)
from models.ticket import ScanEvent, Ticket, TicketStatus  # noqa: F401
from models.validation import ReasonCode, ScanAttempt, ValidationResult  # noqa: F401
