"""Portable ticket summary carried on the printed/QR artifact."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.ticket import Ticket, ensure_utc
from utils.validators import has_code_shape


class TicketSummary(BaseModel):
    """Ticket fields printed on the admission token.

    Only ``code`` is trusted at the gate; every other field is display-only.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    code: str
    order_reference: str = Field(..., max_length=100)
    holder_name: str = Field(..., max_length=200)
    session_label: str = Field(..., max_length=100)
    valid_until: datetime
    generated_at: datetime

    @field_validator("code")
    @classmethod
    def _code_shape(cls, value: str) -> str:
        if not has_code_shape(value):
            raise ValueError(f"Malformed ticket code: {value!r}")
        return value

    @field_validator("valid_until", "generated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_ticket(cls, ticket: Ticket, generated_at: datetime) -> "TicketSummary":
        return cls(
            code=ticket.code,
            order_reference=ticket.order_reference or "",
            holder_name=ticket.holder_name or "",
            session_label=ticket.session_label or "",
            valid_until=ticket.valid_until,
            generated_at=generated_at,
        )


class DecodedPayload(BaseModel):
    """Response body for POST /payloads/decode."""

    code: str
    summary: TicketSummary
    advisory_fields: list[str] = Field(
        default_factory=lambda: [
            "orderReference",
            "holderName",
            "sessionLabel",
            "validUntil",
            "generatedAt",
        ]
    )
    note: Optional[str] = "Only the ticket code is used for admission decisions."
