"""Ticket code shape checks, run before any ledger lookup."""

import re
from typing import Any

from utils.error_handling import TicketFormatError

DEFAULT_TICKET_PREFIX = "JGPNR"

# ASCII classes on purpose: \d would also accept non-Latin digits.
_PREFIX_RE = re.compile(r"[A-Z]+")


def _code_pattern(prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"{re.escape(prefix)}-[0-9]{{4}}-[0-9]{{3}}")


def is_well_formed(code: Any, prefix: str = DEFAULT_TICKET_PREFIX) -> bool:
    """Return True if ``code`` is exactly ``PREFIX-YYYY-NNN``."""
    if not isinstance(code, str):
        return False
    return _code_pattern(prefix).fullmatch(code) is not None


def ensure_well_formed(code: Any, prefix: str = DEFAULT_TICKET_PREFIX) -> str:
    """Return ``code`` unchanged or raise TicketFormatError."""
    if not is_well_formed(code, prefix):
        raise TicketFormatError(code)
    return code


def validate_prefix(prefix: str) -> str:
    """Prefixes are upper-case ASCII letters only."""
    if not isinstance(prefix, str) or _PREFIX_RE.fullmatch(prefix) is None:
        raise ValueError(f"Ticket prefix must be upper-case letters, got {prefix!r}")
    return prefix


def format_ticket_code(year: int, sequence: int, prefix: str = DEFAULT_TICKET_PREFIX) -> str:
    """Build a code such as ``JGPNR-2024-001`` for a newly issued ticket."""
    validate_prefix(prefix)
    if not 0 <= year <= 9999:
        raise ValueError(f"year out of range: {year}")
    if not 1 <= sequence <= 999:
        raise ValueError(f"sequence out of range: {sequence}")
    return f"{prefix}-{year:04d}-{sequence:03d}"


_ANY_PREFIX_CODE_RE = re.compile(r"[A-Z]+-[0-9]{4}-[0-9]{3}")


def has_code_shape(code: Any) -> bool:
    """Like is_well_formed but accepts any upper-case letter prefix."""
    return isinstance(code, str) and _ANY_PREFIX_CODE_RE.fullmatch(code) is not None
