"""
Runtime settings for the admission service.

Read from environment variables once per cold start. The admission policy
itself (scan limits) lives in ``models.policy`` because it is hot-reloaded.
"""

from dataclasses import dataclass
import os
from typing import Optional

from utils.error_handling import ConfigurationError
from utils.validators import DEFAULT_TICKET_PREFIX, validate_prefix

LEDGER_BACKENDS = ("memory", "postgres", "dynamodb")


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Service settings with development-friendly defaults."""

    environment: str = "dev"

    # Ledger backend: memory (dev/tests), postgres or dynamodb
    ledger_backend: str = "memory"
    database_url: Optional[str] = None
    tickets_table: str = "admission-tickets"

    ticket_code_prefix: str = DEFAULT_TICKET_PREFIX

    # Per-ticket lock wait before a scan is reported as retryable
    ledger_lock_timeout_seconds: float = 2.0
    # How long a loaded policy is trusted before re-reading it
    policy_reload_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.ledger_backend not in LEDGER_BACKENDS:
            raise ConfigurationError(
                f"LEDGER_BACKEND must be one of {LEDGER_BACKENDS}, got {self.ledger_backend!r}"
            )
        if self.ledger_backend == "postgres" and not self.database_url:
            raise ConfigurationError("DATABASE_URL is required for the postgres ledger")
        try:
            validate_prefix(self.ticket_code_prefix)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")
        default_backend = "dynamodb" if env == "prod" else "memory"
        return cls(
            environment=env,
            ledger_backend=os.environ.get("LEDGER_BACKEND", default_backend).lower(),
            database_url=os.environ.get("DATABASE_URL") or None,
            tickets_table=os.environ.get("TICKETS_TABLE", "admission-tickets"),
            ticket_code_prefix=os.environ.get("TICKET_CODE_PREFIX", DEFAULT_TICKET_PREFIX),
            ledger_lock_timeout_seconds=_float_env("LEDGER_LOCK_TIMEOUT_SECONDS", 2.0),
            policy_reload_seconds=_float_env("POLICY_RELOAD_SECONDS", 60.0),
        )
