"""Admission policy model."""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic import ValidationError as PydanticValidationError

from utils.error_handling import ConfigurationError

DEFAULT_MAX_SCAN_COUNT = 2
DEFAULT_SCAN_WINDOW_DAYS = 14


class ValidationPolicy(BaseModel):
    """Process-wide admission limits. Read-only to the engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_scan_count: StrictInt = Field(DEFAULT_MAX_SCAN_COUNT, ge=1)
    scan_window_days: StrictInt = Field(DEFAULT_SCAN_WINDOW_DAYS, ge=1)

    @classmethod
    def load(cls, values: Mapping[str, Any]) -> "ValidationPolicy":
        """Validate raw configuration, failing fast with ConfigurationError."""
        try:
            return cls.model_validate(dict(values))
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid validation policy: {problems}") from exc

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "ValidationPolicy":
        """Load MAX_SCAN_COUNT / SCAN_WINDOW_DAYS from the environment."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for env_name, field_name in (
            ("MAX_SCAN_COUNT", "max_scan_count"),
            ("SCAN_WINDOW_DAYS", "scan_window_days"),
        ):
            raw = environ.get(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[field_name] = int(raw.strip())
            except ValueError:
                raise ConfigurationError(
                    f"{env_name} must be an integer, got {raw!r}"
                ) from None
        return cls.load(values)
