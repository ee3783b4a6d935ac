"""
Environment-specific deployment settings.

Cost-optimized defaults for development/testing.
"""

from dataclasses import dataclass
import os


@dataclass
class Settings:
    """Deployment settings with cost-optimized defaults."""

    environment: str = "dev"
    aws_region: str = "eu-west-2"

    # Admission policy pushed into the Lambda environment
    max_scan_count: int = 2
    scan_window_days: int = 14
    ticket_code_prefix: str = "JGPNR"
    policy_reload_seconds: int = 60

    # Lambda Configuration
    lambda_memory_mb: int = 256
    lambda_timeout_seconds: int = 10
    ledger_lock_timeout_seconds: int = 2

    def __post_init__(self) -> None:
        # Same rule the service applies at load time; fail at synth instead.
        if self.max_scan_count < 1 or self.scan_window_days < 1:
            raise ValueError("max_scan_count and scan_window_days must be >= 1")

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")
        common = dict(
            environment=env,
            aws_region=os.environ.get("AWS_REGION", "eu-west-2"),
            max_scan_count=int(os.environ.get("MAX_SCAN_COUNT", "2")),
            scan_window_days=int(os.environ.get("SCAN_WINDOW_DAYS", "14")),
            ticket_code_prefix=os.environ.get("TICKET_CODE_PREFIX", "JGPNR"),
        )

        # Production overrides
        if env == "prod":
            return cls(**common, lambda_memory_mb=512, lambda_timeout_seconds=15)

        return cls(**common)
