"""Pick and build the scan ledger configured for this process."""

from __future__ import annotations

import importlib.util

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from config.settings import Settings
from repositories.ledger import InMemoryScanLedger, ScanLedger
from utils.logging_config import get_logger

logger = get_logger(__name__)


def normalize_database_url(url: str) -> str:
    """Point plain postgres URLs at psycopg (v3) when psycopg2 is absent."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    psycopg2_present = importlib.util.find_spec("psycopg2") is not None
    if url.startswith("postgresql://") and not psycopg2_present:
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def create_ledger_engine(database_url: str) -> Engine:
    """SQLAlchemy engine with a small pool that survives warm invocations."""
    return create_engine(
        normalize_database_url(database_url),
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=2,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=5,
    )


def build_ledger(settings: Settings) -> ScanLedger:
    """Instantiate the backend named by ``settings.ledger_backend``."""
    backend = settings.ledger_backend
    logger.info("Building scan ledger", extra={"backend": backend})

    if backend == "postgres":
        from repositories.postgres_repo import PostgresScanLedger

        return PostgresScanLedger(
            create_ledger_engine(settings.database_url),
            lock_timeout_seconds=settings.ledger_lock_timeout_seconds,
        )

    if backend == "dynamodb":
        from repositories.dynamodb_repo import DynamoDbScanLedger

        return DynamoDbScanLedger(settings.tickets_table)

    return InMemoryScanLedger(lock_timeout_seconds=settings.ledger_lock_timeout_seconds)
