"""Sync bookkeeping models: per-endpoint run state and per-endpoint config."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC now, matching how SQLite hands timestamps back."""
    return datetime.utcnow()


class SyncStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class SyncMode(str, Enum):
    DELTA = "delta"
    FULL = "full"


class SyncState(SQLModel, table=True):
    """One row per endpoint. Doubles as the cross-process sync lock."""

    endpoint_name: str = Field(primary_key=True, max_length=100)
    status: SyncStatus = Field(default=SyncStatus.IDLE, index=True)
    started_at: Optional[datetime] = None

    last_successful_sync_at: Optional[datetime] = None
    last_full_sync_at: Optional[datetime] = None

    # Counts from the most recent run
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0

    error_message: Optional[str] = None
    error_detail: Optional[str] = None  # formatted traceback
    duration_ms: Optional[int] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SyncConfig(SQLModel, table=True):
    """Per-endpoint tuning. Created with defaults on first use."""

    endpoint_name: str = Field(primary_key=True, max_length=100)
    enabled: bool = True
    delta_sync_enabled: bool = True
    full_sync_interval_days: int = 7
    sync_schedule_cron: Optional[str] = None
    rate_limit_per_hour: int = 100
    timeout_seconds: int = 300
    retry_attempts: int = 3
    backoff_multiplier: float = 2.0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
