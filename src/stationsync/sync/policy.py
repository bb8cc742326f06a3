"""
SyncPolicy: per-endpoint locking, delta/full decision and run bookkeeping.

The SyncState row is the lock. acquire_lock() is a single conditional UPDATE:

    UPDATE syncstate SET status = IN_PROGRESS, started_at = now
    WHERE endpoint_name = :e
      AND (status != IN_PROGRESS OR started_at < now - lock_timeout)

Zero affected rows means somebody else owns the endpoint. Because every
caller goes through the same statement, this also holds across processes
sharing the database; no in-process mutex is involved. A lock abandoned by a
crashed run is taken over once it is older than the timeout.
"""
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from stationsync.models.sync import SyncConfig, SyncMode, SyncState, SyncStatus, utcnow

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = timedelta(minutes=30)


class LockConflict(Exception):
    """Another run currently holds the lock for this endpoint."""

    def __init__(self, endpoint: str):
        super().__init__(f"Sync already in progress for endpoint: {endpoint}")
        self.endpoint = endpoint


class DecisionReason(str, Enum):
    FIRST_SYNC = "FIRST_SYNC"
    DELTA_DISABLED = "DELTA_DISABLED"
    ENDPOINT_DISABLED = "ENDPOINT_DISABLED"
    NO_FULL_SYNC_RECORDED = "NO_FULL_SYNC_RECORDED"
    FULL_SYNC_INTERVAL_EXCEEDED = "FULL_SYNC_INTERVAL_EXCEEDED"
    DELTA_ELIGIBLE = "DELTA_ELIGIBLE"
    FORCED_FULL = "FORCED_FULL"
    DELTA_UNSUPPORTED = "DELTA_UNSUPPORTED"


@dataclass
class SyncDecision:
    use_delta: bool
    reason: DecisionReason
    last_sync_at: Optional[datetime] = None

    @property
    def mode(self) -> SyncMode:
        return SyncMode.DELTA if self.use_delta else SyncMode.FULL


@dataclass
class SyncOutcome:
    """Result of one reconciler run for one endpoint."""

    mode: SyncMode
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    duration_ms: int = 0


class SyncPolicy:
    """Owns the SyncState / SyncConfig rows for every endpoint."""

    def __init__(
        self,
        engine,
        *,
        lock_timeout: timedelta = LOCK_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            lock_timeout: age after which an IN_PROGRESS lock is considered
                abandoned and may be taken over.
            clock: returns naive-UTC "now"; swapped out in tests.
        """
        self.engine = engine
        self.lock_timeout = lock_timeout
        self.clock = clock

    # ─── Setup ────────────────────────────────────────────────────────────────

    def initialize_endpoint(self, endpoint: str, **config_overrides) -> None:
        """Create the state and config rows for an endpoint if missing."""
        with Session(self.engine) as s:
            if s.get(SyncState, endpoint) is None:
                s.add(SyncState(endpoint_name=endpoint, status=SyncStatus.IDLE))
            if s.get(SyncConfig, endpoint) is None:
                s.add(SyncConfig(endpoint_name=endpoint, **config_overrides))
            try:
                s.commit()
            except IntegrityError:
                # A concurrent caller created the rows first
                s.rollback()
                return
        logger.debug("Initialized sync tracking for endpoint %s", endpoint)

    # ─── Locking ──────────────────────────────────────────────────────────────

    def acquire_lock(self, endpoint: str) -> None:
        """Atomically move the endpoint to IN_PROGRESS.

        Raises:
            LockConflict: a non-stale run already holds the endpoint.
        """
        self.initialize_endpoint(endpoint)
        now = self.clock()
        stale_before = now - self.lock_timeout

        stmt = (
            update(SyncState)
            .where(SyncState.endpoint_name == endpoint)
            .where(
                or_(
                    SyncState.status != SyncStatus.IN_PROGRESS,
                    SyncState.started_at < stale_before,
                )
            )
            .values(status=SyncStatus.IN_PROGRESS, started_at=now, updated_at=now)
        )
        with self.engine.begin() as conn:
            result = conn.execute(stmt)

        if result.rowcount == 0:
            raise LockConflict(endpoint)
        logger.info("Acquired sync lock for endpoint %s", endpoint)

    def release_lock(self, endpoint: str) -> None:
        """Unconditionally return the endpoint to IDLE."""
        stmt = (
            update(SyncState)
            .where(SyncState.endpoint_name == endpoint)
            .values(status=SyncStatus.IDLE, updated_at=self.clock())
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
        logger.info("Released sync lock for endpoint %s", endpoint)

    # ─── Decision ─────────────────────────────────────────────────────────────

    def decide(self, endpoint: str) -> SyncDecision:
        """Decide between a delta and a full sweep. Evaluated fresh per run."""
        state, config = self.get_state_with_config(endpoint)
        if config is None:
            config = SyncConfig(endpoint_name=endpoint)

        if state is None or state.last_successful_sync_at is None:
            return SyncDecision(False, DecisionReason.FIRST_SYNC)

        if not config.delta_sync_enabled:
            return SyncDecision(False, DecisionReason.DELTA_DISABLED)

        if not config.enabled:
            return SyncDecision(False, DecisionReason.ENDPOINT_DISABLED)

        if state.last_full_sync_at is None:
            return SyncDecision(False, DecisionReason.NO_FULL_SYNC_RECORDED)

        days_since_full = (self.clock() - state.last_full_sync_at).days
        if days_since_full >= config.full_sync_interval_days:
            return SyncDecision(
                False,
                DecisionReason.FULL_SYNC_INTERVAL_EXCEEDED,
                last_sync_at=state.last_full_sync_at,
            )

        return SyncDecision(
            True,
            DecisionReason.DELTA_ELIGIBLE,
            last_sync_at=state.last_successful_sync_at,
        )

    # ─── Bookkeeping ──────────────────────────────────────────────────────────

    def record_success(self, endpoint: str, outcome: SyncOutcome) -> None:
        now = self.clock()
        with Session(self.engine) as s:
            state = s.get(SyncState, endpoint) or SyncState(endpoint_name=endpoint)
            state.status = SyncStatus.SUCCESS
            state.last_successful_sync_at = now
            if outcome.mode == SyncMode.FULL:
                state.last_full_sync_at = now
            state.records_created = outcome.created
            state.records_updated = outcome.updated
            state.records_deleted = outcome.deleted
            state.duration_ms = outcome.duration_ms
            state.error_message = None
            state.error_detail = None
            state.updated_at = now
            s.add(state)
            s.commit()

        logger.info(
            "Sync completed for %s: %s mode, created %d, updated %d, "
            "deleted %d, duration %dms",
            endpoint,
            outcome.mode.value,
            outcome.created,
            outcome.updated,
            outcome.deleted,
            outcome.duration_ms,
        )

    def record_failure(
        self,
        endpoint: str,
        error: BaseException,
        duration_ms: Optional[int] = None,
    ) -> None:
        with Session(self.engine) as s:
            state = s.get(SyncState, endpoint) or SyncState(endpoint_name=endpoint)
            state.status = SyncStatus.FAILED
            state.error_message = str(error) or type(error).__name__
            state.error_detail = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
            if duration_ms is not None:
                state.duration_ms = duration_ms
            state.updated_at = self.clock()
            s.add(state)
            s.commit()

        logger.error("Sync failed for %s: %s", endpoint, error)

    # ─── Queries ──────────────────────────────────────────────────────────────

    def get_state(self, endpoint: str) -> Optional[SyncState]:
        with Session(self.engine) as s:
            return s.get(SyncState, endpoint)

    def get_config(self, endpoint: str) -> Optional[SyncConfig]:
        with Session(self.engine) as s:
            return s.get(SyncConfig, endpoint)

    def get_state_with_config(
        self, endpoint: str
    ) -> Tuple[Optional[SyncState], Optional[SyncConfig]]:
        with Session(self.engine) as s:
            return s.get(SyncState, endpoint), s.get(SyncConfig, endpoint)

    def all_states(self) -> List[SyncState]:
        with Session(self.engine) as s:
            return list(
                s.exec(select(SyncState).order_by(SyncState.endpoint_name)).all()
            )

    def all_configs(self) -> List[SyncConfig]:
        with Session(self.engine) as s:
            return list(s.exec(select(SyncConfig)).all())

    def active_states(self) -> List[SyncState]:
        """Endpoints currently holding the lock, most recent first."""
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncState)
                    .where(SyncState.status == SyncStatus.IN_PROGRESS)
                    .order_by(SyncState.started_at.desc())
                ).all()
            )

    def stale_endpoints(self, hours_threshold: int = 48) -> List[SyncState]:
        """Endpoints with no successful sync in the last `hours_threshold` hours."""
        threshold = self.clock() - timedelta(hours=hours_threshold)
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncState)
                    .where(
                        or_(
                            SyncState.last_successful_sync_at.is_(None),
                            SyncState.last_successful_sync_at < threshold,
                        )
                    )
                    .order_by(SyncState.last_successful_sync_at)
                ).all()
            )
