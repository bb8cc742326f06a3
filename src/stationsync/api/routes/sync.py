"""Sync trigger, state and health routes."""
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from stationsync.config import get_settings
from stationsync.db.engine import get_engine
from stationsync.models.sync import SyncState, SyncStatus
from stationsync.sync.health import SyncHealth, check_health
from stationsync.sync.policy import SyncPolicy
from stationsync.sync.runner import resolve_families, run_sync

router = APIRouter()


def get_policy() -> SyncPolicy:
    """FastAPI dependency: a SyncPolicy on the shared engine."""
    settings = get_settings()
    return SyncPolicy(
        get_engine(), lock_timeout=timedelta(minutes=settings.lock_timeout_minutes)
    )


class SyncRunRequest(BaseModel):
    endpoints: Optional[List[str]] = None  # None runs every family
    force_full: bool = False


class SyncStateResponse(BaseModel):
    endpoint: str
    status: SyncStatus
    started_at: Optional[datetime]
    last_successful_sync_at: Optional[datetime]
    last_full_sync_at: Optional[datetime]
    records_created: int
    records_updated: int
    records_deleted: int
    duration_ms: Optional[int]
    error_message: Optional[str]

    @classmethod
    def from_state(cls, state: SyncState) -> "SyncStateResponse":
        return cls(
            endpoint=state.endpoint_name,
            status=state.status,
            started_at=state.started_at,
            last_successful_sync_at=state.last_successful_sync_at,
            last_full_sync_at=state.last_full_sync_at,
            records_created=state.records_created or 0,
            records_updated=state.records_updated or 0,
            records_deleted=state.records_deleted or 0,
            duration_ms=state.duration_ms,
            error_message=state.error_message,
        )


async def _do_sync(endpoints: Optional[List[str]], force_full: bool) -> None:
    """Background task: run the requested families once."""
    await run_sync(get_engine(), endpoints, force_full=force_full)


@router.post("/run")
async def run(request: SyncRunRequest, background_tasks: BackgroundTasks):
    """
    Trigger an on-demand sync. Returns immediately; the sync runs in the
    background and reports through the state and health routes.
    """
    try:
        families = resolve_families(request.endpoints)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    background_tasks.add_task(_do_sync, families, request.force_full)
    return {
        "message": "Sync started",
        "endpoints": families,
        "force_full": request.force_full,
    }


@router.get("/health", response_model=SyncHealth)
def health(policy: SyncPolicy = Depends(get_policy)):
    """Overall sync health plus a per-endpoint summary."""
    return check_health(policy)


@router.get("/state/{endpoint}", response_model=SyncStateResponse)
def state(endpoint: str, policy: SyncPolicy = Depends(get_policy)):
    """Sync state for a single endpoint."""
    row = policy.get_state(endpoint)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint}")
    return SyncStateResponse.from_state(row)


@router.get("/active", response_model=List[SyncStateResponse])
def active(policy: SyncPolicy = Depends(get_policy)):
    """Endpoints currently syncing."""
    return [SyncStateResponse.from_state(r) for r in policy.active_states()]


@router.get("/stale", response_model=List[SyncStateResponse])
def stale(hours: int = 48, policy: SyncPolicy = Depends(get_policy)):
    """Endpoints without a successful sync in the last `hours` hours."""
    return [SyncStateResponse.from_state(r) for r in policy.stale_endpoints(hours)]
