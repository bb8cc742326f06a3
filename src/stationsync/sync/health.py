"""Sync health summary across every tracked endpoint."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from stationsync.models.sync import SyncConfig, SyncState, SyncStatus

WARNING_AFTER = timedelta(hours=24)
ERROR_AFTER = timedelta(hours=48)


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


class EndpointHealth(BaseModel):
    endpoint: str
    status: SyncStatus
    last_sync: Optional[datetime] = None
    last_full_sync: Optional[datetime] = None
    next_full_sync_due: Optional[datetime] = None
    records_synced: int = 0
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class SyncHealth(BaseModel):
    status: HealthLevel
    endpoints: List[EndpointHealth]


def endpoint_health(
    state: SyncState, config: Optional[SyncConfig] = None
) -> EndpointHealth:
    interval = (config or SyncConfig(endpoint_name=state.endpoint_name)).full_sync_interval_days
    next_full = (
        state.last_full_sync_at + timedelta(days=interval)
        if state.last_full_sync_at
        else None
    )
    return EndpointHealth(
        endpoint=state.endpoint_name,
        status=state.status,
        last_sync=state.last_successful_sync_at,
        last_full_sync=state.last_full_sync_at,
        next_full_sync_due=next_full,
        records_synced=(
            (state.records_created or 0)
            + (state.records_updated or 0)
            + (state.records_deleted or 0)
        ),
        duration_ms=state.duration_ms,
        error=state.error_message,
    )


def compute_health(
    states: Iterable[SyncState],
    configs: Dict[str, SyncConfig],
    now: datetime,
) -> SyncHealth:
    """
    error: any endpoint FAILED, or silent for more than 48h (never synced
        counts as silent).
    warning: any endpoint silent for more than 24h.
    healthy: otherwise, including when nothing is tracked yet.
    """
    endpoints = []
    level = HealthLevel.HEALTHY

    for state in states:
        endpoints.append(endpoint_health(state, configs.get(state.endpoint_name)))

        last = state.last_successful_sync_at
        silent_for = (now - last) if last else None

        if state.status == SyncStatus.FAILED or silent_for is None or silent_for > ERROR_AFTER:
            level = HealthLevel.ERROR
        elif silent_for > WARNING_AFTER and level != HealthLevel.ERROR:
            level = HealthLevel.WARNING

    return SyncHealth(status=level, endpoints=endpoints)


def check_health(policy) -> SyncHealth:
    """Health snapshot for every endpoint the policy tracks."""
    configs = {c.endpoint_name: c for c in policy.all_configs()}
    return compute_health(policy.all_states(), configs, policy.clock())
