"""
SyncRunner: the trigger surface shared by the scheduler, the CLI and the API.

Families run in dependency order: items need categories (and companies for
their manufacturer link), so a combined run is always

    categories → companies → items → locations

A failing family is reported in its TriggerResult and the next family still
runs. Nothing here raises for a sync failure; callers read the results.
"""
import asyncio
import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from stationsync.config import Settings, get_settings
from stationsync.models.sync import SyncMode
from stationsync.sync.catalog import (
    CATEGORIES_ENDPOINT,
    COMPANIES_ENDPOINT,
    categories_reconciler,
    companies_reconciler,
)
from stationsync.sync.items import ITEMS_ENDPOINT, ItemsReconciler
from stationsync.sync.locations import LOCATION_ORDER, LocationsReconciler
from stationsync.sync.policy import LockConflict, SyncPolicy
from stationsync.uex.client import UexClient

logger = logging.getLogger(__name__)

LOCATIONS_FAMILY = "locations"
FAMILIES = (CATEGORIES_ENDPOINT, COMPANIES_ENDPOINT, ITEMS_ENDPOINT, LOCATIONS_FAMILY)
ALL = "all"


class TriggerResult(BaseModel):
    family: str
    status: str  # success | failed | locked
    mode: Optional[SyncMode] = None
    created: int = 0
    updated: int = 0
    deleted: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


def resolve_families(endpoints: Optional[Iterable[str]]) -> List[str]:
    """Expand and order the requested families. None or "all" means every family.

    Raises:
        ValueError: an unknown family name was requested.
    """
    requested = set(endpoints or [ALL])
    if ALL in requested:
        return list(FAMILIES)
    unknown = requested - set(FAMILIES)
    if unknown:
        raise ValueError(
            f"Unknown sync endpoints: {', '.join(sorted(unknown))}. "
            f"Expected any of: {', '.join(FAMILIES + (ALL,))}"
        )
    return [f for f in FAMILIES if f in requested]


class SyncRunner:
    def __init__(
        self,
        client: UexClient,
        policy: SyncPolicy,
        settings: Optional[Settings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.policy = policy
        self.settings = settings or get_settings()
        self.sleep = sleep

    def _common(self) -> dict:
        s = self.settings
        return {
            "system_user_id": s.system_user_id,
            "batch_size": s.uex_batch_size,
            "backoff_base_ms": s.uex_backoff_base_ms,
            "sleep": self.sleep,
        }

    def _build(self, family: str):
        s = self.settings
        if family == CATEGORIES_ENDPOINT:
            return categories_reconciler(self.client, self.policy, **self._common())
        if family == COMPANIES_ENDPOINT:
            return companies_reconciler(self.client, self.policy, **self._common())
        if family == ITEMS_ENDPOINT:
            return ItemsReconciler(
                self.client,
                self.policy,
                concurrent_categories=s.uex_concurrent_categories,
                rate_limit_pause_ms=s.uex_rate_limit_pause_ms,
                **self._common(),
            )
        return LocationsReconciler(
            self.client,
            self.policy,
            endpoints_pause_ms=s.uex_endpoints_pause_ms,
            **self._common(),
        )

    def initialize(self) -> None:
        """Make sure every endpoint has its state and config rows."""
        for endpoint in FAMILIES[:-1] + LOCATION_ORDER:
            self.policy.initialize_endpoint(
                endpoint, retry_attempts=self.settings.uex_retry_attempts
            )

    async def run_now(
        self,
        endpoints: Optional[Iterable[str]] = None,
        force_full: bool = False,
    ) -> Dict[str, TriggerResult]:
        families = resolve_families(endpoints)
        self.initialize()
        logger.info(
            "Sync run starting: %s%s",
            ", ".join(families),
            " (forced full)" if force_full else "",
        )

        results: Dict[str, TriggerResult] = {}
        for family in families:
            results[family] = await self._run_family(family, force_full)

        failed = [f for f, r in results.items() if r.status != "success"]
        if failed:
            logger.warning("Sync run finished with failures: %s", ", ".join(failed))
        else:
            logger.info("Sync run finished successfully")
        return results

    async def _run_family(self, family: str, force_full: bool) -> TriggerResult:
        started = time.monotonic()
        try:
            outcome = await self._build(family).run(force_full=force_full)
        except LockConflict as exc:
            logger.warning("Skipping %s: %s", family, exc)
            return TriggerResult(
                family=family,
                status="locked",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=str(exc),
            )
        except Exception as exc:
            logger.error("Sync of %s failed: %s", family, exc)
            return TriggerResult(
                family=family,
                status="failed",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=str(exc) or type(exc).__name__,
            )

        return TriggerResult(
            family=family,
            status="success",
            mode=outcome.mode,
            created=outcome.created,
            updated=outcome.updated,
            deleted=outcome.deleted,
            duration_ms=outcome.duration_ms,
        )


async def run_sync(
    engine,
    endpoints: Optional[Iterable[str]] = None,
    force_full: bool = False,
    settings: Optional[Settings] = None,
) -> Dict[str, TriggerResult]:
    """Open a UEX client, run the requested families once, close the client."""
    settings = settings or get_settings()
    policy = SyncPolicy(
        engine, lock_timeout=timedelta(minutes=settings.lock_timeout_minutes)
    )
    async with UexClient(
        settings.uex_api_base_url, settings.uex_timeout_seconds
    ) as client:
        runner = SyncRunner(client, policy, settings)
        return await runner.run_now(endpoints, force_full=force_full)
