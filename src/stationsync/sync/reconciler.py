"""
Reconcilers: pull one UEX collection and make the local table match it.

Flow for a single endpoint run:
  1. acquire the endpoint lock (LockConflict propagates, nothing recorded)
  2. decide delta vs full (force_full and full-only endpoints override)
  3. fetch with retry/backoff
  4. upsert in batches, one transaction per batch; updates un-retire
  5. full mode with a non-empty fetch: retire active rows not fetched
  6. record success/failure on the SyncState row, release the lock

`Reconciler` owns steps 1, 2 and 6 plus the batch upsert helper.
`KindReconciler` is the generic single-fetch implementation, parameterised
by a `KindAdapter`. `ItemsReconciler` and the location reconcilers build on
these.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from sqlmodel import Session

from stationsync.db.records import retire_missing, upsert
from stationsync.models.base import SyncedRecord
from stationsync.models.sync import SyncConfig, SyncMode
from stationsync.sync.policy import DecisionReason, SyncDecision, SyncOutcome, SyncPolicy
from stationsync.sync.retry import chunked, fetch_with_retry
from stationsync.uex.client import FetchFilters
from stationsync.uex.normalizer import positive_id

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]
Normalizer = Callable[[RawRecord], Dict[str, Any]]
# Returns a skip reason, or None when every parent reference resolved.
# May fill derived columns (e.g. star_system_id) into the field dict.
ParentResolver = Callable[[Session, Dict[str, Any]], Optional[str]]


@dataclass
class KindAdapter:
    """Everything the generic reconciler needs to know about one entity kind."""

    endpoint: str
    model: Type[SyncedRecord]
    fetch: Callable[[FetchFilters], Awaitable[List[RawRecord]]]
    normalize: Normalizer
    base_filters: Optional[FetchFilters] = None
    resolve_parents: Optional[ParentResolver] = None
    retire_scope: Optional[Dict[str, Any]] = None
    supports_delta: bool = True
    id_key: str = "id"

    def external_id(self, raw: RawRecord) -> Optional[int]:
        return positive_id(raw.get(self.id_key))


@dataclass
class BatchResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0


class Reconciler:
    """Lock / decide / record scaffolding shared by every reconciler."""

    endpoint: str = ""
    supports_delta: bool = True

    def __init__(
        self,
        policy: SyncPolicy,
        *,
        system_user_id: Optional[int],
        batch_size: int = 100,
        backoff_base_ms: int = 1000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            policy: SyncPolicy sharing the engine the records live in.
            system_user_id: actor stamped on added_by / modified_by.
            batch_size: records per upsert transaction.
            backoff_base_ms: first retry delay for UpstreamUnavailable.
            sleep: awaitable sleep; tests pass a no-op.
        """
        self.policy = policy
        self.engine = policy.engine
        self.system_user_id = system_user_id
        self.batch_size = batch_size
        self.backoff_base_ms = backoff_base_ms
        self.sleep = sleep

    async def run(self, force_full: bool = False) -> SyncOutcome:
        endpoint = self.endpoint
        started = time.monotonic()

        # A conflict means no run started: nothing to record, nothing to release.
        self.policy.acquire_lock(endpoint)
        try:
            decision = self._plan(force_full)
            config = self.policy.get_config(endpoint) or SyncConfig(endpoint_name=endpoint)
            outcome = await self._sync(decision, config)
            if outcome is None:
                return SyncOutcome(mode=decision.mode, duration_ms=_elapsed_ms(started))
            outcome.duration_ms = _elapsed_ms(started)
            self.policy.record_success(endpoint, outcome)
            return outcome
        except Exception as exc:
            self.policy.record_failure(endpoint, exc, _elapsed_ms(started))
            raise
        finally:
            self.policy.release_lock(endpoint)

    async def _sync(
        self, decision: SyncDecision, config: SyncConfig
    ) -> Optional[SyncOutcome]:
        """Fetch and persist. Returning None skips success bookkeeping."""
        raise NotImplementedError

    def _plan(self, force_full: bool) -> SyncDecision:
        decision = self.policy.decide(self.endpoint)

        if decision.reason == DecisionReason.ENDPOINT_DISABLED:
            logger.warning(
                "Endpoint %s is disabled in its sync config; running a full sync anyway",
                self.endpoint,
            )

        if decision.use_delta and force_full:
            decision = SyncDecision(False, DecisionReason.FORCED_FULL)
        elif decision.use_delta and not self.supports_delta:
            decision = SyncDecision(False, DecisionReason.DELTA_UNSUPPORTED)

        if decision.use_delta:
            logger.info(
                "Using delta sync for %s since %s",
                self.endpoint,
                decision.last_sync_at.isoformat() if decision.last_sync_at else "-",
            )
        else:
            logger.info(
                "Using full sync for %s. Reason: %s",
                self.endpoint,
                decision.reason.value,
            )
        return decision

    async def _fetch(
        self,
        fetch: Callable[[], Awaitable[List[RawRecord]]],
        config: SyncConfig,
        label: str,
    ) -> List[RawRecord]:
        return await fetch_with_retry(
            fetch,
            attempts=config.retry_attempts,
            backoff_base_ms=self.backoff_base_ms,
            backoff_multiplier=config.backoff_multiplier,
            label=label,
            sleep=self.sleep,
        )

    def _upsert_batches(
        self,
        model: Type[SyncedRecord],
        records: List[RawRecord],
        normalize: Normalizer,
        *,
        id_key: str = "id",
        resolve_parents: Optional[ParentResolver] = None,
    ) -> BatchResult:
        """Upsert records, committing once per batch of `batch_size`."""
        total = BatchResult()
        batches = chunked(records, self.batch_size)

        for n, batch in enumerate(batches, start=1):
            with Session(self.engine) as s:
                for raw in batch:
                    external_id = positive_id(raw.get(id_key))
                    if external_id is None:
                        total.skipped += 1
                        logger.warning(
                            "Skipping %s record without a usable id: %r",
                            self.endpoint,
                            raw.get(id_key),
                        )
                        continue

                    fields = normalize(raw)
                    if resolve_parents is not None:
                        reason = resolve_parents(s, fields)
                        if reason:
                            total.skipped += 1
                            logger.warning(
                                "Skipping %s %s (%d): %s",
                                self.endpoint,
                                fields.get("name"),
                                external_id,
                                reason,
                            )
                            continue

                    if upsert(s, model, external_id, fields, self.system_user_id):
                        total.created += 1
                    else:
                        total.updated += 1
                s.commit()

            logger.debug(
                "Processed %s batch %d/%d", self.endpoint, n, len(batches)
            )

        return total

    def _retire_missing(
        self,
        model: Type[SyncedRecord],
        seen_ids: List[int],
        scope: Optional[Dict[str, Any]] = None,
    ) -> int:
        with Session(self.engine) as s:
            retired = retire_missing(s, model, seen_ids, self.system_user_id, scope)
            s.commit()
        if retired:
            logger.info("Retired %d %s no longer present upstream", retired, self.endpoint)
        return retired


class KindReconciler(Reconciler):
    """Generic single-fetch reconciler driven by a KindAdapter."""

    def __init__(self, adapter: KindAdapter, policy: SyncPolicy, **kwargs):
        super().__init__(policy, **kwargs)
        self.adapter = adapter
        self.endpoint = adapter.endpoint
        self.supports_delta = adapter.supports_delta

    async def _sync(self, decision: SyncDecision, config: SyncConfig) -> SyncOutcome:
        adapter = self.adapter
        filters = replace(
            adapter.base_filters or FetchFilters(),
            modified_since=decision.last_sync_at if decision.use_delta else None,
        )

        records = await self._fetch(
            lambda: adapter.fetch(filters), config, label=adapter.endpoint
        )

        result = self._upsert_batches(
            adapter.model,
            records,
            adapter.normalize,
            id_key=adapter.id_key,
            resolve_parents=adapter.resolve_parents,
        )
        if result.skipped:
            logger.warning(
                "Skipped %d %s records (missing id or parent)",
                result.skipped,
                adapter.endpoint,
            )

        deleted = 0
        if decision.mode == SyncMode.FULL and records:
            seen = [i for i in (adapter.external_id(r) for r in records) if i is not None]
            deleted = self._retire_missing(adapter.model, seen, adapter.retire_scope)

        return SyncOutcome(
            mode=decision.mode,
            created=result.created,
            updated=result.updated,
            deleted=deleted,
            skipped=result.skipped,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
