"""
ItemsReconciler: items are fetched one category at a time.

UEX only lists items scoped to a category, so a run makes one upstream call
per active local item category. Categories are processed in chunks of
`concurrent_categories` running concurrently, with a fixed pause between
chunks to stay under the upstream rate limit.

A failing category (rate limit included) is logged and counted but does not
abort the others; the run is still recorded as a success. Locations behave
differently on purpose: see locations.py.

Items are never retired. Telling "gone upstream" apart from "its category
failed this run" needs per-category sighting data we don't keep yet.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlmodel import Session, select

from stationsync.models.base import RecordStatus
from stationsync.models.catalog import Category, Company, Item
from stationsync.models.sync import SyncConfig
from stationsync.sync.catalog import ITEM_CATEGORY_TYPE
from stationsync.sync.policy import SyncDecision, SyncOutcome, SyncPolicy
from stationsync.sync.reconciler import Reconciler
from stationsync.sync.retry import chunked
from stationsync.uex.client import FetchFilters, UexClient
from stationsync.uex.normalizer import normalize_item

logger = logging.getLogger(__name__)

ITEMS_ENDPOINT = "items"


@dataclass
class CategoryRef:
    external_id: int
    name: str


@dataclass
class CategoryResult:
    category_id: int
    category_name: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class ItemsReconciler(Reconciler):
    endpoint = ITEMS_ENDPOINT

    def __init__(
        self,
        client: UexClient,
        policy: SyncPolicy,
        *,
        concurrent_categories: int = 3,
        rate_limit_pause_ms: int = 2000,
        **kwargs,
    ):
        super().__init__(policy, **kwargs)
        self.client = client
        self.concurrent_categories = max(1, concurrent_categories)
        self.rate_limit_pause_ms = rate_limit_pause_ms

    async def _sync(
        self, decision: SyncDecision, config: SyncConfig
    ) -> Optional[SyncOutcome]:
        categories = self._active_item_categories()
        if not categories:
            logger.warning("No active item categories found. Skipping items sync")
            return None

        logger.info(
            "Starting items sync: %s mode, %d categories to process",
            decision.mode.value,
            len(categories),
        )

        filters = FetchFilters(
            modified_since=decision.last_sync_at if decision.use_delta else None
        )
        companies = self._known_companies()
        results = await self._process_categories(categories, filters, companies, config)

        failed = [r for r in results if r.errors]
        if failed:
            logger.warning(
                "Items sync finished with %d/%d failed categories: %s",
                len(failed),
                len(results),
                ", ".join(str(r.category_id) for r in failed),
            )
        logger.debug("Skipping retirement for items; not supported yet")

        return SyncOutcome(
            mode=decision.mode,
            created=sum(r.created for r in results),
            updated=sum(r.updated for r in results),
            deleted=0,
            skipped=sum(r.skipped for r in results),
            errors=len(failed),
        )

    async def _process_categories(
        self,
        categories: List[CategoryRef],
        filters: FetchFilters,
        companies: Set[int],
        config: SyncConfig,
    ) -> List[CategoryResult]:
        results: List[CategoryResult] = []
        chunks = chunked(categories, self.concurrent_categories)

        for n, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(self._sync_category(c, filters, companies, config) for c in chunk),
                return_exceptions=True,
            )
            for category, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error(
                        "Failed to sync category %s (%d): %s",
                        category.name,
                        category.external_id,
                        outcome,
                    )
                    results.append(
                        CategoryResult(category.external_id, category.name, errors=1)
                    )
                else:
                    results.append(outcome)

            if n < len(chunks) - 1:
                logger.debug(
                    "Pausing %dms between category batches", self.rate_limit_pause_ms
                )
                await self.sleep(self.rate_limit_pause_ms / 1000.0)

        return results

    async def _sync_category(
        self,
        category: CategoryRef,
        filters: FetchFilters,
        companies: Set[int],
        config: SyncConfig,
    ) -> CategoryResult:
        items = await self._fetch(
            lambda: self.client.fetch_items_by_category(category.external_id, filters),
            config,
            label=f"category {category.external_id}",
        )
        if not items:
            logger.debug(
                "No items to sync for category %s (%d)",
                category.name,
                category.external_id,
            )
            return CategoryResult(category.external_id, category.name)

        result = self._upsert_batches(
            Item,
            items,
            lambda raw: normalize_item(raw, category.external_id, companies),
        )
        logger.info(
            "Synced %d items for category %s: created %d, updated %d",
            len(items),
            category.name,
            result.created,
            result.updated,
        )
        return CategoryResult(
            category.external_id,
            category.name,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
        )

    def _active_item_categories(self) -> List[CategoryRef]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(Category)
                .where(Category.record_status == RecordStatus.ACTIVE)
                .where(Category.type == ITEM_CATEGORY_TYPE)
                .order_by(Category.external_id)
            ).all()
            return [CategoryRef(c.external_id, c.name) for c in rows]

    def _known_companies(self) -> Set[int]:
        with Session(self.engine) as s:
            return set(s.exec(select(Company.external_id)).all())
