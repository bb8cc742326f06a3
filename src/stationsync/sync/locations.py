"""
Location hierarchy sync.

Seven kinds, each its own endpoint with its own SyncState row and lock,
synced strictly parent-before-child:

    star_systems → planets → moons → cities → space_stations → outposts → poi

Children store parent external ids and are checked against already-synced
parents; a record whose parent is missing locally is skipped and logged.
A failure in any kind aborts the remaining kinds for the run, since later
kinds depend on earlier ones having completed. Items tolerate per-category
failure; this does not.
"""
import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from sqlmodel import Session

from stationsync.db.records import find_by_external_id
from stationsync.models.base import SyncedRecord
from stationsync.models.locations import (
    City,
    Moon,
    Outpost,
    Planet,
    PointOfInterest,
    SpaceStation,
    StarSystem,
)
from stationsync.models.sync import SyncMode
from stationsync.sync.policy import SyncOutcome, SyncPolicy
from stationsync.sync.reconciler import KindAdapter, KindReconciler, Normalizer
from stationsync.uex import normalizer
from stationsync.uex.client import UexClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParentLink:
    column: str
    model: Type[SyncedRecord]
    label: str


@dataclass(frozen=True)
class HierarchyRule:
    """
    Parent requirements for one location kind.

    links: parent columns that must resolve to an existing local record
        whenever upstream provides them; checked in order.
    required: columns that must be present.
    require_any: at least one link (or loose column) must be present.
    loose: columns that count as a parent reference but aren't resolved
        (orbits are not mirrored).
    require_star_system: a star_system_id must be given or derivable.

    Any star_system_id, given or derived, must exist locally.
    """

    links: Tuple[ParentLink, ...] = ()
    required: Tuple[str, ...] = ()
    require_any: bool = False
    loose: Tuple[str, ...] = ()
    require_star_system: bool = False

    def resolve(self, session: Session, fields: Dict[str, Any]) -> Optional[str]:
        for column in self.required:
            if not fields.get(column):
                return f"no {column.replace('_id', '').replace('_', ' ')} was provided"

        provided = [link for link in self.links if fields.get(link.column)]
        if self.require_any and not provided and not any(
            fields.get(c) for c in self.loose
        ):
            return "no parent reference was provided"

        for link in provided:
            parent = find_by_external_id(session, link.model, fields[link.column])
            if parent is None:
                return f"parent {link.label} {fields[link.column]} is missing"
            if not fields.get("star_system_id"):
                fields["star_system_id"] = _star_system_of(parent)

        star_system_id = fields.get("star_system_id")
        if self.require_star_system and not star_system_id:
            return "no star system was provided or derived"
        # Upstream may send id_star_system alongside another parent
        if star_system_id and find_by_external_id(session, StarSystem, star_system_id) is None:
            return f"parent star system {star_system_id} is missing"
        return None


def _star_system_of(record: SyncedRecord) -> Optional[int]:
    if isinstance(record, StarSystem):
        return record.external_id
    return getattr(record, "star_system_id", None)


STAR_SYSTEM = ParentLink("star_system_id", StarSystem, "star system")
PLANET = ParentLink("planet_id", Planet, "planet")
MOON = ParentLink("moon_id", Moon, "moon")
SPACE_STATION = ParentLink("space_station_id", SpaceStation, "space station")
CITY = ParentLink("city_id", City, "city")
OUTPOST = ParentLink("outpost_id", Outpost, "outpost")


@dataclass(frozen=True)
class LocationKind:
    endpoint: str
    model: Type[SyncedRecord]
    normalize: Normalizer
    rule: Optional[HierarchyRule] = None


LOCATION_KINDS: Tuple[LocationKind, ...] = (
    LocationKind("star_systems", StarSystem, normalizer.normalize_star_system),
    LocationKind(
        "planets",
        Planet,
        normalizer.normalize_planet,
        HierarchyRule(links=(STAR_SYSTEM,), required=("star_system_id",)),
    ),
    LocationKind(
        "moons",
        Moon,
        normalizer.normalize_moon,
        HierarchyRule(links=(PLANET,), required=("planet_id",)),
    ),
    LocationKind(
        "cities",
        City,
        normalizer.normalize_city,
        HierarchyRule(links=(PLANET, MOON), require_any=True),
    ),
    LocationKind(
        "space_stations",
        SpaceStation,
        normalizer.normalize_space_station,
        HierarchyRule(
            links=(PLANET, MOON), require_any=True, require_star_system=True
        ),
    ),
    LocationKind(
        "outposts",
        Outpost,
        normalizer.normalize_outpost,
        HierarchyRule(links=(PLANET, MOON), require_any=True),
    ),
    LocationKind(
        "poi",
        PointOfInterest,
        normalizer.normalize_poi,
        HierarchyRule(
            links=(STAR_SYSTEM, PLANET, MOON, SPACE_STATION, CITY, OUTPOST),
            require_any=True,
            loose=("orbit_id",),
        ),
    ),
)

LOCATION_ORDER = tuple(kind.endpoint for kind in LOCATION_KINDS)


def location_adapter(client: UexClient, kind: LocationKind) -> KindAdapter:
    return KindAdapter(
        endpoint=kind.endpoint,
        model=kind.model,
        fetch=functools.partial(client.fetch_locations, kind.endpoint),
        normalize=kind.normalize,
        resolve_parents=kind.rule.resolve if kind.rule else None,
    )


@dataclass
class LocationsOutcome:
    per_kind: Dict[str, SyncOutcome] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def created(self) -> int:
        return sum(o.created for o in self.per_kind.values())

    @property
    def updated(self) -> int:
        return sum(o.updated for o in self.per_kind.values())

    @property
    def deleted(self) -> int:
        return sum(o.deleted for o in self.per_kind.values())

    @property
    def mode(self) -> SyncMode:
        """FULL if any kind ran a full sweep."""
        if any(o.mode == SyncMode.FULL for o in self.per_kind.values()):
            return SyncMode.FULL
        return SyncMode.DELTA


class LocationsReconciler:
    """Runs the seven location reconcilers in hierarchy order."""

    def __init__(
        self,
        client: UexClient,
        policy: SyncPolicy,
        *,
        endpoints_pause_ms: int = 1000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        **kwargs,
    ):
        self.endpoints_pause_ms = endpoints_pause_ms
        self.sleep = sleep
        self.reconcilers: List[KindReconciler] = [
            KindReconciler(location_adapter(client, kind), policy, sleep=sleep, **kwargs)
            for kind in LOCATION_KINDS
        ]

    async def run(self, force_full: bool = False) -> LocationsOutcome:
        started = time.monotonic()
        outcome = LocationsOutcome()
        total = len(self.reconcilers)

        logger.info("Starting locations sync")
        for i, reconciler in enumerate(self.reconcilers):
            endpoint = reconciler.endpoint
            logger.info("Syncing %s (%d/%d)", endpoint, i + 1, total)
            try:
                result = await reconciler.run(force_full=force_full)
            except Exception as exc:
                logger.error(
                    "Failed to sync %s: %s; aborting remaining location kinds",
                    endpoint,
                    exc,
                )
                raise

            outcome.per_kind[endpoint] = result
            logger.info(
                "Completed %s: created %d, updated %d, deleted %d",
                endpoint,
                result.created,
                result.updated,
                result.deleted,
            )

            if i < total - 1:
                await self.sleep(self.endpoints_pause_ms / 1000.0)

        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Locations sync completed: created %d, updated %d, deleted %d, duration %dms",
            outcome.created,
            outcome.updated,
            outcome.deleted,
            outcome.duration_ms,
        )
        return outcome
