"""
Integration tests for the location hierarchy sync.

Uses AsyncMock for the UEX client and an in-memory SQLite DB.
"""
from unittest.mock import AsyncMock

import pytest
from sqlmodel import Session, select

from stationsync.models.base import RecordStatus
from stationsync.models.locations import (
    City,
    Moon,
    Outpost,
    Planet,
    PointOfInterest,
    SpaceStation,
    StarSystem,
)
from stationsync.models.sync import SyncMode, SyncStatus
from stationsync.sync.locations import LOCATION_ORDER, LocationsReconciler
from stationsync.uex.client import UpstreamRejected

SYSTEM_USER_ID = 1

UNIVERSE = {
    "star_systems": [
        {"id": 68, "name": "Stanton", "code": "ST", "is_available": 1, "is_visible": 1},
        {"id": 64, "name": "Pyro", "code": "PY", "is_available": 0},
    ],
    "planets": [
        {"id": 1, "id_star_system": 68, "name": "Hurston"},
        {"id": 2, "id_star_system": 68, "name": "Crusader"},
        {"id": 3, "id_star_system": 99, "name": "Orphan"},  # unknown system
    ],
    "moons": [
        {"id": 10, "id_planet": 2, "name": "Yela"},
        {"id": 11, "id_planet": 0, "name": "Drifter"},  # no planet
    ],
    "cities": [
        {"id": 20, "id_planet": 1, "name": "Lorville"},
        {"id": 21, "name": "Nowhere"},  # no parent at all
    ],
    "space_stations": [
        {"id": 30, "id_planet": 2, "id_orbit": 5, "name": "Seraphim Station", "nickname": "SS"},
        {"id": 31, "id_moon": 42, "name": "Ghost Station"},  # unknown moon
    ],
    "outposts": [
        {"id": 40, "id_moon": 10, "name": "Deakins Research"},
    ],
    "poi": [
        {"id": 50, "id_space_station": 30, "name": "Admin Office"},
        {"id": 51, "id_orbit": 5, "name": "Comm Array"},  # orbit-only parent
        {"id": 52, "id_city": 20, "id_outpost": 99, "name": "Split Parent"},  # unknown outpost
    ],
}


def make_locations_client(universe=None, fail=None):
    universe = dict(universe or UNIVERSE)
    fail = fail or {}

    def fetch_locations(kind, filters=None):
        if kind in fail:
            raise fail[kind]
        return universe.get(kind, [])

    client = AsyncMock()
    client.fetch_locations = AsyncMock(side_effect=fetch_locations)
    return client


def _rows(engine, model):
    with Session(engine) as s:
        return {r.external_id: r for r in s.exec(select(model)).all()}


def _reconciler(client, policy, no_sleep, **kwargs):
    return LocationsReconciler(
        client, policy, system_user_id=SYSTEM_USER_ID, sleep=no_sleep, **kwargs
    )


class TestLocationsSync:
    @pytest.mark.asyncio
    async def test_kinds_run_in_hierarchy_order(self, policy, no_sleep):
        client = make_locations_client()
        await _reconciler(client, policy, no_sleep).run()

        kinds = [c.args[0] for c in client.fetch_locations.await_args_list]
        assert kinds == list(LOCATION_ORDER)
        assert kinds == [
            "star_systems", "planets", "moons", "cities",
            "space_stations", "outposts", "poi",
        ]

    @pytest.mark.asyncio
    async def test_pauses_between_kinds(self, policy, no_sleep):
        client = make_locations_client()
        await _reconciler(client, policy, no_sleep, endpoints_pause_ms=1000).run()
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0] * 6

    @pytest.mark.asyncio
    async def test_each_kind_has_its_own_state(self, policy, no_sleep):
        client = make_locations_client()
        outcome = await _reconciler(client, policy, no_sleep).run()

        assert list(outcome.per_kind) == list(LOCATION_ORDER)
        for kind in LOCATION_ORDER:
            state = policy.get_state(kind)
            assert state.status == SyncStatus.IDLE
            assert state.last_full_sync_at is not None
        assert outcome.mode == SyncMode.FULL

    @pytest.mark.asyncio
    async def test_availability_flags(self, engine, policy, no_sleep):
        await _reconciler(make_locations_client(), policy, no_sleep).run()
        systems = _rows(engine, StarSystem)
        assert systems[68].is_available is True
        assert systems[64].is_available is False
        assert systems[64].is_visible is True

    @pytest.mark.asyncio
    async def test_children_with_missing_parents_are_skipped(self, engine, policy, no_sleep):
        outcome = await _reconciler(make_locations_client(), policy, no_sleep).run()

        assert set(_rows(engine, Planet)) == {1, 2}
        assert set(_rows(engine, Moon)) == {10}
        assert set(_rows(engine, City)) == {20}
        assert set(_rows(engine, SpaceStation)) == {30}
        assert set(_rows(engine, Outpost)) == {40}
        assert set(_rows(engine, PointOfInterest)) == {50, 51}
        assert outcome.per_kind["planets"].skipped == 1
        assert outcome.created == 2 + 2 + 1 + 1 + 1 + 1 + 2

    @pytest.mark.asyncio
    async def test_star_system_derived_from_parents(self, engine, policy, no_sleep):
        await _reconciler(make_locations_client(), policy, no_sleep).run()

        assert _rows(engine, Moon)[10].star_system_id == 68
        assert _rows(engine, City)[20].star_system_id == 68
        station = _rows(engine, SpaceStation)[30]
        assert station.star_system_id == 68
        assert station.orbit_id == 5
        assert station.code == "SS"
        assert _rows(engine, Outpost)[40].star_system_id == 68
        assert _rows(engine, PointOfInterest)[50].star_system_id == 68

    @pytest.mark.asyncio
    async def test_unknown_star_system_alongside_parent_is_skipped(
        self, engine, policy, no_sleep
    ):
        universe = dict(UNIVERSE)
        universe["cities"] = UNIVERSE["cities"] + [
            {"id": 22, "id_planet": 1, "id_star_system": 777, "name": "Misfiled City"},
        ]
        universe["space_stations"] = UNIVERSE["space_stations"] + [
            {"id": 32, "id_planet": 2, "id_star_system": 68, "name": "Port Olisar"},
            {"id": 33, "id_planet": 2, "id_star_system": 777, "name": "Lost Station"},
        ]
        universe["outposts"] = UNIVERSE["outposts"] + [
            {"id": 41, "id_moon": 10, "id_star_system": 777, "name": "Lost Outpost"},
        ]

        outcome = await _reconciler(make_locations_client(universe), policy, no_sleep).run()

        assert set(_rows(engine, City)) == {20}
        assert set(_rows(engine, SpaceStation)) == {30, 32}
        assert _rows(engine, SpaceStation)[32].star_system_id == 68
        assert set(_rows(engine, Outpost)) == {40}
        assert outcome.per_kind["space_stations"].skipped == 2

    @pytest.mark.asyncio
    async def test_orbit_only_poi_keeps_no_star_system(self, engine, policy, no_sleep):
        await _reconciler(make_locations_client(), policy, no_sleep).run()
        poi = _rows(engine, PointOfInterest)[51]
        assert poi.orbit_id == 5
        assert poi.star_system_id is None

    @pytest.mark.asyncio
    async def test_failure_aborts_remaining_kinds(self, engine, policy, no_sleep):
        client = make_locations_client(fail={"moons": UpstreamRejected("HTTP 400")})

        with pytest.raises(UpstreamRejected):
            await _reconciler(client, policy, no_sleep).run()

        kinds = [c.args[0] for c in client.fetch_locations.await_args_list]
        assert kinds == ["star_systems", "planets", "moons"]
        assert policy.get_state("moons").error_message == "HTTP 400"
        assert policy.get_state("planets").last_successful_sync_at is not None
        assert policy.get_state("cities") is None
        assert _rows(engine, City) == {}

    @pytest.mark.asyncio
    async def test_full_sync_retires_vanished_locations(self, engine, policy, no_sleep):
        await _reconciler(make_locations_client(), policy, no_sleep).run()

        universe = dict(UNIVERSE)
        universe["star_systems"] = [UNIVERSE["star_systems"][0]]
        outcome = await _reconciler(
            make_locations_client(universe), policy, no_sleep
        ).run(force_full=True)

        assert outcome.per_kind["star_systems"].deleted == 1
        assert _rows(engine, StarSystem)[64].record_status == RecordStatus.RETIRED

    @pytest.mark.asyncio
    async def test_second_run_is_delta(self, policy, clock, no_sleep):
        client = make_locations_client()
        await _reconciler(client, policy, no_sleep).run()
        clock.advance(days=1)

        outcome = await _reconciler(client, policy, no_sleep).run()

        assert outcome.mode == SyncMode.DELTA
        assert outcome.deleted == 0
        filters = client.fetch_locations.await_args.args[1]
        assert filters.modified_since is not None
