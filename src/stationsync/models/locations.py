"""
Location hierarchy models.

    StarSystem
      └─ Planet
           └─ Moon
    City / SpaceStation / Outpost  (under a planet and/or moon)
    PointOfInterest                (under any of the above)

Every child stores its parents' external ids, plus a denormalised
star_system_id derived from its ancestry when upstream omits it.
"""
from typing import Optional

from sqlmodel import Field

from stationsync.models.base import SyncedRecord


class StarSystem(SyncedRecord, table=True):
    name: str
    code: Optional[str] = None
    is_available: bool = True
    is_visible: bool = True


class Planet(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    name: str
    code: Optional[str] = None
    is_available: bool = True
    is_landable: bool = False


class Moon(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    planet_id: Optional[int] = Field(default=None, index=True)
    name: str
    code: Optional[str] = None
    is_available: bool = True
    is_landable: bool = False


class City(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    planet_id: Optional[int] = Field(default=None, index=True)
    moon_id: Optional[int] = Field(default=None, index=True)
    name: str
    code: Optional[str] = None
    is_available: bool = True


class SpaceStation(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    planet_id: Optional[int] = Field(default=None, index=True)
    moon_id: Optional[int] = Field(default=None, index=True)
    orbit_id: Optional[int] = None  # orbits are not mirrored locally
    name: str
    code: Optional[str] = None
    is_available: bool = True


class Outpost(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    planet_id: Optional[int] = Field(default=None, index=True)
    moon_id: Optional[int] = Field(default=None, index=True)
    name: str
    code: Optional[str] = None
    is_available: bool = True


class PointOfInterest(SyncedRecord, table=True):
    star_system_id: Optional[int] = Field(default=None, index=True)
    planet_id: Optional[int] = Field(default=None, index=True)
    moon_id: Optional[int] = Field(default=None, index=True)
    orbit_id: Optional[int] = None
    space_station_id: Optional[int] = Field(default=None, index=True)
    city_id: Optional[int] = Field(default=None, index=True)
    outpost_id: Optional[int] = Field(default=None, index=True)
    name: str
    type: Optional[str] = None
    is_available: bool = True
