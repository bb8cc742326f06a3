"""Catalog models: item categories, companies (manufacturers) and items."""
from typing import Optional

from sqlmodel import Field

from stationsync.models.base import SyncedRecord


class Category(SyncedRecord, table=True):
    type: Optional[str] = Field(default=None, index=True)  # "item", "service", ...
    section: Optional[str] = None
    name: str
    is_game_related: bool = False


class Company(SyncedRecord, table=True):
    name: str
    nickname: Optional[str] = None


class Item(SyncedRecord, table=True):
    """A tradable item. category_id / company_id hold upstream external ids."""

    category_id: Optional[int] = Field(default=None, index=True)
    company_id: Optional[int] = Field(default=None, index=True)
    name: str
    section: Optional[str] = None
    category_name: Optional[str] = None
    company_name: Optional[str] = None
    size: Optional[str] = None
    uuid: Optional[str] = None
    weight_scu: Optional[float] = None
    is_commodity: bool = False
    is_buyable: bool = False
    is_sellable: bool = False
