"""Columns shared by every table that mirrors an upstream UEX collection."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from stationsync.models.sync import utcnow


class RecordStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"  # no longer observed upstream; never physically deleted


class SyncedRecord(SQLModel):
    """
    Base for synced rows. Not a table itself.

    external_id is the upstream UEX id and the only identity the sync engine
    uses. Parent references on child tables also hold external ids.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    external_id: int = Field(unique=True, index=True)
    record_status: RecordStatus = Field(default=RecordStatus.ACTIVE, index=True)

    # Upstream's own audit timestamps, when provided
    uex_date_added: Optional[datetime] = None
    uex_date_modified: Optional[datetime] = None

    # System actor that wrote the row
    added_by: Optional[int] = None
    modified_by: Optional[int] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_retired(self) -> bool:
        return self.record_status == RecordStatus.RETIRED
