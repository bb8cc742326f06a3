"""
Record-store operations shared by every synced table.

All functions take an open Session and leave committing to the caller, so a
reconciler decides how big each atomic unit is (one batch, usually).
"""
from typing import Any, Dict, Iterable, Optional, Set, Type

from sqlalchemy import update
from sqlmodel import Session, select

from stationsync.models.base import RecordStatus, SyncedRecord
from stationsync.models.sync import utcnow

# Fields written on insert only
CREATE_ONLY_FIELDS = {"uex_date_added"}

# Upstream timestamps are only overwritten when upstream actually sent one
KEEP_IF_MISSING_FIELDS = {"uex_date_modified"}

_IN_CLAUSE_CHUNK = 500


def find_by_external_id(
    session: Session, model: Type[SyncedRecord], external_id: int
) -> Optional[SyncedRecord]:
    return session.exec(
        select(model).where(model.external_id == external_id)
    ).first()


def upsert(
    session: Session,
    model: Type[SyncedRecord],
    external_id: int,
    fields: Dict[str, Any],
    actor_id: Optional[int],
) -> bool:
    """Insert or update one record. Returns True if a row was created.

    Updating always clears the retired state: a record seen upstream again
    is active again.
    """
    existing = find_by_external_id(session, model, external_id)
    now = utcnow()

    if existing is not None:
        for key, value in fields.items():
            if key in CREATE_ONLY_FIELDS:
                continue
            if key in KEEP_IF_MISSING_FIELDS and value is None:
                continue
            setattr(existing, key, value)
        existing.record_status = RecordStatus.ACTIVE
        existing.modified_by = actor_id
        existing.updated_at = now
        session.add(existing)
        return False

    record = model(
        external_id=external_id,
        record_status=RecordStatus.ACTIVE,
        added_by=actor_id,
        modified_by=actor_id,
        created_at=now,
        updated_at=now,
        **fields,
    )
    session.add(record)
    return True


def active_external_ids(
    session: Session,
    model: Type[SyncedRecord],
    scope: Optional[Dict[str, Any]] = None,
) -> Set[int]:
    stmt = select(model.external_id).where(
        model.record_status == RecordStatus.ACTIVE
    )
    for column, value in (scope or {}).items():
        stmt = stmt.where(getattr(model, column) == value)
    return set(session.exec(stmt).all())


def retire_missing(
    session: Session,
    model: Type[SyncedRecord],
    seen_ids: Iterable[int],
    actor_id: Optional[int],
    scope: Optional[Dict[str, Any]] = None,
) -> int:
    """Retire every active record (within scope) whose id is not in seen_ids.

    Returns the number of rows retired.
    """
    missing = sorted(active_external_ids(session, model, scope) - set(seen_ids))
    if not missing:
        return 0

    conn = session.connection()
    now = utcnow()
    retired = 0
    for i in range(0, len(missing), _IN_CLAUSE_CHUNK):
        chunk = missing[i:i + _IN_CLAUSE_CHUNK]
        result = conn.execute(
            update(model)
            .where(model.external_id.in_(chunk))
            .where(model.record_status == RecordStatus.ACTIVE)
            .values(
                record_status=RecordStatus.RETIRED,
                modified_by=actor_id,
                updated_at=now,
            )
        )
        retired += result.rowcount
    return retired
