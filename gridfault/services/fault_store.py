"""
Fault Store: the data-store collaborator behind the lifecycle engine.

Owns the authoritative copy of every fault. The engine reads immutable
snapshots from here and hands back new snapshots to commit.

Mutations are serialized per record with optimistic versioning:

    UPDATE fault_records SET ..., version = version + 1
     WHERE id = :id AND version = :expected

Zero matched rows means somebody else committed first (ConflictError) or
the record is gone (NotFoundError). The caller retries with a fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import replace

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from gridfault.core.domain import District, FaultRecord, Region
from gridfault.core.exceptions import ConflictError, InvalidDataError, NotFoundError
from gridfault.models import db
from gridfault.models.fault import FaultRecordRow
from gridfault.models.reference import District as DistrictRow
from gridfault.models.reference import Region as RegionRow
from gridfault.services.fault_lifecycle import record_errors
from gridfault.services.scope_matcher import ReferenceIndex

logger = logging.getLogger(__name__)

RESOURCE = "FaultRecord"


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════

def get_record(record_id: str) -> FaultRecord:
    """Fresh snapshot of ``record_id``; raises NotFoundError."""
    row = db.session.get(FaultRecordRow, record_id, populate_existing=True)
    if row is None:
        raise NotFoundError(RESOURCE, record_id)
    return row.to_record()


def list_records(*, status: str | None = None, kind: str | None = None) -> list[FaultRecord]:
    q = FaultRecordRow.query
    if status:
        q = q.filter_by(status=status)
    if kind:
        q = q.filter_by(kind=kind)
    rows = q.order_by(FaultRecordRow.occurrence_date.desc(), FaultRecordRow.id).all()
    return [row.to_record() for row in rows]


def list_regions() -> set[Region]:
    return {row.to_value() for row in RegionRow.query.all()}


def list_districts() -> set[District]:
    return {row.to_value() for row in DistrictRow.query.all()}


def reference_index() -> ReferenceIndex:
    """Region/district snapshot for scope matching."""
    return ReferenceIndex(list_regions(), list_districts())


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def add_region(region: Region) -> Region:
    db.session.add(RegionRow(id=region.id, name=region.name))
    db.session.commit()
    return region


def add_district(district: District) -> District:
    db.session.add(DistrictRow(id=district.id, name=district.name, region_id=district.region_id))
    db.session.commit()
    return district


def add_record(record: FaultRecord) -> FaultRecord:
    """Insert a newly reported fault (report-fault flow).

    Raises:
        InvalidDataError: the record breaks a data-model invariant.
        ConflictError: a fault with this id already exists.
    """
    errors = record_errors(record, reference_index())
    if errors:
        raise InvalidDataError("Invalid fault record", details=errors)
    if _exists(record.id):
        raise ConflictError(RESOURCE, record.id)
    db.session.add(FaultRecordRow.from_record(record))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning("Insert of fault %s rejected by the database", record.id)
        raise ConflictError(RESOURCE, record.id)
    return record


def _exists(record_id: str) -> bool:
    return db.session.execute(
        sa.select(FaultRecordRow.id).where(FaultRecordRow.id == record_id)
    ).first() is not None


def commit(record_id: str, new_state: FaultRecord) -> FaultRecord:
    """Persist ``new_state`` if the stored version still equals ``new_state.version``.

    Returns the committed snapshot (version bumped).

    Raises:
        ConflictError: the record changed since ``new_state`` was read.
        NotFoundError: the record no longer exists.
    """
    expected = new_state.version
    stmt = (
        sa.update(FaultRecordRow)
        .where(FaultRecordRow.id == record_id, FaultRecordRow.version == expected)
        .values(version=FaultRecordRow.version + 1, **FaultRecordRow.column_values(new_state))
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        db.session.rollback()
        if not _exists(record_id):
            raise NotFoundError(RESOURCE, record_id)
        logger.warning("Version conflict committing fault %s (expected v%s)", record_id, expected)
        raise ConflictError(RESOURCE, record_id, expected)
    db.session.commit()
    return replace(new_state, version=expected + 1)


def remove(record_id: str, expected_version: int | None = None) -> None:
    """Delete ``record_id``. With ``expected_version``, only if it is unchanged."""
    stmt = sa.delete(FaultRecordRow).where(FaultRecordRow.id == record_id)
    if expected_version is not None:
        stmt = stmt.where(FaultRecordRow.version == expected_version)
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        db.session.rollback()
        if not _exists(record_id):
            raise NotFoundError(RESOURCE, record_id)
        logger.warning("Version conflict deleting fault %s (expected v%s)", record_id, expected_version)
        raise ConflictError(RESOURCE, record_id, expected_version)
    db.session.commit()
