"""
Scope Matcher: does a user's geographic scope cover a fault record?

Records reference regions/districts by id; users carry region/district
names. ``ReferenceIndex`` resolves ids to names from the reference lists
the data store hands us.

Rules (deny-by-default):
  - system_admin, global_engineer: scope-unbounded
  - regional_engineer:  user.region == region name of the record
  - district_engineer:  user.district == district name of the record, and
                        no region inconsistency between user, district and record
  - technician / unknown / absent role: never covers

Failed lookups never match.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from gridfault.core.domain import District, FaultRecord, Region, Role, User

logger = logging.getLogger(__name__)

UNBOUNDED_ROLES = {Role.SYSTEM_ADMIN, Role.GLOBAL_ENGINEER}


class ReferenceIndex:
    """Id → name lookups over a snapshot of regions and districts."""

    def __init__(self, regions: Iterable[Region] = (), districts: Iterable[District] = ()):
        self._regions = {r.id: r for r in regions}
        self._districts = {d.id: d for d in districts}

    def region(self, region_id: str | None) -> Region | None:
        return self._regions.get(region_id)

    def district(self, district_id: str | None) -> District | None:
        return self._districts.get(district_id)

    def region_of(self, record: FaultRecord) -> str | None:
        region = self.region(record.region_id)
        return region.name if region else None

    def district_of(self, record: FaultRecord) -> str | None:
        district = self.district(record.district_id)
        return district.name if district else None

    def district_in_region(self, district_id: str | None, region_id: str | None) -> bool:
        district = self.district(district_id)
        return district is not None and district.region_id == region_id


def _district_scope_consistent(user: User, record: FaultRecord, refs: ReferenceIndex) -> bool:
    """Region cross-checks for district-level scope; mismatches fail closed."""
    if not refs.district_in_region(record.district_id, record.region_id):
        logger.warning(
            "Fault %s district %s is not in region %s; scope denied",
            record.id, record.district_id, record.region_id,
        )
        return False
    if user.region and user.region != refs.region_of(record):
        logger.warning(
            "User %s district %r matches fault %s but region %r != %r; scope denied",
            user.id, user.district, record.id, user.region, refs.region_of(record),
        )
        return False
    return True


def scope_covers(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    """True iff ``user``'s scope covers ``record`` for resolve/edit/delete."""
    if user is None or user.role is None:
        return False

    if user.role in UNBOUNDED_ROLES:
        return True

    if user.role == Role.REGIONAL_ENGINEER:
        region_name = refs.region_of(record)
        return region_name is not None and user.region == region_name

    if user.role == Role.DISTRICT_ENGINEER:
        district_name = refs.district_of(record)
        if district_name is None or user.district != district_name:
            return False
        return _district_scope_consistent(user, record, refs)

    return False


def view_scope_covers(user: User | None, record: FaultRecord, refs: ReferenceIndex) -> bool:
    """Read-only scope: technicians additionally see their own district."""
    if user is not None and user.role == Role.TECHNICIAN:
        district_name = refs.district_of(record)
        if district_name is None or not user.district or user.district != district_name:
            return False
        return _district_scope_consistent(user, record, refs)
    return scope_covers(user, record, refs)
