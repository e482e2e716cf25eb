"""
Grid fault domain value types.

Immutable snapshots passed through the authorization and lifecycle engine.
The data store owns the authoritative copy; services receive a snapshot,
derive a new one with ``dataclasses.replace`` and hand it back for commit.

Types:
    - Role:                 ordered role enumeration (technician → system_admin)
    - User:                 explicit caller context (role + geographic scope)
    - Region / District:    reference entities (District → Region by id)
    - PopulationCounts:     rural / urban / metro customer counts
    - OP5Fault:             field-reported fault with a physical location
    - ControlSystemOutage:  control-centre load outage measured in MW

FaultRecord is the tagged union ``OP5Fault | ControlSystemOutage``; the
``kind`` field is the tag.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class Role(str, Enum):
    """Platform roles, declared from least to most senior."""
    TECHNICIAN = "technician"
    DISTRICT_ENGINEER = "district_engineer"
    REGIONAL_ENGINEER = "regional_engineer"
    GLOBAL_ENGINEER = "global_engineer"
    SYSTEM_ADMIN = "system_admin"

    @classmethod
    def parse(cls, value: str | Role | None) -> Role | None:
        """Return the Role for ``value`` or None when it is absent/unknown."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class FaultStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class FaultKind(str, Enum):
    OP5 = "op5"
    CONTROL = "control"


FAULT_TYPES = {"Planned", "Unplanned", "Emergency", "Load Shedding"}

POPULATION_SEGMENTS = ("rural", "urban", "metro")


@dataclass(frozen=True)
class User:
    """Caller identity and scope. Region/district are names, not ids."""

    role: Role | None
    region: str | None = None
    district: str | None = None
    id: str | None = None
    name: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.role is not None

    def scope_errors(self) -> list[str]:
        """List violated scope invariants (empty when the user is well-formed)."""
        errors = []
        if self.role == Role.DISTRICT_ENGINEER:
            if not self.region:
                errors.append("district_engineer requires region")
            if not self.district:
                errors.append("district_engineer requires district")
        elif self.role == Role.REGIONAL_ENGINEER and not self.region:
            errors.append("regional_engineer requires region")
        return errors


@dataclass(frozen=True)
class Region:
    id: str
    name: str


@dataclass(frozen=True)
class District:
    id: str
    name: str
    region_id: str


@dataclass(frozen=True)
class PopulationCounts:
    rural: int = 0
    urban: int = 0
    metro: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping | PopulationCounts | None) -> PopulationCounts:
        """Build counts from a partial mapping; absent segments default to 0."""
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        return cls(**{seg: data.get(seg) or 0 for seg in POPULATION_SEGMENTS})

    def to_dict(self) -> dict:
        return {"rural": self.rural, "urban": self.urban, "metro": self.metro}


@dataclass(frozen=True)
class _FaultBase:
    id: str
    region_id: str
    district_id: str
    fault_type: str
    occurrence_date: datetime
    status: FaultStatus = FaultStatus.ACTIVE
    restoration_date: datetime | None = None
    version: int = 1

    @property
    def is_resolved(self) -> bool:
        return self.status == FaultStatus.RESOLVED

    def _common_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "region_id": self.region_id,
            "district_id": self.district_id,
            "fault_type": self.fault_type,
            "status": self.status.value,
            "occurrence_date": self.occurrence_date.isoformat(),
            "restoration_date": (
                self.restoration_date.isoformat() if self.restoration_date else None
            ),
            "version": self.version,
        }


@dataclass(frozen=True)
class OP5Fault(_FaultBase):
    fault_location: str = ""
    mttr: float | None = None
    affected_population: PopulationCounts | None = field(default_factory=PopulationCounts)

    kind = FaultKind.OP5

    def to_dict(self) -> dict:
        result = self._common_dict()
        result.update({
            "fault_location": self.fault_location,
            "mttr": self.mttr,
            "affected_population": (
                self.affected_population.to_dict() if self.affected_population else None
            ),
        })
        return result


@dataclass(frozen=True)
class ControlSystemOutage(_FaultBase):
    load_mw: float = 0.0
    reason: str | None = None
    area_affected: str | None = None
    unserved_energy_mwh: float | None = None
    customers_affected: PopulationCounts | None = field(default_factory=PopulationCounts)

    kind = FaultKind.CONTROL

    def to_dict(self) -> dict:
        result = self._common_dict()
        result.update({
            "load_mw": self.load_mw,
            "reason": self.reason,
            "area_affected": self.area_affected,
            "unserved_energy_mwh": self.unserved_energy_mwh,
            "customers_affected": (
                self.customers_affected.to_dict() if self.customers_affected else None
            ),
        })
        return result


FaultRecord = Union[OP5Fault, ControlSystemOutage]
