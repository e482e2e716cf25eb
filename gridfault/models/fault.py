"""
Grid Fault Engine
Fault record persistence model.

Both fault variants live in one table, tagged by ``kind``:
    - op5:      field fault (fault_location, mttr, affected population)
    - control:  control-system load outage (load_mw, reason, area_affected,
                unserved_energy_mwh, customers affected)

Population counts share the ``population_*`` columns; all three NULL means
the reporter supplied none.

Lifecycle states:
    active → resolved   (restoration_date set exactly when resolved)

``version`` increments on every committed mutation; the store uses it to
detect concurrent writers.
"""

from datetime import datetime, timezone

from gridfault.core.domain import (
    ControlSystemOutage,
    FaultKind,
    FaultRecord,
    FaultStatus,
    OP5Fault,
    PopulationCounts,
)
from gridfault.models import db


FAULT_KINDS = {"op5", "control"}

FAULT_STATUSES = {"active", "resolved"}


def _aware(value):
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _as_utc(value):
    """Convert before writing: the stored offset is not kept on every backend."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FaultRecordRow(db.Model):
    __tablename__ = "fault_records"

    id = db.Column(db.String(64), primary_key=True)
    kind = db.Column(db.String(20), nullable=False, comment="op5 | control")
    region_id = db.Column(
        db.String(64), db.ForeignKey("regions.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    district_id = db.Column(
        db.String(64), db.ForeignKey("districts.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    fault_type = db.Column(
        db.String(30), nullable=False,
        comment="Planned | Unplanned | Emergency | Load Shedding",
    )
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    occurrence_date = db.Column(db.DateTime(timezone=True), nullable=False)
    restoration_date = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    # OP5
    fault_location = db.Column(db.String(300), nullable=True)
    mttr = db.Column(db.Float, nullable=True, comment="Hours")

    # Control-system outage
    load_mw = db.Column(db.Float, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    area_affected = db.Column(db.String(300), nullable=True)
    unserved_energy_mwh = db.Column(db.Float, nullable=True)

    # Affected population / customers
    population_rural = db.Column(db.Integer, nullable=True)
    population_urban = db.Column(db.Integer, nullable=True)
    population_metro = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint("kind IN ('op5', 'control')", name="ck_fault_kind"),
        db.CheckConstraint("status IN ('active', 'resolved')", name="ck_fault_status"),
        db.CheckConstraint(
            "(status = 'resolved') = (restoration_date IS NOT NULL)",
            name="ck_fault_restoration_status",
        ),
        db.CheckConstraint(
            "restoration_date IS NULL OR restoration_date >= occurrence_date",
            name="ck_fault_restoration_after_occurrence",
        ),
        db.CheckConstraint(
            "(population_rural IS NULL OR population_rural >= 0)"
            " AND (population_urban IS NULL OR population_urban >= 0)"
            " AND (population_metro IS NULL OR population_metro >= 0)",
            name="ck_fault_population_non_negative",
        ),
    )

    # ── snapshot conversion ──────────────────────────────────────────────

    def _population(self) -> PopulationCounts | None:
        values = (self.population_rural, self.population_urban, self.population_metro)
        if all(v is None for v in values):
            return None
        return PopulationCounts(*(v or 0 for v in values))

    def to_record(self) -> FaultRecord:
        """Immutable snapshot of this row."""
        common = {
            "id": self.id,
            "region_id": self.region_id,
            "district_id": self.district_id,
            "fault_type": self.fault_type,
            "status": FaultStatus(self.status),
            "occurrence_date": _aware(self.occurrence_date),
            "restoration_date": _aware(self.restoration_date),
            "version": self.version,
        }
        if self.kind == FaultKind.OP5.value:
            return OP5Fault(
                **common,
                fault_location=self.fault_location or "",
                mttr=self.mttr,
                affected_population=self._population(),
            )
        if self.kind == FaultKind.CONTROL.value:
            return ControlSystemOutage(
                **common,
                load_mw=self.load_mw or 0.0,
                reason=self.reason,
                area_affected=self.area_affected,
                unserved_energy_mwh=self.unserved_energy_mwh,
                customers_affected=self._population(),
            )
        raise ValueError(f"Unknown fault kind {self.kind!r} for fault {self.id}")

    @staticmethod
    def column_values(record: FaultRecord) -> dict:
        """Column → value mapping for ``record`` (excluding id and version)."""
        values = {
            "kind": record.kind.value,
            "region_id": record.region_id,
            "district_id": record.district_id,
            "fault_type": record.fault_type,
            "status": record.status.value,
            "occurrence_date": _as_utc(record.occurrence_date),
            "restoration_date": _as_utc(record.restoration_date),
            "fault_location": None,
            "mttr": None,
            "load_mw": None,
            "reason": None,
            "area_affected": None,
            "unserved_energy_mwh": None,
        }
        if isinstance(record, OP5Fault):
            population = record.affected_population
            values.update(fault_location=record.fault_location, mttr=record.mttr)
        elif isinstance(record, ControlSystemOutage):
            population = record.customers_affected
            values.update(
                load_mw=record.load_mw,
                reason=record.reason,
                area_affected=record.area_affected,
                unserved_energy_mwh=record.unserved_energy_mwh,
            )
        else:
            raise TypeError(f"Unsupported fault record type: {type(record).__name__}")
        values.update(
            population_rural=population.rural if population else None,
            population_urban=population.urban if population else None,
            population_metro=population.metro if population else None,
        )
        return values

    @classmethod
    def from_record(cls, record: FaultRecord) -> "FaultRecordRow":
        return cls(id=record.id, version=record.version, **cls.column_values(record))

    def to_dict(self):
        return self.to_record().to_dict()
