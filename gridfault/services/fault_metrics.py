"""
Fault Metrics: display-side calculations over fault snapshots.

Pure functions, no permission gate. An open-ended outage has no numeric
duration: ``elapsed_duration`` returns the ``ONGOING`` sentinel, which is
neither zero nor infinity and refuses arithmetic.

Usage:
    from gridfault.services.fault_metrics import ONGOING, elapsed_duration, total_affected

    if elapsed_duration(record) is ONGOING:
        ...
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import timedelta, timezone
from enum import Enum

from gridfault.core.domain import (
    ControlSystemOutage,
    FaultRecord,
    OP5Fault,
    PopulationCounts,
)


class DurationState(Enum):
    ONGOING = "ongoing"

    def __repr__(self) -> str:
        return "ONGOING"


ONGOING = DurationState.ONGOING


def _aware(value):
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def elapsed_duration(record: FaultRecord) -> timedelta | DurationState:
    """``restoration_date - occurrence_date``, or ONGOING while unrestored."""
    if record.restoration_date is None:
        return ONGOING
    return _aware(record.restoration_date) - _aware(record.occurrence_date)


def duration_hours(record: FaultRecord) -> float | DurationState:
    elapsed = elapsed_duration(record)
    if elapsed is ONGOING:
        return ONGOING
    return elapsed.total_seconds() / 3600


def sum_population(counts: PopulationCounts | Mapping | None) -> int:
    """rural + urban + metro; absent segments (or absent counts) count as 0."""
    normalized = PopulationCounts.from_mapping(counts)
    return normalized.rural + normalized.urban + normalized.metro


def affected_counts(record: FaultRecord) -> PopulationCounts | None:
    if isinstance(record, OP5Fault):
        return record.affected_population
    if isinstance(record, ControlSystemOutage):
        return record.customers_affected
    raise TypeError(f"Unsupported fault record type: {type(record).__name__}")


def total_affected(record: FaultRecord | PopulationCounts | Mapping | None) -> int:
    """Total affected customers for a record (or a bare population mapping)."""
    if isinstance(record, (OP5Fault, ControlSystemOutage)):
        return sum_population(affected_counts(record))
    return sum_population(record)


def format_duration(hours: float | DurationState | None) -> str:
    """Human-readable duration: ``"45 minutes"``, ``"3h 15m"``, ``"2d 4h"``."""
    if hours is None or hours is ONGOING:
        return "Ongoing"
    total_minutes = int(round(hours * 60))
    if total_minutes < 60:
        return f"{total_minutes} minutes"
    days, remainder = divmod(total_minutes, 24 * 60)
    h, m = divmod(remainder, 60)
    if days:
        return f"{days}d {h}h"
    return f"{h}h {m}m"


def repair_hours(record: FaultRecord) -> float | DurationState:
    """OP5 ``mttr`` when the reporter supplied one, otherwise elapsed hours."""
    if isinstance(record, OP5Fault) and record.mttr is not None:
        return float(record.mttr)
    return duration_hours(record)


def mean_time_to_repair(records: Iterable[FaultRecord]) -> float | None:
    """Mean repair time in hours across restored records; None if none restored."""
    samples = [h for h in (repair_hours(r) for r in records) if h is not ONGOING]
    if not samples:
        return None
    return round(sum(samples) / len(samples), 2)


def unserved_energy(outage: ControlSystemOutage) -> float | DurationState:
    """Reported unserved energy (MWh), else ``load_mw x duration``; ONGOING while open."""
    if outage.unserved_energy_mwh is not None:
        return outage.unserved_energy_mwh
    hours = duration_hours(outage)
    if hours is ONGOING:
        return ONGOING
    return round(outage.load_mw * hours, 2)


def fault_metrics(record: FaultRecord) -> dict:
    """JSON-friendly bundle of the metrics a fault card displays."""
    hours = duration_hours(record)
    result = {
        "duration_hours": None if hours is ONGOING else round(hours, 2),
        "duration_text": format_duration(hours),
        "ongoing": hours is ONGOING,
        "total_affected": total_affected(record),
    }
    if isinstance(record, ControlSystemOutage):
        energy = unserved_energy(record)
        result["unserved_energy_mwh"] = None if energy is ONGOING else energy
    return result
