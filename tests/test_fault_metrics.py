"""
Fault metrics: durations, the ONGOING sentinel, affected population totals.
"""

from datetime import datetime, timedelta, timezone

import pytest

from gridfault.core.domain import FaultStatus, PopulationCounts
from gridfault.services.fault_metrics import (
    ONGOING,
    duration_hours,
    elapsed_duration,
    fault_metrics,
    format_duration,
    mean_time_to_repair,
    sum_population,
    total_affected,
    unserved_energy,
)


T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _restored(factory, hours, **overrides):
    return factory(
        status=FaultStatus.RESOLVED,
        restoration_date=T0 + timedelta(hours=hours),
        **overrides,
    )


class TestDuration:
    def test_three_hour_outage(self, make_op5):
        record = _restored(make_op5, 3)
        assert elapsed_duration(record) == timedelta(hours=3)
        assert duration_hours(record) == 3.0

    def test_unrestored_is_ongoing(self, make_op5):
        assert elapsed_duration(make_op5()) is ONGOING
        assert duration_hours(make_op5()) is ONGOING

    def test_ongoing_is_not_a_number(self, make_op5):
        with pytest.raises(TypeError):
            duration_hours(make_op5()) + 1

    def test_naive_dates_are_utc(self, make_op5):
        record = make_op5(
            occurrence_date=datetime(2024, 3, 1, 8, 0),
            restoration_date=T0 + timedelta(minutes=90),
        )
        assert duration_hours(record) == 1.5


class TestFormatDuration:
    @pytest.mark.parametrize("hours,expected", [
        (0.75, "45 minutes"),
        (3.25, "3h 15m"),
        (52, "2d 4h"),
        (None, "Ongoing"),
        (ONGOING, "Ongoing"),
    ])
    def test_format(self, hours, expected):
        assert format_duration(hours) == expected


class TestAffectedPopulation:
    def test_op5_total(self, make_op5):
        assert total_affected(make_op5()) == 15

    def test_absent_counts_total_zero(self, make_op5):
        assert total_affected(make_op5(affected_population=None)) == 0
        assert total_affected(None) == 0

    def test_outage_uses_customers_affected(self, make_outage):
        assert total_affected(make_outage()) == 400

    def test_partial_mapping(self):
        assert sum_population({"urban": 12}) == 12
        assert sum_population({"rural": None, "metro": 3}) == 3
        assert sum_population(PopulationCounts(1, 2, 3)) == 6


class TestAggregates:
    def test_mttr_prefers_reported_value(self, make_op5):
        records = [
            _restored(make_op5, 2, id="a"),
            _restored(make_op5, 10, id="b", mttr=4.0),
            make_op5(id="c"),
        ]
        assert mean_time_to_repair(records) == 3.0

    def test_mttr_none_when_nothing_restored(self, make_op5):
        assert mean_time_to_repair([make_op5()]) is None
        assert mean_time_to_repair([]) is None

    def test_unserved_energy_from_load_and_duration(self, make_outage):
        assert unserved_energy(_restored(make_outage, 2)) == 25.0

    def test_unserved_energy_reported_value_wins(self, make_outage):
        assert unserved_energy(make_outage(unserved_energy_mwh=7.5)) == 7.5

    def test_unserved_energy_ongoing(self, make_outage):
        assert unserved_energy(make_outage()) is ONGOING


class TestFaultMetricsBundle:
    def test_active_op5(self, make_op5):
        assert fault_metrics(make_op5()) == {
            "duration_hours": None,
            "duration_text": "Ongoing",
            "ongoing": True,
            "total_affected": 15,
        }

    def test_resolved_outage(self, make_outage):
        metrics = fault_metrics(_restored(make_outage, 3))
        assert metrics["duration_hours"] == 3.0
        assert metrics["duration_text"] == "3h 0m"
        assert metrics["ongoing"] is False
        assert metrics["total_affected"] == 400
        assert metrics["unserved_energy_mwh"] == 37.5
