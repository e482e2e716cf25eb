"""
Store + service integration: persistence round-trips, optimistic
versioning, and the caller-facing service operations.
"""

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from gridfault.core.domain import FaultStatus, PopulationCounts, Role, User
from gridfault.core.exceptions import (
    ConflictError,
    InvalidDataError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from gridfault.models import db
from gridfault.models.fault import FaultRecordRow
from gridfault.services import fault_lifecycle, fault_service, fault_store
from gridfault.services.reference_loader import load_reference_file, seed_reference_data


T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

ADMIN = User(role=Role.SYSTEM_ADMIN, id="u-admin")
DISTRICT_LEGON = User(role=Role.DISTRICT_ENGINEER, region="Accra East", district="Legon", id="u-dist-legon")
DISTRICT_TEMA = User(role=Role.DISTRICT_ENGINEER, region="Accra East", district="Tema", id="u-dist-tema")
TECH_LEGON = User(role=Role.TECHNICIAN, region="Accra East", district="Legon", id="u-tech")
REGIONAL_ASHANTI = User(role=Role.REGIONAL_ENGINEER, region="Ashanti", id="u-reg-ash")


@pytest.fixture()
def stored(grid, make_op5, make_outage):
    """Persist one OP5 fault in Legon and one outage in Kumasi."""
    fault_store.add_record(make_op5())
    fault_store.add_record(make_outage())
    return grid


# ═════════════════════════════════════════════════════════════════════════════
# Store
# ═════════════════════════════════════════════════════════════════════════════

class TestStore:
    def test_record_round_trip(self, stored):
        record = fault_store.get_record("op5-1")
        assert record.kind.value == "op5"
        assert record.occurrence_date == T0
        assert record.affected_population == PopulationCounts(10, 5, 0)
        assert record.version == 1

    def test_outage_round_trip(self, stored):
        outage = fault_store.get_record("ctl-1")
        assert outage.load_mw == 12.5
        assert outage.reason == "Generation shortfall"
        assert outage.customers_affected == PopulationCounts(100, 250, 50)

    def test_missing_population_stays_absent(self, grid, make_op5):
        fault_store.add_record(make_op5(id="op5-2", affected_population=None))
        assert fault_store.get_record("op5-2").affected_population is None

    def test_offset_datetime_committed_as_utc(self, stored):
        record = fault_store.get_record("op5-1")
        shifted = replace(record, occurrence_date=datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=2))))
        fault_store.commit("op5-1", shifted)
        assert fault_store.get_record("op5-1").occurrence_date == T0

    def test_offset_edit_keeps_restoration_after_occurrence(self, stored):
        fault_service.resolve(ADMIN, "op5-1", now=T0 + timedelta(minutes=30))
        fault_service.edit(ADMIN, "op5-1", {"occurrence_date": "2024-03-01T10:00:00+02:00"})
        reread = fault_store.get_record("op5-1")
        assert reread.occurrence_date == T0
        assert reread.restoration_date == T0 + timedelta(minutes=30)
        assert reread.restoration_date >= reread.occurrence_date

    def test_add_record_rejects_resolved_without_restoration(self, grid, make_op5):
        with pytest.raises(InvalidDataError) as exc:
            fault_store.add_record(make_op5(status=FaultStatus.RESOLVED))
        assert "restoration_date" in exc.value.details
        assert fault_store.list_records() == []

    def test_add_record_rejects_restoration_before_occurrence(self, grid, make_op5):
        with pytest.raises(InvalidDataError):
            fault_store.add_record(make_op5(status=FaultStatus.RESOLVED, restoration_date=T0 - timedelta(hours=1)))

    def test_add_record_rejects_negative_population(self, grid, make_outage):
        with pytest.raises(InvalidDataError) as exc:
            fault_store.add_record(make_outage(customers_affected=PopulationCounts(urban=-5)))
        assert "customers_affected" in exc.value.details

    def test_add_record_rejects_unknown_district(self, grid, make_op5):
        with pytest.raises(InvalidDataError) as exc:
            fault_store.add_record(make_op5(district_id="d-missing"))
        assert exc.value.details["district_id"] == "unknown district"

    def test_database_rejects_resolved_without_restoration(self, grid, make_op5):
        db.session.add(FaultRecordRow.from_record(make_op5(status=FaultStatus.RESOLVED)))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_get_missing_record(self, grid):
        with pytest.raises(NotFoundError):
            fault_store.get_record("nope")

    def test_duplicate_insert_is_conflict(self, stored, make_op5):
        with pytest.raises(ConflictError):
            fault_store.add_record(make_op5())

    def test_list_records_filters(self, stored):
        assert [r.id for r in fault_store.list_records(kind="control")] == ["ctl-1"]
        assert fault_store.list_records(status="resolved") == []
        assert len(fault_store.list_records()) == 2

    def test_commit_bumps_version(self, stored):
        record = fault_store.get_record("op5-1")
        committed = fault_store.commit("op5-1", fault_lifecycle.resolve(ADMIN, record, stored, now=T0))
        assert committed.version == 2
        assert fault_store.get_record("op5-1").version == 2

    def test_stale_commit_is_conflict(self, stored):
        stale = fault_store.get_record("op5-1")
        fault_service.resolve(DISTRICT_LEGON, "op5-1", now=T0 + timedelta(hours=1))

        late = fault_lifecycle.resolve(ADMIN, stale, stored, now=T0 + timedelta(hours=2))
        with pytest.raises(ConflictError) as exc:
            fault_store.commit("op5-1", late)
        assert exc.value.expected_version == 1

        # first writer wins
        current = fault_store.get_record("op5-1")
        assert current.restoration_date == T0 + timedelta(hours=1)
        assert current.version == 2

    def test_commit_missing_record(self, stored, make_op5):
        with pytest.raises(NotFoundError):
            fault_store.commit("op5-9", make_op5(id="op5-9"))

    def test_remove_with_stale_version(self, stored):
        fault_service.edit(ADMIN, "op5-1", {"mttr": 2})
        with pytest.raises(ConflictError):
            fault_store.remove("op5-1", expected_version=1)
        assert fault_store.get_record("op5-1").mttr == 2

    def test_reference_index(self, stored):
        assert stored.region_of(fault_store.get_record("ctl-1")) == "Ashanti"
        assert {d.name for d in fault_store.list_districts()} == {"Legon", "Tema", "Kumasi"}


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class TestServiceResolve:
    def test_resolve_then_resolve_again(self, stored):
        first = fault_service.resolve(DISTRICT_LEGON, "op5-1", now=T0 + timedelta(hours=3))
        assert first.status == FaultStatus.RESOLVED
        assert first.version == 2

        with pytest.raises(InvalidStateError):
            fault_service.resolve(DISTRICT_LEGON, "op5-1")

    def test_resolve_out_of_scope(self, stored):
        with pytest.raises(UnauthorizedError):
            fault_service.resolve(DISTRICT_TEMA, "op5-1")
        assert fault_store.get_record("op5-1").status == FaultStatus.ACTIVE

    def test_resolve_missing(self, stored):
        with pytest.raises(NotFoundError):
            fault_service.resolve(ADMIN, "nope")


class TestServiceEdit:
    def test_edit_persists(self, stored):
        updated = fault_service.edit(DISTRICT_LEGON, "op5-1", {"fault_location": "Pole 7"})
        assert updated.version == 2
        assert fault_store.get_record("op5-1").fault_location == "Pole 7"

    def test_invalid_edit_is_not_persisted(self, stored):
        with pytest.raises(InvalidDataError):
            fault_service.edit(ADMIN, "ctl-1", {"load_mw": -1})
        assert fault_store.get_record("ctl-1").load_mw == 12.5
        assert fault_store.get_record("ctl-1").version == 1

    def test_edit_resolved_record(self, stored):
        fault_service.resolve(ADMIN, "ctl-1", now=T0 + timedelta(hours=1))
        updated = fault_service.edit(ADMIN, "ctl-1", {"unserved_energy_mwh": 11.0})
        assert updated.status == FaultStatus.RESOLVED
        assert updated.version == 3


class TestServiceDelete:
    def test_delete_removes_record(self, stored):
        fault_service.delete(DISTRICT_LEGON, "op5-1")
        with pytest.raises(NotFoundError):
            fault_store.get_record("op5-1")

    def test_technician_cannot_delete(self, stored):
        with pytest.raises(UnauthorizedError):
            fault_service.delete(TECH_LEGON, "op5-1")
        assert fault_store.get_record("op5-1")


class TestServiceViews:
    def test_permissions_snapshot(self, stored):
        assert fault_service.evaluate_permissions(TECH_LEGON, "op5-1") == {
            "can_view": True,
            "can_edit": False,
            "can_resolve": False,
            "can_delete": False,
        }

    def test_permissions_hidden_outside_view_scope(self, stored):
        with pytest.raises(NotFoundError):
            fault_service.evaluate_permissions(DISTRICT_LEGON, "ctl-1")
        with pytest.raises(NotFoundError):
            fault_service.evaluate_permissions(None, "op5-1")

    def test_visible_record_is_described(self, stored):
        data = fault_service.get_visible(DISTRICT_LEGON, "op5-1")
        assert data["region_name"] == "Accra East"
        assert data["district_name"] == "Legon"
        assert data["available_actions"] == ["resolve", "edit", "delete"]
        assert data["metrics"]["total_affected"] == 15

    def test_out_of_view_scope_reads_as_not_found(self, stored):
        with pytest.raises(NotFoundError):
            fault_service.get_visible(DISTRICT_LEGON, "ctl-1")

    def test_fault_metrics_view_gated(self, stored):
        fault_service.resolve(ADMIN, "ctl-1", now=T0 + timedelta(hours=2))
        metrics = fault_service.fault_metrics(REGIONAL_ASHANTI, "ctl-1")
        assert metrics["duration_hours"] == 2.0
        assert metrics["unserved_energy_mwh"] == 25.0
        with pytest.raises(NotFoundError):
            fault_service.fault_metrics(TECH_LEGON, "ctl-1")

    def test_list_visible_filters_by_scope(self, stored):
        assert [r["id"] for r in fault_service.list_visible(DISTRICT_LEGON)] == ["op5-1"]
        assert len(fault_service.list_visible(ADMIN)) == 2
        assert fault_service.list_visible(None) == []

    def test_menu_default_analytics_prefix(self, stored):
        assert not fault_service.menu_visible(TECH_LEGON, "district_engineer", "/analytics/x")
        assert fault_service.menu_visible(TECH_LEGON, "district_engineer", "/asset-management/x")
        keys = [item["key"] for item in fault_service.visible_menu(TECH_LEGON, "/faults")]
        assert keys == ["analytics", "asset_management"]

    def test_menu_uses_configured_analytics_prefix(self, app, monkeypatch, stored):
        monkeypatch.setitem(app.config, "ANALYTICS_PATH_PREFIX", "/reports")
        assert fault_service.menu_visible(TECH_LEGON, "district_engineer", "/analytics/x")
        assert not fault_service.menu_visible(TECH_LEGON, "district_engineer", "/reports/q1")
        assert fault_service.visible_menu(TECH_LEGON, "/reports") == []


# ═════════════════════════════════════════════════════════════════════════════
# Reference loader
# ═════════════════════════════════════════════════════════════════════════════

REFERENCE = {
    "regions": [
        {"id": "r-ae", "name": "Accra East", "districts": [
            {"id": "d-legon", "name": "Legon"},
            {"id": "d-tema", "name": "Tema"},
        ]},
        {"id": "r-ash", "name": "Ashanti", "districts": [{"id": "d-kumasi", "name": "Kumasi"}]},
    ],
}


class TestReferenceLoader:
    def test_seed_is_idempotent(self):
        assert seed_reference_data(REFERENCE) == (2, 3)
        assert seed_reference_data(REFERENCE) == (0, 0)
        assert len(fault_store.list_regions()) == 2

    def test_rejects_bad_shape(self):
        with pytest.raises(InvalidDataError):
            seed_reference_data({"regions": "Accra"})
        with pytest.raises(InvalidDataError):
            seed_reference_data({"regions": [{"id": "r-x"}]})

    def test_invalid_entry_rolls_back_earlier_regions(self):
        data = {"regions": [REFERENCE["regions"][0], {"id": "r-x"}]}
        with pytest.raises(InvalidDataError):
            seed_reference_data(data)
        assert fault_store.list_regions() == set()
        assert fault_store.list_districts() == set()

    def test_non_object_entries_rejected(self):
        with pytest.raises(InvalidDataError):
            seed_reference_data({"regions": ["Accra East"]})
        with pytest.raises(InvalidDataError):
            seed_reference_data({"regions": [{"id": "r-x", "name": "X", "districts": ["Legon"]}]})

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "reference.json"
        path.write_text(json.dumps(REFERENCE), encoding="utf-8")
        assert load_reference_file(str(path)) == (2, 3)
        assert fault_store.reference_index().district_in_region("d-tema", "r-ae")
