"""
Shared pytest fixtures for the Grid Fault Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - refs: in-memory ReferenceIndex (no DB) for pure engine tests
    - grid: the same regions/districts persisted through the store
    - make_op5 / make_outage: fault snapshot factories
    - auth_headers: Bearer headers for a given User
"""

from datetime import datetime, timezone

import pytest

from gridfault import create_app
from gridfault.core.domain import (
    ControlSystemOutage,
    District,
    OP5Fault,
    PopulationCounts,
    Region,
    User,
)
from gridfault.models import db as _db
from gridfault.services import fault_store
from gridfault.services.scope_matcher import ReferenceIndex


T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

REGIONS = [
    Region(id="r-ae", name="Accra East"),
    Region(id="r-ash", name="Ashanti"),
]

DISTRICTS = [
    District(id="d-legon", name="Legon", region_id="r-ae"),
    District(id="d-tema", name="Tema", region_id="r-ae"),
    District(id="d-kumasi", name="Kumasi", region_id="r-ash"),
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def refs():
    return ReferenceIndex(REGIONS, DISTRICTS)


@pytest.fixture()
def grid():
    """Persist the reference regions/districts and return a fresh index."""
    for region in REGIONS:
        fault_store.add_region(region)
    for district in DISTRICTS:
        fault_store.add_district(district)
    return fault_store.reference_index()


def _op5(**overrides) -> OP5Fault:
    values = {
        "id": "op5-1",
        "region_id": "r-ae",
        "district_id": "d-legon",
        "fault_type": "Unplanned",
        "occurrence_date": T0,
        "fault_location": "Legon substation feeder 3",
        "affected_population": PopulationCounts(rural=10, urban=5, metro=0),
    }
    values.update(overrides)
    return OP5Fault(**values)


def _outage(**overrides) -> ControlSystemOutage:
    values = {
        "id": "ctl-1",
        "region_id": "r-ash",
        "district_id": "d-kumasi",
        "fault_type": "Load Shedding",
        "occurrence_date": T0,
        "load_mw": 12.5,
        "reason": "Generation shortfall",
        "customers_affected": PopulationCounts(rural=100, urban=250, metro=50),
    }
    values.update(overrides)
    return ControlSystemOutage(**values)


@pytest.fixture()
def make_op5():
    return _op5


@pytest.fixture()
def make_outage():
    return _outage


# ── Auth ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers(app):
    """Return a callable: auth_headers(user) -> request headers with a Bearer token."""
    from gridfault.services.jwt_service import generate_access_token

    def _headers(user: User) -> dict:
        with app.app_context():
            token = generate_access_token(user)
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    return _headers
