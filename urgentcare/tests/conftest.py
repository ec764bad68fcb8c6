import os
import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure tests use an in-memory SQLite DB and a fixed signing key
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("FIELD_ENCRYPTION_KEYS", "test-field-key")

# Ensure the project root is on sys.path so `import urgentcare` works when running
# pytest from the repository root.
ROOT_DIR = Path(__file__).resolve().parents[2]  # repository root
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from urgentcare.app import app  # noqa: E402
from urgentcare.auth.jwt import create_access_token  # noqa: E402
from urgentcare.auth.schemas import Principal, Role  # noqa: E402
from urgentcare.db.session import Base, get_db  # noqa: E402
from urgentcare.models.catalog import ServiceType, Symptom  # noqa: E402
from urgentcare.services.change_feed import ChangeFeed  # noqa: E402
from urgentcare.services.lifecycle import LifecycleEngine  # noqa: E402
from urgentcare.schemas.care_requests import CareRequestCreate  # noqa: E402
from urgentcare.utils.rate_limit import limiter  # noqa: E402

PATIENT = Principal(id="patient-1", role=Role.PATIENT)
OTHER_PATIENT = Principal(id="patient-2", role=Role.PATIENT)
PROVIDER = Principal(id="provider-1", role=Role.PROVIDER)
OTHER_PROVIDER = Principal(id="provider-2", role=Role.PROVIDER)
ADMIN = Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def engine():
    # In-memory SQLite shared across connections, fresh per test
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed():
    f = ChangeFeed()
    app.state.change_feed = f
    return f


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    # ensure limiter state fresh each test
    limiter.reset()
    yield


@pytest.fixture
def client(session_factory, feed):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def lifecycle(db, feed):
    return LifecycleEngine(db, feed)


def auth_headers(principal: Principal) -> dict:
    token = create_access_token(principal.id, principal.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def catalog(db):
    """One active and one retired service type, plus three symptoms."""
    house_call = ServiceType(name="Urgent care house call", base_price=Decimal("100.00"), duration_minutes=60)
    retired = ServiceType(name="Retired service", base_price=Decimal("10.00"), is_active=False)
    fever = Symptom(name="Fever", category="general", severity_weight=2)
    cough = Symptom(name="Cough", category="respiratory")
    chest_pain = Symptom(name="Chest pain", category="cardiac", severity_weight=5, requires_immediate_care=True)
    db.add_all([house_call, retired, fever, cough, chest_pain])
    db.commit()
    return SimpleNamespace(
        service_type_id=house_call.id,
        retired_service_type_id=retired.id,
        fever_id=fever.id,
        cough_id=cough.id,
        chest_pain_id=chest_pain.id,
    )


def request_payload(catalog, patients=None, donation="0", notes=None) -> dict:
    if patients is None:
        patients = [
            {
                "name": "Sam Rivera",
                "relationship": "self",
                "date_of_birth": "1990-04-02",
                "symptoms": [{"symptom_id": catalog.fever_id, "severity": 5, "duration": "2 days"}],
            }
        ]
    body = {
        "service_type_id": catalog.service_type_id,
        "location": {
            "address_line1": "12 Harbor St",
            "city": "Portland",
            "state": "OR",
            "zip_code": "97201",
            "latitude": 45.52,
            "longitude": -122.68,
        },
        "case_patients": patients,
        "donation_amount": donation,
    }
    if notes is not None:
        body["patient_notes"] = notes
    return body


@pytest.fixture
def submit(lifecycle, catalog):
    """Create a request through the lifecycle engine and return its id."""

    def _submit(principal: Principal = PATIENT, **kwargs) -> str:
        payload = CareRequestCreate.model_validate(request_payload(catalog, **kwargs))
        return lifecycle.submit(principal, payload).unwrap().id

    return _submit


def pytest_configure(config):
    """Allow overriding the coverage floor via environment variable for local runs.

    Example:
      PYTEST_COV_FAIL_UNDER=0 pytest --cov=urgentcare
    """
    env_floor = os.getenv("PYTEST_COV_FAIL_UNDER") or os.getenv("COV_FAIL_UNDER")
    if env_floor is not None and hasattr(config.option, "cov_fail_under"):
        try:
            config.option.cov_fail_under = float(env_floor)
        except ValueError:
            # ignore invalid values; keep existing floor
            pass
