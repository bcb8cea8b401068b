"""
Shared fixtures for ImmunoTrack tests
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from immunotrack.config import ScheduleTunables
from immunotrack.engine import ImmunizationEngine
from immunotrack.models import Base
from immunotrack.modules.catalog import ScheduleCatalog, build_national_catalog
from immunotrack.schemas import Child, ScheduleEntry, Vaccine, VaccinationRecord


BIRTH_DATE = date(2024, 1, 1)

BCG_ID = 1
PENTA_ID = 6
TRAVEL_ID = 20
RETIRED_ID = 21


def day(n: int, birth_date: date = BIRTH_DATE) -> date:
    """Date at which a child born on birth_date is n days old"""
    return birth_date + timedelta(days=n)


def record(vaccine_id: int, dose: int, on: date, child_id: int = 1, **kwargs) -> VaccinationRecord:
    return VaccinationRecord(
        child_id=child_id,
        vaccine_id=vaccine_id,
        dose_number=dose,
        application_date=on,
        **kwargs
    )


@pytest.fixture
def tunables():
    return ScheduleTunables()


@pytest.fixture
def bcg():
    return Vaccine(id=BCG_ID, code="BCG", name="BCG", total_doses=1)


@pytest.fixture
def penta():
    return Vaccine(id=PENTA_ID, code="PENTA", name="Pentavalente", total_doses=3)


@pytest.fixture
def travel_vaccine():
    """Vaccine without any schedule entry"""
    return Vaccine(id=TRAVEL_ID, code="TIFO", name="Fiebre Tifoidea", total_doses=1)


@pytest.fixture
def retired_vaccine():
    return Vaccine(id=RETIRED_ID, code="OLD", name="Retirada", total_doses=1, active=False)


@pytest.fixture
def small_catalog(bcg, penta, travel_vaccine, retired_vaccine, tunables):
    """BCG at birth and Pentavalente at 2, 4 and 6 months"""
    entries = [
        ScheduleEntry(vaccine_id=BCG_ID, dose_number=1, target_age_days=0),
        ScheduleEntry(vaccine_id=PENTA_ID, dose_number=1, target_age_days=60),
        ScheduleEntry(vaccine_id=PENTA_ID, dose_number=2, target_age_days=120, min_interval_days=28),
        ScheduleEntry(vaccine_id=PENTA_ID, dose_number=3, target_age_days=180, min_interval_days=28),
        ScheduleEntry(vaccine_id=RETIRED_ID, dose_number=1, target_age_days=30),
    ]
    return ScheduleCatalog([bcg, penta, travel_vaccine, retired_vaccine], entries, tunables)


@pytest.fixture
def national_catalog(tunables):
    return build_national_catalog(tunables)


@pytest.fixture
def small_engine(small_catalog):
    return ImmunizationEngine(small_catalog)


@pytest.fixture
def national_engine(national_catalog):
    return ImmunizationEngine(national_catalog)


@pytest.fixture
def child():
    return Child(id=1, birth_date=BIRTH_DATE, first_name="Ana", last_name="Pérez")


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads for the test client"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session
