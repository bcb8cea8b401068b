"""
Integration tests for the repository on an in-memory database
"""

import pytest
from datetime import date, datetime
from unittest.mock import MagicMock
from sqlalchemy.exc import IntegrityError

from immunotrack.errors import (
    ChildNotFoundError, NotificationNotFoundError, RecordNotFoundError,
    VaccineNotFoundError
)
from immunotrack.models import Child as ChildModel, Vaccine as VaccineModel
from immunotrack.modules.catalog import NATIONAL_SCHEDULE, NATIONAL_VACCINES
from immunotrack.modules.notifications import expire
from immunotrack.schemas import (
    Notification, NotificationPriority, NotificationState, NotificationType,
    ReactionSeverity, VaccinationRecord
)
from immunotrack.services.repository import DAILY_PASS_LOCK_KEY, ImmunizationRepository

from conftest import BIRTH_DATE, day


@pytest.fixture
def repository(session):
    repo = ImmunizationRepository(session)
    repo.seed_national_schedule()
    return repo


@pytest.fixture
def child_id(session):
    row = ChildModel(birth_date=BIRTH_DATE, first_name="Ana", last_name="Pérez")
    session.add(row)
    session.commit()
    return row.id


def vaccine_id(repository, code):
    return next(v.id for v in repository.load_catalog().vaccines(include_inactive=True) if v.code == code)


def reminder(child_id, vaccine_id, dose=1, **kwargs):
    values = dict(
        child_id=child_id,
        vaccine_id=vaccine_id,
        dose_number=dose,
        type=NotificationType.DOSE_REMINDER,
        priority=NotificationPriority.HIGH,
        scheduled_date=day(46),
        expiration_date=day(90),
        created_at=datetime(2024, 2, 20),
    )
    values.update(kwargs)
    return Notification(**values)


class TestSeeding:
    """Test national schedule seeding"""

    def test_seed_loads_full_catalog(self, repository):
        catalog = repository.load_catalog()
        assert len(catalog) == len(NATIONAL_SCHEDULE)
        assert len(catalog.vaccines()) == len(NATIONAL_VACCINES)

    def test_seed_is_idempotent(self, repository):
        assert repository.seed_national_schedule() == {"vaccines": 0, "entries": 0}
        assert len(repository.load_catalog()) == len(NATIONAL_SCHEDULE)

    def test_seed_resolves_ids_by_code(self, session):
        """Test entries follow vaccines already stored under other ids"""
        session.add(VaccineModel(code="ZZZ", name="Local", total_doses=1))
        session.add(VaccineModel(code="BCG", name="BCG", total_doses=1))
        session.commit()

        repository = ImmunizationRepository(session)
        counts = repository.seed_national_schedule()
        catalog = repository.load_catalog()

        bcg = next(v for v in catalog.vaccines() if v.code == "BCG")
        assert counts["vaccines"] == len(NATIONAL_VACCINES) - 1
        assert catalog.entry(bcg.id, 1) is not None


class TestLookups:
    """Test entity lookups and not-found conditions"""

    def test_get_child(self, repository, child_id):
        child = repository.get_child(child_id)
        assert child.birth_date == BIRTH_DATE
        assert child.display_name == "Ana Pérez"

    @pytest.mark.parametrize("method,error", [
        ("get_child", ChildNotFoundError),
        ("get_vaccine", VaccineNotFoundError),
        ("get_record", RecordNotFoundError),
        ("get_notification", NotificationNotFoundError),
    ])
    def test_unknown_ids(self, repository, method, error):
        with pytest.raises(error):
            getattr(repository, method)(9999)

    def test_child_with_history(self, repository, child_id):
        bcg = vaccine_id(repository, "BCG")
        repository.add_record(VaccinationRecord(
            child_id=child_id, vaccine_id=bcg, dose_number=1, application_date=day(0), lot="L-1"
        ))
        repository.commit()

        bundle = repository.get_child_with_history(child_id)
        assert len(bundle.records) == 1
        assert bundle.records[0].lot == "L-1"

    def test_active_children_only(self, repository, session, child_id):
        session.add(ChildModel(birth_date=date(2023, 5, 5), is_active=False))
        session.commit()

        bundles = repository.active_children_with_history()
        assert [b.child.id for b in bundles] == [child_id]


class TestWrites:
    """Test record and notification persistence"""

    def test_duplicate_record_violates_constraint(self, repository, child_id):
        bcg = vaccine_id(repository, "BCG")
        dose = VaccinationRecord(child_id=child_id, vaccine_id=bcg, dose_number=1, application_date=day(0))
        repository.add_record(dose)
        with pytest.raises(IntegrityError):
            repository.add_record(dose)

    def test_attach_reaction(self, repository, child_id):
        bcg = vaccine_id(repository, "BCG")
        stored = repository.add_record(VaccinationRecord(
            child_id=child_id, vaccine_id=bcg, dose_number=1, application_date=day(0)
        ))
        updated = repository.attach_reaction(stored.id, ReactionSeverity.SEVERE, "Absceso")

        assert updated.reaction_severity == ReactionSeverity.SEVERE
        assert repository.get_record(stored.id).reaction_description == "Absceso"

    def test_notifications_round_trip_and_filter(self, repository, child_id):
        penta = vaccine_id(repository, "PENTA")
        stored = repository.add_notifications([
            reminder(child_id, penta),
            reminder(child_id, None, dose=None, type=NotificationType.BIRTHDAY,
                     priority=NotificationPriority.NORMAL),
        ])
        repository.commit()

        assert all(n.id is not None for n in stored)
        reminders = repository.notifications_for_child(child_id, type=NotificationType.DOSE_REMINDER)
        assert [n.vaccine_id for n in reminders] == [penta]
        assert len(repository.all_notifications()) == 2

    def test_apply_transitions(self, repository, child_id):
        penta = vaccine_id(repository, "PENTA")
        stored = repository.add_notifications([reminder(child_id, penta)])
        repository.apply_transitions([expire(stored[0])])
        repository.commit()

        assert repository.notifications_for_child(child_id, state=NotificationState.PENDING) == []
        assert repository.get_notification(stored[0].id).state == NotificationState.EXPIRED

    def test_apply_transition_unknown_notification(self, repository, child_id):
        with pytest.raises(NotificationNotFoundError):
            repository.apply_transitions([expire(reminder(child_id, None, id=4242))])


class TestDailyPassLock:
    """Test daily pass serialization"""

    def test_no_lock_on_sqlite(self, repository):
        assert repository.lock_daily_pass() is False

    def test_advisory_lock_on_postgres(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"

        assert ImmunizationRepository(session).lock_daily_pass() is True
        statement, params = session.execute.call_args.args
        assert "pg_advisory_xact_lock" in str(statement)
        assert params == {"key": DAILY_PASS_LOCK_KEY}
