"""
Integration tests for the dose recording workflow
"""

import pytest
from datetime import datetime

from immunotrack.engine import ImmunizationEngine
from immunotrack.errors import ChildNotFoundError, InvalidTransitionError, VaccineNotFoundError
from immunotrack.models import Child as ChildModel, Vaccine as VaccineModel
from immunotrack.schemas import (
    Allowed, DoseApplication, DoseWarning, Notification, NotificationPriority,
    NotificationState, NotificationType, ReactionSeverity, Rejected,
    RejectionReason, ScheduleStatus
)
from immunotrack.services.repository import ImmunizationRepository
from immunotrack.services.vaccination import VaccinationService

from conftest import BIRTH_DATE, day


@pytest.fixture
def repository(session):
    # Off-schedule vaccine stored next to the national ones
    session.add(VaccineModel(code="TIFO", name="Fiebre Tifoidea", total_doses=1))
    session.commit()
    repo = ImmunizationRepository(session)
    repo.seed_national_schedule()
    return repo


@pytest.fixture
def engine(repository):
    return ImmunizationEngine(repository.load_catalog())


@pytest.fixture
def service(repository, engine):
    return VaccinationService(repository, engine)


@pytest.fixture
def child_id(session):
    row = ChildModel(birth_date=BIRTH_DATE, first_name="Ana")
    session.add(row)
    session.commit()
    return row.id


@pytest.fixture
def codes(engine):
    return {v.code: v.id for v in engine.catalog.vaccines(include_inactive=True)}


def application(child_id, vaccine_id, dose, on):
    return DoseApplication(child_id=child_id, vaccine_id=vaccine_id, dose_number=dose, application_date=on)


class TestRecordDose:
    """Test validate-then-persist"""

    def test_allowed_dose_is_stored(self, service, repository, child_id, codes):
        result = service.record_dose(application(child_id, codes["BCG"], 1, day(0)), reference_date=day(5))

        assert isinstance(result.decision, Allowed)
        assert result.recorded
        assert result.record.id is not None
        assert len(repository.records_for_child(child_id)) == 1
        assert result.upcoming

    def test_rejected_dose_is_not_stored(self, service, repository, child_id, codes):
        result = service.record_dose(application(child_id, codes["PENTA"], 2, day(120)), reference_date=day(130))

        assert isinstance(result.decision, Rejected)
        assert result.decision.reason == RejectionReason.PREVIOUS_DOSE_MISSING
        assert not result.recorded
        assert repository.records_for_child(child_id) == []

    def test_warning_needs_override(self, service, repository, child_id, codes):
        """Test an off-schedule vaccine is only stored when overridden"""
        held = service.record_dose(application(child_id, codes["TIFO"], 1, day(400)), reference_date=day(410))
        assert isinstance(held.decision, DoseWarning)
        assert not held.recorded

        stored = service.record_dose(
            application(child_id, codes["TIFO"], 1, day(400)), override_warning=True, reference_date=day(410)
        )
        assert isinstance(stored.decision, DoseWarning)
        assert stored.recorded

    def test_matching_reminder_consumed(self, service, repository, child_id, codes):
        penta = codes["PENTA"]
        repository.add_notifications([
            Notification(
                child_id=child_id, vaccine_id=penta, dose_number=1,
                type=NotificationType.DOSE_REMINDER, priority=NotificationPriority.HIGH,
                scheduled_date=day(46), expiration_date=day(90), created_at=datetime(2024, 2, 16)
            ),
            Notification(
                child_id=child_id, vaccine_id=penta, dose_number=2,
                type=NotificationType.DOSE_REMINDER, priority=NotificationPriority.LOW,
                scheduled_date=day(106), expiration_date=day(150), created_at=datetime(2024, 2, 16)
            ),
        ])
        repository.commit()

        result = service.record_dose(application(child_id, penta, 1, day(60)), reference_date=day(61))

        assert result.consumed_notifications == 1
        pending = repository.notifications_for_child(child_id, state=NotificationState.PENDING)
        assert [n.dose_number for n in pending] == [2]

    def test_concurrent_duplicate_becomes_rejection(self, service, repository, child_id, codes, monkeypatch):
        """Test the storage constraint catches a dose recorded after the history snapshot"""
        service.record_dose(application(child_id, codes["BCG"], 1, day(0)), reference_date=day(5))
        monkeypatch.setattr(repository, "records_for_child", lambda child_id: [])

        result = service.record_dose(application(child_id, codes["BCG"], 1, day(1)), reference_date=day(5))

        assert isinstance(result.decision, Rejected)
        assert result.decision.reason == RejectionReason.DOSE_ALREADY_APPLIED

    def test_unknown_child(self, service, codes):
        with pytest.raises(ChildNotFoundError):
            service.record_dose(application(9999, codes["BCG"], 1, day(0)), reference_date=day(5))

    def test_unknown_vaccine(self, service, child_id):
        with pytest.raises(VaccineNotFoundError):
            service.record_dose(application(child_id, 9999, 1, day(0)), reference_date=day(5))


class TestReactions:
    """Test adverse reaction reports"""

    def test_severe_reaction_alerts(self, service, repository, child_id, codes):
        stored = service.record_dose(application(child_id, codes["BCG"], 1, day(0)), reference_date=day(5)).record

        result = service.report_reaction(stored.id, ReactionSeverity.SEVERE, "Absceso", reference_date=day(6))

        assert result.record.reaction_severity == ReactionSeverity.SEVERE
        assert result.alert is not None and result.alert.id is not None
        alerts = repository.notifications_for_child(child_id, type=NotificationType.ADVERSE_REACTION)
        assert len(alerts) == 1

    def test_mild_reaction_is_only_recorded(self, service, repository, child_id, codes):
        stored = service.record_dose(application(child_id, codes["BCG"], 1, day(0)), reference_date=day(5)).record

        result = service.report_reaction(stored.id, ReactionSeverity.MILD, reference_date=day(6))

        assert result.alert is None
        assert repository.get_record(stored.id).reaction_severity == ReactionSeverity.MILD


class TestHistoryAndReads:
    """Test history views and notification reads"""

    def test_vaccination_history(self, service, child_id, codes):
        service.record_dose(application(child_id, codes["BCG"], 1, day(0)), reference_date=day(5))
        history = service.vaccination_history(child_id, day(61))

        assert len(history.applied) == 1
        assert history.status.status == ScheduleStatus.ATRASADO
        assert "BCG" not in [p.vaccine_code for p in history.pending]

    def test_mark_read_once(self, service, repository, child_id):
        stored = repository.add_notifications([Notification(
            child_id=child_id, type=NotificationType.BIRTHDAY, priority=NotificationPriority.NORMAL,
            scheduled_date=day(366), created_at=datetime(2024, 12, 30)
        )])[0]
        repository.commit()

        read = service.mark_notification_read(stored.id, datetime(2024, 12, 31, 9))
        assert read.state == NotificationState.READ
        with pytest.raises(InvalidTransitionError):
            service.mark_notification_read(stored.id)
