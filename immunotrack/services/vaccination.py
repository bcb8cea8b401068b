"""
ImmunoTrack - Vaccination Service
Dose recording workflow, adverse reaction reports and history views
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from immunotrack.engine import ImmunizationEngine
from immunotrack.modules.notifications import mark_read
from immunotrack.services.repository import ImmunizationRepository
from immunotrack.schemas import (
    DoseApplication, DoseWarning, Notification, NotificationState,
    ReactionResult, ReactionSeverity, RecordingResult, Rejected,
    RejectionReason, VaccinationHistory, VaccinationRecord
)

logger = logging.getLogger(__name__)


class VaccinationService:
    """Applies engine decisions through the repository, one unit of work per call"""

    def __init__(self, repository: ImmunizationRepository, engine: ImmunizationEngine):
        self.repository = repository
        self.engine = engine

    def validate(self, application: DoseApplication, reference_date: Optional[date] = None):
        """Eligibility decision for a proposed dose, without recording it"""
        reference_date = reference_date or date.today()
        child = self.repository.get_child(application.child_id)
        vaccine = self.engine.catalog.vaccine(application.vaccine_id)
        history = self.repository.records_for_child(child.id)
        return self.engine.validator.validate_dose(
            child, vaccine, application.dose_number, application.application_date,
            history, reference_date
        )

    def record_dose(
        self,
        application: DoseApplication,
        override_warning: bool = False,
        reference_date: Optional[date] = None
    ) -> RecordingResult:
        """
        Validate and record a dose

        Matching pending reminders and overdue alerts are expired once the
        dose is stored.

        Args:
            application: Dose to record
            override_warning: Record even when validation returned a warning
            reference_date: "Today" (defaults to the current date)

        Returns:
            Decision, stored record (if any) and the child's upcoming doses

        Raises:
            ChildNotFoundError: Unknown child
            VaccineNotFoundError: Unknown vaccine
        """
        reference_date = reference_date or date.today()
        child = self.repository.get_child(application.child_id)
        vaccine = self.engine.catalog.vaccine(application.vaccine_id)
        history = self.repository.records_for_child(child.id)

        decision = self.engine.validator.validate_dose(
            child, vaccine, application.dose_number, application.application_date,
            history, reference_date
        )
        if isinstance(decision, Rejected):
            return RecordingResult(decision=decision)
        if isinstance(decision, DoseWarning) and not override_warning:
            logger.info(f"Dose for child {child.id} held back: {decision.reason.value} not overridden")
            return RecordingResult(decision=decision)

        try:
            record = self.repository.add_record(VaccinationRecord(
                child_id=child.id,
                vaccine_id=vaccine.id,
                dose_number=application.dose_number,
                application_date=application.application_date,
                health_center_id=application.health_center_id,
                professional_id=application.professional_id,
                lot=application.lot,
                notes=application.notes
            ))
        except IntegrityError:
            # Another writer stored the same dose after our history snapshot
            self.repository.rollback()
            logger.warning(
                f"Concurrent recording of child {child.id} vaccine {vaccine.code} "
                f"dose {application.dose_number}"
            )
            return RecordingResult(decision=Rejected(
                reason=RejectionReason.DOSE_ALREADY_APPLIED,
                message=f"Dose {application.dose_number} of {vaccine.name} has already been applied"
            ))

        consumed = self.engine.scheduler.consume_for_dose(
            self.repository.notifications_for_child(child.id, state=NotificationState.PENDING),
            child.id,
            vaccine.id,
            application.dose_number
        )
        self.repository.apply_transitions(consumed)
        self.repository.commit()

        logger.info(
            f"✓ Recorded {vaccine.code} dose {application.dose_number} for child {child.id} "
            f"({len(consumed)} notification(s) consumed)"
        )
        return RecordingResult(
            decision=decision,
            record=record,
            consumed_notifications=len(consumed),
            upcoming=self.engine.projector.upcoming_doses(child, history + [record], reference_date)
        )

    def report_reaction(
        self,
        record_id: int,
        severity: ReactionSeverity,
        description: Optional[str] = None,
        reference_date: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> ReactionResult:
        """
        Attach an adverse reaction to a recorded dose

        Reactions at or above the configured threshold also store an urgent
        ADVERSE_REACTION notification.
        """
        reference_date = reference_date or date.today()
        record = self.repository.attach_reaction(record_id, severity, description)
        child = self.repository.get_child(record.child_id)
        vaccine = self.engine.catalog.vaccine(record.vaccine_id)

        alert = self.engine.scheduler.adverse_reaction_alert(child, vaccine, record, reference_date, now)
        if alert is not None:
            alert = self.repository.add_notifications([alert])[0]
        self.repository.commit()
        return ReactionResult(record=record, alert=alert)

    def vaccination_history(self, child_id: int, reference_date: Optional[date] = None) -> VaccinationHistory:
        bundle = self.repository.get_child_with_history(child_id)
        return self.engine.projector.history_summary(bundle, reference_date or date.today())

    def mark_notification_read(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        """
        Raises:
            NotificationNotFoundError: Unknown notification
            InvalidTransitionError: Notification is already read or expired
        """
        notification = mark_read(self.repository.get_notification(notification_id), now or datetime.now())
        self.repository.apply_transitions([notification])
        self.repository.commit()
        return notification
