"""
ImmunoTrack Notification Scheduler
Turns projections and life events into deduplicated notification decisions
"""

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Set

from immunotrack.errors import InvalidTransitionError
from immunotrack.modules.dates import (
    add_days, age_in_years, days_between, next_birthday, require_date
)
from immunotrack.modules.projection import ScheduleProjector
from immunotrack.schemas import (
    Child, ChildWithHistory, DailyPassResult, DailyPassSummary, Notification,
    NotificationPriority, NotificationState, NotificationStatistics,
    NotificationType, Urgency, Vaccine, VaccinationRecord
)

logger = logging.getLogger(__name__)


URGENCY_PRIORITY: Dict[Urgency, NotificationPriority] = {
    Urgency.OVERDUE: NotificationPriority.URGENT,
    Urgency.URGENT: NotificationPriority.URGENT,
    Urgency.HIGH: NotificationPriority.HIGH,
    Urgency.NORMAL: NotificationPriority.NORMAL,
    Urgency.LOW: NotificationPriority.LOW,
}

ALLOWED_TRANSITIONS: Dict[NotificationState, Set[NotificationState]] = {
    NotificationState.PENDING: {NotificationState.SENT, NotificationState.READ, NotificationState.EXPIRED},
    NotificationState.SENT: {NotificationState.READ},
    NotificationState.READ: set(),
    NotificationState.EXPIRED: set(),
}


# =============================================================================
# State Transitions
# =============================================================================

def transition(notification: Notification, target: NotificationState, at: Optional[datetime] = None) -> Notification:
    """
    Return a copy of the notification moved to the target state

    Args:
        notification: Notification to transition
        target: Desired state
        at: Timestamp stored as sent_at/read_at

    Returns:
        Transitioned copy

    Raises:
        InvalidTransitionError: If the lifecycle does not allow the move
    """
    if target not in ALLOWED_TRANSITIONS[notification.state]:
        raise InvalidTransitionError(
            f"Notification {notification.id} cannot go from "
            f"{notification.state.value} to {target.value}"
        )
    update = {"state": target}
    if target == NotificationState.SENT:
        update["sent_at"] = at
    elif target == NotificationState.READ:
        update["read_at"] = at
    return notification.model_copy(update=update)


def mark_sent(notification: Notification, at: datetime) -> Notification:
    return transition(notification, NotificationState.SENT, at)


def mark_read(notification: Notification, at: datetime) -> Notification:
    return transition(notification, NotificationState.READ, at)


def expire(notification: Notification) -> Notification:
    return transition(notification, NotificationState.EXPIRED)


# =============================================================================
# Listing Helpers
# =============================================================================

def sort_for_display(notifications: Iterable[Notification]) -> List[Notification]:
    """Priority rank first, then scheduled date, then creation time"""
    return sorted(
        notifications,
        key=lambda n: (n.priority.rank, n.scheduled_date, n.created_at)
    )


def find_pending_duplicates(notifications: Iterable[Notification]) -> List[Notification]:
    """
    PENDING notifications repeating the natural key of an older one created the same day

    Overlapping passes for one reference date can both plan the same
    notification; the oldest copy is kept and the rest are returned.
    """
    seen = set()
    duplicates = []
    pending = (n for n in notifications if n.state == NotificationState.PENDING)
    for n in sorted(pending, key=lambda n: (n.created_at, n.id is None, n.id or 0)):
        key = n.dedup_key + (n.record_id, n.created_at.date())
        if key in seen:
            duplicates.append(n)
        else:
            seen.add(key)
    return duplicates


def notification_statistics(notifications: Iterable[Notification]) -> NotificationStatistics:
    notifications = list(notifications)
    return NotificationStatistics(
        total=len(notifications),
        by_state=dict(Counter(n.state for n in notifications)),
        by_type=dict(Counter(n.type for n in notifications)),
    )


# =============================================================================
# Scheduler
# =============================================================================

class NotificationScheduler:
    """
    Decides which notifications should exist for each child.

    Every planning method is pure: it receives the notifications already
    known for the child (persisted plus those planned earlier in the same
    pass) and returns new Notification values for the caller to persist.
    """

    def __init__(self, projector: ScheduleProjector):
        self.projector = projector
        self.catalog = projector.catalog
        self.tunables = projector.tunables

    @staticmethod
    def _created_at(reference_date: date, now: Optional[datetime]) -> datetime:
        return now if now is not None else datetime.combine(reference_date, time())

    @staticmethod
    def _created_within(notification: Notification, reference_date: date, days: int) -> bool:
        """True when the notification was created less than `days` days before the reference date"""
        return days_between(notification.created_at.date(), reference_date) < days

    # -------------------------------------------------------------------------
    # Dose Reminders
    # -------------------------------------------------------------------------

    def plan_reminders(
        self,
        bundle: ChildWithHistory,
        existing: Iterable[Notification],
        reference_date: date,
        now: Optional[datetime] = None
    ) -> List[Notification]:
        """
        Reminders for doses recommended within the reminder lead time

        Args:
            bundle: Child with its vaccination records
            existing: Notifications already known for the child
            reference_date: Date of the pass
            now: Creation timestamp (defaults to the start of reference_date)

        Returns:
            New DOSE_REMINDER notifications
        """
        child = bundle.child
        lead = self.tunables.reminder_lead_days
        active_keys = {
            n.dedup_key for n in existing
            if n.type == NotificationType.DOSE_REMINDER and n.state != NotificationState.EXPIRED
        }

        created = []
        for dose in self.projector.upcoming_doses(child, bundle.records, reference_date, lookahead_days=lead):
            if not 0 <= dose.days_until <= lead:
                continue
            key = (child.id, dose.vaccine_id, NotificationType.DOSE_REMINDER, dose.dose_number)
            if key in active_keys:
                continue

            entry = self.catalog.entry(dose.vaccine_id, dose.dose_number)
            created.append(Notification(
                child_id=child.id,
                vaccine_id=dose.vaccine_id,
                dose_number=dose.dose_number,
                type=NotificationType.DOSE_REMINDER,
                priority=URGENCY_PRIORITY[dose.urgency],
                title=f"Próxima vacuna: {dose.vaccine_name}",
                message=(
                    f"{child.display_name} debe recibir {dose.vaccine_name} (dosis {dose.dose_number}) "
                    f"el {dose.recommended_date.isoformat()}"
                ),
                scheduled_date=add_days(dose.recommended_date, -lead),
                expiration_date=add_days(dose.recommended_date, self.catalog.tolerance_for(entry)),
                created_at=self._created_at(reference_date, now)
            ))
            active_keys.add(key)
        return created

    # -------------------------------------------------------------------------
    # Overdue Alerts
    # -------------------------------------------------------------------------

    def plan_overdue_alerts(
        self,
        bundle: ChildWithHistory,
        existing: Iterable[Notification],
        reference_date: date,
        now: Optional[datetime] = None
    ) -> List[Notification]:
        """Weekly alerts for mandatory doses past their tolerance window"""
        child = bundle.child
        recent = {
            n.vaccine_id for n in existing
            if n.type == NotificationType.DOSE_OVERDUE
            and self._created_within(n, reference_date, self.tunables.overdue_realert_days)
        }

        created = []
        for dose in self.projector.pending_doses(child, bundle.records, reference_date):
            if not dose.is_overdue or not dose.is_mandatory or dose.vaccine_id in recent:
                continue
            created.append(Notification(
                child_id=child.id,
                vaccine_id=dose.vaccine_id,
                dose_number=dose.dose_number,
                type=NotificationType.DOSE_OVERDUE,
                priority=NotificationPriority.URGENT,
                title=f"Vacuna atrasada: {dose.vaccine_name}",
                message=(
                    f"{child.display_name} tiene {dose.vaccine_name} (dosis {dose.dose_number}) "
                    f"atrasada {dose.days_overdue} días"
                ),
                scheduled_date=reference_date,
                created_at=self._created_at(reference_date, now)
            ))
            recent.add(dose.vaccine_id)
        return created

    # -------------------------------------------------------------------------
    # Birthdays
    # -------------------------------------------------------------------------

    def plan_birthday(
        self,
        child: Child,
        existing: Iterable[Notification],
        reference_date: date,
        now: Optional[datetime] = None
    ) -> Optional[Notification]:
        """Birthday notice within the lead time, at most one per calendar year"""
        reference_date = require_date(reference_date, "reference_date")
        birthday = next_birthday(child.birth_date, reference_date)
        if birthday <= child.birth_date:
            return None

        lead = self.tunables.birthday_lead_days
        if days_between(reference_date, birthday) > lead:
            return None
        if any(
            n.type == NotificationType.BIRTHDAY and n.scheduled_date.year == birthday.year
            for n in existing
        ):
            return None

        years = age_in_years(child.birth_date, birthday)
        return Notification(
            child_id=child.id,
            type=NotificationType.BIRTHDAY,
            priority=NotificationPriority.NORMAL,
            title="Feliz cumpleaños",
            message=f"{child.display_name} cumple {years} año{'s' if years > 1 else ''} el {birthday.isoformat()}",
            scheduled_date=birthday,
            expiration_date=birthday + timedelta(days=1),
            created_at=self._created_at(reference_date, now)
        )

    # -------------------------------------------------------------------------
    # Schedule Completion
    # -------------------------------------------------------------------------

    def plan_completion(
        self,
        bundle: ChildWithHistory,
        existing: Iterable[Notification],
        reference_date: date,
        now: Optional[datetime] = None
    ) -> Optional[Notification]:
        """Completion notice once the threshold is reached, re-sent at most monthly"""
        child = bundle.child
        completion = self.projector.completion(child, bundle.records, reference_date)
        if completion < self.tunables.schedule_complete_threshold:
            return None
        if any(
            n.type == NotificationType.SCHEDULE_COMPLETE
            and self._created_within(n, reference_date, self.tunables.completion_realert_days)
            for n in existing
        ):
            return None

        return Notification(
            child_id=child.id,
            type=NotificationType.SCHEDULE_COMPLETE,
            priority=NotificationPriority.NORMAL,
            title="Esquema al día",
            message=f"{child.display_name} tiene el {completion:.0f}% de su esquema de vacunación al día",
            scheduled_date=reference_date,
            created_at=self._created_at(reference_date, now)
        )

    # -------------------------------------------------------------------------
    # Adverse Reactions
    # -------------------------------------------------------------------------

    def adverse_reaction_alert(
        self,
        child: Child,
        vaccine: Vaccine,
        record: VaccinationRecord,
        reference_date: date,
        now: Optional[datetime] = None
    ) -> Optional[Notification]:
        """
        Urgent alert for a reaction at or above the configured threshold

        Every qualifying report produces its own alert; there is no dedup.
        """
        if not record.reaction_severity.at_least(self.tunables.adverse_reaction_threshold):
            return None

        logger.warning(
            f"Adverse reaction {record.reaction_severity.value} reported for child {child.id}, "
            f"vaccine {vaccine.code} dose {record.dose_number}"
        )
        return Notification(
            child_id=child.id,
            vaccine_id=vaccine.id,
            dose_number=record.dose_number,
            record_id=record.id,
            type=NotificationType.ADVERSE_REACTION,
            priority=NotificationPriority.URGENT,
            title=f"Reacción adversa {record.reaction_severity.value}",
            message=(
                f"{child.display_name} presentó una reacción {record.reaction_severity.value} "
                f"tras {vaccine.name} (dosis {record.dose_number})"
                + (f": {record.reaction_description}" if record.reaction_description else "")
            ),
            scheduled_date=require_date(reference_date, "reference_date"),
            created_at=self._created_at(reference_date, now)
        )

    # -------------------------------------------------------------------------
    # Expiry and Consumption
    # -------------------------------------------------------------------------

    @staticmethod
    def _is_lapsed(notification: Notification, reference_date: date) -> bool:
        return (
            notification.state == NotificationState.PENDING
            and notification.expiration_date is not None
            and notification.expiration_date < reference_date
        )

    def expire_due(self, notifications: Iterable[Notification], reference_date: date) -> List[Notification]:
        """PENDING notifications whose expiration date has passed, moved to EXPIRED"""
        reference_date = require_date(reference_date, "reference_date")
        return [expire(n) for n in notifications if self._is_lapsed(n, reference_date)]

    def consume_for_dose(
        self,
        notifications: Iterable[Notification],
        child_id: int,
        vaccine_id: int,
        dose_number: int
    ) -> List[Notification]:
        """Expire pending reminders and overdue alerts satisfied by a recorded dose"""
        return [
            expire(n) for n in notifications
            if n.state == NotificationState.PENDING
            and n.type in (NotificationType.DOSE_REMINDER, NotificationType.DOSE_OVERDUE)
            and n.child_id == child_id
            and n.vaccine_id == vaccine_id
            and n.dose_number == dose_number
        ]

    # -------------------------------------------------------------------------
    # Daily Pass
    # -------------------------------------------------------------------------

    def run_daily_pass(
        self,
        children: Iterable[ChildWithHistory],
        notifications: Iterable[Notification],
        reference_date: date,
        now: Optional[datetime] = None
    ) -> DailyPassResult:
        """
        Apply every rule to every active child, expire lapsed notifications
        and retire same-day duplicates left by overlapping passes

        Re-running with the persisted result of a previous run for the same
        reference date yields no new notifications.

        Args:
            children: Children with their vaccination records
            notifications: All known notifications
            reference_date: Date of the pass
            now: Creation timestamp for new notifications

        Returns:
            Notifications to create, transitions to apply and a summary
        """
        reference_date = require_date(reference_date, "reference_date")
        notifications = list(notifications)
        summary = DailyPassSummary(reference_date=reference_date)

        duplicates = {id(n) for n in find_pending_duplicates(notifications)}
        expired: List[Notification] = []
        by_child: Dict[int, List[Notification]] = {}
        for n in notifications:
            if id(n) in duplicates:
                n = expire(n)
                expired.append(n)
                summary.duplicates_expired += 1
            elif self._is_lapsed(n, reference_date):
                n = expire(n)
                expired.append(n)
                summary.expired += 1
            by_child.setdefault(n.child_id, []).append(n)

        created: List[Notification] = []
        for bundle in children:
            child = bundle.child
            if not child.active:
                continue
            summary.children_processed += 1
            known = by_child.setdefault(child.id, [])

            reminders = self.plan_reminders(bundle, known, reference_date, now)
            known.extend(reminders)
            summary.reminders_created += len(reminders)

            overdue = self.plan_overdue_alerts(bundle, known, reference_date, now)
            known.extend(overdue)
            summary.overdue_created += len(overdue)

            birthday = self.plan_birthday(child, known, reference_date, now)
            if birthday is not None:
                known.append(birthday)
                summary.birthdays_created += 1

            completion = self.plan_completion(bundle, known, reference_date, now)
            if completion is not None:
                known.append(completion)
                summary.completions_created += 1

            created.extend(reminders + overdue + [n for n in (birthday, completion) if n is not None])

        logger.info(
            f"Daily pass {reference_date.isoformat()}: {summary.children_processed} children, "
            f"{summary.total_created} created, {summary.expired} expired, "
            f"{summary.duplicates_expired} duplicates retired"
        )
        return DailyPassResult(created=created, expired=expired, summary=summary)
