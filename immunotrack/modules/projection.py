"""
ImmunoTrack Schedule Projector
Pending, overdue and upcoming doses plus completion status for a child
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Set, Tuple

from immunotrack.modules.catalog import ScheduleCatalog
from immunotrack.modules.dates import add_days, age_in_days, days_between, require_date
from immunotrack.schemas import (
    Child, ChildWithHistory, PendingDose, ScheduleEntry, ScheduleStatus,
    ScheduleStatusReport, UpcomingDose, Urgency, VaccinationHistory,
    VaccinationRecord
)

logger = logging.getLogger(__name__)


# =============================================================================
# Classification Helpers
# =============================================================================

def classify_urgency(days_until: int, is_mandatory: bool) -> Urgency:
    """
    Urgency band for a dose due in days_until days

    Args:
        days_until: Days from the reference date to the recommended date
        is_mandatory: Whether the entry counts toward completion

    Returns:
        Urgency band
    """
    if days_until < 0:
        return Urgency.OVERDUE
    if days_until <= 7:
        return Urgency.URGENT if is_mandatory else Urgency.HIGH
    if days_until <= 30:
        return Urgency.HIGH
    if days_until <= 60:
        return Urgency.NORMAL
    return Urgency.LOW


def completion_percentage(applied: int, expected: int) -> float:
    """Share of expected mandatory doses applied, capped at 100"""
    if expected == 0:
        return 100.0
    return round(min(100.0, applied * 100.0 / expected), 2)


def schedule_status(
    completion: float,
    overdue_mandatory: int,
    complete_threshold: float = 95.0,
    in_progress_threshold: float = 80.0
) -> ScheduleStatus:
    """Overall esquema label; any overdue mandatory dose dominates"""
    if overdue_mandatory > 0:
        return ScheduleStatus.ATRASADO
    if completion >= complete_threshold:
        return ScheduleStatus.COMPLETO
    if completion >= in_progress_threshold:
        return ScheduleStatus.EN_PROGRESO
    return ScheduleStatus.INCOMPLETO


def applied_doses(child: Child, history: Iterable[VaccinationRecord]) -> Set[Tuple[int, int]]:
    """(vaccine_id, dose_number) pairs already recorded for the child"""
    return {(r.vaccine_id, r.dose_number) for r in history if r.child_id == child.id}


# =============================================================================
# Projector
# =============================================================================

class ScheduleProjector:
    """Stateless projections of a child's schedule at a reference date"""

    def __init__(self, catalog: ScheduleCatalog):
        self.catalog = catalog
        self.tunables = catalog.tunables

    def _schedulable(self, entries: Iterable[ScheduleEntry], applied: Set[Tuple[int, int]]) -> List[ScheduleEntry]:
        """Entries of active vaccines that have not been applied yet"""
        return [
            e for e in entries
            if e.key not in applied and self.catalog.vaccine(e.vaccine_id).active
        ]

    def pending_doses(
        self,
        child: Child,
        history: Iterable[VaccinationRecord],
        reference_date: date
    ) -> List[PendingDose]:
        """
        Doses whose target age has been reached and are not yet applied

        Args:
            child: Child to project
            history: Vaccination records of the child
            reference_date: Date the projection is computed for

        Returns:
            Pending doses ordered by target date, then vaccine name
        """
        reference_date = require_date(reference_date, "reference_date")
        age = age_in_days(child.birth_date, reference_date)
        applied = applied_doses(child, history)

        pending = []
        for entry in self._schedulable(self.catalog.entries_for_age(age), applied):
            vaccine = self.catalog.vaccine(entry.vaccine_id)
            target_date = add_days(child.birth_date, entry.target_age_days)
            days_overdue = max(
                0, days_between(target_date, reference_date) - self.catalog.tolerance_for(entry)
            )
            pending.append(PendingDose(
                vaccine_id=vaccine.id,
                vaccine_code=vaccine.code,
                vaccine_name=vaccine.name,
                dose_number=entry.dose_number,
                is_mandatory=entry.is_mandatory,
                is_booster=entry.is_booster,
                target_date=target_date,
                days_overdue=days_overdue,
                is_overdue=days_overdue > 0
            ))

        pending.sort(key=lambda p: (p.target_date, p.vaccine_name, p.dose_number))
        return pending

    def upcoming_doses(
        self,
        child: Child,
        history: Iterable[VaccinationRecord],
        reference_date: date,
        lookahead_days: Optional[int] = None
    ) -> List[UpcomingDose]:
        """
        Doses whose target age falls within the lookahead horizon

        Args:
            child: Child to project
            history: Vaccination records of the child
            reference_date: Date the projection is computed for
            lookahead_days: Horizon in days (defaults to the configured lookahead)

        Returns:
            Upcoming doses ordered by urgency, then recommended date
        """
        reference_date = require_date(reference_date, "reference_date")
        if lookahead_days is None:
            lookahead_days = self.tunables.upcoming_lookahead_days

        age = age_in_days(child.birth_date, reference_date)
        applied = applied_doses(child, history)
        entries = self.catalog.entries_in_age_range(age, age + lookahead_days)

        upcoming = []
        for entry in self._schedulable(entries, applied):
            vaccine = self.catalog.vaccine(entry.vaccine_id)
            recommended = add_days(child.birth_date, entry.target_age_days)
            days_until = days_between(reference_date, recommended)
            window_start, window_end = self.catalog.window_for(entry)
            upcoming.append(UpcomingDose(
                vaccine_id=vaccine.id,
                vaccine_code=vaccine.code,
                vaccine_name=vaccine.name,
                dose_number=entry.dose_number,
                is_mandatory=entry.is_mandatory,
                is_booster=entry.is_booster,
                recommended_date=recommended,
                days_until=days_until,
                urgency=classify_urgency(days_until, entry.is_mandatory),
                window_start=add_days(child.birth_date, window_start),
                window_end=add_days(child.birth_date, window_end)
            ))

        upcoming.sort(key=lambda u: (u.urgency.rank, u.recommended_date, u.vaccine_name, u.dose_number))
        return upcoming

    def completion(
        self,
        child: Child,
        history: Iterable[VaccinationRecord],
        reference_date: date
    ) -> float:
        """Applied mandatory doses over those expected by age, capped at 100"""
        expected, applied = self._mandatory_counts(child, list(history), reference_date)
        return completion_percentage(applied, expected)

    def _mandatory_counts(
        self,
        child: Child,
        history: List[VaccinationRecord],
        reference_date: date
    ) -> Tuple[int, int]:
        reference_date = require_date(reference_date, "reference_date")
        age = age_in_days(child.birth_date, reference_date)
        done = applied_doses(child, history)
        mandatory = [
            e for e in self.catalog.all_entries()
            if e.is_mandatory and self.catalog.vaccine(e.vaccine_id).active
        ]
        expected = [e for e in mandatory if e.target_age_days <= age]
        # Doses given early inside their window count even before the target age
        applied = [e for e in mandatory if e.key in done]
        return len(expected), len(applied)

    def status_report(
        self,
        child: Child,
        history: Iterable[VaccinationRecord],
        reference_date: date
    ) -> ScheduleStatusReport:
        """Completion, overdue count and overall status label"""
        history = list(history)
        expected, applied = self._mandatory_counts(child, history, reference_date)
        overdue = len([
            p for p in self.pending_doses(child, history, reference_date)
            if p.is_overdue and p.is_mandatory
        ])
        completion = completion_percentage(applied, expected)

        return ScheduleStatusReport(
            child_id=child.id,
            reference_date=reference_date,
            age_days=age_in_days(child.birth_date, reference_date),
            expected_mandatory=expected,
            applied_mandatory=applied,
            overdue_mandatory=overdue,
            completion_percentage=completion,
            status=schedule_status(
                completion,
                overdue,
                self.tunables.status_complete_threshold,
                self.tunables.status_in_progress_threshold
            )
        )

    def history_summary(self, bundle: ChildWithHistory, reference_date: date) -> VaccinationHistory:
        """Dashboard view composing applied, pending, upcoming and status"""
        child = bundle.child
        records = list(bundle.records)
        summary = VaccinationHistory(
            child=child,
            applied=sorted(records, key=lambda r: (r.application_date, r.vaccine_id, r.dose_number)),
            pending=self.pending_doses(child, records, reference_date),
            upcoming=self.upcoming_doses(child, records, reference_date),
            status=self.status_report(child, records, reference_date),
            generated_for=reference_date
        )
        logger.debug(
            f"History for child {child.id}: {len(summary.applied)} applied, "
            f"{len(summary.pending)} pending, {len(summary.upcoming)} upcoming"
        )
        return summary
