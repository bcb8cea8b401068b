"""
ImmunoTrack Eligibility Validator
Decides whether a vaccine dose may be recorded for a child
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from immunotrack.modules.catalog import ScheduleCatalog
from immunotrack.modules.dates import age_in_days, days_between, require_date
from immunotrack.schemas import (
    Allowed, Child, Decision, DoseWarning, Rejected, RejectionReason,
    Vaccine, VaccinationRecord, WarningReason
)

logger = logging.getLogger(__name__)


class EligibilityValidator:
    """
    Pure dose-eligibility checks against the catalog and a history snapshot.

    Checks run in a fixed order and stop at the first rejection. A missing
    schedule only produces a warning, so the later duplicate and interval
    checks still apply to off-schedule vaccines.
    """

    def __init__(self, catalog: ScheduleCatalog):
        self.catalog = catalog
        self.tunables = catalog.tunables

    def validate_dose(
        self,
        child: Child,
        vaccine: Vaccine,
        dose_number: int,
        application_date: date,
        history: Iterable[VaccinationRecord],
        reference_date: date
    ) -> Decision:
        """
        Validate a proposed dose

        Args:
            child: Child receiving the dose
            vaccine: Vaccine being applied
            dose_number: 1-based dose number in the series
            application_date: Date the dose was (or will be) applied
            history: Vaccination records of the child
            reference_date: "Today" for future-date checks

        Returns:
            Allowed, DoseWarning or Rejected
        """
        application_date = require_date(application_date, "application_date")
        reference_date = require_date(reference_date, "reference_date")

        records = [
            r for r in history
            if r.child_id == child.id and r.vaccine_id == vaccine.id
        ]

        warning: Optional[DoseWarning] = None
        for check in (
            self._check_vaccine_active,
            self._check_application_date,
            self._check_dose_number,
            self._check_previous_dose,
            self._check_age_window,
            self._check_duplicate,
            self._check_interval,
        ):
            result = check(child, vaccine, dose_number, application_date, records, reference_date)
            if isinstance(result, Rejected):
                logger.debug(
                    f"Dose rejected: child {child.id} vaccine {vaccine.code} dose {dose_number}: "
                    f"{result.reason.value}"
                )
                return result
            if isinstance(result, DoseWarning) and warning is None:
                warning = result

        if warning is not None:
            logger.info(
                f"Dose allowed with warning: child {child.id} vaccine {vaccine.code}: {warning.reason.value}"
            )
            return warning
        return Allowed()

    # -------------------------------------------------------------------------
    # Individual Checks
    # -------------------------------------------------------------------------

    def _check_vaccine_active(self, child, vaccine, dose_number, application_date, records, reference_date):
        if not vaccine.active:
            return Rejected(
                reason=RejectionReason.VACCINE_INACTIVE,
                message=f"Vaccine {vaccine.name} is inactive"
            )
        return None

    def _check_application_date(self, child, vaccine, dose_number, application_date, records, reference_date):
        if application_date > reference_date:
            return Rejected(
                reason=RejectionReason.APPLICATION_DATE_IN_FUTURE,
                message="Application date cannot be in the future"
            )
        if application_date < child.birth_date:
            return Rejected(
                reason=RejectionReason.APPLICATION_DATE_BEFORE_BIRTH,
                message="Application date cannot precede the child's birth date"
            )
        oldest_allowed = reference_date - relativedelta(years=self.tunables.application_max_age_years)
        if application_date < oldest_allowed:
            return Rejected(
                reason=RejectionReason.APPLICATION_DATE_TOO_OLD,
                message=(
                    f"Application date is more than {self.tunables.application_max_age_years} "
                    f"years in the past"
                )
            )
        return None

    def _check_dose_number(self, child, vaccine, dose_number, application_date, records, reference_date):
        if dose_number < 1:
            return Rejected(
                reason=RejectionReason.INVALID_DOSE_NUMBER,
                message="Dose number must be at least 1"
            )
        if dose_number > vaccine.total_doses:
            return Rejected(
                reason=RejectionReason.DOSE_EXCEEDS_SERIES,
                message=f"{vaccine.name} has only {vaccine.total_doses} dose(s)"
            )
        return None

    def _check_previous_dose(self, child, vaccine, dose_number, application_date, records, reference_date):
        if dose_number > 1 and not any(r.dose_number == dose_number - 1 for r in records):
            return Rejected(
                reason=RejectionReason.PREVIOUS_DOSE_MISSING,
                message=f"Previous dose {dose_number - 1} of {vaccine.name} has not been recorded"
            )
        return None

    def _check_age_window(self, child, vaccine, dose_number, application_date, records, reference_date):
        entries = self.catalog.entries_for_vaccine(vaccine.id)
        if not entries:
            return DoseWarning(
                reason=WarningReason.NO_SCHEDULE_DEFINED,
                message=f"No schedule defined for {vaccine.name}; proceed with caution"
            )

        age_at_application = age_in_days(child.birth_date, application_date)
        # The dose's own window when scheduled, any window of the vaccine otherwise
        target = [e for e in entries if e.dose_number == dose_number]
        for entry in target or entries:
            start, end = self.catalog.window_for(entry)
            if start <= age_at_application <= end:
                return None

        return Rejected(
            reason=RejectionReason.AGE_INAPPROPRIATE,
            message=(
                f"Age of {age_at_application} days is inappropriate for this vaccine "
                f"according to the national schedule"
            )
        )

    def _check_duplicate(self, child, vaccine, dose_number, application_date, records, reference_date):
        if any(r.dose_number == dose_number for r in records):
            return Rejected(
                reason=RejectionReason.DOSE_ALREADY_APPLIED,
                message=f"Dose {dose_number} of {vaccine.name} has already been applied"
            )
        if len(records) >= vaccine.total_doses:
            return Rejected(
                reason=RejectionReason.SERIES_COMPLETE,
                message=f"All {vaccine.total_doses} dose(s) of {vaccine.name} have been applied"
            )
        return None

    def _check_interval(self, child, vaccine, dose_number, application_date, records, reference_date):
        previous: List[VaccinationRecord] = [r for r in records if r.dose_number < dose_number]
        if not previous:
            return None

        last_application = max(r.application_date for r in previous)
        elapsed = days_between(last_application, application_date)

        entry = self.catalog.entry(vaccine.id, dose_number)
        required = 0
        if entry is not None and entry.min_interval_days is not None:
            required = entry.min_interval_days

        if elapsed < required:
            remaining = required - elapsed
            return Rejected(
                reason=RejectionReason.MIN_INTERVAL_NOT_MET,
                message=f"Must wait {remaining} more days since the last dose",
                remaining_days=remaining
            )
        return None
