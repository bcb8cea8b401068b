"""
ImmunoTrack - Immunization Schedule Schemas
Pydantic models shared by the schedule engine, the repository and the API
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from typing import Optional, List, Dict, Tuple, Union, Literal, Annotated
from datetime import date, datetime
from enum import Enum


# ============================================================================
# Enumerations
# ============================================================================

class ReactionSeverity(str, Enum):
    """Severity of an adverse reaction reported after a dose"""
    NONE = "NONE"
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_least(self, other: "ReactionSeverity") -> bool:
        return self.rank >= other.rank


_SEVERITY_ORDER = [
    ReactionSeverity.NONE,
    ReactionSeverity.MILD,
    ReactionSeverity.MODERATE,
    ReactionSeverity.SEVERE,
    ReactionSeverity.CRITICAL,
]


class NotificationType(str, Enum):
    """Kinds of notification the scheduler materializes"""
    DOSE_REMINDER = "DOSE_REMINDER"
    DOSE_OVERDUE = "DOSE_OVERDUE"
    BIRTHDAY = "BIRTHDAY"
    ADVERSE_REACTION = "ADVERSE_REACTION"
    SCHEDULE_COMPLETE = "SCHEDULE_COMPLETE"


class NotificationPriority(str, Enum):
    """Notification priority, most pressing first"""
    URGENT = "URGENT"
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)


_PRIORITY_ORDER = [
    NotificationPriority.URGENT,
    NotificationPriority.HIGH,
    NotificationPriority.NORMAL,
    NotificationPriority.LOW,
]


class NotificationState(str, Enum):
    """Notification lifecycle states"""
    PENDING = "PENDING"
    SENT = "SENT"
    READ = "READ"
    EXPIRED = "EXPIRED"


class Urgency(str, Enum):
    """Urgency of an upcoming dose"""
    OVERDUE = "OVERDUE"
    URGENT = "URGENT"
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _URGENCY_ORDER.index(self)


_URGENCY_ORDER = [
    Urgency.OVERDUE,
    Urgency.URGENT,
    Urgency.HIGH,
    Urgency.NORMAL,
    Urgency.LOW,
]


class ScheduleStatus(str, Enum):
    """Overall state of a child's esquema"""
    ATRASADO = "ATRASADO"
    COMPLETO = "COMPLETO"
    EN_PROGRESO = "EN_PROGRESO"
    INCOMPLETO = "INCOMPLETO"


class RejectionReason(str, Enum):
    """Machine-readable reasons a dose cannot be recorded"""
    VACCINE_INACTIVE = "vaccine_inactive"
    INVALID_DOSE_NUMBER = "invalid_dose_number"
    APPLICATION_DATE_IN_FUTURE = "application_date_in_future"
    APPLICATION_DATE_BEFORE_BIRTH = "application_date_before_birth"
    APPLICATION_DATE_TOO_OLD = "application_date_too_old"
    DOSE_EXCEEDS_SERIES = "dose_exceeds_series"
    PREVIOUS_DOSE_MISSING = "previous_dose_missing"
    AGE_INAPPROPRIATE = "age_inappropriate"
    DOSE_ALREADY_APPLIED = "dose_already_applied"
    SERIES_COMPLETE = "series_complete"
    MIN_INTERVAL_NOT_MET = "min_interval_not_met"


class WarningReason(str, Enum):
    """Non-blocking anomalies found while validating a dose"""
    NO_SCHEDULE_DEFINED = "no_schedule_defined"


# ============================================================================
# Core Entities
# ============================================================================

class Child(BaseModel):
    """Child enrolled in the immunization program"""
    model_config = ConfigDict(frozen=True)

    id: int
    birth_date: date = Field(..., description="Date of birth; age is always derived from it")
    active: bool = True
    guardian_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else f"Child {self.id}"


class Vaccine(BaseModel):
    """Vaccine with its series length"""
    model_config = ConfigDict(frozen=True)

    id: int
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1)
    total_doses: int = Field(..., ge=1, description="Number of doses in the series")
    active: bool = True
    description: Optional[str] = None


class ScheduleEntry(BaseModel):
    """
    One row of the national esquema: a vaccine dose expected at a given age.
    Explicit min/max age bounds override the default anticipation/tolerance window.
    """
    model_config = ConfigDict(frozen=True)

    vaccine_id: int
    dose_number: int = Field(..., ge=1)
    target_age_days: int = Field(..., ge=0)
    min_age_days: Optional[int] = Field(None, ge=0)
    max_age_days: Optional[int] = Field(None, ge=0)
    is_booster: bool = False
    is_mandatory: bool = True
    min_interval_days: Optional[int] = Field(None, ge=0, description="Days since the previous dose")
    active: bool = True
    age_description: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_bounds(self) -> "ScheduleEntry":
        if self.min_age_days is not None and self.min_age_days > self.target_age_days:
            raise ValueError("min_age_days cannot exceed target_age_days")
        if self.max_age_days is not None and self.max_age_days < self.target_age_days:
            raise ValueError("max_age_days cannot be below target_age_days")
        return self

    @property
    def key(self) -> Tuple[int, int]:
        return (self.vaccine_id, self.dose_number)


class VaccinationRecord(BaseModel):
    """An applied dose; site and lot metadata are opaque to the engine"""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    child_id: int
    vaccine_id: int
    dose_number: int = Field(..., ge=1)
    application_date: date
    health_center_id: Optional[int] = None
    professional_id: Optional[int] = None
    lot: Optional[str] = None
    notes: Optional[str] = None
    reaction_severity: ReactionSeverity = ReactionSeverity.NONE
    reaction_description: Optional[str] = None

    @property
    def has_reaction(self) -> bool:
        return self.reaction_severity != ReactionSeverity.NONE


class Notification(BaseModel):
    """Notification decided by the scheduler; never deleted, only transitioned"""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    child_id: int
    vaccine_id: Optional[int] = None
    dose_number: Optional[int] = None
    record_id: Optional[int] = None
    type: NotificationType
    priority: NotificationPriority
    state: NotificationState = NotificationState.PENDING
    title: str = ""
    message: str = ""
    scheduled_date: date
    expiration_date: Optional[date] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> Tuple[int, Optional[int], NotificationType, Optional[int]]:
        """Natural key (child, vaccine, type, dose)"""
        return (self.child_id, self.vaccine_id, self.type, self.dose_number)


# ============================================================================
# Composite Views
# ============================================================================

class ChildWithHistory(BaseModel):
    """A child together with its applied doses"""
    model_config = ConfigDict(frozen=True)

    child: Child
    records: Tuple[VaccinationRecord, ...] = ()

    @model_validator(mode="after")
    def validate_ownership(self) -> "ChildWithHistory":
        for record in self.records:
            if record.child_id != self.child.id:
                raise ValueError(
                    f"Record for child {record.child_id} attached to child {self.child.id}"
                )
        return self


class DoseApplication(BaseModel):
    """Request to record a dose"""
    child_id: int
    vaccine_id: int
    dose_number: int = Field(..., ge=1)
    application_date: date
    health_center_id: Optional[int] = None
    professional_id: Optional[int] = None
    lot: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class ReactionReport(BaseModel):
    """Adverse reaction reported against a recorded dose"""
    severity: ReactionSeverity
    description: Optional[str] = None


# ============================================================================
# Eligibility Decisions
# ============================================================================

class Allowed(BaseModel):
    """The dose may be recorded"""
    model_config = ConfigDict(frozen=True)

    outcome: Literal["ALLOWED"] = "ALLOWED"
    message: str = "Dose may be recorded"


class DoseWarning(BaseModel):
    """Non-blocking anomaly; the caller may proceed with an explicit override"""
    model_config = ConfigDict(frozen=True)

    outcome: Literal["WARNING"] = "WARNING"
    reason: WarningReason
    message: str


class Rejected(BaseModel):
    """Business-rule violation; the dose must not be recorded"""
    model_config = ConfigDict(frozen=True)

    outcome: Literal["REJECTED"] = "REJECTED"
    reason: RejectionReason
    message: str
    remaining_days: Optional[int] = Field(None, ge=0, description="Days left before the dose is allowed")


Decision = Annotated[Union[Allowed, DoseWarning, Rejected], Field(discriminator="outcome")]


# ============================================================================
# Projections
# ============================================================================

class PendingDose(BaseModel):
    """A dose whose target age has been reached but is not yet applied"""
    vaccine_id: int
    vaccine_code: str
    vaccine_name: str
    dose_number: int
    is_mandatory: bool
    is_booster: bool
    target_date: date
    days_overdue: int = Field(..., ge=0)
    is_overdue: bool


class UpcomingDose(BaseModel):
    """A dose due within the lookahead horizon"""
    vaccine_id: int
    vaccine_code: str
    vaccine_name: str
    dose_number: int
    is_mandatory: bool
    is_booster: bool
    recommended_date: date
    days_until: int
    urgency: Urgency
    window_start: date
    window_end: date


class ScheduleStatusReport(BaseModel):
    """Completion and overdue summary for one child"""
    child_id: int
    reference_date: date
    age_days: int
    expected_mandatory: int = Field(..., ge=0)
    applied_mandatory: int = Field(..., ge=0)
    overdue_mandatory: int = Field(..., ge=0)
    completion_percentage: float = Field(..., ge=0.0, le=100.0)
    status: ScheduleStatus


class VaccinationHistory(BaseModel):
    """Full dashboard view of a child's vaccination state"""
    child: Child
    applied: List[VaccinationRecord] = Field(default_factory=list)
    pending: List[PendingDose] = Field(default_factory=list)
    upcoming: List[UpcomingDose] = Field(default_factory=list)
    status: ScheduleStatusReport
    generated_for: date

    @computed_field
    @property
    def overdue_count(self) -> int:
        return len([p for p in self.pending if p.is_overdue])


# ============================================================================
# Scheduler Results
# ============================================================================

class DailyPassSummary(BaseModel):
    """Counts produced by one run of the daily notification pass"""
    reference_date: date
    children_processed: int = 0
    reminders_created: int = 0
    overdue_created: int = 0
    birthdays_created: int = 0
    completions_created: int = 0
    expired: int = 0
    duplicates_expired: int = 0

    @computed_field
    @property
    def total_created(self) -> int:
        return (
            self.reminders_created
            + self.overdue_created
            + self.birthdays_created
            + self.completions_created
        )


class DailyPassResult(BaseModel):
    """Notifications to create and transitions to apply after a daily pass"""
    created: List[Notification] = Field(default_factory=list)
    expired: List[Notification] = Field(default_factory=list)
    summary: DailyPassSummary


class NotificationStatistics(BaseModel):
    """Counts of notifications per state and type"""
    total: int = 0
    by_state: Dict[NotificationState, int] = Field(default_factory=dict)
    by_type: Dict[NotificationType, int] = Field(default_factory=dict)


class RecordingResult(BaseModel):
    """Outcome of the dose recording workflow"""
    decision: Decision
    record: Optional[VaccinationRecord] = None
    consumed_notifications: int = 0
    upcoming: List[UpcomingDose] = Field(default_factory=list)

    @computed_field
    @property
    def recorded(self) -> bool:
        return self.record is not None


class ReactionResult(BaseModel):
    """Record with its attached reaction and the alert it raised, if any"""
    record: VaccinationRecord
    alert: Optional[Notification] = None
