"""
ImmunoTrack - Immunization Repository
Loads engine snapshots from the database and persists the engine's decisions
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from immunotrack.config import ScheduleTunables
from immunotrack.errors import (
    ChildNotFoundError, NotificationNotFoundError, RecordNotFoundError,
    VaccineNotFoundError
)
from immunotrack.models import (
    Child as ChildModel,
    Notification as NotificationModel,
    ScheduleEntry as ScheduleEntryModel,
    Vaccine as VaccineModel,
    VaccinationRecord as RecordModel,
)
from immunotrack.modules.catalog import (
    NATIONAL_VACCINES, ScheduleCatalog, plan_schedule_seed, plan_vaccine_seed
)
from immunotrack.schemas import (
    Child, ChildWithHistory, Notification, NotificationPriority,
    NotificationState, NotificationType, ReactionSeverity, ScheduleEntry,
    Vaccine, VaccinationRecord
)

logger = logging.getLogger(__name__)

DAILY_PASS_LOCK_KEY = 7_140_001


# =============================================================================
# Row Conversion
# =============================================================================

def to_child(row: ChildModel) -> Child:
    return Child(
        id=row.id,
        birth_date=row.birth_date,
        active=row.is_active,
        guardian_id=row.guardian_id,
        first_name=row.first_name,
        last_name=row.last_name
    )


def to_vaccine(row: VaccineModel) -> Vaccine:
    return Vaccine(
        id=row.id,
        code=row.code,
        name=row.name,
        total_doses=row.total_doses,
        active=row.is_active,
        description=row.description
    )


def to_entry(row: ScheduleEntryModel) -> ScheduleEntry:
    return ScheduleEntry(
        vaccine_id=row.vaccine_id,
        dose_number=row.dose_number,
        target_age_days=row.target_age_days,
        min_age_days=row.min_age_days,
        max_age_days=row.max_age_days,
        is_booster=row.is_booster,
        is_mandatory=row.is_mandatory,
        min_interval_days=row.min_interval_days,
        active=row.is_active,
        age_description=row.age_description,
        notes=row.notes
    )


def to_record(row: RecordModel) -> VaccinationRecord:
    return VaccinationRecord(
        id=row.id,
        child_id=row.child_id,
        vaccine_id=row.vaccine_id,
        dose_number=row.dose_number,
        application_date=row.application_date,
        health_center_id=row.health_center_id,
        professional_id=row.professional_id,
        lot=row.lot,
        notes=row.notes,
        reaction_severity=ReactionSeverity(row.reaction_severity),
        reaction_description=row.reaction_description
    )


def to_notification(row: NotificationModel) -> Notification:
    return Notification(
        id=row.id,
        child_id=row.child_id,
        vaccine_id=row.vaccine_id,
        dose_number=row.dose_number,
        record_id=row.record_id,
        type=NotificationType(row.notification_type),
        priority=NotificationPriority(row.priority),
        state=NotificationState(row.state),
        title=row.title,
        message=row.message,
        scheduled_date=row.scheduled_date,
        expiration_date=row.expiration_date,
        created_at=row.created_at,
        sent_at=row.sent_at,
        read_at=row.read_at
    )


# =============================================================================
# Repository
# =============================================================================

class ImmunizationRepository:
    """
    Persistence adapter around one SQLAlchemy session.

    Reads return immutable schema values; writes flush so generated ids are
    available, and leave the commit to the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def lock_daily_pass(self) -> bool:
        """
        Serialize daily passes with a transaction-scoped advisory lock

        Only PostgreSQL supports the lock; other backends return False and
        rely on the pass retiring same-day duplicates.
        """
        if self.session.get_bind().dialect.name != "postgresql":
            return False
        self.session.execute(
            sql_text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": DAILY_PASS_LOCK_KEY}
        )
        return True

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def load_catalog(self, tunables: Optional[ScheduleTunables] = None) -> ScheduleCatalog:
        """
        Build a validated catalog from the stored vaccines and entries

        Raises:
            CatalogIntegrityError: If the stored esquema is malformed
        """
        vaccines = [to_vaccine(v) for v in self.session.query(VaccineModel).all()]
        entries = [to_entry(e) for e in self.session.query(ScheduleEntryModel).all()]
        catalog = ScheduleCatalog(vaccines, entries, tunables)
        logger.info(f"Loaded catalog: {len(vaccines)} vaccines, {len(entries)} entries")
        return catalog

    def seed_national_schedule(self) -> Dict[str, int]:
        """
        Insert the national vaccines and esquema when missing

        Safe to call from several processes at once: a unique-constraint
        violation from a concurrent seeder rolls back and counts as done.

        Returns:
            Number of vaccines and entries inserted
        """
        try:
            existing_vaccines = [to_vaccine(v) for v in self.session.query(VaccineModel).all()]
            new_vaccines = plan_vaccine_seed(existing_vaccines)
            for vaccine in new_vaccines:
                self.session.add(VaccineModel(
                    code=vaccine.code,
                    name=vaccine.name,
                    description=vaccine.description,
                    total_doses=vaccine.total_doses,
                    is_active=vaccine.active
                ))
            self.session.flush()

            # Seed entries reference seed ids; stored ids are resolved by code
            ids_by_code = {v.code: v.id for v in self.session.query(VaccineModel).all()}
            codes_by_seed_id = {v.id: v.code for v in NATIONAL_VACCINES}

            existing_entries = [to_entry(e) for e in self.session.query(ScheduleEntryModel).all()]
            new_entries = plan_schedule_seed(existing_entries)
            for entry in new_entries:
                self.session.add(ScheduleEntryModel(
                    vaccine_id=ids_by_code[codes_by_seed_id[entry.vaccine_id]],
                    dose_number=entry.dose_number,
                    target_age_days=entry.target_age_days,
                    min_age_days=entry.min_age_days,
                    max_age_days=entry.max_age_days,
                    min_interval_days=entry.min_interval_days,
                    age_description=entry.age_description,
                    notes=entry.notes,
                    is_booster=entry.is_booster,
                    is_mandatory=entry.is_mandatory,
                    is_active=entry.active
                ))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Schedule seeded concurrently by another process; skipping")
            return {"vaccines": 0, "entries": 0}

        logger.info(f"✓ Seeded {len(new_vaccines)} vaccines and {len(new_entries)} schedule entries")
        return {"vaccines": len(new_vaccines), "entries": len(new_entries)}

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _child_row(self, child_id: int) -> ChildModel:
        row = self.session.get(ChildModel, child_id)
        if row is None:
            raise ChildNotFoundError(child_id)
        return row

    def _record_row(self, record_id: int) -> RecordModel:
        row = self.session.get(RecordModel, record_id)
        if row is None:
            raise RecordNotFoundError(record_id)
        return row

    def get_child(self, child_id: int) -> Child:
        return to_child(self._child_row(child_id))

    def get_vaccine(self, vaccine_id: int) -> Vaccine:
        row = self.session.get(VaccineModel, vaccine_id)
        if row is None:
            raise VaccineNotFoundError(vaccine_id)
        return to_vaccine(row)

    def get_record(self, record_id: int) -> VaccinationRecord:
        return to_record(self._record_row(record_id))

    def records_for_child(self, child_id: int) -> List[VaccinationRecord]:
        rows = self.session.query(RecordModel).filter(
            RecordModel.child_id == child_id
        ).order_by(RecordModel.application_date, RecordModel.id).all()
        return [to_record(r) for r in rows]

    def get_child_with_history(self, child_id: int) -> ChildWithHistory:
        child = self.get_child(child_id)
        return ChildWithHistory(child=child, records=tuple(self.records_for_child(child_id)))

    def active_children_with_history(self) -> List[ChildWithHistory]:
        """Snapshot of every active child and its records, ordered by id"""
        rows = self.session.query(ChildModel).filter(
            ChildModel.is_active.is_(True)
        ).order_by(ChildModel.id).all()

        records: Dict[int, List[VaccinationRecord]] = {row.id: [] for row in rows}
        record_rows = self.session.query(RecordModel).join(
            ChildModel, RecordModel.child_id == ChildModel.id
        ).filter(
            ChildModel.is_active.is_(True)
        ).order_by(RecordModel.application_date, RecordModel.id).all()
        for r in record_rows:
            records[r.child_id].append(to_record(r))

        return [
            ChildWithHistory(child=to_child(row), records=tuple(records[row.id]))
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def get_notification(self, notification_id: int) -> Notification:
        row = self.session.get(NotificationModel, notification_id)
        if row is None:
            raise NotificationNotFoundError(notification_id)
        return to_notification(row)

    def notifications_for_child(
        self,
        child_id: int,
        state: Optional[NotificationState] = None,
        type: Optional[NotificationType] = None
    ) -> List[Notification]:
        query = self.session.query(NotificationModel).filter(NotificationModel.child_id == child_id)
        if state is not None:
            query = query.filter(NotificationModel.state == state.value)
        if type is not None:
            query = query.filter(NotificationModel.notification_type == type.value)
        return [to_notification(n) for n in query.order_by(NotificationModel.id).all()]

    def all_notifications(self) -> List[Notification]:
        rows = self.session.query(NotificationModel).order_by(NotificationModel.id).all()
        return [to_notification(n) for n in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_record(self, record: VaccinationRecord) -> VaccinationRecord:
        """
        Insert an applied dose

        Raises:
            IntegrityError: If the same dose is already stored for the child
        """
        row = RecordModel(
            child_id=record.child_id,
            vaccine_id=record.vaccine_id,
            dose_number=record.dose_number,
            application_date=record.application_date,
            health_center_id=record.health_center_id,
            professional_id=record.professional_id,
            lot=record.lot,
            notes=record.notes,
            reaction_severity=record.reaction_severity.value,
            reaction_description=record.reaction_description
        )
        self.session.add(row)
        self.session.flush()
        return to_record(row)

    def attach_reaction(
        self,
        record_id: int,
        severity: ReactionSeverity,
        description: Optional[str] = None
    ) -> VaccinationRecord:
        row = self._record_row(record_id)
        row.reaction_severity = severity.value
        row.reaction_description = description
        self.session.flush()
        return to_record(row)

    def add_notifications(self, notifications: List[Notification]) -> List[Notification]:
        """Insert new notifications and return them with their ids"""
        rows = [
            NotificationModel(
                child_id=n.child_id,
                vaccine_id=n.vaccine_id,
                dose_number=n.dose_number,
                record_id=n.record_id,
                notification_type=n.type.value,
                priority=n.priority.value,
                state=n.state.value,
                title=n.title,
                message=n.message,
                scheduled_date=n.scheduled_date,
                expiration_date=n.expiration_date,
                created_at=n.created_at,
                sent_at=n.sent_at,
                read_at=n.read_at
            )
            for n in notifications
        ]
        self.session.add_all(rows)
        self.session.flush()
        return [to_notification(r) for r in rows]

    def apply_transitions(self, notifications: List[Notification]) -> int:
        """Store the state and timestamps of already-transitioned notifications"""
        for n in notifications:
            row = self.session.get(NotificationModel, n.id) if n.id is not None else None
            if row is None:
                raise NotificationNotFoundError(n.id)
            row.state = n.state.value
            row.sent_at = n.sent_at
            row.read_at = n.read_at
        self.session.flush()
        return len(notifications)
