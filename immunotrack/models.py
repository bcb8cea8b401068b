"""
ImmunoTrack Database Models
SQLAlchemy 2.0 ORM models for children, the esquema, applied doses and notifications
"""

from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, String, Text,
    Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# =============================================================================
# Family Models
# =============================================================================

class Guardian(Base, TimestampMixin):
    """Parent or legal guardian responsible for one or more children"""
    __tablename__ = "guardians"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    national_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(100))

    children: Mapped[List["Child"]] = relationship(
        "Child",
        back_populates="guardian",
        lazy="select"
    )

    def __repr__(self) -> str:
        return f"<Guardian(id={self.id}, name={self.last_name}, {self.first_name})>"


class Child(Base, TimestampMixin):
    """Child enrolled in the immunization program"""
    __tablename__ = "children"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    guardian_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("guardians.id", ondelete="SET NULL"),
        index=True
    )

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    sex: Mapped[Optional[str]] = mapped_column(String(1))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    guardian: Mapped[Optional["Guardian"]] = relationship("Guardian", back_populates="children")
    vaccination_records: Mapped[List["VaccinationRecord"]] = relationship(
        "VaccinationRecord",
        back_populates="child",
        order_by="VaccinationRecord.application_date",
        lazy="select"
    )

    __table_args__ = (
        Index("idx_child_active", "is_active"),
        Index("idx_child_name", "last_name", "first_name"),
    )

    def __repr__(self) -> str:
        return f"<Child(id={self.id}, birth_date={self.birth_date})>"


# =============================================================================
# Esquema Models
# =============================================================================

class Vaccine(Base, TimestampMixin):
    """Vaccine definition and series length"""
    __tablename__ = "vaccines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    total_doses: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    schedule_entries: Mapped[List["ScheduleEntry"]] = relationship(
        "ScheduleEntry",
        back_populates="vaccine",
        order_by="ScheduleEntry.dose_number",
        lazy="select"
    )

    __table_args__ = (
        CheckConstraint("total_doses >= 1", name="positive_total_doses"),
    )

    def __repr__(self) -> str:
        return f"<Vaccine(id={self.id}, code={self.code}, doses={self.total_doses})>"


class ScheduleEntry(Base, TimestampMixin):
    """Row of the national esquema"""
    __tablename__ = "schedule_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    vaccine_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("vaccines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    dose_number: Mapped[int] = mapped_column(Integer, nullable=False)
    target_age_days: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    min_age_days: Mapped[Optional[int]] = mapped_column(Integer)
    max_age_days: Mapped[Optional[int]] = mapped_column(Integer)
    min_interval_days: Mapped[Optional[int]] = mapped_column(Integer)
    age_description: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    is_booster: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    vaccine: Mapped["Vaccine"] = relationship("Vaccine", back_populates="schedule_entries")

    __table_args__ = (
        UniqueConstraint("vaccine_id", "dose_number", name="uq_schedule_vaccine_dose"),
        CheckConstraint("dose_number >= 1", name="positive_dose_number"),
        CheckConstraint("target_age_days >= 0", name="non_negative_target_age"),
        Index("idx_schedule_age_active", "target_age_days", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<ScheduleEntry(vaccine_id={self.vaccine_id}, dose={self.dose_number}, age={self.target_age_days})>"


# =============================================================================
# Vaccination Records
# =============================================================================

class VaccinationRecord(Base, TimestampMixin):
    """Dose applied to a child"""
    __tablename__ = "vaccination_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    child_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("children.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    vaccine_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("vaccines.id"),
        nullable=False,
        index=True
    )

    dose_number: Mapped[int] = mapped_column(Integer, nullable=False)
    application_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Administering metadata
    health_center_id: Mapped[Optional[int]] = mapped_column(Integer)
    professional_id: Mapped[Optional[int]] = mapped_column(Integer)
    lot: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Adverse reaction
    reaction_severity: Mapped[str] = mapped_column(String(20), default="NONE", nullable=False)
    reaction_description: Mapped[Optional[str]] = mapped_column(Text)

    child: Mapped["Child"] = relationship("Child", back_populates="vaccination_records")

    __table_args__ = (
        # Serializes concurrent attempts to record the same dose
        UniqueConstraint("child_id", "vaccine_id", "dose_number", name="uq_record_child_vaccine_dose"),
        Index("idx_record_child_vaccine", "child_id", "vaccine_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<VaccinationRecord(id={self.id}, child_id={self.child_id}, "
            f"vaccine_id={self.vaccine_id}, dose={self.dose_number})>"
        )


# =============================================================================
# Notifications
# =============================================================================

class Notification(Base):
    """Notification audit trail; rows are transitioned, never deleted"""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    child_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("children.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    vaccine_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("vaccines.id"))
    dose_number: Mapped[Optional[int]] = mapped_column(Integer)
    record_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("vaccination_records.id"))

    notification_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    state: Mapped[str] = mapped_column(String(10), default="PENDING", nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_notification_natural_key", "child_id", "vaccine_id", "notification_type", "dose_number"),
        Index("idx_notification_child_state", "child_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.notification_type}, state={self.state})>"
