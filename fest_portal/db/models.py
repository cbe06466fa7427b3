from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    Enum,
    Index,
    JSON,
    Uuid,
    func,
    text,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from fest_portal.utils.datetime_utils import utc_now


class Base(DeclarativeBase):
    pass


# Enums
class Role(str, enum.Enum):
    ADMIN = "admin"
    EVENT_MANAGER = "event_manager"
    FIRST_YEAR_COORDINATOR = "first_year_coordinator"
    SECOND_YEAR_COORDINATOR = "second_year_coordinator"
    THIRD_YEAR_COORDINATOR = "third_year_coordinator"
    FOURTH_YEAR_COORDINATOR = "fourth_year_coordinator"
    STUDENT = "student"


class AcademicYear(str, enum.Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"


class EventCategory(str, enum.Enum):
    ON_STAGE = "on_stage"
    OFF_STAGE = "off_stage"


class EventMode(str, enum.Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class RegistrationMethod(str, enum.Enum):
    STUDENT = "student"
    COORDINATOR = "coordinator"


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses that occupy a registration slot
ACTIVE_REGISTRATION_STATUSES = (
    RegistrationStatus.PENDING,
    RegistrationStatus.APPROVED,
)


def _enum(enum_cls):
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        length=32,
    )


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# Models
class User(Base, AuditMixin):
    """Identity record owned by the identity service."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Relationships
    profile: Mapped[Optional["Profile"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class Profile(Base, AuditMixin):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30))
    # Ordered role names; the first entry is the default active role
    roles: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    is_first_login: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    profile_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="profile")

    __table_args__ = (Index("idx_profiles_user_id", "user_id"),)


class Student(Base, AuditMixin):
    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    roll_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_year: Mapped[AcademicYear] = mapped_column(
        _enum(AcademicYear), nullable=False
    )
    # Unclaimed until account provisioning links a login
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    # Relationships
    registrations: Mapped[List["Registration"]] = relationship(
        back_populates="student", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_students_roll_number", "roll_number"),
        Index("idx_students_academic_year", "academic_year"),
        Index("idx_students_user_id", "user_id"),
    )


class Event(Base, AuditMixin):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[EventCategory] = mapped_column(
        _enum(EventCategory), nullable=False
    )
    mode: Mapped[EventMode] = mapped_column(
        _enum(EventMode), default=EventMode.INDIVIDUAL, nullable=False
    )
    registration_method: Mapped[RegistrationMethod] = mapped_column(
        _enum(RegistrationMethod),
        default=RegistrationMethod.COORDINATOR,
        nullable=False,
    )
    registration_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    max_participants: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL")
    )

    # Relationships
    registrations: Mapped[List["Registration"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "max_participants IS NULL OR max_participants > 0",
            name="ck_events_max_participants_positive",
        ),
        Index("idx_events_category", "category"),
        Index("idx_events_is_active", "is_active"),
    )


class Registration(Base, AuditMixin):
    __tablename__ = "registrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    # Students in the same team share a group id
    group_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    registered_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL")
    )
    status: Mapped[RegistrationStatus] = mapped_column(
        _enum(RegistrationStatus),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )

    # Relationships
    student: Mapped["Student"] = relationship(back_populates="registrations")
    event: Mapped["Event"] = relationship(back_populates="registrations")

    __table_args__ = (
        # At most one non-rejected registration per (student, event)
        Index(
            "uq_registrations_active_student_event",
            "student_id",
            "event_id",
            unique=True,
            sqlite_where=text("status != 'rejected'"),
            postgresql_where=text("status != 'rejected'"),
        ),
        Index("idx_registrations_student_status", "student_id", "status"),
        Index("idx_registrations_event_id", "event_id"),
    )


class Setting(Base):
    __tablename__ = "settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ActivityLog(Base):
    """Append-only audit record."""

    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Null means the event was initiated by the system
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL")
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        # Set in Python for sub-second resolution; listings order by it
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_activity_logs_user_id", "user_id"),
        Index("idx_activity_logs_action", "action"),
        Index("idx_activity_logs_created_at", "created_at"),
    )


class SessionLoginMarker(Base):
    """One row per session whose login has already been audited."""

    __tablename__ = "session_login_markers"

    session_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
