from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    SUPERADMIN = "SUPERADMIN"
    CLUBADMIN = "CLUBADMIN"
    ATHLETE = "ATHLETE"
    FEDERATION_ADMIN = "FEDERATION_ADMIN"
    TECHNICAL_INSPECTOR = "TECHNICAL_INSPECTOR"
    WEIGHT_CONTROLLER = "WEIGHT_CONTROLLER"
    RACE_OFFICIAL = "RACE_OFFICIAL"


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PUBLISHED = "PUBLISHED"


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CANCELLED = "CANCELLED"


class CheckInOutcome(str, enum.Enum):
    OK = "OK"
    NOT_OK = "NOT_OK"
    DNS = "DNS"


class InspectionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CONDITIONAL = "CONDITIONAL"
    REJECTED = "REJECTED"


class WeightResult(str, enum.Enum):
    PASS = "PASS"
    UNDERWEIGHT = "UNDERWEIGHT"
    OVERWEIGHT = "OVERWEIGHT"
    FAIL = "FAIL"


def _enum(cls: type[enum.Enum]) -> Enum:
    return Enum(cls, native_enum=False, length=32)


# registrations that still hold a place and a start number
_ACTIVE_REGISTRATION = text("status != 'CANCELLED'")


class Club(Base):
    __tablename__ = "clubs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    users: Mapped[list["User"]] = relationship(back_populates="club")
    events: Mapped[list["Event"]] = relationship(back_populates="club")
    class_templates: Mapped[list["ClubClass"]] = relationship(back_populates="club", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(_enum(Role), nullable=False, default=Role.ATHLETE)
    club_id: Mapped[int | None] = mapped_column(ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    license_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    club: Mapped["Club | None"] = relationship(back_populates="users")
    vehicles: Mapped[list["UserVehicle"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class GlobalClass(Base):
    __tablename__ = "global_classes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_weight: Mapped[float | None] = mapped_column(Float, nullable=True)


class ClubClass(Base):
    __tablename__ = "club_classes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    club: Mapped["Club"] = relationship(back_populates="class_templates")

    __table_args__ = (
        UniqueConstraint("club_id", "name", name="uq_club_class_name"),
    )


class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[EventStatus] = mapped_column(_enum(EventStatus), nullable=False, default=EventStatus.DRAFT)
    # 0 = unlimited
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    registration_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    registration_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    requires_vehicle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    club: Mapped["Club"] = relationship(back_populates="events")
    reviewer: Mapped["User | None"] = relationship(foreign_keys=[reviewed_by_id])
    classes: Mapped[list["EventClass"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", order_by="EventClass.name"
    )
    registrations: Mapped[list["Registration"]] = relationship(back_populates="event", cascade="all, delete-orphan")
    weight_limits: Mapped[list["WeightLimit"]] = relationship(back_populates="event", cascade="all, delete-orphan")
    check_ins: Mapped[list["CheckIn"]] = relationship(back_populates="event", cascade="all, delete-orphan")
    inspections: Mapped[list["TechnicalInspection"]] = relationship(back_populates="event", cascade="all, delete-orphan")
    weight_controls: Mapped[list["WeightControl"]] = relationship(back_populates="event", cascade="all, delete-orphan")


class EventClass(Base):
    __tablename__ = "classes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_weight: Mapped[float | None] = mapped_column(Float, nullable=True)

    event: Mapped["Event"] = relationship(back_populates="classes")
    weight_limit: Mapped["WeightLimit | None"] = relationship(
        back_populates="event_class", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        UniqueConstraint("event_id", "name", name="uq_class_per_event"),
    )


class UserVehicle(Base):
    __tablename__ = "user_vehicles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_number: Mapped[int] = mapped_column(Integer, nullable=False)
    chassis_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transponder_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    license_plate: Mapped[str | None] = mapped_column(String(50), nullable=True)
    engine_volume: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    user: Mapped["User"] = relationship(back_populates="vehicles")

    __table_args__ = (
        UniqueConstraint("user_id", "start_number", name="uq_vehicle_start_number_per_user"),
    )


class Registration(Base):
    __tablename__ = "registrations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False)
    start_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RegistrationStatus] = mapped_column(
        _enum(RegistrationStatus), nullable=False, default=RegistrationStatus.CONFIRMED
    )
    depot_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    needs_power: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    depot_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship()
    event: Mapped["Event"] = relationship(back_populates="registrations")
    event_class: Mapped["EventClass"] = relationship()
    vehicles: Mapped[list["RegistrationVehicle"]] = relationship(
        back_populates="registration", cascade="all, delete-orphan", order_by="RegistrationVehicle.id"
    )
    entry_vehicle: Mapped["EntryVehicle | None"] = relationship(
        back_populates="registration", cascade="all, delete-orphan", uselist=False
    )
    check_in: Mapped["CheckIn | None"] = relationship(back_populates="registration", uselist=False)

    __table_args__ = (
        Index(
            "uq_registrations_user_event_active",
            "user_id",
            "event_id",
            unique=True,
            sqlite_where=_ACTIVE_REGISTRATION,
            postgresql_where=_ACTIVE_REGISTRATION,
        ),
        Index(
            "uq_registrations_event_start_number_active",
            "event_id",
            "start_number",
            unique=True,
            sqlite_where=_ACTIVE_REGISTRATION,
            postgresql_where=_ACTIVE_REGISTRATION,
        ),
    )


class RegistrationVehicle(Base):
    __tablename__ = "registration_vehicles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False)
    user_vehicle_id: Mapped[int] = mapped_column(ForeignKey("user_vehicles.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    start_number: Mapped[int] = mapped_column(Integer, nullable=False)

    registration: Mapped["Registration"] = relationship(back_populates="vehicles")
    user_vehicle: Mapped["UserVehicle"] = relationship()

    __table_args__ = (
        UniqueConstraint("event_id", "start_number", name="uq_registration_vehicle_start_number"),
    )


class EntryVehicle(Base):
    """Vehicle details typed in during registration instead of picked from the garage."""

    __tablename__ = "entry_vehicles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[int] = mapped_column(
        ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    license_plate: Mapped[str | None] = mapped_column(String(50), nullable=True)
    engine_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    fuel_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    registration: Mapped["Registration"] = relationship(back_populates="entry_vehicle")


class CheckIn(Base):
    __tablename__ = "check_ins"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    registration_id: Mapped[int] = mapped_column(
        ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    outcome: Mapped[CheckInOutcome] = mapped_column(_enum(CheckInOutcome), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    checked_in_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    checked_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped["Event"] = relationship(back_populates="check_ins")
    registration: Mapped["Registration"] = relationship(back_populates="check_in")
    checked_in_by: Mapped["User | None"] = relationship(foreign_keys=[checked_in_by_id])

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_check_in_per_event_user"),
    )


class TechnicalInspection(Base):
    __tablename__ = "technical_inspections"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    start_number: Mapped[int] = mapped_column(Integer, nullable=False)
    vehicle_id: Mapped[int | None] = mapped_column(ForeignKey("user_vehicles.id", ondelete="SET NULL"), nullable=True)
    chassis_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    license_plate: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[InspectionStatus] = mapped_column(
        _enum(InspectionStatus), nullable=False, default=InspectionStatus.PENDING
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    inspector_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    club_id: Mapped[int | None] = mapped_column(ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True)
    inspected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped["Event"] = relationship(back_populates="inspections")
    inspector: Mapped["User | None"] = relationship(foreign_keys=[inspector_id])
    club: Mapped["Club | None"] = relationship()

    __table_args__ = (
        UniqueConstraint("event_id", "start_number", name="uq_inspection_per_start_number"),
    )


class WeightLimit(Base):
    __tablename__ = "weight_limits"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    min_weight: Mapped[float] = mapped_column(Float, nullable=False)
    max_weight: Mapped[float] = mapped_column(Float, nullable=False)

    event: Mapped["Event"] = relationship(back_populates="weight_limits")
    event_class: Mapped["EventClass"] = relationship(back_populates="weight_limit")

    __table_args__ = (
        UniqueConstraint("event_id", "class_id", name="uq_weight_limit_per_class"),
    )


class WeightControl(Base):
    __tablename__ = "weight_controls"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    start_number: Mapped[int] = mapped_column(Integer, nullable=False)
    heat: Mapped[str] = mapped_column(String(50), nullable=False, default="TRAINING")
    measured_weight: Mapped[float] = mapped_column(Float, nullable=False)
    result: Mapped[WeightResult] = mapped_column(_enum(WeightResult), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    controller_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    controlled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped["Event"] = relationship(back_populates="weight_controls")
    controller: Mapped["User | None"] = relationship(foreign_keys=[controller_id])

    __table_args__ = (
        UniqueConstraint("event_id", "start_number", "heat", name="uq_weight_control_per_heat"),
        Index("ix_weight_controls_event", "event_id"),
    )
