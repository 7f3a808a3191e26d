from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    CheckInOutcome,
    EventStatus,
    InspectionStatus,
    RegistrationStatus,
    Role,
    WeightResult,
)


# ---------------------------
# Accounts
# ---------------------------

class LoginRequest(BaseModel):
    email: str
    password: str

class AthleteSignup(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    phone: str | None = None
    license_number: str | None = None

class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    role: Role
    club_id: int | None = None
    phone: str | None = None
    license_number: str | None = None

class UserUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    license_number: str | None = None
    is_active: bool | None = None

class UserOut(BaseModel):
    id: int
    email: str
    name: str
    role: Role
    club_id: int | None = None
    phone: str | None = None
    license_number: str | None = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)

class ClubCreate(BaseModel):
    name: str
    city: str | None = None
    country: str | None = None

class ClubOut(BaseModel):
    id: int
    name: str
    city: str | None = None
    country: str | None = None

    model_config = ConfigDict(from_attributes=True)

class ClubUpdate(BaseModel):
    name: str | None = None
    city: str | None = None
    country: str | None = None

class ClubDetailOut(ClubOut):
    users: list[UserOut] = Field(default_factory=list)

class StaffCreate(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    phone: str | None = None

class StaffUpdate(BaseModel):
    email: str
    name: str
    # blank keeps the current password
    password: str | None = None
    phone: str | None = None

class ClassTemplateCreate(BaseModel):
    name: str
    description: str | None = None
    min_weight: float | None = None
    max_weight: float | None = None

class GlobalClassOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    min_weight: float | None = None
    max_weight: float | None = None

    model_config = ConfigDict(from_attributes=True)

class ClubClassOut(GlobalClassOut):
    club_id: int
    is_active: bool


# ---------------------------
# Events
# ---------------------------

class EventCreate(BaseModel):
    title: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime
    max_participants: int = Field(default=0, ge=0)
    registration_start_date: datetime | None = None
    registration_end_date: datetime | None = None
    requires_vehicle: bool = False
    class_ids: list[int] = Field(default_factory=list)

class EventUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    max_participants: int | None = Field(default=None, ge=0)
    registration_start_date: datetime | None = None
    registration_end_date: datetime | None = None
    requires_vehicle: bool | None = None
    status: EventStatus | None = None

class EventStatusChange(BaseModel):
    status: EventStatus

class EventReview(BaseModel):
    action: Literal["approve", "reject"]
    rejection_reason: str | None = None

class EventClassIn(BaseModel):
    name: str
    min_weight: float | None = None
    max_weight: float | None = None

class EventClassOut(EventClassIn):
    id: int
    event_id: int

    model_config = ConfigDict(from_attributes=True)

class EventClassSelection(BaseModel):
    club_class_ids: list[int]

class EventOut(BaseModel):
    id: int
    club_id: int
    title: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime
    status: EventStatus
    max_participants: int
    registration_start_date: datetime | None = None
    registration_end_date: datetime | None = None
    requires_vehicle: bool
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by_id: int | None = None
    rejection_reason: str | None = None
    classes: list[EventClassOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Vehicles & registrations
# ---------------------------

class VehicleIn(BaseModel):
    start_number: int = Field(gt=0)
    make: str
    model: str
    category: str
    chassis_number: str | None = None
    transponder_number: str | None = None
    year: int | None = None
    color: str | None = None
    license_plate: str | None = None
    engine_volume: float | None = None
    weight: float | None = None

class VehicleOut(VehicleIn):
    id: int
    user_id: int

    model_config = ConfigDict(from_attributes=True)

class EntryVehicleIn(BaseModel):
    make: str
    model: str
    category: str
    year: int | None = None
    color: str | None = None
    license_plate: str | None = None
    engine_size: str | None = None
    fuel_type: str | None = None

class RegistrationCreate(BaseModel):
    event_id: int
    class_id: int
    selected_vehicle_ids: list[int] = Field(default_factory=list)
    vehicle: EntryVehicleIn | None = None
    depot_size: str | None = None
    needs_power: bool = False
    depot_notes: str | None = None

class RegistrationVehicleOut(BaseModel):
    id: int
    user_vehicle_id: int
    start_number: int

    model_config = ConfigDict(from_attributes=True)

class RegistrationOut(BaseModel):
    id: int
    user_id: int
    event_id: int
    class_id: int
    start_number: int
    status: RegistrationStatus
    created_at: datetime
    cancelled_at: datetime | None = None
    vehicles: list[RegistrationVehicleOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Processing
# ---------------------------

class CheckInRequest(BaseModel):
    registration_id: int
    status: CheckInOutcome
    notes: str | None = None

class InspectionRequest(BaseModel):
    event_id: int
    start_number: int = Field(gt=0)
    make: str
    model: str
    status: InspectionStatus
    vehicle_id: int | None = None
    chassis_number: str | None = None
    license_plate: str | None = None
    year: int | None = None
    notes: str | None = None

class InspectionOut(BaseModel):
    id: int
    event_id: int
    start_number: int
    vehicle_id: int | None = None
    chassis_number: str | None = None
    license_plate: str | None = None
    make: str
    model: str
    year: int | None = None
    status: InspectionStatus
    notes: str | None = None
    inspector_id: int | None = None
    club_id: int | None = None
    inspected_at: datetime

    model_config = ConfigDict(from_attributes=True)

class WeightLimitIn(BaseModel):
    class_id: int
    min_weight: float
    max_weight: float

class WeightLimitsReplace(BaseModel):
    weight_limits: list[WeightLimitIn]

class WeightControlRequest(BaseModel):
    participant_id: int
    start_number: int = Field(gt=0)
    class_id: int
    measured_weight: float
    result: WeightResult
    heat: str | None = None
    notes: str | None = None

class ExportRequest(BaseModel):
    format: str
