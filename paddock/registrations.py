from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser
from .errors import (
    DuplicateRegistration,
    EventFull,
    Forbidden,
    InvalidClass,
    InvalidState,
    NotFound,
    StartNumberTaken,
    ValidationError,
    VehicleRequired,
    WindowClosed,
)
from .models import EventStatus, RegistrationStatus, Role, utcnow
from .schemas import RegistrationCreate
from .utils import clean_text, lowest_free_number, within_window

logger = logging.getLogger(__name__)

# registrations that take up a place in the field
COUNTED = (RegistrationStatus.CONFIRMED, RegistrationStatus.CHECKED_IN)


def active_registration(session: Session, user_id: int, event_id: int) -> Optional[models.Registration]:
    return session.execute(
        select(models.Registration).where(
            models.Registration.user_id == user_id,
            models.Registration.event_id == event_id,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
    ).scalar_one_or_none()


def participant_count(session: Session, event_id: int) -> int:
    return session.execute(
        select(func.count(models.Registration.id)).where(
            models.Registration.event_id == event_id,
            models.Registration.status.in_(COUNTED),
        )
    ).scalar_one()


def taken_numbers(session: Session, event_id: int) -> set[int]:
    """Start numbers held by non-cancelled registrations and their vehicles."""
    taken = set(
        session.execute(
            select(models.Registration.start_number).where(
                models.Registration.event_id == event_id,
                models.Registration.status != RegistrationStatus.CANCELLED,
            )
        ).scalars().all()
    )
    taken.update(
        session.execute(
            select(models.RegistrationVehicle.start_number)
            .join(models.Registration, models.Registration.id == models.RegistrationVehicle.registration_id)
            .where(
                models.RegistrationVehicle.event_id == event_id,
                models.Registration.status != RegistrationStatus.CANCELLED,
            )
        ).scalars().all()
    )
    return taken


def _selected_vehicles(session: Session, actor: CurrentUser, vehicle_ids: list[int]) -> list[models.UserVehicle]:
    wanted = list(dict.fromkeys(vehicle_ids))
    if not wanted:
        return []
    found = {
        v.id: v
        for v in session.execute(
            select(models.UserVehicle).where(
                models.UserVehicle.id.in_(wanted),
                models.UserVehicle.user_id == actor.id,
            )
        ).scalars()
    }
    missing = [vid for vid in wanted if vid not in found]
    if missing:
        raise NotFound("One or more selected vehicles were not found")
    return [found[vid] for vid in wanted]


def register(
    session: Session,
    actor: CurrentUser,
    payload: RegistrationCreate,
    now: datetime | None = None,
) -> models.Registration:
    if actor.role != Role.ATHLETE:
        raise Forbidden("Only athletes can register for events")
    now = now or utcnow()

    event = session.get(models.Event, payload.event_id)
    if not event:
        raise NotFound("Event not found")
    if event.status != EventStatus.PUBLISHED:
        raise InvalidState("Event is not open for registration")

    window = within_window(now, event.registration_start_date, event.registration_end_date)
    if window == "not_open":
        raise WindowClosed("Registration has not opened yet")
    if window == "closed":
        raise WindowClosed("Registration period has ended")

    if active_registration(session, actor.id, event.id):
        raise DuplicateRegistration("You are already registered for this event")

    if event.max_participants > 0 and participant_count(session, event.id) >= event.max_participants:
        raise EventFull("Event is full")

    event_class = session.get(models.EventClass, payload.class_id)
    if not event_class or event_class.event_id != event.id:
        raise InvalidClass("Invalid class for this event")

    vehicles = _selected_vehicles(session, actor, payload.selected_vehicle_ids)
    taken = taken_numbers(session, event.id)
    if vehicles:
        for v in vehicles:
            if v.start_number in taken:
                raise StartNumberTaken(v.start_number)
        start_number = vehicles[0].start_number
    else:
        start_number = lowest_free_number(taken)

    if event.requires_vehicle and not vehicles and payload.vehicle is None:
        raise VehicleRequired("This event requires a vehicle")

    reg = models.Registration(
        user_id=actor.id,
        event_id=event.id,
        class_id=event_class.id,
        start_number=start_number,
        status=RegistrationStatus.CONFIRMED,
        depot_size=clean_text(payload.depot_size),
        needs_power=payload.needs_power,
        depot_notes=clean_text(payload.depot_notes),
    )
    reg.vehicles = [
        models.RegistrationVehicle(user_vehicle_id=v.id, event_id=event.id, start_number=v.start_number)
        for v in vehicles
    ]
    if payload.vehicle is not None:
        inline = payload.vehicle
        make, model, category = clean_text(inline.make), clean_text(inline.model), clean_text(inline.category)
        if not (make and model and category):
            raise ValidationError("Vehicle make, model and category are required")
        reg.entry_vehicle = models.EntryVehicle(
            make=make,
            model=model,
            category=category,
            year=inline.year,
            color=clean_text(inline.color),
            license_plate=clean_text(inline.license_plate),
            engine_size=clean_text(inline.engine_size),
            fuel_type=clean_text(inline.fuel_type),
        )

    session.add(reg)
    try:
        session.commit()
    except IntegrityError as exc:
        # lost a race with a concurrent registration
        session.rollback()
        if "start_number" in str(exc.orig):
            raise StartNumberTaken(start_number)
        raise DuplicateRegistration("You are already registered for this event")

    logger.info(
        "User %s registered for event %s with start number %s (%d vehicles)",
        actor.id, event.id, start_number, len(vehicles),
    )
    return reg


def get_registration(session: Session, registration_id: int) -> models.Registration:
    reg = session.get(models.Registration, registration_id)
    if not reg:
        raise NotFound("Registration not found")
    return reg


def list_my_registrations(session: Session, actor: CurrentUser) -> list[models.Registration]:
    return session.execute(
        select(models.Registration)
        .where(models.Registration.user_id == actor.id)
        .order_by(models.Registration.created_at.desc(), models.Registration.id.desc())
    ).scalars().all()


def list_event_registrations(session: Session, event_id: int) -> list[models.Registration]:
    return session.execute(
        select(models.Registration)
        .where(
            models.Registration.event_id == event_id,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
        .order_by(models.Registration.start_number.asc())
    ).scalars().all()


def cancel_registration(session: Session, registration_id: int, actor: CurrentUser) -> models.Registration:
    reg = get_registration(session, registration_id)
    if reg.user_id != actor.id and not actor.is_superadmin:
        raise Forbidden("Forbidden")
    if reg.status == RegistrationStatus.CANCELLED:
        raise InvalidState("Registration is already cancelled")
    reg.status = RegistrationStatus.CANCELLED
    reg.cancelled_at = utcnow()
    # vehicle numbers are unique per event regardless of status, so release them
    reg.vehicles.clear()
    session.commit()
    logger.info("Registration %s cancelled by user %s", reg.id, actor.id)
    return reg


def primary_vehicle(reg: models.Registration) -> Optional[dict]:
    """First garage vehicle entered with the registration, else the inline entry vehicle."""
    if reg.vehicles:
        v = reg.vehicles[0].user_vehicle
        return {
            "id": v.id,
            "make": v.make,
            "model": v.model,
            "year": v.year,
            "category": v.category,
            "license_plate": v.license_plate,
            "chassis_number": v.chassis_number,
            "start_number": reg.vehicles[0].start_number,
        }
    if reg.entry_vehicle is not None:
        v = reg.entry_vehicle
        return {
            "id": None,
            "make": v.make,
            "model": v.model,
            "year": v.year,
            "category": v.category,
            "license_plate": v.license_plate,
            "chassis_number": None,
            "start_number": reg.start_number,
        }
    return None
