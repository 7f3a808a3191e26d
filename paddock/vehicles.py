from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser
from .errors import Conflict, InvalidState, NotFound, ValidationError
from .models import RegistrationStatus
from .schemas import VehicleIn
from .utils import clean_text


def list_vehicles(session: Session, actor: CurrentUser) -> list[models.UserVehicle]:
    return session.execute(
        select(models.UserVehicle)
        .where(models.UserVehicle.user_id == actor.id)
        .order_by(models.UserVehicle.start_number.asc())
    ).scalars().all()


def get_own_vehicle(session: Session, vehicle_id: int, actor: CurrentUser) -> models.UserVehicle:
    v = session.get(models.UserVehicle, vehicle_id)
    if not v or v.user_id != actor.id:
        raise NotFound("Vehicle not found")
    return v


def _apply(vehicle: models.UserVehicle, payload: VehicleIn) -> None:
    data = payload.model_dump()
    for key in ("make", "model", "category"):
        data[key] = clean_text(data[key])
        if not data[key]:
            raise ValidationError(f"{key.capitalize()} is required")
    for key in ("chassis_number", "transponder_number", "color", "license_plate"):
        data[key] = clean_text(data[key])
    for key, value in data.items():
        setattr(vehicle, key, value)


def _number_in_use(session: Session, actor: CurrentUser, start_number: int, exclude_id: int | None = None) -> bool:
    q = select(models.UserVehicle.id).where(
        models.UserVehicle.user_id == actor.id,
        models.UserVehicle.start_number == start_number,
    )
    if exclude_id is not None:
        q = q.where(models.UserVehicle.id != exclude_id)
    return session.execute(q).first() is not None


def _commit(session: Session, start_number: int) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict(f"You already have a vehicle with start number #{start_number}")


def create_vehicle(session: Session, payload: VehicleIn, actor: CurrentUser) -> models.UserVehicle:
    if _number_in_use(session, actor, payload.start_number):
        raise Conflict(f"You already have a vehicle with start number #{payload.start_number}")
    v = models.UserVehicle(user_id=actor.id)
    _apply(v, payload)
    session.add(v)
    _commit(session, payload.start_number)
    return v


def update_vehicle(session: Session, vehicle_id: int, payload: VehicleIn, actor: CurrentUser) -> models.UserVehicle:
    v = get_own_vehicle(session, vehicle_id, actor)
    if _number_in_use(session, actor, payload.start_number, exclude_id=v.id):
        raise Conflict(f"You already have a vehicle with start number #{payload.start_number}")
    _apply(v, payload)
    _commit(session, payload.start_number)
    return v


def delete_vehicle(session: Session, vehicle_id: int, actor: CurrentUser) -> None:
    v = get_own_vehicle(session, vehicle_id, actor)
    in_use = session.execute(
        select(func.count(models.RegistrationVehicle.id))
        .join(models.Registration, models.Registration.id == models.RegistrationVehicle.registration_id)
        .where(
            models.RegistrationVehicle.user_vehicle_id == v.id,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
    ).scalar_one()
    if in_use:
        raise InvalidState("Vehicle is entered in an active registration")
    session.delete(v)
    session.commit()
