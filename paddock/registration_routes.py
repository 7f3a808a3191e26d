from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import events, registrations
from .auth import CurrentUser, assert_event_access, login_required, require_roles
from .db import get_session
from .models import Role
from .realtime import PARTICIPANT_REGISTERED, broadcaster
from .schemas import RegistrationCreate, RegistrationOut

router = APIRouter()

athlete_required = require_roles(Role.ATHLETE)
organiser_required = require_roles(Role.CLUBADMIN, Role.SUPERADMIN)


@router.post("/registrations", response_model=RegistrationOut, status_code=201)
def registrations_create(
    payload: RegistrationCreate,
    user: CurrentUser = Depends(athlete_required),
    session: Session = Depends(get_session),
):
    reg = registrations.register(session, user, payload)
    broadcaster.publish(
        reg.event_id,
        PARTICIPANT_REGISTERED,
        {"registrationId": reg.id, "startNumber": reg.start_number, "name": user.name},
    )
    return reg

@router.get("/registrations/mine", response_model=list[RegistrationOut])
def registrations_mine(user: CurrentUser = Depends(athlete_required), session: Session = Depends(get_session)):
    return registrations.list_my_registrations(session, user)

@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationOut)
def registrations_cancel(
    registration_id: int,
    user: CurrentUser = Depends(login_required),
    session: Session = Depends(get_session),
):
    return registrations.cancel_registration(session, registration_id, user)

@router.get("/events/{event_id}/registrations")
def event_registrations(
    event_id: int,
    user: CurrentUser = Depends(organiser_required),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    assert_event_access(user, event)
    return [
        {
            **RegistrationOut.model_validate(r).model_dump(),
            "name": r.user.name,
            "email": r.user.email,
            "class": r.event_class.name,
            "vehicle": registrations.primary_vehicle(r),
        }
        for r in registrations.list_event_registrations(session, event_id)
    ]
