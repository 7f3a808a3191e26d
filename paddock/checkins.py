from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser, assert_event_access
from .errors import Conflict, NotFound, ValidationError
from .models import CheckInOutcome, EventStatus, RegistrationStatus, utcnow
from .registrations import primary_vehicle
from .utils import clean_text

logger = logging.getLogger(__name__)


def _confirmed(session: Session, event_id: int) -> list[models.Registration]:
    return session.execute(
        select(models.Registration)
        .where(
            models.Registration.event_id == event_id,
            models.Registration.status.in_((RegistrationStatus.CONFIRMED, RegistrationStatus.CHECKED_IN)),
        )
        .order_by(models.Registration.start_number.asc())
    ).scalars().all()


def _check_ins_by_registration(session: Session, event_id: int) -> dict[int, models.CheckIn]:
    rows = session.execute(select(models.CheckIn).where(models.CheckIn.event_id == event_id)).scalars()
    return {c.registration_id: c for c in rows}


def list_checkin_participants(session: Session, event: models.Event, actor: CurrentUser) -> list[dict]:
    assert_event_access(actor, event)
    check_ins = _check_ins_by_registration(session, event.id)
    out = []
    for reg in _confirmed(session, event.id):
        ci = check_ins.get(reg.id)
        out.append(
            {
                "registration_id": reg.id,
                "user_id": reg.user_id,
                "start_number": reg.start_number,
                "name": reg.user.name,
                "email": reg.user.email,
                "license_number": reg.user.license_number,
                "class": reg.event_class.name,
                "registration_status": reg.status.value,
                "vehicle": primary_vehicle(reg),
                "check_in": None if ci is None else {
                    "status": ci.outcome.value,
                    "notes": ci.notes,
                    "checked_in_at": ci.checked_in_at,
                    "checked_in_by": ci.checked_in_by.name if ci.checked_in_by else None,
                },
            }
        )
    return out


def process_checkin(
    session: Session,
    event: models.Event,
    registration_id: int,
    outcome: CheckInOutcome,
    notes: str | None,
    actor: CurrentUser,
) -> tuple[models.CheckIn, bool]:
    """Record the participant's check-in; returns (check_in, created)."""
    assert_event_access(actor, event)
    reg = session.get(models.Registration, registration_id)
    if not reg:
        raise NotFound("Registration not found")
    if reg.event_id != event.id:
        raise ValidationError("Registration does not belong to this event")
    if reg.status == RegistrationStatus.CANCELLED:
        raise ValidationError("Registration is cancelled")

    ci = session.execute(
        select(models.CheckIn).where(models.CheckIn.event_id == event.id, models.CheckIn.user_id == reg.user_id)
    ).scalar_one_or_none()
    created = ci is None
    if created:
        ci = models.CheckIn(event_id=event.id, user_id=reg.user_id, registration_id=reg.id)
        session.add(ci)
    # one row per athlete and event; follow them to a new registration after a cancel
    ci.registration_id = reg.id
    ci.outcome = outcome
    ci.notes = clean_text(notes)
    ci.checked_in_by_id = actor.id
    ci.checked_in_at = utcnow()
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Participant was checked in concurrently; retry")

    logger.info("Event %s: start number %s checked in as %s", event.id, reg.start_number, outcome.value)
    return ci, created


def checkin_stats(session: Session, event_id: int) -> dict:
    regs = _confirmed(session, event_id)
    check_ins = _check_ins_by_registration(session, event_id)
    outcomes = Counter(check_ins[r.id].outcome for r in regs if r.id in check_ins)
    processed = sum(outcomes.values())
    return {
        "total": len(regs),
        "checked_in": outcomes[CheckInOutcome.OK],
        "issues": outcomes[CheckInOutcome.NOT_OK],
        "dns": outcomes[CheckInOutcome.DNS],
        "pending": len(regs) - processed,
    }


def checkin_overview(session: Session, actor: CurrentUser) -> list[dict]:
    q = (
        select(models.Event)
        .where(models.Event.status.in_((EventStatus.APPROVED, EventStatus.PUBLISHED)))
        .order_by(models.Event.start_date.asc())
    )
    if actor.is_club_admin:
        q = q.where(models.Event.club_id == actor.club_id)
    return [
        {
            "id": e.id,
            "title": e.title,
            "location": e.location,
            "start_date": e.start_date,
            "status": e.status.value,
            "stats": checkin_stats(session, e.id),
        }
        for e in session.execute(q).scalars().all()
    ]
