from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser, assert_event_access
from .errors import Conflict, InvalidClass, NotEligible, NotFound, ValidationError
from .inspections import inspection_applies
from .models import CheckInOutcome, EventStatus, InspectionStatus, RegistrationStatus, WeightResult, utcnow
from .registrations import COUNTED, primary_vehicle
from .schemas import WeightControlRequest, WeightLimitIn
from .settings import settings
from .utils import clean_text

logger = logging.getLogger(__name__)


def classify_weight(measured: float, limit: Optional[models.WeightLimit]) -> Optional[WeightResult]:
    """Verdict implied by the class limit; None when the class has no limit."""
    if limit is None:
        return None
    if measured < limit.min_weight:
        return WeightResult.UNDERWEIGHT
    if measured > limit.max_weight:
        return WeightResult.OVERWEIGHT
    return WeightResult.PASS


def _numbers(reg: models.Registration) -> set[int]:
    return {reg.start_number} | {rv.start_number for rv in reg.vehicles}


# ---------------------------
# Limits
# ---------------------------

def list_weight_limits(session: Session, event: models.Event) -> list[models.WeightLimit]:
    return session.execute(
        select(models.WeightLimit)
        .join(models.EventClass, models.EventClass.id == models.WeightLimit.class_id)
        .where(models.WeightLimit.event_id == event.id)
        .order_by(models.EventClass.name.asc())
    ).scalars().all()


def _limits_by_class(session: Session, event_id: int) -> dict[int, models.WeightLimit]:
    rows = session.execute(select(models.WeightLimit).where(models.WeightLimit.event_id == event_id)).scalars()
    return {wl.class_id: wl for wl in rows}


def replace_weight_limits(
    session: Session, event: models.Event, limits: list[WeightLimitIn], actor: CurrentUser
) -> list[models.WeightLimit]:
    """Drop every limit of the event and store the given set, all in one transaction."""
    assert_event_access(actor, event)
    class_ids = {c.id for c in event.classes}
    seen: set[int] = set()
    for wl in limits:
        if wl.class_id not in class_ids:
            raise InvalidClass(f"Class {wl.class_id} does not belong to this event")
        if wl.class_id in seen:
            raise ValidationError("Each class can only have one weight limit")
        seen.add(wl.class_id)
        if wl.min_weight < 0 or wl.max_weight < 0:
            raise ValidationError("Weight values cannot be negative")
        if wl.min_weight >= wl.max_weight:
            raise ValidationError("Minimum weight must be less than maximum weight")

    for existing in session.execute(
        select(models.WeightLimit).where(models.WeightLimit.event_id == event.id)
    ).scalars():
        session.delete(existing)
    session.flush()
    created = [
        models.WeightLimit(event_id=event.id, class_id=wl.class_id, min_weight=wl.min_weight, max_weight=wl.max_weight)
        for wl in limits
    ]
    session.add_all(created)
    session.commit()
    logger.info("Event %s weight limits replaced (%d classes)", event.id, len(created))
    return list_weight_limits(session, event)


# ---------------------------
# Eligibility
# ---------------------------

def eligible_registrations(session: Session, event_id: int) -> list[models.Registration]:
    """Participants cleared for the scales: check-in OK and an APPROVED inspection."""
    regs = session.execute(
        select(models.Registration)
        .join(models.CheckIn, models.CheckIn.registration_id == models.Registration.id)
        .where(
            models.Registration.event_id == event_id,
            models.Registration.status.in_(COUNTED),
            models.CheckIn.outcome == CheckInOutcome.OK,
        )
        .order_by(models.Registration.start_number.asc())
    ).scalars().all()
    approved = _approved_inspections(session, event_id)
    return [r for r in regs if _approved_numbers(r, approved)]


def _approved_inspections(session: Session, event_id: int) -> dict[int, models.TechnicalInspection]:
    rows = session.execute(
        select(models.TechnicalInspection).where(
            models.TechnicalInspection.event_id == event_id,
            models.TechnicalInspection.status == InspectionStatus.APPROVED,
        )
    ).scalars()
    return {t.start_number: t for t in rows}


def _approved_numbers(reg: models.Registration, approved: dict[int, models.TechnicalInspection]) -> set[int]:
    return {n for n in _numbers(reg) if n in approved and inspection_applies(approved[n], reg)}


def _readings(session: Session, event_id: int) -> list[models.WeightControl]:
    return session.execute(
        select(models.WeightControl)
        .where(models.WeightControl.event_id == event_id)
        .order_by(models.WeightControl.start_number.asc(), models.WeightControl.heat.asc())
    ).scalars().all()


def _reading_out(wc: models.WeightControl, limit: Optional[models.WeightLimit]) -> dict:
    computed = classify_weight(wc.measured_weight, limit)
    return {
        "id": wc.id,
        "start_number": wc.start_number,
        "heat": wc.heat,
        "measured_weight": wc.measured_weight,
        "result": wc.result.value,
        "limit_result": computed.value if computed else None,
        "notes": wc.notes,
        "controlled_at": wc.controlled_at,
        "controller": wc.controller.name if wc.controller else None,
    }


def _limit_out(limit: Optional[models.WeightLimit]) -> Optional[dict]:
    if limit is None:
        return None
    return {"min_weight": limit.min_weight, "max_weight": limit.max_weight}


def weight_control_overview(session: Session, event: models.Event, actor: CurrentUser) -> dict:
    assert_event_access(actor, event)
    limits = _limits_by_class(session, event.id)
    readings = _readings(session, event.id)
    participants = []
    for reg in eligible_registrations(session, event.id):
        numbers = _numbers(reg)
        limit = limits.get(reg.class_id)
        participants.append(
            {
                "participant_id": reg.id,
                "start_number": reg.start_number,
                "start_numbers": sorted(numbers),
                "name": reg.user.name,
                "class_id": reg.class_id,
                "class": reg.event_class.name,
                "vehicle": primary_vehicle(reg),
                "weight_limit": _limit_out(limit),
                "readings": [_reading_out(wc, limit) for wc in readings if wc.start_number in numbers],
            }
        )
    return {
        "event": {"id": event.id, "title": event.title},
        "participants": participants,
        "weight_limits": [
            {"class_id": wl.class_id, "class": wl.event_class.name, **_limit_out(wl)}
            for wl in list_weight_limits(session, event)
        ],
    }


# ---------------------------
# Readings
# ---------------------------

def process_weight_control(
    session: Session, event: models.Event, payload: WeightControlRequest, actor: CurrentUser
) -> tuple[models.WeightControl, bool, Optional[WeightResult]]:
    """Store a reading for (event, start number, heat).

    The caller's ``result`` is stored as given; the verdict implied by the class
    limit is only returned next to it. Returns (reading, created, limit_result).
    """
    assert_event_access(actor, event)
    reg = session.get(models.Registration, payload.participant_id)
    if not reg or reg.event_id != event.id:
        raise NotFound("Participant not found")
    if payload.measured_weight <= 0:
        raise ValidationError("Measured weight must be positive")
    if payload.start_number not in _numbers(reg):
        raise ValidationError("Start number does not belong to this participant")
    event_class = session.get(models.EventClass, payload.class_id)
    if not event_class or event_class.event_id != event.id:
        raise InvalidClass("Invalid class for this event")
    if reg.id not in {r.id for r in eligible_registrations(session, event.id)}:
        raise NotEligible("Participant must be checked in and technically approved before weight control")
    if payload.start_number not in _approved_numbers(reg, _approved_inspections(session, event.id)):
        raise NotEligible(f"Vehicle #{payload.start_number} has not passed technical inspection")

    heat = clean_text(payload.heat) or settings.DEFAULT_HEAT
    wc = session.execute(
        select(models.WeightControl).where(
            models.WeightControl.event_id == event.id,
            models.WeightControl.start_number == payload.start_number,
            models.WeightControl.heat == heat,
        )
    ).scalar_one_or_none()
    created = wc is None
    if created:
        wc = models.WeightControl(event_id=event.id, start_number=payload.start_number, heat=heat)
        session.add(wc)
    wc.measured_weight = payload.measured_weight
    wc.result = payload.result
    wc.notes = clean_text(payload.notes)
    wc.controller_id = actor.id
    wc.controlled_at = utcnow()
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Weight reading was recorded concurrently; retry")

    limit_result = classify_weight(wc.measured_weight, _limits_by_class(session, event.id).get(event_class.id))
    if limit_result is not None and limit_result != wc.result:
        logger.warning(
            "Event %s #%s %s: recorded %s but limit implies %s",
            event.id, wc.start_number, heat, wc.result.value, limit_result.value,
        )
    logger.info("Event %s: #%s weighed %.1f kg in %s -> %s", event.id, wc.start_number, wc.measured_weight, heat, wc.result.value)
    return wc, created, limit_result


def weight_control_records(session: Session, event: models.Event, actor: CurrentUser) -> list[dict]:
    """Every reading of the event with its participant and class limit, by start number."""
    assert_event_access(actor, event)
    by_number: dict[int, models.Registration] = {}
    for reg in session.execute(
        select(models.Registration).where(
            models.Registration.event_id == event.id,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
    ).scalars():
        for n in _numbers(reg):
            by_number[n] = reg
    limits = _limits_by_class(session, event.id)

    out = []
    for wc in _readings(session, event.id):
        reg = by_number.get(wc.start_number)
        limit = limits.get(reg.class_id) if reg else None
        row = _reading_out(wc, limit)
        row.update(
            {
                "participant_id": reg.id if reg else None,
                "name": reg.user.name if reg else None,
                "class": reg.event_class.name if reg else None,
                "vehicle": primary_vehicle(reg) if reg else None,
                "weight_limit": _limit_out(limit),
            }
        )
        out.append(row)
    return out


def get_weight_record(session: Session, event: models.Event, record_id: int, actor: CurrentUser) -> dict:
    for row in weight_control_records(session, event, actor):
        if row["id"] == record_id:
            return row
    raise NotFound("Weight control record not found")


def weight_stats(session: Session, event_id: int) -> dict:
    total = session.execute(
        select(models.Registration.id).where(
            models.Registration.event_id == event_id,
            models.Registration.status.in_(COUNTED),
        )
    ).scalars().all()
    readings = _readings(session, event_id)
    controlled = len({wc.start_number for wc in readings})
    return {
        "total": len(total),
        "controlled": controlled,
        "passed": sum(1 for wc in readings if wc.result == WeightResult.PASS),
        "failed": sum(1 for wc in readings if wc.result != WeightResult.PASS),
        "pending": max(len(total) - controlled, 0),
    }


def weight_overview(session: Session, actor: CurrentUser) -> list[dict]:
    q = (
        select(models.Event)
        .where(models.Event.status.in_((EventStatus.APPROVED, EventStatus.PUBLISHED)))
        .order_by(models.Event.start_date.asc())
    )
    if actor.is_club_admin:
        q = q.where(models.Event.club_id == actor.club_id)
    return [
        {"id": e.id, "title": e.title, "start_date": e.start_date, "status": e.status.value,
         "stats": weight_stats(session, e.id)}
        for e in session.execute(q).scalars().all()
    ]
