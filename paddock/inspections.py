from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser, assert_event_access
from .errors import Conflict, Forbidden, NotFound, ValidationError
from .models import InspectionStatus, RegistrationStatus, Role, utcnow
from .schemas import InspectionRequest
from .settings import settings
from .utils import as_utc, clean_text

logger = logging.getLogger(__name__)


def _start_number_registered(session: Session, event_id: int, start_number: int) -> bool:
    own = session.execute(
        select(models.Registration.id).where(
            models.Registration.event_id == event_id,
            models.Registration.start_number == start_number,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
    ).first()
    if own is not None:
        return True
    extra = session.execute(
        select(models.RegistrationVehicle.id)
        .join(models.Registration, models.Registration.id == models.RegistrationVehicle.registration_id)
        .where(
            models.RegistrationVehicle.event_id == event_id,
            models.RegistrationVehicle.start_number == start_number,
            models.Registration.status != RegistrationStatus.CANCELLED,
        )
    ).first()
    return extra is not None


def inspection_applies(ins: models.TechnicalInspection, reg: models.Registration) -> bool:
    """Start numbers are reused after a cancellation; only inspections made since ``reg`` took the number count."""
    return ins.event_id == reg.event_id and as_utc(ins.inspected_at) >= as_utc(reg.created_at)


def save_inspection(
    session: Session, payload: InspectionRequest, actor: CurrentUser
) -> tuple[models.TechnicalInspection, bool]:
    """Create or overwrite the inspection for (event, start number); returns (row, created)."""
    if actor.role != Role.TECHNICAL_INSPECTOR:
        raise Forbidden("Only technical inspectors can record inspections")
    make, model = clean_text(payload.make), clean_text(payload.model)
    if not (make and model):
        raise ValidationError("Event, start number, make, model and status are required")

    event = session.get(models.Event, payload.event_id)
    if not event:
        raise NotFound("Event not found")
    if not _start_number_registered(session, event.id, payload.start_number):
        raise NotFound(f"No registration with start number #{payload.start_number} in this event")

    ins = session.execute(
        select(models.TechnicalInspection).where(
            models.TechnicalInspection.event_id == event.id,
            models.TechnicalInspection.start_number == payload.start_number,
        )
    ).scalar_one_or_none()
    created = ins is None
    if created:
        ins = models.TechnicalInspection(
            event_id=event.id,
            start_number=payload.start_number,
            club_id=actor.club_id,
        )
        session.add(ins)

    ins.vehicle_id = payload.vehicle_id
    ins.chassis_number = clean_text(payload.chassis_number)
    ins.license_plate = clean_text(payload.license_plate)
    ins.make = make
    ins.model = model
    ins.year = payload.year
    ins.status = payload.status
    ins.notes = clean_text(payload.notes)
    ins.inspector_id = actor.id
    ins.inspected_at = utcnow()
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Inspection was recorded concurrently; retry")

    logger.info(
        "Event %s: start number %s inspected -> %s (%s)",
        event.id, ins.start_number, ins.status.value, "created" if created else "updated",
    )
    return ins, created


def search_inspections(
    session: Session,
    actor: CurrentUser,
    event_id: int | None = None,
    start_number: int | None = None,
    chassis_number: str | None = None,
    license_plate: str | None = None,
) -> list[models.TechnicalInspection]:
    T = models.TechnicalInspection
    if event_id is not None:
        event = session.get(models.Event, event_id)
        if not event:
            raise NotFound("Event not found")
        assert_event_access(actor, event)
        q = select(T).where(T.event_id == event_id)
        if start_number is not None:
            q = q.where(T.start_number == start_number)
        return session.execute(q.order_by(T.start_number.asc())).scalars().all()

    chassis_number = clean_text(chassis_number)
    license_plate = clean_text(license_plate)
    if chassis_number or license_plate:
        clauses = []
        if chassis_number:
            clauses.append(T.chassis_number.ilike(f"%{chassis_number}%"))
        if license_plate:
            clauses.append(T.license_plate.ilike(f"%{license_plate}%"))
        q = select(T).where(or_(*clauses)).order_by(T.inspected_at.desc()).limit(20)
        return session.execute(q).scalars().all()

    q = select(T).order_by(T.inspected_at.desc()).limit(100)
    if actor.club_id is not None:
        q = q.where(T.club_id == actor.club_id)
    elif not actor.is_superadmin:
        return []
    return session.execute(q).scalars().all()


def inspection_history(
    session: Session,
    chassis_number: str | None = None,
    license_plate: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Every inspection of one vehicle across events and clubs, newest first."""
    chassis_number = clean_text(chassis_number)
    license_plate = clean_text(license_plate)
    if not (chassis_number or license_plate):
        raise ValidationError("Chassis number or license plate is required")

    T = models.TechnicalInspection
    clauses = []
    if chassis_number:
        clauses.append(T.chassis_number == chassis_number)
    if license_plate:
        clauses.append(T.license_plate == license_plate)
    records = session.execute(
        select(T).where(or_(*clauses)).order_by(T.inspected_at.desc(), T.id.desc())
    ).scalars().all()

    now = as_utc(now or utcnow())
    cutoff = now - timedelta(days=settings.INSPECTION_CRITICAL_DAYS)
    counts = Counter(r.status for r in records)
    latest = records[0] if records else None
    vehicle = None
    if latest is not None:
        vehicle = {
            "chassis_number": latest.chassis_number,
            "license_plate": latest.license_plate,
            "make": latest.make,
            "model": latest.model,
            "year": latest.year,
        }
    return {
        "vehicle": vehicle,
        "latest": latest,
        "status_summary": {s.value: counts.get(s, 0) for s in InspectionStatus},
        "total": len(records),
        "has_critical_issues": any(
            r.status == InspectionStatus.REJECTED and as_utc(r.inspected_at) >= cutoff for r in records
        ),
        "recent": records[:10],
        "records": records,
    }
