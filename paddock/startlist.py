from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser, assert_event_access
from .inspections import inspection_applies
from .models import CheckInOutcome, InspectionStatus
from .registrations import COUNTED, primary_vehicle
from .utils import as_utc

READY = "ready"
PENDING_TECHNICAL = "pending_technical"
PENDING_CHECKIN = "pending_checkin"
PENDING = "pending"


@dataclass
class StartListEntry:
    registration_id: int
    start_number: int
    driver_name: str
    driver_email: str
    license_number: Optional[str]
    class_id: int
    class_name: str
    vehicle: Optional[dict]
    technical_status: Optional[str]
    technical_inspected_at: Optional[datetime]
    checked_in: bool
    checked_in_at: Optional[datetime]
    readiness: str


@dataclass
class StartList:
    event_id: int
    event_title: str
    entries: list[StartListEntry] = field(default_factory=list)

    @property
    def stats(self) -> dict:
        buckets = Counter(e.readiness for e in self.entries)
        return {
            "total": len(self.entries),
            "ready_to_race": buckets[READY],
            "pending_technical": buckets[PENDING_TECHNICAL],
            "pending_checkin": buckets[PENDING_CHECKIN],
            "by_class": dict(Counter(e.class_name for e in self.entries)),
        }

    def as_dict(self) -> dict:
        return {
            "event": {"id": self.event_id, "title": self.event_title},
            "participants": [asdict(e) for e in self.entries],
            "stats": self.stats,
        }


def readiness(checked_in: bool, approved: bool) -> str:
    if checked_in and approved:
        return READY
    if checked_in:
        return PENDING_TECHNICAL
    if approved:
        return PENDING_CHECKIN
    return PENDING


def build_startlist(session: Session, event: models.Event, actor: CurrentUser) -> StartList:
    """Recompute the start list from registrations, check-ins and inspections."""
    assert_event_access(actor, event)
    regs = session.execute(
        select(models.Registration)
        .where(models.Registration.event_id == event.id, models.Registration.status.in_(COUNTED))
        .order_by(models.Registration.start_number.asc())
    ).scalars().all()
    check_ins = {
        c.registration_id: c
        for c in session.execute(select(models.CheckIn).where(models.CheckIn.event_id == event.id)).scalars()
    }
    inspections = {
        t.start_number: t
        for t in session.execute(
            select(models.TechnicalInspection).where(models.TechnicalInspection.event_id == event.id)
        ).scalars()
    }

    out = StartList(event_id=event.id, event_title=event.title)
    for reg in regs:
        numbers = [reg.start_number] + [rv.start_number for rv in reg.vehicles]
        found = [inspections[n] for n in numbers if n in inspections and inspection_applies(inspections[n], reg)]
        latest = max(found, key=lambda t: as_utc(t.inspected_at)) if found else None
        ci = check_ins.get(reg.id)
        checked_in = ci is not None and ci.outcome == CheckInOutcome.OK
        approved = latest is not None and latest.status == InspectionStatus.APPROVED
        out.entries.append(
            StartListEntry(
                registration_id=reg.id,
                start_number=reg.start_number,
                driver_name=reg.user.name,
                driver_email=reg.user.email,
                license_number=reg.user.license_number,
                class_id=reg.class_id,
                class_name=reg.event_class.name,
                vehicle=primary_vehicle(reg),
                technical_status=latest.status.value if latest else None,
                technical_inspected_at=latest.inspected_at if latest else None,
                checked_in=checked_in,
                checked_in_at=ci.checked_in_at if checked_in else None,
                readiness=readiness(checked_in, approved),
            )
        )
    return out
