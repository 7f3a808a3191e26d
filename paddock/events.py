from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser, assert_event_owner
from .errors import Conflict, Forbidden, InvalidState, InvalidTransition, NotFound, ValidationError
from .models import EventStatus, Role, utcnow
from .schemas import EventClassIn, EventCreate, EventUpdate
from .utils import as_utc, clean_text

logger = logging.getLogger(__name__)

S = EventStatus

# action -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[EventStatus], EventStatus]] = {
    "submit": (frozenset({S.DRAFT, S.REJECTED}), S.SUBMITTED),
    "approve": (frozenset({S.SUBMITTED}), S.APPROVED),
    "reject": (frozenset({S.SUBMITTED}), S.REJECTED),
    "publish": (frozenset({S.APPROVED}), S.PUBLISHED),
}

EDITABLE = frozenset({S.DRAFT, S.REJECTED, S.APPROVED})
DELETABLE = frozenset({S.DRAFT, S.REJECTED})

REVIEWED = (S.SUBMITTED, S.APPROVED, S.REJECTED)


def _check_dates(start: datetime, end: datetime, reg_start: datetime | None, reg_end: datetime | None) -> None:
    if as_utc(end) < as_utc(start):
        raise ValidationError("End date must not be before start date")
    if reg_start is not None and reg_end is not None and as_utc(reg_end) < as_utc(reg_start):
        raise ValidationError("Registration end date must not be before registration start date")


def _require(event: models.Event, action: str, allowed: frozenset[EventStatus]) -> None:
    if event.status not in allowed:
        raise InvalidTransition(action, event.status, allowed)


# ---------------------------
# Events
# ---------------------------

def get_event(session: Session, event_id: int) -> models.Event:
    event = session.get(models.Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


def list_events(session: Session, actor: CurrentUser) -> list[models.Event]:
    q = select(models.Event).order_by(models.Event.start_date.asc(), models.Event.id.asc())
    if actor.is_club_admin:
        q = q.where(models.Event.club_id == actor.club_id)
    return session.execute(q).scalars().all()


def list_public_events(session: Session) -> list[models.Event]:
    return session.execute(
        select(models.Event)
        .where(models.Event.status == S.PUBLISHED)
        .order_by(models.Event.start_date.asc(), models.Event.id.asc())
    ).scalars().all()


def create_event(session: Session, payload: EventCreate, actor: CurrentUser) -> models.Event:
    if not actor.is_club_admin or actor.club_id is None:
        raise Forbidden("Only club admins can create events")
    title = clean_text(payload.title)
    if not title:
        raise ValidationError("Title is required")
    _check_dates(payload.start_date, payload.end_date, payload.registration_start_date, payload.registration_end_date)

    event = models.Event(
        club_id=actor.club_id,
        title=title,
        description=clean_text(payload.description),
        location=clean_text(payload.location),
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=S.DRAFT,
        max_participants=payload.max_participants,
        registration_start_date=payload.registration_start_date,
        registration_end_date=payload.registration_end_date,
        requires_vehicle=payload.requires_vehicle,
    )
    event.classes = _copy_club_classes(session, actor.club_id, payload.class_ids)
    session.add(event)
    session.commit()
    logger.info("Club %s created event %s (%s)", actor.club_id, event.id, event.title)
    return event


def edit_event(session: Session, event_id: int, payload: EventUpdate, actor: CurrentUser) -> models.Event:
    event = get_event(session, event_id)
    assert_event_owner(actor, event)
    if payload.status is not None:
        raise ValidationError("Status cannot be changed by editing; use the approval workflow")
    _require(event, "edit", EDITABLE)

    changes = payload.model_dump(exclude_unset=True, exclude={"status"})
    if "title" in changes:
        title = clean_text(changes["title"])
        if not title:
            raise ValidationError("Title is required")
        changes["title"] = title
    for key in ("start_date", "end_date", "max_participants", "requires_vehicle"):
        if key in changes and changes[key] is None:
            raise ValidationError(f"{key} cannot be empty")
    for key, value in changes.items():
        setattr(event, key, value)
    _check_dates(event.start_date, event.end_date, event.registration_start_date, event.registration_end_date)
    session.commit()
    return event


def delete_event(session: Session, event_id: int, actor: CurrentUser) -> None:
    event = get_event(session, event_id)
    assert_event_owner(actor, event)
    _require(event, "delete", DELETABLE)
    session.delete(event)
    session.commit()
    logger.info("Deleted event %s", event_id)


# ---------------------------
# Lifecycle
# ---------------------------

def _transition(session: Session, event: models.Event, action: str) -> models.Event:
    sources, target = TRANSITIONS[action]
    _require(event, action, sources)
    previous = event.status
    event.status = target
    if action == "submit":
        event.submitted_at = utcnow()
        event.reviewed_at = None
        event.reviewed_by_id = None
        event.rejection_reason = None
    session.commit()
    logger.info("Event %s: %s -> %s (%s)", event.id, previous.value, target.value, action)
    return event


def submit_event(session: Session, event_id: int, actor: CurrentUser) -> models.Event:
    event = get_event(session, event_id)
    assert_event_owner(actor, event)
    return _transition(session, event, "submit")


def _assert_reviewer(actor: CurrentUser) -> None:
    if actor.role != Role.FEDERATION_ADMIN:
        raise Forbidden("Only federation admins can review events")


def approve_event(session: Session, event_id: int, actor: CurrentUser) -> models.Event:
    _assert_reviewer(actor)
    event = get_event(session, event_id)
    _require(event, "approve", TRANSITIONS["approve"][0])
    event.reviewed_at = utcnow()
    event.reviewed_by_id = actor.id
    event.rejection_reason = None
    return _transition(session, event, "approve")


def reject_event(session: Session, event_id: int, reason: str | None, actor: CurrentUser) -> models.Event:
    _assert_reviewer(actor)
    reason = clean_text(reason)
    if not reason:
        raise ValidationError("Rejection reason is required when rejecting an event")
    event = get_event(session, event_id)
    _require(event, "reject", TRANSITIONS["reject"][0])
    event.reviewed_at = utcnow()
    event.reviewed_by_id = actor.id
    event.rejection_reason = reason
    return _transition(session, event, "reject")


def review_event(session: Session, event_id: int, action: str, reason: str | None, actor: CurrentUser) -> models.Event:
    if action == "approve":
        return approve_event(session, event_id, actor)
    if action == "reject":
        return reject_event(session, event_id, reason, actor)
    raise ValidationError('Invalid action. Must be "approve" or "reject"')


def publish_event(session: Session, event_id: int, actor: CurrentUser) -> models.Event:
    event = get_event(session, event_id)
    assert_event_owner(actor, event)
    return _transition(session, event, "publish")


def change_status(session: Session, event_id: int, status: EventStatus, actor: CurrentUser) -> models.Event:
    """Direct status change; the only target a club may request this way is PUBLISHED."""
    if status != S.PUBLISHED:
        raise ValidationError("Only publishing is allowed through a status change")
    return publish_event(session, event_id, actor)


def federation_queue(
    session: Session,
    status: EventStatus = S.SUBMITTED,
    search: str | None = None,
    club_id: int | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    if status not in REVIEWED:
        raise ValidationError("Status must be SUBMITTED, APPROVED or REJECTED")
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    conditions = [models.Event.status == status]
    if club_id is not None:
        conditions.append(models.Event.club_id == club_id)
    term = clean_text(search)
    if term:
        pattern = f"%{term}%"
        conditions.append(
            or_(
                models.Event.title.ilike(pattern),
                models.Event.description.ilike(pattern),
                models.Event.location.ilike(pattern),
                models.Club.name.ilike(pattern),
            )
        )

    base = select(models.Event).join(models.Club, models.Club.id == models.Event.club_id).where(*conditions)
    total = session.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    events = session.execute(
        base.order_by(models.Event.submitted_at.desc(), models.Event.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    counts = dict(
        session.execute(
            select(models.Event.status, func.count())
            .where(models.Event.status.in_(REVIEWED))
            .group_by(models.Event.status)
        ).all()
    )
    return {
        "events": events,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
        "summary": {s.value.lower(): counts.get(s, 0) for s in REVIEWED},
    }


# ---------------------------
# Event classes
# ---------------------------

def _assert_class_manager(actor: CurrentUser, event: models.Event) -> None:
    if actor.is_superadmin:
        return
    if actor.is_club_admin and actor.club_id == event.club_id:
        return
    raise Forbidden("Forbidden")


def _copy_club_classes(session: Session, club_id: int, club_class_ids: list[int]) -> list[models.EventClass]:
    wanted = list(dict.fromkeys(club_class_ids))
    if not wanted:
        return []
    templates = session.execute(
        select(models.ClubClass).where(
            models.ClubClass.id.in_(wanted),
            models.ClubClass.club_id == club_id,
            models.ClubClass.is_active.is_(True),
        )
    ).scalars().all()
    if len(templates) != len(wanted):
        raise NotFound("One or more selected classes were not found for this club")
    return [
        models.EventClass(name=t.name, min_weight=t.min_weight, max_weight=t.max_weight)
        for t in sorted(templates, key=lambda t: t.name)
    ]


def _has_registrations(session: Session, event_id: int, class_id: int | None = None) -> bool:
    q = select(func.count(models.Registration.id)).where(models.Registration.event_id == event_id)
    if class_id is not None:
        q = q.where(models.Registration.class_id == class_id)
    return session.execute(q).scalar_one() > 0


def _get_event_class(session: Session, event_id: int, class_id: int) -> models.EventClass:
    ec = session.get(models.EventClass, class_id)
    if not ec or ec.event_id != event_id:
        raise NotFound("Class not found")
    return ec


def _commit_class_change(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A class with this name already exists for this event")


def _weight_band(payload: EventClassIn) -> None:
    if (payload.min_weight is not None and payload.min_weight < 0) or (
        payload.max_weight is not None and payload.max_weight < 0
    ):
        raise ValidationError("Weight values cannot be negative")
    if payload.min_weight is not None and payload.max_weight is not None and payload.min_weight >= payload.max_weight:
        raise ValidationError("Minimum weight must be less than maximum weight")


def list_event_classes(session: Session, event_id: int) -> list[models.EventClass]:
    return get_event(session, event_id).classes


def add_event_class(session: Session, event_id: int, payload: EventClassIn, actor: CurrentUser) -> models.EventClass:
    event = get_event(session, event_id)
    _assert_class_manager(actor, event)
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Class name is required")
    _weight_band(payload)
    if any(c.name == name for c in event.classes):
        raise Conflict("A class with this name already exists for this event")
    ec = models.EventClass(event_id=event.id, name=name, min_weight=payload.min_weight, max_weight=payload.max_weight)
    session.add(ec)
    _commit_class_change(session)
    return ec


def update_event_class(
    session: Session, event_id: int, class_id: int, payload: EventClassIn, actor: CurrentUser
) -> models.EventClass:
    event = get_event(session, event_id)
    _assert_class_manager(actor, event)
    ec = _get_event_class(session, event_id, class_id)
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Class name is required")
    _weight_band(payload)
    if any(c.name == name and c.id != ec.id for c in event.classes):
        raise Conflict("A class with this name already exists for this event")
    ec.name = name
    ec.min_weight = payload.min_weight
    ec.max_weight = payload.max_weight
    _commit_class_change(session)
    return ec


def delete_event_class(session: Session, event_id: int, class_id: int, actor: CurrentUser) -> None:
    event = get_event(session, event_id)
    _assert_class_manager(actor, event)
    ec = _get_event_class(session, event_id, class_id)
    if _has_registrations(session, event_id, class_id):
        raise InvalidState("Cannot delete a class that has registrations")
    session.delete(ec)
    session.commit()


def replace_event_classes(
    session: Session, event_id: int, club_class_ids: list[int], actor: CurrentUser
) -> list[models.EventClass]:
    """Swap the event's whole class set for copies of the selected club templates."""
    event = get_event(session, event_id)
    _assert_class_manager(actor, event)
    if _has_registrations(session, event_id):
        raise InvalidState("Classes cannot be replaced once the event has registrations")
    replacement = _copy_club_classes(session, event.club_id, club_class_ids)
    event.classes.clear()
    session.flush()
    # limits hang off the removed classes and went with them
    session.expire(event, ["weight_limits"])
    event.classes.extend(replacement)
    session.commit()
    logger.info("Event %s classes replaced (%d selected)", event.id, len(replacement))
    return event.classes
