from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from . import events
from .auth import CurrentUser, assert_event_access, get_current_user, login_required, require_roles
from .db import get_session
from .errors import NotFound
from .models import EventStatus, Role
from .realtime import EVENT_UPDATED, broadcaster
from .schemas import (
    EventClassIn,
    EventClassOut,
    EventClassSelection,
    EventCreate,
    EventOut,
    EventReview,
    EventStatusChange,
    EventUpdate,
)

router = APIRouter()

club_admin_required = require_roles(Role.CLUBADMIN)
class_manager_required = require_roles(Role.CLUBADMIN, Role.SUPERADMIN)
federation_required = require_roles(Role.FEDERATION_ADMIN)


def _announce(event, action: str) -> None:
    broadcaster.publish(event.id, EVENT_UPDATED, {"action": action, "status": event.status.value})


@router.get("/events", response_model=list[EventOut])
def events_list(user: CurrentUser = Depends(login_required), session: Session = Depends(get_session)):
    return events.list_events(session, user)

@router.get("/events/public", response_model=list[EventOut])
def events_public(session: Session = Depends(get_session)):
    return events.list_public_events(session)

@router.post("/events", response_model=EventOut, status_code=201)
def events_create(payload: EventCreate, user: CurrentUser = Depends(club_admin_required), session: Session = Depends(get_session)):
    return events.create_event(session, payload, user)

@router.get("/events/{event_id}", response_model=EventOut)
def events_get(
    event_id: int,
    user: Optional[CurrentUser] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    if event.status != EventStatus.PUBLISHED:
        # unpublished events are invisible to the public and to athletes
        if user is None or user.role == Role.ATHLETE:
            raise NotFound("Event not found")
        assert_event_access(user, event)
    return event

@router.put("/events/{event_id}", response_model=EventOut)
def events_edit(
    event_id: int,
    payload: EventUpdate,
    user: CurrentUser = Depends(login_required),
    session: Session = Depends(get_session),
):
    event = events.edit_event(session, event_id, payload, user)
    _announce(event, "edited")
    return event

@router.patch("/events/{event_id}", response_model=EventOut)
def events_change_status(
    event_id: int,
    payload: EventStatusChange,
    user: CurrentUser = Depends(login_required),
    session: Session = Depends(get_session),
):
    event = events.change_status(session, event_id, payload.status, user)
    _announce(event, "published")
    return event

@router.delete("/events/{event_id}")
def events_delete(event_id: int, user: CurrentUser = Depends(login_required), session: Session = Depends(get_session)):
    events.delete_event(session, event_id, user)
    return {"ok": True}

# ---------------------------
# Approval workflow
# ---------------------------

@router.post("/events/{event_id}/approval", response_model=EventOut)
def events_submit(event_id: int, user: CurrentUser = Depends(club_admin_required), session: Session = Depends(get_session)):
    event = events.submit_event(session, event_id, user)
    _announce(event, "submitted")
    return event

@router.put("/events/{event_id}/approval", response_model=EventOut)
def events_review(
    event_id: int,
    payload: EventReview,
    user: CurrentUser = Depends(federation_required),
    session: Session = Depends(get_session),
):
    event = events.review_event(session, event_id, payload.action, payload.rejection_reason, user)
    _announce(event, "approved" if payload.action == "approve" else "rejected")
    return event

@router.get("/federation/events")
def federation_events(
    status: EventStatus = EventStatus.SUBMITTED,
    search: str | None = None,
    club_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: CurrentUser = Depends(federation_required),
    session: Session = Depends(get_session),
):
    result = events.federation_queue(session, status=status, search=search, club_id=club_id, page=page, limit=limit)
    result["events"] = [
        {**EventOut.model_validate(e).model_dump(), "club_name": e.club.name}
        for e in result["events"]
    ]
    return result

# ---------------------------
# Event classes
# ---------------------------

@router.get("/events/{event_id}/classes", response_model=list[EventClassOut])
def event_classes(event_id: int, session: Session = Depends(get_session)):
    return events.list_event_classes(session, event_id)

@router.post("/events/{event_id}/classes", response_model=EventClassOut, status_code=201)
def event_classes_add(
    event_id: int,
    payload: EventClassIn,
    user: CurrentUser = Depends(class_manager_required),
    session: Session = Depends(get_session),
):
    return events.add_event_class(session, event_id, payload, user)

@router.put("/events/{event_id}/classes", response_model=list[EventClassOut])
def event_classes_replace(
    event_id: int,
    payload: EventClassSelection,
    user: CurrentUser = Depends(class_manager_required),
    session: Session = Depends(get_session),
):
    return events.replace_event_classes(session, event_id, payload.club_class_ids, user)

@router.put("/events/{event_id}/classes/{class_id}", response_model=EventClassOut)
def event_classes_update(
    event_id: int,
    class_id: int,
    payload: EventClassIn,
    user: CurrentUser = Depends(class_manager_required),
    session: Session = Depends(get_session),
):
    return events.update_event_class(session, event_id, class_id, payload, user)

@router.delete("/events/{event_id}/classes/{class_id}")
def event_classes_delete(
    event_id: int,
    class_id: int,
    user: CurrentUser = Depends(class_manager_required),
    session: Session = Depends(get_session),
):
    events.delete_event_class(session, event_id, class_id, user)
    return {"ok": True}
