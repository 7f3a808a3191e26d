from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from . import events, exports
from .auth import CurrentUser, assert_event_access, require_roles
from .db import get_session
from .errors import ValidationError
from .models import Role
from .realtime import event_stream, parse_last_event_id
from .schemas import ExportRequest
from .startlist import build_startlist

router = APIRouter()

organiser_required = require_roles(Role.CLUBADMIN, Role.SUPERADMIN)
stream_viewers = require_roles(
    Role.CLUBADMIN,
    Role.SUPERADMIN,
    Role.RACE_OFFICIAL,
    Role.TECHNICAL_INSPECTOR,
    Role.WEIGHT_CONTROLLER,
)


@router.get("/events/{event_id}/startlist")
def startlist(event_id: int, user: CurrentUser = Depends(organiser_required), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    return build_startlist(session, event, user).as_dict()

@router.post("/events/{event_id}/startlist/export")
def startlist_export(
    event_id: int,
    payload: ExportRequest,
    user: CurrentUser = Depends(organiser_required),
    session: Session = Depends(get_session),
):
    fmt = (payload.format or "").strip().lower()
    if fmt not in ("csv", "pdf"):
        raise ValidationError('Unsupported export format; use "csv" or "pdf"')
    event = events.get_event(session, event_id)
    sl = build_startlist(session, event, user)
    if fmt == "csv":
        return exports.csv_response("startlist.csv", exports.startlist_csv(sl))
    # "pdf" is a printable HTML page; the browser does the printing
    return exports.html_response("startlist.html", exports.startlist_html(sl, event))

def _streamable_event(
    event_id: int,
    user: CurrentUser = Depends(stream_viewers),
    session: Session = Depends(get_session),
) -> int:
    # sync dependency: the lookup runs in the threadpool, not on the event loop
    event = events.get_event(session, event_id)
    assert_event_access(user, event)
    return event.id

@router.get("/events/{event_id}/sse")
async def sse(
    request: Request,
    event_id: int = Depends(_streamable_event),
    last_event_id: str | None = Header(default=None),
):
    return StreamingResponse(
        event_stream(request, event_id, last_seen=parse_last_event_id(last_event_id)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
