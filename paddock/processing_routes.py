from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from . import checkins, events, exports, inspections, weights
from .auth import CurrentUser, assert_event_access, require_roles
from .db import get_session
from .models import Role
from .realtime import CHECKIN_UPDATED, TECHNICAL_UPDATED, WEIGHT_UPDATED, broadcaster
from .schemas import CheckInRequest, InspectionOut, InspectionRequest, WeightControlRequest, WeightLimitsReplace

router = APIRouter()

checkin_staff = require_roles(Role.CLUBADMIN, Role.SUPERADMIN, Role.RACE_OFFICIAL)
inspection_readers = require_roles(Role.TECHNICAL_INSPECTOR, Role.CLUBADMIN, Role.SUPERADMIN)
inspector_required = require_roles(Role.TECHNICAL_INSPECTOR)
weight_staff = require_roles(Role.WEIGHT_CONTROLLER, Role.CLUBADMIN, Role.SUPERADMIN)
limit_managers = require_roles(Role.CLUBADMIN, Role.SUPERADMIN)


def _inspection(ins) -> dict:
    return InspectionOut.model_validate(ins).model_dump()

# ---------------------------
# Check-in
# ---------------------------

@router.get("/checkin/overview")
def checkin_overview(user: CurrentUser = Depends(checkin_staff), session: Session = Depends(get_session)):
    return checkins.checkin_overview(session, user)

@router.get("/events/{event_id}/checkin")
def checkin_list(event_id: int, user: CurrentUser = Depends(checkin_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    participants = checkins.list_checkin_participants(session, event, user)
    return {
        "event": {"id": event.id, "title": event.title},
        "participants": participants,
        "stats": checkins.checkin_stats(session, event.id),
    }

@router.post("/events/{event_id}/checkin")
def checkin_process(
    event_id: int,
    payload: CheckInRequest,
    response: Response,
    user: CurrentUser = Depends(checkin_staff),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    ci, created = checkins.process_checkin(session, event, payload.registration_id, payload.status, payload.notes, user)
    response.status_code = 201 if created else 200
    body = {
        "id": ci.id,
        "registration_id": ci.registration_id,
        "user_id": ci.user_id,
        "status": ci.outcome.value,
        "notes": ci.notes,
        "checked_in_at": ci.checked_in_at,
    }
    broadcaster.publish(event.id, CHECKIN_UPDATED, body)
    return body

# ---------------------------
# Technical inspection
# ---------------------------

@router.get("/technical-inspections")
def inspections_search(
    event_id: int | None = None,
    start_number: int | None = None,
    chassis_number: str | None = None,
    license_plate: str | None = None,
    user: CurrentUser = Depends(inspection_readers),
    session: Session = Depends(get_session),
):
    rows = inspections.search_inspections(
        session,
        user,
        event_id=event_id,
        start_number=start_number,
        chassis_number=chassis_number,
        license_plate=license_plate,
    )
    return [_inspection(r) for r in rows]

@router.post("/technical-inspections")
def inspections_save(
    payload: InspectionRequest,
    response: Response,
    user: CurrentUser = Depends(inspector_required),
    session: Session = Depends(get_session),
):
    ins, created = inspections.save_inspection(session, payload, user)
    response.status_code = 201 if created else 200
    body = _inspection(ins)
    broadcaster.publish(ins.event_id, TECHNICAL_UPDATED, body)
    return body

@router.get("/technical-inspections/history")
def inspections_history(
    chassis_number: str | None = None,
    license_plate: str | None = None,
    user: CurrentUser = Depends(inspection_readers),
    session: Session = Depends(get_session),
):
    h = inspections.inspection_history(session, chassis_number=chassis_number, license_plate=license_plate)
    h["latest"] = _inspection(h["latest"]) if h["latest"] is not None else None
    h["recent"] = [_inspection(r) for r in h["recent"]]
    h["records"] = [_inspection(r) for r in h["records"]]
    return h

# ---------------------------
# Weight limits & control
# ---------------------------

def _limits_out(rows) -> list[dict]:
    return [
        {"id": wl.id, "class_id": wl.class_id, "class": wl.event_class.name,
         "min_weight": wl.min_weight, "max_weight": wl.max_weight}
        for wl in rows
    ]

@router.get("/events/{event_id}/weight-limits")
def weight_limits(event_id: int, user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    assert_event_access(user, event)
    return _limits_out(weights.list_weight_limits(session, event))

@router.post("/events/{event_id}/weight-limits")
def weight_limits_replace(
    event_id: int,
    payload: WeightLimitsReplace,
    user: CurrentUser = Depends(limit_managers),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    return _limits_out(weights.replace_weight_limits(session, event, payload.weight_limits, user))

@router.get("/weight-control/overview")
def weight_overview(user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    return weights.weight_overview(session, user)

@router.get("/events/{event_id}/weight-control")
def weight_control(event_id: int, user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    return weights.weight_control_overview(session, event, user)

@router.post("/events/{event_id}/weight-control")
def weight_control_process(
    event_id: int,
    payload: WeightControlRequest,
    response: Response,
    user: CurrentUser = Depends(weight_staff),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    wc, created, limit_result = weights.process_weight_control(session, event, payload, user)
    response.status_code = 201 if created else 200
    body = {
        "id": wc.id,
        "participant_id": payload.participant_id,
        "start_number": wc.start_number,
        "heat": wc.heat,
        "measured_weight": wc.measured_weight,
        "result": wc.result.value,
        "limit_result": limit_result.value if limit_result else None,
        "notes": wc.notes,
        "controlled_at": wc.controlled_at,
    }
    broadcaster.publish(event.id, WEIGHT_UPDATED, body)
    return body

@router.get("/events/{event_id}/weight-control/list")
def weight_control_list(event_id: int, user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    return weights.weight_control_records(session, event, user)

@router.get("/events/{event_id}/weight-control/reports")
def weight_control_reports(event_id: int, user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    records = weights.weight_control_records(session, event, user)
    return {
        "event": {"id": event.id, "title": event.title, "location": event.location, "start_date": event.start_date},
        "records": records,
        "stats": weights.weight_stats(session, event.id),
    }

@router.get("/events/{event_id}/weight-control/reports/pdf")
def weight_control_reports_pdf(event_id: int, user: CurrentUser = Depends(weight_staff), session: Session = Depends(get_session)):
    event = events.get_event(session, event_id)
    records = weights.weight_control_records(session, event, user)
    return exports.pdf_response(f"weight-control-{event.id}.pdf", exports.weight_report_pdf(event, records))

@router.get("/events/{event_id}/weight-control/reports/{record_id}/pdf")
def weight_control_record_pdf(
    event_id: int,
    record_id: int,
    user: CurrentUser = Depends(weight_staff),
    session: Session = Depends(get_session),
):
    event = events.get_event(session, event_id)
    row = weights.get_weight_record(session, event, record_id, user)
    return exports.pdf_response(
        f"weight-control-{event.id}-{row['start_number']}.pdf", exports.weight_record_pdf(event, row)
    )
