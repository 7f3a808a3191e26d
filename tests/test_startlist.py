import csv
from io import StringIO

import pytest

from paddock import checkins, exports, inspections, registrations
from paddock.models import CheckInOutcome, InspectionStatus, Role
from paddock.schemas import InspectionRequest
from paddock.startlist import build_startlist, readiness


@pytest.fixture
def club(make_club):
    return make_club()


@pytest.mark.parametrize(
    "checked_in, approved, expected",
    [
        (True, True, "ready"),
        (True, False, "pending_technical"),
        (False, True, "pending_checkin"),
        (False, False, "pending"),
    ],
)
def test_readiness_buckets(checked_in, approved, expected):
    assert readiness(checked_in, approved) == expected


@pytest.fixture
def field(session, club, make_event, make_user, make_registration):
    """Four entries: ready, pending technical, pending check-in, untouched; plus a cancelled one."""
    event = make_event(club, classes=("Junior", "Senior"))
    official = make_user(Role.RACE_OFFICIAL)
    inspector = make_user(Role.TECHNICAL_INSPECTOR)
    regs = [
        make_registration(event, make_user(Role.ATHLETE, name=f"Driver {n}"), n, class_index=n % 2)
        for n in (1, 2, 3, 4, 5)
    ]

    def inspect(n, status):
        inspections.save_inspection(
            session,
            InspectionRequest(event_id=event.id, start_number=n, make="CRG", model="KT2", status=status),
            inspector,
        )

    checkins.process_checkin(session, event, regs[0].id, CheckInOutcome.OK, None, official)
    inspect(1, InspectionStatus.APPROVED)
    checkins.process_checkin(session, event, regs[1].id, CheckInOutcome.OK, None, official)
    inspect(2, InspectionStatus.CONDITIONAL)
    checkins.process_checkin(session, event, regs[2].id, CheckInOutcome.NOT_OK, "no licence", official)
    inspect(3, InspectionStatus.APPROVED)
    registrations.cancel_registration(session, regs[4].id, make_user(Role.SUPERADMIN))
    return event


def test_startlist_projection(session, club, field, make_user):
    event = field
    sl = build_startlist(session, event, make_user(Role.CLUBADMIN, club))
    assert [e.start_number for e in sl.entries] == [1, 2, 3, 4]
    assert [e.readiness for e in sl.entries] == ["ready", "pending_technical", "pending_checkin", "pending"]
    assert sl.entries[0].checked_in_at is not None
    assert sl.entries[2].checked_in is False
    assert sl.entries[1].technical_status == "CONDITIONAL"

    stats = sl.stats
    assert stats["total"] == 4
    assert stats["ready_to_race"] == 1
    assert stats["pending_technical"] == 1
    assert stats["pending_checkin"] == 1
    assert stats["by_class"] == {"Senior": 2, "Junior": 2}


def test_startlist_is_recomputed(session, club, field, make_user):
    event = field
    admin = make_user(Role.CLUBADMIN, club)
    assert build_startlist(session, event, admin).stats["ready_to_race"] == 1
    reg4 = next(r for r in registrations.list_event_registrations(session, event.id) if r.start_number == 4)
    checkins.process_checkin(session, event, reg4.id, CheckInOutcome.OK, None, admin)
    assert build_startlist(session, event, admin).stats["pending_technical"] == 2


def test_csv_export(session, club, field, make_user):
    event = field
    sl = build_startlist(session, event, make_user(Role.SUPERADMIN))
    rows = list(csv.reader(StringIO(exports.startlist_csv(sl))))
    assert rows[0] == ["Start Number", "Driver Name", "Class", "Vehicle", "License Plate", "Status"]
    assert rows[1][:3] == ["1", "Driver 1", "Senior"]
    assert rows[1][5] == "Ready"
    assert len(rows) == 5


def test_export_over_http(client, login, club, field, make_user, make_club):
    event = field
    admin = make_user(Role.CLUBADMIN, club)
    login(admin.email)

    r = client.get(f"/events/{event.id}/startlist")
    assert r.status_code == 200
    assert r.json()["stats"]["total"] == 4

    r = client.post(f"/events/{event.id}/startlist/export", json={"format": "csv"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="startlist.csv"' in r.headers["content-disposition"]

    r = client.post(f"/events/{event.id}/startlist/export", json={"format": "pdf"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "Driver 3" in r.text

    r = client.post(f"/events/{event.id}/startlist/export", json={"format": "xlsx"})
    assert r.status_code == 400

    login(make_user(Role.CLUBADMIN, make_club()).email)
    assert client.get(f"/events/{event.id}/startlist").status_code == 403


def test_stream_access_is_checked_before_streaming(client, login, club, make_event, make_user, make_club):
    event = make_event(club)
    login(make_user(Role.ATHLETE).email)
    assert client.get(f"/events/{event.id}/sse").status_code == 403

    login(make_user(Role.CLUBADMIN, make_club()).email)
    assert client.get(f"/events/{event.id}/sse").status_code == 403

    login(make_user(Role.RACE_OFFICIAL).email)
    assert client.get("/events/9999/sse").status_code == 404
