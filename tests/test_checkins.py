import pytest
from sqlalchemy import func, select

from paddock import checkins, registrations
from paddock.errors import Forbidden, ValidationError
from paddock.models import CheckIn, CheckInOutcome, EventStatus, Role


@pytest.fixture
def club(make_club):
    return make_club()


@pytest.fixture
def official(make_user):
    return make_user(Role.RACE_OFFICIAL)


def test_checkin_is_an_upsert_per_participant(session, club, make_event, make_user, make_registration, official):
    event = make_event(club)
    reg = make_registration(event, make_user(Role.ATHLETE), 5)

    ci, created = checkins.process_checkin(session, event, reg.id, CheckInOutcome.NOT_OK, "no helmet", official)
    assert created
    assert ci.outcome == CheckInOutcome.NOT_OK

    ci2, created = checkins.process_checkin(session, event, reg.id, CheckInOutcome.OK, None, official)
    assert not created
    assert ci2.id == ci.id
    assert ci2.outcome == CheckInOutcome.OK
    assert ci2.notes is None
    assert session.execute(select(func.count(CheckIn.id))).scalar_one() == 1


def test_registration_from_other_event_rejected(session, club, make_event, make_user, make_registration, official):
    event, other = make_event(club), make_event(club)
    reg = make_registration(other, make_user(Role.ATHLETE), 1)
    with pytest.raises(ValidationError):
        checkins.process_checkin(session, event, reg.id, CheckInOutcome.OK, None, official)


def test_club_admin_limited_to_own_club(session, club, make_club, make_event, make_user, make_registration):
    event = make_event(club)
    reg = make_registration(event, make_user(Role.ATHLETE), 1)
    stranger = make_user(Role.CLUBADMIN, make_club())
    with pytest.raises(Forbidden):
        checkins.process_checkin(session, event, reg.id, CheckInOutcome.OK, None, stranger)
    owner = make_user(Role.CLUBADMIN, club)
    assert checkins.process_checkin(session, event, reg.id, CheckInOutcome.OK, None, owner)[1]


def test_stats_bucket_by_outcome(session, club, make_event, make_user, make_registration, official):
    event = make_event(club)
    regs = [make_registration(event, make_user(Role.ATHLETE), n) for n in range(1, 6)]
    checkins.process_checkin(session, event, regs[0].id, CheckInOutcome.OK, None, official)
    checkins.process_checkin(session, event, regs[1].id, CheckInOutcome.OK, None, official)
    checkins.process_checkin(session, event, regs[2].id, CheckInOutcome.NOT_OK, "transponder", official)
    checkins.process_checkin(session, event, regs[3].id, CheckInOutcome.DNS, None, official)

    assert checkins.checkin_stats(session, event.id) == {
        "total": 5,
        "checked_in": 2,
        "issues": 1,
        "dns": 1,
        "pending": 1,
    }

    rows = checkins.list_checkin_participants(session, event, official)
    assert [r["start_number"] for r in rows] == [1, 2, 3, 4, 5]
    assert rows[2]["check_in"]["status"] == "NOT_OK"
    assert rows[4]["check_in"] is None


def test_overview_lists_approved_and_published(session, club, make_club, make_event, make_user):
    make_event(club, status=EventStatus.DRAFT)
    approved = make_event(club, status=EventStatus.APPROVED)
    published = make_event(club, status=EventStatus.PUBLISHED)
    make_event(make_club(), status=EventStatus.PUBLISHED)

    owner = make_user(Role.CLUBADMIN, club)
    assert {e["id"] for e in checkins.checkin_overview(session, owner)} == {approved.id, published.id}
    assert len(checkins.checkin_overview(session, make_user(Role.RACE_OFFICIAL))) == 3


def test_checkin_over_http(client, login, club, make_event, make_user, make_registration, official):
    event = make_event(club)
    reg = make_registration(event, make_user(Role.ATHLETE), 3)

    athlete = make_user(Role.ATHLETE)
    login(athlete.email)
    assert client.post(f"/events/{event.id}/checkin", json={"registration_id": reg.id, "status": "OK"}).status_code == 403

    login(official.email)
    r = client.post(f"/events/{event.id}/checkin", json={"registration_id": reg.id, "status": "OK"})
    assert r.status_code == 201
    r = client.post(f"/events/{event.id}/checkin", json={"registration_id": reg.id, "status": "DNS"})
    assert r.status_code == 200
    assert r.json()["status"] == "DNS"

    r = client.post(f"/events/{event.id}/checkin", json={"registration_id": reg.id, "status": "OK_LATE"})
    assert r.status_code == 400

    body = client.get(f"/events/{event.id}/checkin").json()
    assert body["stats"]["dns"] == 1


def test_checkin_follows_athlete_to_new_registration(session, club, make_event, make_user, make_registration, official):
    event = make_event(club)
    athlete = make_user(Role.ATHLETE)
    old = make_registration(event, athlete, 5)
    checkins.process_checkin(session, event, old.id, CheckInOutcome.OK, None, official)
    registrations.cancel_registration(session, old.id, athlete)

    new = make_registration(event, athlete, 6)
    rows = checkins.list_checkin_participants(session, event, official)
    assert [(r["registration_id"], r["check_in"]) for r in rows] == [(new.id, None)]
    assert checkins.checkin_stats(session, event.id)["pending"] == 1

    ci, created = checkins.process_checkin(session, event, new.id, CheckInOutcome.NOT_OK, "fuel", official)
    assert not created
    assert ci.registration_id == new.id
    assert checkins.checkin_stats(session, event.id)["issues"] == 1
