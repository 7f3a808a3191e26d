from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from paddock import registrations, vehicles
from paddock.errors import (
    Conflict,
    DuplicateRegistration,
    EventFull,
    Forbidden,
    InvalidClass,
    InvalidState,
    NotFound,
    StartNumberTaken,
    VehicleRequired,
    WindowClosed,
)
from paddock.models import EventStatus, Registration, RegistrationStatus, RegistrationVehicle, Role
from paddock.schemas import EntryVehicleIn, RegistrationCreate, VehicleIn


@pytest.fixture
def club(make_club):
    return make_club()


def _signup(event, **kw):
    return RegistrationCreate(event_id=event.id, class_id=kw.pop("class_id", event.classes[0].id), **kw)


def test_capacity_and_start_number_scenario(session, club, make_event, make_user, make_vehicle):
    now = datetime.now(timezone.utc)
    event = make_event(
        club,
        max_participants=2,
        registration_start_date=now - timedelta(days=1),
        registration_end_date=now + timedelta(days=1),
    )
    a, b, c, d = (make_user(Role.ATHLETE) for _ in range(4))
    a_car = make_vehicle(a, 7)
    b_car = make_vehicle(b, 7)

    reg_a = registrations.register(session, a, _signup(event, selected_vehicle_ids=[a_car.id]))
    assert reg_a.start_number == 7
    assert [rv.start_number for rv in reg_a.vehicles] == [7]

    with pytest.raises(StartNumberTaken) as exc:
        registrations.register(session, b, _signup(event, selected_vehicle_ids=[b_car.id]))
    assert isinstance(exc.value, Conflict)
    assert "#7" in exc.value.message

    reg_c = registrations.register(session, c, _signup(event))
    assert reg_c.start_number == 1

    with pytest.raises(EventFull):
        registrations.register(session, d, _signup(event))


def test_lowest_free_number_skips_vehicle_numbers(session, club, make_event, make_user, make_vehicle):
    event = make_event(club)
    a, b = make_user(Role.ATHLETE), make_user(Role.ATHLETE)
    registrations.register(session, a, _signup(event, selected_vehicle_ids=[make_vehicle(a, 1).id, make_vehicle(a, 2).id]))
    assert registrations.register(session, b, _signup(event)).start_number == 3


def test_event_must_be_published(session, club, make_event, make_user):
    athlete = make_user(Role.ATHLETE)
    with pytest.raises(NotFound):
        registrations.register(session, athlete, RegistrationCreate(event_id=999, class_id=1))
    for status in (EventStatus.DRAFT, EventStatus.SUBMITTED, EventStatus.APPROVED, EventStatus.REJECTED):
        with pytest.raises(InvalidState):
            registrations.register(session, athlete, _signup(make_event(club, status=status)))


def test_registration_window(session, club, make_event, make_user):
    athlete = make_user(Role.ATHLETE)
    now = datetime.now(timezone.utc)
    early = make_event(club, registration_start_date=now + timedelta(hours=1))
    late = make_event(club, registration_end_date=now - timedelta(hours=1))
    open_ended = make_event(club, registration_start_date=now - timedelta(days=3))

    with pytest.raises(WindowClosed, match="not opened"):
        registrations.register(session, athlete, _signup(early))
    with pytest.raises(WindowClosed, match="ended"):
        registrations.register(session, athlete, _signup(late))
    assert registrations.register(session, athlete, _signup(open_ended)).status == RegistrationStatus.CONFIRMED


def test_duplicate_registration(session, club, make_event, make_user):
    event = make_event(club)
    athlete = make_user(Role.ATHLETE)
    registrations.register(session, athlete, _signup(event))
    with pytest.raises(DuplicateRegistration):
        registrations.register(session, athlete, _signup(event))


def test_check_order_duplicate_before_full(session, club, make_event, make_user):
    event = make_event(club, max_participants=1)
    athlete = make_user(Role.ATHLETE)
    registrations.register(session, athlete, _signup(event))
    with pytest.raises(DuplicateRegistration):
        registrations.register(session, athlete, _signup(event))


def test_class_must_belong_to_event(session, club, make_event, make_user):
    event = make_event(club)
    other = make_event(club, classes=("Other",))
    with pytest.raises(InvalidClass):
        registrations.register(session, make_user(Role.ATHLETE), _signup(event, class_id=other.classes[0].id))


def test_vehicle_required(session, club, make_event, make_user, make_vehicle):
    event = make_event(club, requires_vehicle=True)
    athlete = make_user(Role.ATHLETE)
    with pytest.raises(VehicleRequired):
        registrations.register(session, athlete, _signup(event))

    inline = EntryVehicleIn(make="Honda", model="Civic", category="Touring", license_plate="AB-123")
    reg = registrations.register(session, athlete, _signup(event, vehicle=inline))
    assert reg.start_number == 1
    assert registrations.primary_vehicle(reg)["license_plate"] == "AB-123"


def test_selected_vehicles_must_be_owned(session, club, make_event, make_user, make_vehicle):
    event = make_event(club)
    me, someone = make_user(Role.ATHLETE), make_user(Role.ATHLETE)
    theirs = make_vehicle(someone, 11)
    with pytest.raises(NotFound):
        registrations.register(session, me, _signup(event, selected_vehicle_ids=[theirs.id]))


def test_only_athletes_register(session, club, make_event, make_user):
    event = make_event(club)
    with pytest.raises(Forbidden):
        registrations.register(session, make_user(Role.CLUBADMIN, club), _signup(event))


def test_failed_registration_leaves_nothing_behind(session, club, make_event, make_user, make_vehicle):
    event = make_event(club)
    a, b = make_user(Role.ATHLETE), make_user(Role.ATHLETE)
    registrations.register(session, a, _signup(event, selected_vehicle_ids=[make_vehicle(a, 5).id]))
    cars = [make_vehicle(b, 4).id, make_vehicle(b, 5).id]
    with pytest.raises(StartNumberTaken):
        registrations.register(session, b, _signup(event, selected_vehicle_ids=cars))
    assert registrations.active_registration(session, b.id, event.id) is None
    numbers = session.execute(select(RegistrationVehicle.start_number)).scalars().all()
    assert numbers == [5]


def test_storage_rejects_racing_duplicate_start_number(session, club, make_event, make_user):
    event = make_event(club)
    a, b = make_user(Role.ATHLETE), make_user(Role.ATHLETE)
    cls = event.classes[0].id
    session.add(Registration(user_id=a.id, event_id=event.id, class_id=cls, start_number=9))
    session.commit()
    session.add(Registration(user_id=b.id, event_id=event.id, class_id=cls, start_number=9))
    with pytest.raises(IntegrityError) as exc:
        session.commit()
    session.rollback()
    assert "start_number" in str(exc.value)


def test_cancel_frees_number_and_place(session, club, make_event, make_user, make_vehicle):
    event = make_event(club, max_participants=1)
    a, b = make_user(Role.ATHLETE), make_user(Role.ATHLETE)
    reg = registrations.register(session, a, _signup(event, selected_vehicle_ids=[make_vehicle(a, 3).id]))

    with pytest.raises(Forbidden):
        registrations.cancel_registration(session, reg.id, b)
    cancelled = registrations.cancel_registration(session, reg.id, a)
    assert cancelled.status == RegistrationStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    with pytest.raises(InvalidState):
        registrations.cancel_registration(session, reg.id, a)

    again = registrations.register(session, b, _signup(event, selected_vehicle_ids=[make_vehicle(b, 3).id]))
    assert again.start_number == 3
    # the cancelled entry no longer blocks a new one; the full field does
    with pytest.raises(EventFull):
        registrations.register(session, a, _signup(event))


def test_vehicle_numbers_unique_per_user(session, make_user):
    athlete = make_user(Role.ATHLETE)
    vehicles.create_vehicle(session, VehicleIn(start_number=12, make="CRG", model="Road Rebel", category="Kart"), athlete)
    with pytest.raises(Conflict):
        vehicles.create_vehicle(session, VehicleIn(start_number=12, make="OTK", model="Kosmic", category="Kart"), athlete)
    other = make_user(Role.ATHLETE)
    vehicles.create_vehicle(session, VehicleIn(start_number=12, make="OTK", model="Kosmic", category="Kart"), other)


def test_vehicle_in_active_registration_cannot_be_deleted(session, club, make_event, make_user, make_vehicle):
    event = make_event(club)
    athlete = make_user(Role.ATHLETE)
    car = make_vehicle(athlete, 21)
    registrations.register(session, athlete, _signup(event, selected_vehicle_ids=[car.id]))
    with pytest.raises(InvalidState):
        vehicles.delete_vehicle(session, car.id, athlete)


def test_register_over_http(client, login, club, make_event, make_user, make_vehicle):
    event = make_event(club)
    athlete = make_user(Role.ATHLETE)
    login(athlete.email)

    r = client.post("/vehicles", json={"start_number": 44, "make": "Birel", "model": "AM29", "category": "Kart"})
    assert r.status_code == 201
    vehicle_id = r.json()["id"]

    r = client.post(
        "/registrations",
        json={"event_id": event.id, "class_id": event.classes[0].id, "selected_vehicle_ids": [vehicle_id]},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["start_number"] == 44
    assert body["status"] == "CONFIRMED"
    assert body["vehicles"][0]["start_number"] == 44

    r = client.post("/registrations", json={"event_id": event.id, "class_id": event.classes[0].id})
    assert r.status_code == 409
    assert r.json() == {"error": "You are already registered for this event"}
    assert [x["id"] for x in client.get("/registrations/mine").json()] == [body["id"]]

    r = client.post("/registrations", json={"event_id": event.id})
    assert r.status_code == 400
