import os

os.environ["PADDOCK_BCRYPT_ROUNDS"] = "4"
os.environ["PADDOCK_SECRET_KEY"] = "test-secret"
os.environ["PADDOCK_ADMIN_EMAIL"] = "root@paddock.test"
os.environ["PADDOCK_ADMIN_PASSWORD"] = "root-password"

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from fastapi.testclient import TestClient

from paddock import db, models
from paddock.auth import CurrentUser
from paddock.models import EventStatus, Role
from paddock.security import hash_password

PASSWORD = "secret123"
_seq = count(1)


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'paddock-test.db'}"
    db.dispose_db()
    db.init_db(url)
    yield url
    db.dispose_db()


@pytest.fixture
def session(db_url):
    s = db.open_session()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client(db_url):
    from paddock.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def login(client):
    def _login(email: str, password: str = PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return r.json()

    return _login


@pytest.fixture
def make_club(session):
    def _make(name: str | None = None) -> models.Club:
        club = models.Club(name=name or f"Club {next(_seq)}", city="Riga", country="LV")
        session.add(club)
        session.commit()
        return club

    return _make


@pytest.fixture
def make_user(session):
    def _make(role: Role, club: models.Club | None = None, email: str | None = None, name: str | None = None) -> CurrentUser:
        n = next(_seq)
        user = models.User(
            email=email or f"{role.value.lower()}{n}@paddock.test",
            name=name or f"{role.value.title()} {n}",
            password_hash=hash_password(PASSWORD),
            role=role,
            club_id=club.id if club else None,
        )
        session.add(user)
        session.commit()
        return CurrentUser.from_user(user)

    return _make


@pytest.fixture
def make_event(session):
    def _make(
        club: models.Club,
        status: EventStatus = EventStatus.PUBLISHED,
        classes: tuple[str, ...] = ("Senior",),
        **fields,
    ) -> models.Event:
        now = datetime.now(timezone.utc)
        event = models.Event(
            club_id=club.id,
            title=fields.pop("title", f"Round {next(_seq)}"),
            location=fields.pop("location", "Bikernieki"),
            start_date=fields.pop("start_date", now + timedelta(days=30)),
            end_date=fields.pop("end_date", now + timedelta(days=31)),
            status=status,
            **fields,
        )
        event.classes = [models.EventClass(name=c) for c in classes]
        session.add(event)
        session.commit()
        return event

    return _make


@pytest.fixture
def make_vehicle(session):
    def _make(owner: CurrentUser, start_number: int, **fields) -> models.UserVehicle:
        v = models.UserVehicle(
            user_id=owner.id,
            start_number=start_number,
            make=fields.pop("make", "Tony Kart"),
            model=fields.pop("model", "Racer 401"),
            category=fields.pop("category", "Kart"),
            **fields,
        )
        session.add(v)
        session.commit()
        return v

    return _make


@pytest.fixture
def make_registration(session):
    def _make(event: models.Event, athlete: CurrentUser, start_number: int, class_index: int = 0) -> models.Registration:
        reg = models.Registration(
            user_id=athlete.id,
            event_id=event.id,
            class_id=event.classes[class_index].id,
            start_number=start_number,
        )
        session.add(reg)
        session.commit()
        return reg

    return _make
