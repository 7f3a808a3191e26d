import json

import pytest

from paddock import auth
from paddock.models import Role, User
from paddock.settings import settings


def test_token_round_trip_carries_only_the_id():
    token = auth.issue_token(42)
    assert auth.read_token(token) == 42


def test_tampered_token_is_rejected():
    token = auth.issue_token(42)
    assert auth.read_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB")) is None
    assert auth.read_token("not-a-token") is None


def test_expired_token_is_rejected(monkeypatch):
    token = auth.issue_token(42)
    monkeypatch.setattr(settings, "PADDOCK_SESSION_MAX_AGE", -1)
    assert auth.read_token(token) is None


def test_register_login_me(client):
    r = client.post(
        "/auth/register",
        json={"email": "Rider@Example.com", "password": "secret123", "name": "Rider One"},
    )
    assert r.status_code == 201
    assert r.json()["role"] == "ATHLETE"
    assert r.json()["email"] == "rider@example.com"

    r = client.post("/auth/register", json={"email": "rider@example.com", "password": "secret123", "name": "Again"})
    assert r.status_code == 409
    assert "already exists" in r.json()["error"]

    r = client.post("/auth/login", json={"email": "rider@example.com", "password": "wrong-pass"})
    assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "rider@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert auth.COOKIE_NAME in r.cookies

    r = client.get("/auth/me")
    assert r.status_code == 200
    assert r.json()["name"] == "Rider One"

    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401


def test_missing_session_is_401(client):
    r = client.get("/events")
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_client_supplied_role_blob_is_not_trusted(client):
    forged = json.dumps({"id": 1, "role": "SUPERADMIN", "clubId": None})
    client.cookies.set(auth.COOKIE_NAME, forged)
    assert client.get("/users").status_code == 401


def test_bootstrap_superadmin_can_manage_users(client, login):
    login("root@paddock.test", "root-password")
    r = client.post("/clubs", json={"name": "Kart Club Riga", "city": "Riga"})
    assert r.status_code == 201
    club_id = r.json()["id"]

    r = client.post(
        "/users",
        json={"email": "admin@club.test", "password": "secret123", "name": "Club Admin", "role": "CLUBADMIN"},
    )
    assert r.status_code == 400
    assert "club" in r.json()["error"].lower()

    r = client.post(
        "/users",
        json={
            "email": "admin@club.test",
            "password": "secret123",
            "name": "Club Admin",
            "role": "CLUBADMIN",
            "club_id": club_id,
        },
    )
    assert r.status_code == 201
    assert [u["email"] for u in client.get(f"/clubs/{club_id}/admins").json()] == ["admin@club.test"]


def test_role_comes_from_database_on_every_request(client, login, session, make_user):
    athlete = make_user(Role.ATHLETE)
    login(athlete.email)
    assert client.get("/users").status_code == 403

    user = session.get(User, athlete.id)
    user.role = Role.SUPERADMIN
    session.commit()
    assert client.get("/users").status_code == 200

    user.is_active = False
    session.commit()
    assert client.get("/auth/me").status_code == 401


def test_club_class_names_unique_per_club(client, login, make_club, make_user):
    club = make_club()
    other = make_club()
    admin = make_user(Role.CLUBADMIN, club)
    login(admin.email)

    payload = {"name": "Junior", "min_weight": 140, "max_weight": 160}
    assert client.post(f"/clubs/{club.id}/classes", json=payload).status_code == 201
    assert client.post(f"/clubs/{club.id}/classes", json=payload).status_code == 409
    assert client.post(f"/clubs/{other.id}/classes", json=payload).status_code == 403

    bad = {"name": "Heavy", "min_weight": 200, "max_weight": 150}
    assert client.post(f"/clubs/{club.id}/classes", json=bad).status_code == 400
    assert [c["name"] for c in client.get(f"/clubs/{club.id}/classes").json()] == ["Junior"]


@pytest.mark.parametrize("role", [Role.ATHLETE, Role.CLUBADMIN, Role.FEDERATION_ADMIN])
def test_only_superadmin_creates_global_classes(client, login, make_club, make_user, role):
    user = make_user(role, make_club() if role == Role.CLUBADMIN else None)
    login(user.email)
    assert client.post("/classes/global", json={"name": "Open"}).status_code == 403
