import pytest

from paddock import accounts
from paddock.errors import Conflict, Forbidden, NotFound, ValidationError
from paddock.models import Role, User
from paddock.schemas import ClubUpdate, StaffUpdate
from paddock.security import verify_password


def test_club_update_keeps_names_unique(session, make_club):
    club, other = make_club(), make_club()
    updated = accounts.update_club(session, club.id, ClubUpdate(name="  Kart Club Tukums ", city="Tukums"))
    assert updated.name == "Kart Club Tukums"
    assert updated.city == "Tukums"
    assert updated.country == "LV"

    with pytest.raises(Conflict):
        accounts.update_club(session, other.id, ClubUpdate(name="Kart Club Tukums"))
    with pytest.raises(ValidationError):
        accounts.update_club(session, other.id, ClubUpdate(name=" "))
    with pytest.raises(NotFound):
        accounts.update_club(session, 9999, ClubUpdate(city="Cesis"))


def test_own_club_is_club_admins_only(session, make_club, make_user):
    club = make_club()
    admin = make_user(Role.CLUBADMIN, club)
    assert accounts.get_own_club(session, admin).id == club.id
    accounts.update_own_club(session, ClubUpdate(country="EE"), admin)
    assert session.get(type(club), club.id).country == "EE"

    with pytest.raises(Forbidden):
        accounts.get_own_club(session, make_user(Role.SUPERADMIN))


def test_club_admin_update_and_removal(session, make_club, make_user):
    club, other = make_club(), make_club()
    root = make_user(Role.SUPERADMIN)
    admin = make_user(Role.CLUBADMIN, club)
    taken = make_user(Role.ATHLETE)

    changed = accounts.update_club_admin(
        session, club.id, admin.id, StaffUpdate(email="Boss@Club.test", name="Boss", password="new-secret")
    )
    assert changed.email == "boss@club.test"
    assert verify_password("new-secret", changed.password_hash)

    with pytest.raises(Conflict):
        accounts.update_club_admin(session, club.id, admin.id, StaffUpdate(email=taken.email, name="Boss"))
    with pytest.raises(NotFound):
        accounts.update_club_admin(session, other.id, admin.id, StaffUpdate(email="x@y.test", name="X"))

    accounts.remove_club_admin(session, club.id, admin.id, root)
    assert session.get(User, admin.id).is_active is False
    assert accounts.list_club_admins(session, club.id) == []


def test_federation_admins_keep_at_least_one(session, make_user):
    first = make_user(Role.FEDERATION_ADMIN)
    with pytest.raises(ValidationError):
        accounts.remove_federation_admin(session, first.id, make_user(Role.SUPERADMIN))

    second = make_user(Role.FEDERATION_ADMIN)
    with pytest.raises(ValidationError):
        accounts.remove_federation_admin(session, second.id, second)
    accounts.remove_federation_admin(session, second.id, first)
    assert [u.id for u in accounts.list_federation_admins(session)] == [first.id]

    with pytest.raises(ValidationError):
        accounts.update_federation_admin(session, make_user(Role.ATHLETE).id, StaffUpdate(email="a@b.test", name="A"))


def test_club_admin_deletes_only_own_members(session, make_club, make_user):
    club = make_club()
    admin = make_user(Role.CLUBADMIN, club)
    member = make_user(Role.TECHNICAL_INSPECTOR, club)
    outsider = make_user(Role.ATHLETE)

    with pytest.raises(Forbidden):
        accounts.deactivate_user(session, outsider.id, admin)
    with pytest.raises(ValidationError):
        accounts.deactivate_user(session, admin.id, admin)
    accounts.deactivate_user(session, member.id, admin)
    assert session.get(User, member.id).is_active is False


def test_admin_management_over_http(client, login, make_club, make_user):
    club = make_club()
    club_admin = make_user(Role.CLUBADMIN, club)
    login(club_admin.email)
    r = client.get("/clubs/my-club")
    assert r.status_code == 200
    assert [u["email"] for u in r.json()["users"]] == [club_admin.email]
    assert client.put("/clubs/my-club", json={"city": "Liepaja"}).json()["city"] == "Liepaja"
    assert client.put(f"/clubs/{club.id}", json={"name": "Hijack"}).status_code == 403

    fed = make_user(Role.FEDERATION_ADMIN)
    login(fed.email)
    r = client.post("/federation/admins", json={"email": "second@fed.test", "password": "secret123", "name": "Second"})
    assert r.status_code == 201
    second_id = r.json()["id"]
    assert r.json()["role"] == "FEDERATION_ADMIN"
    assert client.put(f"/federation/admins/{second_id}", json={"email": "second@fed.test", "name": "Deputy"}).json()[
        "name"
    ] == "Deputy"
    assert client.delete(f"/federation/admins/{fed.id}").status_code == 400
    assert client.delete(f"/federation/admins/{second_id}").status_code == 200
    assert [a["id"] for a in client.get("/federation/admins").json()] == [fed.id]

    r = client.post("/auth/login", json={"email": "second@fed.test", "password": "secret123"})
    assert r.status_code == 401

    login("root@paddock.test", "root-password")
    assert client.put(f"/clubs/{club.id}", json={"name": "Renamed"}).json()["name"] == "Renamed"
    r = client.put(f"/clubs/{club.id}/admins/{club_admin.id}", json={"email": club_admin.email, "name": "Chief"})
    assert r.json()["name"] == "Chief"
    assert client.delete(f"/clubs/{club.id}/admins/{club_admin.id}").status_code == 200
    assert client.get(f"/clubs/{club.id}/admins").json() == []
