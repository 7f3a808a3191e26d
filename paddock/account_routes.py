from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from . import accounts, vehicles
from .auth import (
    CurrentUser,
    clear_login_cookie,
    login_required,
    require_roles,
    set_login_cookie,
)
from .db import get_session
from .errors import Forbidden, Unauthorized
from .models import Role
from .schemas import (
    AthleteSignup,
    ClassTemplateCreate,
    ClubClassOut,
    ClubCreate,
    ClubDetailOut,
    ClubOut,
    ClubUpdate,
    GlobalClassOut,
    LoginRequest,
    StaffCreate,
    StaffUpdate,
    UserCreate,
    UserOut,
    UserUpdate,
    VehicleIn,
    VehicleOut,
)

router = APIRouter()

superadmin_required = require_roles(Role.SUPERADMIN)
athlete_required = require_roles(Role.ATHLETE)
club_manager_required = require_roles(Role.CLUBADMIN, Role.SUPERADMIN)
club_admin_required = require_roles(Role.CLUBADMIN)
federation_manager_required = require_roles(Role.FEDERATION_ADMIN, Role.SUPERADMIN)

# ---------------------------
# Auth
# ---------------------------

@router.post("/auth/register", response_model=UserOut, status_code=201)
def register_athlete(payload: AthleteSignup, session: Session = Depends(get_session)):
    return accounts.signup_athlete(session, payload)

@router.post("/auth/login", response_model=UserOut)
def login(payload: LoginRequest, request: Request, session: Session = Depends(get_session)):
    u = accounts.authenticate_user(session, payload.email, payload.password)
    if not u:
        raise Unauthorized("Invalid email or password")
    set_login_cookie(request, user_id=u.id)
    return u

@router.post("/auth/logout")
def logout(request: Request):
    clear_login_cookie(request)
    return {"ok": True}

@router.get("/auth/me", response_model=UserOut)
def me(user: CurrentUser = Depends(login_required), session: Session = Depends(get_session)):
    return accounts.get_user(session, user.id)

# ---------------------------
# Users
# ---------------------------

@router.get("/users", response_model=list[UserOut], dependencies=[Depends(superadmin_required)])
def users_list(role: Role | None = None, session: Session = Depends(get_session)):
    return accounts.list_users(session, role)

@router.post("/users", response_model=UserOut, status_code=201, dependencies=[Depends(superadmin_required)])
def users_create(payload: UserCreate, session: Session = Depends(get_session)):
    return accounts.create_user(session, payload)

@router.patch("/users/{user_id}", response_model=UserOut)
def users_update(
    user_id: int,
    payload: UserUpdate,
    user: CurrentUser = Depends(login_required),
    session: Session = Depends(get_session),
):
    return accounts.update_user(session, user_id, payload, user)

@router.delete("/users/{user_id}")
def users_delete(user_id: int, user: CurrentUser = Depends(club_manager_required), session: Session = Depends(get_session)):
    accounts.deactivate_user(session, user_id, user)
    return {"ok": True}

# ---------------------------
# Federation admins
# ---------------------------

@router.get("/federation/admins", response_model=list[UserOut], dependencies=[Depends(federation_manager_required)])
def federation_admins(session: Session = Depends(get_session)):
    return accounts.list_federation_admins(session)

@router.post("/federation/admins", response_model=UserOut, status_code=201, dependencies=[Depends(federation_manager_required)])
def federation_admins_create(payload: StaffCreate, session: Session = Depends(get_session)):
    return accounts.create_federation_admin(session, payload)

@router.put("/federation/admins/{admin_id}", response_model=UserOut, dependencies=[Depends(federation_manager_required)])
def federation_admins_update(admin_id: int, payload: StaffUpdate, session: Session = Depends(get_session)):
    return accounts.update_federation_admin(session, admin_id, payload)

@router.delete("/federation/admins/{admin_id}")
def federation_admins_delete(
    admin_id: int,
    user: CurrentUser = Depends(federation_manager_required),
    session: Session = Depends(get_session),
):
    accounts.remove_federation_admin(session, admin_id, user)
    return {"ok": True}

# ---------------------------
# Clubs & class templates
# ---------------------------

@router.get("/clubs", response_model=list[ClubOut], dependencies=[Depends(login_required)])
def clubs_list(session: Session = Depends(get_session)):
    return accounts.list_clubs(session)

@router.post("/clubs", response_model=ClubOut, status_code=201, dependencies=[Depends(superadmin_required)])
def clubs_create(payload: ClubCreate, session: Session = Depends(get_session)):
    return accounts.create_club(session, payload)

@router.get("/clubs/my-club", response_model=ClubDetailOut)
def my_club(user: CurrentUser = Depends(club_admin_required), session: Session = Depends(get_session)):
    return accounts.get_own_club(session, user)

@router.put("/clubs/my-club", response_model=ClubOut)
def my_club_update(payload: ClubUpdate, user: CurrentUser = Depends(club_admin_required), session: Session = Depends(get_session)):
    return accounts.update_own_club(session, payload, user)

@router.get("/clubs/{club_id}", response_model=ClubDetailOut, dependencies=[Depends(superadmin_required)])
def clubs_get(club_id: int, session: Session = Depends(get_session)):
    return accounts.get_club(session, club_id)

@router.put("/clubs/{club_id}", response_model=ClubOut, dependencies=[Depends(superadmin_required)])
def clubs_update(club_id: int, payload: ClubUpdate, session: Session = Depends(get_session)):
    return accounts.update_club(session, club_id, payload)

@router.get("/clubs/{club_id}/admins", response_model=list[UserOut])
def club_admins(club_id: int, user: CurrentUser = Depends(club_manager_required), session: Session = Depends(get_session)):
    if user.is_club_admin and user.club_id != club_id:
        raise Forbidden("Forbidden")
    return accounts.list_club_admins(session, club_id)

@router.put("/clubs/{club_id}/admins/{user_id}", response_model=UserOut, dependencies=[Depends(superadmin_required)])
def club_admins_update(club_id: int, user_id: int, payload: StaffUpdate, session: Session = Depends(get_session)):
    return accounts.update_club_admin(session, club_id, user_id, payload)

@router.delete("/clubs/{club_id}/admins/{user_id}")
def club_admins_delete(
    club_id: int,
    user_id: int,
    user: CurrentUser = Depends(superadmin_required),
    session: Session = Depends(get_session),
):
    accounts.remove_club_admin(session, club_id, user_id, user)
    return {"ok": True}

@router.get("/classes/global", response_model=list[GlobalClassOut])
def global_classes(session: Session = Depends(get_session)):
    return accounts.list_global_classes(session)

@router.post("/classes/global", response_model=GlobalClassOut, status_code=201, dependencies=[Depends(superadmin_required)])
def global_classes_create(payload: ClassTemplateCreate, session: Session = Depends(get_session)):
    return accounts.create_global_class(session, payload)

@router.get("/clubs/{club_id}/classes", response_model=list[ClubClassOut])
def club_classes(club_id: int, session: Session = Depends(get_session)):
    return accounts.list_club_classes(session, club_id)

@router.post("/clubs/{club_id}/classes", response_model=ClubClassOut, status_code=201)
def club_classes_create(
    club_id: int,
    payload: ClassTemplateCreate,
    user: CurrentUser = Depends(club_manager_required),
    session: Session = Depends(get_session),
):
    return accounts.create_club_class(session, club_id, payload, user)

@router.delete("/clubs/{club_id}/classes/{class_id}")
def club_classes_delete(
    club_id: int,
    class_id: int,
    user: CurrentUser = Depends(club_manager_required),
    session: Session = Depends(get_session),
):
    accounts.deactivate_club_class(session, club_id, class_id, user)
    return {"ok": True}

# ---------------------------
# Athlete vehicles
# ---------------------------

@router.get("/vehicles", response_model=list[VehicleOut])
def vehicles_list(user: CurrentUser = Depends(athlete_required), session: Session = Depends(get_session)):
    return vehicles.list_vehicles(session, user)

@router.post("/vehicles", response_model=VehicleOut, status_code=201)
def vehicles_create(payload: VehicleIn, user: CurrentUser = Depends(athlete_required), session: Session = Depends(get_session)):
    return vehicles.create_vehicle(session, payload, user)

@router.put("/vehicles/{vehicle_id}", response_model=VehicleOut)
def vehicles_update(
    vehicle_id: int,
    payload: VehicleIn,
    user: CurrentUser = Depends(athlete_required),
    session: Session = Depends(get_session),
):
    return vehicles.update_vehicle(session, vehicle_id, payload, user)

@router.delete("/vehicles/{vehicle_id}")
def vehicles_delete(vehicle_id: int, user: CurrentUser = Depends(athlete_required), session: Session = Depends(get_session)):
    vehicles.delete_vehicle(session, vehicle_id, user)
    return {"ok": True}
