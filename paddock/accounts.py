from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .auth import CurrentUser
from .errors import Conflict, Forbidden, NotFound, ValidationError
from .models import Role
from .schemas import (
    AthleteSignup,
    ClassTemplateCreate,
    ClubCreate,
    ClubUpdate,
    StaffCreate,
    StaffUpdate,
    UserCreate,
    UserUpdate,
)
from .security import hash_password, verify_password
from .settings import settings
from .utils import clean_text

logger = logging.getLogger(__name__)

# ---------------------------
# Users / auth
# ---------------------------

def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email address is required")
    return email

def ensure_superadmin(session: Session) -> None:
    """Ensure the bootstrap superadmin account (from settings) exists in DB."""
    email = _normalize_email(settings.PADDOCK_ADMIN_EMAIL)
    existing = session.execute(select(models.User).where(models.User.email == email)).scalar_one_or_none()

    if existing:
        changed = False
        if existing.role != Role.SUPERADMIN:
            existing.role = Role.SUPERADMIN
            existing.club_id = None
            changed = True
        if not existing.is_active:
            existing.is_active = True
            changed = True
        if changed:
            session.commit()
        return

    session.add(
        models.User(
            email=email,
            name=settings.PADDOCK_ADMIN_NAME,
            password_hash=hash_password(settings.PADDOCK_ADMIN_PASSWORD),
            role=Role.SUPERADMIN,
            is_active=True,
        )
    )
    session.commit()
    logger.info("Created bootstrap superadmin %s", email)

def authenticate_user(session: Session, email: str, password: str) -> Optional[models.User]:
    u = session.execute(
        select(models.User).where(models.User.email == (email or "").strip().lower())
    ).scalar_one_or_none()
    if not u or not u.is_active:
        return None
    if verify_password(password, u.password_hash):
        return u
    return None

def _add_user(session: Session, user: models.User) -> models.User:
    if session.execute(select(models.User).where(models.User.email == user.email)).scalar_one_or_none():
        raise Conflict("A user with this email already exists")
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A user with this email already exists")
    session.refresh(user)
    return user

def signup_athlete(session: Session, payload: AthleteSignup) -> models.User:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Name is required")
    user = models.User(
        email=_normalize_email(payload.email),
        name=name,
        password_hash=hash_password(payload.password),
        role=Role.ATHLETE,
        phone=clean_text(payload.phone),
        license_number=clean_text(payload.license_number),
    )
    return _add_user(session, user)

def create_user(session: Session, payload: UserCreate) -> models.User:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Name is required")
    if payload.club_id is not None and not session.get(models.Club, payload.club_id):
        raise NotFound("Club not found")
    if payload.role == Role.CLUBADMIN and payload.club_id is None:
        raise ValidationError("Club admins must belong to a club")
    user = models.User(
        email=_normalize_email(payload.email),
        name=name,
        password_hash=hash_password(payload.password),
        role=payload.role,
        club_id=payload.club_id,
        phone=clean_text(payload.phone),
        license_number=clean_text(payload.license_number),
    )
    user = _add_user(session, user)
    logger.info("Created %s user %s", user.role.value, user.email)
    return user

def list_users(session: Session, role: Role | None = None) -> list[models.User]:
    q = select(models.User).order_by(models.User.role.asc(), models.User.email.asc())
    if role is not None:
        q = q.where(models.User.role == role)
    return session.execute(q).scalars().all()

def get_user(session: Session, user_id: int) -> models.User:
    user = session.get(models.User, user_id)
    if not user:
        raise NotFound("User not found")
    return user

def update_user(session: Session, user_id: int, payload: UserUpdate, actor: CurrentUser) -> models.User:
    if not actor.is_superadmin and actor.id != user_id:
        raise Forbidden("Forbidden")
    user = get_user(session, user_id)
    if payload.name is not None:
        name = clean_text(payload.name)
        if not name:
            raise ValidationError("Name is required")
        user.name = name
    if payload.phone is not None:
        user.phone = clean_text(payload.phone)
    if payload.license_number is not None:
        user.license_number = clean_text(payload.license_number)
    if payload.is_active is not None:
        if not actor.is_superadmin:
            raise Forbidden("Only superadmins can activate or deactivate users")
        if user.id == actor.id and not payload.is_active:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = payload.is_active
    session.commit()
    return user

def _update_account(session: Session, user: models.User, payload: StaffUpdate) -> models.User:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Name and email are required")
    email = _normalize_email(payload.email)
    if email != user.email:
        taken = session.execute(select(models.User.id).where(models.User.email == email)).first()
        if taken is not None:
            raise Conflict("A user with this email already exists")
    user.name = name
    user.email = email
    user.phone = clean_text(payload.phone)
    password = (payload.password or "").strip()
    if password:
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters")
        user.password_hash = hash_password(password)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A user with this email already exists")
    return user

def _deactivate(session: Session, user: models.User, actor: CurrentUser) -> None:
    # accounts are kept so registrations and inspection history stay attributable
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")
    user.is_active = False
    session.commit()
    logger.info("User %s (%s) deactivated by %s", user.email, user.role.value, actor.id)

def deactivate_user(session: Session, user_id: int, actor: CurrentUser) -> None:
    user = get_user(session, user_id)
    if actor.is_club_admin and user.club_id != actor.club_id:
        raise Forbidden("Forbidden")
    _deactivate(session, user, actor)

# ---------------------------
# Federation admins
# ---------------------------

def list_federation_admins(session: Session) -> list[models.User]:
    return session.execute(
        select(models.User)
        .where(models.User.role == Role.FEDERATION_ADMIN, models.User.is_active.is_(True))
        .order_by(models.User.created_at.asc(), models.User.id.asc())
    ).scalars().all()

def create_federation_admin(session: Session, payload: StaffCreate) -> models.User:
    return create_user(
        session,
        UserCreate(
            email=payload.email,
            password=payload.password,
            name=payload.name,
            role=Role.FEDERATION_ADMIN,
            phone=payload.phone,
        ),
    )

def _get_federation_admin(session: Session, admin_id: int) -> models.User:
    user = session.get(models.User, admin_id)
    if not user:
        raise NotFound("Admin not found")
    if user.role != Role.FEDERATION_ADMIN:
        raise ValidationError("User is not a federation admin")
    return user

def update_federation_admin(session: Session, admin_id: int, payload: StaffUpdate) -> models.User:
    return _update_account(session, _get_federation_admin(session, admin_id), payload)

def remove_federation_admin(session: Session, admin_id: int, actor: CurrentUser) -> None:
    if admin_id == actor.id:
        raise ValidationError("You cannot delete your own account")
    user = _get_federation_admin(session, admin_id)
    if user.is_active and len(list_federation_admins(session)) <= 1:
        raise ValidationError("Cannot delete the last federation admin")
    _deactivate(session, user, actor)

# ---------------------------
# Clubs
# ---------------------------

def create_club(session: Session, payload: ClubCreate) -> models.Club:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Club name is required")
    if session.execute(select(models.Club).where(models.Club.name == name)).scalar_one_or_none():
        raise Conflict("A club with this name already exists")
    club = models.Club(name=name, city=clean_text(payload.city), country=clean_text(payload.country))
    session.add(club)
    session.commit()
    return club

def list_clubs(session: Session) -> list[models.Club]:
    return session.execute(select(models.Club).order_by(models.Club.name.asc())).scalars().all()

def get_club(session: Session, club_id: int) -> models.Club:
    club = session.get(models.Club, club_id)
    if not club:
        raise NotFound("Club not found")
    return club

def list_club_admins(session: Session, club_id: int) -> list[models.User]:
    get_club(session, club_id)
    return session.execute(
        select(models.User)
        .where(models.User.club_id == club_id, models.User.role == Role.CLUBADMIN, models.User.is_active.is_(True))
        .order_by(models.User.name.asc())
    ).scalars().all()

def update_club(session: Session, club_id: int, payload: ClubUpdate) -> models.Club:
    club = get_club(session, club_id)
    if payload.name is not None:
        name = clean_text(payload.name)
        if not name:
            raise ValidationError("Club name is required")
        if name != club.name and session.execute(select(models.Club.id).where(models.Club.name == name)).first():
            raise Conflict("A club with this name already exists")
        club.name = name
    if payload.city is not None:
        club.city = clean_text(payload.city)
    if payload.country is not None:
        club.country = clean_text(payload.country)
    session.commit()
    return club

def get_own_club(session: Session, actor: CurrentUser) -> models.Club:
    if not actor.is_club_admin or actor.club_id is None:
        raise Forbidden("Forbidden")
    return get_club(session, actor.club_id)

def update_own_club(session: Session, payload: ClubUpdate, actor: CurrentUser) -> models.Club:
    return update_club(session, get_own_club(session, actor).id, payload)

def _get_club_admin(session: Session, club_id: int, user_id: int) -> models.User:
    get_club(session, club_id)
    user = session.get(models.User, user_id)
    if not user or user.club_id != club_id or user.role != Role.CLUBADMIN:
        raise NotFound("Club admin not found")
    return user

def update_club_admin(session: Session, club_id: int, user_id: int, payload: StaffUpdate) -> models.User:
    return _update_account(session, _get_club_admin(session, club_id, user_id), payload)

def remove_club_admin(session: Session, club_id: int, user_id: int, actor: CurrentUser) -> None:
    _deactivate(session, _get_club_admin(session, club_id, user_id), actor)

def _assert_manages_club(actor: CurrentUser, club_id: int) -> None:
    if actor.is_superadmin:
        return
    if actor.is_club_admin and actor.club_id == club_id:
        return
    raise Forbidden("Forbidden")

# ---------------------------
# Class templates
# ---------------------------

def _check_weight_band(min_weight: float | None, max_weight: float | None) -> None:
    if min_weight is not None and min_weight < 0 or max_weight is not None and max_weight < 0:
        raise ValidationError("Weight values cannot be negative")
    if min_weight is not None and max_weight is not None and min_weight >= max_weight:
        raise ValidationError("Minimum weight must be less than maximum weight")

def list_global_classes(session: Session) -> list[models.GlobalClass]:
    return session.execute(select(models.GlobalClass).order_by(models.GlobalClass.name.asc())).scalars().all()

def create_global_class(session: Session, payload: ClassTemplateCreate) -> models.GlobalClass:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Name is required")
    _check_weight_band(payload.min_weight, payload.max_weight)
    if session.execute(select(models.GlobalClass).where(models.GlobalClass.name == name)).scalar_one_or_none():
        raise Conflict("A global class with this name already exists")
    gc = models.GlobalClass(
        name=name,
        description=clean_text(payload.description),
        min_weight=payload.min_weight,
        max_weight=payload.max_weight,
    )
    session.add(gc)
    session.commit()
    return gc

def list_club_classes(session: Session, club_id: int) -> list[models.ClubClass]:
    return session.execute(
        select(models.ClubClass)
        .where(models.ClubClass.club_id == club_id, models.ClubClass.is_active.is_(True))
        .order_by(models.ClubClass.name.asc())
    ).scalars().all()

def create_club_class(session: Session, club_id: int, payload: ClassTemplateCreate, actor: CurrentUser) -> models.ClubClass:
    _assert_manages_club(actor, club_id)
    get_club(session, club_id)
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Class name is required")
    _check_weight_band(payload.min_weight, payload.max_weight)
    existing = session.execute(
        select(models.ClubClass).where(models.ClubClass.club_id == club_id, models.ClubClass.name == name)
    ).scalar_one_or_none()
    if existing:
        raise Conflict("A class with this name already exists for your club")
    cc = models.ClubClass(
        club_id=club_id,
        name=name,
        description=clean_text(payload.description),
        min_weight=payload.min_weight,
        max_weight=payload.max_weight,
        is_active=True,
    )
    session.add(cc)
    session.commit()
    return cc

def deactivate_club_class(session: Session, club_id: int, class_id: int, actor: CurrentUser) -> None:
    _assert_manages_club(actor, club_id)
    cc = session.get(models.ClubClass, class_id)
    if not cc or cc.club_id != club_id:
        raise NotFound("Class not found")
    cc.is_active = False
    session.commit()

def copy_global_classes_to_club(session: Session, club_id: int) -> int:
    """Create club templates for every global class the club does not have yet."""
    get_club(session, club_id)
    have = set(
        session.execute(select(models.ClubClass.name).where(models.ClubClass.club_id == club_id)).scalars().all()
    )
    added = 0
    for gc in list_global_classes(session):
        if gc.name in have:
            continue
        session.add(
            models.ClubClass(
                club_id=club_id,
                name=gc.name,
                description=gc.description,
                min_weight=gc.min_weight,
                max_weight=gc.max_weight,
                is_active=True,
            )
        )
        added += 1
    session.commit()
    return added
