from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Depends
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy.orm import Session

from .db import get_session
from .errors import Forbidden, Unauthorized
from .models import Event, Role, User
from .settings import settings

logger = logging.getLogger(__name__)

COOKIE_NAME = "paddock_session"

def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.PADDOCK_SECRET_KEY, salt="paddock-session")

@dataclass
class CurrentUser:
    id: int
    email: str
    name: str
    role: Role
    club_id: Optional[int] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN

    @property
    def is_club_admin(self) -> bool:
        return self.role == Role.CLUBADMIN

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(id=user.id, email=user.email, name=user.name, role=user.role, club_id=user.club_id)

def issue_token(user_id: int) -> str:
    # Only the id travels in the cookie; role and club are looked up per request.
    return _serializer().dumps({"id": user_id})

def read_token(token: str) -> Optional[int]:
    try:
        data = _serializer().loads(token, max_age=settings.PADDOCK_SESSION_MAX_AGE)
        return int(data["id"])
    except SignatureExpired:
        logger.info("Rejected expired session token")
        return None
    except (BadSignature, KeyError, TypeError, ValueError):
        logger.warning("Rejected tampered session token")
        return None

def set_login_cookie(request: Request, *, user_id: int) -> None:
    request.state._set_auth_cookie = issue_token(user_id)

def clear_login_cookie(request: Request) -> None:
    request.state._clear_auth_cookie = True

def get_current_user(request: Request, session: Session = Depends(get_session)) -> Optional[CurrentUser]:
    raw = request.cookies.get(COOKIE_NAME)
    if not raw:
        return None
    user_id = read_token(raw)
    if user_id is None:
        return None
    user = session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return CurrentUser.from_user(user)

def login_required(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if not user:
        raise Unauthorized("Unauthorized")
    return user

def require_roles(*roles: Role):
    allowed = frozenset(roles)

    def dependency(user: CurrentUser = Depends(login_required)) -> CurrentUser:
        if user.role not in allowed:
            raise Forbidden("Forbidden - insufficient permissions")
        return user

    return dependency

def assert_event_access(user: CurrentUser, event: Event) -> None:
    # Club admins only manage their own club's events; other staff roles are not club scoped
    if user.role == Role.CLUBADMIN and event.club_id != user.club_id:
        raise Forbidden("Forbidden")

def assert_event_owner(user: CurrentUser, event: Event) -> None:
    if user.role != Role.CLUBADMIN or event.club_id != user.club_id:
        raise Forbidden("Only the organising club's admins can do this")

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

class AuthCookieMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        token = getattr(request.state, "_set_auth_cookie", None)
        if token:
            response.set_cookie(
                COOKIE_NAME,
                token,
                httponly=True,
                samesite="lax",
                secure=settings.PADDOCK_COOKIE_SECURE,
                max_age=settings.PADDOCK_SESSION_MAX_AGE,
            )
        if getattr(request.state, "_clear_auth_cookie", False):
            response.delete_cookie(COOKIE_NAME)
        return response
