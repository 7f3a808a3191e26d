from __future__ import annotations

from passlib.context import CryptContext
import hashlib

from .settings import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PADDOCK_BCRYPT_ROUNDS,
)


def _prepare(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(_prepare(password))


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(_prepare(password), password_hash)
