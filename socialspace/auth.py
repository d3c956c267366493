"""Signed session tokens and the lookup of the user a request belongs to."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from typing import Mapping

import jwt

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import User

TOKEN_LIFETIME_SECONDS = 7 * 24 * 60 * 60
_ALGORITHM = "HS256"
_LEEWAY_SECONDS = 60


@dataclass(frozen=True)
class Claims:
    sub: str
    exp: int
    iat: int


def create_token(user_id: str, secret: str) -> str:
    """Issue a token for ``user_id`` valid for seven days."""
    now = int(time.time())
    payload = {"sub": user_id, "exp": now + TOKEN_LIFETIME_SECONDS, "iat": now}
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> Claims:
    """Check signature and expiry; raise jwt.InvalidTokenError when the token is bad."""
    payload = jwt.decode(
        token,
        secret,
        algorithms=[_ALGORITHM],
        leeway=_LEEWAY_SECONDS,
        options={
            "require": ["exp", "iat", "sub"],
            "verify_iat": False,
            "verify_nbf": False,
        },
    )
    sub, exp, iat = payload["sub"], payload["exp"], payload["iat"]
    if not isinstance(sub, str):
        raise jwt.InvalidTokenError("sub must be a string")
    for name, value in (("exp", exp), ("iat", iat)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise jwt.InvalidTokenError(f"{name} must be a non-negative integer")
    return Claims(sub=sub, exp=exp, iat=iat)


def extract_token(headers: Mapping[str, str]) -> str | None:
    """The bearer token from an Authorization header, if there is one."""
    value = headers.get("Authorization")
    if value is None:
        value = headers.get("authorization")
    if value is None or not value.startswith("Bearer "):
        return None
    return value[len("Bearer "):]


def get_current_user(db: Database, headers: Mapping[str, str], secret: str) -> User | None:
    token = extract_token(headers)
    if token is None:
        return None
    try:
        claims = verify_token(token, secret)
    except jwt.InvalidTokenError:
        return None
    try:
        row = db.fetch_one("SELECT * FROM users WHERE id = ?", (claims.sub,))
    except sqlite3.Error:
        return None
    return None if row is None else User.from_row(row)


def require_auth(db: Database, headers: Mapping[str, str], secret: str) -> User:
    """The authenticated user; raise a 401 ApiError when there is none."""
    user = get_current_user(db, headers, secret)
    if user is None:
        raise ApiError(401, "Invalid or missing authentication token")
    return user