"""Registration, login and the current-user endpoint."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

import bcrypt

from socialspace.auth import create_token
from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import User

DEFAULT_COST = 12
MIN_PASSWORD_BYTES = 6


def _string_field(body: Mapping[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str):
        raise ApiError(400, f"missing or invalid field `{name}`")
    return value


def _find_user(db: Database, column: str, value: str) -> User | None:
    try:
        row = db.fetch_one(f"SELECT * FROM users WHERE {column} = ?", (value,))
    except sqlite3.Error:
        return None
    return None if row is None else User.from_row(row)


def register(db: Database, secret: str, body: Mapping[str, Any]) -> dict[str, Any]:
    """Create an account and return a token with the new user; answered with 201."""
    email = _string_field(body, "email")
    password = _string_field(body, "password")
    username = _string_field(body, "username")
    display_name = _string_field(body, "display_name")

    if not email or not password or not username:
        raise ApiError(400, "Email, password, and username are required")
    if len(password.encode("utf-8")) < MIN_PASSWORD_BYTES:
        raise ApiError(400, "Password must be at least 6 characters")
    if _find_user(db, "email", email) is not None:
        raise ApiError(409, "Email already registered")
    if _find_user(db, "username", username) is not None:
        raise ApiError(409, "Username already taken")

    try:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=DEFAULT_COST))
    except ValueError as exc:
        raise ApiError(500, "Failed to hash password") from exc
    digest = hashed.decode("ascii")

    user_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(
            "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, email, digest, username, display_name, now),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to create user: {exc}") from exc

    return {
        "token": create_token(user_id, secret),
        "user": {
            "id": user_id,
            "email": email,
            "username": username,
            "display_name": display_name,
            "avatar_url": None,
            "bio": None,
        },
    }


def login(db: Database, secret: str, body: Mapping[str, Any]) -> dict[str, Any]:
    """Check credentials and return a fresh token with the user."""
    email = _string_field(body, "email")
    password = _string_field(body, "password")
    try:
        row = db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))
    except sqlite3.Error as exc:
        raise ApiError(500, "Database error") from exc
    if row is None:
        raise ApiError(401, "Invalid credentials")
    user = User.from_row(row)
    try:
        matches = bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8"))
    except ValueError:
        matches = False
    if not matches:
        raise ApiError(401, "Invalid credentials")
    return {"token": create_token(user.id, secret), "user": user.to_response()}


def get_me(user: User) -> dict[str, Any]:
    return user.to_response()