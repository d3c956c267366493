"""User search and profile lookup."""

from __future__ import annotations

import sqlite3
from typing import Any

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import User

SEARCH_LIMIT = 50


def search_users(db: Database, current_user: User, q: str | None = None) -> list[dict[str, Any]]:
    """Other users whose username or display name contains ``q`` (all of them when empty)."""
    term = q or ""
    try:
        if not term:
            rows = db.fetch_all(
                f"SELECT * FROM users WHERE id != ? LIMIT {SEARCH_LIMIT}",
                (current_user.id,),
            )
        else:
            pattern = f"%{term}%"
            rows = db.fetch_all(
                "SELECT * FROM users WHERE id != ? AND (username LIKE ? OR display_name LIKE ?) "
                f"LIMIT {SEARCH_LIMIT}",
                (current_user.id, pattern, pattern),
            )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to search users: {exc}") from exc
    return [User.from_row(row).to_response() for row in rows]


def get_user(db: Database, user_id: str) -> dict[str, Any]:
    """The public profile of one user; 404 when there is no such user."""
    try:
        row = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc
    if row is None:
        raise ApiError(404, "User not found")
    return User.from_row(row).to_response()