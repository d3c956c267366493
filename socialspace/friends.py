"""Friend lists and friend requests."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import Friendship, User


def _lookup_user(db: Database, user_id: str) -> User | None:
    try:
        row = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    except sqlite3.Error:
        return None
    return None if row is None else User.from_row(row)


def _friend_entry(friendship: Friendship, user: User) -> dict[str, Any]:
    return {
        "friendship_id": friendship.id,
        "user": user.to_response(),
        "status": friendship.status,
        "created_at": friendship.created_at,
    }


def get_friends(db: Database, current_user: User) -> list[dict[str, Any]]:
    """Accepted friendships of the user, in either direction, with the other user."""
    try:
        rows = db.fetch_all(
            "SELECT * FROM friendships WHERE (user_id = ? OR friend_id = ?) AND status = 'accepted'",
            (current_user.id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get friends: {exc}") from exc

    friends = []
    for friendship in map(Friendship.from_row, rows):
        other_id = friendship.friend_id if friendship.user_id == current_user.id else friendship.user_id
        friend = _lookup_user(db, other_id)
        if friend is not None:
            friends.append(_friend_entry(friendship, friend))
    return friends


def get_friend_requests(db: Database, current_user: User) -> list[dict[str, Any]]:
    """Pending requests sent to the user, with their senders."""
    try:
        rows = db.fetch_all(
            "SELECT * FROM friendships WHERE friend_id = ? AND status = 'pending'",
            (current_user.id,),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get friend requests: {exc}") from exc

    requests = []
    for friendship in map(Friendship.from_row, rows):
        sender = _lookup_user(db, friendship.user_id)
        if sender is not None:
            requests.append(_friend_entry(friendship, sender))
    return requests


def send_friend_request(db: Database, current_user: User, friend_id: str) -> dict[str, Any]:
    """Create a pending request to ``friend_id``; answered with 201."""
    if current_user.id == friend_id:
        raise ApiError(400, "Cannot send friend request to yourself")

    try:
        target = db.fetch_one("SELECT * FROM users WHERE id = ?", (friend_id,))
    except sqlite3.Error:
        target = True  # a failed lookup does not block the request
    if target is None:
        raise ApiError(404, "User not found")

    try:
        existing = db.fetch_one(
            "SELECT * FROM friendships WHERE (user_id = ? AND friend_id = ?) OR (user_id = ? AND friend_id = ?)",
            (current_user.id, friend_id, friend_id, current_user.id),
        )
    except sqlite3.Error:
        existing = None
    if existing is not None:
        raise ApiError(409, "Friendship already exists", {"status": existing["status"]})

    friendship_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(
            "INSERT INTO friendships (id, user_id, friend_id, status, created_at) VALUES (?, ?, ?, 'pending', ?)",
            (friendship_id, current_user.id, friend_id, now),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to send friend request: {exc}") from exc
    return {"message": "Friend request sent", "friendship_id": friendship_id}


def accept_friend_request(db: Database, current_user: User, user_id: str) -> dict[str, Any]:
    """Accept the pending request that ``user_id`` sent to the current user."""
    try:
        row = db.fetch_one(
            "SELECT * FROM friendships WHERE user_id = ? AND friend_id = ? AND status = 'pending'",
            (user_id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc
    if row is None:
        raise ApiError(404, "Friend request not found")
    try:
        db.execute("UPDATE friendships SET status = 'accepted' WHERE id = ?", (row["id"],))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to accept friend request: {exc}") from exc
    return {"message": "Friend request accepted"}


def reject_friend_request(db: Database, current_user: User, user_id: str) -> dict[str, Any]:
    """Delete the pending request that ``user_id`` sent to the current user."""
    try:
        removed = db.execute(
            "DELETE FROM friendships WHERE user_id = ? AND friend_id = ? AND status = 'pending'",
            (user_id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to reject friend request: {exc}") from exc
    if removed <= 0:
        raise ApiError(404, "Friend request not found")
    return {"message": "Friend request rejected"}