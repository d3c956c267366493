"""Conversations, message history and users' public keys for end-to-end chat."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Mapping

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import Message, User, UserPublicKey

HISTORY_LIMIT = 100

_LATEST_PER_PARTNER = """
    SELECT m1.* FROM messages m1
    INNER JOIN (
        SELECT
            CASE WHEN sender_id = ? THEN receiver_id ELSE sender_id END as partner_id,
            MAX(created_at) as max_created
        FROM messages
        WHERE sender_id = ? OR receiver_id = ?
        GROUP BY partner_id
    ) m2 ON (
        (m1.sender_id = ? AND m1.receiver_id = m2.partner_id) OR
        (m1.receiver_id = ? AND m1.sender_id = m2.partner_id)
    ) AND m1.created_at = m2.max_created
    ORDER BY m1.created_at DESC
"""


def get_conversations(db: Database, current_user: User) -> list[dict[str, Any]]:
    """One entry per chat partner: the partner, the latest message and the unread count."""
    try:
        rows = db.fetch_all(_LATEST_PER_PARTNER, (current_user.id,) * 5)
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get conversations: {exc}") from exc

    conversations = []
    for message in map(Message.from_row, rows):
        partner_id = message.receiver_id if message.sender_id == current_user.id else message.sender_id
        try:
            partner_row = db.fetch_one("SELECT * FROM users WHERE id = ?", (partner_id,))
        except sqlite3.Error:
            continue
        if partner_row is None:
            continue
        try:
            unread = db.scalar(
                "SELECT COUNT(*) FROM messages WHERE sender_id = ? AND receiver_id = ? AND is_read = 0",
                (partner_id, current_user.id),
            ) or 0
        except sqlite3.Error:
            unread = 0
        conversations.append(
            {
                "user": User.from_row(partner_row).to_response(),
                "last_message": message.to_response(),
                "unread_count": unread,
            }
        )
    return conversations


def get_messages(db: Database, current_user: User, other_user_id: str) -> list[dict[str, Any]]:
    """Mark the partner's messages as read and return the history, oldest first."""
    try:
        db.execute(
            "UPDATE messages SET is_read = 1 WHERE sender_id = ? AND receiver_id = ?",
            (other_user_id, current_user.id),
        )
    except sqlite3.Error:
        pass
    try:
        rows = db.fetch_all(
            "SELECT * FROM messages "
            "WHERE (sender_id = ? AND receiver_id = ?) OR (sender_id = ? AND receiver_id = ?) "
            f"ORDER BY created_at ASC LIMIT {HISTORY_LIMIT}",
            (current_user.id, other_user_id, other_user_id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get messages: {exc}") from exc
    return [Message.from_row(row).to_response() for row in rows]


def get_public_key(db: Database, user_id: str) -> dict[str, Any]:
    """The stored public key of ``user_id``; 404 when none is stored."""
    try:
        row = db.fetch_one("SELECT * FROM user_public_keys WHERE user_id = ?", (user_id,))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc
    if row is None:
        raise ApiError(404, "Public key not found for user")
    return {"public_key": UserPublicKey.from_row(row).public_key}


def store_public_key(db: Database, current_user: User, body: Mapping[str, Any]) -> dict[str, Any]:
    """Insert or replace the current user's public key."""
    public_key = body.get("public_key")
    if not isinstance(public_key, str):
        raise ApiError(400, "missing or invalid field `public_key`")
    now = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(
            "INSERT INTO user_public_keys (user_id, public_key, created_at) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET public_key = ?, created_at = ?",
            (current_user.id, public_key, now, public_key, now),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to store public key: {exc}") from exc
    return {"message": "Public key stored successfully"}