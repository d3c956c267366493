"""Groups: membership, group details and posts inside a group."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import Group, Post, User
from socialspace.posts import build_post_response

GROUP_POSTS_LIMIT = 50
GROUP_VISIBILITY = "group"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _required_string(body: Mapping[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str):
        raise ApiError(400, f"missing or invalid field `{name}`")
    return value


def _optional_string(body: Mapping[str, Any], name: str) -> str | None:
    value = body.get(name)
    if value is not None and not isinstance(value, str):
        raise ApiError(400, f"invalid field `{name}`")
    return value


def _optional_bool(body: Mapping[str, Any], name: str) -> bool:
    value = body.get(name)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ApiError(400, f"invalid field `{name}`")
    return value


def _is_member(db: Database, group_id: str, user_id: str) -> bool:
    try:
        row = db.fetch_one(
            "SELECT * FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
    except sqlite3.Error:
        return False
    return row is not None


def _unknown_creator(creator_id: str) -> dict[str, Any]:
    return {
        "id": creator_id,
        "email": "",
        "username": "Unknown",
        "display_name": "Unknown User",
        "avatar_url": None,
        "bio": None,
    }


def build_group_response(db: Database, group: Group, current_user_id: str) -> dict[str, Any]:
    """The group as shown to ``current_user_id``, with creator, member count and membership."""
    try:
        creator_row = db.fetch_one("SELECT * FROM users WHERE id = ?", (group.creator_id,))
    except sqlite3.Error:
        creator_row = None
    creator = (
        User.from_row(creator_row).to_response()
        if creator_row is not None
        else _unknown_creator(group.creator_id)
    )
    try:
        members_count = int(
            db.scalar("SELECT COUNT(*) FROM group_members WHERE group_id = ?", (group.id,)) or 0
        )
    except sqlite3.Error:
        members_count = 0
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "cover_image": group.cover_image,
        "creator": creator,
        "is_private": group.is_private,
        "members_count": members_count,
        "is_member": _is_member(db, group.id, current_user_id),
        "created_at": group.created_at,
    }


def get_groups(db: Database, current_user: User) -> list[dict[str, Any]]:
    """The groups the current user belongs to, newest first."""
    try:
        rows = db.fetch_all(
            "SELECT g.* FROM groups g "
            "INNER JOIN group_members gm ON g.id = gm.group_id "
            "WHERE gm.user_id = ? "
            "ORDER BY g.created_at DESC",
            (current_user.id,),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get groups: {exc}") from exc
    return [build_group_response(db, group, current_user.id) for group in map(Group.from_row, rows)]


def create_group(db: Database, current_user: User, body: Mapping[str, Any]) -> dict[str, Any]:
    """Create a group with the current user as its admin; answered with 201."""
    name = _required_string(body, "name")
    if not name.strip():
        raise ApiError(400, "Group name cannot be empty")
    description = _optional_string(body, "description")
    is_private = _optional_bool(body, "is_private")

    group = Group(
        id=str(uuid.uuid4()),
        name=name,
        description=description,
        cover_image=None,
        creator_id=current_user.id,
        is_private=is_private,
        created_at=_now(),
    )
    try:
        db.execute(
            "INSERT INTO groups (id, name, description, creator_id, is_private, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (group.id, group.name, group.description, group.creator_id, int(is_private), group.created_at),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to create group: {exc}") from exc

    try:
        db.execute(
            "INSERT INTO group_members (id, group_id, user_id, role, joined_at) "
            "VALUES (?, ?, ?, 'admin', ?)",
            (str(uuid.uuid4()), group.id, current_user.id, group.created_at),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to add creator as member: {exc}") from exc
    return build_group_response(db, group, current_user.id)


def get_group(db: Database, current_user: User, group_id: str) -> dict[str, Any]:
    """One group; 404 when there is no such group."""
    try:
        row = db.fetch_one("SELECT * FROM groups WHERE id = ?", (group_id,))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc
    if row is None:
        raise ApiError(404, "Group not found")
    return build_group_response(db, Group.from_row(row), current_user.id)


def join_group(db: Database, current_user: User, group_id: str) -> dict[str, Any]:
    """Add the current user to a group as an ordinary member."""
    try:
        group_row = db.fetch_one("SELECT * FROM groups WHERE id = ?", (group_id,))
    except sqlite3.Error:
        group_row = True  # a failed lookup does not block joining
    if group_row is None:
        raise ApiError(404, "Group not found")

    try:
        existing = db.fetch_one(
            "SELECT * FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, current_user.id),
        )
    except sqlite3.Error:
        existing = None
    if existing is not None:
        raise ApiError(409, "Already a member of this group")

    try:
        db.execute(
            "INSERT INTO group_members (id, group_id, user_id, role, joined_at) "
            "VALUES (?, ?, ?, 'member', ?)",
            (str(uuid.uuid4()), group_id, current_user.id, _now()),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to join group: {exc}") from exc
    return {"message": "Joined group successfully"}


def leave_group(db: Database, current_user: User, group_id: str) -> dict[str, Any]:
    """Remove the current user from a group; 404 when not a member."""
    try:
        removed = db.execute(
            "DELETE FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to leave group: {exc}") from exc
    if removed <= 0:
        raise ApiError(404, "Not a member of this group")
    return {"message": "Left group successfully"}


def get_group_posts(db: Database, current_user: User, group_id: str) -> list[dict[str, Any]]:
    """The latest posts in a group, newest first; members only."""
    if not _is_member(db, group_id, current_user.id):
        raise ApiError(403, "You must be a member to view group posts")
    try:
        rows = db.fetch_all(
            f"SELECT * FROM posts WHERE group_id = ? ORDER BY created_at DESC LIMIT {GROUP_POSTS_LIMIT}",
            (group_id,),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get group posts: {exc}") from exc
    return [build_post_response(db, post, current_user.id) for post in map(Post.from_row, rows)]


def create_group_post(
    db: Database, current_user: User, group_id: str, body: Mapping[str, Any]
) -> dict[str, Any]:
    """Post in a group, optionally anonymously; members only, answered with 201."""
    content = _required_string(body, "content")
    if not content.strip():
        raise ApiError(400, "Post content cannot be empty")
    if not _is_member(db, group_id, current_user.id):
        raise ApiError(403, "You must be a member to post in this group")
    is_anonymous = _optional_bool(body, "is_anonymous")

    now = _now()
    post = Post(
        id=str(uuid.uuid4()),
        user_id=current_user.id,
        content=content,
        visibility=GROUP_VISIBILITY,
        group_id=group_id,
        is_anonymous=is_anonymous,
        created_at=now,
        updated_at=now,
    )
    try:
        db.execute(
            "INSERT INTO posts (id, user_id, content, visibility, group_id, is_anonymous, created_at, updated_at) "
            "VALUES (?, ?, ?, 'group', ?, ?, ?, ?)",
            (post.id, post.user_id, post.content, group_id, int(is_anonymous), now, now),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to create post: {exc}") from exc
    return build_post_response(db, post, current_user.id)