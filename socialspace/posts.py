"""The post feed, single posts, likes and comments."""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from socialspace.db import Database
from socialspace.errors import ApiError
from socialspace.models import Comment, Friendship, Post, User

FEED_LIMIT = 50
DEFAULT_VISIBILITY = "friends_only"

_FEED_QUERY = f"""
    SELECT * FROM posts
    WHERE group_id IS NULL AND (
        user_id = ?
        OR visibility = 'public'
        OR (visibility = 'friends_only' AND user_id IN (SELECT value FROM json_each(?)))
    )
    ORDER BY created_at DESC
    LIMIT {FEED_LIMIT}
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _content_field(body: Mapping[str, Any]) -> str:
    content = body.get("content")
    if not isinstance(content, str):
        raise ApiError(400, "missing or invalid field `content`")
    return content


def _optional_bool(body: Mapping[str, Any], name: str) -> bool:
    value = body.get(name)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ApiError(400, f"invalid field `{name}`")
    return value


def _count(db: Database, sql: str, params: tuple) -> int:
    try:
        return int(db.scalar(sql, params) or 0)
    except sqlite3.Error:
        return 0


def _public_user(db: Database, user_id: str) -> dict[str, Any] | None:
    try:
        row = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    except sqlite3.Error:
        return None
    return None if row is None else User.from_row(row).to_response()


def _load_post(db: Database, post_id: str) -> Post | None:
    try:
        row = db.fetch_one("SELECT * FROM posts WHERE id = ?", (post_id,))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc
    return None if row is None else Post.from_row(row)


def build_post_response(db: Database, post: Post, current_user_id: str) -> dict[str, Any]:
    """The post as shown to ``current_user_id``, with author, counts and like state."""
    user = None if post.is_anonymous else _public_user(db, post.user_id)
    likes_count = _count(db, "SELECT COUNT(*) FROM likes WHERE post_id = ?", (post.id,))
    comments_count = _count(db, "SELECT COUNT(*) FROM comments WHERE post_id = ?", (post.id,))
    try:
        is_liked = (
            db.fetch_one(
                "SELECT * FROM likes WHERE post_id = ? AND user_id = ?",
                (post.id, current_user_id),
            )
            is not None
        )
    except sqlite3.Error:
        is_liked = False
    return {
        "id": post.id,
        "user": user,
        "content": post.content,
        "visibility": post.visibility,
        "is_anonymous": post.is_anonymous,
        "likes_count": likes_count,
        "comments_count": comments_count,
        "is_liked": is_liked,
        "created_at": post.created_at,
    }


def can_view_post(db: Database, post: Post, viewer_id: str) -> bool:
    """Whether ``viewer_id`` may see ``post`` given its visibility."""
    if post.user_id == viewer_id:
        return True
    if post.visibility == "public":
        return True
    if post.visibility != "friends_only":
        return False
    try:
        friendship = db.fetch_one(
            "SELECT * FROM friendships WHERE ((user_id = ? AND friend_id = ?) "
            "OR (user_id = ? AND friend_id = ?)) AND status = 'accepted'",
            (post.user_id, viewer_id, viewer_id, post.user_id),
        )
    except sqlite3.Error:
        return False
    return friendship is not None


def _friend_ids(db: Database, user_id: str) -> list[str]:
    try:
        rows = db.fetch_all(
            "SELECT * FROM friendships WHERE (user_id = ? OR friend_id = ?) AND status = 'accepted'",
            (user_id, user_id),
        )
    except sqlite3.Error:
        return []
    return [
        f.friend_id if f.user_id == user_id else f.user_id
        for f in map(Friendship.from_row, rows)
    ]


def get_feed(db: Database, current_user: User) -> list[dict[str, Any]]:
    """Own posts, public posts and friends' posts outside groups, newest first."""
    friend_ids = json.dumps(_friend_ids(db, current_user.id))
    try:
        rows = db.fetch_all(_FEED_QUERY, (current_user.id, friend_ids))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get feed: {exc}") from exc
    return [
        build_post_response(db, post, current_user.id)
        for post in map(Post.from_row, rows)
    ]


def create_post(db: Database, current_user: User, body: Mapping[str, Any]) -> dict[str, Any]:
    """Publish a post outside any group; answered with 201."""
    content = _content_field(body)
    if not content.strip():
        raise ApiError(400, "Post content cannot be empty")
    visibility = body.get("visibility")
    if visibility is None:
        visibility = DEFAULT_VISIBILITY
    elif not isinstance(visibility, str):
        raise ApiError(400, "invalid field `visibility`")

    post = Post(
        id=str(uuid.uuid4()),
        user_id=current_user.id,
        content=content,
        visibility=visibility,
        group_id=None,
        is_anonymous=False,
        created_at=_now(),
        updated_at="",
    )
    post.updated_at = post.created_at
    try:
        db.execute(
            "INSERT INTO posts (id, user_id, content, visibility, is_anonymous, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 0, ?, ?)",
            (post.id, post.user_id, post.content, post.visibility, post.created_at, post.updated_at),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to create post: {exc}") from exc
    return build_post_response(db, post, current_user.id)


def get_post(db: Database, current_user: User, post_id: str) -> dict[str, Any]:
    """One post, if the current user may see it."""
    post = _load_post(db, post_id)
    if post is None:
        raise ApiError(404, "Post not found")
    if not can_view_post(db, post, current_user.id):
        raise ApiError(403, "You don't have permission to view this post")
    return build_post_response(db, post, current_user.id)


def delete_post(db: Database, current_user: User, post_id: str) -> dict[str, Any]:
    """Delete one of the current user's posts with its comments and likes."""
    post = _load_post(db, post_id)
    if post is None:
        raise ApiError(404, "Post not found")
    if post.user_id != current_user.id:
        raise ApiError(403, "You can only delete your own posts")
    for sql in ("DELETE FROM comments WHERE post_id = ?", "DELETE FROM likes WHERE post_id = ?"):
        try:
            db.execute(sql, (post_id,))
        except sqlite3.Error:
            pass
    try:
        db.execute("DELETE FROM posts WHERE id = ?", (post_id,))
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to delete post: {exc}") from exc
    return {"message": "Post deleted"}


def like_post(db: Database, current_user: User, post_id: str) -> dict[str, Any]:
    """Toggle the current user's like on a post."""
    try:
        existing = db.fetch_one(
            "SELECT * FROM likes WHERE post_id = ? AND user_id = ?",
            (post_id, current_user.id),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Database error: {exc}") from exc

    if existing is not None:
        try:
            db.execute(
                "DELETE FROM likes WHERE post_id = ? AND user_id = ?",
                (post_id, current_user.id),
            )
        except sqlite3.Error:
            pass
        return {"message": "Post unliked", "liked": False}

    try:
        db.execute(
            "INSERT INTO likes (id, post_id, user_id, created_at) VALUES (?, ?, ?, ?)",
            (str(uuid.uuid4()), post_id, current_user.id, _now()),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to like post: {exc}") from exc
    return {"message": "Post liked", "liked": True}


def add_comment(
    db: Database, current_user: User, post_id: str, body: Mapping[str, Any]
) -> dict[str, Any]:
    """Comment on a post, optionally anonymously; answered with 201."""
    content = _content_field(body)
    if not content.strip():
        raise ApiError(400, "Comment content cannot be empty")
    is_anonymous = _optional_bool(body, "is_anonymous")

    try:
        post_row = db.fetch_one("SELECT * FROM posts WHERE id = ?", (post_id,))
    except sqlite3.Error:
        post_row = True  # a failed lookup does not block the comment
    if post_row is None:
        raise ApiError(404, "Post not found")

    comment_id = str(uuid.uuid4())
    now = _now()
    try:
        db.execute(
            "INSERT INTO comments (id, post_id, user_id, content, is_anonymous, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (comment_id, post_id, current_user.id, content, int(is_anonymous), now),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to add comment: {exc}") from exc
    return {
        "id": comment_id,
        "user": None if is_anonymous else current_user.to_response(),
        "content": content,
        "is_anonymous": is_anonymous,
        "created_at": now,
    }


def get_comments(db: Database, post_id: str) -> list[dict[str, Any]]:
    """The comments on a post, oldest first; anonymous ones carry no user."""
    try:
        rows = db.fetch_all(
            "SELECT * FROM comments WHERE post_id = ? ORDER BY created_at ASC",
            (post_id,),
        )
    except sqlite3.Error as exc:
        raise ApiError(500, f"Failed to get comments: {exc}") from exc
    return [
        {
            "id": comment.id,
            "user": None if comment.is_anonymous else _public_user(db, comment.user_id),
            "content": comment.content,
            "is_anonymous": comment.is_anonymous,
            "created_at": comment.created_at,
        }
        for comment in map(Comment.from_row, rows)
    ]