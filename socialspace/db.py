"""SQLite storage: connection handling and schema creation."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qsl, quote, urlencode

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:social_space.db?mode=rwc"


@dataclass(frozen=True)
class _Column:
    name: str
    kind: str = "TEXT"
    key: bool = False
    unique: bool = False
    nullable: bool = False
    default: str | None = None

    def render(self) -> str:
        parts = [self.name, self.kind]
        if self.key:
            parts.append("PRIMARY KEY")
        else:
            if self.unique:
                parts.append("UNIQUE")
            if not self.nullable:
                parts.append("NOT NULL")
            if self.default is not None:
                parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


@dataclass(frozen=True)
class _Table:
    name: str
    columns: tuple[_Column, ...]
    references: Mapping[str, str] = field(default_factory=dict)
    unique: tuple[str, ...] = ()

    def create_statement(self) -> str:
        lines = [column.render() for column in self.columns]
        lines += [
            f"FOREIGN KEY ({column}) REFERENCES {table}(id)"
            for column, table in self.references.items()
        ]
        if self.unique:
            lines.append(f"UNIQUE({', '.join(self.unique)})")
        body = ",\n    ".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n)"


def _key(name: str) -> _Column:
    return _Column(name, key=True)


def _text(name: str, **options: Any) -> _Column:
    return _Column(name, **options)


def _optional(name: str) -> _Column:
    return _Column(name, nullable=True)


def _flag(name: str) -> _Column:
    return _Column(name, kind="INTEGER", default="0")


_TABLES = (
    _Table(
        "users",
        (
            _key("id"),
            _text("email", unique=True),
            _text("password_hash"),
            _text("username", unique=True),
            _text("display_name"),
            _optional("avatar_url"),
            _optional("bio"),
            _text("created_at"),
        ),
    ),
    _Table(
        "friendships",
        (
            _key("id"),
            _text("user_id"),
            _text("friend_id"),
            _text("status", default="'pending'"),
            _text("created_at"),
        ),
        {"user_id": "users", "friend_id": "users"},
        ("user_id", "friend_id"),
    ),
    _Table(
        "posts",
        (
            _key("id"),
            _text("user_id"),
            _text("content"),
            _text("visibility", default="'friends_only'"),
            _optional("group_id"),
            _flag("is_anonymous"),
            _text("created_at"),
            _text("updated_at"),
        ),
        {"user_id": "users", "group_id": "groups"},
    ),
    _Table(
        "comments",
        (
            _key("id"),
            _text("post_id"),
            _text("user_id"),
            _text("content"),
            _flag("is_anonymous"),
            _text("created_at"),
        ),
        {"post_id": "posts", "user_id": "users"},
    ),
    _Table(
        "likes",
        (_key("id"), _text("post_id"), _text("user_id"), _text("created_at")),
        {"post_id": "posts", "user_id": "users"},
        ("post_id", "user_id"),
    ),
    _Table(
        "groups",
        (
            _key("id"),
            _text("name"),
            _optional("description"),
            _optional("cover_image"),
            _text("creator_id"),
            _flag("is_private"),
            _text("created_at"),
        ),
        {"creator_id": "users"},
    ),
    _Table(
        "group_members",
        (
            _key("id"),
            _text("group_id"),
            _text("user_id"),
            _text("role", default="'member'"),
            _text("joined_at"),
        ),
        {"group_id": "groups", "user_id": "users"},
        ("group_id", "user_id"),
    ),
    _Table(
        "messages",
        (
            _key("id"),
            _text("sender_id"),
            _text("receiver_id"),
            _text("encrypted_content"),
            _text("iv"),
            _text("created_at"),
            _flag("is_read"),
        ),
        {"sender_id": "users", "receiver_id": "users"},
    ),
    _Table(
        "user_public_keys",
        (_key("user_id"), _text("public_key"), _text("created_at")),
        {"user_id": "users"},
    ),
)

_INDEXED = (
    ("posts", "user_id"),
    ("posts", "group_id"),
    ("friendships", "user_id"),
    ("friendships", "friend_id"),
    ("messages", "sender_id"),
    ("messages", "receiver_id"),
)


def _schema_statements() -> list[str]:
    statements = [table.create_statement() for table in _TABLES]
    statements += [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})"
        for table, column in _INDEXED
    ]
    return statements


class Database:
    """A thread-safe SQLite connection in autocommit mode."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        connection.row_factory = sqlite3.Row
        self._conn = connection
        self._lock = threading.RLock()

    def fetch_one(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def scalar(self, sql: str, params: Iterable[Any] = ()) -> Any:
        """The first column of the first row, or None when there is no row."""
        row = self.fetch_one(sql, params)
        return None if row is None else row[0]

    def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run a statement and return the number of rows it changed."""
        with self._lock:
            return self._conn.execute(sql, tuple(params)).rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def default_database_url(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    return env.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _connect(url: str) -> sqlite3.Connection:
    if not url.startswith("sqlite:"):
        raise ValueError(f"unsupported database URL: {url!r}")
    rest = url[len("sqlite:"):]
    if rest.startswith("//"):
        rest = rest[2:]
    path, _, query = rest.partition("?")
    options = {"check_same_thread": False, "isolation_level": None}
    if path in ("", ":memory:"):
        return sqlite3.connect(":memory:", **options)
    params = dict(parse_qsl(query))
    params.setdefault("mode", "rw")
    target = f"file:{quote(path)}?{urlencode(params)}"
    return sqlite3.connect(target, uri=True, **options)


def init_db(url: str | None = None) -> Database:
    """Open the database named by ``url`` (or the environment) and create the schema."""
    connection = _connect(url or default_database_url())
    connection.execute("PRAGMA foreign_keys = ON")
    for statement in _schema_statements():
        connection.execute(statement)
    logger.info("Database initialized successfully")
    return Database(connection)