import sqlite3

import pytest

from socialspace.db import default_database_url, init_db

TABLES = {
    "users",
    "friendships",
    "posts",
    "comments",
    "likes",
    "groups",
    "group_members",
    "messages",
    "user_public_keys",
}


@pytest.fixture
def db():
    database = init_db("sqlite::memory:")
    yield database
    database.close()


def _add_user(db, user_id, username):
    return db.execute(
        "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, f"{username}@example.com", "hash", username, username.title(), "t"),
    )


def test_schema_tables_exist(db):
    names = {row["name"] for row in db.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert TABLES <= names


def test_indexes_exist(db):
    names = {row[0] for row in db.fetch_all("SELECT name FROM sqlite_master WHERE type = 'index'")}
    assert "idx_messages_receiver_id" in names
    assert "idx_posts_user_id" in names


def test_execute_returns_rowcount_and_fetch(db):
    assert _add_user(db, "u1", "alice") == 1
    row = db.fetch_one("SELECT * FROM users WHERE id = ?", ("u1",))
    assert row["username"] == "alice"
    assert db.fetch_one("SELECT * FROM users WHERE id = ?", ("missing",)) is None


def test_scalar_counts(db):
    _add_user(db, "u1", "alice")
    _add_user(db, "u2", "bob")
    assert db.scalar("SELECT COUNT(*) FROM users") == 2
    assert db.scalar("SELECT id FROM users WHERE id = ?", ("none",)) is None


def test_unique_constraint_raises(db):
    _add_user(db, "u1", "alice")
    with pytest.raises(sqlite3.IntegrityError):
        _add_user(db, "u2", "alice")


def test_foreign_keys_enforced(db):
    with pytest.raises(sqlite3.IntegrityError):
        db.execute(
            "INSERT INTO user_public_keys (user_id, public_key, created_at) VALUES (?, ?, ?)",
            ("ghost", "pk", "t"),
        )


def test_default_url_from_environment():
    assert default_database_url({}) == "sqlite:social_space.db?mode=rwc"
    assert default_database_url({"DATABASE_URL": "sqlite::memory:"}) == "sqlite::memory:"


def test_file_database_persists(tmp_path):
    path = tmp_path / "data.db"
    url = f"sqlite:{path.as_posix()}?mode=rwc"
    with init_db(url) as first:
        _add_user(first, "u1", "alice")
    with init_db(url) as second:
        assert second.scalar("SELECT COUNT(*) FROM users") == 1
    assert path.exists()


def test_missing_file_without_create_mode_fails(tmp_path):
    with pytest.raises(sqlite3.OperationalError):
        init_db(f"sqlite:{(tmp_path / 'absent.db').as_posix()}")


def test_unsupported_scheme_rejected():
    with pytest.raises(ValueError):
        init_db("postgres://localhost/db")