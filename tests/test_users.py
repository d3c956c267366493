import pytest

from socialspace.db import init_db
from socialspace.errors import ApiError
from socialspace.models import User
from socialspace.users import get_user, search_users


@pytest.fixture
def db():
    database = init_db("sqlite::memory:")
    yield database
    database.close()


def add_user(db, user_id, username, display_name=None):
    db.execute(
        "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, f"{username}@example.com", "hash", username, display_name or username, "2024-01-01T00:00:00+00:00"),
    )
    return User.from_row(db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,)))


def test_search_without_term_excludes_current_user(db):
    me = add_user(db, "u1", "alice")
    add_user(db, "u2", "bob")
    add_user(db, "u3", "carol")
    result = search_users(db, me, None)
    assert sorted(u["id"] for u in result) == ["u2", "u3"]


def test_search_empty_string_same_as_none(db):
    me = add_user(db, "u1", "alice")
    add_user(db, "u2", "bob")
    assert search_users(db, me, "") == search_users(db, me, None)


def test_search_matches_username_and_display_name(db):
    me = add_user(db, "u1", "alice")
    add_user(db, "u2", "bobby", "Robert")
    add_user(db, "u3", "carol", "Bob Fan")
    add_user(db, "u4", "dave")
    result = search_users(db, me, "bob")
    assert sorted(u["id"] for u in result) == ["u2", "u3"]


def test_search_never_returns_self_even_on_match(db):
    me = add_user(db, "u1", "alice")
    add_user(db, "u2", "alicia")
    result = search_users(db, me, "ali")
    assert [u["id"] for u in result] == ["u2"]


def test_search_limited_to_fifty(db):
    me = add_user(db, "u0", "me")
    for n in range(55):
        add_user(db, f"x{n}", f"user{n}")
    assert len(search_users(db, me, None)) == 50
    assert len(search_users(db, me, "user")) == 50


def test_search_results_hide_password_hash(db):
    me = add_user(db, "u1", "alice")
    add_user(db, "u2", "bob")
    (found,) = search_users(db, me, "bob")
    assert "password_hash" not in found
    assert found["email"] == "bob@example.com"


def test_get_user_returns_profile(db):
    add_user(db, "u2", "bob", "Bob B")
    profile = get_user(db, "u2")
    assert profile["username"] == "bob"
    assert profile["display_name"] == "Bob B"
    assert profile["avatar_url"] is None


def test_get_user_missing_is_404(db):
    with pytest.raises(ApiError) as info:
        get_user(db, "nobody")
    assert info.value.status == 404
    assert info.value.message == "User not found"