import time

import jwt
import pytest

from socialspace.auth import (
    TOKEN_LIFETIME_SECONDS,
    create_token,
    extract_token,
    get_current_user,
    require_auth,
    verify_token,
)
from socialspace.db import init_db
from socialspace.errors import ApiError

SECRET = "secret"
USER_ID = "u1"


@pytest.fixture
def db():
    database = init_db("sqlite::memory:")
    database.execute(
        "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (USER_ID, "alice@example.com", "placeholder", "alice", "Alice", "t"),
    )
    yield database
    database.close()


def test_token_round_trip():
    claims = verify_token(create_token(USER_ID, SECRET), SECRET)
    assert claims.sub == USER_ID
    assert claims.exp - claims.iat == 7 * 24 * 60 * 60
    assert abs(claims.iat - int(time.time())) <= 5


def test_wrong_secret_rejected():
    signed = create_token(USER_ID, SECRET)
    with pytest.raises(jwt.InvalidTokenError):
        verify_token(signed, "placeholder")


def test_expired_token_rejected():
    signed = jwt.encode({"sub": USER_ID, "iat": 0, "exp": 1}, SECRET, algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        verify_token(signed, SECRET)


def test_recently_expired_token_within_leeway():
    now = int(time.time())
    signed = jwt.encode({"sub": USER_ID, "iat": now - 100, "exp": now - 30}, SECRET, algorithm="HS256")
    assert verify_token(signed, SECRET).sub == USER_ID


def test_missing_subject_rejected():
    now = int(time.time())
    signed = jwt.encode({"iat": now, "exp": now + TOKEN_LIFETIME_SECONDS}, SECRET, algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        verify_token(signed, SECRET)


def test_garbage_token_rejected():
    with pytest.raises(jwt.InvalidTokenError):
        verify_token("token", SECRET)


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"Authorization": "Bearer token"}, "token"),
        ({"authorization": "Bearer token"}, "token"),
        ({"Authorization": "Basic token"}, None),
        ({}, None),
    ],
)
def test_extract_token(headers, expected):
    assert extract_token(headers) == expected


def test_get_current_user(db):
    headers = {"Authorization": f"Bearer {create_token(USER_ID, SECRET)}"}
    user = get_current_user(db, headers, SECRET)
    assert user.id == USER_ID
    assert user.email == "alice@example.com"


def test_get_current_user_unknown_id(db):
    headers = {"Authorization": f"Bearer {create_token('ghost', SECRET)}"}
    assert get_current_user(db, headers, SECRET) is None


def test_require_auth_without_token(db):
    with pytest.raises(ApiError) as info:
        require_auth(db, {}, SECRET)
    assert info.value.status == 401
    assert info.value.to_dict() == {"error": "Invalid or missing authentication token"}


def test_require_auth_returns_user(db):
    headers = {"Authorization": f"Bearer {create_token(USER_ID, SECRET)}"}
    assert require_auth(db, headers, SECRET).username == "alice"