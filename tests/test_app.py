from http import HTTPStatus

import pytest
from starlette.testclient import TestClient

from socialspace.app import build_state, create_app
from socialspace.auth import create_token

SECRET = "secret"


@pytest.fixture
def state():
    app_state = build_state({"DATABASE_URL": "sqlite::memory:", "JWT_SECRET": SECRET})
    yield app_state
    app_state.db.close()


@pytest.fixture
def client(state):
    with TestClient(create_app(state)) as test_client:
        yield test_client


def _add_user(state, user_id):
    state.db.execute(
        "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, f"{user_id}@example.com", "hash", user_id, user_id, "2024-01-01T00:00:00+00:00"),
    )


def _headers(user_id):
    return {"Authorization": "Bearer " + create_token(user_id, SECRET)}


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == HTTPStatus.OK
    assert response.content == b""


def test_build_state_reads_secret(state):
    assert state.jwt_secret == SECRET


def test_register_me_and_login(client):
    password = "password"
    response = client.post(
        "/api/auth/register",
        json={"email": "alice@example.com", "password": password, "username": "alice", "display_name": "Alice"},
    )
    assert response.status_code == HTTPStatus.CREATED
    registered = response.json()
    me = client.get("/api/auth/me", headers={"Authorization": "Bearer " + registered["token"]})
    assert me.status_code == HTTPStatus.OK
    assert me.json() == registered["user"]

    login = client.post("/api/auth/login", json={"email": "alice@example.com", "password": password})
    assert login.status_code == HTTPStatus.OK
    assert login.json()["user"]["id"] == registered["user"]["id"]


def test_me_without_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == HTTPStatus.UNAUTHORIZED
    assert response.json() == {"error": "Invalid or missing authentication token"}


def test_invalid_json_body(client, state):
    _add_user(state, "alice")
    response = client.post("/api/posts", content=b"{not json", headers=_headers("alice"))
    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_post_feed_and_like(client, state):
    _add_user(state, "alice")
    _add_user(state, "bob")
    created = client.post("/api/posts", json={"content": "hello", "visibility": "public"}, headers=_headers("alice"))
    assert created.status_code == HTTPStatus.CREATED
    post_id = created.json()["id"]

    feed = client.get("/api/posts", headers=_headers("bob")).json()
    assert [post["id"] for post in feed] == [post_id]

    liked = client.post(f"/api/posts/{post_id}/like", headers=_headers("bob"))
    assert liked.json() == {"message": "Post liked", "liked": True}
    post = client.get(f"/api/posts/{post_id}", headers=_headers("bob")).json()
    assert post["likes_count"] == 1
    assert post["is_liked"] is True


def test_friend_request_flow(client, state):
    _add_user(state, "alice")
    _add_user(state, "bob")
    sent = client.post("/api/friends/request/bob", headers=_headers("alice"))
    assert sent.status_code == HTTPStatus.CREATED
    requests = client.get("/api/friends/requests", headers=_headers("bob")).json()
    assert [entry["user"]["id"] for entry in requests] == ["alice"]
    accepted = client.post("/api/friends/accept/alice", headers=_headers("bob"))
    assert accepted.json() == {"message": "Friend request accepted"}
    friends = client.get("/api/friends", headers=_headers("alice")).json()
    assert [entry["user"]["id"] for entry in friends] == ["bob"]


def test_group_membership_required_for_posts(client, state):
    _add_user(state, "alice")
    _add_user(state, "bob")
    created = client.post("/api/groups", json={"name": "Readers"}, headers=_headers("alice"))
    assert created.status_code == HTTPStatus.CREATED
    group = created.json()
    assert group["members_count"] == 1
    assert group["is_member"] is True
    denied = client.get(f"/api/groups/{group['id']}/posts", headers=_headers("bob"))
    assert denied.status_code == HTTPStatus.FORBIDDEN
    assert denied.json() == {"error": "You must be a member to view group posts"}


def test_public_key_round_trip(client, state):
    _add_user(state, "alice")
    _add_user(state, "bob")
    stored = client.post("/api/chat/keys", json={"public_key": "placeholder"}, headers=_headers("alice"))
    assert stored.status_code == HTTPStatus.OK
    fetched = client.get("/api/chat/keys/alice", headers=_headers("bob"))
    assert fetched.json() == {"public_key": "placeholder"}
    missing = client.get("/api/chat/keys/bob", headers=_headers("alice"))
    assert missing.status_code == HTTPStatus.NOT_FOUND


def test_cors_allows_any_origin(client):
    response = client.get("/healthz", headers={"Origin": "http://client.example.com"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_websocket_route_authenticates(client, state):
    _add_user(state, "alice")
    with client.websocket_connect("/ws/chat") as socket:
        socket.send_json({"type": "auth", "token": create_token("alice", SECRET)})
        assert socket.receive_json() == {"type": "connected", "user_id": "alice"}