import pytest

from socialspace.db import init_db
from socialspace.errors import ApiError
from socialspace.friends import (
    accept_friend_request,
    get_friend_requests,
    get_friends,
    reject_friend_request,
    send_friend_request,
)
from socialspace.models import User


@pytest.fixture
def db():
    database = init_db("sqlite::memory:")
    yield database
    database.close()


def add_user(db, user_id, username):
    db.execute(
        "INSERT INTO users (id, email, password_hash, username, display_name, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, f"{username}@example.com", "hash", username, username, "2024-01-01T00:00:00+00:00"),
    )
    return User.from_row(db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,)))


@pytest.fixture
def pair(db):
    return add_user(db, "u1", "alice"), add_user(db, "u2", "bob")


def test_send_request_creates_pending_friendship(db, pair):
    alice, bob = pair
    result = send_friend_request(db, alice, bob.id)
    assert result["message"] == "Friend request sent"
    row = db.fetch_one("SELECT * FROM friendships WHERE id = ?", (result["friendship_id"],))
    assert (row["user_id"], row["friend_id"], row["status"]) == ("u1", "u2", "pending")


def test_send_request_to_self_rejected(db, pair):
    alice, _ = pair
    with pytest.raises(ApiError) as info:
        send_friend_request(db, alice, alice.id)
    assert info.value.status == 400
    assert info.value.message == "Cannot send friend request to yourself"


def test_send_request_to_unknown_user(db, pair):
    alice, _ = pair
    with pytest.raises(ApiError) as info:
        send_friend_request(db, alice, "ghost")
    assert info.value.status == 404


@pytest.mark.parametrize("second_sender", ["alice", "bob"])
def test_duplicate_request_conflicts_in_either_direction(db, pair, second_sender):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    sender, receiver = (alice, bob) if second_sender == "alice" else (bob, alice)
    with pytest.raises(ApiError) as info:
        send_friend_request(db, sender, receiver.id)
    assert info.value.status == 409
    assert info.value.to_dict() == {"error": "Friendship already exists", "status": "pending"}


def test_requests_listed_for_receiver_only(db, pair):
    alice, bob = pair
    sent = send_friend_request(db, alice, bob.id)
    requests = get_friend_requests(db, bob)
    assert [r["friendship_id"] for r in requests] == [sent["friendship_id"]]
    assert requests[0]["user"]["id"] == alice.id
    assert requests[0]["status"] == "pending"
    assert get_friend_requests(db, alice) == []


def test_accept_makes_both_friends(db, pair):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    assert get_friends(db, alice) == []
    assert accept_friend_request(db, bob, alice.id) == {"message": "Friend request accepted"}
    assert [f["user"]["id"] for f in get_friends(db, alice)] == [bob.id]
    assert [f["user"]["id"] for f in get_friends(db, bob)] == [alice.id]
    assert get_friends(db, bob)[0]["status"] == "accepted"
    assert get_friend_requests(db, bob) == []


def test_accept_by_sender_is_not_found(db, pair):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    with pytest.raises(ApiError) as info:
        accept_friend_request(db, alice, bob.id)
    assert info.value.status == 404
    assert info.value.message == "Friend request not found"


def test_request_after_acceptance_reports_accepted(db, pair):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    accept_friend_request(db, bob, alice.id)
    with pytest.raises(ApiError) as info:
        send_friend_request(db, bob, alice.id)
    assert info.value.extra == {"status": "accepted"}


def test_reject_removes_request(db, pair):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    assert reject_friend_request(db, bob, alice.id) == {"message": "Friend request rejected"}
    assert db.scalar("SELECT COUNT(*) FROM friendships") == 0
    with pytest.raises(ApiError) as info:
        reject_friend_request(db, bob, alice.id)
    assert info.value.status == 404


def test_reject_does_not_touch_accepted_friendship(db, pair):
    alice, bob = pair
    send_friend_request(db, alice, bob.id)
    accept_friend_request(db, bob, alice.id)
    with pytest.raises(ApiError):
        reject_friend_request(db, bob, alice.id)
    assert len(get_friends(db, alice)) == 1