"""Records stored in the database and messages exchanged over the chat socket."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Mapping, Union


def _build_from_row(cls, row: Mapping[str, Any]):
    """Build a dataclass from a database row, turning integer flags into bools."""
    values = {}
    for f in fields(cls):
        value = row[f.name]
        if f.type in ("bool", bool):
            value = bool(value)
        values[f.name] = value
    return cls(**values)


@dataclass
class User:
    id: str
    email: str
    password_hash: str
    username: str
    display_name: str
    avatar_url: str | None
    bio: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return _build_from_row(cls, row)

    def to_response(self) -> dict[str, Any]:
        """The public view of the user, without the password hash."""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "bio": self.bio,
        }


class PostVisibility(str, Enum):
    PUBLIC = "public"
    FRIENDS_ONLY = "friends_only"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: str) -> "PostVisibility":
        """Read a visibility; anything unrecognised means friends only."""
        if value == "public":
            return cls.PUBLIC
        if value == "private":
            return cls.PRIVATE
        return cls.FRIENDS_ONLY

    def __str__(self) -> str:
        return self.value


@dataclass
class Friendship:
    id: str
    user_id: str
    friend_id: str
    status: str
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Friendship":
        return _build_from_row(cls, row)


@dataclass
class Post:
    id: str
    user_id: str
    content: str
    visibility: str
    group_id: str | None
    is_anonymous: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Post":
        return _build_from_row(cls, row)


@dataclass
class Comment:
    id: str
    post_id: str
    user_id: str
    content: str
    is_anonymous: bool
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Comment":
        return _build_from_row(cls, row)


@dataclass
class Group:
    id: str
    name: str
    description: str | None
    cover_image: str | None
    creator_id: str
    is_private: bool
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Group":
        return _build_from_row(cls, row)


@dataclass
class GroupMember:
    id: str
    group_id: str
    user_id: str
    role: str
    joined_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GroupMember":
        return _build_from_row(cls, row)


@dataclass
class Message:
    id: str
    sender_id: str
    receiver_id: str
    encrypted_content: str
    iv: str
    created_at: str
    is_read: bool

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Message":
        return _build_from_row(cls, row)

    def to_response(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class UserPublicKey:
    user_id: str
    public_key: str
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserPublicKey":
        return _build_from_row(cls, row)


@dataclass(frozen=True)
class WsAuth:
    TYPE: ClassVar[str] = "auth"
    token: str


@dataclass(frozen=True)
class WsChatMessage:
    TYPE: ClassVar[str] = "message"
    receiver_id: str
    encrypted_content: str
    iv: str


@dataclass(frozen=True)
class WsMessageReceived:
    TYPE: ClassVar[str] = "message_received"
    message: dict


@dataclass(frozen=True)
class WsTyping:
    TYPE: ClassVar[str] = "typing"
    receiver_id: str


@dataclass(frozen=True)
class WsTypingIndicator:
    TYPE: ClassVar[str] = "typing_indicator"
    sender_id: str


@dataclass(frozen=True)
class WsError:
    TYPE: ClassVar[str] = "error"
    message: str


@dataclass(frozen=True)
class WsConnected:
    TYPE: ClassVar[str] = "connected"
    user_id: str


WsMessage = Union[
    WsAuth,
    WsChatMessage,
    WsMessageReceived,
    WsTyping,
    WsTypingIndicator,
    WsError,
    WsConnected,
]

_WS_TYPES = {
    cls.TYPE: cls
    for cls in (
        WsAuth,
        WsChatMessage,
        WsMessageReceived,
        WsTyping,
        WsTypingIndicator,
        WsError,
        WsConnected,
    )
}

_MESSAGE_STRING_FIELDS = ("id", "sender_id", "receiver_id", "encrypted_content", "iv", "created_at")


def _string_field(data: Mapping[str, Any], name: str) -> str:
    if name not in data:
        raise ValueError(f"missing field `{name}`")
    value = data[name]
    if not isinstance(value, str):
        raise ValueError(f"invalid type for field `{name}`: expected a string")
    return value


def _message_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    if "message" not in data:
        raise ValueError("missing field `message`")
    payload = data["message"]
    if not isinstance(payload, dict):
        raise ValueError("invalid type for field `message`: expected an object")
    result: dict[str, Any] = {name: _string_field(payload, name) for name in _MESSAGE_STRING_FIELDS}
    if "is_read" not in payload:
        raise ValueError("missing field `is_read`")
    if not isinstance(payload["is_read"], bool):
        raise ValueError("invalid type for field `is_read`: expected a boolean")
    result["is_read"] = payload["is_read"]
    return result


def parse_ws_message(text: str) -> WsMessage:
    """Parse a JSON socket message tagged by its "type" field; raise ValueError if malformed."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    kind = data.get("type")
    cls = _WS_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise ValueError(f"unknown message type: {kind!r}")
    if cls is WsMessageReceived:
        return WsMessageReceived(message=_message_payload(data))
    return cls(**{f.name: _string_field(data, f.name) for f in fields(cls)})


def dump_ws_message(message: WsMessage) -> str:
    """Serialise a socket message to compact JSON with its "type" tag first."""
    return json.dumps(
        {"type": message.TYPE, **asdict(message)},
        separators=(",", ":"),
        ensure_ascii=False,
    )