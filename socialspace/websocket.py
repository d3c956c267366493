"""Live chat over a WebSocket: authentication, message delivery and typing notices."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

import jwt
from starlette.websockets import WebSocket

from socialspace.auth import verify_token
from socialspace.db import Database
from socialspace.models import (
    WsAuth,
    WsChatMessage,
    WsConnected,
    WsError,
    WsMessageReceived,
    WsTyping,
    WsTypingIndicator,
    dump_ws_message,
    parse_ws_message,
)


class _Outbox(Protocol):
    def put_nowait(self, item: str) -> None: ...


class ConnectionRegistry:
    """The outgoing queues of every authenticated socket, keyed by user id."""

    def __init__(self) -> None:
        self._channels: dict[str, list[_Outbox]] = {}
        self._lock = threading.Lock()

    def add(self, user_id: str, queue: _Outbox) -> None:
        with self._lock:
            self._channels.setdefault(user_id, []).append(queue)

    def remove(self, user_id: str) -> None:
        """Forget every connection of ``user_id``."""
        with self._lock:
            self._channels.pop(user_id, None)

    def send_to(self, user_id: str, text: str) -> int:
        """Queue ``text`` on each connection of ``user_id``; return how many got it."""
        with self._lock:
            channels = list(self._channels.get(user_id, ()))
        for channel in channels:
            channel.put_nowait(text)
        return len(channels)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._channels


class ChatSession:
    """The state of one socket: who it belongs to and where its pushed messages go."""

    def __init__(
        self,
        db: Database,
        secret: str,
        registry: ConnectionRegistry,
        outbox: _Outbox | None = None,
    ) -> None:
        self.db = db
        self.secret = secret
        self.registry = registry
        self.outbox: Any = outbox if outbox is not None else asyncio.Queue()
        self.user_id: str | None = None

    def handle_text(self, text: str) -> list[str]:
        """Act on one incoming text frame; return the frames to send back on this socket."""
        try:
            message = parse_ws_message(text)
        except ValueError:
            return []
        if isinstance(message, WsAuth):
            return [self._authenticate(message.token)]
        if isinstance(message, WsChatMessage):
            return [self._send_chat(message)]
        if isinstance(message, WsTyping):
            self._notify_typing(message.receiver_id)
        return []

    def _authenticate(self, token: str) -> str:
        try:
            claims = verify_token(token, self.secret)
        except jwt.InvalidTokenError:
            return dump_ws_message(WsError(message="Invalid token"))
        self.user_id = claims.sub
        self.registry.add(claims.sub, self.outbox)
        return dump_ws_message(WsConnected(user_id=claims.sub))

    def _send_chat(self, message: WsChatMessage) -> str:
        if self.user_id is None:
            return dump_ws_message(WsError(message="Not authenticated"))
        message_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        try:
            self.db.execute(
                "INSERT INTO messages (id, sender_id, receiver_id, encrypted_content, iv, created_at, is_read) "
                "VALUES (?, ?, ?, ?, ?, ?, 0)",
                (message_id, self.user_id, message.receiver_id, message.encrypted_content, message.iv, now),
            )
        except sqlite3.Error:
            return dump_ws_message(WsError(message="Failed to send message"))
        payload = {
            "id": message_id,
            "sender_id": self.user_id,
            "receiver_id": message.receiver_id,
            "encrypted_content": message.encrypted_content,
            "iv": message.iv,
            "created_at": now,
            "is_read": False,
        }
        text = dump_ws_message(WsMessageReceived(message=payload))
        self.registry.send_to(message.receiver_id, text)
        return text

    def _notify_typing(self, receiver_id: str) -> None:
        if self.user_id is None:
            return
        self.registry.send_to(receiver_id, dump_ws_message(WsTypingIndicator(sender_id=self.user_id)))

    def close(self) -> None:
        """Drop the user's connections from the registry."""
        if self.user_id is not None:
            self.registry.remove(self.user_id)


async def chat_ws(websocket: WebSocket) -> None:
    """Serve one chat socket until the client disconnects."""
    state = websocket.app.state.social
    await websocket.accept()
    session = ChatSession(state.db, state.jwt_secret, state.connections)
    receiving = asyncio.ensure_future(websocket.receive())
    sending = asyncio.ensure_future(session.outbox.get())
    try:
        while True:
            done, _ = await asyncio.wait({receiving, sending}, return_when=asyncio.FIRST_COMPLETED)
            if sending in done:
                await websocket.send_text(sending.result())
                sending = asyncio.ensure_future(session.outbox.get())
            if receiving in done:
                event = receiving.result()
                if event["type"] == "websocket.disconnect":
                    break
                text = event.get("text")
                if text is not None:
                    for reply in session.handle_text(text):
                        await websocket.send_text(reply)
                receiving = asyncio.ensure_future(websocket.receive())
    finally:
        receiving.cancel()
        sending.cancel()
        session.close()