"""The HTTP application: routes, JSON error handling and the server entry point."""

from __future__ import annotations

import argparse
import functools
import os
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute

from socialspace import accounts, chat, friends, groups, posts, users
from socialspace.auth import require_auth
from socialspace.db import Database, default_database_url, init_db
from socialspace.errors import ApiError
from socialspace.models import User
from socialspace.websocket import ConnectionRegistry, chat_ws

DEFAULT_JWT_SECRET = "secret"
DEFAULT_BIND_ADDR = "0.0.0.0:8080"


@dataclass
class AppState:
    db: Database
    jwt_secret: str
    connections: ConnectionRegistry = field(default_factory=ConnectionRegistry)


def build_state(environ: Mapping[str, str] | None = None) -> AppState:
    """Open the database and read the token secret from the environment."""
    env = os.environ if environ is None else environ
    return AppState(
        db=init_db(default_database_url(env)),
        jwt_secret=env.get("JWT_SECRET", DEFAULT_JWT_SECRET),
    )


async def healthz(request: Request) -> Response:
    return Response(status_code=HTTPStatus.OK)


def _state(request: Request) -> AppState:
    return request.app.state.social


async def _user(request: Request) -> User:
    state = _state(request)
    return await run_in_threadpool(require_auth, state.db, request.headers, state.jwt_secret)


async def _body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise ApiError(HTTPStatus.BAD_REQUEST, "Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise ApiError(HTTPStatus.BAD_REQUEST, "Invalid JSON body")
    return body


def _api(status: int = HTTPStatus.OK):
    """Turn a handler's result into a JSON response and ApiErrors into error bodies."""

    def decorate(handler: Callable[[Request], Awaitable[Any]]):
        @functools.wraps(handler)
        async def endpoint(request: Request) -> Response:
            try:
                payload = await handler(request)
            except ApiError as exc:
                return JSONResponse(exc.to_dict(), status_code=exc.status)
            return JSONResponse(payload, status_code=status)

        return endpoint

    return decorate


def _call(func: Callable[..., Any], *args: Any) -> Awaitable[Any]:
    return run_in_threadpool(func, *args)


@_api(HTTPStatus.CREATED)
async def _register(request: Request) -> Any:
    body = await _body(request)
    state = _state(request)
    return await _call(accounts.register, state.db, state.jwt_secret, body)


@_api()
async def _login(request: Request) -> Any:
    body = await _body(request)
    state = _state(request)
    return await _call(accounts.login, state.db, state.jwt_secret, body)


@_api()
async def _get_me(request: Request) -> Any:
    return accounts.get_me(await _user(request))


@_api()
async def _search_users(request: Request) -> Any:
    user = await _user(request)
    return await _call(users.search_users, _state(request).db, user, request.query_params.get("q"))


@_api()
async def _get_user(request: Request) -> Any:
    await _user(request)
    return await _call(users.get_user, _state(request).db, request.path_params["id"])


@_api()
async def _get_friends(request: Request) -> Any:
    user = await _user(request)
    return await _call(friends.get_friends, _state(request).db, user)


@_api()
async def _get_friend_requests(request: Request) -> Any:
    user = await _user(request)
    return await _call(friends.get_friend_requests, _state(request).db, user)


@_api(HTTPStatus.CREATED)
async def _send_friend_request(request: Request) -> Any:
    user = await _user(request)
    return await _call(friends.send_friend_request, _state(request).db, user, request.path_params["user_id"])


@_api()
async def _accept_friend_request(request: Request) -> Any:
    user = await _user(request)
    return await _call(friends.accept_friend_request, _state(request).db, user, request.path_params["user_id"])


@_api()
async def _reject_friend_request(request: Request) -> Any:
    user = await _user(request)
    return await _call(friends.reject_friend_request, _state(request).db, user, request.path_params["user_id"])


@_api()
async def _get_feed(request: Request) -> Any:
    user = await _user(request)
    return await _call(posts.get_feed, _state(request).db, user)


@_api(HTTPStatus.CREATED)
async def _create_post(request: Request) -> Any:
    body = await _body(request)
    user = await _user(request)
    return await _call(posts.create_post, _state(request).db, user, body)


@_api()
async def _get_post(request: Request) -> Any:
    user = await _user(request)
    return await _call(posts.get_post, _state(request).db, user, request.path_params["id"])


@_api()
async def _delete_post(request: Request) -> Any:
    user = await _user(request)
    return await _call(posts.delete_post, _state(request).db, user, request.path_params["id"])


@_api()
async def _like_post(request: Request) -> Any:
    user = await _user(request)
    return await _call(posts.like_post, _state(request).db, user, request.path_params["id"])


@_api(HTTPStatus.CREATED)
async def _add_comment(request: Request) -> Any:
    body = await _body(request)
    user = await _user(request)
    return await _call(posts.add_comment, _state(request).db, user, request.path_params["id"], body)


@_api()
async def _get_comments(request: Request) -> Any:
    await _user(request)
    return await _call(posts.get_comments, _state(request).db, request.path_params["id"])


@_api()
async def _get_groups(request: Request) -> Any:
    user = await _user(request)
    return await _call(groups.get_groups, _state(request).db, user)


@_api(HTTPStatus.CREATED)
async def _create_group(request: Request) -> Any:
    body = await _body(request)
    user = await _user(request)
    return await _call(groups.create_group, _state(request).db, user, body)


@_api()
async def _get_group(request: Request) -> Any:
    user = await _user(request)
    return await _call(groups.get_group, _state(request).db, user, request.path_params["id"])


@_api()
async def _join_group(request: Request) -> Any:
    user = await _user(request)
    return await _call(groups.join_group, _state(request).db, user, request.path_params["id"])


@_api()
async def _leave_group(request: Request) -> Any:
    user = await _user(request)
    return await _call(groups.leave_group, _state(request).db, user, request.path_params["id"])


@_api()
async def _get_group_posts(request: Request) -> Any:
    user = await _user(request)
    return await _call(groups.get_group_posts, _state(request).db, user, request.path_params["id"])


@_api(HTTPStatus.CREATED)
async def _create_group_post(request: Request) -> Any:
    body = await _body(request)
    user = await _user(request)
    return await _call(groups.create_group_post, _state(request).db, user, request.path_params["id"], body)


@_api()
async def _get_conversations(request: Request) -> Any:
    user = await _user(request)
    return await _call(chat.get_conversations, _state(request).db, user)


@_api()
async def _get_messages(request: Request) -> Any:
    user = await _user(request)
    return await _call(chat.get_messages, _state(request).db, user, request.path_params["user_id"])


@_api()
async def _get_public_key(request: Request) -> Any:
    await _user(request)
    return await _call(chat.get_public_key, _state(request).db, request.path_params["user_id"])


@_api()
async def _store_public_key(request: Request) -> Any:
    body = await _body(request)
    user = await _user(request)
    return await _call(chat.store_public_key, _state(request).db, user, body)


def create_app(state: AppState) -> Starlette:
    """The application with every route, open CORS and ``state`` attached."""
    routes = [
        Route("/healthz", healthz, methods=["GET"]),
        Route("/api/auth/register", _register, methods=["POST"]),
        Route("/api/auth/login", _login, methods=["POST"]),
        Route("/api/auth/me", _get_me, methods=["GET"]),
        Route("/api/users", _search_users, methods=["GET"]),
        Route("/api/users/{id}", _get_user, methods=["GET"]),
        Route("/api/friends", _get_friends, methods=["GET"]),
        Route("/api/friends/requests", _get_friend_requests, methods=["GET"]),
        Route("/api/friends/request/{user_id}", _send_friend_request, methods=["POST"]),
        Route("/api/friends/accept/{user_id}", _accept_friend_request, methods=["POST"]),
        Route("/api/friends/reject/{user_id}", _reject_friend_request, methods=["POST"]),
        Route("/api/posts", _get_feed, methods=["GET"]),
        Route("/api/posts", _create_post, methods=["POST"]),
        Route("/api/posts/{id}", _get_post, methods=["GET"]),
        Route("/api/posts/{id}", _delete_post, methods=["DELETE"]),
        Route("/api/posts/{id}/like", _like_post, methods=["POST"]),
        Route("/api/posts/{id}/comment", _add_comment, methods=["POST"]),
        Route("/api/posts/{id}/comments", _get_comments, methods=["GET"]),
        Route("/api/groups", _get_groups, methods=["GET"]),
        Route("/api/groups", _create_group, methods=["POST"]),
        Route("/api/groups/{id}", _get_group, methods=["GET"]),
        Route("/api/groups/{id}/join", _join_group, methods=["POST"]),
        Route("/api/groups/{id}/leave", _leave_group, methods=["POST"]),
        Route("/api/groups/{id}/posts", _get_group_posts, methods=["GET"]),
        Route("/api/groups/{id}/posts", _create_group_post, methods=["POST"]),
        Route("/api/chat/conversations", _get_conversations, methods=["GET"]),
        Route("/api/chat/messages/{user_id}", _get_messages, methods=["GET"]),
        Route("/api/chat/keys/{user_id}", _get_public_key, methods=["GET"]),
        Route("/api/chat/keys", _store_public_key, methods=["POST"]),
        WebSocketRoute("/ws/chat", chat_ws),
    ]
    middleware = [
        Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
    ]
    app = Starlette(routes=routes, middleware=middleware)
    app.state.social = state
    return app


def _split_bind(bind: str) -> tuple[str, int]:
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid bind address: {bind!r}")
    return host.strip("[]"), int(port)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="socialspace", description="Run the Social Space server.")
    parser.add_argument("--bind", default=None, help="address to listen on (default: $BIND_ADDR)")
    args = parser.parse_args(argv)

    print("Starting Social Space Backend...")
    state = build_state()
    bind = args.bind or os.environ.get("BIND_ADDR", DEFAULT_BIND_ADDR)
    host, port = _split_bind(bind)
    print(f"Server running at http://{bind}")
    uvicorn.run(create_app(state), host=host, port=port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())