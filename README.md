# socialspace

A self-contained social network server. It keeps everything in SQLite and
serves a JSON API plus a WebSocket endpoint for real-time chat:

- accounts with bcrypt-hashed passwords and HS256 JWT bearer tokens valid for 7 days
- user search and profiles
- friend requests (send, accept, reject) and friend lists
- posts with `public`, `friends_only` or `private` visibility, likes and comments
- groups with an admin creator, members, and group posts that may be anonymous
- one-to-one chat whose message bodies are encrypted by the clients; the server
  only stores the ciphertext, the initialisation vector and each user's public key

## Installing and running

Install the package, then start the server:

    pip install .
    socialspace

`socialspace --bind HOST:PORT` overrides the listening address. Otherwise the
server reads its settings from the environment:

| Variable       | Meaning                                     | Default                                |
|----------------|---------------------------------------------|----------------------------------------|
| `DATABASE_URL` | SQLite database to open                     | `sqlite:social_space.db?mode=rwc` (a file in the working directory, created if absent) |
| `JWT_SECRET`   | secret used to sign and verify tokens       | `secret` — set your own                |
| `BIND_ADDR`    | `host:port` to listen on                    | `0.0.0.0:8080`                         |

`DATABASE_URL` takes the forms `sqlite:path`, `sqlite://path` and
`sqlite::memory:`. A `mode` query parameter is passed to SQLite; without one the
file is opened read-write and must already exist, so use `?mode=rwc` to have it
created. All tables and indexes are created on start-up, with foreign keys
enforced. Cross-origin requests are allowed from any origin, method and header.

## Using it from Python

`socialspace.app.build_state(environ)` opens the database and reads the secret
from a mapping (the process environment by default) and returns an `AppState`;
`socialspace.app.create_app(state)` returns the Starlette application, which
can be served by any ASGI server or exercised with Starlette's test client.
The request handling itself lives in plain functions that take a `Database`
and raise `socialspace.errors.ApiError` (status, message, `to_dict()`) on
failure: `socialspace.accounts`, `users`, `friends`, `posts`, `groups` and
`chat`.

## API

Every route except `/healthz`, registration and login needs an
`Authorization: Bearer token` header carrying the token returned by
registration or login. Errors come back as `{"error": "..."}` with a matching
status code (400, 401, 403, 404, 409 or 500); a friend request to someone you
already have a friendship with also carries its `status`. Bodies that are not
a JSON object, or that miss a required field, are answered with 400.

| Method | Path                                | Purpose                                      |
|--------|-------------------------------------|----------------------------------------------|
| GET    | `/healthz`                          | liveness check, empty 200                    |
| POST   | `/api/auth/register`                | create an account (201), returns token and user |
| POST   | `/api/auth/login`                   | log in, returns token and user               |
| GET    | `/api/auth/me`                      | the current user                             |
| GET    | `/api/users?q=...`                  | other users whose username or display name contains `q` (at most 50) |
| GET    | `/api/users/{id}`                   | one user's profile                           |
| GET    | `/api/friends`                      | accepted friends                             |
| GET    | `/api/friends/requests`             | pending requests sent to you                 |
| POST   | `/api/friends/request/{user_id}`    | send a friend request (201)                  |
| POST   | `/api/friends/accept/{user_id}`     | accept a request from that user              |
| POST   | `/api/friends/reject/{user_id}`     | reject (delete) a request from that user     |
| GET    | `/api/posts`                        | feed: your posts, public posts and friends' `friends_only` posts outside groups (latest 50) |
| POST   | `/api/posts`                        | create a post (201); visibility defaults to `friends_only` |
| GET    | `/api/posts/{id}`                   | one post, if you may see it                  |
| DELETE | `/api/posts/{id}`                   | delete your own post with its likes and comments |
| POST   | `/api/posts/{id}/like`              | like, or unlike if already liked             |
| POST   | `/api/posts/{id}/comment`           | add a comment (201), optionally anonymous    |
| GET    | `/api/posts/{id}/comments`          | comments, oldest first                       |
| GET    | `/api/groups`                       | groups you belong to, newest first           |
| POST   | `/api/groups`                       | create a group (201); you become its admin   |
| GET    | `/api/groups/{id}`                  | one group with creator, member count and your membership |
| POST   | `/api/groups/{id}/join`             | join a group                                 |
| POST   | `/api/groups/{id}/leave`            | leave a group                                |
| GET    | `/api/groups/{id}/posts`            | group posts (members only, latest 50)        |
| POST   | `/api/groups/{id}/posts`            | post in a group (members only, 201)          |
| GET    | `/api/chat/conversations`           | conversation partners with last message and unread count |
| GET    | `/api/chat/messages/{user_id}`      | messages with that user, oldest first (at most 100); marks theirs read |
| GET    | `/api/chat/keys/{user_id}`          | that user's public key                       |
| POST   | `/api/chat/keys`                    | store or replace your public key             |
| GET    | `/ws/chat`                          | chat WebSocket                               |

A registration body looks like:

    {"email": "alice@example.com", "password": "password",
     "username": "alice", "display_name": "Alice"}

Email, password and username must be non-empty, the password at least 6 bytes
long, and email and username unique.

A post is always visible to its author; otherwise `public` posts are visible to
everyone, `friends_only` posts to accepted friends, and any other visibility
(including `private`) to no one else. Anonymous posts and comments are shown
without their author.

## Chat WebSocket

Frames are JSON objects with a `type` field. A client first authenticates:

    {"type": "auth", "token": "token"}

and receives `{"type": "connected", "user_id": "..."}` or
`{"type": "error", "message": "Invalid token"}`. After that it may send

    {"type": "message", "receiver_id": "...", "encrypted_content": "...", "iv": "..."}
    {"type": "typing", "receiver_id": "..."}

A message is stored and delivered as a `message_received` frame to every open
connection of the receiver, and echoed back to the sender. Sending a message
before authenticating yields a `Not authenticated` error frame. Typing notices
reach the receiver as `{"type": "typing_indicator", "sender_id": "..."}`.
Malformed or unknown frames are ignored. When a socket closes, every chat
connection registered for its user is dropped from delivery.