"""Global Socket.IO server for the clinic frontend.

Domain-agnostic: appointments, notifications and chat presence all share this
server instance. Mutations never arrive over the socket; the HTTP write API
commits them and the publishers in ``medsync.realtime.events`` push the
result to everyone concerned.

Client convention:
- URL base: ws://<host>:8000
- Socket.IO path: settings.SOCKETIO_PATH (``/ws/socket.io/``)
- Auth: ``auth.token`` or ``query.token`` (JWT access token), read once at
  handshake
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError

from medsync.conversations.services import partner_ids
from medsync.realtime.presence import presence

logger = logging.getLogger(__name__)

USER_PRESENCE = "user_presence"
TEST_CONNECTION = "test:connection"
TEST_RESPONSE = "test:response"

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=getattr(settings, "SOCKETIO_CORS_ALLOWED_ORIGINS", "*"),
    logger=False,
    engineio_logger=False,
)


@dataclass(frozen=True)
class UserRealtimeContext:
    user_id: int
    role: str


def room_for_user(user_id: int) -> str:
    return f"user_{int(user_id)}"


@database_sync_to_async
def _get_user_context_from_access_token(token: str) -> UserRealtimeContext:
    jwt_auth = JWTAuthentication()
    validated = jwt_auth.get_validated_token(token)
    user = jwt_auth.get_user(validated)
    return UserRealtimeContext(user_id=int(user.id), role=str(user.role))


@database_sync_to_async
def _partner_ids(user_id: int) -> set[int]:
    return partner_ids(user_id)


def _query_string(environ: dict[str, Any]) -> str:
    # python-socketio passes different shapes depending on async mode:
    # ASGI scope with `query_string: bytes`, WSGI environ with `QUERY_STRING`,
    # and some servers nest the scope under `asgi.scope`.
    scope: Any = environ
    if isinstance(environ, dict) and isinstance(environ.get("asgi.scope"), dict):
        scope = environ["asgi.scope"]
    if not isinstance(scope, dict):
        return ""

    raw = scope.get("query_string", scope.get("QUERY_STRING", ""))
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode(errors="ignore")
    return str(raw)


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract the JWT from the handshake ``auth`` payload or the query string."""
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    token = parse_qs(_query_string(environ)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token
    return None


async def _broadcast_presence(user_id: int, *, is_online: bool) -> None:
    payload = {"userId": str(user_id), "isOnline": is_online}
    for partner_id in await _partner_ids(user_id):
        await sio.emit(USER_PRESENCE, payload, room=room_for_user(partner_id))


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    token = _extract_token(environ, auth)
    if not token:
        msg = "unauthorized"
        raise ConnectionRefusedError(msg)

    try:
        ctx = await _get_user_context_from_access_token(token)
    except TokenError as exc:
        # Clients look for this exact reason to trigger a token refresh.
        if "expired" in str(exc).lower():
            msg = "jwt_expired"
            raise ConnectionRefusedError(msg) from exc
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except AuthenticationFailed as exc:  # user not found / inactive, etc.
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except Exception as exc:
        logger.exception("Socket.IO connect error")
        msg = "server_error"
        raise ConnectionRefusedError(msg) from exc

    await sio.save_session(sid, {"user_id": ctx.user_id, "role": ctx.role})
    await sio.enter_room(sid, room_for_user(ctx.user_id))
    logger.info("Socket connected sid=%s user=%s role=%s", sid, ctx.user_id, ctx.role)

    if presence.add(ctx.user_id, sid):
        await _broadcast_presence(ctx.user_id, is_online=True)


@sio.event
async def disconnect(sid: str, reason: Any = None):
    user_id, went_offline = presence.remove(sid)
    logger.info("Socket disconnected sid=%s user=%s reason=%s", sid, user_id, reason)
    if user_id is not None and went_offline:
        await _broadcast_presence(user_id, is_online=False)


@sio.on(TEST_CONNECTION)
async def test_connection(sid: str, data: Any = None):
    """Diagnostic ping; answers the sender only."""

    session = await sio.get_session(sid)
    user_id = session.get("user_id") if isinstance(session, dict) else None
    logger.info("Connection test from user: %s %s", user_id, data)
    await sio.emit(TEST_RESPONSE, {"sid": sid, "userId": user_id, "echo": data}, to=sid)


@sio.event
async def get_online_status(sid: str, data: Any = None):
    """Answer ``{"userIds": [...]}`` with each user's current presence."""

    user_ids = data.get("userIds") if isinstance(data, dict) else None
    if not isinstance(user_ids, list):
        return {"success": False, "error": "userIds must be a list"}
    return {"success": True, "onlineStatus": presence.online_status(user_ids)}


def emit_event_to_room(room: str, event: str, payload: dict[str, Any]) -> None:
    """Emit an event to a room from sync Django code."""

    async_to_sync(sio.emit)(event, payload, room=room)


def emit_event_to_user(user_id: int, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(room_for_user(user_id), event, payload)


def emit_event_to_sid(sid: str, event: str, payload: dict[str, Any]) -> None:
    """Emit to one socket only (acknowledgements for the originating tab)."""

    async_to_sync(sio.emit)(event, payload, to=sid)
