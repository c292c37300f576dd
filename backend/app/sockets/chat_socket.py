# backend/app/sockets/chat_socket.py
"""
Realtime chat gateway.

Frames in both directions are JSON objects ``{"type": <event>, "data": {...}}``.
The connection authenticates during the handshake (``?token=`` or an
``Authorization: Bearer`` header); a bad token closes the socket before accept.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.security import authenticate_websocket_token
from app.db.database import AsyncSessionLocal, get_utc_now
from app.realtime.hub import RealtimeHub
from app.repositories.chat_repository import ChatRepository
from app.sockets.connection_manager import Connection

logger = logging.getLogger(__name__)

router = APIRouter()


class SocketEventError(Exception):
    """Bad inbound frame; reported back to the client as an ``error`` event."""


def _require_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise SocketEventError(f"'{key}' is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SocketEventError(f"'{key}' is required")


# --- event handlers ---

async def on_join_chat(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    async with AsyncSessionLocal() as db:
        allowed = await ChatRepository.is_participant(db, chat_id, conn.user_id)
    if not allowed:
        raise SocketEventError("Access denied to this chat")

    hub.connections.join_chat(conn.id, chat_id)
    await hub.connections.send(conn.id, "chat-joined", {"chatId": chat_id})
    await hub.connections.emit_to_chat(
        chat_id,
        "user-joined-chat",
        {"userId": conn.user_id, "username": conn.username, "chatId": chat_id},
        exclude_user_id=conn.user_id,
    )


async def on_leave_chat(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    if not hub.connections.in_chat(conn.id, chat_id):
        return
    hub.connections.leave_chat(conn.id, chat_id)
    await hub.connections.emit_to_chat(
        chat_id,
        "user-left-chat",
        {"userId": conn.user_id, "username": conn.username, "chatId": chat_id},
        exclude_user_id=conn.user_id,
    )


async def on_start_typing(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    if not hub.connections.in_chat(conn.id, chat_id):
        raise SocketEventError("Join the chat before typing")
    await hub.typing.start_typing(chat_id, conn.user_id, conn.username)
    await hub.presence.touch(conn.user_id)


async def on_stop_typing(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    if not hub.connections.in_chat(conn.id, chat_id):
        raise SocketEventError("Join the chat before typing")
    await hub.typing.stop_typing(chat_id, conn.user_id)


async def on_typing_direct(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    target = _require_int(data, "targetUserId")
    await hub.connections.emit_to_user(
        target, "user-typing-direct", {"userId": conn.user_id, "username": conn.username}
    )


async def on_stop_typing_direct(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    target = _require_int(data, "targetUserId")
    await hub.connections.emit_to_user(target, "user-stopped-typing-direct", {"userId": conn.user_id})


async def on_user_activity(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    await hub.presence.touch(conn.user_id)


async def on_message_delivered(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    message_id = _require_int(data, "messageId")
    await hub.connections.emit_to_chat(
        chat_id,
        "message-delivery-confirmed",
        {
            "messageId": message_id,
            "chatId": chat_id,
            "deliveredTo": conn.user_id,
            "deliveredAt": get_utc_now().isoformat(),
        },
        exclude_user_id=conn.user_id,
    )


async def on_file_shared(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
    chat_id = _require_int(data, "chatId")
    if not hub.connections.in_chat(conn.id, chat_id):
        raise SocketEventError("Join the chat before sharing files")
    await hub.connections.emit_to_chat(
        chat_id,
        "file-shared",
        {
            "from": conn.user_id,
            "username": conn.username,
            "chatId": chat_id,
            "fileName": data.get("fileName"),
            "fileSize": data.get("fileSize"),
            "fileType": data.get("fileType"),
            "sharedAt": get_utc_now().isoformat(),
        },
        exclude_user_id=conn.user_id,
    )


def _call_relay(outbound: str, *fields: str, with_username: bool = False):
    """Call signalling is passthrough to the target user's room."""

    async def handler(hub: RealtimeHub, conn: Connection, data: Dict[str, Any]):
        target = _require_int(data, "targetUserId")
        payload: Dict[str, Any] = {"from": conn.user_id}
        if with_username:
            payload["username"] = conn.username
        for name in fields:
            payload[name] = data.get(name)
        await hub.connections.emit_to_user(target, outbound, payload)

    return handler


Handler = Callable[[RealtimeHub, Connection, Dict[str, Any]], Awaitable[None]]

HANDLERS: Dict[str, Handler] = {
    "join-chat": on_join_chat,
    "leave-chat": on_leave_chat,
    "start-typing": on_start_typing,
    "stop-typing": on_stop_typing,
    "typing-direct": on_typing_direct,
    "stop-typing-direct": on_stop_typing_direct,
    "user-activity": on_user_activity,
    "message-delivered": on_message_delivered,
    "file-shared": on_file_shared,
    "call-user": _call_relay("incoming-call", "chatId", "offer", "callType", with_username=True),
    "answer-call": _call_relay("call-answered", "answer"),
    "reject-call": _call_relay("call-rejected"),
    "ice-candidate": _call_relay("ice-candidate", "candidate"),
}


def _extract_token(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    return token or websocket.headers.get("authorization")


async def _dispatch(hub: RealtimeHub, conn: Connection, raw: str):
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await hub.connections.send(conn.id, "error", {"message": "Invalid JSON format"})
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
        await hub.connections.send(conn.id, "error", {"message": "Frame must be {type, data}"})
        return

    event = frame["type"]
    data = frame.get("data") or {}
    handler = HANDLERS.get(event)
    if handler is None:
        await hub.connections.send(conn.id, "error", {"message": f"Unknown event: {event}", "event": event})
        return
    if not isinstance(data, dict):
        await hub.connections.send(conn.id, "error", {"message": "'data' must be an object", "event": event})
        return

    try:
        await handler(hub, conn, data)
    except SocketEventError as e:
        await hub.connections.send(conn.id, "error", {"message": str(e), "event": event})


@router.websocket("/ws/chat")
async def chat_endpoint(websocket: WebSocket, token: Optional[str] = None):
    hub: RealtimeHub = websocket.app.state.realtime

    # 1. 인증 (accept 이전)
    user_id = authenticate_websocket_token(_extract_token(websocket, token))
    user = None
    if user_id is not None:
        async with AsyncSessionLocal() as db:
            user = await ChatRepository.find_user_by_id(db, user_id)
    if user is None:
        logger.warning("[WS] Rejected connection: authentication error")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    conn = hub.connections.register(websocket, user.id, user.username)

    try:
        # 2. presence 등록 + 초기 정보 전송
        await hub.presence.connect(user.id, conn.id)
        await hub.connections.send(
            conn.id,
            "connected",
            {
                "userId": user.id,
                "username": user.username,
                "connectionId": conn.id,
                "message": "Connected to chat server",
                "serverTime": get_utc_now().isoformat(),
            },
        )

        # 3. 수신 루프
        while True:
            raw = await websocket.receive_text()
            await _dispatch(hub, conn, raw)
    except WebSocketDisconnect as e:
        logger.info("[WS] User %s closed the connection (code=%s)", user.id, e.code)
    finally:
        hub.connections.unregister(conn.id)
        cleared = 0
        # 다른 탭/기기가 남아 있으면 타이핑 상태 유지
        if not hub.connections.is_connected(user.id):
            cleared = await hub.typing.clear_user(user.id)
        await hub.presence.disconnect(user.id, conn.id)
        logger.debug("[WS] Cleanup for user %s done (typing cleared: %s)", user.id, cleared)
