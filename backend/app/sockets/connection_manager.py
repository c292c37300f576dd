# backend/app/sockets/connection_manager.py
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from app.realtime.broadcaster import Broadcaster

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    id: str
    websocket: WebSocket
    user_id: int
    username: str
    chat_ids: Set[int] = field(default_factory=set)


class ConnectionManager(Broadcaster):
    """
    접속 중인 소켓 관리 (서버 메모리).
    - user room: 한 유저의 모든 연결 (여러 탭/기기)
    - chat room: join-chat 으로 들어온 연결
    """

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.user_rooms: Dict[int, Set[str]] = {}
        self.chat_rooms: Dict[int, Set[str]] = {}

    def register(self, websocket: WebSocket, user_id: int, username: str) -> Connection:
        conn = Connection(id=uuid.uuid4().hex, websocket=websocket, user_id=user_id, username=username)
        self.connections[conn.id] = conn
        self.user_rooms.setdefault(user_id, set()).add(conn.id)
        logger.info("[WS] User %s connected (%s). Connections: %s", user_id, conn.id, len(self.connections))
        return conn

    def unregister(self, connection_id: str) -> Optional[Connection]:
        conn = self.connections.pop(connection_id, None)
        if conn is None:
            return None
        for chat_id in list(conn.chat_ids):
            self._leave_room(chat_id, connection_id)
        conn.chat_ids.clear()
        room = self.user_rooms.get(conn.user_id)
        if room is not None:
            room.discard(connection_id)
            if not room:
                del self.user_rooms[conn.user_id]
        logger.info("[WS] User %s disconnected (%s)", conn.user_id, connection_id)
        return conn

    def join_chat(self, connection_id: str, chat_id: int):
        conn = self.connections.get(connection_id)
        if conn is None:
            return
        conn.chat_ids.add(chat_id)
        self.chat_rooms.setdefault(chat_id, set()).add(connection_id)

    def leave_chat(self, connection_id: str, chat_id: int):
        conn = self.connections.get(connection_id)
        if conn is not None:
            conn.chat_ids.discard(chat_id)
        self._leave_room(chat_id, connection_id)

    def leave_chat_for_user(self, chat_id: int, user_id: int) -> int:
        left = 0
        for connection_id in list(self.user_rooms.get(user_id, ())):
            if self.in_chat(connection_id, chat_id):
                self.leave_chat(connection_id, chat_id)
                left += 1
        if left:
            logger.info("[WS] User %s evicted from chat %s (%s connections)", user_id, chat_id, left)
        return left

    def _leave_room(self, chat_id: int, connection_id: str):
        room = self.chat_rooms.get(chat_id)
        if room is None:
            return
        room.discard(connection_id)
        if not room:
            del self.chat_rooms[chat_id]

    def in_chat(self, connection_id: str, chat_id: int) -> bool:
        return connection_id in self.chat_rooms.get(chat_id, ())

    def is_connected(self, user_id: int) -> bool:
        return bool(self.user_rooms.get(user_id))

    # --- sending ---

    async def send(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        conn = self.connections.get(connection_id)
        if conn is None:
            return False
        try:
            await conn.websocket.send_json({"type": event, "data": data})
            return True
        except Exception as e:
            # 끊긴 소켓: 방에서 제거, 정리는 수신 루프가 마무리
            logger.warning("[WS] Send '%s' to %s failed: %s", event, connection_id, e)
            for chat_id in list(conn.chat_ids):
                self.leave_chat(connection_id, chat_id)
            return False

    async def emit_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> int:
        sent = 0
        for connection_id in list(self.user_rooms.get(user_id, ())):
            if await self.send(connection_id, event, data):
                sent += 1
        return sent

    async def emit_to_chat(
        self, chat_id: int, event: str, data: Dict[str, Any], exclude_user_id: Optional[int] = None
    ) -> int:
        sent = 0
        for connection_id in list(self.chat_rooms.get(chat_id, ())):
            conn = self.connections.get(connection_id)
            if conn is None or conn.user_id == exclude_user_id:
                continue
            if await self.send(connection_id, event, data):
                sent += 1
        return sent
