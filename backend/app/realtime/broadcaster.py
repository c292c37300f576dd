from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional


class Broadcaster(ABC):
    """
    Outbound event sink used by the services. Services never touch sockets
    directly; the realtime ConnectionManager implements this interface.
    """

    @abstractmethod
    async def emit_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> int:
        """Deliver to every connection of the user. Returns the number of sockets reached."""

    @abstractmethod
    async def emit_to_chat(
        self, chat_id: int, event: str, data: Dict[str, Any], exclude_user_id: Optional[int] = None
    ) -> int:
        """Deliver to connections that joined the chat room."""

    async def emit_to_users(self, user_ids: Iterable[int], event: str, data: Dict[str, Any]) -> int:
        sent = 0
        for user_id in user_ids:
            sent += await self.emit_to_user(user_id, event, data)
        return sent

    @abstractmethod
    def leave_chat_for_user(self, chat_id: int, user_id: int) -> int:
        """Takes every connection of the user out of the chat room (membership ended)."""
