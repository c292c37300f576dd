import logging
from typing import Dict, Set

from app.core.config import TYPING_TIMEOUT_SECONDS
from app.realtime.broadcaster import Broadcaster
from app.realtime.scheduler import DelayedTaskScheduler

logger = logging.getLogger(__name__)


class TypingTracker:
    """
    Per-chat set of users currently typing. Entries expire on their own after
    ``timeout`` seconds without renewal. Nothing here is persisted.
    """

    def __init__(self, broadcaster: Broadcaster, scheduler: DelayedTaskScheduler, timeout: float = TYPING_TIMEOUT_SECONDS):
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.timeout = timeout
        self._typing: Dict[int, Set[int]] = {}

    @staticmethod
    def _key(chat_id: int, user_id: int):
        return ("typing", chat_id, user_id)

    def typing_users(self, chat_id: int) -> Set[int]:
        return set(self._typing.get(chat_id, ()))

    def is_typing(self, chat_id: int, user_id: int) -> bool:
        return user_id in self._typing.get(chat_id, ())

    async def start_typing(self, chat_id: int, user_id: int, username: str):
        self._typing.setdefault(chat_id, set()).add(user_id)
        await self.broadcaster.emit_to_chat(
            chat_id,
            "user-typing",
            {"userId": user_id, "username": username, "chatId": chat_id},
            exclude_user_id=user_id,
        )
        self.scheduler.schedule(
            self._key(chat_id, user_id),
            self.timeout,
            lambda: self._expire(chat_id, user_id),
        )

    async def _expire(self, chat_id: int, user_id: int):
        if self._discard(chat_id, user_id):
            logger.debug("Typing expired: user %s in chat %s", user_id, chat_id)
            await self._announce_stop(chat_id, user_id)

    async def stop_typing(self, chat_id: int, user_id: int):
        self.scheduler.cancel(self._key(chat_id, user_id))
        self._discard(chat_id, user_id)
        await self._announce_stop(chat_id, user_id)

    async def clear_user(self, user_id: int) -> int:
        """Stops every typing entry of the user (disconnect)."""
        chat_ids = [chat_id for chat_id, users in self._typing.items() if user_id in users]
        for chat_id in chat_ids:
            await self.stop_typing(chat_id, user_id)
        return len(chat_ids)

    def _discard(self, chat_id: int, user_id: int) -> bool:
        users = self._typing.get(chat_id)
        if not users or user_id not in users:
            return False
        users.discard(user_id)
        if not users:
            del self._typing[chat_id]
        return True

    async def _announce_stop(self, chat_id: int, user_id: int):
        await self.broadcaster.emit_to_chat(
            chat_id,
            "user-stopped-typing",
            {"userId": user_id, "chatId": chat_id},
            exclude_user_id=user_id,
        )
