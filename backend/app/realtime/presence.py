"""
Presence / connection registry.

Per user: Offline -> Online (first authenticated connection) -> Away (no
activity for ``away_timeout``) -> Offline (last connection closed and the
``offline_grace`` window passed without a reconnect).

Every transition is persisted on the User row (is_online, last_seen),
mirrored to the optional Redis cache and announced to the user's friends only.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AWAY_TIMEOUT_SECONDS, OFFLINE_GRACE_SECONDS
from app.db.database import get_utc_now
from app.realtime.broadcaster import Broadcaster
from app.realtime.scheduler import DelayedTaskScheduler
from app.repositories.chat_repository import ChatRepository
from app.repositories.presence_repository import PresenceCache
from app.services import friend_service

logger = logging.getLogger(__name__)


class PresenceStatus(str, enum.Enum):
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"


@dataclass
class PresenceRecord:
    connection_id: str  # most recent connection (last writer wins)
    last_activity: datetime
    status: PresenceStatus = PresenceStatus.OFFLINE
    connection_ids: Set[str] = field(default_factory=set)


class PresenceRegistry:
    def __init__(
        self,
        broadcaster: Broadcaster,
        session_factory: Callable[[], AsyncSession],
        scheduler: DelayedTaskScheduler,
        cache: Optional[PresenceCache] = None,
        away_timeout: float = AWAY_TIMEOUT_SECONDS,
        offline_grace: float = OFFLINE_GRACE_SECONDS,
    ):
        self.broadcaster = broadcaster
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.cache = cache
        self.away_timeout = away_timeout
        self.offline_grace = offline_grace
        self._records: Dict[int, PresenceRecord] = {}

    # --- queries ---

    def status(self, user_id: int) -> PresenceStatus:
        record = self._records.get(user_id)
        return record.status if record else PresenceStatus.OFFLINE

    def is_online(self, user_id: int) -> bool:
        return self.status(user_id) is PresenceStatus.ONLINE

    def online_user_ids(self) -> List[int]:
        return [uid for uid, rec in self._records.items() if rec.status is PresenceStatus.ONLINE]

    def record(self, user_id: int) -> Optional[PresenceRecord]:
        return self._records.get(user_id)

    # --- transitions ---

    async def connect(self, user_id: int, connection_id: str):
        # a reconnect inside the grace window cancels the pending offline transition
        self.scheduler.cancel(("offline", user_id))

        now = get_utc_now()
        record = self._records.get(user_id)
        if record is None:
            record = PresenceRecord(connection_id=connection_id, last_activity=now)
            self._records[user_id] = record
        record.connection_id = connection_id
        record.connection_ids.add(connection_id)
        record.last_activity = now

        if record.status is not PresenceStatus.ONLINE:
            record.status = PresenceStatus.ONLINE
            logger.info("User %s online", user_id)
            await self._publish(user_id, PresenceStatus.ONLINE)
        self._arm_away_timer(user_id)

    async def touch(self, user_id: int):
        """Client activity signal."""
        record = self._records.get(user_id)
        if record is None or not record.connection_ids:
            return
        record.last_activity = get_utc_now()
        if record.status is PresenceStatus.AWAY:
            record.status = PresenceStatus.ONLINE
            logger.info("User %s back from away", user_id)
            await self._publish(user_id, PresenceStatus.ONLINE)
        self._arm_away_timer(user_id)

    async def disconnect(self, user_id: int, connection_id: str):
        record = self._records.get(user_id)
        if record is None:
            return
        record.connection_ids.discard(connection_id)
        if record.connection_ids:
            if record.connection_id == connection_id:
                record.connection_id = next(iter(record.connection_ids))
            return

        self.scheduler.cancel(("away", user_id))
        self.scheduler.schedule(("offline", user_id), self.offline_grace, lambda: self._go_offline(user_id))

    async def _go_away(self, user_id: int):
        record = self._records.get(user_id)
        if record is None or record.status is not PresenceStatus.ONLINE:
            return
        record.status = PresenceStatus.AWAY
        logger.info("User %s away", user_id)
        await self._publish(user_id, PresenceStatus.AWAY)

    async def _go_offline(self, user_id: int):
        record = self._records.get(user_id)
        if record is None or record.connection_ids:
            return
        del self._records[user_id]
        logger.info("User %s offline", user_id)
        await self._publish(user_id, PresenceStatus.OFFLINE)

    def _arm_away_timer(self, user_id: int):
        self.scheduler.schedule(("away", user_id), self.away_timeout, lambda: self._go_away(user_id))

    async def _publish(self, user_id: int, status: PresenceStatus):
        is_online = status is PresenceStatus.ONLINE
        last_seen = get_utc_now()

        async with self.session_factory() as db:
            await ChatRepository.update_user_presence(db, user_id, is_online, last_seen)
            user = await ChatRepository.find_user_by_id(db, user_id)
            friend_ids = await friend_service.get_friend_ids(db, user_id)

        if self.cache is not None:
            await self.cache.set_online(user_id, is_online)

        payload = {
            "userId": user_id,
            "username": user.username if user else None,
            "isOnline": is_online,
            "status": status.value,
            "lastSeen": last_seen.isoformat(),
        }
        await self.broadcaster.emit_to_users(friend_ids, "user-status-changed", payload)

    async def shutdown(self):
        """Cancels timers; users still attached are persisted as offline."""
        user_ids = list(self._records)
        for user_id in user_ids:
            self.scheduler.cancel(("away", user_id))
            self.scheduler.cancel(("offline", user_id))
        self._records.clear()
        if not user_ids:
            return
        async with self.session_factory() as db:
            for user_id in user_ids:
                await ChatRepository.update_user_presence(db, user_id, False)
