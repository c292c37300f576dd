import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AWAY_TIMEOUT_SECONDS, OFFLINE_GRACE_SECONDS, TYPING_TIMEOUT_SECONDS
from app.realtime.presence import PresenceRegistry
from app.realtime.scheduler import DelayedTaskScheduler
from app.realtime.typing_tracker import TypingTracker
from app.repositories.presence_repository import PresenceCache
from app.sockets.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Process-wide realtime state, owned by the application (app.state.realtime)."""

    def __init__(
        self,
        connections: ConnectionManager,
        scheduler: DelayedTaskScheduler,
        presence: PresenceRegistry,
        typing: TypingTracker,
    ):
        self.connections = connections
        self.scheduler = scheduler
        self.presence = presence
        self.typing = typing

    @classmethod
    def create(
        cls,
        session_factory: Callable[[], AsyncSession],
        cache: Optional[PresenceCache] = None,
        typing_timeout: float = TYPING_TIMEOUT_SECONDS,
        away_timeout: float = AWAY_TIMEOUT_SECONDS,
        offline_grace: float = OFFLINE_GRACE_SECONDS,
    ) -> "RealtimeHub":
        connections = ConnectionManager()
        scheduler = DelayedTaskScheduler()
        presence = PresenceRegistry(
            connections,
            session_factory,
            scheduler,
            cache=cache,
            away_timeout=away_timeout,
            offline_grace=offline_grace,
        )
        typing = TypingTracker(connections, scheduler, timeout=typing_timeout)
        return cls(connections, scheduler, presence, typing)

    async def shutdown(self):
        await self.presence.shutdown()
        self.scheduler.cancel_all()
        logger.info("Realtime hub stopped")
