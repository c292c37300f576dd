# backend/app/api/deps.py
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.realtime.broadcaster import Broadcaster
from app.realtime.hub import RealtimeHub
from app.services.chat_service import ChatService
from app.services.group_service import GroupService


def get_realtime(request: Request) -> RealtimeHub:
    return request.app.state.realtime


def get_broadcaster(hub: RealtimeHub = Depends(get_realtime)) -> Broadcaster:
    return hub.connections


def get_chat_service(
    db: AsyncSession = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)
) -> ChatService:
    return ChatService(db, broadcaster)


def get_group_service(
    db: AsyncSession = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)
) -> GroupService:
    return GroupService(db, broadcaster)
