# backend/app/api/v1/users.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_realtime
from app.core.security import get_current_user_id
from app.db.database import get_db
from app.realtime.hub import RealtimeHub
from app.schemas.user import ProfileUpdate, SettingsUpdate, UserMe, UserProfile, UserPublic, UserSearchResponse
from app.services import friend_service, user_service

router = APIRouter()


@router.get("/search", response_model=UserSearchResponse)
async def search_users(
    query: str = Query(""),
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """유저 검색 (username/email, 본인 제외)"""
    users = await user_service.search_users(db, current_user_id, query)
    return UserSearchResponse(users=[UserPublic.model_validate(u) for u in users], count=len(users))


@router.get("/all", response_model=UserSearchResponse)
async def list_all_users(
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    users = await user_service.list_all_users(db, current_user_id)
    return UserSearchResponse(users=[UserPublic.model_validate(u) for u in users], count=len(users))


@router.put("/profile", response_model=UserMe)
async def update_profile(
    body: ProfileUpdate,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_profile(db, current_user_id, username=body.username, avatar=body.avatar)


@router.put("/settings", response_model=UserMe)
async def update_settings(
    body: SettingsUpdate,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_settings(db, current_user_id, body.settings)


@router.get("/{user_id}", response_model=UserProfile)
async def get_user_profile(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    user = await user_service.get_user(db, user_id)
    profile = UserProfile.model_validate(user)
    profile.status = hub.presence.status(user_id).value
    profile.is_friend = await friend_service.are_friends(db, current_user_id, user_id)
    return profile
