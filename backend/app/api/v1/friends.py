# backend/app/api/v1/friends.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_broadcaster
from app.core.security import get_current_user_id
from app.db.database import get_db
from app.realtime.broadcaster import Broadcaster
from app.repositories.chat_repository import ChatRepository
from app.schemas.user import FriendListResponse, FriendRequestListResponse, FriendRequestOut, UserPublic
from app.services import friend_service

router = APIRouter()


@router.get("", response_model=FriendListResponse)
async def get_friends(current_user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    """내 친구 목록 조회"""
    friends = await friend_service.get_friends(db, current_user_id)
    return FriendListResponse(friends=[UserPublic.model_validate(f) for f in friends], count=len(friends))


@router.get("/requests", response_model=FriendRequestListResponse)
async def get_pending_requests(
    current_user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
):
    """나에게 온 대기 중인 친구 요청 조회"""
    requests = await friend_service.get_pending_requests(db, current_user_id)
    return FriendRequestListResponse(
        requests=[
            FriendRequestOut(
                id=r.id,
                sender=UserPublic.model_validate(r.requester),
                status=r.status,
                created_at=r.created_at,
            )
            for r in requests
        ]
    )


@router.post("/{user_id}/request", status_code=201)
async def request_friend(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """친구 요청 보내기 (상대에게 실시간 알림)"""
    request = await friend_service.request_friend(db, current_user_id, user_id)
    sender = await ChatRepository.find_user_by_id(db, current_user_id)
    await broadcaster.emit_to_user(
        user_id,
        "friend-request",
        {"requestId": request.id, "from": UserPublic.model_validate(sender).to_wire()},
    )
    return {"message": "Friend request sent", "requestId": request.id}


@router.post("/requests/{request_id}/accept")
async def accept_friend(
    request_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    request = await friend_service.accept_friend(db, current_user_id, request_id)
    accepter = await ChatRepository.find_user_by_id(db, current_user_id)
    await broadcaster.emit_to_user(
        request.requester_id,
        "friend-request-accepted",
        {"requestId": request.id, "by": UserPublic.model_validate(accepter).to_wire()},
    )
    return {"message": "Friend request accepted"}


@router.post("/requests/{request_id}/decline")
async def decline_friend(
    request_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await friend_service.decline_friend(db, current_user_id, request_id)
    return {"message": "Friend request declined"}


@router.delete("/{friend_id}")
async def remove_friend(
    friend_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await friend_service.remove_friend(db, current_user_id, friend_id)
    return {"message": "Friend removed"}
