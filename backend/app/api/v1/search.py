# backend/app/api/v1/search.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_chat_service
from app.core.security import get_current_user_id
from app.schemas.chat import ChatSearchResponse, GlobalSearchResponse, MessageSearchResponse
from app.services.chat_service import CHAT_SEARCH_LIMIT, GLOBAL_SEARCH_LIMIT, ChatService

router = APIRouter()


@router.get("/messages", response_model=MessageSearchResponse)
async def search_messages(
    query: str = Query(""),
    chat_id: Optional[int] = Query(None, alias="chatId"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """내가 속한 채팅의 텍스트 메시지 검색 (복호화 후 매칭)"""
    messages = await service.search_messages(current_user_id, query, chat_id, date_from, date_to)
    return MessageSearchResponse(messages=messages, count=len(messages), query=query.strip())


@router.get("/chats", response_model=ChatSearchResponse)
async def search_chats(
    query: str = Query(""),
    limit: int = Query(CHAT_SEARCH_LIMIT),
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """그룹 이름 / 1:1 상대 username 으로 채팅 검색"""
    chats = await service.search_chats(current_user_id, query, limit)
    return ChatSearchResponse(chats=chats, count=len(chats), query=query.strip())


@router.get("/global", response_model=GlobalSearchResponse)
async def global_search(
    query: str = Query(""),
    limit: int = Query(GLOBAL_SEARCH_LIMIT),
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    return await service.global_search(current_user_id, query, limit)
