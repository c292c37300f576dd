# backend/app/api/v1/chat.py
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_chat_service, get_realtime
from app.core.config import DEFAULT_PAGE_SIZE
from app.core.security import get_current_user_id
from app.realtime.hub import RealtimeHub
from app.schemas.chat import (
    ChatCreate, ChatCreateResponse, ChatListResponse, MarkReadResponse, MessageCreate,
    MessagePage, MessageResponse, MessageUpdate, ReactionCreate,
)
from app.services.chat_service import ChatService

router = APIRouter()


@router.get("/status")
async def get_chat_status(hub: RealtimeHub = Depends(get_realtime)):
    """채팅 서버 상태 (접속자 수)"""
    return {
        "status": "online",
        "activeConnections": len(hub.connections.connections),
        "onlineUsers": len(hub.presence.online_user_ids()),
    }


@router.get("", response_model=ChatListResponse)
async def list_chats(
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    chats = await service.list_chats(current_user_id)
    return ChatListResponse(chats=chats, count=len(chats))


@router.post("", response_model=ChatCreateResponse)
async def create_chat(
    body: ChatCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """1:1 채팅은 이미 있으면 기존 채팅 반환 (isExisting)"""
    chat, is_existing = await service.get_or_create_chat(
        current_user_id, body.participant_ids, is_group=body.is_group, name=body.name
    )
    return ChatCreateResponse(chat=service.chat_out(chat, current_user_id), is_existing=is_existing)


@router.get("/{chat_id}/messages", response_model=MessagePage)
async def get_messages(
    chat_id: int,
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    return await service.paginate_messages(chat_id, current_user_id, page, limit)


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: int,
    body: MessageCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
    hub: RealtimeHub = Depends(get_realtime),
):
    message = await service.send_message(
        chat_id,
        current_user_id,
        body.content,
        message_type=body.message_type,
        reply_to_id=body.reply_to,
        file_data=body.file_data,
        call_data=body.call_data,
    )
    # 보내는 순간 타이핑 표시 종료
    if hub.typing.is_typing(chat_id, current_user_id):
        await hub.typing.stop_typing(chat_id, current_user_id)
    return MessageResponse(message=message)


@router.put("/{chat_id}/read", response_model=MarkReadResponse)
async def mark_as_read(
    chat_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    marked = await service.mark_read(chat_id, current_user_id)
    return MarkReadResponse(marked_count=marked)


@router.put("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: int,
    body: MessageUpdate,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.edit_message(message_id, current_user_id, body.content)
    return MessageResponse(message=message)


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    await service.delete_message(message_id, current_user_id)
    return {"message": "Message deleted successfully"}


@router.post("/messages/{message_id}/reactions")
async def toggle_reaction(
    message_id: int,
    body: ReactionCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    message, added = await service.toggle_reaction(message_id, current_user_id, body.emoji)
    return {"message": message.to_wire(), "added": added}
