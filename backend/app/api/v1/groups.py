# backend/app/api/v1/groups.py
from fastapi import APIRouter, Depends

from app.api.deps import get_group_service
from app.core.security import get_current_user_id
from app.schemas.chat import (
    GroupInfoUpdate, GroupInfoUpdateResponse, GroupMemberRemoveResponse, GroupMembersAdd,
    GroupMembersAddResponse, LeaveGroupResponse,
)
from app.services.group_service import GroupService

router = APIRouter()


@router.post("/{chat_id}/members", response_model=GroupMembersAddResponse)
async def add_members(
    chat_id: int,
    body: GroupMembersAdd,
    current_user_id: int = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    """그룹 멤버 추가 (관리자 전용)"""
    chat, added = await service.add_members(chat_id, current_user_id, body.user_ids)
    return GroupMembersAddResponse(chat=service.chats.chat_out(chat, current_user_id), added_members=added)


@router.delete("/{chat_id}/members/{user_id}", response_model=GroupMemberRemoveResponse)
async def remove_member(
    chat_id: int,
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    removed = await service.remove_member(chat_id, current_user_id, user_id)
    return GroupMemberRemoveResponse(removed_user=removed)


@router.put("/{chat_id}/info", response_model=GroupInfoUpdateResponse)
async def update_group_info(
    chat_id: int,
    body: GroupInfoUpdate,
    current_user_id: int = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    chat, changes = await service.update_group_info(
        chat_id, current_user_id, name=body.name, group_avatar=body.group_avatar
    )
    return GroupInfoUpdateResponse(chat=service.chats.chat_out(chat, current_user_id), changes=changes)


@router.post("/{chat_id}/leave", response_model=LeaveGroupResponse)
async def leave_group(
    chat_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    """관리자가 나가면 가장 먼저 들어온 멤버에게 관리자 이관, 마지막 멤버면 그룹 삭제"""
    return await service.leave_group(chat_id, current_user_id)
