# backend/app/services/group_service.py
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AccessDenied, NotFound, ValidationFailed
from app.db.models.chat import Chat
from app.db.models.user import User
from app.realtime.broadcaster import Broadcaster
from app.repositories.chat_repository import ChatRepository
from app.schemas.chat import LeaveGroupResponse
from app.schemas.user import UserPublic
from app.services.chat_service import ChatService

logger = logging.getLogger(__name__)


class GroupService:
    """Membership and metadata changes of group chats. Every change leaves a system message."""

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster, chat_service: Optional[ChatService] = None):
        self.db = db
        self.broadcaster = broadcaster
        self.chats = chat_service or ChatService(db, broadcaster)

    async def _load_group(self, chat_id: int) -> Chat:
        chat = await ChatRepository.find_chat_by_id(self.db, chat_id)
        if chat is None:
            raise NotFound("Chat not found")
        if not chat.is_group:
            raise ValidationFailed("This operation is only available for group chats")
        return chat

    async def _load_group_as_admin(self, chat_id: int, actor_id: int, action: str) -> Chat:
        chat = await self._load_group(chat_id)
        if chat.admin_id != actor_id:
            raise AccessDenied(f"Only group admin can {action}")
        return chat

    async def _actor_name(self, user_id: int) -> str:
        user = await ChatRepository.find_user_by_id(self.db, user_id)
        return user.username if user else "Someone"

    async def _emit_to_members(self, chat: Chat, event: str, data: dict, exclude_user_id: Optional[int] = None):
        recipients = [uid for uid in chat.participant_ids if uid != exclude_user_id]
        await self.broadcaster.emit_to_users(recipients, event, data)

    async def add_members(self, chat_id: int, actor_id: int, user_ids: List[int]):
        chat = await self._load_group_as_admin(chat_id, actor_id, "add members")

        users = await ChatRepository.find_users_by_ids(self.db, user_ids)
        if len(users) != len(set(user_ids)):
            raise NotFound("One or more users not found")

        present = set(chat.participant_ids)
        new_users: List[User] = [u for u in users if u.id not in present]
        if not new_users:
            raise ValidationFailed("All users are already members of this group")

        await ChatRepository.add_participants(self.db, chat_id, [u.id for u in new_users])
        chat = await ChatRepository.save_chat(self.db, chat)

        actor = await self._actor_name(actor_id)
        names = ", ".join(u.username for u in new_users)
        await self.chats.post_system_message(chat, actor_id, f"{actor} added {names} to the group")
        chat = await ChatRepository.find_chat_by_id(self.db, chat_id)

        added = [UserPublic.model_validate(u) for u in new_users]
        logger.info("User %s added %s to group %s", actor_id, [u.id for u in new_users], chat_id)
        await self._emit_to_members(
            chat,
            "group-members-added",
            {
                "chatId": chat_id,
                "chat": self.chats.chat_out(chat, actor_id).to_wire(),
                "addedMembers": [u.to_wire() for u in added],
                "addedBy": actor_id,
            },
        )
        return chat, added

    async def remove_member(self, chat_id: int, actor_id: int, user_id: int) -> UserPublic:
        chat = await self._load_group_as_admin(chat_id, actor_id, "remove members")
        if user_id == actor_id:
            raise ValidationFailed("Admin cannot remove themselves. Use leave group instead.")
        if user_id not in chat.participant_ids:
            raise ValidationFailed("User is not a member of this group")

        removed = UserPublic.model_validate(next(u for u in chat.participants if u.id == user_id))
        await ChatRepository.remove_participant(self.db, chat_id, user_id)
        self.broadcaster.leave_chat_for_user(chat_id, user_id)
        chat = await ChatRepository.save_chat(self.db, chat)

        actor = await self._actor_name(actor_id)
        await self.chats.post_system_message(chat, actor_id, f"{actor} removed {removed.username} from the group")

        logger.info("User %s removed %s from group %s", actor_id, user_id, chat_id)
        await self._emit_to_members(
            chat,
            "group-member-removed",
            {"chatId": chat_id, "removedUser": removed.to_wire(), "removedBy": actor_id},
        )
        await self.broadcaster.emit_to_user(
            user_id, "removed-from-group", {"chatId": chat_id, "chatName": chat.name, "removedBy": actor_id}
        )
        return removed

    async def update_group_info(
        self, chat_id: int, actor_id: int, name: Optional[str] = None, group_avatar: Optional[str] = None
    ):
        chat = await self._load_group_as_admin(chat_id, actor_id, "update group info")

        changes: List[str] = []
        actor = await self._actor_name(actor_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Group name cannot be empty")
            if name != chat.name:
                chat.name = name
                changes.append(f'{actor} changed group name to "{name}"')
        if group_avatar is not None and group_avatar != chat.group_avatar:
            chat.group_avatar = group_avatar
            changes.append(f"{actor} changed the group photo")
        if not changes:
            raise ValidationFailed("No changes provided")

        chat = await ChatRepository.save_chat(self.db, chat)
        for text in changes:
            await self.chats.post_system_message(chat, actor_id, text)
        chat = await ChatRepository.find_chat_by_id(self.db, chat_id)

        await self._emit_to_members(
            chat,
            "group-info-updated",
            {"chatId": chat_id, "chat": self.chats.chat_out(chat, actor_id).to_wire(), "updatedBy": actor_id},
            exclude_user_id=actor_id,
        )
        return chat, changes

    async def leave_group(self, chat_id: int, user_id: int) -> LeaveGroupResponse:
        chat = await self._load_group(chat_id)
        if user_id not in chat.participant_ids:
            raise ValidationFailed("You are not a member of this group")

        leaver = UserPublic.model_validate(next(u for u in chat.participants if u.id == user_id))
        remaining = [m for m in chat.memberships if m.user_id != user_id]

        if not remaining:
            await ChatRepository.delete_chat(self.db, chat_id)
            self.broadcaster.leave_chat_for_user(chat_id, user_id)
            logger.info("Group %s deleted: last member %s left", chat_id, user_id)
            return LeaveGroupResponse(group_deleted=True)

        new_admin: Optional[UserPublic] = None
        if chat.admin_id == user_id:
            # memberships are ordered by join order
            new_admin = UserPublic.model_validate(remaining[0].user)
            chat.admin_id = new_admin.id

        await ChatRepository.remove_participant(self.db, chat_id, user_id)
        self.broadcaster.leave_chat_for_user(chat_id, user_id)
        chat = await ChatRepository.save_chat(self.db, chat)

        if new_admin is not None:
            text = f"{leaver.username} left the group. {new_admin.username} is now the admin."
        else:
            text = f"{leaver.username} left the group"
        await self.chats.post_system_message(chat, user_id, text)

        logger.info("User %s left group %s (new admin: %s)", user_id, chat_id, new_admin.id if new_admin else None)
        await self._emit_to_members(
            chat,
            "user-left-group",
            {
                "chatId": chat_id,
                "leftUser": leaver.to_wire(),
                "newAdmin": new_admin.to_wire() if new_admin else None,
            },
        )
        return LeaveGroupResponse(group_deleted=False, new_admin_id=new_admin.id if new_admin else None)
