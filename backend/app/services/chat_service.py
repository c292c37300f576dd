# backend/app/services/chat_service.py
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.core.encryption import EncryptedPayload, MessageCipher, get_cipher
from app.core.errors import AccessDenied, NotFound, ValidationFailed
from app.db.database import get_utc_now, to_naive_utc
from app.db.models.chat import Chat
from app.db.models.message import Message, MESSAGE_TYPES, SYSTEM_MESSAGE
from app.realtime.broadcaster import Broadcaster
from app.repositories.chat_repository import ChatRepository
from app.schemas.chat import (
    ChatOut, FileData, GlobalSearchCounts, GlobalSearchResponse, MessageOut, MessagePage, Pagination,
    Reaction, ReadReceipt, ReplyPreview,
)
from app.schemas.user import UserPublic
from app.services import user_service

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_MAX_RESULTS = 50
CHAT_SEARCH_LIMIT = 20
GLOBAL_SEARCH_LIMIT = 10


class ChatService:
    """
    Chat and message use cases. One instance per request (bound to its DB
    session); realtime side effects go through the injected broadcaster.
    """

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster, cipher: Optional[MessageCipher] = None):
        self.db = db
        self.broadcaster = broadcaster
        self.cipher = cipher or get_cipher()

    # --- serialization ---

    def plaintext(self, message: Message) -> str:
        if not message.encrypted:
            return message.content
        return self.cipher.decrypt(EncryptedPayload(message.content, message.iv, message.auth_tag))

    def message_out(self, message: Message) -> MessageOut:
        file_data = None
        if message.has_file:
            file_data = FileData(
                file_name=message.file_name,
                file_size=message.file_size,
                mime_type=message.mime_type,
                url=message.file_url,
            )
        reply_to = None
        if message.reply_to is not None:
            reply_to = ReplyPreview(
                id=message.reply_to.id,
                sender=UserPublic.model_validate(message.reply_to.sender),
                content=self.plaintext(message.reply_to),
                message_type=message.reply_to.message_type,
            )
        return MessageOut(
            id=message.id,
            chat_id=message.chat_id,
            sender=UserPublic.model_validate(message.sender),
            content=self.plaintext(message),
            message_type=message.message_type,
            encrypted=message.encrypted,
            file_data=file_data,
            call_data=message.call_data,
            reply_to=reply_to,
            read_by=[ReadReceipt.model_validate(r) for r in message.receipts],
            reactions=[Reaction.model_validate(r) for r in message.reactions],
            edited_at=message.edited_at,
            created_at=message.created_at,
        )

    def chat_out(self, chat: Chat, viewer_id: int) -> ChatOut:
        return ChatOut(
            id=chat.id,
            name=chat.display_name_for(viewer_id),
            is_group=chat.is_group,
            participants=[UserPublic.model_validate(u) for u in chat.participants],
            admin=UserPublic.model_validate(chat.admin) if chat.admin else None,
            last_message=self.message_out(chat.last_message) if chat.last_message else None,
            group_avatar=chat.group_avatar or "",
            created_at=chat.created_at,
            updated_at=chat.updated_at,
        )

    # --- chats ---

    async def get_or_create_chat(
        self, requester_id: int, participant_ids: List[int], is_group: bool = False, name: str = ""
    ) -> Tuple[Chat, bool]:
        if not participant_ids:
            raise ValidationFailed("Participant IDs are required")

        # requester first, duplicates dropped, order kept
        ids: List[int] = []
        for user_id in [requester_id, *participant_ids]:
            if user_id not in ids:
                ids.append(user_id)

        users = await ChatRepository.find_users_by_ids(self.db, ids)
        if len(users) != len(ids):
            raise NotFound("One or more participants not found")

        if not is_group:
            if len(ids) != 2:
                raise ValidationFailed("A direct chat needs exactly one other participant")
            existing = await ChatRepository.find_direct_chat(self.db, *ids)
            if existing:
                return existing, True
            chat = await ChatRepository.create_direct_chat(self.db, *ids)
            if chat is None:
                # lost the insert race for this pair
                return await ChatRepository.find_direct_chat(self.db, *ids), True
        else:
            name = (name or "").strip()
            if not name:
                raise ValidationFailed("Group name is required")
            if len(ids) < 2:
                raise ValidationFailed("A group needs at least two participants")
            chat = await ChatRepository.create_chat(self.db, ids, is_group=True, name=name, admin_id=requester_id)

        logger.info("Chat %s created by user %s (group=%s)", chat.id, requester_id, chat.is_group)
        for user_id in ids:
            if user_id == requester_id:
                continue
            await self.broadcaster.emit_to_user(
                user_id,
                "new-chat",
                {"chat": self.chat_out(chat, user_id).to_wire(), "createdBy": requester_id},
            )
        return chat, False

    async def list_chats(self, user_id: int) -> List[ChatOut]:
        chats = await ChatRepository.list_chats_for_user(self.db, user_id)
        return [self.chat_out(chat, user_id) for chat in chats]

    # --- messages ---

    async def paginate_messages(
        self, chat_id: int, user_id: int, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> MessagePage:
        if not await ChatRepository.is_participant(self.db, chat_id, user_id):
            raise AccessDenied("Access denied to this chat")
        if page < 1:
            raise ValidationFailed("Page must be 1 or greater")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationFailed(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

        total = await ChatRepository.count_messages(self.db, chat_id)
        messages = await ChatRepository.find_messages(self.db, chat_id, page, limit)
        pages = math.ceil(total / limit) if total else 0
        return MessagePage(
            messages=[self.message_out(m) for m in messages],
            pagination=Pagination(page=page, limit=limit, total=total, pages=pages, has_more=page * limit < total),
        )

    async def send_message(
        self,
        chat_id: int,
        sender_id: int,
        content: str,
        message_type: str = "text",
        reply_to_id: Optional[int] = None,
        file_data: Optional[FileData] = None,
        call_data: Optional[Dict[str, Any]] = None,
    ) -> MessageOut:
        chat = await ChatRepository.find_chat_for_participant(self.db, chat_id, sender_id)
        if chat is None:
            raise AccessDenied("Access denied to this chat")
        if message_type not in MESSAGE_TYPES:
            raise ValidationFailed("Invalid message type")
        if message_type == SYSTEM_MESSAGE:
            # only group events post system messages (post_system_message)
            raise ValidationFailed("System messages cannot be sent by users")

        if reply_to_id is not None:
            target = await ChatRepository.find_message_by_id(self.db, reply_to_id)
            if target is None or target.chat_id != chat_id:
                raise ValidationFailed("Reply target must be a message of this chat")

        return await self._store_and_fan_out(
            chat, sender_id, content, message_type, reply_to_id, file_data, call_data
        )

    async def post_system_message(self, chat: Chat, actor_id: int, text: str) -> MessageOut:
        """Group event notice. The actor may already have left the chat."""
        return await self._store_and_fan_out(chat, actor_id, text, SYSTEM_MESSAGE)

    async def _store_and_fan_out(
        self,
        chat: Chat,
        sender_id: int,
        content: str,
        message_type: str,
        reply_to_id: Optional[int] = None,
        file_data: Optional[FileData] = None,
        call_data: Optional[Dict[str, Any]] = None,
    ) -> MessageOut:
        content = (content or "").strip()
        if not content:
            raise ValidationFailed("Message content is required")

        message = Message(
            chat_id=chat.id,
            sender_id=sender_id,
            message_type=message_type,
            reply_to_id=reply_to_id,
            call_data=call_data,
        )
        if file_data is not None:
            message.file_name = file_data.file_name
            message.file_size = file_data.file_size
            message.mime_type = file_data.mime_type
            message.file_url = file_data.url
        self._seal(message, content)

        message = await ChatRepository.create_message(self.db, message)
        await ChatRepository.update_chat_last_message(self.db, chat.id, message.id)

        out = self.message_out(message)
        recipients = [uid for uid in chat.participant_ids if uid != sender_id]
        await self.broadcaster.emit_to_users(
            recipients, "new-message", {"message": out.to_wire(), "chatId": chat.id}
        )
        logger.debug("Message %s stored in chat %s", message.id, chat.id)
        return out

    def _seal(self, message: Message, content: str):
        if message.message_type == SYSTEM_MESSAGE:
            message.content = content
            message.iv = None
            message.auth_tag = None
            message.encrypted = False
            return
        payload = self.cipher.encrypt(content)
        message.content = payload.ciphertext
        message.iv = payload.iv
        message.auth_tag = payload.auth_tag
        message.encrypted = True

    async def mark_read(self, chat_id: int, user_id: int) -> int:
        if not await ChatRepository.is_participant(self.db, chat_id, user_id):
            raise AccessDenied("Access denied to this chat")

        marked = await ChatRepository.mark_messages_read(self.db, chat_id, user_id)
        if marked:
            user = await ChatRepository.find_user_by_id(self.db, user_id)
            await self.broadcaster.emit_to_chat(
                chat_id,
                "messages-read",
                {
                    "chatId": chat_id,
                    "userId": user_id,
                    "username": user.username if user else None,
                    "readAt": get_utc_now().isoformat(),
                    "markedCount": marked,
                },
                exclude_user_id=user_id,
            )
        return marked

    async def _own_message(self, message_id: int, requester_id: int, action: str) -> Message:
        message = await ChatRepository.find_message_by_id(self.db, message_id)
        if message is None:
            raise NotFound("Message not found")
        if message.sender_id != requester_id:
            raise AccessDenied(f"You can only {action} your own messages")
        return message

    async def _other_participants(self, chat_id: int, user_id: int) -> List[int]:
        chat = await ChatRepository.find_chat_by_id(self.db, chat_id)
        if chat is None:
            return []
        return [uid for uid in chat.participant_ids if uid != user_id]

    async def edit_message(self, message_id: int, requester_id: int, content: str) -> MessageOut:
        message = await self._own_message(message_id, requester_id, "edit")
        if message.message_type == SYSTEM_MESSAGE:
            raise ValidationFailed("System messages cannot be edited")
        content = (content or "").strip()
        if not content:
            raise ValidationFailed("Message content is required")

        self._seal(message, content)
        message.edited_at = get_utc_now()
        message = await ChatRepository.save_message(self.db, message)

        out = self.message_out(message)
        recipients = await self._other_participants(message.chat_id, requester_id)
        await self.broadcaster.emit_to_users(
            recipients, "message-edited", {"message": out.to_wire(), "chatId": message.chat_id}
        )
        return out

    async def delete_message(self, message_id: int, requester_id: int):
        message = await self._own_message(message_id, requester_id, "delete")
        chat_id = message.chat_id
        chat = await ChatRepository.find_chat_by_id(self.db, chat_id)

        await ChatRepository.delete_message(self.db, message_id)
        if chat is not None and chat.last_message_id == message_id:
            await ChatRepository.recompute_last_message(self.db, chat_id)

        logger.info("Message %s deleted from chat %s", message_id, chat_id)
        recipients = [uid for uid in chat.participant_ids if uid != requester_id] if chat else []
        await self.broadcaster.emit_to_users(
            recipients, "message-deleted", {"messageId": message_id, "chatId": chat_id}
        )

    async def toggle_reaction(self, message_id: int, user_id: int, emoji: str) -> Tuple[MessageOut, bool]:
        message = await ChatRepository.find_message_by_id(self.db, message_id)
        if message is None:
            raise NotFound("Message not found")
        if not await ChatRepository.is_participant(self.db, message.chat_id, user_id):
            raise AccessDenied("Access denied to this chat")

        added = await ChatRepository.toggle_reaction(self.db, message_id, user_id, emoji)
        message = await ChatRepository.find_message_by_id(self.db, message_id)
        out = self.message_out(message)

        recipients = await self._other_participants(message.chat_id, user_id)
        await self.broadcaster.emit_to_users(
            recipients,
            "message-reaction",
            {
                "messageId": message_id,
                "chatId": message.chat_id,
                "userId": user_id,
                "emoji": emoji,
                "added": added,
                "reactions": [r.to_wire() for r in out.reactions],
            },
        )
        return out, added

    # --- search ---

    async def search_messages(
        self,
        user_id: int,
        query: str,
        chat_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = SEARCH_MAX_RESULTS,
    ) -> List[MessageOut]:
        """Ciphertext cannot be matched in SQL, so candidates are decrypted and filtered here."""
        query = _search_term(query)
        if chat_id is not None and not await ChatRepository.is_participant(self.db, chat_id, user_id):
            raise AccessDenied("Access denied to this chat")

        date_from, date_to = to_naive_utc(date_from), to_naive_utc(date_to)
        needle = query.lower()
        candidates = await ChatRepository.find_text_messages_for_user(self.db, user_id, chat_id, date_from, date_to)
        results: List[MessageOut] = []
        for message in candidates:
            if needle not in self.plaintext(message).lower():
                continue
            results.append(self.message_out(message))
            if len(results) >= limit:
                break
        return results

    async def search_chats(self, user_id: int, query: str, limit: int = CHAT_SEARCH_LIMIT) -> List[ChatOut]:
        query = _search_term(query)
        limit = _search_limit(limit)
        chats = await ChatRepository.search_chats_for_user(self.db, user_id, query, limit)
        return [self.chat_out(chat, user_id) for chat in chats]

    async def global_search(self, user_id: int, query: str, limit: int = GLOBAL_SEARCH_LIMIT) -> GlobalSearchResponse:
        """Users, chats and messages matching the query, each up to ``limit``."""
        query = _search_term(query)
        limit = _search_limit(limit)
        users = await user_service.search_users(self.db, user_id, query, limit=limit)
        chats = await self.search_chats(user_id, query, limit)
        messages = await self.search_messages(user_id, query, limit=limit)
        return GlobalSearchResponse(
            users=[UserPublic.model_validate(u) for u in users],
            chats=chats,
            messages=messages,
            counts=GlobalSearchCounts(
                users=len(users),
                chats=len(chats),
                messages=len(messages),
                total=len(users) + len(chats) + len(messages),
            ),
            query=query,
        )


def _search_term(query: Optional[str]) -> str:
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        raise ValidationFailed(f"Search query must be at least {SEARCH_MIN_LENGTH} characters")
    return query


def _search_limit(limit: int) -> int:
    if limit < 1:
        raise ValidationFailed("Limit must be 1 or greater")
    return min(limit, SEARCH_MAX_RESULTS)
