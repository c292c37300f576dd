from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update, delete, func, exists, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db.database import get_utc_now
from app.db.models.user import User
from app.db.models.friendship import Friendship  # noqa: F401  (mapper registry)
from app.db.models.chat import Chat, ChatParticipant
from app.db.models.message import Message, MessageRead, MessageReaction

# eager loading: async sessions cannot lazy load.
# Reads use populate_existing so objects already in the session see fresh rows.
MESSAGE_LOAD = (
    selectinload(Message.sender),
    selectinload(Message.receipts),
    selectinload(Message.reactions),
    selectinload(Message.reply_to).selectinload(Message.sender),
)

CHAT_LOAD = (
    selectinload(Chat.memberships).selectinload(ChatParticipant.user),
    selectinload(Chat.admin),
    selectinload(Chat.last_message).options(*MESSAGE_LOAD),
)


class ChatRepository:
    """
    Chat / message / user persistence. Every write commits on its own;
    multi-step updates accept the window between two commits.
    """

    # --- Users ---

    @staticmethod
    async def find_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
        return await db.get(User, user_id)

    @staticmethod
    async def find_users_by_ids(db: AsyncSession, user_ids: Iterable[int]) -> List[User]:
        ids = list(set(user_ids))
        if not ids:
            return []
        result = await db.execute(select(User).where(User.id.in_(ids)))
        return list(result.scalars().all())

    @staticmethod
    async def update_user_presence(db: AsyncSession, user_id: int, is_online: bool, last_seen: Optional[datetime] = None):
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_online=is_online, last_seen=last_seen or get_utc_now())
        )
        await db.commit()

    # --- Chats ---

    @staticmethod
    async def find_chat_by_id(db: AsyncSession, chat_id: int) -> Optional[Chat]:
        stmt = (
            select(Chat)
            .where(Chat.id == chat_id)
            .options(*CHAT_LOAD)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def is_participant(db: AsyncSession, chat_id: int, user_id: int) -> bool:
        stmt = select(
            exists().where(ChatParticipant.chat_id == chat_id, ChatParticipant.user_id == user_id)
        )
        return bool(await db.scalar(stmt))

    @staticmethod
    async def find_chat_for_participant(db: AsyncSession, chat_id: int, user_id: int) -> Optional[Chat]:
        """Chat only if user_id is a participant; callers cannot tell the two cases apart."""
        if not await ChatRepository.is_participant(db, chat_id, user_id):
            return None
        return await ChatRepository.find_chat_by_id(db, chat_id)

    @staticmethod
    async def find_direct_chat(db: AsyncSession, user_a: int, user_b: int) -> Optional[Chat]:
        """The 1:1 chat of the pair, in either order."""
        chat_id = await db.scalar(select(Chat.id).where(Chat.direct_key == Chat.direct_key_for(user_a, user_b)))
        if chat_id is None:
            return None
        return await ChatRepository.find_chat_by_id(db, chat_id)

    @staticmethod
    async def create_direct_chat(db: AsyncSession, user_a: int, user_b: int) -> Optional[Chat]:
        """
        Inserts the 1:1 chat of the pair. Returns None when a concurrent request
        already created it (unique direct_key); the session is rolled back.
        """
        chat = Chat(is_group=False, direct_key=Chat.direct_key_for(user_a, user_b))
        db.add(chat)
        try:
            await db.flush()
            for user_id in (user_a, user_b):
                db.add(ChatParticipant(chat_id=chat.id, user_id=user_id))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return None
        return await ChatRepository.find_chat_by_id(db, chat.id)

    @staticmethod
    async def create_chat(
        db: AsyncSession,
        participant_ids: List[int],
        is_group: bool = False,
        name: str = "",
        admin_id: Optional[int] = None,
    ) -> Chat:
        chat = Chat(name=name, is_group=is_group, admin_id=admin_id)
        db.add(chat)
        await db.flush()
        for user_id in participant_ids:
            db.add(ChatParticipant(chat_id=chat.id, user_id=user_id))
        await db.commit()
        return await ChatRepository.find_chat_by_id(db, chat.id)

    @staticmethod
    async def save_chat(db: AsyncSession, chat: Chat) -> Chat:
        chat.updated_at = get_utc_now()
        await db.commit()
        return await ChatRepository.find_chat_by_id(db, chat.id)

    @staticmethod
    async def list_chats_for_user(db: AsyncSession, user_id: int) -> List[Chat]:
        member_of = select(ChatParticipant.chat_id).where(ChatParticipant.user_id == user_id)
        stmt = (
            select(Chat)
            .where(Chat.id.in_(member_of))
            .options(*CHAT_LOAD)
            .order_by(Chat.updated_at.desc(), Chat.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def add_participants(db: AsyncSession, chat_id: int, user_ids: List[int]):
        for user_id in user_ids:
            db.add(ChatParticipant(chat_id=chat_id, user_id=user_id))
        await db.commit()

    @staticmethod
    async def remove_participant(db: AsyncSession, chat_id: int, user_id: int):
        await db.execute(
            delete(ChatParticipant).where(ChatParticipant.chat_id == chat_id, ChatParticipant.user_id == user_id)
        )
        await db.commit()

    @staticmethod
    async def delete_chat(db: AsyncSession, chat_id: int):
        """Removes the chat, its memberships and every message with receipts/reactions."""
        message_ids = select(Message.id).where(Message.chat_id == chat_id)
        await db.execute(delete(MessageRead).where(MessageRead.message_id.in_(message_ids)))
        await db.execute(delete(MessageReaction).where(MessageReaction.message_id.in_(message_ids)))
        await db.execute(update(Message).where(Message.chat_id == chat_id).values(reply_to_id=None))
        await db.execute(delete(Message).where(Message.chat_id == chat_id))
        await db.execute(delete(ChatParticipant).where(ChatParticipant.chat_id == chat_id))
        await db.execute(delete(Chat).where(Chat.id == chat_id))
        await db.commit()

    # --- Messages ---

    @staticmethod
    async def find_messages(db: AsyncSession, chat_id: int, page: int, page_size: int) -> List[Message]:
        """Newest-first page, returned in chronological order."""
        stmt = (
            select(Message)
            .where(Message.chat_id == chat_id)
            .options(*MESSAGE_LOAD)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        messages = list(result.scalars().all())
        messages.reverse()
        return messages

    @staticmethod
    async def count_messages(db: AsyncSession, chat_id: int) -> int:
        return await db.scalar(select(func.count(Message.id)).where(Message.chat_id == chat_id)) or 0

    @staticmethod
    async def find_message_by_id(db: AsyncSession, message_id: int) -> Optional[Message]:
        stmt = (
            select(Message)
            .where(Message.id == message_id)
            .options(*MESSAGE_LOAD)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_message(db: AsyncSession, message: Message, read_by_sender: bool = True) -> Message:
        db.add(message)
        await db.flush()
        if read_by_sender:
            db.add(MessageRead(message_id=message.id, user_id=message.sender_id))
        await db.commit()
        return await ChatRepository.find_message_by_id(db, message.id)

    @staticmethod
    async def save_message(db: AsyncSession, message: Message) -> Message:
        await db.commit()
        return await ChatRepository.find_message_by_id(db, message.id)

    @staticmethod
    async def update_chat_last_message(db: AsyncSession, chat_id: int, message_id: Optional[int]):
        await db.execute(
            update(Chat)
            .where(Chat.id == chat_id)
            .values(last_message_id=message_id, updated_at=get_utc_now())
        )
        await db.commit()

    @staticmethod
    async def recompute_last_message(db: AsyncSession, chat_id: int) -> Optional[int]:
        newest = await db.scalar(
            select(Message.id)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        await db.execute(update(Chat).where(Chat.id == chat_id).values(last_message_id=newest))
        await db.commit()
        return newest

    @staticmethod
    async def delete_message(db: AsyncSession, message_id: int):
        await db.execute(delete(MessageRead).where(MessageRead.message_id == message_id))
        await db.execute(delete(MessageReaction).where(MessageReaction.message_id == message_id))
        await db.execute(update(Message).where(Message.reply_to_id == message_id).values(reply_to_id=None))
        await db.execute(delete(Message).where(Message.id == message_id))
        await db.commit()

    @staticmethod
    async def mark_messages_read(db: AsyncSession, chat_id: int, user_id: int) -> int:
        """Adds a receipt for every message of the chat the user has not read yet."""
        already_read = exists().where(
            and_(MessageRead.message_id == Message.id, MessageRead.user_id == user_id)
        )
        result = await db.execute(
            select(Message.id).where(Message.chat_id == chat_id, ~already_read)
        )
        unread_ids = list(result.scalars().all())
        now = get_utc_now()
        for message_id in unread_ids:
            db.add(MessageRead(message_id=message_id, user_id=user_id, read_at=now))
        await db.commit()
        return len(unread_ids)

    # --- Reactions ---

    @staticmethod
    async def toggle_reaction(db: AsyncSession, message_id: int, user_id: int, emoji: str) -> bool:
        """Returns True when the reaction was added, False when it was removed."""
        result = await db.execute(
            delete(MessageReaction).where(
                MessageReaction.message_id == message_id,
                MessageReaction.user_id == user_id,
                MessageReaction.emoji == emoji,
            )
        )
        if result.rowcount:
            await db.commit()
            return False
        db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
        await db.commit()
        return True

    # --- Search ---

    @staticmethod
    async def search_chats_for_user(db: AsyncSession, user_id: int, query: str, limit: int) -> List[Chat]:
        """Group name, or the other participant's username for 1:1 chats (case-insensitive)."""
        pattern = f"%{query.lower()}%"
        member_of = select(ChatParticipant.chat_id).where(ChatParticipant.user_id == user_id)
        partner_matches = (
            select(ChatParticipant.chat_id)
            .join(User, User.id == ChatParticipant.user_id)
            .where(ChatParticipant.user_id != user_id, func.lower(User.username).like(pattern))
        )
        stmt = (
            select(Chat)
            .where(
                Chat.id.in_(member_of),
                or_(
                    and_(Chat.is_group.is_(True), func.lower(Chat.name).like(pattern)),
                    and_(Chat.is_group.is_(False), Chat.id.in_(partner_matches)),
                ),
            )
            .options(*CHAT_LOAD)
            .order_by(Chat.updated_at.desc(), Chat.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def find_text_messages_for_user(
        db: AsyncSession,
        user_id: int,
        chat_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Message]:
        member_of = select(ChatParticipant.chat_id).where(ChatParticipant.user_id == user_id)
        stmt = (
            select(Message)
            .where(Message.chat_id.in_(member_of), Message.message_type == "text")
            .options(*MESSAGE_LOAD)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .execution_options(populate_existing=True)
        )
        if chat_id is not None:
            stmt = stmt.where(Message.chat_id == chat_id)
        if date_from is not None:
            stmt = stmt.where(Message.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(Message.created_at <= date_to)
        result = await db.execute(stmt)
        return list(result.scalars().all())
