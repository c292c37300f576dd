from sqlalchemy import Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.database import Base, get_utc_now
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    from app.db.models.user import User
    from app.db.models.message import Message

class Chat(Base):
    """1:1 conversation (is_group=False, exactly two participants) or group chat."""
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), default="")  # empty for 1:1
    is_group: Mapped[bool] = mapped_column(Boolean, default=False)
    # "{low}:{high}" user ids for 1:1 chats, NULL for groups; one 1:1 chat per pair
    direct_key: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    admin_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    # plain reference, the chat never owns its last message
    last_message_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    group_avatar: Mapped[str] = mapped_column(String(500), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now, index=True)

    memberships: Mapped[List["ChatParticipant"]] = relationship(
        "ChatParticipant",
        back_populates="chat",
        order_by="ChatParticipant.id",
    )
    admin: Mapped[Optional["User"]] = relationship("User", foreign_keys=[admin_id])
    last_message: Mapped[Optional["Message"]] = relationship(
        "Message",
        primaryjoin="foreign(Chat.last_message_id) == Message.id",
        viewonly=True,
    )

    @staticmethod
    def direct_key_for(user_a: int, user_b: int) -> str:
        low, high = sorted((user_a, user_b))
        return f"{low}:{high}"

    @property
    def participants(self) -> List["User"]:
        return [m.user for m in self.memberships]

    @property
    def participant_ids(self) -> List[int]:
        return [m.user_id for m in self.memberships]

    def display_name_for(self, user_id: int) -> str:
        if self.is_group:
            return self.name
        other = next((m.user for m in self.memberships if m.user_id != user_id), None)
        return other.username if other else "Unknown User"


class ChatParticipant(Base):
    __tablename__ = "chat_participants"
    __table_args__ = (UniqueConstraint("chat_id", "user_id", name="uq_chat_participant"),)

    # id doubles as join order (admin transfer picks the first remaining member)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    chat_id: Mapped[int] = mapped_column(ForeignKey("chats.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    chat: Mapped["Chat"] = relationship("Chat", back_populates="memberships")
    user: Mapped["User"] = relationship("User")
