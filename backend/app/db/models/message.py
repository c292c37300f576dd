from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.database import Base, get_utc_now
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    from app.db.models.user import User

MESSAGE_TYPES = ("text", "image", "file", "system", "call", "location", "contact")
SYSTEM_MESSAGE = "system"

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chat_created", "chat_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    chat_id: Mapped[int] = mapped_column(ForeignKey("chats.id"), nullable=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    # ciphertext (hex) for encrypted messages, plaintext for system messages
    content: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    auth_tag: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message_type: Mapped[str] = mapped_column(String(20), default="text", index=True)
    encrypted: Mapped[bool] = mapped_column(Boolean, default=True)

    # file/media metadata
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    call_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    reply_to_id: Mapped[Optional[int]] = mapped_column(ForeignKey("messages.id"), nullable=True)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    sender: Mapped["User"] = relationship("User")
    reply_to: Mapped[Optional["Message"]] = relationship("Message", remote_side="Message.id")
    receipts: Mapped[List["MessageRead"]] = relationship(
        "MessageRead", back_populates="message", order_by="MessageRead.id"
    )
    reactions: Mapped[List["MessageReaction"]] = relationship(
        "MessageReaction", back_populates="message", order_by="MessageReaction.id"
    )

    @property
    def has_file(self) -> bool:
        return self.file_url is not None or self.file_name is not None


class MessageRead(Base):
    """Read receipt: one row per (message, user)."""
    __tablename__ = "message_reads"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_read"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[int] = mapped_column(ForeignKey("messages.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    read_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    message: Mapped["Message"] = relationship("Message", back_populates="receipts")


class MessageReaction(Base):
    __tablename__ = "message_reactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[int] = mapped_column(ForeignKey("messages.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    reacted_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    message: Mapped["Message"] = relationship("Message", back_populates="reactions")
