from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.database import Base, get_utc_now
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.db.models.user import User

FRIENDSHIP_PENDING = "pending"
FRIENDSHIP_ACCEPTED = "accepted"

class Friendship(Base):
    """
    One row per edge of the social graph.
    pending  -> entry in the receiver's friend request list (id == request id)
    accepted -> symmetric friend edge between requester and receiver
    """
    __tablename__ = "friendships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    requester_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=FRIENDSHIP_PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    # Relationships
    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])
    receiver: Mapped["User"] = relationship("User", foreign_keys=[receiver_id])
