import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, or_, and_
from sqlalchemy.orm import selectinload

from app.core.errors import Conflict, NotFound, ValidationFailed
from app.db.models.friendship import Friendship, FRIENDSHIP_ACCEPTED, FRIENDSHIP_PENDING
from app.db.models.user import User

logger = logging.getLogger(__name__)


def _between(a: int, b: int):
    return or_(
        and_(Friendship.requester_id == a, Friendship.receiver_id == b),
        and_(Friendship.requester_id == b, Friendship.receiver_id == a),
    )


async def request_friend(db: AsyncSession, requester_id: int, receiver_id: int) -> Friendship:
    if requester_id == receiver_id:
        raise ValidationFailed("Can't send friend request to yourself")

    target = await db.get(User, receiver_id)
    if not target:
        raise NotFound("User not found")

    # 중복 요청 체크 (양방향)
    result = await db.execute(select(Friendship).where(_between(requester_id, receiver_id)))
    for existing in result.scalars().all():
        if existing.status == FRIENDSHIP_ACCEPTED:
            raise Conflict("Already friends")
        if existing.requester_id == requester_id:
            raise Conflict("Friend request already sent")
        raise Conflict("This user has already sent you a friend request")

    request = Friendship(requester_id=requester_id, receiver_id=receiver_id, status=FRIENDSHIP_PENDING)
    db.add(request)
    await db.commit()
    await db.refresh(request)
    logger.info("Friend request %s: %s -> %s", request.id, requester_id, receiver_id)
    return request


async def _get_pending_request(db: AsyncSession, receiver_id: int, request_id: int) -> Friendship:
    stmt = select(Friendship).where(
        Friendship.id == request_id,
        Friendship.receiver_id == receiver_id,
        Friendship.status == FRIENDSHIP_PENDING,
    )
    request = (await db.execute(stmt)).scalar_one_or_none()
    if not request:
        raise NotFound("Friend request not found")
    return request


async def accept_friend(db: AsyncSession, receiver_id: int, request_id: int) -> Friendship:
    """The pending request leaves the receiver's list and becomes a symmetric edge."""
    request = await _get_pending_request(db, receiver_id, request_id)
    request.status = FRIENDSHIP_ACCEPTED
    await db.commit()
    logger.info("Friend request %s accepted", request_id)
    return request


async def decline_friend(db: AsyncSession, receiver_id: int, request_id: int):
    request = await _get_pending_request(db, receiver_id, request_id)
    await db.delete(request)
    await db.commit()


async def remove_friend(db: AsyncSession, user_id: int, friend_id: int):
    result = await db.execute(
        delete(Friendship).where(_between(user_id, friend_id), Friendship.status == FRIENDSHIP_ACCEPTED)
    )
    if not result.rowcount:
        raise NotFound("Friend not found")
    await db.commit()


async def get_friend_ids(db: AsyncSession, user_id: int) -> List[int]:
    stmt = select(Friendship).where(
        or_(Friendship.requester_id == user_id, Friendship.receiver_id == user_id),
        Friendship.status == FRIENDSHIP_ACCEPTED,
    )
    result = await db.execute(stmt)
    return [
        f.receiver_id if f.requester_id == user_id else f.requester_id
        for f in result.scalars().all()
    ]


async def get_friends(db: AsyncSession, user_id: int) -> List[User]:
    friend_ids = await get_friend_ids(db, user_id)
    if not friend_ids:
        return []
    user_res = await db.execute(select(User).where(User.id.in_(friend_ids)).order_by(User.username))
    return list(user_res.scalars().all())


async def are_friends(db: AsyncSession, a: int, b: int) -> bool:
    stmt = select(Friendship.id).where(_between(a, b), Friendship.status == FRIENDSHIP_ACCEPTED)
    return (await db.execute(stmt)).first() is not None


async def get_pending_requests(db: AsyncSession, user_id: int) -> List[Friendship]:
    """나에게 온 대기 중인 친구 요청 (요청자 정보 포함)"""
    stmt = (
        select(Friendship)
        .where(Friendship.receiver_id == user_id, Friendship.status == FRIENDSHIP_PENDING)
        .options(selectinload(Friendship.requester))
        .order_by(Friendship.created_at, Friendship.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
