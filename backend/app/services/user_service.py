# backend/app/services/user_service.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.errors import Conflict, NotFound, Unauthorized, ValidationFailed
from app.core.security import get_password_hash, verify_password, create_user_token
from app.db.database import get_utc_now
from app.db.models.user import User
from app.schemas.user import AuthResponse, UserCreate, UserLogin, UserMe

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 20


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(token=create_user_token(user.id), user=UserMe.model_validate(user))


async def register_user(db: AsyncSession, user_in: UserCreate) -> AuthResponse:
    """
    회원가입: 이메일/아이디 중복 확인 후 유저 생성, 바로 토큰 발급
    """
    email = user_in.email.lower()
    result = await db.execute(
        select(User).where(or_(func.lower(User.email) == email, User.username == user_in.username))
    )
    existing = result.scalars().first()
    if existing:
        if existing.email.lower() == email:
            raise Conflict("User with this email already exists")
        raise Conflict("Username already taken")

    new_user = User(
        username=user_in.username,
        email=email,
        password=get_password_hash(user_in.password),
        settings={},
    )
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError:
        # concurrent registration won the unique index
        await db.rollback()
        raise Conflict("User already exists")
    await db.refresh(new_user)

    logger.info("User registered: %s (%s)", new_user.username, new_user.id)
    return _auth_response(new_user)


async def authenticate_user(db: AsyncSession, user_in: UserLogin) -> AuthResponse:
    """
    로그인: 이메일 + 비밀번호 검증 후 토큰 발급
    """
    result = await db.execute(select(User).where(func.lower(User.email) == user_in.email.lower()))
    user = result.scalars().first()
    if not user or not verify_password(user_in.password, user.password):
        raise Unauthorized("Invalid email or password")
    return _auth_response(user)


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def refresh_token(db: AsyncSession, user_id: int) -> AuthResponse:
    return _auth_response(await get_user(db, user_id))


async def search_users(db: AsyncSession, user_id: int, query: str, limit: int = SEARCH_LIMIT) -> List[User]:
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        raise ValidationFailed(f"Search query must be at least {SEARCH_MIN_LENGTH} characters")
    pattern = f"%{query.lower()}%"
    stmt = (
        select(User)
        .where(
            User.id != user_id,
            or_(func.lower(User.username).like(pattern), func.lower(User.email).like(pattern)),
        )
        .order_by(User.username)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_all_users(db: AsyncSession, user_id: int) -> List[User]:
    """본인을 제외한 전체 유저 (username 순)"""
    result = await db.execute(select(User).where(User.id != user_id).order_by(User.username))
    return list(result.scalars().all())


async def update_profile(
    db: AsyncSession, user_id: int, username: Optional[str] = None, avatar: Optional[str] = None
) -> User:
    user = await get_user(db, user_id)
    if username is not None and username != user.username:
        taken = await db.execute(select(User.id).where(User.username == username, User.id != user_id))
        if taken.first():
            raise Conflict("Username already taken")
        user.username = username
    if avatar is not None:
        user.avatar = avatar
    await db.commit()
    await db.refresh(user)
    return user


async def update_settings(db: AsyncSession, user_id: int, settings: Dict[str, Any]) -> User:
    """기존 설정과 병합 (top-level key 단위 덮어쓰기)"""
    user = await get_user(db, user_id)
    # JSON 컬럼은 새 dict를 할당해야 변경이 감지됨
    user.settings = {**(user.settings or {}), **settings}
    await db.commit()
    await db.refresh(user)
    return user


async def set_offline(db: AsyncSession, user_id: int):
    user = await get_user(db, user_id)
    user.is_online = False
    user.last_seen = get_utc_now()
    await db.commit()
    logger.info("User %s logged out", user_id)
