import asyncio
import os
import tempfile
from functools import lru_cache

# 앱 임포트 전에 테스트 환경 변수 설정
_tmp_dir = tempfile.mkdtemp(prefix="chat-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["REDIS_ENABLED"] = "false"
os.environ["OFFLINE_GRACE_SECONDS"] = "0.05"

import pytest

from app.core.security import get_password_hash
from app.db.database import AsyncSessionLocal, Base, engine, init_db
from app.db.models.user import User
from app.realtime.broadcaster import Broadcaster

DEFAULT_PASSWORD = "password123"


def run(coro):
    """Runs a coroutine on a private loop (sync fixtures / TestClient tests)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _reset_schema():
    await init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def fresh_schema():
    run(_reset_schema())
    yield


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@lru_cache(maxsize=1)
def password_hash() -> str:
    # bcrypt is slow; hash once for every fixture user
    return get_password_hash(DEFAULT_PASSWORD)


async def make_user(db, username: str, email: str = None) -> User:
    user = User(
        username=username,
        email=email or f"{username}@example.com",
        password=password_hash(),
        settings={},
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


class RecordingBroadcaster(Broadcaster):
    """Keeps every emitted event instead of sending it."""

    def __init__(self):
        self.events = []
        self.evicted = []

    async def emit_to_user(self, user_id, event, data):
        self.events.append(("user", user_id, event, data))
        return 1

    async def emit_to_chat(self, chat_id, event, data, exclude_user_id=None):
        self.events.append(("chat", chat_id, event, data))
        return 1

    def leave_chat_for_user(self, chat_id, user_id):
        self.evicted.append((chat_id, user_id))
        return 1

    def named(self, event):
        return [e for e in self.events if e[2] == event]

    def targets(self, event):
        return sorted(e[1] for e in self.named(event))

    def clear(self):
        self.events.clear()
        self.evicted.clear()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()
