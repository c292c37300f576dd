import asyncio

import pytest

from app.db.database import AsyncSessionLocal
from app.db.models.friendship import Friendship, FRIENDSHIP_ACCEPTED
from app.db.models.user import User
from app.realtime.presence import PresenceRegistry, PresenceStatus
from app.realtime.scheduler import DelayedTaskScheduler
from conftest import make_user


@pytest.fixture
async def people(db):
    alice = await make_user(db, "alice")
    bob = await make_user(db, "bob")
    carol = await make_user(db, "carol")
    db.add(Friendship(requester_id=alice.id, receiver_id=bob.id, status=FRIENDSHIP_ACCEPTED))
    await db.commit()
    return alice, bob, carol


def make_registry(broadcaster, away_timeout=10.0, offline_grace=0.05):
    return PresenceRegistry(
        broadcaster,
        AsyncSessionLocal,
        DelayedTaskScheduler(),
        away_timeout=away_timeout,
        offline_grace=offline_grace,
    )


async def stored_online(user_id):
    async with AsyncSessionLocal() as session:
        user = await session.get(User, user_id)
        return user.is_online, user.last_seen


async def test_connect_goes_online_and_notifies_friends_only(people, broadcaster):
    alice, bob, carol = people
    registry = make_registry(broadcaster)

    await registry.connect(alice.id, "c1")

    assert registry.status(alice.id) is PresenceStatus.ONLINE
    assert registry.online_user_ids() == [alice.id]
    is_online, last_seen = await stored_online(alice.id)
    assert is_online is True
    assert last_seen is not None

    assert broadcaster.targets("user-status-changed") == [bob.id]
    payload = broadcaster.named("user-status-changed")[0][3]
    assert payload["userId"] == alice.id
    assert payload["username"] == "alice"
    assert payload["isOnline"] is True
    assert payload["status"] == "online"
    await registry.shutdown()


async def test_second_connection_does_not_republish(people, broadcaster):
    alice, _, _ = people
    registry = make_registry(broadcaster)

    await registry.connect(alice.id, "c1")
    await registry.connect(alice.id, "c2")

    assert len(broadcaster.named("user-status-changed")) == 1
    assert registry.record(alice.id).connection_ids == {"c1", "c2"}
    assert registry.record(alice.id).connection_id == "c2"
    await registry.shutdown()


async def test_offline_after_last_connection_and_grace(people, broadcaster):
    alice, _, _ = people
    registry = make_registry(broadcaster, offline_grace=0.05)
    await registry.connect(alice.id, "c1")
    await registry.connect(alice.id, "c2")
    broadcaster.clear()

    await registry.disconnect(alice.id, "c1")
    await asyncio.sleep(0.1)
    assert registry.status(alice.id) is PresenceStatus.ONLINE
    assert broadcaster.events == []

    await registry.disconnect(alice.id, "c2")
    # still online inside the grace window
    assert registry.status(alice.id) is PresenceStatus.ONLINE
    await asyncio.sleep(0.15)

    assert registry.status(alice.id) is PresenceStatus.OFFLINE
    assert registry.record(alice.id) is None
    is_online, _ = await stored_online(alice.id)
    assert is_online is False
    (event,) = broadcaster.named("user-status-changed")
    assert event[3]["isOnline"] is False
    assert event[3]["status"] == "offline"


async def test_reconnect_inside_grace_keeps_user_online(people, broadcaster):
    alice, _, _ = people
    registry = make_registry(broadcaster, offline_grace=0.1)
    await registry.connect(alice.id, "c1")
    broadcaster.clear()

    await registry.disconnect(alice.id, "c1")
    await asyncio.sleep(0.02)
    await registry.connect(alice.id, "c2")
    await asyncio.sleep(0.2)

    assert registry.status(alice.id) is PresenceStatus.ONLINE
    assert broadcaster.events == []
    is_online, _ = await stored_online(alice.id)
    assert is_online is True
    await registry.shutdown()


async def test_idle_user_goes_away_and_activity_brings_back(people, broadcaster):
    alice, bob, _ = people
    registry = make_registry(broadcaster, away_timeout=0.05)
    await registry.connect(alice.id, "c1")
    broadcaster.clear()

    await asyncio.sleep(0.12)
    assert registry.status(alice.id) is PresenceStatus.AWAY
    (away,) = broadcaster.named("user-status-changed")
    assert away[1] == bob.id
    assert away[3]["status"] == "away"
    assert away[3]["isOnline"] is False
    broadcaster.clear()

    await registry.touch(alice.id)
    assert registry.status(alice.id) is PresenceStatus.ONLINE
    (back,) = broadcaster.named("user-status-changed")
    assert back[3]["status"] == "online"
    await registry.shutdown()


async def test_touch_without_connection_is_ignored(people, broadcaster):
    alice, _, _ = people
    registry = make_registry(broadcaster)

    await registry.touch(alice.id)

    assert registry.status(alice.id) is PresenceStatus.OFFLINE
    assert broadcaster.events == []


async def test_shutdown_persists_offline(people, broadcaster):
    alice, _, _ = people
    registry = make_registry(broadcaster)
    await registry.connect(alice.id, "c1")

    await registry.shutdown()

    assert registry.online_user_ids() == []
    is_online, _ = await stored_online(alice.id)
    assert is_online is False
    assert len(registry.scheduler) == 0
