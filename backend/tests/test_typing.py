import asyncio

from app.realtime.scheduler import DelayedTaskScheduler
from app.realtime.typing_tracker import TypingTracker


def make_tracker(broadcaster, timeout=0.05):
    return TypingTracker(broadcaster, DelayedTaskScheduler(), timeout=timeout)


async def test_start_typing_broadcasts_to_chat_without_typist(broadcaster):
    tracker = make_tracker(broadcaster)
    await tracker.start_typing(7, 1, "alice")

    assert tracker.typing_users(7) == {1}
    (event,) = broadcaster.named("user-typing")
    assert event[1] == 7
    assert event[3] == {"userId": 1, "username": "alice", "chatId": 7}


async def test_typing_expires_without_renewal(broadcaster):
    tracker = make_tracker(broadcaster, timeout=0.03)
    await tracker.start_typing(7, 1, "alice")
    await asyncio.sleep(0.08)

    assert not tracker.is_typing(7, 1)
    (stopped,) = broadcaster.named("user-stopped-typing")
    assert stopped[3] == {"userId": 1, "chatId": 7}


async def test_renewal_rearms_timer(broadcaster):
    tracker = make_tracker(broadcaster, timeout=0.1)
    await tracker.start_typing(7, 1, "alice")
    await asyncio.sleep(0.06)
    await tracker.start_typing(7, 1, "alice")
    await asyncio.sleep(0.06)

    # past the first deadline, before the renewed one
    assert tracker.is_typing(7, 1)
    assert broadcaster.named("user-stopped-typing") == []

    await asyncio.sleep(0.1)
    assert not tracker.is_typing(7, 1)
    assert len(broadcaster.named("user-stopped-typing")) == 1


async def test_stop_typing_cancels_expiry(broadcaster):
    tracker = make_tracker(broadcaster, timeout=0.03)
    await tracker.start_typing(7, 1, "alice")
    await tracker.stop_typing(7, 1)
    await asyncio.sleep(0.06)

    assert tracker.typing_users(7) == set()
    # one stop from the explicit call, none from the cancelled timer
    assert len(broadcaster.named("user-stopped-typing")) == 1


async def test_clear_user_stops_every_chat(broadcaster):
    tracker = make_tracker(broadcaster, timeout=1)
    await tracker.start_typing(7, 1, "alice")
    await tracker.start_typing(8, 1, "alice")
    await tracker.start_typing(8, 2, "bob")

    cleared = await tracker.clear_user(1)

    assert cleared == 2
    assert tracker.typing_users(7) == set()
    assert tracker.typing_users(8) == {2}
    assert broadcaster.targets("user-stopped-typing") == [7, 8]
    await tracker.clear_user(2)
