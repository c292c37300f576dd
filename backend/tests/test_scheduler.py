import asyncio

from app.realtime.scheduler import DelayedTaskScheduler


async def test_callback_fires_after_delay():
    scheduler = DelayedTaskScheduler()
    fired = []

    async def callback():
        fired.append("x")

    scheduler.schedule("k", 0.01, callback)
    assert scheduler.is_pending("k")
    await asyncio.sleep(0.05)

    assert fired == ["x"]
    assert not scheduler.is_pending("k")
    assert len(scheduler) == 0


async def test_rescheduling_replaces_pending_task():
    scheduler = DelayedTaskScheduler()
    fired = []

    async def first():
        fired.append("first")

    async def second():
        fired.append("second")

    scheduler.schedule("k", 0.02, first)
    scheduler.schedule("k", 0.02, second)
    await asyncio.sleep(0.06)

    assert fired == ["second"]


async def test_cancel():
    scheduler = DelayedTaskScheduler()
    fired = []

    async def callback():
        fired.append("x")

    scheduler.schedule("k", 0.01, callback)
    assert scheduler.cancel("k") is True
    assert scheduler.cancel("k") is False
    await asyncio.sleep(0.03)

    assert fired == []


async def test_failing_callback_is_contained():
    scheduler = DelayedTaskScheduler()
    fired = []

    async def boom():
        raise RuntimeError("boom")

    async def ok():
        fired.append("ok")

    scheduler.schedule("a", 0.01, boom)
    scheduler.schedule("b", 0.01, ok)
    await asyncio.sleep(0.04)

    assert fired == ["ok"]


async def test_callback_can_schedule_its_own_key():
    scheduler = DelayedTaskScheduler()
    runs = []

    async def callback():
        runs.append(1)
        if len(runs) < 2:
            scheduler.schedule("k", 0.01, callback)

    scheduler.schedule("k", 0.01, callback)
    await asyncio.sleep(0.06)

    assert len(runs) == 2
    assert len(scheduler) == 0


async def test_cancel_all():
    scheduler = DelayedTaskScheduler()
    fired = []

    async def callback():
        fired.append("x")

    for key in range(3):
        scheduler.schedule(key, 0.01, callback)
    scheduler.cancel_all()
    await asyncio.sleep(0.03)

    assert fired == []
    assert len(scheduler) == 0
