"""Minute-counter scheduler."""

import asyncio

import pytest

from guardian.common.exceptions import ApiError, ClientConfigError
from guardian.common.scheduler import MINUTES_PER_DAY, MinuteScheduler


def recorder(log, name):
    async def task():
        log.append(name)
    return task


async def no_sleep(seconds):
    pass


def test_groups_run_on_their_boundaries():
    log = []
    scheduler = MinuteScheduler(sleep=no_sleep)
    scheduler.add("five", 5, [recorder(log, "five")])
    scheduler.add("hourly", 60, [recorder(log, "hourly")])
    scheduler.add("daily", MINUTES_PER_DAY, [recorder(log, "daily")])

    async def run_day():
        for _ in range(MINUTES_PER_DAY):
            await scheduler.run_cycle()
            scheduler.advance()

    asyncio.run(run_day())

    assert log.count("five") == 288
    assert log.count("hourly") == 24
    assert log.count("daily") == 1
    assert scheduler.minute == 0


def test_first_cycle_runs_everything_in_order():
    log = []
    scheduler = MinuteScheduler(sleep=no_sleep)
    scheduler.add("five", 5, [recorder(log, "ping"), recorder(log, "jobs")])
    scheduler.add("daily", MINUTES_PER_DAY, [recorder(log, "inventory")])

    asyncio.run(scheduler.run(one_shot=True))

    assert log == ["ping", "jobs", "inventory"]


def test_failing_task_does_not_stop_its_group():
    log = []

    async def broken():
        raise ApiError("server error 500", status_code=500)

    async def crashing():
        raise RuntimeError("unexpected")

    scheduler = MinuteScheduler(sleep=no_sleep)
    group = scheduler.add("five", 5, [broken, crashing, recorder(log, "after")])

    asyncio.run(scheduler.run(one_shot=True))

    assert log == ["after"]
    assert group.failure_count == 2
    assert group.run_count == 1


def test_non_recoverable_error_stops_the_scheduler():
    log = []

    async def unauthorized():
        raise ClientConfigError("Invalid API key", 401)

    scheduler = MinuteScheduler(sleep=no_sleep)
    scheduler.add("five", 5, [unauthorized, recorder(log, "after")])

    with pytest.raises(ClientConfigError):
        asyncio.run(scheduler.run())

    assert log == []


def test_stop_ends_the_loop_after_the_cycle():
    sleeps = []
    scheduler = MinuteScheduler(tick_seconds=60)

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            scheduler.stop()

    scheduler._sleep = fake_sleep
    scheduler.add("every-minute", 1, [])

    asyncio.run(scheduler.run())

    assert sleeps == [60, 60, 60]
    assert scheduler.get_stats()["groups"]["every-minute"]["run_count"] == 3


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        MinuteScheduler().add("never", 0, [])
