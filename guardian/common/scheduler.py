"""
Minute-Counter Scheduler

Drives the agent's task groups from a single loop:

- every 5 minutes: ping, basic monitoring, job processing
- every hour: hourly group
- every day: inventory reporting

The counter counts whole minutes since start and wraps every 24 hours.
It lives in memory only; a restart begins a new day at minute 0, so every
group runs on the first pass.

Usage:
    scheduler = MinuteScheduler()
    scheduler.add("five_minute", 5, [ping, monitoring, jobs])
    scheduler.add("daily", 1440, [inventory])
    await scheduler.run(one_shot=False)
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .exceptions import GuardianError
from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")

MINUTES_PER_DAY = 1440
TICK_SECONDS = 60.0

Task = Callable[[], Awaitable[None]]


@dataclass
class TaskGroup:
    """Tasks that run together every ``interval_minutes``"""
    name: str
    interval_minutes: int
    tasks: list[Task] = field(default_factory=list)

    # Observability
    run_count: int = 0
    failure_count: int = 0
    last_duration_s: float = 0.0

    def is_due(self, minute: int) -> bool:
        return minute % self.interval_minutes == 0


class MinuteScheduler:
    """
    Fixed-interval polling scheduler.

    Groups run sequentially in registration order, tasks within a group in
    list order. A failing task is logged and the rest of the group still
    runs. Errors marked non-recoverable (bad API URL/key) propagate and stop
    the scheduler.
    """

    def __init__(
        self,
        tick_seconds: float = TICK_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tick_seconds = tick_seconds
        self._sleep = sleep
        self._groups: list[TaskGroup] = []
        self._minute = 0
        self._running = False

    @property
    def minute(self) -> int:
        return self._minute

    def add(self, name: str, interval_minutes: int, tasks: list[Task]) -> TaskGroup:
        """Register a task group"""
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        group = TaskGroup(name=name, interval_minutes=interval_minutes, tasks=list(tasks))
        self._groups.append(group)
        return group

    def advance(self) -> None:
        """Move to the next minute, wrapping after 24 hours"""
        self._minute = (self._minute + 1) % MINUTES_PER_DAY

    async def run_cycle(self) -> None:
        """Run every group due at the current minute"""
        for group in self._groups:
            if group.is_due(self._minute):
                await self._run_group(group)

    async def run(self, one_shot: bool = False) -> None:
        """
        Run cycles forever, or a single pass in one-shot mode.

        Args:
            one_shot: Run all groups once (minute 0) and return
        """
        self._running = True
        try:
            while self._running:
                await self.run_cycle()

                if one_shot:
                    logger.info("Exiting after one-shot execution")
                    return

                await self._sleep(self.tick_seconds)
                self.advance()
        finally:
            self._running = False

    def stop(self) -> None:
        """Stop after the current cycle"""
        self._running = False

    async def _run_group(self, group: TaskGroup) -> None:
        logger.info(f"Processing {group.name} tasks", extra={"minute": self._minute})
        start = time.monotonic()

        for task in group.tasks:
            try:
                await task()
            except GuardianError as e:
                if not e.recoverable:
                    raise
                group.failure_count += 1
                logger.error(f"Task {_task_name(task)} in {group.name} failed: {e}")
            except Exception as e:
                group.failure_count += 1
                logger.exception(f"Task {_task_name(task)} in {group.name} crashed: {e}")

        group.run_count += 1
        group.last_duration_s = time.monotonic() - start

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability"""
        return {
            "minute": self._minute,
            "groups": {
                group.name: {
                    "interval_min": group.interval_minutes,
                    "run_count": group.run_count,
                    "failure_count": group.failure_count,
                    "last_duration_s": round(group.last_duration_s, 3),
                }
                for group in self._groups
            },
        }


def _task_name(task: Task) -> str:
    return getattr(task, "__qualname__", None) or getattr(task, "__name__", repr(task))
