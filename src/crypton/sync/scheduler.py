"""
Timer abstraction for the flush and poll cadences.

``AsyncioScheduler`` drives real timers on the running event loop.
``ManualScheduler`` owns a virtual clock so cadences, symbol switches and
in-flight pulls can be stepped deterministically::

    scheduler = ManualScheduler()
    scheduler.call_every(0.3, coalescer.flush, name="flush")
    asyncio.run(scheduler.advance(0.9))   # three flushes
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

TimerCallback = Callable[[], Any]
JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class Timer:
    name: str
    interval: float
    callback: TimerCallback
    next_due: float = 0.0
    fired: int = 0
    cancelled: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None:
            self.task.cancel()


async def _invoke(callback: Callable[[], Any]) -> Any:
    result = callback()
    if inspect.isawaitable(result):
        result = await result
    return result


class Scheduler(ABC):
    """Periodic timers plus one-shot jobs, all on one logical thread."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._timers: list[Timer] = []

    @property
    def active_timers(self) -> list[Timer]:
        return [t for t in self._timers if not t.cancelled]

    @abstractmethod
    def now(self) -> float:
        pass

    @abstractmethod
    def call_every(self, interval: float, callback: TimerCallback, name: str = "") -> Timer:
        pass

    @abstractmethod
    def spawn(self, job: JobFactory, name: str = "") -> None:
        pass

    def cancel_all(self) -> list[asyncio.Task]:
        """Cancel every timer and job; returns the tasks still unwinding."""
        tasks = [t.task for t in self._timers if t.task is not None]
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        return tasks

    async def shutdown(self) -> None:
        """Cancel everything and wait until the cancelled tasks have finished."""
        current = asyncio.current_task()
        tasks = [t for t in self.cancel_all() if t is not current]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire(self, timer: Timer) -> None:
        timer.fired += 1
        try:
            await _invoke(timer.callback)
        except Exception as exc:
            self.logger.error(f"[Timer {timer.name}] callback error: {exc}", exc_info=True)


class AsyncioScheduler(Scheduler):
    """Timers as ``asyncio`` tasks. Must be used from inside a running loop."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger)
        self._jobs: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_every(self, interval: float, callback: TimerCallback, name: str = "") -> Timer:
        timer = Timer(name=name or getattr(callback, "__name__", "timer"),
                      interval=interval, callback=callback,
                      next_due=self.now() + interval)
        timer.task = asyncio.create_task(self._run_timer(timer))
        self._timers.append(timer)
        return timer

    async def _run_timer(self, timer: Timer) -> None:
        while not timer.cancelled:
            await asyncio.sleep(timer.interval)
            if timer.cancelled:
                break
            timer.next_due = self.now() + timer.interval
            # Awaited inline: a slow cycle delays the next one, never overlaps it.
            await self._fire(timer)

    def spawn(self, job: JobFactory, name: str = "") -> None:
        task = asyncio.create_task(self._run_job(job, name))
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)

    async def _run_job(self, job: JobFactory, name: str) -> None:
        try:
            await job()
        except Exception as exc:
            self.logger.error(f"[Job {name}] failed: {exc}", exc_info=True)

    def cancel_all(self) -> list[asyncio.Task]:
        tasks = super().cancel_all() + list(self._jobs)
        for task in self._jobs:
            task.cancel()
        self._jobs.clear()
        return tasks


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler; nothing runs until :meth:`advance` or :meth:`drain`."""

    def __init__(self, start: float = 0.0, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger)
        self._clock = start
        self._pending: list[tuple[str, JobFactory]] = []

    def now(self) -> float:
        return self._clock

    @property
    def pending_jobs(self) -> int:
        return len(self._pending)

    def call_every(self, interval: float, callback: TimerCallback, name: str = "") -> Timer:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        timer = Timer(name=name or getattr(callback, "__name__", "timer"),
                      interval=interval, callback=callback,
                      next_due=self._clock + interval)
        self._timers.append(timer)
        return timer

    def spawn(self, job: JobFactory, name: str = "") -> None:
        self._pending.append((name, job))

    def cancel_all(self) -> list[asyncio.Task]:
        tasks = super().cancel_all()
        self._pending.clear()
        return tasks

    async def drain(self) -> None:
        """Run spawned jobs (and the jobs they spawn) to completion."""
        while self._pending:
            name, job = self._pending.pop(0)
            try:
                await job()
            except Exception as exc:
                self.logger.error(f"[Job {name}] failed: {exc}", exc_info=True)

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due in order."""
        target = self._clock + seconds
        await self.drain()
        while True:
            due = [t for t in self.active_timers if t.next_due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_due)
            self._clock = timer.next_due
            timer.next_due += timer.interval
            await self._fire(timer)
            await self.drain()
        self._clock = target
