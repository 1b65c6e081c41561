import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from assessment.core.config import settings
from assessment.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

TickCallback = Callable[[int, int], Union[None, Awaitable[None]]]
ExpireCallback = Callable[[int], Union[None, Awaitable[None]]]


class CountdownScheduler:
    """Per-attempt countdowns measured against absolute deadlines.

    Ticks only ever recompute ``deadline - now``; nothing is accumulated, so a
    process that was suspended past the deadline expires on its next tick.
    Tick callbacks are for display. Expiry callbacks run at most once per
    attempt.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None, clock: Clock = utcnow,
                 tick_seconds: int = settings.COUNTDOWN_TICK_SECONDS):
        self._scheduler = scheduler
        self.clock = clock
        self.tick_seconds = tick_seconds
        self._deadlines: Dict[int, datetime] = {}
        self._expired: Set[int] = set()
        self._tick_callbacks: List[TickCallback] = []
        self._expire_callbacks: List[ExpireCallback] = []

    @staticmethod
    def _job_id(attempt_id: int) -> str:
        return f"countdown:{attempt_id}"

    def on_tick(self, callback: TickCallback):
        self._tick_callbacks.append(callback)

    def on_expire(self, callback: ExpireCallback):
        self._expire_callbacks.append(callback)

    def start(self, attempt_id: int, duration_seconds: int, started_at: Optional[datetime] = None) -> bool:
        """Begin counting down. Returns False if already running or already expired."""
        if attempt_id in self._deadlines or attempt_id in self._expired:
            return False

        started_at = started_at or self.clock()
        self._deadlines[attempt_id] = started_at + timedelta(seconds=duration_seconds)
        if self._scheduler is not None:
            self._scheduler.add_job(
                self.tick,
                'interval',
                seconds=self.tick_seconds,
                args=[attempt_id],
                id=self._job_id(attempt_id),
                name=f"Countdown for attempt {attempt_id}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        logger.info(f"Countdown started for attempt {attempt_id}, deadline {self._deadlines[attempt_id].isoformat()}")
        return True

    def is_running(self, attempt_id: int) -> bool:
        return attempt_id in self._deadlines

    def deadline(self, attempt_id: int) -> Optional[datetime]:
        return self._deadlines.get(attempt_id)

    def remaining(self, attempt_id: int) -> Optional[int]:
        deadline = self._deadlines.get(attempt_id)
        if deadline is None:
            return None
        return max(0, math.ceil((deadline - self.clock()).total_seconds()))

    async def tick(self, attempt_id: int):
        deadline = self._deadlines.get(attempt_id)
        if deadline is None:
            # stale tick from a cancelled countdown
            return

        remaining = (deadline - self.clock()).total_seconds()
        if remaining <= 0:
            self._stop(attempt_id)
            self._expired.add(attempt_id)
            logger.info(f"Countdown expired for attempt {attempt_id}")
            for callback in list(self._expire_callbacks):
                await self._invoke(callback, attempt_id)
            return

        for callback in list(self._tick_callbacks):
            await self._invoke(callback, attempt_id, math.ceil(remaining))

    def cancel(self, attempt_id: int):
        if self._stop(attempt_id):
            logger.info(f"Countdown cancelled for attempt {attempt_id}")

    def _stop(self, attempt_id: int) -> bool:
        was_running = self._deadlines.pop(attempt_id, None) is not None
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(self._job_id(attempt_id))
            except JobLookupError:
                pass
        return was_running

    async def _invoke(self, callback: Callable, *args):
        try:
            result = callback(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Countdown callback {getattr(callback, '__name__', callback)} failed for attempt {args[0]}: {e}")
