"""
Batching coordinator for expensive refreshes.

Many callers (periodic ticks, visibility changes, user actions) ask for
overlapping refreshes. The coordinator merges everything requested within a
short window into one batch and runs at most one batch at a time:

    idle --request--> collecting --window closes--> running --done--> idle
                                                       |
                            requests while running ----+--> next batch
                                                            dispatched
                                                            immediately

Timers go through a SchedulerInterface so tests can drive the window with a
simulated clock.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from .logging_config import get_logger
from .models import RefreshRequest, merge_requests
from .protocols import SchedulerInterface, TimerHandle
from .status_constants import DEFAULT_WINDOW_SECONDS

logger = get_logger("coordinator")

STATE_IDLE = "idle"
STATE_COLLECTING = "collecting"
STATE_RUNNING = "running"

BatchHandler = Callable[[RefreshRequest], Awaitable[None]]


@dataclass
class CoordinatorStats:
    requests: int = 0
    batches: int = 0
    failures: int = 0


class RefreshCoordinator:
    """Merges refresh requests into windowed batches.

    Args:
        handler: Coroutine run once per batch with the merged request
        scheduler: Timer source for the batching window
        window_seconds: How long a window stays open after its first request
    """

    def __init__(
        self,
        handler: BatchHandler,
        scheduler: SchedulerInterface,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ):
        self._handler = handler
        self._scheduler = scheduler
        self.window_seconds = window_seconds
        self._pending: List[RefreshRequest] = []
        self._timer: Optional[TimerHandle] = None
        self._next_wake: Optional[float] = None
        self._running: Optional[asyncio.Task] = None
        self.stats = CoordinatorStats()

    @property
    def state(self) -> str:
        if self._running is not None:
            return STATE_RUNNING
        if self._timer is not None:
            return STATE_COLLECTING
        return STATE_IDLE

    @property
    def next_wake(self) -> Optional[float]:
        """When the open window closes, or None if no window is open."""
        return self._next_wake

    @property
    def pending_keys(self) -> frozenset:
        return merge_requests(self._pending).keys

    def request(self, request: RefreshRequest) -> None:
        """Queue a refresh. Never blocks and never raises on handler failure.

        Requests made while a batch runs are held for the next batch, which
        starts as soon as the current one finishes.
        """
        self.stats.requests += 1
        self._pending.append(request)
        if self._running is not None or self._timer is not None:
            return
        self._next_wake = self._scheduler.now() + self.window_seconds
        self._timer = self._scheduler.call_later(self.window_seconds, self._on_window_closed)

    def _on_window_closed(self) -> None:
        self._timer = None
        self._next_wake = None
        if self._running is None:
            self._dispatch()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._next_wake = None

    def _dispatch(self) -> None:
        merged = merge_requests(self._pending)
        self._pending.clear()
        if not merged.keys:
            return
        loop = asyncio.get_running_loop()
        self._running = loop.create_task(self._run(merged))

    async def _run(self, request: RefreshRequest) -> None:
        try:
            logger.debug("Dispatching batch of %d keys", len(request.keys))
            await self._handler(request)
            self.stats.batches += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self.stats.batches += 1
            self.stats.failures += 1
            logger.exception("Refresh batch of %d keys failed", len(request.keys))
        finally:
            self._running = None
            if self._pending:
                self._cancel_timer()
                self._dispatch()

    async def wait_idle(self) -> None:
        """Wait until no batch is running (an open window is not waited on)."""
        while self._running is not None:
            await asyncio.wait({self._running})

    async def flush(self) -> None:
        """Close any open window now and wait for all queued work to finish."""
        while self._pending or self._running is not None:
            if self._running is None:
                self._cancel_timer()
                self._dispatch()
            await self.wait_idle()

    async def close(self) -> None:
        """Drop queued work and cancel the running batch."""
        self._cancel_timer()
        self._pending.clear()
        task = self._running
        if task is not None:
            task.cancel()
            await asyncio.wait({task})
        self._running = None
