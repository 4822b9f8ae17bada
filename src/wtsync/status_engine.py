"""
Pull request status engine.

Owns the in-memory view of PR status for every known worktree and keeps it
fresh by combining the pieces:

    request_refresh / visibility / periodic tick
            |
            v
    RefreshCoordinator  --batch-->  PRStatusFetcher  -->  StatusCache
                                                              |
    MergedStatusReconciler (each tick) --invalidate-----------+

Subscribers get an immutable EngineState after every change. Error records
reach the view but never the cache, so the next request retries them.
"""

import asyncio
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .logging_config import get_logger
from .merge_reconciler import MergedStatusReconciler
from .models import (
    CacheStats,
    PRError,
    PRLoading,
    PRNotChecked,
    RefreshRequest,
    StatusRecord,
    WorktreeRef,
    is_cacheable,
)
from .pr_fetcher import PRStatusFetcher, as_worktree_ref
from .protocols import SchedulerInterface, TimerHandle
from .refresh_coordinator import RefreshCoordinator
from .status_cache import StatusCache
from .status_constants import (
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_VISIBLE_DEBOUNCE,
    DEFAULT_WINDOW_SECONDS,
)

logger = get_logger("engine")


def _freeze(records: Mapping[str, StatusRecord]) -> Mapping[str, StatusRecord]:
    return MappingProxyType(dict(records))


@dataclass(frozen=True)
class EngineState:
    """Snapshot published to subscribers. Never mutated after creation."""

    pull_requests: Mapping[str, StatusRecord] = field(default_factory=lambda: _freeze({}))
    loading: bool = False
    last_updated: float = 0.0
    visible: Tuple[str, ...] = ()


Subscriber = Callable[[EngineState], None]


class PRStatusEngine:
    """Keeps PR status of many worktrees fresh with bounded external calls.

    Args:
        fetcher: Batched PR status fetcher
        cache: Status cache (hydrates the initial view)
        scheduler: Clock and timers
        reconciler: Optional merged-PR reconciler run on every tick
        window_seconds: Batching window of the refresh coordinator
        refresh_interval: Period of the background tick
        visible_debounce: Delay before refreshing after visibility changes
    """

    def __init__(
        self,
        fetcher: PRStatusFetcher,
        cache: StatusCache,
        scheduler: SchedulerInterface,
        reconciler: Optional[MergedStatusReconciler] = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        visible_debounce: float = DEFAULT_VISIBLE_DEBOUNCE,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.scheduler = scheduler
        self.reconciler = reconciler
        self.refresh_interval = refresh_interval
        self.visible_debounce = visible_debounce
        self.coordinator = RefreshCoordinator(self._handle_batch, scheduler, window_seconds)

        self._refs: Dict[str, WorktreeRef] = {}
        self._subscribers: List[Subscriber] = []
        self._visible_timer: Optional[TimerHandle] = None
        self._tick_timer: Optional[TimerHandle] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._state = EngineState()
        self._hydrate()

    # -------------------------------------------------------------------------
    # State and subscriptions
    # -------------------------------------------------------------------------

    def _hydrate(self) -> None:
        records = {}
        for key in self.cache.cached_keys():
            record = self.cache.get(key)
            if record is not None:
                records[key] = record
        if records:
            # No subscribers can exist yet
            self._state = replace(
                self._state,
                pull_requests=_freeze(records),
                last_updated=self.scheduler.now(),
            )

    def get_state(self) -> EngineState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for state changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _set_state(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception:
                logger.exception("State subscriber failed")

    def _publish(self, updates: Mapping[str, StatusRecord], **changes: Any) -> None:
        merged = dict(self._state.pull_requests)
        merged.update(updates)
        self._set_state(pull_requests=_freeze(merged), last_updated=self.scheduler.now(), **changes)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_pr_status(self, path: str) -> StatusRecord:
        """Last known status of a worktree. Never triggers or waits for a fetch."""
        record = self._state.pull_requests.get(path)
        if record is not None:
            return record
        cached = self.cache.get(path)
        return cached if cached is not None else PRNotChecked()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

    # -------------------------------------------------------------------------
    # Refresh entry points
    # -------------------------------------------------------------------------

    def _register(self, worktrees: Iterable[Any]) -> List[str]:
        keys = []
        for item in worktrees:
            ref = as_worktree_ref(item)
            self._refs.setdefault(ref.path, ref)
            if isinstance(item, WorktreeRef):
                self._refs[ref.path] = ref
            keys.append(ref.path)
        return keys

    def _publish_cached(self, keys: Iterable[str]) -> None:
        cached = {}
        for key in keys:
            record = self.cache.get(key)
            if record is not None and self._state.pull_requests.get(key) != record:
                cached[key] = record
        if cached:
            self._publish(cached)

    def request_refresh(self, worktrees: Iterable[Any], visible_only: bool = False) -> None:
        """Ask for a refresh of worktrees (paths or WorktreeRefs).

        Worktrees with a valid cache entry are served from the cache; the rest
        are handed to the coordinator and fetched in the next batch.
        """
        keys = self._register(worktrees)
        self._publish_cached(keys)
        stale = [key for key in keys if not self.cache.is_valid(key)]
        if stale:
            self.coordinator.request(RefreshRequest.for_keys(stale, visible_only))

    async def refresh_now(self, worktrees: Iterable[Any]) -> None:
        """Request a refresh and wait until it has been applied."""
        self.request_refresh(worktrees)
        await self.coordinator.flush()

    async def force_refresh(self, worktrees: Iterable[Any]) -> None:
        """Drop cached entries, then refresh and wait."""
        keys = self._register(worktrees)
        self.cache.invalidate_multiple(keys)
        await self.refresh_now(keys)

    async def refresh_worktree(self, worktree: Any) -> StatusRecord:
        """Status of one worktree: from the cache if valid, otherwise fetched now.

        The fetch goes through the coordinator, so it waits for any batch in
        flight instead of racing it.
        """
        key = self._register([worktree])[0]
        cached = self.cache.get(key)
        if cached is not None:
            self._publish({key: cached})
            return cached

        self.coordinator.request(RefreshRequest.for_keys([key]))
        await self.coordinator.flush()
        return self.get_pr_status(key)

    def clear_cache(self) -> None:
        self.cache.clear()
        self._set_state(pull_requests=_freeze({}), last_updated=self.scheduler.now())

    # -------------------------------------------------------------------------
    # Visibility and background refresh
    # -------------------------------------------------------------------------

    def set_visible_worktrees(self, worktrees: Iterable[Any]) -> None:
        """Record which worktrees are on screen and refresh the stale ones shortly."""
        keys = self._register(worktrees)
        self._set_state(visible=tuple(keys))
        if self._visible_timer is not None:
            self._visible_timer.cancel()
        self._visible_timer = self.scheduler.call_later(self.visible_debounce, self._on_visible_settled)

    def _on_visible_settled(self) -> None:
        self._visible_timer = None
        self._request_stale_visible()

    def _request_stale_visible(self) -> None:
        stale = [key for key in self._state.visible if not self.cache.is_valid(key)]
        if stale:
            self.coordinator.request(RefreshRequest.for_keys(stale, visible_only=True))

    def start(self) -> None:
        """Start the periodic tick. Must be called with the event loop running."""
        if self._tick_timer is None:
            self._tick_timer = self.scheduler.call_later(self.refresh_interval, self._on_tick)

    def stop(self) -> None:
        for timer in (self._tick_timer, self._visible_timer):
            if timer is not None:
                timer.cancel()
        self._tick_timer = None
        self._visible_timer = None
        if self._tick_task is not None and not self._tick_task.done():
            self._tick_task.cancel()
        self._tick_task = None

    async def shutdown(self) -> None:
        """Stop background work and cancel any in-flight batch."""
        self.stop()
        await self.coordinator.close()

    def _on_tick(self) -> None:
        self._tick_timer = self.scheduler.call_later(self.refresh_interval, self._on_tick)
        if self._tick_task is not None and not self._tick_task.done():
            logger.debug("Previous tick still running; skipping")
            return
        self._tick_task = asyncio.get_running_loop().create_task(self.tick())

    async def tick(self) -> List[str]:
        """One background pass: reconcile merged PRs, then refresh stale visible worktrees.

        Returns:
            Keys invalidated by the reconciler
        """
        invalidated: List[str] = []
        if self.reconciler is not None:
            try:
                invalidated = await self.reconciler.run()
            except Exception:
                logger.exception("Merged PR reconciliation failed")
        self._request_stale_visible()
        return invalidated

    # -------------------------------------------------------------------------
    # Batch handler
    # -------------------------------------------------------------------------

    async def _handle_batch(self, request: RefreshRequest) -> None:
        keys = set(request.keys)
        if request.visible_only:
            keys &= set(self._state.visible)
        # Another batch may have filled the cache since the request was queued
        fresh = [key for key in keys if self.cache.is_valid(key)]
        self._publish_cached(fresh)
        to_fetch = sorted(key for key in keys if not self.cache.is_valid(key))
        if not to_fetch:
            return

        logger.info("Refreshing PR status of %d worktrees", len(to_fetch))
        self._publish({key: PRLoading() for key in to_fetch}, loading=True)
        refs = [self._refs.get(key) or as_worktree_ref(key) for key in to_fetch]
        try:
            results = await self.fetcher.fetch(refs)
        except Exception as e:
            self._publish({key: PRError(message=str(e)) for key in to_fetch}, loading=False)
            raise

        updates: Dict[str, StatusRecord] = {
            key: results.get(key, PRError(message="no result")) for key in to_fetch
        }
        self.cache.set_many({key: r for key, r in updates.items() if is_cacheable(r)})
        self._publish(updates, loading=False)
