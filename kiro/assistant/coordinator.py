"""Request deduplication and debouncing for outbound chat calls."""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from loguru import logger


DEFAULT_DEBOUNCE_MS = 800
DEFAULT_DEDUP_WINDOW_MS = 2000

Executor = Callable[[], Awaitable[Any]]


@dataclass
class PendingRequest:
    """A key that is debouncing or in flight."""
    key: str
    future: asyncio.Future
    executor: Executor
    created_at: float
    dedup_window: float
    waiters: int = 1
    timer: Optional[asyncio.TimerHandle] = None
    started: bool = False


@dataclass
class SettledRequest:
    future: asyncio.Future
    expires_at: float


class RequestCoordinator:
    """
    Coalesces calls that share a key into one executor run.

    - Callers arriving while a key is pending join its shared future.
    - With debounce, every new call restarts the key's timer (trailing edge)
      and the latest executor is the one that runs.
    - Settled outcomes, errors included, are replayed for a short dedup
      window so a double submit right after completion does not run again.

    Everything runs on one event loop; every check-then-set on the registries
    below happens before the first await.
    """

    def __init__(self,
                 debounce_ms: int = DEFAULT_DEBOUNCE_MS,
                 dedup_window_ms: int = DEFAULT_DEDUP_WINDOW_MS):
        self.debounce_ms = debounce_ms
        self.dedup_window_ms = dedup_window_ms

        self._pending: Dict[str, PendingRequest] = {}
        self._settled: Dict[str, SettledRequest] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._stats = defaultdict(int)

    async def execute_with_dedup(self,
                                 key: str,
                                 executor: Executor,
                                 debounce: bool = True,
                                 dedup_window_ms: Optional[int] = None) -> Any:
        """
        Run executor once per burst of calls sharing key.

        Args:
            key: Identity of the logical request
            executor: Zero-argument coroutine function doing the real work
            debounce: Delay execution until calls under key go quiet
            dedup_window_ms: How long a settled outcome is replayed

        Returns:
            The executor's result; its exception is raised to every caller
        """
        loop = asyncio.get_running_loop()
        window = (self.dedup_window_ms if dedup_window_ms is None else dedup_window_ms) / 1000

        settled = self._settled.get(key)
        if settled is not None:
            if settled.expires_at > loop.time():
                self._stats['short_circuited'] += 1
                logger.debug(f"[Dedup] Replaying settled request: {key}")
                return await asyncio.shield(settled.future)
            del self._settled[key]

        pending = self._pending.get(key)
        if pending is not None:
            pending.waiters += 1
            self._stats['joined'] += 1
            logger.debug(f"[Dedup] Waiting for existing request: {key}")
            if not pending.started:
                pending.executor = executor
                if debounce:
                    self._schedule(pending, loop)
                else:
                    self._fire(key)
            return await asyncio.shield(pending.future)

        pending = PendingRequest(
            key=key,
            future=loop.create_future(),
            executor=executor,
            created_at=loop.time(),
            dedup_window=window,
        )
        self._pending[key] = pending

        if debounce:
            self._schedule(pending, loop)
        else:
            self._fire(key)

        return await asyncio.shield(pending.future)

    def _schedule(self, pending: PendingRequest, loop: asyncio.AbstractEventLoop) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
        pending.timer = loop.call_later(self.debounce_ms / 1000, self._fire, pending.key)

    def _fire(self, key: str) -> None:
        pending = self._pending.get(key)
        if pending is None or pending.started:
            return

        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None
        pending.started = True

        task = asyncio.get_running_loop().create_task(self._run(pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, pending: PendingRequest) -> None:
        self._stats['executions'] += 1
        future = pending.future
        try:
            result = await pending.executor()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            logger.debug(f"[Dedup] Request failed for {pending.key}: {e}")
            future.set_exception(e)
        else:
            future.set_result(result)
        finally:
            if self._pending.get(pending.key) is pending:
                del self._pending[pending.key]

        if pending.dedup_window > 0:
            loop = asyncio.get_running_loop()
            settled = SettledRequest(
                future=future,
                expires_at=loop.time() + pending.dedup_window,
            )
            self._settled[pending.key] = settled
            loop.call_later(pending.dedup_window, self._expire_settled, pending.key, settled)

    def _expire_settled(self, key: str, settled: SettledRequest) -> None:
        # A newer outcome for the same key keeps its own timer
        if self._settled.get(key) is settled:
            del self._settled[key]

    def flush(self, key: Optional[str] = None) -> None:
        """
        Cancel scheduled timers that have not fired yet.

        Waiters of a flushed key are left unresolved. Requests already in
        flight always run to completion.
        """
        keys = [key] if key is not None else list(self._pending)
        for k in keys:
            pending = self._pending.get(k)
            if pending is None or pending.started:
                continue
            if pending.timer is not None:
                pending.timer.cancel()
            del self._pending[k]
            logger.debug(f"[Dedup] Flushed debounced request: {k}")

    def clear_cache(self) -> None:
        self._settled.clear()

    def _purge_settled(self) -> None:
        try:
            now = asyncio.get_running_loop().time()
        except RuntimeError:
            return
        expired = [k for k, s in self._settled.items() if s.expires_at <= now]
        for k in expired:
            del self._settled[k]

    def get_stats(self) -> Dict[str, int]:
        self._purge_settled()
        return {
            'pending_requests': len(self._pending),
            'cached_results': len(self._settled),
            'debounce_timers': sum(
                1 for p in self._pending.values()
                if p.timer is not None and not p.started
            ),
            'executions': self._stats['executions'],
            'joined': self._stats['joined'],
            'short_circuited': self._stats['short_circuited'],
        }
