"""Trailing-debounce batch queue.

Items are collected under a key (re-enqueueing a key overwrites the earlier
item) and handed to a single batch action once no new item has arrived for
``delay`` seconds. Every ``enqueue`` restarts the window, so a steady burst
keeps postponing the flush.

The action receives the snapshot of pending items together with the
callback argument passed to the *most recent* ``enqueue``; arguments passed
earlier in the same window are dropped.

Without an injected scheduler the running asyncio loop provides the timer.
Outside a loop items stay pending until the next ``enqueue`` made inside one
or an explicit ``flush()``; queues built with ``flush_without_loop`` deliver
immediately instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with ``call_later``; an asyncio event loop qualifies."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


BatchAction = Callable[[Dict[K, V], Any], None]


class BatchQueue(Generic[K, V]):
    def __init__(
        self,
        action: BatchAction,
        *,
        delay: float,
        name: str = "batch",
        scheduler: Scheduler | None = None,
        flush_without_loop: bool = False,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self._action = action
        self._delay = delay
        self._name = name
        self._scheduler = scheduler
        self._flush_without_loop = flush_without_loop
        self._pending: Dict[K, V] = {}
        self._callback_arg: Any = None
        self._timer: Optional[TimerHandle] = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    def pending(self) -> Dict[K, V]:
        return dict(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, key: K, item: V, callback_arg: Any = None) -> None:
        self._pending[key] = item
        self._callback_arg = callback_arg
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        scheduler = self._resolve_scheduler()
        if scheduler is None:
            if self._flush_without_loop:
                self._fire()
            else:
                logger.warning(
                    "no running event loop, %s queue holds %d item(s) until flushed",
                    self._name,
                    len(self._pending),
                )
            return
        self._timer = scheduler.call_later(self._delay, self._fire)

    def flush(self) -> None:
        """Deliver pending items now instead of waiting for the timer."""

        if self._timer is not None:
            self._timer.cancel()
        self._fire()

    def _fire(self) -> None:
        self._timer = None
        if not self._pending:
            return
        batch, self._pending = self._pending, {}
        callback_arg, self._callback_arg = self._callback_arg, None
        logger.debug("%s queue flushing %d item(s)", self._name, len(batch))
        self._action(batch, callback_arg)

    def _resolve_scheduler(self) -> Optional[Scheduler]:
        if self._scheduler is not None:
            return self._scheduler
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None


__all__ = ["BatchQueue", "Scheduler", "TimerHandle"]
