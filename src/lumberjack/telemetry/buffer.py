# src/lumberjack/telemetry/buffer.py
"""Batching buffer with bounded requeue.

EventBuffer queues telemetry items and hands them to an async flush callback
as a batch when one of these triggers fires:
- size: the queue reaches ``max_size`` on ``add``
- age: ``max_age`` seconds have passed since the last flush, checked on ``add``
- timer: a background asyncio task flushes every ``flush_interval`` seconds
- manual ``flush()`` or ``shutdown()``

Key design decisions:
- Swap before await: ``flush`` takes the current queue and installs an empty
  one before the first suspension point, so an ``add`` made while an export
  is in flight lands in the next batch, never the one being sent.
- Bounded requeue: on failure only ``min(len(batch), max(1, max_size // 2))``
  of the original items go back to the front of the queue, in their original
  order. The remainder is dropped and counted, so a sustained outage cannot
  grow memory without bound.
- A non-retryable failure (a batch the exporter could not encode) drops
  the whole batch.
- Aggregate logging: drops are summarized every 100 items.
- Runtimes without a running event loop get no timer; threshold flushes run
  inline to completion instead.

Thread Safety:
    NOT thread-safe. All mutation is synchronous and happens on the event
    loop (or the single calling thread), so there is no interleaving between
    a length check and the swap.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

import structlog

from lumberjack.contracts.results import ExportResult
from lumberjack.core.clock import DEFAULT_CLOCK, Clock

logger = structlog.get_logger(__name__)

T = TypeVar("T")

FlushCallback = Callable[[Sequence[T]], Awaitable[ExportResult]]


def requeue_count(batch_length: int, max_size: int) -> int:
    """Number of items from a failed batch that go back into the queue."""
    return min(batch_length, max(1, max_size // 2))


class EventBuffer(Generic[T]):
    """Queue of pending telemetry items flushed as a unit.

    Attributes:
        name: Data kind ("logs", "objects", "spans", "events"), used in
            diagnostics.
        dropped_count: Items discarded after failed flushes.
    """

    # Log aggregate metrics every N drops
    _LOG_INTERVAL = 100

    def __init__(
        self,
        name: str,
        on_flush: FlushCallback[T],
        *,
        max_size: int,
        max_age: float | None = None,
        flush_interval: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the buffer.

        Args:
            name: Data kind, used in diagnostics.
            on_flush: Coroutine function receiving a read-only batch. A failed
                ExportResult or a raised exception triggers the requeue path.
            max_size: Size threshold for flushing; also bounds the requeue.
            max_age: Seconds since the last flush after which ``add`` flushes.
                None disables the age trigger.
            flush_interval: Timer period in seconds. None disables the timer.
            clock: Time source (defaults to the system clock).

        Raises:
            ValueError: If max_size < 1.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.name = name
        self._on_flush = on_flush
        self._max_size = max_size
        self._max_age = max_age
        self._flush_interval = flush_interval
        self._clock = clock if clock is not None else DEFAULT_CLOCK

        self._items: list[T] = []
        self._last_flush = self._clock.monotonic()
        self._timer: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False
        self._dropped_count = 0
        self._last_logged_drop_count = 0

    # =========================================================================
    # Producer side
    # =========================================================================

    def add(self, item: T) -> None:
        """Append an item, flushing if a size or age threshold is reached.

        Ignored once ``shutdown()`` has begun.
        """
        if self._closed:
            return
        self._items.append(item)
        if self._timer is None and self._flush_interval is not None:
            self.start()
        if self.should_flush():
            self._schedule_flush()

    def should_flush(self) -> bool:
        if len(self._items) >= self._max_size:
            return True
        if self._max_age is not None and self._items:
            return self._clock.monotonic() - self._last_flush >= self._max_age
        return False

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop in this thread: flush to completion inline
            asyncio.run(self.flush())
            return
        # One scheduled flush per loop; it picks up items added while it runs
        if any(task.get_loop() is loop and not task.done() for task in self._pending):
            return
        task = loop.create_task(self._run_scheduled_flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_scheduled_flush(self) -> None:
        result = await self.flush()
        # Stop at the first failure; a requeued batch may itself meet the size threshold
        while result.success and not self._closed and self.should_flush():
            result = await self.flush()

    # =========================================================================
    # Flushing
    # =========================================================================

    async def flush(self) -> ExportResult:
        """Export the current queue as one batch.

        Returns:
            The exporter's result (an empty success when nothing is queued).
        """
        if not self._items:
            return ExportResult.ok(0)

        batch = self._items
        self._items = []
        self._last_flush = self._clock.monotonic()

        try:
            result = await self._on_flush(tuple(batch))
        except Exception as e:
            result = ExportResult.failed(e)

        if not result.success:
            self._handle_failure(batch, result)
        return result

    def _handle_failure(self, batch: list[T], result: ExportResult) -> None:
        kept = requeue_count(len(batch), self._max_size) if result.retryable else 0
        dropped = len(batch) - kept
        # Original items go in front of anything added during the export
        self._items[:0] = batch[:kept]

        logger.error(
            f"Failed to send {self.name}",
            error=str(result.error) if result.error is not None else "unknown error",
            batch_size=len(batch),
            requeued=kept,
            dropped=dropped,
            retryable=result.retryable,
        )
        if dropped:
            self._record_drops(dropped)

    def _record_drops(self, count: int) -> None:
        self._dropped_count += count
        if self._dropped_count - self._last_logged_drop_count >= self._LOG_INTERVAL:
            logger.warning(
                "Telemetry buffer dropped items after failed exports",
                buffer=self.name,
                dropped_since_last_log=self._dropped_count - self._last_logged_drop_count,
                dropped_total=self._dropped_count,
                hint="The ingestion service has been unreachable for several flushes",
            )
            self._last_logged_drop_count = self._dropped_count

    # =========================================================================
    # Timer and lifecycle
    # =========================================================================

    def start(self) -> bool:
        """Start the background flush timer.

        Returns:
            True if the timer is running, False when there is no running event
            loop or the buffer has no flush interval.
        """
        if self._timer is not None and not self._timer.done():
            return True
        if self._flush_interval is None or self._closed:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._timer = loop.create_task(self._run_timer(self._flush_interval))
        return True

    async def _run_timer(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.flush()

    async def stop_timer(self) -> None:
        loop = asyncio.get_running_loop()
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        timer.cancel()
        # The timer may belong to a loop that has since closed
        if timer.get_loop() is loop:
            with contextlib.suppress(asyncio.CancelledError):
                await timer

    async def shutdown(self) -> ExportResult:
        """Cancel the timer, refuse new items, then flush once more.

        Returns:
            Result of the final flush.
        """
        await self.stop_timer()
        self._closed = True
        loop = asyncio.get_running_loop()
        pending = [task for task in self._pending if task.get_loop() is loop]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return await self.flush()

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def dropped_count(self) -> int:
        """Number of items dropped after failed flushes."""
        return self._dropped_count

    def __len__(self) -> int:
        return len(self._items)
