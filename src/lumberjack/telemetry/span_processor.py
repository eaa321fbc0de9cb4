# src/lumberjack/telemetry/span_processor.py
"""OpenTelemetry SpanProcessor that forwards finished spans to a client.

Usage:
    provider = TracerProvider()
    provider.add_span_processor(LumberjackSpanProcessor(client))
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from opentelemetry.context import Context
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor

SpanFilter = Callable[[ReadableSpan], bool]


class SpanSink(Protocol):
    def add_span(self, span: ReadableSpan) -> None: ...

    def flush(self) -> Awaitable[Any]: ...


class LumberjackSpanProcessor(SpanProcessor):
    """Collect finished spans into a client's span buffer.

    Args:
        sink: Usually a LumberjackClient
        span_filter: Optional predicate; spans for which it returns False are
            not collected (e.g. keep only server request spans)
    """

    def __init__(self, sink: SpanSink, *, span_filter: SpanFilter | None = None) -> None:
        self._sink = sink
        self._span_filter = span_filter
        self._flush_tasks: set[asyncio.Task[None]] = set()

    def on_start(self, span: Span, parent_context: Context | None = None) -> None:
        pass

    def on_end(self, span: ReadableSpan) -> None:
        if self._span_filter is not None and not self._span_filter(span):
            return
        self._sink.add_span(span)

    async def _flush_async(self) -> None:
        await self._sink.flush()

    def _flush(self) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._flush_async())
            return True
        # Inside a loop the flush completes asynchronously
        task = loop.create_task(self._flush_async())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)
        return True

    def shutdown(self) -> None:
        self._flush()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._flush()
