# src/lumberjack/context.py
"""Ambient trace context.

A TraceContext is a mutable key/value bag (``traceId``, ``spanId``,
``parentSpanId``, ``traceName`` plus arbitrary extra keys) that is visible to
everything running inside a ``run``/``run_async`` scope, synchronous or
asynchronous, without being passed explicitly.

The store is written against the ContextStorage protocol. The default
binding uses contextvars, which gives:
- stack discipline: a scope's token is reset in ``finally``, so the parent
  scope is restored exactly, even when the body raises
- task isolation: asyncio copies the current context into each new task, so
  sibling tasks started under different scopes never see each other's bag

Example:
    store = TraceContextStore()

    async def handle(request):
        return await store.run_async({"traceId": generate_trace_id()}, process, request)
"""

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

TraceContext = dict[str, Any]

TRACE_ID_KEY = "traceId"
SPAN_ID_KEY = "spanId"
PARENT_SPAN_ID_KEY = "parentSpanId"
TRACE_NAME_KEY = "traceName"

# Keys carried on LogEntry fields rather than in its property map
RESERVED_KEYS = frozenset({TRACE_ID_KEY, SPAN_ID_KEY, PARENT_SPAN_ID_KEY, TRACE_NAME_KEY})


def generate_trace_id() -> str:
    """32 lowercase hex characters from the OS CSPRNG."""
    return secrets.token_hex(16)


def generate_span_id() -> str:
    """16 lowercase hex characters from the OS CSPRNG."""
    return secrets.token_hex(8)


class ContextStorage(Protocol):
    """Binding for the "current frame" pointer.

    ``enter`` makes a bag current and returns an opaque token; ``exit``
    restores whatever was current before the matching ``enter``.
    """

    def current(self) -> TraceContext | None: ...

    def enter(self, context: TraceContext) -> object: ...

    def exit(self, token: object) -> None: ...


class ContextVarStorage:
    """ContextStorage backed by a ContextVar."""

    def __init__(self, name: str = "lumberjack_trace_context") -> None:
        self._var: ContextVar[TraceContext | None] = ContextVar(name, default=None)

    def current(self) -> TraceContext | None:
        return self._var.get()

    def enter(self, context: TraceContext) -> Token[TraceContext | None]:
        return self._var.set(context)

    def exit(self, token: object) -> None:
        self._var.reset(token)  # type: ignore[arg-type]


class TraceContextStore:
    """Scoped access to the ambient TraceContext."""

    def __init__(self, storage: ContextStorage | None = None) -> None:
        self._storage: ContextStorage = storage if storage is not None else ContextVarStorage()

    @contextmanager
    def scope(self, context: Mapping[str, Any]) -> Iterator[TraceContext]:
        """Make a copy of ``context`` current for the duration of the block.

        The yielded bag is the live scope; ``set``/``clear`` calls inside the
        block mutate it, and the parent is untouched.
        """
        bag: TraceContext = dict(context)
        token = self._storage.enter(bag)
        try:
            yield bag
        finally:
            self._storage.exit(token)

    def run(self, context: Mapping[str, Any], fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` with ``context`` current; restore the parent afterwards."""
        with self.scope(context):
            return fn(*args, **kwargs)

    async def run_async(
        self,
        context: Mapping[str, Any],
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``fn`` with ``context`` current; restore the parent afterwards."""
        with self.scope(context):
            return await fn(*args, **kwargs)

    def current(self) -> TraceContext | None:
        """The live bag of the innermost scope, or None outside any scope."""
        return self._storage.current()

    def get(self, key: str, default: Any = None) -> Any:
        bag = self._storage.current()
        if bag is None:
            return default
        return bag.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Write into the active scope. No-op outside any scope."""
        bag = self._storage.current()
        if bag is not None:
            bag[key] = value

    def clear(self) -> None:
        """Empty the active scope's keys in place without leaving the scope."""
        bag = self._storage.current()
        if bag is not None:
            bag.clear()

    def snapshot(self) -> TraceContext:
        """Shallow copy of the active bag (empty outside any scope)."""
        bag = self._storage.current()
        return dict(bag) if bag is not None else {}

    def get_trace_id(self) -> str | None:
        return self.get(TRACE_ID_KEY)

    def get_span_id(self) -> str | None:
        return self.get(SPAN_ID_KEY)


# Process-wide store. Scopes, not this object, carry the per-operation state.
trace_context = TraceContextStore()
