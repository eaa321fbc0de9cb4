# src/lumberjack/tracking/replay.py
"""Session replay chunking and privacy filtering.

The recording engine itself is external: it serializes DOM snapshots,
mutations and input events and hands each one to ``ReplayRecorder.emit``.
This module filters each event for privacy, updates session activity,
and groups events into ``session_replay`` FrontendEvents by age
(``flush_interval_seconds``) or count (``max_events_per_chunk``).

Privacy rules, by node class name:
- ignore class: any event touching such a node is dropped entirely
- block class: the node is replaced by an empty placeholder
- mask class: text under the node is replaced with ``*``
- ``mask_all_inputs``: every recorded input value is masked
- ``privacy_mode="strict"``: all recorded text is masked
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from lumberjack.contracts.enums import FrontendEventType
from lumberjack.contracts.events import FrontendEvent, ReplayData
from lumberjack.core.clock import DEFAULT_CLOCK, Clock, epoch_millis
from lumberjack.core.config import ReplaySettings

logger = structlog.get_logger(__name__)

_TEXT_KEYS = frozenset({"textContent", "text"})
_INPUT_KEYS = frozenset({"value"})
# rrweb IncrementalSource.Input; the typed text of these events is in "text"
_INPUT_SOURCE = 5


def _node_classes(node: Mapping[str, Any]) -> frozenset[str]:
    attributes = node.get("attributes")
    if isinstance(attributes, Mapping):
        class_attr = attributes.get("class")
        if isinstance(class_attr, str):
            return frozenset(class_attr.split())
    return frozenset()


def _mask(text: str) -> str:
    return "*" * len(text)


class PrivacyFilter:
    """Apply the class-name privacy rules to one recorder event."""

    def __init__(self, settings: ReplaySettings) -> None:
        self._block_class = settings.block_class
        self._ignore_class = settings.ignore_class
        self._mask_class = settings.mask_class
        self._mask_all_inputs = settings.mask_all_inputs
        self._mask_all_text = settings.privacy_mode == "strict"

    def apply(self, event: Mapping[str, Any]) -> dict[str, Any] | None:
        """Return the filtered event, or None if it must not be recorded."""
        if self._touches(event, self._ignore_class):
            return None
        filtered: dict[str, Any] = self._transform(event, self._mask_all_text)
        return filtered

    def _touches(self, value: Any, class_name: str) -> bool:
        if isinstance(value, Mapping):
            if class_name in _node_classes(value):
                return True
            return any(self._touches(item, class_name) for item in value.values())
        if isinstance(value, list | tuple):
            return any(self._touches(item, class_name) for item in value)
        return False

    def _placeholder(self, node: Mapping[str, Any]) -> dict[str, Any]:
        placeholder: dict[str, Any] = {"blocked": True, "childNodes": []}
        for key in ("id", "type", "tagName"):
            if key in node:
                placeholder[key] = node[key]
        placeholder["attributes"] = {"class": node["attributes"]["class"]}
        return placeholder

    def _transform(self, value: Any, masked: bool) -> Any:
        if isinstance(value, Mapping):
            classes = _node_classes(value)
            if self._block_class in classes:
                return self._placeholder(value)
            masked = masked or self._mask_class in classes
            is_input = value.get("source") == _INPUT_SOURCE
            result: dict[str, Any] = {}
            for key, item in value.items():
                if isinstance(item, str) and self._should_mask(key, masked, is_input):
                    result[key] = _mask(item)
                else:
                    result[key] = self._transform(item, masked)
            return result
        if isinstance(value, list | tuple):
            return [self._transform(item, masked) for item in value]
        return value

    def _should_mask(self, key: str, masked: bool, is_input: bool) -> bool:
        if masked and key in _TEXT_KEYS:
            return True
        if self._mask_all_inputs and (key in _INPUT_KEYS or (is_input and key == "text")):
            return True
        return False


class ReplayRecorder:
    """Buffer recorder events into session_replay chunks.

    Args:
        on_chunk: Receives each session_replay FrontendEvent
        session_id: Current session id provider
        settings: Chunking and privacy settings
        on_activity: Called for every recorded event (session activity)
        clock: Time source
    """

    def __init__(
        self,
        on_chunk: Callable[[FrontendEvent], None],
        session_id: Callable[[], str | None],
        settings: ReplaySettings,
        *,
        on_activity: Callable[[], None] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._on_chunk = on_chunk
        self._session_id = session_id
        self._settings = settings
        self._on_activity = on_activity
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._filter = PrivacyFilter(settings)
        self._events: list[dict[str, Any]] = []
        self._last_flush = self._clock.monotonic()
        self._recording = False

    def start(self) -> None:
        self._recording = True
        self._last_flush = self._clock.monotonic()

    def stop(self) -> None:
        """Flush any partial chunk and stop accepting events."""
        self.flush()
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    def emit(self, event: Mapping[str, Any]) -> None:
        """Entry point for the recording engine."""
        if not self._recording:
            return
        filtered = self._filter.apply(event)
        if filtered is None:
            return
        self._events.append(filtered)
        if self._on_activity is not None:
            self._on_activity()

        age = self._clock.monotonic() - self._last_flush
        if age >= self._settings.flush_interval_seconds or len(self._events) >= self._settings.max_events_per_chunk:
            self.flush()

    def flush(self) -> None:
        events, self._events = self._events, []
        self._last_flush = self._clock.monotonic()
        if not events:
            return

        now = epoch_millis(self._clock)
        start_time = events[0].get("timestamp", now)
        end_time = events[-1].get("timestamp", now)
        self._on_chunk(
            FrontendEvent(
                type=FrontendEventType.SESSION_REPLAY,
                timestamp=now,
                session_id=self._session_id(),
                data=ReplayData(events=tuple(events), start_time=start_time, end_time=end_time),
            )
        )
        logger.debug("Replay chunk recorded", events=len(events))
