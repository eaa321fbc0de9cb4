# tests/unit/tracking/test_replay.py
"""Tests for replay chunking and privacy filtering."""

import pytest

from lumberjack.contracts.enums import FrontendEventType
from lumberjack.contracts.events import FrontendEvent, ReplayData
from lumberjack.contracts.wire import frontend_event_to_wire
from lumberjack.core.clock import MockClock
from lumberjack.core.config import ReplaySettings
from lumberjack.tracking.replay import PrivacyFilter, ReplayRecorder


def text_node(text: str, css_class: str = "") -> dict[str, object]:
    return {"type": 2, "tagName": "p", "attributes": {"class": css_class}, "textContent": text}


class TestPrivacyFilter:
    def test_ignore_class_drops_event(self) -> None:
        event = {"type": 3, "data": {"node": text_node("secret", "lumberjack-ignore")}}
        assert PrivacyFilter(ReplaySettings()).apply(event) is None

    def test_block_class_replaced_with_placeholder(self) -> None:
        node = {**text_node("card", "billing lumberjack-block"), "id": 12, "childNodes": [text_node("4111")]}

        filtered = PrivacyFilter(ReplaySettings()).apply({"type": 2, "data": {"node": node}})

        assert filtered is not None
        placeholder = filtered["data"]["node"]
        assert placeholder["blocked"] is True
        assert placeholder["childNodes"] == []
        assert placeholder["id"] == 12
        assert "textContent" not in placeholder

    def test_mask_class_masks_nested_text(self) -> None:
        node = {**text_node("", "lumberjack-mask"), "childNodes": [text_node("Jane Doe")]}

        filtered = PrivacyFilter(ReplaySettings()).apply({"data": {"node": node}})

        assert filtered is not None
        assert filtered["data"]["node"]["childNodes"][0]["textContent"] == "********"

    def test_unmasked_text_passes_through(self) -> None:
        filtered = PrivacyFilter(ReplaySettings()).apply({"data": {"node": text_node("Welcome")}})
        assert filtered is not None
        assert filtered["data"]["node"]["textContent"] == "Welcome"

    def test_input_values_masked_by_default(self) -> None:
        event = {"type": 3, "data": {"source": 5, "id": 4, "text": "hunter2", "value": "hunter2"}}

        filtered = PrivacyFilter(ReplaySettings()).apply(event)

        assert filtered is not None
        assert filtered["data"]["text"] == "*******"
        assert filtered["data"]["value"] == "*******"

    def test_input_values_kept_when_masking_disabled(self) -> None:
        event = {"data": {"source": 5, "text": "blue"}}
        filtered = PrivacyFilter(ReplaySettings(mask_all_inputs=False)).apply(event)
        assert filtered is not None
        assert filtered["data"]["text"] == "blue"

    def test_strict_mode_masks_all_text(self) -> None:
        filtered = PrivacyFilter(ReplaySettings(privacy_mode="strict")).apply({"data": {"node": text_node("Hi")}})
        assert filtered is not None
        assert filtered["data"]["node"]["textContent"] == "**"


class TestReplayRecorder:
    @pytest.fixture
    def chunks(self) -> list[FrontendEvent]:
        return []

    def make_recorder(
        self,
        chunks: list[FrontendEvent],
        clock: MockClock,
        activity: list[int] | None = None,
        **settings: object,
    ) -> ReplayRecorder:
        recorder = ReplayRecorder(
            chunks.append,
            lambda: "session-1",
            ReplaySettings(**settings),  # type: ignore[arg-type]
            on_activity=(lambda: activity.append(1)) if activity is not None else None,
            clock=clock,
        )
        recorder.start()
        return recorder

    def test_not_recording_until_started(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        recorder = ReplayRecorder(chunks.append, lambda: None, ReplaySettings(max_events_per_chunk=1), clock=mock_clock)
        recorder.emit({"type": 3})
        assert not recorder.recording
        assert chunks == []

    def test_chunk_emitted_at_max_events(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        recorder = self.make_recorder(chunks, mock_clock, max_events_per_chunk=3)

        for i in range(3):
            recorder.emit({"type": 3, "timestamp": 1000 + i})

        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.type is FrontendEventType.SESSION_REPLAY
        assert chunk.session_id == "session-1"
        assert isinstance(chunk.data, ReplayData)
        assert len(chunk.data.events) == 3
        assert (chunk.data.start_time, chunk.data.end_time) == (1000, 1002)

    def test_chunk_emitted_by_age(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        recorder = self.make_recorder(chunks, mock_clock, flush_interval_seconds=5.0)

        recorder.emit({"type": 3})
        mock_clock.advance(5.0)
        recorder.emit({"type": 3})

        assert len(chunks) == 1
        assert isinstance(chunks[0].data, ReplayData)
        assert len(chunks[0].data.events) == 2

    def test_stop_flushes_partial_chunk(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        recorder = self.make_recorder(chunks, mock_clock)
        recorder.emit({"type": 3})

        recorder.stop()
        recorder.emit({"type": 3})

        assert len(chunks) == 1
        assert not recorder.recording

    def test_events_update_session_activity(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        activity: list[int] = []
        recorder = self.make_recorder(chunks, mock_clock, activity)

        recorder.emit({"type": 3})
        recorder.emit({"type": 3, "data": {"node": text_node("x", "lumberjack-ignore")}})

        assert activity == [1]

    def test_large_chunks_are_sent_compressed(self, chunks: list[FrontendEvent], mock_clock: MockClock) -> None:
        recorder = self.make_recorder(chunks, mock_clock, max_events_per_chunk=60)
        for i in range(60):
            recorder.emit({"type": 3, "timestamp": i})

        wire = frontend_event_to_wire(chunks[0])

        assert wire["data"]["compressed"] is True
        assert isinstance(wire["data"]["events"], str)
