"""Tests for the threshold VAD segmenter and pre-roll buffer."""

from collections.abc import AsyncIterator

import pytest

from live_interpreter.voice.models import (
    AudioChunk,
    CalibrationProfile,
    LoudnessSample,
    ProfileHandle,
    SpeechSegment,
)
from live_interpreter.voice.vad import (
    PreRollBuffer,
    VadEventType,
    VadSegmenter,
    VadState,
)

INTERVAL_MS = 50


def make_handle(threshold_profile: CalibrationProfile | None = None) -> ProfileHandle:
    """Profile with threshold 23 and a 500 ms sentence-end wait."""
    return ProfileHandle(
        threshold_profile or CalibrationProfile.from_measurements(5, 41, sentence_end_wait_ms=500)
    )


def chunk(ms: int = 100, timestamp_ms: int = 0, fill: bytes = b"\x01") -> AudioChunk:
    """AudioChunk lasting ``ms`` at 16 kHz."""
    return AudioChunk(data=fill * (32 * ms), timestamp_ms=timestamp_ms, sample_rate=16000)


def feed(vad: VadSegmenter, values: list[float], start_ms: int = 0) -> list:
    """Push loudness values at 50 ms spacing, returning (index, event) pairs."""
    events = []
    for index, value in enumerate(values):
        event = vad.process_sample(
            LoudnessSample(timestamp_ms=start_ms + index * INTERVAL_MS, value=value)
        )
        if event is not None:
            events.append((index, event))
    return events


@pytest.mark.unit
class TestPreRollBuffer:
    """Test cases for PreRollBuffer."""

    def test_keeps_only_recent_audio(self) -> None:
        """Test the buffer holds just enough chunks to cover its duration."""
        buffer = PreRollBuffer(duration_ms=300)
        for i in range(5):
            buffer.push(chunk(100, timestamp_ms=i * 100, fill=bytes([i + 1])))

        assert len(buffer) == 3
        assert buffer.buffered_ms == pytest.approx(300.0)
        assert [data[0] for data in buffer.snapshot()] == [3, 4, 5]

    def test_snapshot_is_a_copy(self) -> None:
        """Test clearing after a snapshot does not empty the snapshot."""
        buffer = PreRollBuffer()
        buffer.push(chunk())
        snapshot = buffer.snapshot()

        buffer.clear()

        assert len(snapshot) == 1
        assert len(buffer) == 0
        assert buffer.buffered_ms == 0.0

    def test_zero_duration_buffers_nothing(self) -> None:
        """Test a disabled pre-roll stays empty."""
        buffer = PreRollBuffer(duration_ms=0)
        buffer.push(chunk())
        assert len(buffer) == 0

    def test_negative_duration_rejected(self) -> None:
        """Test negative durations are invalid."""
        with pytest.raises(ValueError):
            PreRollBuffer(duration_ms=-1)


@pytest.mark.unit
class TestVadSegmenter:
    """Test cases for VadSegmenter."""

    def test_initial_state_silent(self) -> None:
        """Test the segmenter starts silent with no deadline."""
        vad = VadSegmenter(make_handle())

        assert vad.state is VadState.SILENT
        assert vad.is_speaking() is False
        assert vad.speech_end_deadline is None
        assert vad.current_segment is None

    def test_reference_trace_onset_and_offset(self) -> None:
        """Test onset at the first 30 and offset 10 samples after the last loud sample."""
        vad = VadSegmenter(make_handle())
        values = [2, 3, 30, 28, 4, 2] + [2] * 20

        events = feed(vad, values)

        assert [(i, e.type) for i, e in events] == [
            (2, VadEventType.ONSET),
            (13, VadEventType.OFFSET),
        ]
        onset, offset = events[0][1], events[1][1]
        assert onset.timestamp_ms == 100
        assert offset.timestamp_ms == 650
        assert offset.segment is onset.segment
        assert offset.segment.onset_time_ms == 100
        assert offset.segment.offset_time_ms == 650
        assert vad.state is VadState.SILENT

    def test_threshold_is_strictly_exceeded(self) -> None:
        """Test a value equal to the threshold is not speech."""
        vad = VadSegmenter(make_handle())

        assert feed(vad, [23, 23, 23]) == []
        assert vad.state is VadState.SILENT

    def test_continuous_speech_stays_speaking(self) -> None:
        """Test speaking holds through the loud window and for the wait after it."""
        vad = VadSegmenter(make_handle())
        loud = [40] * 20

        events = feed(vad, loud)
        assert [e.type for _, e in events] == [VadEventType.ONSET]

        last_loud_ms = (len(loud) - 1) * INTERVAL_MS
        for t in range(last_loud_ms + INTERVAL_MS, last_loud_ms + 500, INTERVAL_MS):
            assert vad.process_sample(LoudnessSample(timestamp_ms=t, value=0)) is None
            assert vad.is_speaking()

        event = vad.process_sample(LoudnessSample(timestamp_ms=last_loud_ms + 500, value=0))
        assert event is not None and event.type is VadEventType.OFFSET

    def test_single_spike_then_short_silence_no_offset(self) -> None:
        """Test a spike followed by less than the wait of zeros keeps the segment open."""
        vad = VadSegmenter(make_handle())

        events = feed(vad, [50] + [0] * 9)

        assert [e.type for _, e in events] == [VadEventType.ONSET]
        assert vad.is_speaking()
        assert vad.speech_end_deadline == 500

    def test_loud_sample_on_deadline_keeps_speaking(self) -> None:
        """Test speech landing exactly on the deadline tick extends it instead of closing."""
        vad = VadSegmenter(make_handle())

        events = feed(vad, [40] + [0] * 9 + [40])

        assert [e.type for _, e in events] == [VadEventType.ONSET]
        assert vad.state is VadState.SPEAKING
        assert vad.speech_end_deadline == 1000

    def test_pause_inside_sentence_extends_deadline(self) -> None:
        """Test loud samples after a short pause push the deadline forward."""
        vad = VadSegmenter(make_handle())

        feed(vad, [40, 0, 0, 0, 40])

        assert vad.speech_end_deadline == 4 * INTERVAL_MS + 500
        assert vad.is_speaking()

    def test_segment_starts_with_pre_roll(self) -> None:
        """Test audio captured just before onset is part of the segment."""
        segments: list[SpeechSegment] = []
        vad = VadSegmenter(make_handle(), on_segment=segments.append)

        vad.push_audio(chunk(100, fill=b"\x01"))
        vad.push_audio(chunk(100, fill=b"\x02"))
        feed(vad, [40])
        vad.push_audio(chunk(100, fill=b"\x03"))
        feed(vad, [0] * 11, start_ms=INTERVAL_MS)

        assert len(segments) == 1
        segment = segments[0]
        assert [data[0] for data in segment.audio_chunks] == [1, 2, 3]
        assert segment.sample_rate == 16000
        assert len(vad.pre_roll) == 0

    def test_audio_after_offset_goes_to_pre_roll(self) -> None:
        """Test once speech ends new audio buffers for the next onset."""
        vad = VadSegmenter(make_handle())
        feed(vad, [40] + [0] * 11)

        vad.push_audio(chunk())

        assert vad.current_segment is None
        assert len(vad.pre_roll) == 1

    def test_profile_replacement_applies_next_tick(self) -> None:
        """Test a recalibrated threshold is read on the following sample."""
        handle = make_handle()
        vad = VadSegmenter(handle)

        assert feed(vad, [30]) != []
        feed(vad, [0] * 11, start_ms=INTERVAL_MS)

        handle.replace(CalibrationProfile.from_measurements(20, 60, sentence_end_wait_ms=500))

        assert feed(vad, [30], start_ms=1000) == []

    def test_release_discards_open_segment(self) -> None:
        """Test release drops the segment without emitting it."""
        segments: list[SpeechSegment] = []
        vad = VadSegmenter(make_handle(), on_segment=segments.append)
        vad.push_audio(chunk())
        feed(vad, [40])

        vad.release()

        assert vad.state is VadState.SILENT
        assert vad.current_segment is None
        assert len(vad.pre_roll) == 0
        feed(vad, [0] * 20, start_ms=INTERVAL_MS)
        assert segments == []

    def test_stop_discards_open_segment(self) -> None:
        """Test stop ends speaking without emitting a segment."""
        segments: list[SpeechSegment] = []
        vad = VadSegmenter(make_handle(), on_segment=segments.append)
        feed(vad, [40])

        vad.stop()

        assert vad.is_speaking() is False
        assert vad.current_segment is None
        assert segments == []

    def test_stats_count_samples(self) -> None:
        """Test get_stats tracks samples and segments."""
        vad = VadSegmenter(make_handle())
        feed(vad, [2, 3, 30, 28, 4, 2] + [2] * 20)

        stats = vad.get_stats()

        assert stats["samples_processed"] == 26
        assert stats["samples_above_threshold"] == 2
        assert stats["segments_emitted"] == 1

    @pytest.mark.asyncio
    async def test_run_consumes_sample_stream(self) -> None:
        """Test run() drives the segmenter from an async sample source."""
        segments: list[SpeechSegment] = []
        vad = VadSegmenter(make_handle(), on_segment=segments.append)
        values = [2, 3, 30, 28, 4, 2] + [2] * 20

        async def samples() -> AsyncIterator[LoudnessSample]:
            for index, value in enumerate(values):
                yield LoudnessSample(timestamp_ms=index * INTERVAL_MS, value=value)

        await vad.run(samples())

        assert len(segments) == 1
        assert segments[0].offset_time_ms == 650
