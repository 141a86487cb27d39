"""Threshold voice activity detection with a sliding end-of-speech deadline."""

from collections import deque
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum

from .config import PRE_ROLL_DURATION_MS, VAD_TRACE_LOG_INTERVAL_MS
from .logging_utils import get_logger
from .models import AudioChunk, LoudnessSample, ProfileHandle, SpeechSegment

logger = get_logger(__name__)


class PreRollBuffer:
    """Ring of the most recent audio chunks covering ``duration_ms``."""

    def __init__(self, duration_ms: int = PRE_ROLL_DURATION_MS) -> None:
        if duration_ms < 0:
            raise ValueError("Pre-roll duration must be non-negative")
        self.duration_ms = duration_ms
        self._chunks: deque[AudioChunk] = deque()
        self._buffered_ms = 0.0

    def push(self, chunk: AudioChunk) -> None:
        """Append a chunk, dropping the oldest ones no longer needed."""
        if self.duration_ms == 0:
            return
        self._chunks.append(chunk)
        self._buffered_ms += chunk.duration_ms
        while (
            len(self._chunks) > 1
            and self._buffered_ms - self._chunks[0].duration_ms >= self.duration_ms
        ):
            oldest = self._chunks.popleft()
            self._buffered_ms -= oldest.duration_ms

    def snapshot(self) -> list[bytes]:
        """Copy of the buffered audio, oldest first."""
        return [chunk.data for chunk in self._chunks]

    @property
    def buffered_ms(self) -> float:
        return self._buffered_ms

    def __len__(self) -> int:
        return len(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()
        self._buffered_ms = 0.0

    def release(self) -> None:
        self.clear()


class VadState(Enum):
    """Whether the segmenter currently considers the speaker to be talking."""

    SILENT = "silent"
    SPEAKING = "speaking"


class VadEventType(Enum):
    ONSET = "onset"
    OFFSET = "offset"


@dataclass(frozen=True)
class VadEvent:
    """A segment boundary detected on a loudness tick."""

    type: VadEventType
    timestamp_ms: int
    segment: SpeechSegment


class VadSegmenter:
    """
    Turns loudness samples into speech segments.

    Every sample above the threshold pushes the end-of-speech deadline to
    ``now + sentence_end_wait_ms``. Speech ends only once a tick at or past
    the deadline sees no loudness above threshold, so short pauses inside a
    sentence never split it while latency stays bounded by the same wait.
    """

    def __init__(
        self,
        profile_handle: ProfileHandle,
        on_segment: Callable[[SpeechSegment], None] | None = None,
        pre_roll: PreRollBuffer | None = None,
        sample_rate: int | None = None,
    ) -> None:
        """
        Initialize the segmenter.

        Args:
            profile_handle: Source of the current threshold and sentence-end wait
            on_segment: Receives each finished segment, in offset order
            pre_roll: Buffer holding audio from just before onset
            sample_rate: Sample rate recorded on segments (defaults to the chunks')
        """
        self._profile_handle = profile_handle
        self._on_segment = on_segment
        self._pre_roll = pre_roll if pre_roll is not None else PreRollBuffer()
        self._sample_rate = sample_rate

        self._state = VadState.SILENT
        self._speech_end_deadline: int | None = None
        self._segment: SpeechSegment | None = None
        self._running = False

        self._samples_processed = 0
        self._samples_above_threshold = 0
        self._segments_emitted = 0
        self._last_trace_ms: int | None = None

    @property
    def state(self) -> VadState:
        return self._state

    @property
    def speech_end_deadline(self) -> int | None:
        return self._speech_end_deadline

    @property
    def current_segment(self) -> SpeechSegment | None:
        return self._segment

    @property
    def pre_roll(self) -> PreRollBuffer:
        return self._pre_roll

    def is_speaking(self) -> bool:
        return self._state is VadState.SPEAKING

    def push_audio(self, chunk: AudioChunk) -> None:
        """Route captured audio into the open segment, or the pre-roll while idle."""
        if self._sample_rate is None:
            self._sample_rate = chunk.sample_rate

        if self._segment is not None:
            self._segment.audio_chunks.append(chunk.data)
        else:
            self._pre_roll.push(chunk)

    def process_sample(self, sample: LoudnessSample) -> VadEvent | None:
        """
        Advance the detector by one loudness tick.

        Returns:
            ONSET or OFFSET event when a boundary is crossed on this tick
        """
        profile = self._profile_handle.current
        now = sample.timestamp_ms
        self._samples_processed += 1
        self._log_stats(now)

        if sample.value > profile.threshold:
            self._samples_above_threshold += 1
            self._speech_end_deadline = now + profile.sentence_end_wait_ms
            if self._state is VadState.SILENT:
                return self._open_segment(now)
            return None

        if self._state is VadState.SPEAKING and now >= self._speech_end_deadline:
            return self._close_segment(now)

        return None

    def _open_segment(self, now: int) -> VadEvent:
        segment = SpeechSegment(
            onset_time_ms=now,
            audio_chunks=self._pre_roll.snapshot(),
        )
        if self._sample_rate is not None:
            segment.sample_rate = self._sample_rate
        self._pre_roll.clear()
        self._segment = segment
        self._state = VadState.SPEAKING

        logger.debug(
            f"🗣️ Speech onset at {now}ms "
            f"(pre-roll {len(segment.audio_chunks)} chunks, "
            f"threshold {self._profile_handle.current.threshold})"
        )
        return VadEvent(type=VadEventType.ONSET, timestamp_ms=now, segment=segment)

    def _close_segment(self, now: int) -> VadEvent:
        segment = self._segment
        segment.offset_time_ms = now
        self._segment = None
        self._state = VadState.SILENT
        self._speech_end_deadline = None
        self._segments_emitted += 1

        logger.debug(
            f"🔇 Speech offset at {now}ms: {segment.duration_ms}ms, "
            f"{segment.payload_size} bytes"
        )
        if self._on_segment is not None:
            self._on_segment(segment)
        return VadEvent(type=VadEventType.OFFSET, timestamp_ms=now, segment=segment)

    def _log_stats(self, now: int) -> None:
        if self._last_trace_ms is None:
            self._last_trace_ms = now
            return
        if now - self._last_trace_ms >= VAD_TRACE_LOG_INTERVAL_MS:
            ratio = self._samples_above_threshold / self._samples_processed * 100
            logger.trace(
                f"🔊 VAD Stats: {self._samples_above_threshold}/{self._samples_processed} "
                f"samples above threshold ({ratio:.1f}%), {self._segments_emitted} segments"
            )
            self._last_trace_ms = now

    async def run(self, samples: AsyncIterator[LoudnessSample]) -> None:
        """Consume a sample stream until it ends or ``stop()`` is called."""
        self._running = True
        try:
            async for sample in samples:
                if not self._running:
                    break
                self.process_sample(sample)
        finally:
            self._running = False

    def stop(self) -> None:
        """End `run()` and discard any unfinished segment."""
        self._running = False
        self.release()

    def release(self) -> None:
        """Drop any open segment and buffered audio without emitting them."""
        if self._segment is not None:
            logger.debug("🗑️ Discarding open speech segment on release")
        self._segment = None
        self._state = VadState.SILENT
        self._speech_end_deadline = None
        self._pre_roll.release()

    def get_stats(self) -> dict[str, int]:
        return {
            "samples_processed": self._samples_processed,
            "samples_above_threshold": self._samples_above_threshold,
            "segments_emitted": self._segments_emitted,
        }
