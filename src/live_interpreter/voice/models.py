"""Data models for voice capture, calibration and segmentation."""

import math
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .config import (
    DEFAULT_SAMPLE_RATE,
    DEFAULT_SENTENCE_END_WAIT_MS,
    DEFAULT_SILENCE_AVG,
    DEFAULT_SPEECH_MAX,
    SAMPLE_WIDTH_BYTES,
)


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock, shared by every timed component."""
    return int(time.monotonic() * 1000)


def compute_threshold(silence_avg: float, speech_max: float) -> int:
    """Midpoint between background noise and peak speech loudness."""
    return math.floor((silence_avg + speech_max) / 2 + 0.5)


@dataclass(frozen=True)
class LoudnessSample:
    """A single loudness reading taken from the latest analysis block."""

    timestamp_ms: int
    value: float

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("Loudness value must be non-negative")


@dataclass(frozen=True)
class CalibrationProfile:
    """
    Per-speaker, per-microphone VAD thresholds.

    Instances are never mutated. Edits produce a new profile so a reader
    holding the old one never sees a half-updated value.
    """

    silence_avg: float
    speech_max: float
    threshold: float
    sentence_end_wait_ms: int
    captured_at: datetime
    manual_override: bool = False

    @classmethod
    def from_measurements(
        cls,
        silence_avg: float,
        speech_max: float,
        sentence_end_wait_ms: int = DEFAULT_SENTENCE_END_WAIT_MS,
        captured_at: datetime | None = None,
    ) -> "CalibrationProfile":
        """Build a profile whose threshold is derived from the measurements."""
        return cls(
            silence_avg=silence_avg,
            speech_max=speech_max,
            threshold=compute_threshold(silence_avg, speech_max),
            sentence_end_wait_ms=sentence_end_wait_ms,
            captured_at=captured_at or datetime.now(timezone.utc),
        )

    @classmethod
    def default(cls) -> "CalibrationProfile":
        """Profile used until the speaker has calibrated."""
        return cls.from_measurements(DEFAULT_SILENCE_AVG, DEFAULT_SPEECH_MAX)

    def with_threshold(self, threshold: float) -> "CalibrationProfile":
        """Return a copy with a manually chosen threshold."""
        return replace(self, threshold=threshold, manual_override=True)

    def with_sentence_end_wait(self, sentence_end_wait_ms: int) -> "CalibrationProfile":
        """Return a copy with a different end-of-sentence wait."""
        return replace(self, sentence_end_wait_ms=sentence_end_wait_ms)

    def is_consistent(self) -> bool:
        """True when the threshold matches the measurements or was overridden."""
        if self.manual_override:
            return True
        return self.threshold == compute_threshold(self.silence_avg, self.speech_max)

    def to_dict(self) -> dict[str, Any]:
        return {
            "silence_avg": self.silence_avg,
            "speech_max": self.speech_max,
            "threshold": self.threshold,
            "sentence_end_wait_ms": self.sentence_end_wait_ms,
            "captured_at": self.captured_at.isoformat(),
            "manual_override": self.manual_override,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalibrationProfile":
        """
        Rebuild a profile from its stored form.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field cannot be parsed
        """
        return cls(
            silence_avg=float(data["silence_avg"]),
            speech_max=float(data["speech_max"]),
            threshold=float(data["threshold"]),
            sentence_end_wait_ms=int(data["sentence_end_wait_ms"]),
            captured_at=datetime.fromisoformat(data["captured_at"]),
            manual_override=bool(data.get("manual_override", False)),
        )


class ProfileHandle:
    """
    Shared reference to the active calibration profile.

    The calibration engine is the only writer; the VAD segmenter reads
    ``current`` on every tick. Replacement is a single attribute swap.
    """

    def __init__(self, profile: CalibrationProfile | None = None) -> None:
        self._profile = profile or CalibrationProfile.default()

    @property
    def current(self) -> CalibrationProfile:
        return self._profile

    def replace(self, profile: CalibrationProfile) -> None:
        self._profile = profile


@dataclass
class AudioChunk:
    """Represents a chunk of captured audio."""

    data: bytes
    timestamp_ms: int
    sample_rate: int = DEFAULT_SAMPLE_RATE
    duration_ms: float = 0.0

    def __post_init__(self) -> None:
        if not self.duration_ms and self.data:
            samples = len(self.data) // SAMPLE_WIDTH_BYTES
            self.duration_ms = samples * 1000.0 / self.sample_rate


@dataclass
class SpeechSegment:
    """One utterance of audio between a detected onset and offset."""

    onset_time_ms: int
    audio_chunks: list[bytes] = field(default_factory=list)
    offset_time_ms: int | None = None
    sample_rate: int = DEFAULT_SAMPLE_RATE
    segment_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def audio_data(self) -> bytes:
        return b"".join(self.audio_chunks)

    @property
    def payload_size(self) -> int:
        return sum(len(chunk) for chunk in self.audio_chunks)

    @property
    def is_complete(self) -> bool:
        return self.offset_time_ms is not None

    @property
    def duration_ms(self) -> int:
        if self.offset_time_ms is None:
            return 0
        return self.offset_time_ms - self.onset_time_ms
