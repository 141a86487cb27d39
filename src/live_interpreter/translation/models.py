"""Data models for translation pipeline results."""

from dataclasses import dataclass
from enum import Enum

from .interfaces import PipelineStage


class ErrorReason(Enum):
    """Why a segment produced no translation."""

    TOO_SHORT = "too-short"
    EMPTY_TRANSCRIPT = "empty-transcript"
    NOISE_TEXT = "noise-text"
    PROVIDER_ERROR = "provider-error"


@dataclass(frozen=True)
class StageTimings:
    """Elapsed milliseconds per stage; ``total_ms`` is their sum."""

    stt_ms: int = 0
    translate_ms: int = 0
    tts_ms: int | None = None
    tts_first_chunk_ms: int | None = None

    @property
    def total_ms(self) -> int:
        return self.stt_ms + self.translate_ms + (self.tts_ms or 0)

    @property
    def perceived_ms(self) -> int:
        """Latency until the listener hears the first synthesized audio."""
        first_audio = self.tts_first_chunk_ms if self.tts_first_chunk_ms is not None else 0
        return self.stt_ms + self.translate_ms + first_audio


@dataclass(frozen=True)
class TranslationResult:
    """Outcome of one speech segment through the pipeline."""

    segment_id: str
    source_lang: str
    target_lang: str
    success: bool
    timings: StageTimings
    original_text: str = ""
    translated_text: str = ""
    audio: bytes | None = None
    error_reason: ErrorReason | None = None
    error_stage: PipelineStage | None = None
    error_message: str | None = None
    within_budget: bool = True
