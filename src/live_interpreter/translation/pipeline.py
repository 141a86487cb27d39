"""Per-segment orchestration of transcription, translation and synthesis."""

import dataclasses
import logging
import time
import unicodedata
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..voice.models import SpeechSegment
from .config import (
    DEFAULT_NOISE_DENYLIST,
    LATENCY_BUDGET_MS,
    MIN_SEGMENT_PAYLOAD_BYTES,
    MIN_TRANSCRIPT_CHARS,
)
from .exceptions import ProviderError
from .interfaces import (
    PipelineStage,
    SpeechSynthesisService,
    TranscriptionService,
    TranslationService,
    direction_tag,
)
from .models import ErrorReason, StageTimings, TranslationResult

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """Casefold and drop punctuation, symbols and whitespace for phrase matching."""
    return "".join(
        ch
        for ch in unicodedata.normalize("NFKC", text).casefold()
        if unicodedata.category(ch)[0] not in ("P", "Z", "S", "C")
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class TranslationPipeline:
    """
    Runs one speech segment through STT, translation and optional TTS.

    Every outcome is returned as a TranslationResult; rejected input and
    provider failures are reported in the result and never raised.
    """

    def __init__(
        self,
        transcriber: TranscriptionService,
        translator: TranslationService,
        synthesizer: SpeechSynthesisService | None = None,
        min_payload_bytes: int = MIN_SEGMENT_PAYLOAD_BYTES,
        min_transcript_chars: int = MIN_TRANSCRIPT_CHARS,
        noise_denylist: Iterable[str] = DEFAULT_NOISE_DENYLIST,
        latency_budget_ms: int = LATENCY_BUDGET_MS,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            transcriber: Speech-to-text provider
            translator: Translation provider
            synthesizer: Optional text-to-speech provider
            min_payload_bytes: Segments smaller than this are rejected before STT
            min_transcript_chars: Shorter transcripts count as empty
            noise_denylist: Phrases that mark a transcript as STT noise
            latency_budget_ms: Latency target used for reporting only
        """
        self.transcriber = transcriber
        self.translator = translator
        self.synthesizer = synthesizer
        self.min_payload_bytes = min_payload_bytes
        self.min_transcript_chars = min_transcript_chars
        self.latency_budget_ms = latency_budget_ms
        self._noise_phrases = [
            phrase for phrase in (normalize_text(p) for p in noise_denylist) if phrase
        ]
        self.reset_stats()

    def is_noise(self, text: str) -> bool:
        """True if the transcript contains a known STT hallucination phrase."""
        normalized = normalize_text(text)
        if not normalized:
            return False
        return any(phrase in normalized for phrase in self._noise_phrases)

    async def process_segment(
        self,
        segment: SpeechSegment,
        source_lang: str,
        target_lang: str,
        synthesize: bool = False,
    ) -> TranslationResult:
        """
        Transcribe, translate and optionally synthesize one segment.

        Args:
            segment: Completed speech segment
            source_lang: Language spoken in the segment
            target_lang: Language to translate into
            synthesize: Whether to produce speech for the translation

        Returns:
            TranslationResult describing success or the rejection/failure reason
        """
        base = {
            "segment_id": segment.segment_id,
            "source_lang": source_lang,
            "target_lang": target_lang,
        }

        # Pre-filter
        payload_size = segment.payload_size
        if payload_size < self.min_payload_bytes:
            logger.warning(
                f"⚠️ Segment {segment.segment_id} too short ({payload_size} bytes), skipping"
            )
            return self._finish(
                TranslationResult(
                    **base,
                    success=False,
                    timings=StageTimings(),
                    error_reason=ErrorReason.TOO_SHORT,
                    error_stage=PipelineStage.PRE_FILTER,
                    error_message=f"Segment payload {payload_size} bytes below {self.min_payload_bytes}",
                )
            )

        # Transcription
        start = time.perf_counter()
        try:
            transcription = await self.transcriber.transcribe(
                segment.audio_data, source_lang, segment.sample_rate
            )
        except Exception as e:
            return self._provider_failure(
                base, PipelineStage.TRANSCRIPTION, e, StageTimings(stt_ms=_elapsed_ms(start))
            )
        stt_ms = _elapsed_ms(start)
        original_text = transcription.text.strip()

        if len(original_text) < self.min_transcript_chars:
            logger.warning(f"⚠️ Empty transcript for segment {segment.segment_id}")
            return self._finish(
                TranslationResult(
                    **base,
                    success=False,
                    timings=StageTimings(stt_ms=stt_ms),
                    original_text=original_text,
                    error_reason=ErrorReason.EMPTY_TRANSCRIPT,
                    error_stage=PipelineStage.TRANSCRIPTION,
                    error_message="Transcript empty or too short",
                )
            )

        if self.is_noise(original_text):
            logger.warning(f"⚠️ Noise transcript discarded: {original_text!r}")
            return self._finish(
                TranslationResult(
                    **base,
                    success=False,
                    timings=StageTimings(stt_ms=stt_ms),
                    original_text=original_text,
                    error_reason=ErrorReason.NOISE_TEXT,
                    error_stage=PipelineStage.NOISE_FILTER,
                    error_message="Transcript matched noise denylist",
                )
            )

        # Translation
        direction = direction_tag(source_lang, target_lang)
        start = time.perf_counter()
        try:
            translation = await self.translator.translate(original_text, direction)
        except Exception as e:
            return self._provider_failure(
                base,
                PipelineStage.TRANSLATION,
                e,
                StageTimings(stt_ms=stt_ms, translate_ms=_elapsed_ms(start)),
                original_text=original_text,
            )
        translate_ms = _elapsed_ms(start)
        translated_text = translation.text

        if not synthesize or self.synthesizer is None:
            return self._finish(
                TranslationResult(
                    **base,
                    success=True,
                    timings=StageTimings(stt_ms=stt_ms, translate_ms=translate_ms),
                    original_text=original_text,
                    translated_text=translated_text,
                )
            )

        # Synthesis
        start = time.perf_counter()
        try:
            synthesis = await self.synthesizer.synthesize(translated_text, target_lang)
        except Exception as e:
            return self._provider_failure(
                base,
                PipelineStage.SYNTHESIS,
                e,
                StageTimings(
                    stt_ms=stt_ms, translate_ms=translate_ms, tts_ms=_elapsed_ms(start)
                ),
                original_text=original_text,
                translated_text=translated_text,
            )

        return self._finish(
            TranslationResult(
                **base,
                success=True,
                timings=StageTimings(
                    stt_ms=stt_ms,
                    translate_ms=translate_ms,
                    tts_ms=_elapsed_ms(start),
                    tts_first_chunk_ms=synthesis.first_chunk_latency_ms,
                ),
                original_text=original_text,
                translated_text=translated_text,
                audio=synthesis.audio,
            )
        )

    def _provider_failure(
        self,
        base: dict[str, Any],
        stage: PipelineStage,
        error: Exception,
        timings: StageTimings,
        original_text: str = "",
        translated_text: str = "",
    ) -> TranslationResult:
        if isinstance(error, ProviderError):
            message = error.message
        else:
            # Injected providers are not limited to ProviderError
            message = f"Unexpected {type(error).__name__}: {error}"
        logger.error(f"❌ {stage.value} failed for segment {base['segment_id']}: {message}")
        return self._finish(
            TranslationResult(
                **base,
                success=False,
                timings=timings,
                original_text=original_text,
                translated_text=translated_text,
                error_reason=ErrorReason.PROVIDER_ERROR,
                error_stage=stage,
                error_message=message,
            )
        )

    def _finish(self, result: TranslationResult) -> TranslationResult:
        """Apply the latency budget check and record statistics."""
        total_ms = result.timings.total_ms
        within_budget = total_ms <= self.latency_budget_ms
        if result.within_budget != within_budget:
            result = dataclasses.replace(result, within_budget=within_budget)

        if result.success:
            timings = result.timings
            logger.debug(
                f"✅ [{result.source_lang}->{result.target_lang}] "
                f"STT {timings.stt_ms}ms | translate {timings.translate_ms}ms | "
                f"TTS {timings.tts_ms}ms | total {total_ms}ms"
            )
            if not within_budget:
                logger.warning(
                    f"⚠️ Latency {total_ms}ms over {self.latency_budget_ms}ms budget"
                )

        self._update_stats(result)
        return result

    def _update_stats(self, result: TranslationResult) -> None:
        self._pipeline_stats["total_processed"] += 1
        if result.success:
            self._pipeline_stats["successful_processed"] += 1
            count = self._pipeline_stats["successful_processed"]
            current_avg = self._pipeline_stats["average_total_ms"]
            self._pipeline_stats["average_total_ms"] = (
                current_avg * (count - 1) + result.timings.total_ms
            ) / count
            if not result.within_budget:
                self._pipeline_stats["over_budget"] += 1
        elif result.error_reason is ErrorReason.PROVIDER_ERROR:
            self._pipeline_stats["failed_processed"] += 1
        else:
            self._pipeline_stats["rejected_processed"] += 1
        self._pipeline_stats["last_processed"] = datetime.now()

    def get_pipeline_stats(self) -> dict[str, Any]:
        """
        Get pipeline processing statistics.

        Returns:
            Dictionary with pipeline statistics
        """
        return self._pipeline_stats.copy()

    def reset_stats(self) -> None:
        """Reset pipeline statistics."""
        self._pipeline_stats: dict[str, Any] = {
            "total_processed": 0,
            "successful_processed": 0,
            "rejected_processed": 0,
            "failed_processed": 0,
            "over_budget": 0,
            "average_total_ms": 0.0,
            "last_processed": None,
        }
        logger.debug("Pipeline statistics reset")
