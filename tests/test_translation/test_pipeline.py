"""Tests for TranslationPipeline orchestration."""

from unittest.mock import AsyncMock

import pytest

from live_interpreter.translation.exceptions import ProviderError
from live_interpreter.translation.interfaces import (
    PipelineStage,
    SpeechSynthesisService,
    SynthesisResponse,
    TranscriptionResponse,
    TranscriptionService,
    TranslationResponse,
    TranslationService,
)
from live_interpreter.translation.models import ErrorReason
from live_interpreter.translation.pipeline import TranslationPipeline, normalize_text
from live_interpreter.voice.models import SpeechSegment


def segment_of(size: int) -> SpeechSegment:
    return SpeechSegment(onset_time_ms=0, audio_chunks=[b"\x00" * size], offset_time_ms=500)


def make_transcriber(text: str = "你好嗎") -> AsyncMock:
    transcriber = AsyncMock(spec=TranscriptionService)
    transcriber.transcribe.return_value = TranscriptionResponse(text=text, elapsed_ms=120)
    return transcriber


def make_translator(text: str = "Bạn khỏe không") -> AsyncMock:
    translator = AsyncMock(spec=TranslationService)
    translator.translate.return_value = TranslationResponse(text=text, elapsed_ms=200)
    return translator


def make_synthesizer() -> AsyncMock:
    synthesizer = AsyncMock(spec=SpeechSynthesisService)
    synthesizer.synthesize.return_value = SynthesisResponse(
        audio=b"mp3-bytes", first_chunk_latency_ms=80, elapsed_ms=300
    )
    return synthesizer


@pytest.mark.unit
class TestNoiseFilter:
    """Test cases for denylist matching."""

    def test_normalize_text_ignores_case_punctuation_and_spaces(self) -> None:
        """Test normalization strips everything but letters and digits."""
        assert normalize_text("  Thank you, for WATCHING! ") == "thankyouforwatching"
        assert normalize_text("字幕由 Amara.org 社区提供。") == "字幕由amaraorg社区提供"

    def test_denylisted_phrase_detected_as_substring(self) -> None:
        """Test a known hallucination embedded in text is noise."""
        pipeline = TranslationPipeline(make_transcriber(), make_translator())

        assert pipeline.is_noise("thanks for watching!!")
        assert pipeline.is_noise("字幕由Amara.org社区提供")
        assert not pipeline.is_noise("我們明天見")

    def test_custom_denylist(self) -> None:
        """Test the denylist is configurable."""
        pipeline = TranslationPipeline(
            make_transcriber(), make_translator(), noise_denylist=["um"]
        )

        assert pipeline.is_noise("Um.")
        assert not pipeline.is_noise("Thanks for watching")


@pytest.mark.unit
class TestTranslationPipeline:
    """Test cases for TranslationPipeline.process_segment."""

    @pytest.mark.asyncio
    async def test_short_segment_never_reaches_providers(self) -> None:
        """Test an 800-byte segment is rejected with zero provider calls."""
        transcriber = make_transcriber()
        translator = make_translator()
        synthesizer = make_synthesizer()
        pipeline = TranslationPipeline(transcriber, translator, synthesizer, min_payload_bytes=1000)

        result = await pipeline.process_segment(segment_of(800), "zh", "vi", synthesize=True)

        assert result.success is False
        assert result.error_reason is ErrorReason.TOO_SHORT
        assert result.error_stage is PipelineStage.PRE_FILTER
        assert transcriber.transcribe.await_count == 0
        assert translator.translate.await_count == 0
        assert synthesizer.synthesize.await_count == 0

    @pytest.mark.asyncio
    async def test_segment_above_floor_is_transcribed(self) -> None:
        """Test a 1200-byte segment proceeds to transcription with the language hint."""
        transcriber = make_transcriber()
        pipeline = TranslationPipeline(transcriber, make_translator(), min_payload_bytes=1000)
        segment = segment_of(1200)

        result = await pipeline.process_segment(segment, "zh", "vi")

        transcriber.transcribe.assert_awaited_once_with(segment.audio_data, "zh", 16000)
        assert result.success is True
        assert result.segment_id == segment.segment_id

    @pytest.mark.asyncio
    async def test_successful_translation(self) -> None:
        """Test the happy path fills text, direction and timings."""
        translator = make_translator()
        pipeline = TranslationPipeline(make_transcriber(), translator)

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        translator.translate.assert_awaited_once_with("你好嗎", "zh-to-vi")
        assert result.success is True
        assert result.original_text == "你好嗎"
        assert result.translated_text == "Bạn khỏe không"
        assert result.source_lang == "zh"
        assert result.target_lang == "vi"
        assert result.audio is None
        assert result.timings.tts_ms is None
        assert result.timings.total_ms == result.timings.stt_ms + result.timings.translate_ms
        assert result.within_budget is True
        assert result.error_reason is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "a"])
    async def test_empty_transcript_rejected(self, text: str) -> None:
        """Test blank or one-character transcripts stop before translation."""
        translator = make_translator()
        pipeline = TranslationPipeline(make_transcriber(text), translator)

        result = await pipeline.process_segment(segment_of(4000), "vi", "zh")

        assert result.success is False
        assert result.error_reason is ErrorReason.EMPTY_TRANSCRIPT
        assert translator.translate.await_count == 0

    @pytest.mark.asyncio
    async def test_noise_transcript_rejected(self) -> None:
        """Test a denylisted hallucination is never translated."""
        translator = make_translator()
        pipeline = TranslationPipeline(
            make_transcriber("字幕由Amara.org社区提供"), translator
        )

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert result.success is False
        assert result.error_reason is ErrorReason.NOISE_TEXT
        assert result.error_stage is PipelineStage.NOISE_FILTER
        assert result.original_text == "字幕由Amara.org社区提供"
        assert translator.translate.await_count == 0

    @pytest.mark.asyncio
    async def test_transcription_failure_is_reported(self) -> None:
        """Test an STT provider error becomes a failed result."""
        transcriber = make_transcriber()
        transcriber.transcribe.side_effect = ProviderError("transcription", "quota exceeded")
        pipeline = TranslationPipeline(transcriber, make_translator())

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert result.success is False
        assert result.error_reason is ErrorReason.PROVIDER_ERROR
        assert result.error_stage is PipelineStage.TRANSCRIPTION
        assert result.error_message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_is_reported(self) -> None:
        """Test any exception from a provider becomes a failed result, not a raise."""
        transcriber = make_transcriber()
        transcriber.transcribe.side_effect = RuntimeError("connection reset")
        translator = make_translator()
        pipeline = TranslationPipeline(transcriber, translator)

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert result.success is False
        assert result.error_reason is ErrorReason.PROVIDER_ERROR
        assert result.error_stage is PipelineStage.TRANSCRIPTION
        assert "connection reset" in result.error_message
        translator.translate.assert_not_awaited()
        assert pipeline.get_pipeline_stats()["failed_processed"] == 1

    @pytest.mark.asyncio
    async def test_translation_failure_preserves_transcript(self) -> None:
        """Test the transcript survives a failed translation."""
        translator = make_translator()
        translator.translate.side_effect = ProviderError("translation", "connection refused")
        pipeline = TranslationPipeline(make_transcriber(), translator)

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert result.success is False
        assert result.error_reason is ErrorReason.PROVIDER_ERROR
        assert result.error_stage is PipelineStage.TRANSLATION
        assert result.error_message == "connection refused"
        assert result.original_text == "你好嗎"
        assert result.translated_text == ""

    @pytest.mark.asyncio
    async def test_synthesis_records_first_chunk_latency(self) -> None:
        """Test TTS output and first-chunk latency are carried into the result."""
        synthesizer = make_synthesizer()
        pipeline = TranslationPipeline(make_transcriber(), make_translator(), synthesizer)

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi", synthesize=True)

        synthesizer.synthesize.assert_awaited_once_with("Bạn khỏe không", "vi")
        assert result.success is True
        assert result.audio == b"mp3-bytes"
        assert result.timings.tts_first_chunk_ms == 80
        assert result.timings.tts_ms is not None

    @pytest.mark.asyncio
    async def test_synthesis_skipped_unless_requested(self) -> None:
        """Test the synthesizer is idle when synthesize=False."""
        synthesizer = make_synthesizer()
        pipeline = TranslationPipeline(make_transcriber(), make_translator(), synthesizer)

        await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert synthesizer.synthesize.await_count == 0

    @pytest.mark.asyncio
    async def test_synthesis_failure_keeps_text(self) -> None:
        """Test a TTS failure keeps both transcript and translation."""
        synthesizer = make_synthesizer()
        synthesizer.synthesize.side_effect = ProviderError("synthesis", "voice unavailable")
        pipeline = TranslationPipeline(make_transcriber(), make_translator(), synthesizer)

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi", synthesize=True)

        assert result.success is False
        assert result.error_stage is PipelineStage.SYNTHESIS
        assert result.original_text == "你好嗎"
        assert result.translated_text == "Bạn khỏe không"
        assert result.audio is None

    @pytest.mark.asyncio
    async def test_latency_budget_is_reported_not_enforced(self) -> None:
        """Test an over-budget result is still delivered, flagged."""
        pipeline = TranslationPipeline(
            make_transcriber(), make_translator(), latency_budget_ms=-1
        )

        result = await pipeline.process_segment(segment_of(4000), "zh", "vi")

        assert result.success is True
        assert result.within_budget is False
        assert pipeline.get_pipeline_stats()["over_budget"] == 1

    @pytest.mark.asyncio
    async def test_stats_track_outcomes(self) -> None:
        """Test successes, rejections and failures are counted separately."""
        translator = make_translator()
        pipeline = TranslationPipeline(make_transcriber(), translator)

        await pipeline.process_segment(segment_of(4000), "zh", "vi")
        await pipeline.process_segment(segment_of(10), "zh", "vi")
        translator.translate.side_effect = ProviderError("translation", "boom")
        await pipeline.process_segment(segment_of(4000), "zh", "vi")

        stats = pipeline.get_pipeline_stats()
        assert stats["total_processed"] == 3
        assert stats["successful_processed"] == 1
        assert stats["rejected_processed"] == 1
        assert stats["failed_processed"] == 1
        assert stats["last_processed"] is not None

        pipeline.reset_stats()
        assert pipeline.get_pipeline_stats()["total_processed"] == 0
