"""Streaming text-to-speech with Microsoft Edge neural voices."""

import asyncio
import logging
import time

import edge_tts

from .config import DEFAULT_TTS_TIMEOUT, DEFAULT_TTS_VOICES
from .exceptions import ProviderError
from .interfaces import PipelineStage, SpeechSynthesisService, SynthesisResponse

logger = logging.getLogger(__name__)

_STAGE = PipelineStage.SYNTHESIS.value


class EdgeSpeechSynthesizer(SpeechSynthesisService):
    """Synthesizes speech with edge-tts, tracking time to the first audio chunk."""

    def __init__(
        self,
        voices: dict[str, str] | None = None,
        timeout: float = DEFAULT_TTS_TIMEOUT,
    ) -> None:
        self.voices = dict(DEFAULT_TTS_VOICES if voices is None else voices)
        self.timeout = timeout

    def voice_for(self, language_tag: str) -> str:
        """
        Resolve the voice for a language tag such as ``zh`` or ``vi-VN``.

        Raises:
            ProviderError: If no voice is configured for the language
        """
        if language_tag in self.voices:
            return self.voices[language_tag]
        base = language_tag.split("-")[0].lower()
        if base in self.voices:
            return self.voices[base]
        raise ProviderError(_STAGE, f"No voice configured for language '{language_tag}'")

    async def _collect(self, text: str, voice: str, start: float) -> tuple[bytes, int | None]:
        first_chunk_ms: int | None = None
        chunks: list[bytes] = []
        communicate = edge_tts.Communicate(text, voice)
        async for message in communicate.stream():
            if message.get("type") != "audio":
                continue
            if first_chunk_ms is None:
                first_chunk_ms = int((time.perf_counter() - start) * 1000)
                logger.debug(f"🔊 [TTS] first chunk after {first_chunk_ms}ms")
            chunks.append(message["data"])
        return b"".join(chunks), first_chunk_ms

    async def synthesize(self, text: str, language_tag: str) -> SynthesisResponse:
        voice = self.voice_for(language_tag)
        start = time.perf_counter()
        try:
            audio, first_chunk_ms = await asyncio.wait_for(
                self._collect(text, voice, start), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"❌ Speech synthesis timed out after {self.timeout}s")
            raise ProviderError(_STAGE, f"Speech synthesis timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"❌ Speech synthesis failed: {e}")
            raise ProviderError(_STAGE, f"Speech synthesis failed: {e}") from e

        if not audio:
            raise ProviderError(_STAGE, "Speech synthesis produced no audio")

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"🔊 [TTS-{voice}] {elapsed_ms}ms | {len(audio)} bytes")
        return SynthesisResponse(
            audio=audio, first_chunk_latency_ms=first_chunk_ms, elapsed_ms=elapsed_ms
        )
