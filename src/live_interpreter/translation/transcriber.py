"""Local Whisper speech-to-text."""

import asyncio
import logging
import re
import time
from typing import Any

import faster_whisper
import numpy as np

from .config import (
    MAX_AUDIO_PAYLOAD_BYTES,
    TRANSCRIBER_SAMPLE_RATE,
    WHISPER_BEAM_SIZE,
    WHISPER_COMPUTE_TYPE,
    WHISPER_DEVICE,
    WHISPER_MODEL_SIZE,
)
from .exceptions import ProviderError
from .interfaces import PipelineStage, TranscriptionResponse, TranscriptionService

logger = logging.getLogger(__name__)

_STAGE = PipelineStage.TRANSCRIPTION.value


def pcm16_to_float32(audio: bytes) -> np.ndarray:
    """Convert little-endian 16-bit PCM to float32 in [-1, 1]."""
    usable = len(audio) - len(audio) % 2
    return np.frombuffer(audio[:usable], dtype=np.int16).astype(np.float32) / 32768.0


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling, adequate for speech recognition input."""
    if source_rate == target_rate or samples.size == 0:
        return samples
    duration = samples.size / source_rate
    target_size = int(round(duration * target_rate))
    source_positions = np.linspace(0.0, duration, num=samples.size, endpoint=False)
    target_positions = np.linspace(0.0, duration, num=target_size, endpoint=False)
    return np.interp(target_positions, source_positions, samples).astype(np.float32)


class WhisperTranscriber(TranscriptionService):
    """Uses the faster-whisper library for local speech-to-text conversion."""

    def __init__(
        self,
        model_size: str = WHISPER_MODEL_SIZE,
        device: str = WHISPER_DEVICE,
        compute_type: str = WHISPER_COMPUTE_TYPE,
        beam_size: int = WHISPER_BEAM_SIZE,
    ) -> None:
        """
        Initialize Whisper transcriber.

        Args:
            model_size: Size of Whisper model to use
            device: Device to use for inference ("cpu" or "cuda")
            compute_type: Compute type for inference ("int8", "float16", etc.)
            beam_size: Beam width, 1 for greedy decoding
        """
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.beam_size = beam_size
        self._model: Any | None = None

    def _load_model(self) -> Any:
        if self._model is not None:
            return self._model

        logger.debug(f"Loading Whisper '{self.model_size}' on {self.device} ({self.compute_type})")
        try:
            self._model = faster_whisper.WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type,
            )
        except Exception as e:
            logger.error(f"❌ Failed to load Whisper model: {e}")
            raise ProviderError(_STAGE, f"Failed to load Whisper model: {e}") from e

        logger.debug(f"Successfully loaded Whisper model '{self.model_size}'")
        return self._model

    def _run(self, samples: np.ndarray, language_hint: str) -> str:
        model = self._load_model()
        segments, _info = model.transcribe(
            samples,
            language=language_hint or None,
            beam_size=self.beam_size,
            condition_on_previous_text=False,
        )
        # segments is lazy; decoding happens while iterating
        return "".join(segment.text for segment in segments)

    @staticmethod
    def _post_process_text(text: str) -> str:
        if not text:
            return ""
        return re.sub(r"\s+", " ", text).strip()

    async def transcribe(
        self, audio: bytes, language_hint: str, sample_rate: int = TRANSCRIBER_SAMPLE_RATE
    ) -> TranscriptionResponse:
        if len(audio) > MAX_AUDIO_PAYLOAD_BYTES:
            raise ProviderError(_STAGE, f"Audio payload too large ({len(audio)} bytes)")

        start = time.perf_counter()
        samples = resample(pcm16_to_float32(audio), sample_rate, TRANSCRIBER_SAMPLE_RATE)

        loop = asyncio.get_running_loop()
        try:
            raw_text = await loop.run_in_executor(None, self._run, samples, language_hint)
        except ProviderError:
            raise
        except Exception as e:
            logger.error(f"❌ Whisper transcription failed: {e}")
            raise ProviderError(_STAGE, f"Whisper transcription failed: {e}") from e

        text = self._post_process_text(raw_text)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"📝 [STT-Whisper] {elapsed_ms}ms | {text!r}")
        return TranscriptionResponse(text=text, elapsed_ms=elapsed_ms, engine="whisper")

    def is_model_loaded(self) -> bool:
        return self._model is not None
