"""Loudness sampling from a live PCM stream."""

import asyncio
from collections.abc import Callable

import numpy as np

from .config import (
    ANALYZER_BYTE_MAX,
    ANALYZER_FFT_SIZE,
    ANALYZER_MAX_DECIBELS,
    ANALYZER_MIN_DECIBELS,
    ANALYZER_MIN_FFT_SIZE,
    ANALYZER_SAMPLE_INTERVAL_MS,
    ANALYZER_SMOOTHING_TIME_CONSTANT,
    ANALYZER_STALE_AFTER_MS,
    AUDIO_SAMPLE_NORMALIZATION,
    DEFAULT_SAMPLE_RATE,
)
from .logging_utils import get_logger
from .models import AudioChunk, LoudnessSample, monotonic_ms

logger = get_logger(__name__)


def blackman_window(size: int) -> np.ndarray:
    """Blackman window with the periodic (N, not N - 1) denominator."""
    n = np.arange(size)
    alpha = 0.16
    a0 = (1 - alpha) / 2
    a1 = 0.5
    a2 = alpha / 2
    return (
        a0
        - a1 * np.cos(2 * np.pi * n / size)
        + a2 * np.cos(4 * np.pi * n / size)
    )


class VolumeAnalyzer:
    """
    Turns PCM audio into a periodic stream of LoudnessSamples.

    Loudness is the mean of the byte-scaled frequency bins of the latest
    block: window, FFT, per-bin magnitude, temporal smoothing, decibels,
    then a linear map of ``[min_decibels, max_decibels]`` onto ``[0, 255]``.
    Calibrated thresholds are expressed on this scale, not on waveform RMS.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        fft_size: int = ANALYZER_FFT_SIZE,
        interval_ms: int = ANALYZER_SAMPLE_INTERVAL_MS,
        smoothing: float = ANALYZER_SMOOTHING_TIME_CONSTANT,
        min_decibels: float = ANALYZER_MIN_DECIBELS,
        max_decibels: float = ANALYZER_MAX_DECIBELS,
        stale_after_ms: int = ANALYZER_STALE_AFTER_MS,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            sample_rate: Sample rate of the fed audio in Hz
            fft_size: Samples per analysis block, a power of two >= 128
            interval_ms: Cadence of emitted samples
            smoothing: Weight of the previous spectrum (0 disables smoothing)
            min_decibels: Level mapped to 0
            max_decibels: Level mapped to 255
            stale_after_ms: Age of the last chunk after which input is stale

        Raises:
            ValueError: If the FFT size or interval is invalid
        """
        if fft_size < ANALYZER_MIN_FFT_SIZE or fft_size & (fft_size - 1):
            raise ValueError(
                f"FFT size must be a power of two >= {ANALYZER_MIN_FFT_SIZE}, got {fft_size}"
            )
        if interval_ms <= 0:
            raise ValueError("Sample interval must be positive")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("Smoothing must be in [0, 1)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.interval_ms = interval_ms
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self.stale_after_ms = stale_after_ms

        self._window = blackman_window(fft_size)
        self._block = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._last_chunk_ms: int | None = None
        self._running = False

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def feed(self, chunk: AudioChunk | bytes, timestamp_ms: int | None = None) -> None:
        """Append 16-bit PCM audio to the analysis block."""
        if isinstance(chunk, AudioChunk):
            data = chunk.data
            timestamp_ms = chunk.timestamp_ms
        else:
            data = chunk

        samples = np.frombuffer(data[: len(data) - len(data) % 2], dtype=np.int16)
        if samples.size == 0:
            return

        samples = samples.astype(np.float64) / AUDIO_SAMPLE_NORMALIZATION
        if samples.size >= self.fft_size:
            self._block = samples[-self.fft_size :].copy()
        else:
            self._block = np.concatenate((self._block[samples.size :], samples))

        self._last_chunk_ms = timestamp_ms if timestamp_ms is not None else monotonic_ms()

    def byte_frequency_data(self) -> np.ndarray:
        """Byte-scaled spectrum of the current block; advances the smoothing state."""
        spectrum = np.fft.rfft(self._block * self._window)[: self.bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)

        scale = ANALYZER_BYTE_MAX / (self.max_decibels - self.min_decibels)
        scaled = np.floor((decibels - self.min_decibels) * scale)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0.0, ANALYZER_BYTE_MAX)

    def compute_loudness(self) -> float:
        """Mean magnitude across frequency bins of the latest block."""
        return float(np.mean(self.byte_frequency_data()))

    def sample(self, now_ms: int | None = None) -> LoudnessSample:
        if now_ms is None:
            now_ms = monotonic_ms()
        return LoudnessSample(timestamp_ms=now_ms, value=self.compute_loudness())

    def is_stale(self, now_ms: int | None = None) -> bool:
        """True when no audio has been fed recently (device gone or paused)."""
        if self._last_chunk_ms is None:
            return True
        if now_ms is None:
            now_ms = monotonic_ms()
        return now_ms - self._last_chunk_ms > self.stale_after_ms

    def reset(self) -> None:
        self._block = np.zeros(self.fft_size, dtype=np.float64)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
        self._last_chunk_ms = None

    async def run(
        self,
        on_sample: Callable[[LoudnessSample], None],
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """Emit one sample every ``interval_ms`` until ``stop()`` is called."""
        self._running = True
        logger.debug(
            f"🔊 Volume analyzer started: fft_size={self.fft_size}, "
            f"interval={self.interval_ms}ms"
        )
        try:
            while self._running:
                sample = self.sample(clock())
                logger.trace(f"🔊 loudness={sample.value:.1f} @ {sample.timestamp_ms}ms")
                on_sample(sample)
                await asyncio.sleep(self.interval_ms / 1000.0)
        finally:
            self._running = False
            logger.debug("🔊 Volume analyzer stopped")

    def stop(self) -> None:
        self._running = False

    def is_running(self) -> bool:
        return self._running
