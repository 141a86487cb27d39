"""Microphone capture feeding the volume analyzer and segment recorder."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pyaudio

from .config import DEFAULT_CHUNK_SIZE, DEFAULT_SAMPLE_RATE
from .exceptions import AudioCaptureError, MicrophoneNotFoundError
from .logging_utils import get_logger
from .models import AudioChunk, monotonic_ms

logger = get_logger(__name__)


class AudioCapture:
    """Manages microphone input as mono 16-bit PCM chunks."""

    def __init__(
        self,
        sample_rate: int = None,
        chunk_size: int = None,
        device_index: int | None = None,
    ) -> None:
        """
        Initialize audio capture with specified parameters.

        Args:
            sample_rate: Audio sample rate in Hz
            chunk_size: Number of samples per chunk
            device_index: PyAudio input device, None for the system default
        """
        self.sample_rate = sample_rate if sample_rate is not None else DEFAULT_SAMPLE_RATE
        self.chunk_size = chunk_size if chunk_size is not None else DEFAULT_CHUNK_SIZE
        self.device_index = device_index

        if self.sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")

        self._capturing = False
        self._pyaudio = None
        self._stream = None
        self._reader: ThreadPoolExecutor | None = None
        self._chunks_received = 0

    def start_capture(self) -> None:
        """
        Open the input stream.

        Raises:
            AudioCaptureError: If already capturing or the stream cannot be opened
            MicrophoneNotFoundError: If there is no input device
        """
        if self._capturing:
            raise AudioCaptureError("Already capturing")

        try:
            self._pyaudio = pyaudio.PyAudio()

            try:
                if self.device_index is None:
                    device_info = self._pyaudio.get_default_input_device_info()
                else:
                    device_info = self._pyaudio.get_device_info_by_index(self.device_index)
                logger.debug(f"🎤 Using input device: {device_info}")
            except OSError as e:
                logger.error("❌ No input device found")
                raise MicrophoneNotFoundError("No microphone found") from e

            try:
                self._stream = self._pyaudio.open(
                    format=pyaudio.paInt16,
                    channels=1,
                    rate=self.sample_rate,
                    input=True,
                    input_device_index=self.device_index,
                    frames_per_buffer=self.chunk_size,
                )
                self._stream.start_stream()
            except OSError as e:
                if "Permission denied" in str(e):
                    logger.error("❌ Microphone permission denied")
                    raise AudioCaptureError("Permission denied") from e
                logger.error(f"❌ Failed to open audio stream: {e}")
                raise AudioCaptureError(f"Failed to open audio stream: {e}") from e

            self._reader = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audio-read")
            self._capturing = True
            self._chunks_received = 0
            logger.debug(
                f"✅ Audio stream started (sample_rate: {self.sample_rate}, "
                f"chunk_size: {self.chunk_size})"
            )

        except Exception:
            self._release_stream()
            raise

    def stop_capture(self) -> None:
        """Stop capturing audio and release the device."""
        if not self._capturing:
            return

        self._capturing = False
        self._release_stream()
        logger.debug(f"🛑 Audio capture stopped after {self._chunks_received} chunks")

    def _release_stream(self) -> None:
        if self._reader:
            # A cancelled get_audio_chunk leaves its read running; the stream
            # must not be closed underneath it.
            self._reader.shutdown(wait=True)
            self._reader = None
        if self._stream:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pyaudio:
            self._pyaudio.terminate()
            self._pyaudio = None

    async def get_audio_chunk(self) -> AudioChunk | None:
        """
        Read the next chunk without blocking the event loop.

        Returns:
            The chunk, or None when not capturing or the stream is inactive

        Raises:
            AudioCaptureError: If the device disappears mid-stream
        """
        stream = self._stream
        reader = self._reader
        if not self._capturing or not stream or not reader or not stream.is_active():
            return None

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(
                reader,
                lambda: stream.read(self.chunk_size, exception_on_overflow=False),
            )
        except OSError as e:
            logger.error(f"❌ Failed to read audio from stream: {e}")
            raise AudioCaptureError("Failed to read audio") from e

        if not data:
            return None

        self._chunks_received += 1
        return AudioChunk(
            data=data,
            timestamp_ms=monotonic_ms(),
            sample_rate=self.sample_rate,
        )

    def is_capturing(self) -> bool:
        return self._capturing

    def get_debug_stats(self) -> dict[str, Any]:
        return {
            "capturing": self._capturing,
            "sample_rate": self.sample_rate,
            "chunk_size": self.chunk_size,
            "chunks_received": self._chunks_received,
            "stream_active": self._stream.is_active() if self._stream else False,
        }
