"""Live interpreter orchestrator: microphone to translated utterances."""

import asyncio
from collections.abc import Callable
from typing import Any

from .signaling import CallSession, CallState, CallStateMachine
from .translation import TranslationPipeline, TranslationResult
from .voice import (
    CalibrationEngine,
    CalibrationProfile,
    CalibrationStore,
    InMemoryCalibrationStore,
    LoudnessSample,
    ProfileHandle,
    SpeechSegment,
    VadSegmenter,
    VolumeAnalyzer,
)
from .voice.config import (
    CAPTURE_IDLE_SLEEP,
    DEFAULT_CALIBRATION_KEY,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SAMPLE_RATE,
)
from .voice.exceptions import AudioCaptureError
from .voice.logging_utils import get_logger

logger = get_logger(__name__)

ResultCallback = Callable[[TranslationResult], None]
ErrorCallback = Callable[[Exception], None]


class InterpreterService:
    """
    Main orchestrator that coordinates capture, segmentation and translation.

    Audio flows ``capture -> analyzer/VAD -> queue -> pipeline``. Segments are
    only accepted while the call is connected, are translated one at a time
    in offset order, and results belonging to a call that has since ended
    are dropped.
    """

    def __init__(
        self,
        pipeline: TranslationPipeline,
        source_lang: str,
        target_lang: str,
        call: CallStateMachine | None = None,
        calibration_store: CalibrationStore | None = None,
        calibration_key: str = DEFAULT_CALIBRATION_KEY,
        synthesize: bool = False,
        audio_capture: Any | None = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Initialize the interpreter service.

        Args:
            pipeline: Orchestrator for STT, translation and TTS
            source_lang: Language the local speaker talks in
            target_lang: Language the peer listens in
            call: Call whose CONNECTED state gates translation; None translates always
            calibration_store: Persistent calibration profiles (in-memory if None)
            calibration_key: Key of this speaker/microphone's profile
            synthesize: Whether to synthesize speech for each translation
            audio_capture: Capture source; a PyAudio capture is created if None
            sample_rate: Capture sample rate in Hz
            chunk_size: Samples per captured chunk
        """
        self.pipeline = pipeline
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.synthesize = synthesize
        self.calibration_key = calibration_key
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size

        self._call = call
        self._audio_capture = audio_capture
        self._profile_handle = ProfileHandle()
        self._calibration = CalibrationEngine(
            calibration_store or InMemoryCalibrationStore(), self._profile_handle
        )
        self._analyzer = VolumeAnalyzer(sample_rate=sample_rate)
        self._vad = VadSegmenter(
            self._profile_handle, on_segment=self.submit_segment, sample_rate=sample_rate
        )

        self._segment_queue: asyncio.Queue[tuple[SpeechSegment, str | None]] = asyncio.Queue()
        self._result_callback: ResultCallback | None = None
        self._error_callback: ErrorCallback | None = None
        self._latest_result: TranslationResult | None = None
        self._discarded_results = 0

        self._listening = False
        self._capture_task: asyncio.Task | None = None
        self._analyzer_task: asyncio.Task | None = None
        self._consumer_task: asyncio.Task | None = None

        if self._call is not None:
            self._call.add_listener(self._on_call_changed)

    @property
    def calibration(self) -> CalibrationEngine:
        return self._calibration

    @property
    def vad(self) -> VadSegmenter:
        return self._vad

    @property
    def analyzer(self) -> VolumeAnalyzer:
        return self._analyzer

    @property
    def profile(self) -> CalibrationProfile:
        return self._profile_handle.current

    def is_listening(self) -> bool:
        return self._listening

    def set_result_callback(self, callback: ResultCallback) -> None:
        """
        Set callback for translation results.

        Args:
            callback: Function called with each TranslationResult, successful or not
        """
        self._result_callback = callback

    def set_error_callback(self, callback: ErrorCallback) -> None:
        """Set callback for capture device failures."""
        self._error_callback = callback

    def get_latest_result(self) -> TranslationResult | None:
        return self._latest_result

    def _current_session_id(self) -> str | None:
        return self._call.session.session_id if self._call is not None else None

    def _accepting_segments(self) -> bool:
        return self._call is None or self._call.state is CallState.CONNECTED

    def _create_audio_capture(self) -> Any:
        from .voice.audio_capture import AudioCapture

        return AudioCapture(sample_rate=self.sample_rate, chunk_size=self.chunk_size)

    async def start(self) -> None:
        """
        Load the stored calibration and start capturing and translating.

        Raises:
            AudioCaptureError: If the microphone cannot be opened
        """
        if self._listening:
            logger.warning("Service is already listening")
            return

        await self._calibration.load(self.calibration_key)

        if self._audio_capture is None:
            self._audio_capture = self._create_audio_capture()

        try:
            logger.debug("🎤 Starting audio capture...")
            self._audio_capture.start_capture()
        except AudioCaptureError as e:
            logger.error(f"Audio capture error: {e}")
            raise

        self._listening = True
        self._consumer_task = asyncio.create_task(self._consume_segments())
        self._analyzer_task = asyncio.create_task(self._analyzer.run(self._on_loudness_sample))
        self._capture_task = asyncio.create_task(self._capture_loop())
        logger.debug(
            f"Interpreter started ({self.source_lang} -> {self.target_lang}, "
            f"threshold {self.profile.threshold})"
        )

    async def stop(self) -> None:
        """Stop capture and translation, discarding any unfinished segment."""
        if not self._listening and self._consumer_task is None:
            return

        self._listening = False
        self._analyzer.stop()
        self._vad.stop()
        self._calibration.cancel()

        for task in (self._capture_task, self._analyzer_task, self._consumer_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._capture_task = self._analyzer_task = self._consumer_task = None

        try:
            if self._audio_capture and self._audio_capture.is_capturing():
                self._audio_capture.stop_capture()
        except AudioCaptureError as e:
            logger.error(f"Error stopping audio capture: {e}")

        self._analyzer.reset()
        while not self._segment_queue.empty():
            self._segment_queue.get_nowait()

        logger.debug("Interpreter stopped")

    async def release(self) -> None:
        """Stop and detach from the call."""
        await self.stop()
        if self._call is not None:
            self._call.remove_listener(self._on_call_changed)

    async def calibrate(self) -> CalibrationProfile:
        """
        Recalibrate this speaker's thresholds from the live microphone.

        Segmentation pauses while calibration samples are collected.
        """
        if self._vad.is_speaking():
            self._vad.release()
        return await self._calibration.calibrate(self.calibration_key)

    def submit_segment(self, segment: SpeechSegment) -> bool:
        """
        Queue a finished segment for translation.

        Returns:
            True if queued, False if dropped because no call is connected
        """
        if not self._accepting_segments():
            logger.debug(f"Dropping segment {segment.segment_id}: call not connected")
            return False
        self._segment_queue.put_nowait((segment, self._current_session_id()))
        return True

    def _on_loudness_sample(self, sample: LoudnessSample) -> None:
        if self._calibration.is_running():
            self._calibration.on_sample(sample)
            return
        self._vad.process_sample(sample)

    def _on_call_changed(self, before: CallSession, after: CallSession) -> None:
        if before.state is CallState.CONNECTED and after.state is not CallState.CONNECTED:
            # Speech in progress when the call ends belongs to no one
            self._vad.release()

    async def _capture_loop(self) -> None:
        while self._listening:
            try:
                chunk = await self._audio_capture.get_audio_chunk()
            except AudioCaptureError as e:
                logger.error(f"❌ Audio capture failed: {e}")
                self._listening = False
                self._analyzer.stop()
                if self._error_callback:
                    self._error_callback(e)
                return

            if chunk is None:
                await asyncio.sleep(CAPTURE_IDLE_SLEEP)
                continue

            self._analyzer.feed(chunk)
            self._vad.push_audio(chunk)

    async def _consume_segments(self) -> None:
        while True:
            segment, session_id = await self._segment_queue.get()
            try:
                await self.process_segment(segment, session_id)
            except Exception as e:
                logger.error(f"❌ Error processing segment {segment.segment_id}: {e}")
            finally:
                self._segment_queue.task_done()

    async def process_segment(
        self, segment: SpeechSegment, session_id: str | None = None
    ) -> TranslationResult | None:
        """
        Translate one segment and deliver the result.

        Args:
            segment: Finished speech segment
            session_id: Call session the segment was spoken in

        Returns:
            The result, or None if the call ended while it was being produced
        """
        result = await self.pipeline.process_segment(
            segment, self.source_lang, self.target_lang, synthesize=self.synthesize
        )

        if self._call is not None and (
            self._call.state is not CallState.CONNECTED
            or self._current_session_id() != session_id
        ):
            self._discarded_results += 1
            logger.debug(f"Discarding stale result for segment {segment.segment_id}")
            return None

        self._latest_result = result
        if self._result_callback:
            self._result_callback(result)
        return result

    def get_stats(self) -> dict[str, Any]:
        return {
            "listening": self._listening,
            "queued_segments": self._segment_queue.qsize(),
            "discarded_results": self._discarded_results,
            "vad": self._vad.get_stats(),
            "pipeline": self.pipeline.get_pipeline_stats(),
        }
