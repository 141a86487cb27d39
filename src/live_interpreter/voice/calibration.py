"""Guided two-phase calibration of the VAD threshold."""

import asyncio
from collections.abc import Callable, Sequence
from enum import Enum

from .config import (
    CALIBRATION_PHASE_DURATION,
    CALIBRATION_TICK_INTERVAL,
    DEFAULT_CALIBRATION_KEY,
    DEFAULT_SENTENCE_END_WAIT_MS,
    MAX_SENTENCE_END_WAIT_MS,
    MIN_SENTENCE_END_WAIT_MS,
)
from .calibration_store import CalibrationStore
from .exceptions import CalibrationCancelledError, CalibrationError
from .logging_utils import get_logger
from .models import CalibrationProfile, LoudnessSample, ProfileHandle

logger = get_logger(__name__)


class CalibrationPhase(Enum):
    """Calibration engine states."""

    IDLE = "idle"
    SILENCE_SAMPLING = "silence_sampling"
    SPEECH_SAMPLING = "speech_sampling"


ProgressCallback = Callable[[CalibrationPhase, float], None]


def compute_profile(
    silence_values: Sequence[float],
    speech_values: Sequence[float],
    sentence_end_wait_ms: int = DEFAULT_SENTENCE_END_WAIT_MS,
) -> CalibrationProfile:
    """
    Derive a profile from the two sampling phases.

    Background noise is stationary, so the silence phase is averaged.
    Speech is bursty, so the speech phase keeps its peak; a mean would be
    dragged down by the gaps between syllables.

    Raises:
        CalibrationError: If either phase collected no samples
    """
    if not silence_values:
        raise CalibrationError("No loudness samples collected during silence phase")
    if not speech_values:
        raise CalibrationError("No loudness samples collected during speech phase")

    silence_avg = sum(silence_values) / len(silence_values)
    speech_max = max(speech_values)
    return CalibrationProfile.from_measurements(
        silence_avg=silence_avg,
        speech_max=speech_max,
        sentence_end_wait_ms=sentence_end_wait_ms,
    )


def validate_sentence_end_wait(sentence_end_wait_ms: int) -> int:
    if not MIN_SENTENCE_END_WAIT_MS <= sentence_end_wait_ms <= MAX_SENTENCE_END_WAIT_MS:
        raise ValueError(
            f"Sentence end wait must be between {MIN_SENTENCE_END_WAIT_MS} and "
            f"{MAX_SENTENCE_END_WAIT_MS} ms, got {sentence_end_wait_ms}"
        )
    return sentence_end_wait_ms


class CalibrationEngine:
    """
    Runs ``IDLE -> SILENCE_SAMPLING -> SPEECH_SAMPLING -> IDLE``.

    Loudness samples are pushed in through ``on_sample``; a separate
    progress timer decides when each phase ends. The finished profile is
    persisted and then published to the shared ``ProfileHandle``.
    """

    def __init__(
        self,
        store: CalibrationStore,
        profile_handle: ProfileHandle | None = None,
        phase_duration: float = CALIBRATION_PHASE_DURATION,
        tick_interval: float = CALIBRATION_TICK_INTERVAL,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize the calibration engine.

        Args:
            store: Where finished profiles are persisted
            profile_handle: Shared handle read by the VAD segmenter
            phase_duration: Seconds spent in each sampling phase
            tick_interval: Seconds between progress updates
            on_progress: Called with (phase, percent) on every tick
        """
        if phase_duration <= 0:
            raise ValueError("Phase duration must be positive")
        if tick_interval <= 0:
            raise ValueError("Tick interval must be positive")

        self._store = store
        self._profile_handle = profile_handle or ProfileHandle()
        self.phase_duration = phase_duration
        self.tick_interval = tick_interval
        self._on_progress = on_progress

        self._phase = CalibrationPhase.IDLE
        self._progress = 0.0
        self._silence_values: list[float] = []
        self._speech_values: list[float] = []
        self._cancel_event: asyncio.Event | None = None

    @property
    def phase(self) -> CalibrationPhase:
        return self._phase

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def profile_handle(self) -> ProfileHandle:
        return self._profile_handle

    def is_running(self) -> bool:
        return self._phase is not CalibrationPhase.IDLE

    def on_sample(self, sample: LoudnessSample) -> None:
        """Collect a loudness sample into the active phase; ignored while idle."""
        if self._phase is CalibrationPhase.SILENCE_SAMPLING:
            self._silence_values.append(sample.value)
        elif self._phase is CalibrationPhase.SPEECH_SAMPLING:
            self._speech_values.append(sample.value)

    async def calibrate(self, key: str = DEFAULT_CALIBRATION_KEY) -> CalibrationProfile:
        """
        Run both phases and store the resulting profile under ``key``.

        Returns:
            The new profile, which fully replaces any previous one

        Raises:
            CalibrationError: If a run is already in progress or a phase was empty
            CalibrationCancelledError: If ``cancel()`` was called
        """
        if self.is_running():
            raise CalibrationError("Calibration already in progress")

        self._cancel_event = asyncio.Event()
        self._silence_values = []
        self._speech_values = []

        try:
            logger.info("🤫 Calibration: stay quiet")
            await self._run_phase(CalibrationPhase.SILENCE_SAMPLING)
            logger.info("🗣️ Calibration: please speak")
            await self._run_phase(CalibrationPhase.SPEECH_SAMPLING)
        except CalibrationCancelledError:
            logger.info("🚫 Calibration cancelled, stored profile left unchanged")
            raise
        finally:
            self._phase = CalibrationPhase.IDLE
            self._cancel_event = None

        previous = await self._store.get(key)
        wait_ms = (
            previous.sentence_end_wait_ms
            if previous is not None
            else self._profile_handle.current.sentence_end_wait_ms
        )

        try:
            profile = compute_profile(self._silence_values, self._speech_values, wait_ms)
        finally:
            self._silence_values = []
            self._speech_values = []

        await self._store.set(key, profile)
        self._profile_handle.replace(profile)

        logger.info(
            f"✅ Calibration complete: silence_avg={profile.silence_avg:.1f}, "
            f"speech_max={profile.speech_max:.1f}, threshold={profile.threshold}"
        )
        return profile

    async def _run_phase(self, phase: CalibrationPhase) -> None:
        loop = asyncio.get_running_loop()
        self._phase = phase
        self._report_progress(0.0)
        started = loop.time()

        while True:
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass
            else:
                self._silence_values = []
                self._speech_values = []
                raise CalibrationCancelledError("Calibration cancelled")

            elapsed = loop.time() - started
            self._report_progress(min(100.0, elapsed / self.phase_duration * 100.0))
            if elapsed >= self.phase_duration:
                return

    def _report_progress(self, percent: float) -> None:
        self._progress = percent
        if self._on_progress is not None:
            self._on_progress(self._phase, percent)

    def cancel(self) -> None:
        """Abort a running calibration; partial samples are discarded."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def load(self, key: str = DEFAULT_CALIBRATION_KEY) -> CalibrationProfile:
        """Publish the stored profile for ``key``, keeping the current one if none."""
        profile = await self._store.get(key)
        if profile is not None:
            self._profile_handle.replace(profile)
            logger.debug(f"📂 Loaded calibration profile for '{key}'")
        return self._profile_handle.current

    async def set_threshold(
        self, threshold: float, key: str = DEFAULT_CALIBRATION_KEY
    ) -> CalibrationProfile:
        """Manually override the threshold of the stored profile."""
        if threshold < 0:
            raise ValueError("Threshold must be non-negative")
        base = await self._store.get(key) or self._profile_handle.current
        return await self._replace(key, base.with_threshold(threshold))

    async def set_sentence_end_wait(
        self, sentence_end_wait_ms: int, key: str = DEFAULT_CALIBRATION_KEY
    ) -> CalibrationProfile:
        """Change how long a pause may last before the sentence is closed."""
        validate_sentence_end_wait(sentence_end_wait_ms)
        base = await self._store.get(key) or self._profile_handle.current
        return await self._replace(key, base.with_sentence_end_wait(sentence_end_wait_ms))

    async def _replace(self, key: str, profile: CalibrationProfile) -> CalibrationProfile:
        await self._store.set(key, profile)
        self._profile_handle.replace(profile)
        return profile
