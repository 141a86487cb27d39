"""Voice input: capture, loudness analysis, calibration and segmentation."""

from .calibration import CalibrationEngine, CalibrationPhase, compute_profile
from .calibration_store import (
    CalibrationStore,
    InMemoryCalibrationStore,
    SqliteCalibrationStore,
)
from .models import (
    AudioChunk,
    CalibrationProfile,
    LoudnessSample,
    ProfileHandle,
    SpeechSegment,
)
from .vad import PreRollBuffer, VadEvent, VadEventType, VadSegmenter, VadState
from .volume_analyzer import VolumeAnalyzer

__all__ = [
    "AudioChunk",
    "CalibrationEngine",
    "CalibrationPhase",
    "CalibrationProfile",
    "CalibrationStore",
    "InMemoryCalibrationStore",
    "LoudnessSample",
    "PreRollBuffer",
    "ProfileHandle",
    "SpeechSegment",
    "SqliteCalibrationStore",
    "VadEvent",
    "VadEventType",
    "VadSegmenter",
    "VadState",
    "VolumeAnalyzer",
    "compute_profile",
]
