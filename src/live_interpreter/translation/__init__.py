"""Speech segment translation: provider interfaces and the pipeline orchestrator."""

from .exceptions import ProviderError, TranslationPipelineError
from .interfaces import (
    PipelineStage,
    SpeechSynthesisService,
    SynthesisResponse,
    TranscriptionResponse,
    TranscriptionService,
    TranslationResponse,
    TranslationService,
    direction_tag,
    parse_direction,
)
from .models import ErrorReason, StageTimings, TranslationResult
from .pipeline import TranslationPipeline

__all__ = [
    "ErrorReason",
    "PipelineStage",
    "ProviderError",
    "SpeechSynthesisService",
    "StageTimings",
    "SynthesisResponse",
    "TranscriptionResponse",
    "TranscriptionService",
    "TranslationPipeline",
    "TranslationPipelineError",
    "TranslationResponse",
    "TranslationResult",
    "TranslationService",
    "direction_tag",
    "parse_direction",
]
