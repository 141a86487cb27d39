"""Abstract interfaces for the external speech and language services."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class PipelineStage(Enum):
    """Enumeration of stages a speech segment passes through."""

    PRE_FILTER = "pre_filter"
    TRANSCRIPTION = "transcription"
    NOISE_FILTER = "noise_filter"
    TRANSLATION = "translation"
    SYNTHESIS = "synthesis"


@dataclass(frozen=True)
class TranscriptionResponse:
    """Text recognised from a segment of audio."""

    text: str
    elapsed_ms: int
    engine: str = ""


@dataclass(frozen=True)
class TranslationResponse:
    """Translated text for one utterance."""

    text: str
    elapsed_ms: int


@dataclass(frozen=True)
class SynthesisResponse:
    """Synthesized speech audio with its latency profile."""

    audio: bytes
    first_chunk_latency_ms: int | None
    elapsed_ms: int


def direction_tag(source_lang: str, target_lang: str) -> str:
    """Direction identifier used for prompts, e.g. ``zh-to-vi``."""
    return f"{source_lang}-to-{target_lang}"


def parse_direction(tag: str) -> tuple[str, str]:
    """
    Split a direction tag into source and target language.

    Raises:
        ValueError: If the tag is not of the form ``<src>-to-<dst>``
    """
    parts = tag.split("-to-")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid direction tag: {tag!r}")
    return parts[0], parts[1]


class TranscriptionService(ABC):
    """Speech-to-text provider."""

    @abstractmethod
    async def transcribe(
        self, audio: bytes, language_hint: str, sample_rate: int
    ) -> TranscriptionResponse:
        """
        Recognise speech in raw 16-bit mono PCM.

        Args:
            audio: PCM audio bytes
            language_hint: Expected spoken language (e.g. "zh")
            sample_rate: Sample rate of ``audio`` in Hz

        Returns:
            TranscriptionResponse, possibly with empty text

        Raises:
            ProviderError: If the provider call fails
        """
        pass


class TranslationService(ABC):
    """Text translation provider."""

    @abstractmethod
    async def translate(self, text: str, direction: str) -> TranslationResponse:
        """
        Translate ``text`` in the given direction.

        Args:
            text: Source text
            direction: Direction tag such as ``zh-to-vi``

        Raises:
            ProviderError: If the provider call fails
        """
        pass


class SpeechSynthesisService(ABC):
    """Text-to-speech provider."""

    @abstractmethod
    async def synthesize(self, text: str, language_tag: str) -> SynthesisResponse:
        """
        Convert text to speech audio.

        Args:
            text: Text to speak
            language_tag: Language of ``text`` (selects the voice)

        Raises:
            ProviderError: If the provider call fails
        """
        pass
