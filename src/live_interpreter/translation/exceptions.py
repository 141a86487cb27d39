"""Custom exceptions for the translation pipeline."""


class TranslationPipelineError(Exception):
    """Base exception for translation pipeline errors."""

    pass


class ProviderError(TranslationPipelineError):
    """Exception raised when an external transcription/translation/synthesis call fails."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message
