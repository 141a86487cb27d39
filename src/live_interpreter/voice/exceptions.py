"""Custom exceptions for voice capture and calibration."""


class VoiceError(Exception):
    """Base exception for voice input errors."""

    pass


class AudioCaptureError(VoiceError):
    """Exception raised for audio capture related errors."""

    pass


class MicrophoneNotFoundError(AudioCaptureError):
    """Exception raised when no microphone is found."""

    pass


class CalibrationError(VoiceError):
    """Exception raised when a calibration run cannot produce a profile."""

    pass


class CalibrationCancelledError(CalibrationError):
    """Exception raised out of a calibration run that was cancelled."""

    pass


class CalibrationStoreError(VoiceError):
    """Exception raised when a calibration profile cannot be loaded or saved."""

    pass
