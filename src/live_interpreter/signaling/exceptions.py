"""Custom exceptions for call signaling."""


class SignalingError(Exception):
    """Base exception for signaling errors, including malformed messages."""

    pass


class InvalidTransitionError(SignalingError):
    """Exception raised when a local call action is not valid in the current state."""

    pass
