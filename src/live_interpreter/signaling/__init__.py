"""Call signaling: message types and the call state machine."""

from .call_state_machine import CallSession, CallState, CallStateMachine, CallStatus
from .exceptions import InvalidTransitionError, SignalingError
from .messages import SignalingChannel, SignalMessage, SignalType

__all__ = [
    "CallSession",
    "CallState",
    "CallStateMachine",
    "CallStatus",
    "InvalidTransitionError",
    "SignalMessage",
    "SignalType",
    "SignalingChannel",
    "SignalingError",
]
