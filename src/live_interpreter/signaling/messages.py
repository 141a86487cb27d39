"""Call-control messages and the channel that carries them."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import SignalingError


class SignalType(Enum):
    """Call-control events exchanged between the two peers."""

    INVITE = "invite"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    TIMEOUT = "timeout"
    MISSED = "missed"
    ENDED = "ended"


@dataclass(frozen=True)
class SignalMessage:
    """
    One call-control event.

    ``peer_id`` is the counterpart of the sender: the recipient on outbound
    messages and the sender on inbound ones.
    """

    type: SignalType
    session_id: str
    peer_id: str
    channel_id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "SignalMessage":
        """
        Parse a wire payload.

        Raises:
            SignalingError: If the payload is not a mapping, the type is
                unknown or a required field is missing or empty
        """
        if not isinstance(data, dict):
            raise SignalingError(f"Signal payload must be an object, got {type(data).__name__}")

        raw_type = data.get("type")
        try:
            signal_type = SignalType(raw_type)
        except ValueError as e:
            raise SignalingError(f"Unknown signal type: {raw_type!r}") from e

        for field_name in ("session_id", "peer_id"):
            value = data.get(field_name)
            if not isinstance(value, str) or not value:
                raise SignalingError(f"Signal '{signal_type.value}' missing {field_name}")

        channel_id = data.get("channel_id")
        if channel_id is not None and not isinstance(channel_id, str):
            raise SignalingError("channel_id must be a string")

        return cls(
            type=signal_type,
            session_id=data["session_id"],
            peer_id=data["peer_id"],
            channel_id=channel_id,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "session_id": self.session_id,
            "peer_id": self.peer_id,
        }
        if self.channel_id is not None:
            data["channel_id"] = self.channel_id
        return data


class SignalingChannel(ABC):
    """Outbound half of the bidirectional signaling transport."""

    @abstractmethod
    async def send(self, message: SignalMessage) -> None:
        """
        Deliver a message to the peer.

        Raises:
            SignalingError: If the transport cannot deliver the message
        """
        pass
