"""Call lifecycle: invite, ring, answer, hang up."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from .config import INVITE_TIMEOUT, REJECT_DISPLAY_DELAY
from .exceptions import InvalidTransitionError
from .messages import SignalingChannel, SignalMessage, SignalType

logger = logging.getLogger(__name__)


class CallState(Enum):
    IDLE = "idle"
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    CONNECTED = "connected"


class CallStatus(Enum):
    """What the caller sees while an outgoing call is unresolved."""

    CALLING = "calling"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class CallSession:
    """Snapshot of the call; replaced whole on every transition."""

    state: CallState = CallState.IDLE
    session_id: str | None = None
    peer_id: str | None = None
    channel_id: str | None = None
    status: CallStatus | None = None
    invite_deadline: float | None = None  # event loop time


SessionListener = Callable[[CallSession, CallSession], None]


class CallStateMachine:
    """
    Drives one user's call session from local actions and peer messages.

    Local actions made in the wrong state raise InvalidTransitionError.
    Inbound messages that do not fit the current state are ignored, so
    duplicates and late deliveries never disturb the session.
    """

    def __init__(
        self,
        channel: SignalingChannel,
        invite_timeout: float = INVITE_TIMEOUT,
        reject_display_delay: float = REJECT_DISPLAY_DELAY,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            channel: Transport for outbound call-control messages
            invite_timeout: Seconds an outgoing invite rings before timing out
            reject_display_delay: Seconds a rejection stays visible before idling
        """
        if invite_timeout <= 0:
            raise ValueError("Invite timeout must be positive")
        if reject_display_delay < 0:
            raise ValueError("Reject display delay must be non-negative")

        self.channel = channel
        self.invite_timeout = invite_timeout
        self.reject_display_delay = reject_display_delay

        self._session = CallSession()
        self._last_outcome: CallStatus | None = None
        self._listeners: list[SessionListener] = []
        self._deadline_handle: asyncio.TimerHandle | None = None
        self._reject_handle: asyncio.TimerHandle | None = None
        self._pending_sends: set[asyncio.Task] = set()

        self._handlers: dict[SignalType, Callable[[SignalMessage], bool]] = {
            SignalType.INVITE: self._on_invite,
            SignalType.ACCEPT: self._on_accept,
            SignalType.REJECT: self._on_reject,
            SignalType.CANCEL: self._on_remote_abandon,
            SignalType.TIMEOUT: self._on_remote_abandon,
            SignalType.MISSED: self._on_remote_abandon,
            SignalType.ENDED: self._on_ended,
        }

    @property
    def session(self) -> CallSession:
        return self._session

    @property
    def state(self) -> CallState:
        return self._session.state

    @property
    def last_outcome(self) -> CallStatus | None:
        """How the most recent outgoing call ended without connecting, if it did."""
        return self._last_outcome

    def add_listener(self, listener: SessionListener) -> None:
        """Register ``listener(before, after)`` to be called on every session change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Local actions

    async def invite(self, peer_id: str, channel_id: str | None = None) -> CallSession:
        """
        Start an outgoing call.

        Args:
            peer_id: User to call
            channel_id: Conversation the call belongs to

        Returns:
            The new OUTGOING session

        Raises:
            InvalidTransitionError: If a call is already in progress
        """
        self._require(CallState.IDLE, "invite")

        loop = asyncio.get_running_loop()
        session_id = str(uuid.uuid4())
        self._last_outcome = None
        self._transition(
            CallSession(
                state=CallState.OUTGOING,
                session_id=session_id,
                peer_id=peer_id,
                channel_id=channel_id,
                status=CallStatus.CALLING,
                invite_deadline=loop.time() + self.invite_timeout,
            )
        )
        self._deadline_handle = loop.call_later(
            self.invite_timeout, self._on_invite_deadline, session_id
        )
        logger.debug(f"📞 Calling {peer_id} (session {session_id})")

        try:
            await self.channel.send(self._message(SignalType.INVITE))
        except Exception:
            logger.error(f"❌ Failed to send invite to {peer_id}")
            self._reset()
            raise
        return self._session

    async def cancel(self) -> None:
        """
        Abandon an outgoing call.

        The peer is only told while the call is still ringing; once a
        rejection is on display there is nothing left to cancel.

        Raises:
            InvalidTransitionError: If there is no outgoing call
        """
        self._require(CallState.OUTGOING, "cancel")
        message = (
            self._message(SignalType.CANCEL)
            if self._session.status is CallStatus.CALLING
            else None
        )
        logger.debug(f"📞 Cancelling call to {self._session.peer_id}")
        self._reset()
        if message is not None:
            await self.channel.send(message)

    async def accept(self) -> None:
        """
        Answer an incoming call.

        Raises:
            InvalidTransitionError: If no call is ringing
        """
        self._require(CallState.INCOMING, "accept")
        message = self._message(SignalType.ACCEPT)
        self._transition(replace(self._session, state=CallState.CONNECTED))
        logger.debug(f"📞 Accepted call from {self._session.peer_id}")
        await self.channel.send(message)

    async def reject(self) -> None:
        """
        Decline an incoming call.

        Raises:
            InvalidTransitionError: If no call is ringing
        """
        self._require(CallState.INCOMING, "reject")
        message = self._message(SignalType.REJECT)
        logger.debug(f"📞 Rejected call from {self._session.peer_id}")
        self._reset()
        await self.channel.send(message)

    async def end(self) -> None:
        """
        Hang up a connected call.

        Raises:
            InvalidTransitionError: If no call is connected
        """
        self._require(CallState.CONNECTED, "end")
        message = self._message(SignalType.ENDED)
        logger.debug(f"📞 Ending call with {self._session.peer_id}")
        self._reset()
        await self.channel.send(message)

    # Inbound messages

    def handle_message(self, message: SignalMessage) -> bool:
        """
        Apply a message from the peer.

        Returns:
            True if the session changed, False if the message was ignored
        """
        handler = self._handlers[message.type]
        changed = handler(message)
        if not changed:
            logger.debug(
                f"Ignoring '{message.type.value}' from {message.peer_id} in state {self.state.value}"
            )
        return changed

    def _is_current(self, message: SignalMessage) -> bool:
        return message.session_id == self._session.session_id

    def _on_invite(self, message: SignalMessage) -> bool:
        # Never clobber a call already in progress
        if self.state is not CallState.IDLE:
            return False
        self._transition(
            CallSession(
                state=CallState.INCOMING,
                session_id=message.session_id,
                peer_id=message.peer_id,
                channel_id=message.channel_id,
            )
        )
        logger.debug(f"📞 Incoming call from {message.peer_id}")
        return True

    def _on_accept(self, message: SignalMessage) -> bool:
        if (
            self.state is not CallState.OUTGOING
            or self._session.status is not CallStatus.CALLING
            or not self._is_current(message)
        ):
            return False
        self._cancel_timers()
        self._transition(
            replace(self._session, state=CallState.CONNECTED, status=None, invite_deadline=None)
        )
        logger.debug(f"📞 Call accepted by {message.peer_id}")
        return True

    def _on_reject(self, message: SignalMessage) -> bool:
        if (
            self.state is not CallState.OUTGOING
            or self._session.status is not CallStatus.CALLING
            or not self._is_current(message)
        ):
            return False
        self._cancel_timers()
        self._last_outcome = CallStatus.REJECTED
        self._transition(
            replace(self._session, status=CallStatus.REJECTED, invite_deadline=None)
        )
        logger.debug(f"📞 Call rejected by {message.peer_id}")
        loop = asyncio.get_running_loop()
        self._reject_handle = loop.call_later(
            self.reject_display_delay, self._on_reject_display_elapsed, message.session_id
        )
        return True

    def _on_remote_abandon(self, message: SignalMessage) -> bool:
        """Caller gave up (cancel, timeout or missed) before this side answered."""
        if self.state is not CallState.INCOMING or not self._is_current(message):
            return False
        logger.debug(f"📞 Call from {message.peer_id} {message.type.value}")
        self._reset()
        return True

    def _on_ended(self, message: SignalMessage) -> bool:
        if self.state is not CallState.CONNECTED or not self._is_current(message):
            return False
        logger.debug(f"📞 Call ended by {message.peer_id}")
        self._reset()
        return True

    # Timers

    def _on_invite_deadline(self, session_id: str) -> None:
        self._deadline_handle = None
        if (
            self.state is not CallState.OUTGOING
            or self._session.session_id != session_id
            or self._session.status is not CallStatus.CALLING
        ):
            return

        logger.debug(f"⏰ Invite to {self._session.peer_id} timed out after {self.invite_timeout}s")
        message = self._message(SignalType.TIMEOUT)
        self._last_outcome = CallStatus.TIMEOUT
        self._reset()
        self._send_in_background(message)

    def _on_reject_display_elapsed(self, session_id: str) -> None:
        self._reject_handle = None
        if self.state is CallState.OUTGOING and self._session.session_id == session_id:
            self._reset()

    def _send_in_background(self, message: SignalMessage) -> None:
        task = asyncio.get_running_loop().create_task(self.channel.send(message))
        self._pending_sends.add(task)
        task.add_done_callback(self._on_send_done)

    def _on_send_done(self, task: asyncio.Task) -> None:
        self._pending_sends.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Failed to send signal: {error}")

    # Helpers

    def _require(self, expected: CallState, action: str) -> None:
        if self.state is not expected:
            raise InvalidTransitionError(
                f"Cannot {action} while {self.state.value} (expected {expected.value})"
            )

    def _message(self, signal_type: SignalType) -> SignalMessage:
        session = self._session
        return SignalMessage(
            type=signal_type,
            session_id=session.session_id,
            peer_id=session.peer_id,
            channel_id=session.channel_id,
        )

    def _cancel_timers(self) -> None:
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
            self._deadline_handle = None
        if self._reject_handle is not None:
            self._reject_handle.cancel()
            self._reject_handle = None

    def _reset(self) -> None:
        """Return to IDLE, dropping timers and the peer's identity."""
        self._cancel_timers()
        self._transition(CallSession())

    def _transition(self, new_session: CallSession) -> None:
        before = self._session
        self._session = new_session
        if before.state is not new_session.state:
            logger.debug(f"Call state {before.state.value} -> {new_session.state.value}")
        for listener in list(self._listeners):
            listener(before, new_session)

    async def release(self) -> None:
        """Drop the session without notifying the peer and wait for in-flight sends."""
        self._cancel_timers()
        if self.state is not CallState.IDLE:
            self._transition(CallSession())
        if self._pending_sends:
            await asyncio.gather(*self._pending_sends, return_exceptions=True)
        self._listeners.clear()
