"""
V5 Simulator Protocol - Session State Machine

One session object per peer. It owns the handshake, checks every outgoing
message against the session rules, and turns incoming lines into messages:

- Nothing but Handshake is valid until both Handshakes were exchanged
- StartExecution: once per session, only after Ready (rejected, not fatal)
- Exited is the last Event; anything after it is fatal
- ConfigureDevice replaces the previous configuration of that port

Fatal errors raise and terminate the session. Recoverable errors go to the
on_error callback and receive() returns None.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from v5sim.logs.transcript import TranscriptLogger

from . import commands, events, values
from .common import HandshakeBase
from .config import ProtocolConfig
from .errors import DecodeError, ProtocolError, SessionStateError
from .extensions import UnrecognizedVariant
from .framing import frame, unframe
from .handshake import HandshakeState, NegotiatedSession, Negotiator
from .tagging import TaggedModel
from .wire import Decoded, decode_command, decode_event, encode_command, encode_event

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[ProtocolError], None]

# Commands that simulate hardware input
INPUT_COMMANDS = (commands.Touch, commands.AdiInput, commands.ControllerUpdate)


class Role(str, Enum):
    BACKEND = "backend"
    FRONTEND = "frontend"


class ProtocolSession:
    """
    Shared session logic; see BackendSession and FrontendSession.

    Parameters
    ----------
    config:
        Version, extensions and ordering policy.
    on_error:
        Callback for recoverable errors (skipped messages, rejected commands).
    transcript:
        Optional JSONL transcript; defaults to config.transcript_path.
    """

    role: Role
    name = "ProtocolSession"

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        on_error: Optional[ErrorCallback] = None,
        transcript: Optional[TranscriptLogger] = None,
    ):
        self.config = config or ProtocolConfig()
        self.negotiator = Negotiator(self.config.version, self.config.extensions)
        self._error_listeners: list[ErrorCallback] = [on_error] if on_error else []
        if transcript is None and self.config.transcript_path:
            transcript = TranscriptLogger(self.config.transcript_path)
        self._transcript = transcript

    # --- Role hooks ---

    def _handshake_type(self) -> type[HandshakeBase]:
        raise NotImplementedError

    def _encode(self, message: TaggedModel, negotiated: Optional[NegotiatedSession]) -> str:
        raise NotImplementedError

    def _decode(self, text: str, negotiated: Optional[NegotiatedSession]) -> Decoded:
        raise NotImplementedError

    def _check_outgoing(self, message: TaggedModel) -> None:
        pass

    def _after_send(self, message: TaggedModel) -> None:
        pass

    def _accept(self, message: TaggedModel, line: str) -> None:
        pass

    def _terminal_reason(self) -> str:
        return "session already terminated"

    # --- Public API ---

    @property
    def state(self) -> HandshakeState:
        return self.negotiator.state

    @property
    def active(self) -> bool:
        return self.negotiator.state is HandshakeState.ACTIVE

    @property
    def terminated(self) -> bool:
        return self.negotiator.state is HandshakeState.TERMINATED

    @property
    def negotiated(self) -> Optional[NegotiatedSession]:
        return self.negotiator.negotiated

    def handshake(self) -> bytes:
        """Build, record and return this peer's framed Handshake line."""
        message = self.negotiator.local_handshake(self._handshake_type())
        text = self._encode(message, None)
        self.negotiator.mark_sent()
        self._record("out", text)
        logger.info(
            f"[{self.name}] Sent handshake v{message.version} "
            f"extensions={sorted(message.extensions)}"
        )
        return frame(text)

    def encode(self, message: TaggedModel) -> bytes:
        """
        Validate an outgoing message against the session rules and frame it.

        Raises:
            SessionStateError: If the message may not be sent now
        """
        tag = message.wire_tag
        if isinstance(message, HandshakeBase):
            raise SessionStateError("use handshake() to send the handshake", variant=tag)
        if self.terminated:
            raise SessionStateError(self._terminal_reason(), variant=tag)
        if not self.active:
            raise SessionStateError(f"cannot send {tag} before the handshake completes", variant=tag)

        self._check_outgoing(message)
        text = self._encode(message, self.negotiated)
        self._after_send(message)
        self._record("out", text)
        return frame(text)

    def receive(self, line: Union[str, bytes]) -> Optional[Decoded]:
        """
        Decode and apply one incoming line.

        Returns:
            The message, an UnrecognizedVariant, or None if the line was
            rejected with a recoverable error

        Raises:
            ProtocolError: Fatal errors (the session is terminated)
        """
        try:
            return self._receive(line)
        except ProtocolError as e:
            if e.fatal:
                self._fail(e)
                raise
            self._report(e)
            return None

    def close(self, reason: str = "closed") -> None:
        self.negotiator.terminate(reason)

    def add_error_listener(self, callback: ErrorCallback) -> None:
        """Register another receiver for recoverable errors."""
        self._error_listeners.append(callback)

    # --- Internals ---

    def _receive(self, line: Union[str, bytes]) -> Optional[Decoded]:
        text = unframe(line) if isinstance(line, bytes) else line.rstrip("\r\n")
        if not text.strip():
            return None
        self._record("in", text)

        if self.terminated:
            raise SessionStateError(self._terminal_reason(), fatal=True, line=text)

        try:
            decoded = self._decode(text, self.negotiated)
        except DecodeError as e:
            if not self.active:
                e.fatal = True
            raise

        if isinstance(decoded, HandshakeBase):
            try:
                self.negotiator.receive(decoded)
            except SessionStateError as e:
                e.line = e.line or text
                raise
            if self.active:
                logger.info(f"[{self.name}] Session active: {self.negotiated}")
            return decoded

        tag = decoded.tag if isinstance(decoded, UnrecognizedVariant) else decoded.wire_tag
        if not self.active:
            raise SessionStateError(
                f"{tag} received before the handshake completed",
                fatal=True,
                variant=tag,
                line=text,
            )

        if isinstance(decoded, UnrecognizedVariant):
            logger.info(
                f"[{self.name}] Ignoring unrecognized {decoded.union} variant "
                f"{decoded.tag!r} ({decoded.reason})"
            )
            return decoded

        self._accept(decoded, text)
        return decoded

    def _fail(self, error: ProtocolError) -> None:
        logger.error(f"[{self.name}] Fatal {error}")
        if error.line:
            logger.error(f"[{self.name}] Offending line: {error.line[:200]}")
        self._record_error(error)
        self.negotiator.terminate(str(error))

    def _report(self, error: ProtocolError) -> None:
        logger.warning(f"[{self.name}] {error}")
        self._record_error(error)
        for listener in self._error_listeners:
            try:
                listener(error)
            except Exception as e:
                logger.error(f"[{self.name}] Error callback failed: {e}")

    def _record(self, direction: str, text: str) -> None:
        if self._transcript:
            self._transcript.record(direction, text, role=self.role.value)

    def _record_error(self, error: ProtocolError) -> None:
        if self._transcript:
            self._transcript.record_error("in", error.to_dict())


class BackendSession(ProtocolSession):
    """Simulator side: sends Events, receives Commands."""

    role = Role.BACKEND
    name = "BackendSession"

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        on_error: Optional[ErrorCallback] = None,
        transcript: Optional[TranscriptLogger] = None,
    ):
        super().__init__(config, on_error=on_error, transcript=transcript)
        self.ready_sent = False
        self.exited = False
        self.started = False
        self.devices: dict[values.Smart | values.Adi, TaggedModel] = {}
        self.usd_root: Optional[Path] = None
        self.competition = values.CompetitionMode()
        self.battery_capacity: Optional[float] = None

    def _handshake_type(self) -> type[HandshakeBase]:
        return events.Handshake

    def _encode(self, message: TaggedModel, negotiated: Optional[NegotiatedSession]) -> str:
        return encode_event(message, negotiated)

    def _decode(self, text: str, negotiated: Optional[NegotiatedSession]) -> Decoded:
        return decode_command(text, negotiated)

    def _terminal_reason(self) -> str:
        if self.exited:
            return "session ended with Exited"
        return super()._terminal_reason()

    def _after_send(self, message: TaggedModel) -> None:
        if isinstance(message, events.Ready):
            self.ready_sent = True
        elif isinstance(message, events.Exited):
            self.exited = True
            self.negotiator.terminate("backend exited")

    def _accept(self, message: TaggedModel, line: str) -> None:
        tag = message.wire_tag
        if isinstance(message, commands.StartExecution):
            if not self.ready_sent:
                raise SessionStateError("StartExecution before Ready", variant=tag, line=line)
            if self.started:
                raise SessionStateError("StartExecution was already received", variant=tag, line=line)
            self.started = True
            logger.info(f"[{self.name}] Execution started")
        elif isinstance(message, INPUT_COMMANDS):
            if self.config.strict_command_order and not self.started:
                raise SessionStateError(f"{tag} before StartExecution", variant=tag, line=line)
        elif isinstance(message, commands.ConfigureDevice):
            if message.port in self.devices:
                logger.debug(f"[{self.name}] Replacing device config on {message.port}")
            self.devices[message.port] = message.device
        elif isinstance(message, commands.USD):
            self.usd_root = message.root
        elif isinstance(message, commands.CompetitionMode):
            self.competition = message.mode
        elif isinstance(message, commands.SetBatteryCapacity):
            self.battery_capacity = message.capacity


class FrontendSession(ProtocolSession):
    """UI side: sends Commands, receives Events."""

    role = Role.FRONTEND
    name = "FrontendSession"

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        on_error: Optional[ErrorCallback] = None,
        transcript: Optional[TranscriptLogger] = None,
    ):
        super().__init__(config, on_error=on_error, transcript=transcript)
        self.ready_received = False
        self.exited = False
        self.start_sent = False
        self.double_buffered = False

    def _handshake_type(self) -> type[HandshakeBase]:
        return commands.Handshake

    def _encode(self, message: TaggedModel, negotiated: Optional[NegotiatedSession]) -> str:
        return encode_command(message, negotiated)

    def _decode(self, text: str, negotiated: Optional[NegotiatedSession]) -> Decoded:
        return decode_event(text, negotiated)

    def _terminal_reason(self) -> str:
        if self.exited:
            return "event received after Exited"
        return super()._terminal_reason()

    def _check_outgoing(self, message: TaggedModel) -> None:
        tag = message.wire_tag
        if isinstance(message, commands.StartExecution):
            if not self.ready_received:
                raise SessionStateError("StartExecution before Ready", variant=tag)
            if self.start_sent:
                raise SessionStateError("StartExecution was already sent", variant=tag)
        elif isinstance(message, INPUT_COMMANDS):
            if self.config.strict_command_order and not self.start_sent:
                raise SessionStateError(f"{tag} before StartExecution", variant=tag)

    def _after_send(self, message: TaggedModel) -> None:
        if isinstance(message, commands.StartExecution):
            self.start_sent = True

    def _accept(self, message: TaggedModel, line: str) -> None:
        if isinstance(message, events.Ready):
            self.ready_received = True
        elif isinstance(message, events.ScreenDoubleBufferMode):
            self.double_buffered = message.enable
        elif isinstance(message, events.Exited):
            self.exited = True
            self.negotiator.terminate("backend exited")
