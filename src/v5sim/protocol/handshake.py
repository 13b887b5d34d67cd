"""
V5 Simulator Protocol - Handshake and Version Negotiation

Both peers send Handshake{version, extensions} first, independently of each
other. The session becomes active once a local Handshake was sent and the
peer's was received:

    UNINITIALIZED → AWAITING_PEER_HANDSHAKE → ACTIVE → TERMINATED

Versions must match exactly. The active extension set is the intersection
of what both peers advertise. There is no renegotiation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, TypeVar

from .common import HandshakeBase
from .errors import IncompatibleVersion, SessionStateError
from .extensions import ExtensionRegistry, default_registry

logger = logging.getLogger(__name__)

# Schema revision implemented here - increment on breaking changes
PROTOCOL_VERSION = 1

H = TypeVar("H", bound=HandshakeBase)


class HandshakeState(str, Enum):
    """Negotiation progress of one peer."""
    UNINITIALIZED = "uninitialized"
    AWAITING_PEER_HANDSHAKE = "awaiting_peer_handshake"
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class NegotiatedSession:
    """
    Outcome of a successful handshake.

    Passed explicitly to every encode/decode call that needs to know which
    optional messages are allowed.
    """

    version: int
    extensions: frozenset[str]
    registry: ExtensionRegistry = field(default_factory=default_registry, compare=False)

    def supports(self, extension: str) -> bool:
        return extension in self.extensions

    def allows(self, tag: str) -> bool:
        """Whether a message variant may be exchanged in this session."""
        return self.registry.is_allowed(tag, self.extensions)


def negotiate(
    local_version: int,
    local_extensions: Iterable[str],
    peer_version: int,
    peer_extensions: Iterable[str],
    registry: Optional[ExtensionRegistry] = None,
) -> NegotiatedSession:
    """
    Compare versions and intersect extensions.

    Raises:
        IncompatibleVersion: If the versions differ
    """
    if local_version != peer_version:
        raise IncompatibleVersion(local_version, peer_version)
    return NegotiatedSession(
        version=local_version,
        extensions=frozenset(local_extensions) & frozenset(peer_extensions),
        registry=registry or default_registry(),
    )


class Negotiator:
    """
    Tracks one peer's side of the handshake.

    Parameters
    ----------
    version:
        Schema revision this peer implements.
    extensions:
        Extensions this peer supports.
    registry:
        Extension gates handed on to the NegotiatedSession.
    on_transition:
        Optional callback receiving (old_state, new_state).
    """

    def __init__(
        self,
        version: int = PROTOCOL_VERSION,
        extensions: Iterable[str] = (),
        registry: Optional[ExtensionRegistry] = None,
        on_transition: Optional[Callable[[HandshakeState, HandshakeState], None]] = None,
    ):
        self.version = version
        self.extensions = frozenset(extensions)
        self.registry = registry or default_registry()
        self._on_transition = on_transition

        self._state = HandshakeState.UNINITIALIZED
        self._sent = False
        self._peer: Optional[HandshakeBase] = None
        self._negotiated: Optional[NegotiatedSession] = None

    @property
    def state(self) -> HandshakeState:
        return self._state

    @property
    def negotiated(self) -> Optional[NegotiatedSession]:
        """Negotiation result, available once ACTIVE."""
        if self._state is HandshakeState.ACTIVE:
            return self._negotiated
        return None

    @property
    def handshake_sent(self) -> bool:
        return self._sent

    @property
    def peer_handshake(self) -> Optional[HandshakeBase]:
        return self._peer

    def local_handshake(self, message_type: type[H]) -> H:
        """Build this peer's Handshake message for the given direction."""
        return message_type(version=self.version, extensions=self.extensions)

    def mark_sent(self) -> None:
        """Record that the local Handshake went out."""
        self._require_live()
        if self._sent:
            raise SessionStateError("handshake already sent", fatal=True, variant="Handshake")
        self._sent = True
        if self._negotiated is not None:
            self._set_state(HandshakeState.ACTIVE)
        else:
            self._set_state(HandshakeState.AWAITING_PEER_HANDSHAKE)

    def receive(self, handshake: HandshakeBase) -> Optional[NegotiatedSession]:
        """
        Process the peer's Handshake.

        Returns:
            The NegotiatedSession if the session is now active, None if the
            local Handshake has not been sent yet

        Raises:
            IncompatibleVersion: On version mismatch (session terminated)
            SessionStateError: On a second peer Handshake (fatal)
        """
        self._require_live()
        if self._peer is not None:
            self.terminate("duplicate peer handshake")
            raise SessionStateError(
                "peer sent a second handshake; renegotiation is unsupported",
                fatal=True,
                variant="Handshake",
            )
        self._peer = handshake
        try:
            self._negotiated = negotiate(
                self.version,
                self.extensions,
                handshake.version,
                handshake.extensions,
                registry=self.registry,
            )
        except IncompatibleVersion:
            self.terminate(f"incompatible peer version {handshake.version}")
            raise

        logger.info(
            f"[Negotiator] Peer handshake v{handshake.version}, "
            f"active extensions: {sorted(self._negotiated.extensions)}"
        )
        if self._sent:
            self._set_state(HandshakeState.ACTIVE)
            return self._negotiated
        return None

    def terminate(self, reason: str = "") -> None:
        if self._state is HandshakeState.TERMINATED:
            return
        if reason:
            logger.info(f"[Negotiator] Terminating: {reason}")
        self._set_state(HandshakeState.TERMINATED)

    def _require_live(self) -> None:
        if self._state is HandshakeState.TERMINATED:
            raise SessionStateError("session already terminated", fatal=True)

    def _set_state(self, new_state: HandshakeState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug(f"[Negotiator] {old_state.value} → {new_state.value}")
        if self._on_transition:
            self._on_transition(old_state, new_state)
