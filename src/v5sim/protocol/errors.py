"""
V5 Simulator Protocol - Error Types

Three kinds of failure:
- Transport: the byte stream itself is broken (always fatal)
- Decode: a well-framed line is not a valid message
- Session state: a valid message arrived at the wrong time
"""

from __future__ import annotations

from typing import Any, Optional


class ProtocolError(Exception):
    """Base class for all protocol failures.

    Attributes:
        fatal: Whether the session must terminate
        variant: Message tag involved, if known
        line: Offending wire line (truncated in to_dict)
    """

    kind = "protocol"

    def __init__(
        self,
        message: str,
        *,
        fatal: bool = False,
        variant: Optional[str] = None,
        line: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.fatal = fatal
        self.variant = variant
        self.line = line

    def __str__(self) -> str:
        if self.variant:
            return f"{self.kind}:{self.variant}: {self.message}"
        return f"{self.kind}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        line = self.line
        if line is not None and len(line) > 500:
            line = line[:500] + "..."
        return {
            "error_type": self.kind,
            "message": self.message,
            "fatal": self.fatal,
            "variant": self.variant,
            "line": line,
        }


class TransportError(ProtocolError):
    """Stream closed mid-message, invalid UTF-8 or an overlong line."""

    kind = "transport"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["fatal"] = True
        super().__init__(message, **kwargs)


class DecodeError(ProtocolError):
    """A framed line could not be turned into a message."""

    kind = "decode"


class SchemaError(DecodeError):
    """Not JSON, not a known message shape, or a typed invariant violated."""

    kind = "schema"


class PayloadDecodeError(DecodeError):
    """The message looked right but a base64 payload was corrupt."""

    kind = "payload"


class SessionStateError(ProtocolError):
    """A structurally valid message arrived in the wrong session state."""

    kind = "session"


class IncompatibleVersion(SessionStateError):
    """Peer handshake advertised a different schema revision."""

    kind = "incompatible_version"

    def __init__(self, local_version: int, peer_version: int, **kwargs: Any):
        kwargs["fatal"] = True
        kwargs.setdefault("variant", "Handshake")
        super().__init__(
            f"peer speaks protocol version {peer_version}, local version is {local_version}",
            **kwargs,
        )
        self.local_version = local_version
        self.peer_version = peer_version
