"""
V5 Simulator Protocol - backend ↔ frontend message schema and session rules

Transport: any ordered duplex byte stream + JSONL (one message per line)
"""

from .config import ProtocolConfig
from .errors import (
    DecodeError,
    IncompatibleVersion,
    PayloadDecodeError,
    ProtocolError,
    SchemaError,
    SessionStateError,
    TransportError,
)
from .extensions import EXT_TEXT_METRICS, ExtensionRegistry, UnrecognizedVariant, default_registry
from .framing import DEFAULT_MAX_LINE_BYTES, LineFramer, frame, read_lines, unframe, write_line
from .handshake import PROTOCOL_VERSION, HandshakeState, NegotiatedSession, Negotiator, negotiate
from .peer import ProtocolPeer
from .session import BackendSession, FrontendSession, ProtocolSession, Role
from .tagging import OpaqueVariant, TaggedModel
from .values import decode_bytes, encode_bytes
from .wire import decode_command, decode_event, encode_command, encode_event

__all__ = [
    "PROTOCOL_VERSION",
    "EXT_TEXT_METRICS",
    "DEFAULT_MAX_LINE_BYTES",
    "ProtocolConfig",
    "ProtocolError",
    "TransportError",
    "DecodeError",
    "SchemaError",
    "PayloadDecodeError",
    "SessionStateError",
    "IncompatibleVersion",
    "ExtensionRegistry",
    "UnrecognizedVariant",
    "default_registry",
    "LineFramer",
    "frame",
    "unframe",
    "read_lines",
    "write_line",
    "HandshakeState",
    "NegotiatedSession",
    "Negotiator",
    "negotiate",
    "ProtocolPeer",
    "ProtocolSession",
    "BackendSession",
    "FrontendSession",
    "Role",
    "OpaqueVariant",
    "TaggedModel",
    "encode_bytes",
    "decode_bytes",
    "encode_event",
    "encode_command",
    "decode_event",
    "decode_command",
]
