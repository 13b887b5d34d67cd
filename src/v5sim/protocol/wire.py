"""
V5 Simulator Protocol - JSON Encoding

One message is one externally tagged JSON value:

    {"ScreenClear":{"color":16711680,"clip_region":{...}}}
    "Ready"

encode_* return the JSON text without the line delimiter; framing.py adds
and strips newlines.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from pydantic import ValidationError

from .commands import COMMAND_TYPES
from .errors import (
    DecodeError,
    PayloadDecodeError,
    SchemaError,
    SessionStateError,
    TransportError,
)
from .events import EVENT_TYPES
from .extensions import UnrecognizedVariant, find_opaque, is_session_control
from .tagging import TaggedModel
from .values import BASE64_ERROR

if TYPE_CHECKING:
    from .handshake import NegotiatedSession

Decoded = Union[TaggedModel, UnrecognizedVariant]


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def _encode(
    message: TaggedModel,
    types: Mapping[str, type[TaggedModel]],
    union: str,
    negotiated: Optional["NegotiatedSession"],
) -> str:
    tag = message.wire_tag
    if types.get(tag) is not type(message):
        raise TypeError(f"{type(message).__name__} is not an {union} variant")
    if negotiated is not None and not negotiated.allows(tag):
        raise SessionStateError(
            f"extension {negotiated.registry.required_extension(tag)!r} was not negotiated",
            variant=tag,
        )
    try:
        return _dumps(message.model_dump(mode="json"))
    except ValueError as e:
        raise SchemaError(f"cannot encode: {e}", variant=tag) from e


def encode_event(event: TaggedModel, negotiated: Optional["NegotiatedSession"] = None) -> str:
    """Encode an Event as a single JSON line (without newline)."""
    return _encode(event, EVENT_TYPES, "Event", negotiated)


def encode_command(command: TaggedModel, negotiated: Optional["NegotiatedSession"] = None) -> str:
    """Encode a Command as a single JSON line (without newline)."""
    return _encode(command, COMMAND_TYPES, "Command", negotiated)


def split_tag(obj: Any, line: Optional[str] = None) -> tuple[str, Any]:
    """
    Split a parsed JSON value into (tag, payload).

    Raises:
        SchemaError: If the value is not an externally tagged variant
    """
    if isinstance(obj, str):
        return obj, None
    if isinstance(obj, dict) and len(obj) == 1:
        tag, payload = next(iter(obj.items()))
        return tag, payload
    raise SchemaError("expected a variant name or a single-key object", line=line)


def _translate(exc: ValidationError, tag: str, line: str) -> DecodeError:
    errors = exc.errors()
    fatal = is_session_control(tag)
    first = errors[0] if errors else {"loc": (), "msg": str(exc)}
    loc = ".".join(str(part) for part in first.get("loc", ()))
    detail = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    if any(err.get("type") == BASE64_ERROR for err in errors):
        return PayloadDecodeError(detail, fatal=fatal, variant=tag, line=line)
    return SchemaError(detail, fatal=fatal, variant=tag, line=line)


def _decode(
    line: Union[str, bytes],
    types: Mapping[str, type[TaggedModel]],
    union: str,
    negotiated: Optional["NegotiatedSession"],
) -> Decoded:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransportError(f"line is not valid UTF-8: {e}") from e
    text = line.rstrip("\r\n")

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"not valid JSON: {e.msg}", line=text) from e

    tag, payload = split_tag(obj, text)
    cls = types.get(tag)
    if cls is None:
        return UnrecognizedVariant(union=union, tag=tag, payload=payload, line=text)

    try:
        message = cls.model_validate(obj)
    except ValidationError as e:
        raise _translate(e, tag, text) from e

    if negotiated is not None and not negotiated.allows(tag):
        return UnrecognizedVariant(
            union=union,
            tag=tag,
            payload=payload,
            line=text,
            message=message,
            reason="extension_not_negotiated",
        )
    return find_opaque(message, text) or message


def decode_event(
    line: Union[str, bytes], negotiated: Optional["NegotiatedSession"] = None
) -> Decoded:
    """
    Decode one Event line.

    Returns:
        The Event model, or UnrecognizedVariant for messages this revision
        can't act on

    Raises:
        SchemaError: Malformed message
        PayloadDecodeError: Corrupt base64 payload
        TransportError: Bytes that are not valid UTF-8
    """
    return _decode(line, EVENT_TYPES, "Event", negotiated)


def decode_command(
    line: Union[str, bytes], negotiated: Optional["NegotiatedSession"] = None
) -> Decoded:
    """Decode one Command line. See decode_event."""
    return _decode(line, COMMAND_TYPES, "Command", negotiated)
