"""
V5 Simulator Protocol - Extensibility Rules

Forward compatibility policy:
- A well-formed message with a tag we don't know is reported as an
  UnrecognizedVariant result, never as an error.
- Open unions (Device, DeviceStatus) keep unknown variants as OpaqueVariant;
  a message carrying one is also surfaced as UnrecognizedVariant.
- Messages gated behind an extension that was not negotiated are treated as
  unrecognized on receipt.
- Session-control messages never degrade this way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .tagging import OpaqueVariant, TaggedModel

# Extension names
EXT_TEXT_METRICS = "text-metrics"

# Messages whose mishandling would desynchronize the session
SESSION_CONTROL_TAGS = frozenset({"Handshake", "StartExecution"})


@dataclass(frozen=True)
class UnrecognizedVariant:
    """
    A message this revision cannot act on.

    Attributes:
        union: Union where the unknown tag was found ("Event", "Command",
            "Device", "DeviceStatus")
        tag: The unrecognized (or not negotiated) variant tag
        payload: Raw JSON payload of that variant
        line: Original wire line
        message: Decoded enclosing message, when the outer message was known
        reason: "unknown_variant" or "extension_not_negotiated"
    """

    union: str
    tag: str
    payload: Any = None
    line: Optional[str] = None
    message: Optional[TaggedModel] = None
    reason: str = "unknown_variant"

    def to_dict(self) -> dict[str, Any]:
        return {
            "union": self.union,
            "tag": self.tag,
            "reason": self.reason,
            "line": self.line,
        }


@dataclass
class ExtensionRegistry:
    """Which message variants each extension unlocks."""

    gates: dict[str, str] = field(default_factory=dict)

    def gate(self, tag: str, extension: str) -> None:
        self.gates[tag] = extension

    def required_extension(self, tag: str) -> Optional[str]:
        return self.gates.get(tag)

    def is_allowed(self, tag: str, active: frozenset[str]) -> bool:
        ext = self.required_extension(tag)
        return ext is None or ext in active

    @property
    def extensions(self) -> frozenset[str]:
        return frozenset(self.gates.values())


def default_registry() -> ExtensionRegistry:
    """Registry with the extensions this revision knows about."""
    registry = ExtensionRegistry()
    registry.gate("TextMetricsRequest", EXT_TEXT_METRICS)
    registry.gate("SetTextMetrics", EXT_TEXT_METRICS)
    return registry


def is_session_control(tag: str) -> bool:
    return tag in SESSION_CONTROL_TAGS


# Open-union fields, keyed by message tag
OPEN_UNION_FIELDS: Mapping[str, tuple[str, str]] = {
    "DeviceUpdate": ("status", "DeviceStatus"),
    "ConfigureDevice": ("device", "Device"),
}


def find_opaque(message: TaggedModel, line: Optional[str] = None) -> Optional[UnrecognizedVariant]:
    """Return an UnrecognizedVariant if the message holds an unknown open-union variant."""
    entry = OPEN_UNION_FIELDS.get(message.wire_tag)
    if entry is None:
        return None
    field_name, union = entry
    value = getattr(message, field_name, None)
    if not isinstance(value, OpaqueVariant):
        return None
    return UnrecognizedVariant(
        union=union,
        tag=value.tag,
        payload=value.payload,
        line=line,
        message=message,
    )
