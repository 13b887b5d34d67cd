"""
V5 Simulator Protocol - Messages shared by both directions

Handshake and Serial have the same shape whether the backend or the frontend
sends them; events.py and commands.py subclass these bases so each direction
still decodes into its own type.
"""

from __future__ import annotations

from pydantic import Field, field_serializer

from .tagging import TaggedModel
from .values import I32, SerialData


class HandshakeBase(TaggedModel):
    """First message of every session, in each direction."""

    wire_tag = "Handshake"
    version: I32
    extensions: frozenset[str] = Field(default_factory=frozenset)

    @field_serializer("extensions")
    def _sorted_extensions(self, extensions: frozenset[str]) -> list[str]:
        return sorted(extensions)


class SerialBase(TaggedModel):
    """Serial bytes on one channel (stdio is channel 1)."""

    wire_tag = "Serial"
    wire_newtype = "serial"
    serial: SerialData
