"""
V5 Simulator Protocol - Events (backend → frontend)

Events are incremental state changes, emitted strictly in the order they
happen. Screen operations are deltas limited to their clip_region, so the
frontend must apply them in the order received.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import StrictBool, StrictFloat

from . import values
from .common import HandshakeBase, SerialBase
from .devices import DeviceStatus
from .tagging import TaggedModel
from .values import (
    I32,
    Color,
    DrawCommand,
    LinkMode,
    LogLevel,
    Port,
    Rect,
    ScrollLocation,
    SmartPort,
    V5Text,
)


class Handshake(HandshakeBase):
    pass


class ScreenDraw(TaggedModel):
    wire_tag = "ScreenDraw"
    command: DrawCommand
    color: Color
    clip_region: Rect


class ScreenScroll(TaggedModel):
    wire_tag = "ScreenScroll"
    location: ScrollLocation
    lines: I32
    background: Color
    clip_region: Rect


class ScreenClear(TaggedModel):
    wire_tag = "ScreenClear"
    color: Color
    clip_region: Rect


class ScreenDoubleBufferMode(TaggedModel):
    """While enabled, draws go off-screen until ScreenRender."""

    wire_tag = "ScreenDoubleBufferMode"
    enable: StrictBool


class ScreenRender(TaggedModel):
    wire_tag = "ScreenRender"


class VCodeSig(TaggedModel):
    wire_tag = "VCodeSig"
    wire_newtype = "signature"
    signature: values.VCodeSig


class Ready(TaggedModel):
    """Backend setup finished; StartExecution is now accepted."""

    wire_tag = "Ready"


class Exited(TaggedModel):
    """Always the final event of a session."""

    wire_tag = "Exited"


class Serial(SerialBase):
    pass


class DeviceUpdate(TaggedModel):
    wire_tag = "DeviceUpdate"
    status: DeviceStatus
    port: Port


class Battery(TaggedModel):
    wire_tag = "Battery"
    wire_newtype = "battery"
    battery: values.Battery


class RobotPose(TaggedModel):
    wire_tag = "RobotPose"
    x: StrictFloat
    y: StrictFloat


class RobotState(TaggedModel):
    # Whole-robot state carries no fields yet; anything a newer backend
    # sends is kept as-is.
    wire_tag = "RobotState"
    wire_newtype = "state"
    state: Optional[dict[str, Any]] = None


class Log(TaggedModel):
    wire_tag = "Log"
    level: LogLevel
    message: str


class VEXLinkConnect(TaggedModel):
    wire_tag = "VEXLinkConnect"
    port: SmartPort
    id: str
    mode: LinkMode
    override: StrictBool


class VEXLinkDisconnect(TaggedModel):
    wire_tag = "VEXLinkDisconnect"
    port: SmartPort


class TextMetricsRequest(TaggedModel):
    """Ask the frontend to measure text (needs the text-metrics extension)."""

    wire_tag = "TextMetricsRequest"
    text: V5Text


Event = Union[
    Handshake,
    ScreenDraw,
    ScreenScroll,
    ScreenClear,
    ScreenDoubleBufferMode,
    ScreenRender,
    VCodeSig,
    Ready,
    Exited,
    Serial,
    DeviceUpdate,
    Battery,
    RobotPose,
    RobotState,
    Log,
    VEXLinkConnect,
    VEXLinkDisconnect,
    TextMetricsRequest,
]

EVENT_TYPES: dict[str, type[TaggedModel]] = {
    cls.wire_tag: cls for cls in Event.__args__
}
