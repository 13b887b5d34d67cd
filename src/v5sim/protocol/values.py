"""
V5 Simulator Protocol - Value Codec

Primitive domain values shared by events and commands: geometry, colors,
ports, text, base64 payloads and the small enums.

Raw bytes always travel as standard padded base64 inside a JSON string.
"""

from __future__ import annotations

import base64
import binascii
from enum import Enum
from typing import Annotated, NamedTuple

from pydantic import (
    AfterValidator,
    AliasChoices,
    ConfigDict,
    Field,
    RootModel,
    Strict,
    StrictBool,
    StrictFloat,
    model_validator,
)
from pydantic_core import PydanticCustomError

from .errors import PayloadDecodeError
from .tagging import TaggedModel, WireModel, tagged_union

# Integer widths of the canonical schema (32-bit coordinates). Scalars are
# strict: "3" is not an int, 0.0 is not a coordinate, "yes" is not a bool.
I32 = Annotated[int, Strict(), Field(ge=-(2**31), le=2**31 - 1)]
U8 = Annotated[int, Strict(), Field(ge=0, le=0xFF)]
U16 = Annotated[int, Strict(), Field(ge=0, le=0xFFFF)]
U32 = Annotated[int, Strict(), Field(ge=0, le=0xFFFF_FFFF)]
NonZeroU16 = Annotated[int, Strict(), Field(ge=1, le=0xFFFF)]
USize = Annotated[int, Strict(), Field(ge=0)]

BASE64_ERROR = "base64_decode"


# ── base64 ──────────────────────────────────────────────────────


def encode_bytes(data: bytes) -> str:
    """Encode raw bytes as standard padded base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def decode_bytes(text: str) -> bytes:
    """
    Decode standard padded base64 text.

    Raises:
        PayloadDecodeError: If the text is not valid base64
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadDecodeError(f"invalid base64 payload: {e}") from e


def _check_base64(text: str) -> str:
    try:
        base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PydanticCustomError(
            BASE64_ERROR,
            "invalid base64 payload: {reason}",
            {"reason": str(e)},
        )
    return text


Base64Text = Annotated[str, AfterValidator(_check_base64)]


# ── Enums ───────────────────────────────────────────────────────


class TouchEvent(str, Enum):
    """Touchscreen press phases."""
    RELEASED = "Released"
    PRESSED = "Pressed"
    HELD = "Held"


class MotorGearset(str, Enum):
    """Internal gear cartridge of a V5 motor."""
    RED = "Red"
    GREEN = "Green"
    BLUE = "Blue"


class MotorBrakeMode(str, Enum):
    COAST = "Coast"
    BRAKE = "Brake"
    HOLD = "Hold"


class LinkMode(str, Enum):
    """Role of a VEXlink radio."""
    MANAGER = "Manager"
    WORKER = "Worker"


class CompMode(str, Enum):
    """Current stage of a competition."""
    AUTO = "Auto"
    DRIVER = "Driver"


class LogLevel(str, Enum):
    TRACE = "Trace"
    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"


class V5FontFamily(str, Enum):
    USER_MONO = "UserMono"
    TIMER_MONO = "TimerMono"


class V5FontSize(str, Enum):
    SMALL = "Small"
    NORMAL = "Normal"
    LARGE = "Large"


# ── Geometry ────────────────────────────────────────────────────


class Point2D(WireModel):
    x: I32
    y: I32


def _check_corners(top_left: Point2D, bottom_right: Point2D) -> None:
    if top_left.x > bottom_right.x or top_left.y > bottom_right.y:
        raise ValueError(
            f"top_left ({top_left.x}, {top_left.y}) must not lie past "
            f"bottom_right ({bottom_right.x}, {bottom_right.y})"
        )


class Rect(WireModel):
    """Axis-aligned region; equal corners are a valid one-pixel rect."""

    top_left: Point2D
    bottom_right: Point2D

    @model_validator(mode="after")
    def _corners_ordered(self) -> "Rect":
        _check_corners(self.top_left, self.bottom_right)
        return self

    def contains(self, x: int, y: int) -> bool:
        return (
            self.top_left.x <= x <= self.bottom_right.x
            and self.top_left.y <= y <= self.bottom_right.y
        )


class RGB8(NamedTuple):
    r: int
    g: int
    b: int


class Color(RootModel[Annotated[int, Strict(), Field(ge=0, le=0xFF_FFFF)]]):
    """Packed 0x00RRGGBB color. The top byte is reserved and must be zero."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_rgb(cls, r: int, g: int, b: int) -> "Color":
        for channel in (r, g, b):
            if not 0 <= channel <= 0xFF:
                raise ValueError(f"color channel out of range: {channel}")
        return cls(int.from_bytes(bytes([0, r, g, b]), "big"))

    def to_rgb(self) -> RGB8:
        _, r, g, b = self.root.to_bytes(4, "big")
        return RGB8(r, g, b)


# ── Ports ───────────────────────────────────────────────────────


class SmartPort(RootModel[U8]):
    """RJ9 "Smart" port number (1-21 on real hardware)."""

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> int:
        return self.root


class AdiPort(RootModel[U8]):
    """3-wire ADI port number (1-8 on real hardware)."""

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> int:
        return self.root


class Smart(TaggedModel):
    wire_tag = "Smart"
    wire_newtype = "port"
    port: SmartPort


class Adi(TaggedModel):
    wire_tag = "Adi"
    wire_newtype = "port"
    port: AdiPort


Port = tagged_union(Smart, Adi)


# ── Shapes ──────────────────────────────────────────────────────


class Rectangle(TaggedModel):
    wire_tag = "Rectangle"
    top_left: Point2D
    bottom_right: Point2D

    @model_validator(mode="after")
    def _corners_ordered(self) -> "Rectangle":
        _check_corners(self.top_left, self.bottom_right)
        return self


class Circle(TaggedModel):
    wire_tag = "Circle"
    center: Point2D
    radius: U16


class Pixel(TaggedModel):
    wire_tag = "Pixel"
    pos: Point2D = Field(validation_alias=AliasChoices("pos", "point"))


class Line(TaggedModel):
    wire_tag = "Line"
    start: Point2D
    end: Point2D


Shape = tagged_union(Rectangle, Circle, Pixel, Line)


# ── Text ────────────────────────────────────────────────────────


class V5Text(WireModel):
    data: str = ""
    font_family: V5FontFamily = V5FontFamily.USER_MONO
    font_size: V5FontSize = V5FontSize.NORMAL


class TextMetrics(WireModel):
    width: USize = 0
    height: USize = 0


class TextCoordinates(TaggedModel):
    wire_tag = "Coordinates"
    point: Point2D = Point2D(x=0, y=0)


class TextLine(TaggedModel):
    wire_tag = "Line"
    line: I32


TextLocation = tagged_union(TextCoordinates, TextLine)


class ScrollLine(TaggedModel):
    wire_tag = "Line"
    line: I32


class ScrollRectangle(TaggedModel):
    wire_tag = "Rectangle"
    top_left: Point2D
    bottom_right: Point2D

    @model_validator(mode="after")
    def _corners_ordered(self) -> "ScrollRectangle":
        _check_corners(self.top_left, self.bottom_right)
        return self


ScrollLocation = tagged_union(ScrollLine, ScrollRectangle)


# ── Draw commands ───────────────────────────────────────────────


class Fill(TaggedModel):
    wire_tag = "Fill"
    shape: Shape


class Stroke(TaggedModel):
    wire_tag = "Stroke"
    shape: Shape


class CopyBuffer(TaggedModel):
    """Blit a pixel buffer; ``stride`` is pixels per buffer row."""

    wire_tag = "CopyBuffer"
    top_left: Point2D
    bottom_right: Point2D
    stride: NonZeroU16
    buffer: Base64Text

    @model_validator(mode="after")
    def _corners_ordered(self) -> "CopyBuffer":
        _check_corners(self.top_left, self.bottom_right)
        return self

    @classmethod
    def from_bytes(
        cls, top_left: Point2D, bottom_right: Point2D, stride: int, data: bytes
    ) -> "CopyBuffer":
        return cls(
            top_left=top_left,
            bottom_right=bottom_right,
            stride=stride,
            buffer=encode_bytes(data),
        )

    def to_bytes(self) -> bytes:
        return decode_bytes(self.buffer)


class Write(TaggedModel):
    wire_tag = "Write"
    text: V5Text
    location: TextLocation
    opaque: StrictBool
    background: Color


DrawCommand = tagged_union(Fill, Stroke, CopyBuffer, Write)


# ── Payload carriers ────────────────────────────────────────────


class SerialData(WireModel):
    """Bytes written to a serial channel (1 is stdio by convention)."""

    channel: U32
    data: Base64Text

    @classmethod
    def from_bytes(cls, channel: int, data: bytes) -> "SerialData":
        return cls(channel=channel, data=encode_bytes(data))

    def to_bytes(self) -> bytes:
        return decode_bytes(self.data)


class VCodeSig(RootModel[Base64Text]):
    """Opaque program metadata signature."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_bytes(cls, data: bytes) -> "VCodeSig":
        return cls(encode_bytes(data))

    def to_bytes(self) -> bytes:
        return decode_bytes(self.root)


# ── Robot state ─────────────────────────────────────────────────


class Battery(WireModel):
    """Battery statistics. Ranges are a simulator concern."""

    voltage: StrictFloat
    current: StrictFloat
    capacity: StrictFloat


class CompetitionMode(WireModel):
    enabled: StrictBool = True
    connected: StrictBool = False
    mode: CompMode = CompMode.DRIVER
    is_competition: StrictBool = False


class ControllerState(WireModel):
    """Raw axis and button snapshot of a V5 controller."""

    axis1: I32 = 0
    axis2: I32 = 0
    axis3: I32 = 0
    axis4: I32 = 0
    button_l1: StrictBool = False
    button_l2: StrictBool = False
    button_r1: StrictBool = False
    button_r2: StrictBool = False
    button_up: StrictBool = False
    button_down: StrictBool = False
    button_left: StrictBool = False
    button_right: StrictBool = False
    button_x: StrictBool = False
    button_b: StrictBool = False
    button_y: StrictBool = False
    button_a: StrictBool = False
    button_sel: StrictBool = False
    battery_level: I32 = 0
    button_all: StrictBool = False
    flags: I32 = 0
    battery_capacity: I32 = 0


class RawController(TaggedModel):
    """Full controller state, for keyboard-and-mouse style control."""

    wire_tag = "Raw"
    wire_newtype = "state"
    state: ControllerState


class ControllerUUID(TaggedModel):
    """Reference to a physical controller the backend reads itself."""

    wire_tag = "UUID"
    wire_newtype = "uuid"
    uuid: str


ControllerUpdate = tagged_union(RawController, ControllerUUID)
