"""
V5 Simulator Protocol - Commands (frontend → backend)

Commands simulate hardware input and competition control. StartExecution is
the only one-shot command; ConfigureDevice replaces any earlier configuration
of the same port.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from pydantic import StrictFloat

from . import values
from .common import HandshakeBase, SerialBase
from .devices import Device
from .tagging import TaggedModel
from .values import (
    AdiPort,
    ControllerUpdate as ControllerUpdateValue,
    LinkMode,
    Point2D,
    Port,
    SmartPort,
    TextMetrics,
    TouchEvent,
    V5Text,
)


class Handshake(HandshakeBase):
    pass


class Touch(TaggedModel):
    wire_tag = "Touch"
    pos: Point2D
    event: TouchEvent


class ControllerUpdate(TaggedModel):
    """Primary and partner controller input; None means disconnected."""

    wire_tag = "ControllerUpdate"
    wire_fields = ("primary", "partner")
    primary: Optional[ControllerUpdateValue] = None
    partner: Optional[ControllerUpdateValue] = None


class USD(TaggedModel):
    """Point the virtual SD card at a directory, or back to default with None."""

    wire_tag = "USD"
    root: Optional[Path] = None


class VEXLinkOpened(TaggedModel):
    wire_tag = "VEXLinkOpened"
    port: SmartPort
    mode: LinkMode


class VEXLinkClosed(TaggedModel):
    wire_tag = "VEXLinkClosed"
    port: SmartPort


class CompetitionMode(TaggedModel):
    wire_tag = "CompetitionMode"
    wire_newtype = "mode"
    mode: values.CompetitionMode = values.CompetitionMode()


class ConfigureDevice(TaggedModel):
    wire_tag = "ConfigureDevice"
    port: Port
    device: Device


class AdiInput(TaggedModel):
    wire_tag = "AdiInput"
    port: AdiPort
    voltage: StrictFloat


class StartExecution(TaggedModel):
    wire_tag = "StartExecution"


class SetBatteryCapacity(TaggedModel):
    wire_tag = "SetBatteryCapacity"
    capacity: StrictFloat


class SetTextMetrics(TaggedModel):
    """Answer to TextMetricsRequest (needs the text-metrics extension)."""

    wire_tag = "SetTextMetrics"
    text: V5Text
    metrics: TextMetrics


class Serial(SerialBase):
    pass


Command = Union[
    Handshake,
    Touch,
    ControllerUpdate,
    USD,
    VEXLinkOpened,
    VEXLinkClosed,
    CompetitionMode,
    ConfigureDevice,
    AdiInput,
    StartExecution,
    SetBatteryCapacity,
    SetTextMetrics,
    Serial,
]

COMMAND_TYPES: dict[str, type[TaggedModel]] = {
    cls.wire_tag: cls for cls in Command.__args__
}
