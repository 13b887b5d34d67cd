"""
V5 Simulator Protocol - Peripheral Configuration and Status

Device and DeviceStatus are open unions: new hardware support adds variants,
and a decoder built against an older revision keeps the unknown ones as
OpaqueVariant instead of rejecting the message.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, StrictBool, StrictFloat

from .tagging import OpaqueVariant, TaggedModel, open_union
from .values import I32, MotorBrakeMode, MotorGearset


class Motor(TaggedModel):
    """Frontend-side configuration of a simulated V5 motor."""

    wire_tag = "Motor"
    physical_gearset: MotorGearset = Field(
        validation_alias=AliasChoices("physical_gearset", "gearset")
    )
    moment_of_inertia: StrictFloat


class MotorStatus(TaggedModel):
    """Backend-reported state of a V5 motor."""

    wire_tag = "Motor"
    velocity: StrictFloat
    reversed: StrictBool
    power_draw: StrictFloat
    torque_output: StrictFloat
    flags: I32
    position: StrictFloat
    target_position: StrictFloat
    voltage: StrictFloat
    gearset: MotorGearset
    brake_mode: MotorBrakeMode


Device = open_union(Motor)
DeviceStatus = open_union(MotorStatus)


def is_opaque(value: object) -> bool:
    """True if an open-union value was not understood by this revision."""
    return isinstance(value, OpaqueVariant)
