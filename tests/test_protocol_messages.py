"""
Tests for v5sim.protocol.wire — JSON encoding of events and commands.
"""

import json
from pathlib import Path

import pytest

from v5sim.protocol import commands, events, values
from v5sim.protocol.devices import Motor, MotorStatus, is_opaque
from v5sim.protocol.errors import (
    PayloadDecodeError,
    SchemaError,
    SessionStateError,
    TransportError,
)
from v5sim.protocol.extensions import UnrecognizedVariant
from v5sim.protocol.handshake import negotiate
from v5sim.protocol.values import (
    Color,
    CompMode,
    ControllerUUID,
    Fill,
    LinkMode,
    LogLevel,
    MotorBrakeMode,
    MotorGearset,
    Point2D,
    RawController,
    Rect,
    Rectangle,
    ScrollLine,
    SerialData,
    Smart,
    TextLine,
    TouchEvent,
    V5Text,
    Write,
)
from v5sim.protocol.wire import decode_command, decode_event, encode_command, encode_event


SCREEN = Rect(top_left=Point2D(x=0, y=0), bottom_right=Point2D(x=479, y=239))


def _motor_status():
    return MotorStatus(
        velocity=1.5,
        reversed=False,
        power_draw=0.25,
        torque_output=0.5,
        flags=0,
        position=90.0,
        target_position=180.0,
        voltage=12.0,
        gearset=MotorGearset.GREEN,
        brake_mode=MotorBrakeMode.COAST,
    )


SAMPLE_EVENTS = [
    events.Handshake(version=1, extensions=frozenset({"text-metrics"})),
    events.ScreenDraw(
        command=Fill(shape=Rectangle(top_left=Point2D(x=1, y=1), bottom_right=Point2D(x=4, y=4))),
        color=Color(0x00FF00),
        clip_region=SCREEN,
    ),
    events.ScreenDraw(
        command=Write(
            text=V5Text(data="hello"),
            location=TextLine(line=2),
            opaque=True,
            background=Color(0),
        ),
        color=Color(0xFFFFFF),
        clip_region=SCREEN,
    ),
    events.ScreenScroll(location=ScrollLine(line=3), lines=1, background=Color(0), clip_region=SCREEN),
    events.ScreenClear(color=Color(0xFF0000), clip_region=SCREEN),
    events.ScreenDoubleBufferMode(enable=True),
    events.ScreenRender(),
    events.VCodeSig(signature=values.VCodeSig.from_bytes(b"\x00\x01\x02")),
    events.Ready(),
    events.Exited(),
    events.Serial(serial=SerialData.from_bytes(1, b"hello\n")),
    events.DeviceUpdate(status=_motor_status(), port=Smart(port=4)),
    events.Battery(battery=values.Battery(voltage=12.8, current=1.5, capacity=0.9)),
    events.RobotPose(x=1.25, y=-3.5),
    events.RobotState(),
    events.Log(level=LogLevel.WARN, message="low battery"),
    events.VEXLinkConnect(port=5, id="robot-a", mode=LinkMode.MANAGER, override=False),
    events.VEXLinkDisconnect(port=5),
    events.TextMetricsRequest(text=V5Text(data="abc")),
]

SAMPLE_COMMANDS = [
    commands.Handshake(version=1, extensions=frozenset()),
    commands.Touch(pos=Point2D(x=10, y=20), event=TouchEvent.PRESSED),
    commands.ControllerUpdate(primary=RawController(state=values.ControllerState(axis1=127))),
    commands.ControllerUpdate(primary=None, partner=ControllerUUID(uuid="abc")),
    commands.USD(root=Path("/tmp/usd")),
    commands.USD(),
    commands.VEXLinkOpened(port=5, mode=LinkMode.WORKER),
    commands.VEXLinkClosed(port=5),
    commands.CompetitionMode(mode=values.CompetitionMode(mode=CompMode.AUTO, is_competition=True)),
    commands.ConfigureDevice(
        port=Smart(port=1),
        device=Motor(physical_gearset=MotorGearset.RED, moment_of_inertia=0.5),
    ),
    commands.AdiInput(port=2, voltage=3.3),
    commands.StartExecution(),
    commands.SetBatteryCapacity(capacity=0.5),
    commands.SetTextMetrics(text=V5Text(data="abc"), metrics=values.TextMetrics(width=18, height=12)),
    commands.Serial(serial=SerialData.from_bytes(1, b"\xff\x00")),
]


# ── Exact wire forms ────────────────────────────────────────────


class TestWireForm:
    def test_screen_clear(self):
        line = encode_event(events.ScreenClear(color=Color(0xFF0000), clip_region=SCREEN))
        assert line == (
            '{"ScreenClear":{"color":16711680,"clip_region":'
            '{"top_left":{"x":0,"y":0},"bottom_right":{"x":479,"y":239}}}}'
        )

    def test_touch(self):
        line = encode_command(commands.Touch(pos=Point2D(x=10, y=20), event=TouchEvent.PRESSED))
        assert line == '{"Touch":{"pos":{"x":10,"y":20},"event":"Pressed"}}'

    def test_unit_variant_is_bare_string(self):
        assert encode_event(events.Ready()) == '"Ready"'
        assert encode_command(commands.StartExecution()) == '"StartExecution"'

    def test_unit_variant_null_payload_accepted(self):
        assert decode_event('{"Ready":null}') == events.Ready()

    def test_newtype_variants(self):
        sig = events.VCodeSig(signature=values.VCodeSig.from_bytes(b"\x00\x01\x02"))
        assert encode_event(sig) == '{"VCodeSig":"AAEC"}'
        assert encode_event(events.RobotState()) == '{"RobotState":null}'

    def test_tuple_variant(self):
        cmd = commands.ControllerUpdate(partner=ControllerUUID(uuid="abc"))
        assert encode_command(cmd) == '{"ControllerUpdate":[null,{"UUID":"abc"}]}'

    def test_port_and_device(self):
        cmd = commands.ConfigureDevice(
            port=Smart(port=1),
            device=Motor(physical_gearset=MotorGearset.GREEN, moment_of_inertia=0.5),
        )
        assert json.loads(encode_command(cmd)) == {
            "ConfigureDevice": {
                "port": {"Smart": 1},
                "device": {"Motor": {"physical_gearset": "Green", "moment_of_inertia": 0.5}},
            }
        }

    def test_motor_gearset_alias(self):
        line = '{"ConfigureDevice":{"port":{"Smart":1},"device":{"Motor":{"gearset":"Blue","moment_of_inertia":1.0}}}}'
        cmd = decode_command(line)
        assert cmd.device.physical_gearset is MotorGearset.BLUE

    def test_handshake_extensions_sorted(self):
        hs = commands.Handshake(version=1, extensions=frozenset({"b", "a"}))
        assert encode_command(hs) == '{"Handshake":{"version":1,"extensions":["a","b"]}}'

    def test_unknown_object_fields_ignored(self):
        cmd = decode_command('{"Touch":{"pos":{"x":1,"y":2},"event":"Held","pressure":0.3}}')
        assert cmd == commands.Touch(pos=Point2D(x=1, y=2), event=TouchEvent.HELD)

    def test_non_ascii_text_kept(self):
        log = events.Log(level=LogLevel.INFO, message="héllo ✓")
        line = encode_event(log)
        assert "héllo ✓" in line
        assert decode_event(line) == log


# ── Round trip ──────────────────────────────────────────────────


class TestRoundTrip:
    @pytest.mark.parametrize("event", SAMPLE_EVENTS, ids=lambda e: e.wire_tag)
    def test_event(self, event):
        assert decode_event(encode_event(event)) == event

    @pytest.mark.parametrize("command", SAMPLE_COMMANDS, ids=lambda c: c.wire_tag)
    def test_command(self, command):
        assert decode_command(encode_command(command)) == command

    def test_every_variant_sampled(self):
        from v5sim.protocol.commands import COMMAND_TYPES
        from v5sim.protocol.events import EVENT_TYPES

        assert {e.wire_tag for e in SAMPLE_EVENTS} == set(EVENT_TYPES)
        assert {c.wire_tag for c in SAMPLE_COMMANDS} == set(COMMAND_TYPES)

    def test_wrong_direction(self):
        with pytest.raises(TypeError):
            encode_event(commands.StartExecution())
        with pytest.raises(TypeError):
            encode_command(events.Ready())

    def test_bytes_input(self):
        assert decode_event(b'"Exited"\n') == events.Exited()


# ── Unknown variants ────────────────────────────────────────────


class TestUnknownVariants:
    def test_unknown_event_tag(self):
        result = decode_event('{"Teleport":{"x":1}}')
        assert isinstance(result, UnrecognizedVariant)
        assert result.union == "Event"
        assert result.tag == "Teleport"
        assert result.payload == {"x": 1}
        assert result.reason == "unknown_variant"

    def test_unknown_unit_command(self):
        result = decode_command('"Reboot"')
        assert isinstance(result, UnrecognizedVariant)
        assert result.tag == "Reboot"
        assert result.payload is None

    def test_unknown_device_then_next_line(self):
        line = '{"ConfigureDevice":{"port":{"Smart":2},"device":{"DistanceSensor":{"range":5}}}}'
        result = decode_command(line)
        assert isinstance(result, UnrecognizedVariant)
        assert result.union == "Device"
        assert result.tag == "DistanceSensor"
        assert isinstance(result.message, commands.ConfigureDevice)
        assert is_opaque(result.message.device)

        after = decode_command('{"SetBatteryCapacity":{"capacity":0.75}}')
        assert after == commands.SetBatteryCapacity(capacity=0.75)

    def test_opaque_device_reencodes_unchanged(self):
        line = '{"ConfigureDevice":{"port":{"Smart":2},"device":{"DistanceSensor":{"range":5}}}}'
        result = decode_command(line)
        assert encode_command(result.message) == line

    def test_opaque_unit_device_reencodes_as_string(self):
        line = '{"ConfigureDevice":{"port":{"Smart":2},"device":"Gyro"}}'
        result = decode_command(line)
        assert isinstance(result, UnrecognizedVariant)
        assert result.tag == "Gyro"
        assert encode_command(result.message) == line

    def test_unknown_device_status(self):
        line = '{"DeviceUpdate":{"status":{"Vision":{"objects":[]}},"port":{"Smart":9}}}'
        result = decode_event(line)
        assert isinstance(result, UnrecognizedVariant)
        assert result.union == "DeviceStatus"
        assert result.tag == "Vision"

    def test_unknown_tag_in_closed_union_is_schema_error(self):
        line = (
            '{"ScreenDraw":{"command":{"Fill":{"shape":{"Hexagon":{}}}},'
            '"color":0,"clip_region":{"top_left":{"x":0,"y":0},"bottom_right":{"x":1,"y":1}}}}'
        )
        with pytest.raises(SchemaError) as exc_info:
            decode_event(line)
        assert exc_info.value.variant == "ScreenDraw"
        assert exc_info.value.fatal is False


# ── Decode errors ───────────────────────────────────────────────


class TestDecodeErrors:
    def test_not_json(self):
        with pytest.raises(SchemaError):
            decode_event("{not json")

    def test_not_a_variant(self):
        with pytest.raises(SchemaError):
            decode_event("[1, 2]")
        with pytest.raises(SchemaError):
            decode_event('{"Ready":null,"Exited":null}')

    def test_bad_base64_is_payload_error(self):
        with pytest.raises(PayloadDecodeError) as exc_info:
            decode_command('{"Serial":{"channel":1,"data":"!!!"}}')
        assert exc_info.value.variant == "Serial"
        assert exc_info.value.line == '{"Serial":{"channel":1,"data":"!!!"}}'

    def test_missing_field_is_schema_error(self):
        with pytest.raises(SchemaError) as exc_info:
            decode_command('{"Touch":{"pos":{"x":1,"y":2}}}')
        assert not isinstance(exc_info.value, PayloadDecodeError)

    def test_invalid_color_is_schema_error(self):
        line = (
            '{"ScreenClear":{"color":4278190080,'
            '"clip_region":{"top_left":{"x":0,"y":0},"bottom_right":{"x":1,"y":1}}}}'
        )
        with pytest.raises(SchemaError):
            decode_event(line)

    def test_quoted_color_is_schema_error(self):
        line = (
            '{"ScreenClear":{"color":"255",'
            '"clip_region":{"top_left":{"x":0,"y":0},"bottom_right":{"x":1,"y":1}}}}'
        )
        with pytest.raises(SchemaError):
            decode_event(line)

    def test_string_bool_is_schema_error(self):
        with pytest.raises(SchemaError) as exc_info:
            decode_event('{"ScreenDoubleBufferMode":{"enable":"yes"}}')
        assert exc_info.value.variant == "ScreenDoubleBufferMode"

    @pytest.mark.parametrize("x", ['"1"', "1.0", "true"])
    def test_coordinate_must_be_integer(self, x):
        with pytest.raises(SchemaError):
            decode_command('{"Touch":{"pos":{"x":%s,"y":2},"event":"Held"}}' % x)

    def test_integer_accepted_for_float(self):
        cmd = decode_command('{"SetBatteryCapacity":{"capacity":1}}')
        assert cmd == commands.SetBatteryCapacity(capacity=1.0)

    def test_invalid_utf8_is_transport_error(self):
        with pytest.raises(TransportError) as exc_info:
            decode_event(b"\xff\xfe")
        assert exc_info.value.fatal

    def test_session_control_errors_are_fatal(self):
        with pytest.raises(SchemaError) as exc_info:
            decode_command('{"StartExecution":{"now":true}}')
        assert exc_info.value.fatal is True

        with pytest.raises(SchemaError) as exc_info:
            decode_event('{"Handshake":{"version":"one"}}')
        assert exc_info.value.fatal is True

    def test_error_to_dict(self):
        with pytest.raises(SchemaError) as exc_info:
            decode_command('{"Touch":{}}')
        data = exc_info.value.to_dict()
        assert data["error_type"] == "schema"
        assert data["variant"] == "Touch"
        assert data["line"] == '{"Touch":{}}'


# ── Extension gating ────────────────────────────────────────────


class TestExtensionGating:
    def test_send_without_extension_raises(self):
        negotiated = negotiate(1, set(), 1, {"text-metrics"})
        with pytest.raises(SessionStateError):
            encode_event(events.TextMetricsRequest(text=V5Text(data="x")), negotiated)

    def test_send_with_extension(self):
        negotiated = negotiate(1, {"text-metrics"}, 1, {"text-metrics"})
        line = encode_event(events.TextMetricsRequest(text=V5Text(data="x")), negotiated)
        assert line.startswith('{"TextMetricsRequest"')

    def test_receive_without_extension_is_unrecognized(self):
        negotiated = negotiate(1, set(), 1, set())
        cmd = commands.SetTextMetrics(text=V5Text(data="x"), metrics=values.TextMetrics(width=6, height=12))
        result = decode_command(encode_command(cmd), negotiated)
        assert isinstance(result, UnrecognizedVariant)
        assert result.reason == "extension_not_negotiated"
        assert result.message == cmd

    def test_ungated_messages_unaffected(self):
        negotiated = negotiate(1, set(), 1, set())
        assert decode_event('"Ready"', negotiated) == events.Ready()
