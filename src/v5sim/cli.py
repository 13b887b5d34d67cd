"""Command line tools for the simulator protocol.

Usage::

    v5sim-protocol info                              # Version, extensions, message variants
    v5sim-protocol validate session.jsonl            # Check a recorded event stream
    v5sim-protocol validate cmds.jsonl --direction commands --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from v5sim import __version__
from v5sim.protocol import (
    BackendSession,
    FrontendSession,
    LineFramer,
    ProtocolConfig,
    ProtocolError,
    ProtocolSession,
    UnrecognizedVariant,
    default_registry,
)
from v5sim.protocol.commands import COMMAND_TYPES
from v5sim.protocol.events import EVENT_TYPES

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_FATAL = 2


def _parse_extensions(raw: Optional[str], default: frozenset[str]) -> frozenset[str]:
    if raw is None:
        return default
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _cmd_info(args: argparse.Namespace) -> int:
    """Show protocol version, extensions and variants."""
    config = ProtocolConfig.from_env()
    registry = default_registry()

    if args.json:
        print(json.dumps({
            "package_version": __version__,
            "protocol_version": config.version,
            "extensions": sorted(config.extensions),
            "gated": dict(sorted(registry.gates.items())),
            "events": sorted(EVENT_TYPES),
            "commands": sorted(COMMAND_TYPES),
        }, indent=2))
        return EXIT_OK

    print(f"v5sim-protocol {__version__}")
    print(f"  Protocol version : {config.version}")
    print(f"  Extensions       : {', '.join(sorted(config.extensions)) or '(none)'}")
    print(f"  Max line bytes   : {config.max_line_bytes}")
    print(f"  Strict ordering  : {config.strict_command_order}")
    print(f"\nEvents ({len(EVENT_TYPES)}):")
    for tag in EVENT_TYPES:
        ext = registry.required_extension(tag)
        print(f"  {tag}" + (f"  [{ext}]" if ext else ""))
    print(f"\nCommands ({len(COMMAND_TYPES)}):")
    for tag in COMMAND_TYPES:
        ext = registry.required_extension(tag)
        print(f"  {tag}" + (f"  [{ext}]" if ext else ""))
    return EXIT_OK


def _validate_lines(session: ProtocolSession, data: bytes, max_line_bytes: int) -> list[dict[str, Any]]:
    """Run every line of a recorded stream through a receiving session."""
    results: list[dict[str, Any]] = []
    recoverable: list[ProtocolError] = []
    session.add_error_listener(recoverable.append)
    framer = LineFramer(max_line_bytes)

    try:
        lines = framer.feed(data)
        # A missing final newline is common in hand-written files
        if framer.pending:
            lines.extend(framer.feed(b"\n"))
        framer.close()
    except ProtocolError as e:
        return [{"line_no": 0, "status": "fatal", "error": e.to_dict()}]

    for line_no, raw in enumerate(lines, start=1):
        if not raw.strip():
            continue
        try:
            decoded = session.receive(raw)
        except ProtocolError as e:
            results.append({"line_no": line_no, "status": "fatal", "error": e.to_dict()})
            break

        if decoded is None:
            error = recoverable.pop() if recoverable else None
            results.append({
                "line_no": line_no,
                "status": "error",
                "error": error.to_dict() if error else None,
            })
        elif isinstance(decoded, UnrecognizedVariant):
            results.append({"line_no": line_no, "status": "unrecognized", **decoded.to_dict()})
        else:
            results.append({"line_no": line_no, "status": "ok", "tag": decoded.wire_tag})
    return results


def _cmd_validate(args: argparse.Namespace) -> int:
    """Validate a JSONL file of events or commands."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return EXIT_INVALID

    base = ProtocolConfig.from_env()
    config = ProtocolConfig(
        version=args.protocol_version if args.protocol_version is not None else base.version,
        extensions=_parse_extensions(args.extensions, base.extensions),
        max_line_bytes=base.max_line_bytes,
        strict_command_order=args.strict or base.strict_command_order,
    )
    # The file holds what the remote peer sent, so decode it as its receiver
    session: ProtocolSession
    if args.direction == "events":
        session = FrontendSession(config)
    else:
        session = BackendSession(config)
    session.handshake()

    results = _validate_lines(session, path.read_bytes(), config.max_line_bytes)
    counts = {"ok": 0, "unrecognized": 0, "error": 0, "fatal": 0}
    for result in results:
        counts[result["status"]] += 1

    if args.json:
        for result in results:
            print(json.dumps(result, ensure_ascii=False))
    else:
        for result in results:
            status = result["status"]
            if status == "ok" and not args.verbose:
                continue
            if status == "ok":
                detail = result["tag"]
            elif status == "unrecognized":
                detail = f"{result['union']} variant {result['tag']!r} ({result['reason']})"
            else:
                error = result.get("error") or {}
                detail = f"{error.get('error_type', '?')}: {error.get('message', '?')}"
            print(f"  line {result['line_no']:>5}  {status:12s}  {detail}")
        print(
            f"\n{path}: {counts['ok']} ok, {counts['unrecognized']} unrecognized, "
            f"{counts['error']} errors, {counts['fatal']} fatal"
        )

    if counts["fatal"]:
        return EXIT_FATAL
    if counts["error"]:
        return EXIT_INVALID
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``v5sim-protocol``."""
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(
        prog="v5sim-protocol",
        description="VEX V5 simulator protocol - inspect and validate message streams",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="action")

    # info
    info_p = sub.add_parser("info", help="Show protocol version and message variants")
    info_p.add_argument("--json", action="store_true", help="Print as JSON")

    # validate
    validate_p = sub.add_parser("validate", help="Validate a recorded JSONL stream")
    validate_p.add_argument("file", help="JSONL file, one message per line, starting with Handshake")
    validate_p.add_argument(
        "--direction",
        choices=("events", "commands"),
        default="events",
        help="What the file contains (default: events)",
    )
    validate_p.add_argument("--extensions", default=None, help="Comma separated local extensions")
    validate_p.add_argument("--protocol-version", type=int, default=None, help="Local protocol version")
    validate_p.add_argument("--strict", action="store_true", help="Enforce strict command order")
    validate_p.add_argument("--json", action="store_true", help="One JSON result per line")
    validate_p.add_argument("-v", "--verbose", action="store_true", help="Also list valid lines")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    if not args.action:
        args.json = False
        return _cmd_info(args)

    dispatch = {
        "info": _cmd_info,
        "validate": _cmd_validate,
    }
    handler = dispatch.get(args.action)
    if handler:
        return handler(args)

    parser.print_help()
    return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
