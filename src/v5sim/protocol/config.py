"""Protocol session configuration.

Config env vars::

    V5SIM_PROTOCOL_VERSION=1
    V5SIM_EXTENSIONS=text-metrics
    V5SIM_MAX_LINE_BYTES=4194304
    V5SIM_STRICT_COMMAND_ORDER=false
    V5SIM_TRANSCRIPT=/tmp/v5sim-session.jsonl
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from .extensions import EXT_TEXT_METRICS
from .framing import DEFAULT_MAX_LINE_BYTES
from .handshake import PROTOCOL_VERSION

__all__ = ["ProtocolConfig"]


@dataclass
class ProtocolConfig:
    """Settings shared by backend and frontend sessions.

    Attributes
    ----------
    version:
        Schema revision advertised in the handshake.
    extensions:
        Extensions this peer supports.
    max_line_bytes:
        Longest accepted line; longer ones are a transport error.
    strict_command_order:
        Reject input commands (Touch, AdiInput, ControllerUpdate) that
        arrive before StartExecution instead of accepting them.
    transcript_path:
        If set, every line sent or received is appended there as JSONL.
    """

    version: int = PROTOCOL_VERSION
    extensions: frozenset[str] = field(default_factory=lambda: frozenset({EXT_TEXT_METRICS}))
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    strict_command_order: bool = False
    transcript_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ProtocolConfig":
        """Load config from environment variables."""
        def _int(name: str, default: int) -> int:
            raw = os.getenv(name, "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                return default

        def _bool(name: str, default: bool) -> bool:
            raw = os.getenv(name, "").strip().lower()
            if not raw:
                return default
            return raw in {"1", "true", "yes", "on"}

        def _set(name: str, default: frozenset[str]) -> frozenset[str]:
            raw = os.getenv(name)
            if raw is None:
                return default
            return frozenset(part.strip() for part in raw.split(",") if part.strip())

        defaults = cls()
        return cls(
            version=_int("V5SIM_PROTOCOL_VERSION", defaults.version),
            extensions=_set("V5SIM_EXTENSIONS", defaults.extensions),
            max_line_bytes=_int("V5SIM_MAX_LINE_BYTES", defaults.max_line_bytes),
            strict_command_order=_bool("V5SIM_STRICT_COMMAND_ORDER", defaults.strict_command_order),
            transcript_path=os.getenv("V5SIM_TRANSCRIPT", "").strip() or None,
        )
