from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from v5sim.protocol import BackendSession, FrontendSession, ProtocolConfig, ProtocolPeer


@pytest.fixture(autouse=True)
def _clean_v5sim_env(monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's V5SIM_* settings out of the tests."""
    for name in (
        "V5SIM_PROTOCOL_VERSION",
        "V5SIM_EXTENSIONS",
        "V5SIM_MAX_LINE_BYTES",
        "V5SIM_STRICT_COMMAND_ORDER",
        "V5SIM_TRANSCRIPT",
    ):
        monkeypatch.delenv(name, raising=False)


class MemoryWriter:
    """Stand-in for asyncio.StreamWriter that feeds a StreamReader directly."""

    def __init__(self, target: Optional[asyncio.StreamReader] = None):
        self.target = target
        self.buffer = bytearray()
        self.drain_calls = 0
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionResetError("writer closed")
        self.buffer.extend(data)
        if self.target is not None:
            self.target.feed_data(data)

    async def drain(self) -> None:
        self.drain_calls += 1

    def close(self) -> None:
        self.closed = True
        if self.target is not None:
            self.target.feed_eof()

    async def wait_closed(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closed

    def lines(self) -> list[str]:
        return [line for line in self.buffer.decode("utf-8").split("\n") if line]


def active_pair(
    backend_config: Optional[ProtocolConfig] = None,
    frontend_config: Optional[ProtocolConfig] = None,
    on_backend_error=None,
    on_frontend_error=None,
) -> tuple[BackendSession, FrontendSession]:
    """Two sessions with handshakes already exchanged."""
    backend = BackendSession(backend_config, on_error=on_backend_error)
    frontend = FrontendSession(frontend_config or backend_config, on_error=on_frontend_error)
    frontend.receive(backend.handshake())
    backend.receive(frontend.handshake())
    return backend, frontend


def connect_peers(
    backend_session: BackendSession,
    frontend_session: FrontendSession,
) -> tuple[ProtocolPeer, ProtocolPeer]:
    """Wire two peers back to back over default-limit in-memory streams. Call inside a running loop."""
    backend_reader = asyncio.StreamReader()
    frontend_reader = asyncio.StreamReader()
    backend = ProtocolPeer(backend_session, backend_reader, MemoryWriter(frontend_reader))
    frontend = ProtocolPeer(frontend_session, frontend_reader, MemoryWriter(backend_reader))
    return backend, frontend
