"""
V5 Simulator Protocol - Stream Peer

Drives a ProtocolSession over an already-open asyncio stream pair (pipe,
socket or subprocess stdio; opening it is up to the caller).

Handles:
- Sending the handshake and waiting for the peer's
- Framed, drained writes (slow readers block the writer, nothing is dropped)
- Receive loop with message / unrecognized-variant callbacks
- Reporting rejected commands back to the frontend as Log events
- Closing the stream on fatal errors
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from . import events
from .errors import ProtocolError, SessionStateError, TransportError
from .extensions import UnrecognizedVariant
from .framing import read_lines
from .handshake import NegotiatedSession
from .session import BackendSession, ProtocolSession
from .tagging import TaggedModel
from .values import LogLevel
from .wire import Decoded

logger = logging.getLogger(__name__)

MessageCallback = Callable[[TaggedModel], Union[Awaitable[None], None]]
UnrecognizedCallback = Callable[[UnrecognizedVariant], Union[Awaitable[None], None]]


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class ProtocolPeer:
    """
    One end of a simulator protocol connection.

    Works with readers from open_connection or subprocess pipes as they
    come; lines up to ``session.config.max_line_bytes`` are accepted
    whatever the reader's own limit.
    """

    def __init__(
        self,
        session: ProtocolSession,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        self.session = session
        self._reader = reader
        self._writer = writer
        self._lines: Optional[AsyncIterator[str]] = None
        self._send_lock = asyncio.Lock()
        self._closed = False
        self._rejections: list[SessionStateError] = []
        self.fatal_error: Optional[ProtocolError] = None

        session.add_error_listener(self._on_session_error)

    @property
    def name(self) -> str:
        return f"ProtocolPeer:{self.session.role.value}"

    @property
    def connected(self) -> bool:
        return not self._closed

    async def start(self) -> None:
        """Send the local handshake."""
        await self._write(self.session.handshake())

    async def wait_active(self) -> NegotiatedSession:
        """
        Read until the peer's handshake arrived.

        Raises:
            TransportError: If the stream closes first
        """
        while True:
            negotiated = self.session.negotiated
            if negotiated is not None:
                return negotiated
            if await self.receive() is None:
                raise TransportError("stream closed before the handshake completed")

    async def send(self, message: TaggedModel) -> None:
        """
        Encode and send one message.

        Raises:
            SessionStateError: If the session rules forbid sending it now
            TransportError: If the connection is closed
        """
        await self._write(self.session.encode(message))

    async def receive(self) -> Optional[Decoded]:
        """
        Return the next message, skipping lines rejected as recoverable.

        Returns None once the stream closed cleanly.

        Raises:
            ProtocolError: Fatal errors (the connection is closed first)
        """
        if self._lines is None:
            self._lines = read_lines(self._reader, self.session.config.max_line_bytes)

        while True:
            try:
                text = await self._lines.__anext__()
            except StopAsyncIteration:
                await self._on_stream_end()
                return None
            except TransportError as e:
                self.session.close(str(e))
                await self._fatal(e)
                raise

            try:
                decoded = self.session.receive(text)
            except ProtocolError as e:
                await self._fatal(e)
                raise

            await self._flush_rejections()
            if decoded is not None:
                return decoded

    async def messages(self) -> AsyncIterator[Decoded]:
        """Iterate incoming messages until the stream or the session ends."""
        while True:
            decoded = await self.receive()
            if decoded is None:
                return
            yield decoded
            if self.session.terminated:
                return

    async def run(
        self,
        on_message: MessageCallback,
        on_unrecognized: Optional[UnrecognizedCallback] = None,
    ) -> None:
        """Dispatch incoming messages to callbacks until the session ends."""
        async for decoded in self.messages():
            try:
                if isinstance(decoded, UnrecognizedVariant):
                    if on_unrecognized:
                        await _maybe_await(on_unrecognized(decoded))
                else:
                    await _maybe_await(on_message(decoded))
            except Exception as e:
                logger.error(f"[{self.name}] Message callback error: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self.session.terminated:
            self.session.close("connection closed")
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"[{self.name}] Error while closing stream: {e}")

    # --- Internal methods ---

    async def _write(self, data: bytes) -> None:
        if self._closed:
            raise TransportError("connection is closed")
        async with self._send_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                error = TransportError(f"write failed: {e}")
                self.session.close(str(error))
                await self._fatal(error)
                raise error from e

    def _on_session_error(self, error: ProtocolError) -> None:
        if isinstance(error, SessionStateError):
            self._rejections.append(error)

    async def _flush_rejections(self) -> None:
        """Tell the frontend which of its commands were rejected."""
        rejections, self._rejections = self._rejections, []
        if not isinstance(self.session, BackendSession):
            return
        for error in rejections:
            if not self.session.active or self.session.exited:
                break
            await self.send(events.Log(level=LogLevel.ERROR, message=f"rejected: {error}"))

    async def _on_stream_end(self) -> None:
        if not self.session.terminated:
            logger.info(f"[{self.name}] Stream closed by peer")
            self.session.close("stream closed")
        await self.close()

    async def _fatal(self, error: ProtocolError) -> None:
        self.fatal_error = error
        logger.error(f"[{self.name}] Closing after fatal error: {error}")
        await self.close()
