"""
V5 Simulator Protocol - Line Framing

Format:
- UTF-8 text, one JSON value per line, each line ends with \\n
- No length prefix, no compression
- A line without its delimiter is never parsed
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from .errors import TransportError

logger = logging.getLogger(__name__)

DELIMITER = b"\n"

# Large enough for a full-screen CopyBuffer (480x240 pixels, base64)
DEFAULT_MAX_LINE_BYTES = 4 * 1024 * 1024


def frame(text: str) -> bytes:
    """Encode one message as a delimited UTF-8 line."""
    if "\n" in text:
        raise ValueError("message text must not contain a newline")
    return text.encode("utf-8") + DELIMITER


def unframe(line: bytes) -> str:
    """
    Strip the delimiter and decode UTF-8.

    Raises:
        TransportError: If the bytes are not valid UTF-8
    """
    if line.endswith(DELIMITER):
        line = line[:-1]
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TransportError(f"line is not valid UTF-8: {e}") from e


class LineFramer:
    """
    Incremental splitter for a byte stream.

    feed() returns only complete lines (delimiter included); anything after
    the last delimiter stays buffered until more bytes arrive.
    """

    def __init__(self, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES):
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a full line."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        self._buffer.extend(data)
        lines: list[bytes] = []
        while True:
            idx = self._buffer.find(DELIMITER)
            if idx < 0:
                break
            lines.append(bytes(self._buffer[: idx + 1]))
            del self._buffer[: idx + 1]
        if len(self._buffer) > self.max_line_bytes:
            size = len(self._buffer)
            self._buffer.clear()
            raise TransportError(f"line exceeds {self.max_line_bytes} bytes ({size} buffered)")
        for line in lines:
            if len(line) - 1 > self.max_line_bytes:
                raise TransportError(f"line exceeds {self.max_line_bytes} bytes")
        return lines

    def close(self) -> None:
        """
        Signal end of stream.

        Raises:
            TransportError: If a partial line is still buffered
        """
        if self._buffer:
            size = len(self._buffer)
            self._buffer.clear()
            raise TransportError(f"stream ended inside a message ({size} bytes without newline)")


async def read_lines(
    reader: asyncio.StreamReader,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
) -> AsyncIterator[str]:
    """
    Yield decoded lines from a stream until it closes cleanly.

    Blank lines are skipped. Lines longer than the reader's own ``limit``
    (64 KiB for open_connection / subprocess pipes) are collected in chunks,
    so only ``max_line_bytes`` bounds a line.

    Raises:
        TransportError: Partial trailing line, invalid UTF-8 or overlong line
    """
    head = bytearray()
    while True:
        try:
            raw = await reader.readuntil(DELIMITER)
        except asyncio.IncompleteReadError as e:
            if e.partial or head:
                raise TransportError(
                    f"stream ended inside a message "
                    f"({len(head) + len(e.partial)} bytes without newline)"
                ) from e
            return
        except asyncio.LimitOverrunError as e:
            # Nothing was consumed; move what the reader holds into head
            head += await reader.readexactly(e.consumed)
            if len(head) > max_line_bytes:
                raise TransportError(f"line exceeds {max_line_bytes} bytes") from e
            continue

        if head:
            raw = bytes(head) + raw
            head.clear()

        if len(raw) - 1 > max_line_bytes:
            raise TransportError(f"line exceeds {max_line_bytes} bytes")

        text = unframe(raw)
        if not text.strip():
            continue
        yield text


async def write_line(writer: asyncio.StreamWriter, text: str) -> None:
    """Write one line and wait until the peer has drained enough of it."""
    writer.write(frame(text))
    await writer.drain()
